"""Post-condition check run after install and update.

A non-empty result is surfaced as warnings only; the destructive work has
already succeeded by the time this runs.
"""

from __future__ import annotations

from typing import Iterable

from autoskills.domain.errors import PersistenceError
from autoskills.domain.models import InstallationRecord, ResourceDescriptor, VerificationWarning
from autoskills.infrastructure.path_contract import real
from autoskills.infrastructure.placement import form_of
from autoskills.infrastructure.state_store import StateStore


def check(
    record: InstallationRecord,
    descriptors: Iterable[ResourceDescriptor],
    store: StateStore,
) -> list[VerificationWarning]:
    warnings: list[VerificationWarning] = []
    for d in descriptors:
        placed = record.resources.get(d.name)
        if placed is None:
            warnings.append(VerificationWarning(d.name, "not listed in the installation record"))
        mode = placed.mode if placed is not None else d.effective_mode(record.placement_mode)
        form = form_of(d.target_path)
        if form == "absent":
            warnings.append(VerificationWarning(d.name, f"target missing: {d.target_path}"))
            continue
        if mode == "reference":
            if form != "link":
                warnings.append(VerificationWarning(d.name, f"expected a link at {d.target_path}, found a {form}"))
            elif real(d.target_path) != real(d.source_in(record.source_path)):
                warnings.append(VerificationWarning(d.name, f"link at {d.target_path} does not point at the source"))
            continue
        if form == "link":
            warnings.append(VerificationWarning(d.name, f"expected an independent copy at {d.target_path}, found a link"))
        elif form != d.kind:
            warnings.append(VerificationWarning(d.name, f"expected a {d.kind} at {d.target_path}, found a {form}"))

    try:
        loaded = store.load()
    except PersistenceError as exc:
        warnings.append(VerificationWarning("state", exc.message))
    else:
        if loaded != record:
            warnings.append(VerificationWarning("state", f"{store.path} does not match the record just written"))
    return warnings

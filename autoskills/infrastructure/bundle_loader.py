"""Reads the resource declarations of a bundle.

The bundle may ship a `bundle.yaml` at its root; without one the historical
layout applies: `CLAUDE.md` copied as the configuration document plus the
`skills/` and `templates/` directories when present.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from autoskills.domain.errors import PreconditionError
from autoskills.domain.models import (
    PLACEMENT_MODES,
    RESOURCE_KINDS,
    PlacementMode,
    ResourceDescriptor,
)
from autoskills.infrastructure.path_contract import (
    BACKUPS_DIR_NAME,
    LOGS_DIR_NAME,
    STATE_FILE_NAME,
    PathContractError,
    safe_relative,
)

BUNDLE_MANIFEST_NAME = "bundle.yaml"
DEFAULT_CONFIG_DOCUMENT = "CLAUDE.md"
DEFAULT_CONFIG_NAME = "main-config"
DEFAULT_RESOURCE_DIRS = ("skills", "templates")
DEFAULT_PLACEMENT: PlacementMode = "reference"
RESERVED_TARGET_NAMES = frozenset({STATE_FILE_NAME, BACKUPS_DIR_NAME, LOGS_DIR_NAME})


class BundleManifestError(PreconditionError):
    pass


@dataclass(frozen=True)
class Bundle:
    source_root: Path
    config_document: str
    default_mode: PlacementMode
    version: str | None
    descriptors: tuple[ResourceDescriptor, ...]

    @property
    def config_document_path(self) -> Path:
        return self.source_root / self.config_document

    def names(self) -> tuple[str, ...]:
        return tuple(d.name for d in self.descriptors)


def _fail(message: str) -> BundleManifestError:
    return BundleManifestError(message, stage="preconditions")


def _read_manifest(path: Path) -> dict[str, Any]:
    try:
        doc = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise _fail(f"cannot read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise _fail(f"{path} is not valid YAML: {exc}") from exc
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise _fail(f"{path} must contain a mapping at top level")
    return doc


def _placement(value: Any, *, purpose: str) -> PlacementMode | None:
    if value is None:
        return None
    token = str(value).strip().lower()
    if token not in PLACEMENT_MODES:
        raise _fail(f"{purpose}: placement must be one of {PLACEMENT_MODES}, got {value!r}")
    return token  # type: ignore[return-value]


def _descriptor(raw: Any, *, source_root: Path, target_root: Path, index: int) -> ResourceDescriptor:
    purpose = f"resources[{index}]"
    if isinstance(raw, str):
        raw = {"source": raw}
    if not isinstance(raw, dict):
        raise _fail(f"{purpose}: expected a mapping or a path string")
    try:
        source_rel = safe_relative(str(raw.get("source", "")), purpose=f"{purpose}.source")
        target_rel = safe_relative(str(raw.get("target") or Path(source_rel).name), purpose=f"{purpose}.target")
    except PathContractError as exc:
        raise _fail(str(exc)) from exc
    if target_rel.split("/")[0] in RESERVED_TARGET_NAMES:
        raise _fail(f"{purpose}: target {target_rel!r} is reserved for installer bookkeeping")

    name = str(raw.get("name") or Path(source_rel).stem or source_rel).strip()
    kind = raw.get("kind")
    if kind is None:
        kind = "directory" if (source_root / source_rel).is_dir() else "file"
    if kind not in RESOURCE_KINDS:
        raise _fail(f"{purpose}: kind must be one of {RESOURCE_KINDS}, got {kind!r}")

    return ResourceDescriptor(
        name=name,
        source_relative_path=source_rel,
        target_path=target_root / target_rel,
        kind=kind,
        placement_override=_placement(raw.get("placement"), purpose=purpose),
    )


def _default_descriptors(source_root: Path, target_root: Path) -> list[ResourceDescriptor]:
    descriptors = [
        ResourceDescriptor(
            name=DEFAULT_CONFIG_NAME,
            source_relative_path=DEFAULT_CONFIG_DOCUMENT,
            target_path=target_root / DEFAULT_CONFIG_DOCUMENT,
            kind="file",
            placement_override="materialize",
        )
    ]
    for dirname in DEFAULT_RESOURCE_DIRS:
        if (source_root / dirname).is_dir():
            descriptors.append(
                ResourceDescriptor(
                    name=dirname,
                    source_relative_path=dirname,
                    target_path=target_root / dirname,
                    kind="directory",
                )
            )
    return descriptors


def load_bundle(source_root: Path, target_root: Path) -> Bundle:
    manifest_path = source_root / BUNDLE_MANIFEST_NAME
    if not manifest_path.is_file():
        return Bundle(
            source_root=source_root,
            config_document=DEFAULT_CONFIG_DOCUMENT,
            default_mode=DEFAULT_PLACEMENT,
            version=None,
            descriptors=tuple(_default_descriptors(source_root, target_root)),
        )

    doc = _read_manifest(manifest_path)
    try:
        config_document = safe_relative(
            str(doc.get("config_document") or DEFAULT_CONFIG_DOCUMENT), purpose="config_document"
        )
    except PathContractError as exc:
        raise _fail(str(exc)) from exc
    default_mode = _placement(doc.get("placement"), purpose="placement") or DEFAULT_PLACEMENT
    version = doc.get("version")
    version = str(version).strip() if version is not None and str(version).strip() else None

    raw_resources = doc.get("resources")
    if raw_resources is None:
        descriptors = _default_descriptors(source_root, target_root)
        descriptors[0] = ResourceDescriptor(
            name=DEFAULT_CONFIG_NAME,
            source_relative_path=config_document,
            target_path=target_root / Path(config_document).name,
            kind="file",
            placement_override="materialize",
        )
    elif isinstance(raw_resources, list):
        descriptors = [
            _descriptor(raw, source_root=source_root, target_root=target_root, index=i)
            for i, raw in enumerate(raw_resources)
        ]
        if not any(d.source_relative_path == config_document for d in descriptors):
            descriptors.insert(
                0,
                ResourceDescriptor(
                    name=DEFAULT_CONFIG_NAME,
                    source_relative_path=config_document,
                    target_path=target_root / Path(config_document).name,
                    kind="file",
                ),
            )
    else:
        raise _fail(f"{manifest_path}: resources must be a list")

    names: set[str] = set()
    targets: set[Path] = set()
    for d in descriptors:
        if d.name in names:
            raise _fail(f"duplicate resource name: {d.name}")
        if d.target_path in targets:
            raise _fail(f"two resources share the target {d.target_path}")
        names.add(d.name)
        targets.add(d.target_path)

    return Bundle(
        source_root=source_root,
        config_document=config_document,
        default_mode=default_mode,
        version=version,
        descriptors=tuple(descriptors),
    )

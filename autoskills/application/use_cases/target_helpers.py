from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import re
import sys
from typing import Iterable, Mapping

from autoskills.domain.errors import (
    AutoSkillsError,
    BackupError,
    PersistenceError,
    PlacementError,
    PreconditionError,
)
from autoskills.domain.models import (
    BackupSnapshot,
    InstallationRecord,
    NoBackupNeeded,
    PlacedResource,
    PlacementMode,
    ResourceDescriptor,
)
from autoskills.infrastructure.backup_manager import BackupManager
from autoskills.infrastructure.bundle_loader import Bundle
from autoskills.infrastructure.content_digest import source_digest
from autoskills.infrastructure.git_source import GitSource, RefreshError
from autoskills.infrastructure.path_contract import STATE_FILE_NAME
from autoskills.infrastructure.placement import PlacementStrategy, overlaps
from autoskills.infrastructure.state_store import StateStore

UNKNOWN_VERSION = "unknown"


def eprint(*args, **kwargs):
    print(*args, file=sys.stderr, **kwargs)


_STAGE_ERRORS: Mapping[str, type[AutoSkillsError]] = {
    "preconditions": PreconditionError,
    "refresh": RefreshError,
    "backup": BackupError,
    "placement": PlacementError,
    "remove": PlacementError,
    "restore": BackupError,
    "purge-source": PlacementError,
    "persist-state": PersistenceError,
    "verify": PersistenceError,
    "delete-state": PersistenceError,
}


@dataclass(frozen=True)
class TargetLayout:
    target_root: Path

    @property
    def state_path(self) -> Path:
        return self.target_root / STATE_FILE_NAME

    def state_store(self) -> StateStore:
        return StateStore(self.state_path)


def read_version_header(document: Path) -> str | None:
    """Version declared near the top of the configuration document.

    Accepts `Version: 1.2.3` inside a heading or a `version: 1.2.3` front-matter
    key within the first 40 lines.
    """
    if not document.is_file():
        return None
    semverish = re.compile(r"\b\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.-]+)?\b")
    try:
        with document.open("r", encoding="utf-8") as f:
            for _ in range(40):
                line = f.readline()
                if not line:
                    break
                m = re.search(r"^\s*version\s*:\s*(.+?)\s*$", line, flags=re.IGNORECASE)
                if m is None and line.lstrip().startswith("#") and "Version:" in line:
                    m = re.search(r"Version:\s*(.+?)\s*$", line)
                if m:
                    mm = semverish.search(m.group(1))
                    return mm.group(0) if mm else m.group(1).strip()
    except (OSError, UnicodeDecodeError):
        return None
    return None


def resolve_version_tag(bundle: Bundle, git: GitSource | None) -> str:
    if bundle.version:
        return bundle.version
    if git is not None and git.is_work_tree():
        described = git.describe()
        if described:
            return described
    return read_version_header(bundle.config_document_path) or UNKNOWN_VERSION


def check_bundle_sources(bundle: Bundle) -> None:
    """Fail before any mutation when the bundle cannot be placed as declared."""
    doc = bundle.config_document_path
    if not doc.is_file():
        raise PreconditionError(f"configuration document missing: {doc}", stage="preconditions")
    for d in bundle.descriptors:
        src = d.source_in(bundle.source_root)
        if not src.exists():
            raise PreconditionError(f"{d.name}: declared source missing: {src}", stage="preconditions")
        if d.kind == "directory" and not src.is_dir():
            raise PreconditionError(f"{d.name}: declared as directory but {src} is not one", stage="preconditions")
        if d.kind == "file" and src.is_dir():
            raise PreconditionError(f"{d.name}: declared as file but {src} is a directory", stage="preconditions")
        if overlaps(d.target_path, src):
            raise PreconditionError(f"{d.name}: target {d.target_path} overlaps its source", stage="preconditions")


def placed_resources(bundle: Bundle, default_mode: PlacementMode) -> dict[str, PlacedResource]:
    return {
        d.name: PlacedResource(
            target=d.target_path,
            mode=d.effective_mode(default_mode),
            digest=source_digest(d.source_in(bundle.source_root)),
        )
        for d in bundle.descriptors
    }


def recorded_descriptors(record: InstallationRecord, skip: Iterable[str] = ()) -> list[ResourceDescriptor]:
    """Descriptors rebuilt from the record, for resources the bundle no longer declares."""
    skipped = set(skip)
    out = []
    for name, placed in sorted(record.resources.items()):
        if name in skipped:
            continue
        out.append(
            ResourceDescriptor(
                name=name,
                source_relative_path="",
                target_path=placed.target,
                kind="directory" if placed.target.is_dir() else "file",
                placement_override=placed.mode,
            )
        )
    return out


def remove_stale(
    record: InstallationRecord,
    bundle: Bundle,
    backups: BackupManager,
    placement: PlacementStrategy,
) -> list[ResourceDescriptor]:
    """Remove managed placements of resources that were recorded but are no longer declared."""
    removed = []
    for d in recorded_descriptors(record, skip=bundle.names()):
        if backups.classify(d, record, bundle.source_root) == "managed":
            placement.remove(d)
            removed.append(d)
    return removed


def summarise(
    exc: BaseException,
    *,
    command: str,
    stage: str,
    snapshot: BackupSnapshot | NoBackupNeeded | None = None,
) -> AutoSkillsError:
    """Build the single error an orchestrator re-raises to its caller."""
    backup_path = snapshot.path if isinstance(snapshot, BackupSnapshot) else None
    if isinstance(exc, AutoSkillsError):
        cls: type[AutoSkillsError] = type(exc)
        message = exc.message
        stage = exc.stage or stage
        backup_path = exc.backup_path or backup_path
    else:
        cls = _STAGE_ERRORS.get(stage, PlacementError)
        message = f"{type(exc).__name__}: {exc}"
    return cls(f"{command} failed: {message}", stage=stage, backup_path=backup_path)

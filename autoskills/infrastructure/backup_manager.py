"""Snapshots of foreign target content, taken before any destructive placement.

Layout:

    <target_root>/.backups/backup-<YYYYmmdd-HHMMSS-ffffff>/
        snapshot.json
        files/<target path relative to target_root>

Snapshot ids sort lexicographically in creation order, so "latest" needs no
extra index.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
from pathlib import Path
import shutil
from typing import Callable, Iterable

from autoskills.domain.errors import BackupError
from autoskills.domain.models import (
    BackupSnapshot,
    CapturedEntry,
    InstallationRecord,
    NoBackupAvailable,
    NoBackupNeeded,
    NotInstalled,
    ResourceDescriptor,
    RestoredSnapshot,
    TargetState,
)
from autoskills.infrastructure.content_digest import content_digest
from autoskills.infrastructure.fs_atomic import atomic_write_json
from autoskills.infrastructure.path_contract import BACKUPS_DIR_NAME, is_within, real
from autoskills.infrastructure.placement import copy_entry, remove_entry

SNAPSHOT_SCHEMA = "autoskills.backup-snapshot.v1"
SNAPSHOT_PREFIX = "backup-"
SNAPSHOT_MANIFEST = "snapshot.json"
SNAPSHOT_FILES_DIR = "files"


def _utc_clock() -> datetime:
    return datetime.now(timezone.utc)


class BackupManager:
    def __init__(self, target_root: Path, *, clock: Callable[[], datetime] | None = None):
        self.target_root = target_root
        self.backups_root = target_root / BACKUPS_DIR_NAME
        self._clock = clock or _utc_clock

    def classify(
        self,
        descriptor: ResourceDescriptor,
        record: InstallationRecord | NotInstalled,
        source_path: Path,
    ) -> TargetState:
        target = descriptor.target_path
        if not target.is_symlink() and not target.exists():
            return "absent"

        known_sources = [source_path]
        if isinstance(record, InstallationRecord):
            known_sources.append(record.source_path)

        if target.is_symlink():
            resolved = real(target)
            if any(is_within(resolved, real(src)) for src in known_sources):
                return "managed"
            return "foreign"

        if isinstance(record, InstallationRecord):
            placed = record.resources.get(descriptor.name)
            if (
                placed is not None
                and placed.mode == "materialize"
                and placed.target == target
                and content_digest(target) == placed.digest
            ):
                return "managed"
        return "foreign"

    def capture_foreign(
        self,
        descriptors: Iterable[ResourceDescriptor],
        record: InstallationRecord | NotInstalled,
        source_path: Path,
    ) -> BackupSnapshot | NoBackupNeeded:
        try:
            foreign = [d for d in descriptors if self.classify(d, record, source_path) == "foreign"]
        except OSError as exc:
            raise BackupError(f"cannot inspect existing targets: {exc}", stage="backup") from exc
        if not foreign:
            return NoBackupNeeded()

        created = self._clock()
        snapshot_dir = self._reserve_snapshot_dir(created)
        captured: list[CapturedEntry] = []
        try:
            for descriptor in foreign:
                stored_as = self._stored_name(descriptor)
                copy_entry(descriptor.target_path, snapshot_dir / stored_as)
                captured.append(CapturedEntry(name=descriptor.name, target=descriptor.target_path, stored_as=stored_as))
            snapshot = BackupSnapshot(
                snapshot_id=snapshot_dir.name,
                created_at=created.isoformat(timespec="microseconds"),
                path=snapshot_dir,
                captured=tuple(captured),
            )
            atomic_write_json(snapshot_dir / SNAPSHOT_MANIFEST, _snapshot_payload(snapshot))
        except OSError as exc:
            shutil.rmtree(snapshot_dir, ignore_errors=True)
            raise BackupError(f"cannot back up existing content to {snapshot_dir}: {exc}", stage="backup") from exc
        return snapshot

    def list_snapshots(self) -> list[BackupSnapshot]:
        if not self.backups_root.is_dir():
            return []
        snapshots = []
        for child in sorted(self.backups_root.iterdir()):
            if not child.is_dir() or not child.name.startswith(SNAPSHOT_PREFIX):
                continue
            snapshot = _load_snapshot(child)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    def latest(self) -> BackupSnapshot | NoBackupAvailable:
        snapshots = self.list_snapshots()
        return snapshots[-1] if snapshots else NoBackupAvailable()

    def restore_latest(self) -> RestoredSnapshot | NoBackupAvailable:
        latest = self.latest()
        if isinstance(latest, NoBackupAvailable):
            return latest
        return self.restore(latest)

    def restore(self, snapshot: BackupSnapshot) -> RestoredSnapshot:
        """Copy every captured entry back over its target. The snapshot itself is kept."""
        restored: list[Path] = []
        for entry in snapshot.captured:
            stored = snapshot.path / entry.stored_as
            if not stored.is_symlink() and not stored.exists():
                raise BackupError(f"snapshot {snapshot.snapshot_id} is missing {entry.stored_as}", stage="restore", backup_path=snapshot.path)
            try:
                remove_entry(entry.target)
                copy_entry(stored, entry.target)
            except OSError as exc:
                raise BackupError(
                    f"cannot restore {entry.name} to {entry.target}: {exc}", stage="restore", backup_path=snapshot.path
                ) from exc
            restored.append(entry.target)
        return RestoredSnapshot(snapshot=snapshot, restored=tuple(restored))

    def _reserve_snapshot_dir(self, created: datetime) -> Path:
        try:
            self.backups_root.mkdir(parents=True, exist_ok=True)
            stamp = created
            while True:
                candidate = self.backups_root / f"{SNAPSHOT_PREFIX}{stamp.strftime('%Y%m%d-%H%M%S-%f')}"
                try:
                    candidate.mkdir()
                    return candidate
                except FileExistsError:
                    stamp = stamp + timedelta(microseconds=1)
        except OSError as exc:
            raise BackupError(f"cannot create snapshot directory under {self.backups_root}: {exc}", stage="backup") from exc

    def _stored_name(self, descriptor: ResourceDescriptor) -> str:
        target = descriptor.target_path
        if is_within(target, self.target_root) and target != self.target_root:
            rel = target.relative_to(self.target_root).as_posix()
        else:
            rel = descriptor.name
        return f"{SNAPSHOT_FILES_DIR}/{rel}"


def _snapshot_payload(snapshot: BackupSnapshot) -> dict:
    return {
        "schema": SNAPSHOT_SCHEMA,
        "snapshotId": snapshot.snapshot_id,
        "createdAt": snapshot.created_at,
        "captured": [
            {"name": e.name, "target": str(e.target), "storedAs": e.stored_as}
            for e in snapshot.captured
        ],
    }


def _load_snapshot(snapshot_dir: Path) -> BackupSnapshot | None:
    # directories without a readable manifest are incomplete captures, not snapshots
    manifest = snapshot_dir / SNAPSHOT_MANIFEST
    try:
        payload = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(payload, dict) or payload.get("schema") != SNAPSHOT_SCHEMA:
        return None
    captured = []
    for raw in payload.get("captured", []):
        if not isinstance(raw, dict):
            return None
        name, target, stored_as = raw.get("name"), raw.get("target"), raw.get("storedAs")
        if not all(isinstance(v, str) and v for v in (name, target, stored_as)):
            return None
        captured.append(CapturedEntry(name=name, target=Path(target), stored_as=stored_as))
    return BackupSnapshot(
        snapshot_id=snapshot_dir.name,
        created_at=str(payload.get("createdAt", "")),
        path=snapshot_dir,
        captured=tuple(captured),
    )

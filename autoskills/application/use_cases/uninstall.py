"""Remove an installation: every target the record lists, optionally restore the
latest install-time snapshot, optionally purge the bundle checkout, and finally
drop the installation record.

Recorded targets whose content no longer matches the record are copied into a
fresh snapshot before they go, so local edits can be recovered by hand.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import shutil
from typing import Callable

from autoskills.application.use_cases.target_helpers import (
    TargetLayout,
    eprint,
    recorded_descriptors,
    summarise,
)
from autoskills.domain.errors import AutoSkillsError, PreconditionError
from autoskills.domain.models import (
    BackupSnapshot,
    InstallationRecord,
    NoBackupAvailable,
    NoBackupNeeded,
    ResourceDescriptor,
    RestoredSnapshot,
    TargetState,
)
from autoskills.infrastructure.backup_manager import BackupManager
from autoskills.infrastructure.bundle_loader import BundleManifestError, load_bundle
from autoskills.infrastructure.path_contract import is_within, real
from autoskills.infrastructure.placement import PlacementStrategy


@dataclass(frozen=True)
class UninstallPlan:
    record: InstallationRecord
    targets: tuple[tuple[ResourceDescriptor, TargetState], ...]

    def is_recorded(self, descriptor: ResourceDescriptor) -> bool:
        placed = self.record.resources.get(descriptor.name)
        return placed is not None and placed.target == descriptor.target_path

    @property
    def removable(self) -> tuple[ResourceDescriptor, ...]:
        return tuple(
            d
            for d, state in self.targets
            if state == "managed" or (state == "foreign" and self.is_recorded(d))
        )

    @property
    def edited(self) -> tuple[ResourceDescriptor, ...]:
        """Recorded targets whose content was changed since placement."""
        return tuple(d for d, state in self.targets if state == "foreign" and self.is_recorded(d))

    @property
    def foreign(self) -> tuple[ResourceDescriptor, ...]:
        return tuple(d for d, state in self.targets if state == "foreign" and not self.is_recorded(d))


@dataclass(frozen=True)
class UninstallResult:
    removed: tuple[Path, ...]
    kept_foreign: tuple[Path, ...]
    snapshot: BackupSnapshot | NoBackupNeeded
    restored: RestoredSnapshot | NoBackupAvailable | None
    purged_source: Path | None


class Uninstaller:
    def __init__(self, target_root: Path, *, echo: Callable[[str], None] = print):
        self.layout = TargetLayout(target_root)
        self.store = self.layout.state_store()
        self.backups = BackupManager(target_root)
        self._echo = echo

    def plan(self) -> UninstallPlan:
        loaded = self.store.load()
        if not isinstance(loaded, InstallationRecord):
            raise PreconditionError("nothing to uninstall: no installation found", stage="preconditions")
        descriptors = self._descriptors(loaded)
        return UninstallPlan(
            record=loaded,
            targets=tuple((d, self.backups.classify(d, loaded, loaded.source_path)) for d in descriptors),
        )

    def run(self, *, restore_backup: bool = False, purge_source: bool = False) -> UninstallResult:
        stage = "preconditions"
        snapshot: BackupSnapshot | NoBackupNeeded | None = None
        try:
            plan = self.plan()
            record = plan.record
            if purge_source:
                self._check_purgeable(record.source_path)
            # picked before the edit capture below adds a newer snapshot
            install_snapshot = self.backups.latest() if restore_backup else NoBackupAvailable()

            stage = "backup"
            snapshot = self.backups.capture_foreign(plan.edited, record, record.source_path)
            if isinstance(snapshot, BackupSnapshot):
                self._echo(f"🗄️  Edited targets saved to {snapshot.path}")

            stage = "remove"
            placement = PlacementStrategy(record.source_path)
            removed = []
            for d in plan.removable:
                if placement.remove(d):
                    removed.append(d.target_path)
                    self._echo(f"  ✅ Removed: {d.target_path}")
            for d in plan.foreign:
                eprint(f"  ⚠️  Kept {d.target_path}: not placed by this installer")

            restored: RestoredSnapshot | NoBackupAvailable | None = None
            if restore_backup:
                stage = "restore"
                if isinstance(install_snapshot, BackupSnapshot):
                    restored = self.backups.restore(install_snapshot)
                    self._echo(f"♻️  Restored {len(restored.restored)} item(s) from {install_snapshot.snapshot_id}")
                else:
                    restored = install_snapshot
                    self._echo("ℹ️  No backup available to restore")

            purged: Path | None = None
            if purge_source:
                stage = "purge-source"
                purged = self._purge_source(record.source_path)

            stage = "delete-state"
            self.store.delete()
        except (AutoSkillsError, OSError) as exc:
            raise summarise(exc, command="uninstall", stage=stage, snapshot=snapshot) from exc

        self._echo("✅ Uninstall complete.")
        return UninstallResult(
            removed=tuple(removed),
            kept_foreign=tuple(d.target_path for d in plan.foreign),
            snapshot=snapshot,
            restored=restored,
            purged_source=purged,
        )

    def _descriptors(self, record: InstallationRecord) -> list[ResourceDescriptor]:
        declared: list[ResourceDescriptor] = []
        if record.source_path.is_dir():
            try:
                declared = list(load_bundle(record.source_path, self.layout.target_root).descriptors)
            except BundleManifestError as exc:
                eprint(f"  ⚠️  {exc.message}; falling back to the installation record")
        placed = record.resources
        same_target = {d.name for d in declared if d.name in placed and placed[d.name].target == d.target_path}
        return declared + recorded_descriptors(record, skip=same_target)

    def _check_purgeable(self, source: Path) -> None:
        if not source.exists():
            return
        resolved = real(source)
        home = real(Path.home())
        if is_within(home, resolved) or is_within(real(self.layout.target_root), resolved):
            raise PreconditionError(
                f"refusing to delete {source}: it contains the home or target directory", stage="preconditions"
            )

    def _purge_source(self, source: Path) -> Path | None:
        if not source.exists():
            self._echo(f"ℹ️  Source already gone: {source}")
            return None
        shutil.rmtree(real(source))
        self._echo(f"🗑️  Deleted source: {source}")
        return source

"""Install (or reinstall) a bundle into the target root.

Stages: preconditions -> backup -> placement -> persist-state -> verify.
Any failure after the backup stage rolls back the record written by this
attempt; captured snapshots are always kept for the next attempt.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

from autoskills.application.use_cases import verify
from autoskills.application.use_cases.target_helpers import (
    TargetLayout,
    check_bundle_sources,
    eprint,
    placed_resources,
    remove_stale,
    resolve_version_tag,
    summarise,
)
from autoskills.domain.errors import AutoSkillsError, PersistenceError, PreconditionError
from autoskills.domain.models import (
    PLACEMENT_MODES,
    BackupSnapshot,
    InstallationRecord,
    NoBackupNeeded,
    PlacementMode,
    VerificationWarning,
    utc_now,
)
from autoskills.infrastructure.backup_manager import BackupManager
from autoskills.infrastructure.bundle_loader import load_bundle
from autoskills.infrastructure.git_source import CommandRunner, GitSource
from autoskills.infrastructure.path_contract import PathContractError, normalize_absolute_path
from autoskills.infrastructure.placement import PlacementStrategy


@dataclass(frozen=True)
class InstallResult:
    record: InstallationRecord
    snapshot: BackupSnapshot | NoBackupNeeded
    warnings: tuple[VerificationWarning, ...]
    reinstall: bool


class Installer:
    def __init__(
        self,
        target_root: Path,
        *,
        git_runner: CommandRunner | None = None,
        clock: Callable[[], datetime] | None = None,
        echo: Callable[[str], None] = print,
    ):
        self.layout = TargetLayout(target_root)
        self.store = self.layout.state_store()
        self.backups = BackupManager(target_root, clock=clock)
        self._git_runner = git_runner
        self._echo = echo

    def run(self, source_dir: Path, mode: PlacementMode | None = None) -> InstallResult:
        stage = "preconditions"
        snapshot: BackupSnapshot | NoBackupNeeded | None = None
        wrote_record = False
        try:
            try:
                source = normalize_absolute_path(Path(source_dir).expanduser().resolve(), purpose="source_dir")
            except PathContractError as exc:
                raise PreconditionError(str(exc), stage=stage) from exc
            if not source.is_dir():
                raise PreconditionError(f"source directory not found: {source}", stage=stage)
            if mode is not None and mode not in PLACEMENT_MODES:
                raise PreconditionError(f"placement mode must be one of {PLACEMENT_MODES}, got {mode!r}", stage=stage)
            bundle = load_bundle(source, self.layout.target_root)
            check_bundle_sources(bundle)
            previous = self.store.load()
            reinstall = isinstance(previous, InstallationRecord)
            if mode is None:
                mode = previous.placement_mode if isinstance(previous, InstallationRecord) else bundle.default_mode
            version = resolve_version_tag(bundle, GitSource(source, self._git_runner))
            self._echo(f"📁 Source: {source}")
            self._echo(f"📁 Target: {self.layout.target_root}")
            self._echo(f"🔁 Reinstall over {previous.version_tag}" if isinstance(previous, InstallationRecord) else "🆕 Fresh install")

            stage = "backup"
            snapshot = self.backups.capture_foreign(bundle.descriptors, previous, source)
            if isinstance(snapshot, BackupSnapshot):
                self._echo(f"🗄️  Backup created: {snapshot.path} ({', '.join(snapshot.captured_names)})")
            else:
                self._echo("ℹ️  No foreign content to back up")

            stage = "placement"
            placement = PlacementStrategy(source)
            if isinstance(previous, InstallationRecord):
                for stale in remove_stale(previous, bundle, self.backups, placement):
                    self._echo(f"  🧹 {stale.name} removed (no longer declared)")
            for d in bundle.descriptors:
                effective = d.effective_mode(mode)
                placement.apply(d, effective)
                self._echo(f"  ✅ {d.name} -> {d.target_path} ({effective})")

            stage = "persist-state"
            now = utc_now()
            record = InstallationRecord(
                source_path=source,
                version_tag=version,
                placement_mode=mode,
                installed_at=previous.installed_at if isinstance(previous, InstallationRecord) else now,
                updated_at=now,
                resources=placed_resources(bundle, mode),
            )
            self.store.save(record)
            wrote_record = True

            stage = "verify"
            warnings = tuple(verify.check(record, bundle.descriptors, self.store))
            for w in warnings:
                eprint(f"  ⚠️  {w}")
        except (AutoSkillsError, OSError) as exc:
            if wrote_record:
                self._rollback()
            raise summarise(exc, command="install", stage=stage, snapshot=snapshot) from exc

        self._echo(f"🎉 Installed {version} ({mode})")
        return InstallResult(record=record, snapshot=snapshot, warnings=warnings, reinstall=reinstall)

    def _rollback(self) -> None:
        try:
            self.store.delete()
        except PersistenceError as exc:
            eprint(f"  ❌ Rollback could not remove the installation record: {exc.message}")

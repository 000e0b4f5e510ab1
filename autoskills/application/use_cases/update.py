"""Refresh an existing installation from its git checkout."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
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
from autoskills.domain.errors import AutoSkillsError, LocalChangesError, PersistenceError, PreconditionError
from autoskills.domain.models import (
    BackupSnapshot,
    ChangeReport,
    InstallationRecord,
    LocalChangesResolution,
    NoBackupNeeded,
    VerificationWarning,
    utc_now,
)
from autoskills.infrastructure.backup_manager import BackupManager
from autoskills.infrastructure.bundle_loader import Bundle, load_bundle
from autoskills.infrastructure.git_source import CommandRunner, GitSource
from autoskills.infrastructure.placement import PlacementStrategy


@dataclass(frozen=True)
class UpdateResult:
    record: InstallationRecord
    report: ChangeReport
    snapshot: BackupSnapshot | NoBackupNeeded
    warnings: tuple[VerificationWarning, ...]
    local_changes: LocalChangesResolution | None


def build_change_report(
    previous: InstallationRecord,
    current: InstallationRecord,
    *,
    old_revision: str = "",
    new_revision: str = "",
) -> ChangeReport:
    before = previous.resources
    after = current.resources
    return ChangeReport(
        old_version=previous.version_tag,
        new_version=current.version_tag,
        old_revision=old_revision,
        new_revision=new_revision,
        added=tuple(sorted(set(after) - set(before))),
        removed=tuple(sorted(set(before) - set(after))),
        changed=tuple(sorted(n for n in set(before) & set(after) if before[n].digest != after[n].digest)),
    )


class Updater:
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
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._echo = echo

    def run(
        self,
        *,
        on_local_changes: LocalChangesResolution | None = None,
        remote: str | None = None,
        branch: str | None = None,
    ) -> UpdateResult:
        stage = "preconditions"
        snapshot: BackupSnapshot | NoBackupNeeded | None = None
        previous: InstallationRecord | None = None
        wrote_record = False
        resolution: LocalChangesResolution | None = None
        try:
            loaded = self.store.load()
            if not isinstance(loaded, InstallationRecord):
                raise PreconditionError("nothing to update: no installation found, run install first", stage=stage)
            previous = loaded
            source = previous.source_path
            if not source.is_dir():
                raise PreconditionError(f"installed source directory is gone: {source}", stage=stage)
            git = GitSource(source, self._git_runner)
            if not git.is_work_tree():
                raise PreconditionError(f"{source} is not a git checkout; cannot pull updates", stage=stage)
            self._echo(f"📦 Installed version: {previous.version_tag}")

            stage = "refresh"
            if git.has_local_changes():
                resolution = self._resolve_local_changes(git, on_local_changes)
            old_revision = git.revision()
            git.pull(remote, branch)
            new_revision = git.revision()
            self._echo(f"⬇️  Pulled {old_revision[:12] or '?'} -> {new_revision[:12] or '?'}")

            stage = "preconditions"
            bundle = load_bundle(source, self.layout.target_root)
            check_bundle_sources(bundle)
            version = resolve_version_tag(bundle, git)

            stage = "backup"
            snapshot = self.backups.capture_foreign(bundle.descriptors, previous, source)
            if isinstance(snapshot, BackupSnapshot):
                self._echo(f"🗄️  Backup created: {snapshot.path} ({', '.join(snapshot.captured_names)})")

            stage = "placement"
            self._place(bundle, previous)

            stage = "persist-state"
            record = InstallationRecord(
                source_path=source,
                version_tag=version,
                placement_mode=previous.placement_mode,
                installed_at=previous.installed_at,
                updated_at=utc_now(),
                resources=placed_resources(bundle, previous.placement_mode),
            )
            self.store.save(record)
            wrote_record = True

            stage = "verify"
            warnings = tuple(verify.check(record, bundle.descriptors, self.store))
            for w in warnings:
                eprint(f"  ⚠️  {w}")
        except (AutoSkillsError, OSError) as exc:
            if wrote_record and previous is not None:
                self._rollback(previous)
            raise summarise(exc, command="update", stage=stage, snapshot=snapshot) from exc

        report = build_change_report(previous, record, old_revision=old_revision, new_revision=new_revision)
        self._echo(f"🎉 Updated {report.old_version} -> {report.new_version}")
        return UpdateResult(record=record, report=report, snapshot=snapshot, warnings=warnings, local_changes=resolution)

    def _resolve_local_changes(
        self, git: GitSource, choice: LocalChangesResolution | None
    ) -> LocalChangesResolution:
        if choice is None:
            raise LocalChangesError(
                f"{git.repo} has uncommitted changes; choose commit, stash or abort",
                stage="refresh",
            )
        if choice == "abort":
            raise LocalChangesError(f"update aborted: {git.repo} has uncommitted changes", stage="refresh")
        stamp = self._clock().strftime("%Y%m%d-%H%M%S")
        if choice == "commit":
            git.commit_all(f"Local changes saved before update {stamp}")
            self._echo("💾 Local changes committed")
        else:
            git.stash(f"autoskills-update-{stamp}")
            self._echo(f"💾 Local changes stashed as autoskills-update-{stamp}")
        return choice

    def _place(self, bundle: Bundle, previous: InstallationRecord) -> None:
        placement = PlacementStrategy(bundle.source_root)
        for stale in remove_stale(previous, bundle, self.backups, placement):
            self._echo(f"  🧹 {stale.name} removed (no longer declared)")
        for d in bundle.descriptors:
            effective = d.effective_mode(previous.placement_mode)
            placement.apply(d, effective)
            self._echo(f"  ✅ {d.name} ({effective})")

    def _rollback(self, previous: InstallationRecord) -> None:
        try:
            self.store.save(previous)
        except PersistenceError as exc:
            eprint(f"  ❌ Rollback could not restore the previous installation record: {exc.message}")

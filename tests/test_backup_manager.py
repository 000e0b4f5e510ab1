from __future__ import annotations

from datetime import datetime, timezone
import os
from pathlib import Path

import pytest

from autoskills.domain.models import (
    NOT_INSTALLED,
    BackupSnapshot,
    InstallationRecord,
    NoBackupAvailable,
    NoBackupNeeded,
    PlacedResource,
    ResourceDescriptor,
    RestoredSnapshot,
)
from autoskills.infrastructure.backup_manager import BackupManager
from autoskills.infrastructure.content_digest import content_digest, source_digest

from .util import fixed_clock


def _descriptors(target_root: Path) -> list[ResourceDescriptor]:
    return [
        ResourceDescriptor("main-config", "CLAUDE.md", target_root / "CLAUDE.md", "file", "materialize"),
        ResourceDescriptor("skills", "skills", target_root / "skills", "directory"),
    ]


def _user_content(target_root: Path) -> None:
    (target_root / "skills" / "mine").mkdir(parents=True)
    (target_root / "skills" / "mine" / "SKILL.md").write_bytes(b"my skill\r\n\x00binary-ish")
    (target_root / "CLAUDE.md").write_text("my own rules\n", encoding="utf-8")


@pytest.mark.unit
def test_absent_targets_need_no_backup(make_bundle, target_root: Path):
    source = make_bundle()
    manager = BackupManager(target_root, clock=fixed_clock())
    assert manager.capture_foreign(_descriptors(target_root), NOT_INSTALLED, source) == NoBackupNeeded()
    assert not (target_root / ".backups").exists()
    assert isinstance(manager.latest(), NoBackupAvailable)


@pytest.mark.unit
def test_foreign_content_is_captured_byte_for_byte(make_bundle, target_root: Path):
    source = make_bundle()
    _user_content(target_root)
    before = {name: content_digest(target_root / name) for name in ("CLAUDE.md", "skills")}

    snapshot = BackupManager(target_root, clock=fixed_clock()).capture_foreign(_descriptors(target_root), NOT_INSTALLED, source)

    assert isinstance(snapshot, BackupSnapshot)
    assert snapshot.snapshot_id == "backup-20260102-030405-000000"
    assert snapshot.captured_names == ("main-config", "skills")
    assert (snapshot.path / "snapshot.json").is_file()
    for entry in snapshot.captured:
        stored = snapshot.path / entry.stored_as
        assert content_digest(stored) == before[entry.target.name]
    # capturing never mutates the targets
    assert {name: content_digest(target_root / name) for name in ("CLAUDE.md", "skills")} == before


@pytest.mark.unit
def test_link_into_source_is_managed_and_link_elsewhere_is_foreign(make_bundle, target_root: Path, tmp_path: Path):
    source = make_bundle()
    other = tmp_path / "someone-elses-skills"
    other.mkdir()
    target_root.mkdir()
    manager = BackupManager(target_root)
    skills = _descriptors(target_root)[1]

    os.symlink(source / "skills", target_root / "skills")
    assert manager.classify(skills, NOT_INSTALLED, source) == "managed"

    (target_root / "skills").unlink()
    os.symlink(other, target_root / "skills")
    assert manager.classify(skills, NOT_INSTALLED, source) == "foreign"

    snapshot = manager.capture_foreign([skills], NOT_INSTALLED, source)
    assert isinstance(snapshot, BackupSnapshot)
    stored = snapshot.path / snapshot.captured[0].stored_as
    assert stored.is_symlink()
    assert Path(os.readlink(stored)) == other


@pytest.mark.unit
def test_recorded_copy_is_managed_until_edited(make_bundle, target_root: Path):
    source = make_bundle()
    target_root.mkdir()
    doc = _descriptors(target_root)[0]
    (target_root / "CLAUDE.md").write_bytes((source / "CLAUDE.md").read_bytes())
    record = InstallationRecord(
        source_path=source,
        version_tag="1.0.0",
        placement_mode="reference",
        installed_at="2026-01-02T03:04:05+00:00",
        updated_at="2026-01-02T03:04:05+00:00",
        resources={"main-config": PlacedResource(target_root / "CLAUDE.md", "materialize", source_digest(source / "CLAUDE.md"))},
    )
    manager = BackupManager(target_root)
    assert manager.classify(doc, record, source) == "managed"
    assert manager.classify(doc, NOT_INSTALLED, source) == "foreign"

    (target_root / "CLAUDE.md").write_text("hand edited\n", encoding="utf-8")
    assert manager.classify(doc, record, source) == "foreign"


@pytest.mark.unit
def test_latest_is_the_most_recent_snapshot(make_bundle, target_root: Path):
    source = make_bundle()
    doc = _descriptors(target_root)[0]
    target_root.mkdir()

    (target_root / "CLAUDE.md").write_text("first\n", encoding="utf-8")
    BackupManager(target_root, clock=lambda: datetime(2026, 3, 1, tzinfo=timezone.utc)).capture_foreign([doc], NOT_INSTALLED, source)
    (target_root / "CLAUDE.md").write_text("second\n", encoding="utf-8")
    BackupManager(target_root, clock=lambda: datetime(2026, 3, 2, tzinfo=timezone.utc)).capture_foreign([doc], NOT_INSTALLED, source)

    manager = BackupManager(target_root)
    assert [s.snapshot_id for s in manager.list_snapshots()] == [
        "backup-20260301-000000-000000",
        "backup-20260302-000000-000000",
    ]
    latest = manager.latest()
    assert isinstance(latest, BackupSnapshot)
    assert (latest.path / latest.captured[0].stored_as).read_text(encoding="utf-8") == "second\n"


@pytest.mark.unit
def test_same_instant_captures_get_distinct_ids(make_bundle, target_root: Path):
    source = make_bundle()
    doc = _descriptors(target_root)[0]
    target_root.mkdir()
    (target_root / "CLAUDE.md").write_text("mine\n", encoding="utf-8")
    same = lambda: datetime(2026, 3, 1, tzinfo=timezone.utc)  # noqa: E731

    first = BackupManager(target_root, clock=same).capture_foreign([doc], NOT_INSTALLED, source)
    second = BackupManager(target_root, clock=same).capture_foreign([doc], NOT_INSTALLED, source)
    assert isinstance(first, BackupSnapshot) and isinstance(second, BackupSnapshot)
    assert first.snapshot_id != second.snapshot_id
    assert len(BackupManager(target_root).list_snapshots()) == 2


@pytest.mark.unit
def test_incomplete_snapshot_directories_are_ignored(target_root: Path):
    (target_root / ".backups" / "backup-20990101-000000-000000" / "files").mkdir(parents=True)
    assert isinstance(BackupManager(target_root).latest(), NoBackupAvailable)


@pytest.mark.unit
def test_restore_latest_is_repeatable(make_bundle, target_root: Path):
    source = make_bundle()
    _user_content(target_root)
    before = {name: content_digest(target_root / name) for name in ("CLAUDE.md", "skills")}
    manager = BackupManager(target_root, clock=fixed_clock())
    manager.capture_foreign(_descriptors(target_root), NOT_INSTALLED, source)

    (target_root / "CLAUDE.md").write_text("bundle content\n", encoding="utf-8")
    (target_root / "skills" / "mine" / "SKILL.md").unlink()

    for _ in range(2):
        restored = manager.restore_latest()
        assert isinstance(restored, RestoredSnapshot)
        assert set(restored.restored) == {target_root / "CLAUDE.md", target_root / "skills"}
        assert {name: content_digest(target_root / name) for name in ("CLAUDE.md", "skills")} == before


@pytest.mark.unit
def test_restore_without_snapshots_reports_nothing_available(target_root: Path):
    assert isinstance(BackupManager(target_root).restore_latest(), NoBackupAvailable)

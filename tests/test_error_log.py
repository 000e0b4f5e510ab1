from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
from pathlib import Path

import pytest

from autoskills.domain.errors import BackupError
from autoskills.infrastructure.error_log import prune_old_logs, record_error


@pytest.mark.unit
def test_record_error_writes_one_event_per_file(tmp_path: Path):
    err = BackupError("cannot copy", stage="backup", backup_path=tmp_path / ".backups" / "backup-x")
    try:
        raise err from OSError(28, "No space left on device")
    except BackupError as exc:
        first = record_error(tmp_path, command="install", error=exc, env={})
        second = record_error(tmp_path, command="install", error=exc, env={})

    assert first is not None and second is not None and first != second
    event = json.loads(first.read_text(encoding="utf-8"))
    assert event["command"] == "install"
    assert event["errorType"] == "BackupError"
    assert event["stage"] == "backup"
    assert event["exitCode"] == 3
    assert event["backupPath"].endswith("backup-x")
    assert event["cause"].startswith("OSError")


@pytest.mark.unit
def test_record_error_can_be_disabled(tmp_path: Path):
    assert record_error(tmp_path, command="update", error=RuntimeError("x"), env={"AUTOSKILLS_DISABLE_ERROR_LOG": "1"}) is None
    assert not (tmp_path / "logs").exists()


@pytest.mark.unit
def test_prune_removes_only_expired_error_logs(tmp_path: Path):
    logs = tmp_path / "logs"
    logs.mkdir()
    today = datetime.now(timezone.utc).date()
    old = logs / f"errors-{(today - timedelta(days=45)).isoformat()}-deadbeef.jsonl"
    recent = logs / f"errors-{today.isoformat()}-cafebabe.jsonl"
    other = logs / "notes.txt"
    for p in (old, recent, other):
        p.write_text("{}\n", encoding="utf-8")

    assert prune_old_logs(logs, keep_days=30) == 1
    assert not old.exists()
    assert recent.exists() and other.exists()

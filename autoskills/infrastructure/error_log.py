"""Per-event JSONL error records under <target_root>/logs.

One file per event (no appends), written atomically. Recording is fail-soft:
an error that cannot be logged must never replace the error being reported.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
import json
import os
from pathlib import Path
import re
from typing import Mapping
import uuid

from autoskills.domain.errors import AutoSkillsError
from autoskills.infrastructure.fs_atomic import atomic_write_bytes
from autoskills.infrastructure.path_contract import LOGS_DIR_NAME

DEFAULT_RETENTION_DAYS = 30
ENV_DISABLE = "AUTOSKILLS_DISABLE_ERROR_LOG"

_LOG_NAME = re.compile(r"^errors-(\d{4}-\d{2}-\d{2})-[A-Fa-f0-9]{8,64}\.jsonl$")


def logging_disabled(env: Mapping[str, str] | None = None) -> bool:
    environ = os.environ if env is None else env
    return str(environ.get(ENV_DISABLE, "")).strip() == "1"


def _log_date(name: str) -> date | None:
    m = _LOG_NAME.match(name)
    if not m:
        return None
    try:
        return datetime.strptime(m.group(1), "%Y-%m-%d").date()
    except ValueError:
        return None


def prune_old_logs(log_dir: Path, keep_days: int = DEFAULT_RETENTION_DAYS) -> int:
    if keep_days <= 0 or not log_dir.is_dir():
        return 0
    cutoff = datetime.now(timezone.utc).date() - timedelta(days=keep_days)
    removed = 0
    for p in log_dir.glob("errors-*.jsonl"):
        d = _log_date(p.name)
        if d is not None and d < cutoff:
            try:
                p.unlink()
                removed += 1
            except OSError:
                continue
    return removed


def record_error(
    target_root: Path,
    *,
    command: str,
    error: BaseException,
    env: Mapping[str, str] | None = None,
) -> Path | None:
    if logging_disabled(env):
        return None
    now = datetime.now(timezone.utc)
    event = {
        "timestamp": now.isoformat(timespec="seconds"),
        "command": command,
        "errorType": type(error).__name__,
        "message": str(error),
    }
    if isinstance(error, AutoSkillsError):
        event["stage"] = error.stage
        event["backupPath"] = str(error.backup_path) if error.backup_path is not None else None
        event["exitCode"] = error.exit_code
    cause = error.__cause__
    if cause is not None:
        event["cause"] = f"{type(cause).__name__}: {cause}"

    log_dir = target_root / LOGS_DIR_NAME
    log_file = log_dir / f"errors-{now.date().isoformat()}-{uuid.uuid4().hex}.jsonl"
    try:
        atomic_write_bytes(log_file, (json.dumps(event, ensure_ascii=True, sort_keys=True) + "\n").encode("utf-8"))
        prune_old_logs(log_dir)
    except OSError:
        return None
    return log_file

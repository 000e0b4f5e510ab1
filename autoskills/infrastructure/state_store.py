from __future__ import annotations

import json
from pathlib import Path

from autoskills.domain.errors import PersistenceError
from autoskills.domain.models import NOT_INSTALLED, InstallationRecord, NotInstalled
from autoskills.infrastructure.fs_atomic import atomic_write_json


class StateStore:
    """Persists the single InstallationRecord.

    `load` returns either a fully valid record or NOT_INSTALLED. A file that
    exists but cannot be parsed is reported as a PersistenceError instead of
    being mistaken for "not installed"; it is meant to be hand-repaired.
    """

    def __init__(self, path: Path):
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> InstallationRecord | NotInstalled:
        if not self.path.exists():
            return NOT_INSTALLED
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"cannot read installation record {self.path}: {exc}", stage="load-state") from exc
        try:
            return InstallationRecord.from_payload(payload)
        except ValueError as exc:
            raise PersistenceError(
                f"installation record {self.path} is invalid: {exc}; fix or delete the file",
                stage="load-state",
            ) from exc

    def save(self, record: InstallationRecord) -> None:
        if not record.source_path.is_dir():
            raise PersistenceError(f"source path does not exist: {record.source_path}", stage="persist-state")
        try:
            atomic_write_json(self.path, record.to_payload())
        except OSError as exc:
            raise PersistenceError(f"cannot write installation record {self.path}: {exc}", stage="persist-state") from exc

    def delete(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"cannot remove installation record {self.path}: {exc}", stage="delete-state") from exc

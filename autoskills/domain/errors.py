"""Error taxonomy for install/update/uninstall orchestration.

Every terminal error carries the stage that failed and, where one exists,
the snapshot directory that holds recoverable content.
"""

from __future__ import annotations

from pathlib import Path


class AutoSkillsError(Exception):
    exit_code = 1

    def __init__(self, message: str, *, stage: str = "", backup_path: Path | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.backup_path = backup_path

    def summary(self) -> str:
        parts = []
        if self.stage:
            parts.append(f"[{self.stage}]")
        parts.append(self.message)
        if self.backup_path is not None:
            parts.append(f"(backup left at {self.backup_path})")
        return " ".join(parts)


class PreconditionError(AutoSkillsError):
    """Missing source, missing prior install, or refused input. Nothing was mutated."""

    exit_code = 2


class LocalChangesError(PreconditionError):
    """Source checkout has uncommitted edits and no resolution allows continuing."""


class BackupError(AutoSkillsError):
    exit_code = 3


class PlacementError(AutoSkillsError):
    exit_code = 4


class PersistenceError(AutoSkillsError):
    exit_code = 5


class UserCancelled(AutoSkillsError):
    exit_code = 1

"""Git gateway for the bundle checkout.

All git calls go through a CommandRunner so tests can substitute a scripted
runner; the default runs the `git` binary via subprocess.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import subprocess
from typing import Protocol, Sequence

from autoskills.domain.errors import PreconditionError


class RefreshError(PreconditionError):
    """The bundle checkout could not be brought up to date. Targets were not touched."""


@dataclass(frozen=True)
class ExecResult:
    exit_code: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    def exec_argv(self, argv: Sequence[str], *, cwd: Path, timeout_seconds: int = 120) -> ExecResult:
        ...


@dataclass(frozen=True)
class SubprocessRunner:
    def exec_argv(self, argv: Sequence[str], *, cwd: Path, timeout_seconds: int = 120) -> ExecResult:
        try:
            proc = subprocess.run(
                list(argv),
                cwd=str(cwd),
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=False,
                timeout=timeout_seconds,
            )
        except FileNotFoundError:
            return ExecResult(exit_code=127, stdout="", stderr=f"{argv[0]}: command not found")
        except subprocess.TimeoutExpired:
            return ExecResult(exit_code=124, stdout="", stderr=f"{argv[0]}: timed out after {timeout_seconds}s")
        return ExecResult(exit_code=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")


class GitSource:
    def __init__(self, repo: Path, runner: CommandRunner | None = None):
        self.repo = repo
        self.runner = runner or SubprocessRunner()

    def _git(self, *args: str) -> ExecResult:
        argv = ("git", "-c", "core.quotePath=false", "-C", str(self.repo), *args)
        return self.runner.exec_argv(argv, cwd=self.repo)

    def _checked(self, *args: str) -> str:
        res = self._git(*args)
        if res.exit_code != 0:
            detail = (res.stderr or res.stdout).strip() or f"exit code {res.exit_code}"
            raise RefreshError(f"git {' '.join(args)} failed in {self.repo}: {detail}", stage="refresh")
        return res.stdout

    def is_work_tree(self) -> bool:
        res = self._git("rev-parse", "--is-inside-work-tree")
        return res.exit_code == 0 and res.stdout.strip() == "true"

    def has_local_changes(self) -> bool:
        return bool(self._checked("status", "--porcelain").strip())

    def revision(self) -> str:
        res = self._git("rev-parse", "HEAD")
        return res.stdout.strip() if res.exit_code == 0 else ""

    def describe(self) -> str | None:
        res = self._git("describe", "--tags", "--always", "--dirty")
        if res.exit_code != 0:
            return None
        return res.stdout.strip() or None

    def commit_all(self, message: str) -> None:
        self._checked("add", "--all")
        self._checked("commit", "--quiet", "-m", message)

    def stash(self, message: str) -> None:
        self._checked("stash", "push", "--include-untracked", "-m", message)

    def pull(self, remote: str | None = None, branch: str | None = None) -> None:
        args = ["pull", "--ff-only"]
        if remote:
            args.append(remote)
            if branch:
                args.append(branch)
        self._checked(*args)

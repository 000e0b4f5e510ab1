from __future__ import annotations

from datetime import datetime, timedelta, timezone
import os
import subprocess
import sys
from pathlib import Path
from typing import Callable, Sequence

from autoskills.infrastructure.git_source import ExecResult

REPO_ROOT = Path(__file__).resolve().parents[1]


def run(cmd: list[str], *, env: dict[str, str] | None = None, cwd: Path | None = None) -> subprocess.CompletedProcess:
    e = os.environ.copy()
    e.pop("CLAUDE_CONFIG_DIR", None)
    if env:
        e.update(env)
    return subprocess.run(
        cmd,
        cwd=str(cwd or REPO_ROOT),
        env=e,
        text=True,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        check=False,
    )


def run_cli(args: list[str], *, env: dict[str, str] | None = None) -> subprocess.CompletedProcess:
    # Always use the current interpreter (matrix python-version).
    return run([sys.executable, "-X", "utf8", "-m", "autoskills", *args], env=env)


def run_install_script(args: list[str], *, env: dict[str, str] | None = None) -> subprocess.CompletedProcess:
    return run([sys.executable, "-X", "utf8", "install.py", *args], env=env)


def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def snapshot_dirs(target_root: Path) -> list[Path]:
    backups = target_root / ".backups"
    if not backups.is_dir():
        return []
    return sorted(p for p in backups.iterdir() if p.is_dir())


REV_A = "a" * 40
REV_B = "b" * 40


def fixed_clock(start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> Callable[[], datetime]:
    current = [start or datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)]

    def _tick() -> datetime:
        value = current[0]
        current[0] = value + step
        return value

    return _tick


class FakeGit:
    """Scripted stand-in for the git binary.

    Records every argv (without the `git -c ... -C <repo>` prefix) and answers
    the handful of commands the updater issues.
    """

    def __init__(
        self,
        *,
        dirty: bool = False,
        on_pull: Callable[[], None] | None = None,
        pull_error: str | None = None,
        work_tree: bool = True,
        describe: str | None = None,
    ):
        self.dirty = dirty
        self.on_pull = on_pull
        self.pull_error = pull_error
        self.work_tree = work_tree
        self.describe = describe
        self.head = REV_A
        self.calls: list[tuple[str, ...]] = []

    def exec_argv(self, argv: Sequence[str], *, cwd: Path, timeout_seconds: int = 120) -> ExecResult:
        args = tuple(argv[5:])
        self.calls.append(args)
        if args == ("rev-parse", "--is-inside-work-tree"):
            if not self.work_tree:
                return ExecResult(128, "", "fatal: not a git repository")
            return ExecResult(0, "true\n", "")
        if args == ("status", "--porcelain"):
            return ExecResult(0, " M CLAUDE.md\n" if self.dirty else "", "")
        if args == ("rev-parse", "HEAD"):
            return ExecResult(0, self.head + "\n", "")
        if args[:1] == ("describe",):
            if self.describe is None:
                return ExecResult(128, "", "fatal: no names found")
            return ExecResult(0, self.describe + "\n", "")
        if args[:1] == ("pull",):
            if self.pull_error is not None:
                return ExecResult(1, "", self.pull_error)
            if self.on_pull is not None:
                self.on_pull()
            self.head = REV_B
            return ExecResult(0, "Fast-forward\n", "")
        if args[:1] in (("add",), ("commit",), ("stash",)):
            if args[:1] != ("add",):
                self.dirty = False
            return ExecResult(0, "", "")
        return ExecResult(1, "", f"unexpected git call: {args}")

    def called(self, *prefix: str) -> bool:
        return any(c[: len(prefix)] == prefix for c in self.calls)

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath
from typing import Mapping


class PathContractError(Exception):
    pass


class NotAbsoluteError(PathContractError):
    pass


class EscapesRootError(PathContractError):
    pass


ENV_TARGET_ROOT = "CLAUDE_CONFIG_DIR"
STATE_FILE_NAME = ".skills-config.json"
BACKUPS_DIR_NAME = ".backups"
LOGS_DIR_NAME = "logs"


def normalize_absolute_path(raw: str | os.PathLike[str], *, purpose: str) -> Path:
    token = str(raw or "").strip()
    if not token:
        raise NotAbsoluteError(f"{purpose}: empty path")
    candidate = Path(token).expanduser()
    if not candidate.is_absolute():
        raise NotAbsoluteError(f"{purpose}: path must be absolute")
    return Path(os.path.normpath(os.path.abspath(str(candidate))))


def default_target_root(home: Path | None = None) -> Path:
    base = home if home is not None else Path.home()
    return Path(os.path.normpath(os.path.abspath(str(base.expanduser() / ".claude"))))


def resolve_target_root(explicit: Path | None = None, env: Mapping[str, str] | None = None) -> Path:
    """Resolve where resources get placed.

    Precedence: explicit override, then CLAUDE_CONFIG_DIR, then ~/.claude.
    Relative values are resolved against the current directory for the explicit
    flag only; a relative environment value is ignored.
    """
    if explicit is not None:
        return Path(os.path.normpath(os.path.abspath(str(Path(explicit).expanduser()))))
    environ = os.environ if env is None else env
    raw = str(environ.get(ENV_TARGET_ROOT, "")).strip()
    if raw:
        try:
            return normalize_absolute_path(raw, purpose=f"env:{ENV_TARGET_ROOT}")
        except PathContractError:
            pass
    return default_target_root()


def safe_relative(raw: str, *, purpose: str) -> str:
    """Validate a bundle-relative path: no absolute paths, no `..` segments."""
    token = str(raw or "").strip().replace("\\", "/")
    if not token:
        raise PathContractError(f"{purpose}: empty path")
    pure = PurePosixPath(token)
    if pure.is_absolute() or (len(token) > 1 and token[1] == ":"):
        raise EscapesRootError(f"{purpose}: must be relative, got {raw!r}")
    if ".." in pure.parts:
        raise EscapesRootError(f"{purpose}: must not contain '..', got {raw!r}")
    parts = [p for p in pure.parts if p not in ("", ".")]
    if not parts:
        raise PathContractError(f"{purpose}: empty path")
    return "/".join(parts)


def is_within(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True


def real(path: Path) -> Path:
    return Path(os.path.realpath(str(path)))

"""Content digests used to tell managed copies from user edits and to build change reports."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

ABSENT_DIGEST = "absent"


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def content_digest(path: Path) -> str:
    """Digest of whatever lives at `path`, without following a top-level link.

    Files hash their bytes, links hash their target string, directories hash the
    sorted list of (relative path, entry digest) pairs. Nested links are not
    followed either, so a tree containing a link to itself terminates.
    """
    if path.is_symlink():
        return "link:" + hashlib.sha256(os.readlink(path).encode("utf-8")).hexdigest()
    if not path.exists():
        return ABSENT_DIGEST
    if path.is_file():
        return "file:" + sha256_file(path)

    h = hashlib.sha256()
    for root, dirs, files in os.walk(path, followlinks=False):
        dirs.sort()
        root_path = Path(root)
        for name in sorted(files + [d for d in dirs if (root_path / d).is_symlink()]):
            entry = root_path / name
            rel = entry.relative_to(path).as_posix()
            if entry.is_symlink():
                digest = "link:" + os.readlink(entry)
            else:
                digest = sha256_file(entry)
            h.update(rel.encode("utf-8"))
            h.update(b"\0")
            h.update(digest.encode("utf-8"))
            h.update(b"\n")
    return "dir:" + h.hexdigest()


def source_digest(path: Path) -> str:
    """Digest of the content a placement would expose, following a top-level link."""
    if not path.exists():
        return ABSENT_DIGEST
    return content_digest(Path(os.path.realpath(str(path))))

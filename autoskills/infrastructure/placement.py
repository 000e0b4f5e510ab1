"""Materialize/reference placement of bundle resources at their targets."""

from __future__ import annotations

import os
from pathlib import Path
import shutil
from typing import Literal

from autoskills.domain.errors import PlacementError
from autoskills.domain.models import PlacementMode, ResourceDescriptor
from autoskills.infrastructure.path_contract import is_within, real

TargetForm = Literal["absent", "link", "file", "directory"]


def form_of(path: Path) -> TargetForm:
    if path.is_symlink():
        return "link"
    if not path.exists():
        return "absent"
    return "directory" if path.is_dir() else "file"


def remove_entry(path: Path) -> bool:
    """Remove a file, a directory tree, or a link. Links are unlinked, never followed."""
    if path.is_symlink():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    if path.exists():
        path.unlink()
        return True
    return False


def copy_entry(src: Path, dst: Path) -> None:
    """Copy `src` verbatim to `dst`; links (top-level or nested) stay links."""
    dst.parent.mkdir(parents=True, exist_ok=True)
    if src.is_symlink():
        os.symlink(os.readlink(src), dst, target_is_directory=src.is_dir())
    elif src.is_dir():
        shutil.copytree(src, dst, symlinks=True)
    else:
        shutil.copy2(src, dst)


def overlaps(target: Path, src: Path) -> bool:
    """True when removing `target` would delete (part of) `src`."""
    if target.is_symlink():
        return False
    real_target = real(target)
    real_src = real(src)
    return is_within(real_src, real_target)


class PlacementStrategy:
    def __init__(self, source_root: Path):
        self.source_root = source_root

    def apply(self, descriptor: ResourceDescriptor, mode: PlacementMode) -> None:
        src = descriptor.source_in(self.source_root)
        target = descriptor.target_path
        if not src.exists():
            raise PlacementError(f"{descriptor.name}: source missing: {src}", stage="placement")
        if overlaps(target, src):
            raise PlacementError(f"{descriptor.name}: target {target} overlaps its source {src}", stage="placement")
        try:
            # previous placement goes first so stale and fresh content never share the target
            remove_entry(target)
            target.parent.mkdir(parents=True, exist_ok=True)
            if mode == "reference":
                os.symlink(src.resolve(), target, target_is_directory=descriptor.kind == "directory")
            elif descriptor.kind == "directory":
                shutil.copytree(src, target, symlinks=True)
            else:
                shutil.copy2(src, target)
        except OSError as exc:
            raise PlacementError(f"{descriptor.name}: cannot place {mode} at {target}: {exc}", stage="placement") from exc

    def remove(self, descriptor: ResourceDescriptor) -> bool:
        if overlaps(descriptor.target_path, descriptor.source_in(self.source_root)):
            raise PlacementError(
                f"{descriptor.name}: refusing to remove {descriptor.target_path}, it contains the source",
                stage="remove",
            )
        try:
            return remove_entry(descriptor.target_path)
        except OSError as exc:
            raise PlacementError(f"{descriptor.name}: cannot remove {descriptor.target_path}: {exc}", stage="remove") from exc

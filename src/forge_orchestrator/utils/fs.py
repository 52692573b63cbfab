"""
forge-orchestrator — filesystem utilities

File: src/forge_orchestrator/utils/fs.py
Last updated: 2026-10-19

Purpose
- Provide safe, minimal filesystem helpers for atomic writes, contained path
  resolution, and guarded deletion inside a package directory.

Functional requirements
- Atomic writes use temp files in the destination directory and replace in a single step.
- Relative paths supplied by the code-generation agent never escape their root.
- Deletion refuses paths outside the configured root.

Non-functional requirements
- Standard library only and cross-platform behavior where feasible.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from pathlib import Path, PurePosixPath

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "resolve_within",
    "safe_delete",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    try:
        if isinstance(data, bytes):
            with os.fdopen(fd, "wb") as file_handle:
                file_handle.write(data)
                file_handle.flush()
                os.fsync(file_handle.fileno())
        else:
            with os.fdopen(fd, "w", encoding=encoding, newline="") as file_handle:
                file_handle.write(data)
                file_handle.flush()
                os.fsync(file_handle.fileno())

        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def resolve_within(root: PathLike, relative_path: str) -> Path:
    """
    Resolve an agent-supplied relative POSIX path under ``root``.

    Raises ``ValueError`` for absolute paths, ``..`` traversal, empty paths, or
    symlinks that lead outside ``root``.
    """

    candidate = relative_path.replace("\\", "/").strip()
    if not candidate or "\x00" in candidate:
        raise ValueError(f"invalid relative path: {relative_path!r}")

    pure = PurePosixPath(candidate)
    if pure.is_absolute() or any(part == ".." for part in pure.parts):
        raise ValueError(f"path escapes package root: {relative_path!r}")

    root_resolved = Path(root).resolve(strict=True)
    target = (root_resolved / Path(*pure.parts)).resolve(strict=False)
    if not _is_relative_to(target, root_resolved) or target == root_resolved:
        raise ValueError(f"path escapes package root: {relative_path!r}")
    return target


def safe_delete(path: PathLike, root: PathLike) -> None:
    """
    Delete ``path`` only if it is contained within ``root``.

    Symlinks are unlinked without traversing into their targets.
    """

    workspace = Path(root).resolve(strict=True)
    if not workspace.is_dir():
        raise NotADirectoryError(f"{workspace!s} is not a directory")

    target = Path(path)
    parent_resolved = target.parent.resolve(strict=True)
    candidate = parent_resolved / target.name
    if not _is_relative_to(candidate, workspace):
        raise ValueError(f"refusing to delete path outside root: {target!s}")

    if target.is_symlink():
        target.unlink()
        return

    resolved_target = target.resolve(strict=True)
    if not _is_relative_to(resolved_target, workspace):
        raise ValueError(f"refusing to delete path outside root: {target!s}")

    if target.is_dir():
        shutil.rmtree(target)
        return

    target.unlink()


def _is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True

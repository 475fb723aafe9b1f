"""
deploy-sequencer — filesystem utilities

File: src/deploy_sequencer/utils/fs.py

Purpose
- Atomic artifact writes (manifests, plan files) and path display helpers.

Functional requirements
- Atomic writes use temp files in the destination directory and replace in a single step.
- Readers never observe a half-written manifest.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "display_path",
    "ensure_directory",
    "is_within",
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
        payload = data if isinstance(data, bytes) else data.encode(encoding)
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def ensure_directory(path: PathLike) -> Path:
    """Create ``path`` (and parents) if needed and return it resolved."""

    directory = Path(path).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    return directory.resolve()


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Return ``True`` if resolved ``child`` is inside resolved ``parent``."""

    try:
        Path(child).resolve().relative_to(Path(parent).resolve())
    except ValueError:
        return False
    return True


def display_path(path: PathLike, root: PathLike) -> str:
    """Render ``path`` relative to ``root`` when it lives inside it."""

    resolved = Path(path).resolve()
    if is_within(resolved, root):
        return resolved.relative_to(Path(root).resolve()).as_posix()
    return resolved.as_posix()

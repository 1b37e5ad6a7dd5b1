"""Atomic file helpers shared by the env file, inventory and deployment record."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path


def atomic_write_text(path: Path, content: str, mode: int | None = None) -> None:
    """Write text to ``path`` so readers never observe a partial file.

    The content goes to a temporary file in the same directory which then
    replaces the target. Concurrent writers race on the rename and the last
    one wins.

    Args:
        path: Destination file
        content: Text to write (UTF-8)
        mode: Optional permission bits applied before the rename

    Raises:
        OSError: If the directory cannot be created or the write fails
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        if mode is not None:
            os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except BaseException:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


def remove_path(path: Path) -> bool:
    """Remove a file or directory tree, tolerating absence.

    Returns:
        True if something was removed, False if the path did not exist
    """
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return True
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True

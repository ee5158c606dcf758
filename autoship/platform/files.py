"""Filesystem helpers."""

from __future__ import annotations

import os
import shutil
import stat
import tempfile
from pathlib import Path

__all__ = ["atomic_write_text", "remove_tree"]


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write text to path atomically using temp file + replace."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def _clear_readonly(func: object, path: str, exc: BaseException) -> None:
    # git marks pack files read-only; Windows refuses to delete those.
    del func
    if not isinstance(exc, PermissionError):
        raise exc
    os.chmod(path, stat.S_IWRITE)
    os.unlink(path)


def remove_tree(path: Path) -> None:
    """Recursively delete a directory; a missing path is not an error.

    Raises:
        OSError: If the tree exists and cannot be removed.
    """
    if not path.exists():
        return
    shutil.rmtree(path, onexc=_clear_readonly)

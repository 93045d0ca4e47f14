"""Atomic file replacement helpers (temp file + fsync + ``os.replace``).

A namespace file is never written in place: the new content goes to a
sibling temporary file, which is then renamed over the target.  A crash
at any point leaves either the old file or the new file, never a mix.
"""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def fsync_dir(path: Path) -> None:
    """Flush a directory entry so a completed rename survives power loss.

    Platforms that cannot open directories (Windows) are skipped.
    """
    try:
        fd = os.open(str(path), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        logger.debug("fsync not supported for directory %s", path)
    finally:
        os.close(fd)


def fsync_file(path: Path) -> None:
    """Force the contents of an existing file to stable storage."""
    with open(path, "rb") as handle:
        os.fsync(handle.fileno())


def atomic_write_bytes(path: Path, payload: bytes, *, fsync: bool = True) -> None:
    """Atomically replace ``path`` with ``payload``.

    Parameters
    ----------
    path:
        Destination file.  Parent directories are created as needed.
    payload:
        The complete new content.
    fsync:
        When ``True`` the temporary file and the parent directory are
        fsynced so the replacement is durable when this returns.

    Raises
    ------
    OSError
        If any step fails.  The destination is left untouched and the
        temporary file is removed.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            if fsync:
                os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path.exists():
            tmp_path.unlink()
        raise
    if fsync:
        fsync_dir(path.parent)

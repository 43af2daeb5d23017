"""Atomic file writes: temp file, verify, rename.

A target path is never observed half-written.  A crash mid-write leaves
either the previous file intact or a stray ``.tmp`` next to it.
"""

from __future__ import annotations

import contextlib
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

TMP_SUFFIX = ".tmp"


class WriteError(Exception):
    """Raised when a written temp file does not read back as intended."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Write verification failed for {path}: {reason}")
        self.path = path
        self.reason = reason


def temp_path_for(path: Path) -> Path:
    return path.with_name(path.name + TMP_SUFFIX)


def _fsync_path(path: Path) -> None:
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _fsync_directory(directory: Path) -> None:
    """Flush the rename to disk; not every platform can open a directory."""
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        logger.debug("Directory fsync unsupported for %s", directory)
    finally:
        os.close(fd)


def atomic_write(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` atomically.

    Writes ``<path>.tmp``, flushes it to disk, reads it back and compares
    byte-for-byte, then renames it over ``path``.  On mismatch the temp
    file is removed and ``WriteError`` is raised; ``path`` is left untouched.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = temp_path_for(path)
    expected = content.encode("utf-8")

    try:
        tmp.write_bytes(expected)
        _fsync_path(tmp)
        written = tmp.read_bytes()
    except OSError:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise

    if written != expected:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise WriteError(path, "written data does not match")

    os.replace(tmp, path)
    _fsync_directory(path.parent)
    logger.debug("Atomically wrote %s (%d bytes)", path, len(expected))

from __future__ import annotations

import logging
import os
import tempfile
import uuid

from .constants import STAGING_DIR_PERMISSIONS, STAGING_DIRNAME, STAGING_FILE_PERMISSIONS, TMPDIR_ENV


logger = logging.getLogger(__name__)


def staging_directory() -> str:
    """Process-wide scratch directory: $CRYPTARCHIVE_TMPDIR or <tmp>/cryptarchive.

    Created on demand and never removed here; its lifetime belongs to the host.
    """
    override = os.environ.get(TMPDIR_ENV)
    if override:
        return override
    return os.path.join(tempfile.gettempdir(), STAGING_DIRNAME)


def create_temporary_file_path() -> str:
    """Return a fresh, collision-resistant path inside the staging directory.

    Names come from uuid4, so concurrent callers never need a lock. Only the
    directory is created (owner-only when this call creates it); the file
    itself is left to the caller.
    """
    directory = staging_directory()
    os.makedirs(directory, mode=STAGING_DIR_PERMISSIONS, exist_ok=True)
    return os.path.join(directory, uuid.uuid4().hex)


def delete_file(path: str) -> None:
    """Remove ``path``; an already-missing file is not an error."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def discard(path: str) -> None:
    """Best-effort delete for cleanup paths: never raises."""
    try:
        delete_file(path)
    except OSError as exc:
        logger.warning("Failed to remove staging file %s: %s", path, exc)


def stage_bytes(data: bytes) -> str:
    path = create_temporary_file_path()
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0), STAGING_FILE_PERMISSIONS)
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
    except BaseException:
        discard(path)
        raise
    logger.debug("Staged %d bytes at %s", len(data), path)
    return path

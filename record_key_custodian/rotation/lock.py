"""Exclusive rotation lock for a key store directory.

The lock is an OS-level lock on a file handle, so it is released when the
holding process exits for any reason and a crashed rotation never blocks
the rotation that resumes it.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

from record_key_custodian.exceptions import FileOperationError, RotationInProgressError

logger = logging.getLogger(__name__)


def _lock_file(handle: Any) -> None:
    if os.name == "nt":
        import msvcrt

        try:
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)  # type: ignore[attr-defined]
        except OSError as exc:
            raise RotationInProgressError("Another rotation is in progress") from exc
        return
    import fcntl

    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError as exc:
        raise RotationInProgressError("Another rotation is in progress") from exc


def _unlock_file(handle: Any) -> None:
    if os.name == "nt":
        import msvcrt

        try:
            msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]
        except OSError:
            return
        return
    import fcntl

    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    except OSError:
        return


class RotationLock:
    """Non-blocking exclusive lock held for the duration of one rotation."""

    def __init__(self, path: Path):
        self._path = Path(path)
        self._handle: Optional[Any] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> None:
        """Acquire the lock or fail fast.

        Raises:
            RotationInProgressError: If the lock is held elsewhere
            FileOperationError: If the lock file cannot be opened
        """
        if self._handle is not None:
            raise RotationInProgressError("Rotation lock is already held by this coordinator")

        try:
            handle = self._path.open("a+", encoding="utf-8")
        except OSError as e:
            raise FileOperationError(f"Failed to open rotation lock {self._path}: {e}") from e

        try:
            _lock_file(handle)
        except BaseException:
            handle.close()
            raise

        try:
            handle.seek(0)
            handle.truncate()
            handle.write(f"pid={os.getpid()}\n")
            handle.flush()
        except OSError as e:
            # Lock is still held; the pid is informational only.
            logger.debug(f"Could not record pid in rotation lock: {e}")

        self._handle = handle

    def release(self) -> None:
        """Release the lock; no-op if not held."""
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        _unlock_file(handle)
        handle.close()

    def __enter__(self) -> "RotationLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

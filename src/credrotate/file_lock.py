"""Advisory lock around a rotation run.

Uses platform-appropriate primitives (msvcrt on Windows, fcntl on Unix) so two
rotations of the same profile cannot interleave their backup and install steps.
"""

import logging
import os
import platform
from pathlib import Path
from typing import Optional, Union

from .exceptions import LockUnavailable

logger = logging.getLogger(__name__)


class FileLock:
    """Cross-platform, non-blocking file lock.

    Example:
        >>> with FileLock("~/.aws/credentials.default.lock"):
        ...     rotator.rotate_now()
    """

    def __init__(self, lock_path: Union[str, Path]):
        """Initialize file lock.

        Args:
            lock_path: Path to the lock file
        """
        self.lock_path = str(Path(lock_path).expanduser())
        self._lock_fd: Optional[int] = None

    @property
    def locked(self) -> bool:
        return self._lock_fd is not None

    def acquire(self) -> None:
        """Acquire the lock without waiting.

        Raises:
            LockUnavailable: If another process holds the lock or it cannot be created
        """
        try:
            Path(self.lock_path).parent.mkdir(parents=True, exist_ok=True)
            self._lock_fd = os.open(self.lock_path, os.O_CREAT | os.O_WRONLY, 0o600)

            if platform.system() == "Windows":
                import msvcrt

                msvcrt.locking(self._lock_fd, msvcrt.LK_NBLCK, 1)
            else:
                import fcntl

                fcntl.flock(self._lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)

            os.ftruncate(self._lock_fd, 0)
            os.write(self._lock_fd, str(os.getpid()).encode("ascii"))
        except OSError as e:
            logger.error(f"Failed to acquire file lock {self.lock_path}: {e}")
            if self._lock_fd is not None:
                try:
                    os.close(self._lock_fd)
                finally:
                    self._lock_fd = None
            raise LockUnavailable(f"Another rotation holds {self.lock_path}: {e}") from e

        logger.debug(f"Acquired file lock {self.lock_path}")

    def release(self) -> None:
        """Release the lock and remove the lock file. Safe to call when not held."""
        if self._lock_fd is None:
            return

        try:
            if platform.system() == "Windows":
                import msvcrt

                try:
                    msvcrt.locking(self._lock_fd, msvcrt.LK_UNLCK, 1)
                except OSError:
                    pass  # Lock may already be released
            else:
                import fcntl

                try:
                    fcntl.flock(self._lock_fd, fcntl.LOCK_UN)
                except OSError:
                    pass  # Lock may already be released
        finally:
            try:
                os.close(self._lock_fd)
            finally:
                self._lock_fd = None

        try:
            os.unlink(self.lock_path)
        except OSError as e:
            logger.warning(f"Could not delete lock file {self.lock_path}: {e}")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

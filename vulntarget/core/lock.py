"""Cross-process locking for deployment start/stop.

Serializes lifecycle operations on the same (provider, template) pair so
that of two concurrent starts exactly one brings the project up and the
other observes the ledger entry afterwards.
"""
import fcntl
import os
import re
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from vulntarget.core.errors import LockError
from vulntarget.core.logger import get_logger

logger = get_logger(__name__)


def lock_file_for(lock_dir: Path, provider_name: str, template_id: str) -> Path:
    """Return the lock file path of a (provider, template) pair."""
    safe = re.sub(r'[^A-Za-z0-9_.-]', '_', f"{provider_name}__{template_id}")
    return Path(lock_dir) / f"{safe}.lock"


class DeploymentLock:
    """File-based lock for one deployment key."""

    def __init__(self, lock_file: Path, timeout: float = 0):
        """Initialize lock.

        Args:
            lock_file: Path to lock file
            timeout: Seconds to wait for lock (0 = fail immediately)
        """
        self.lock_file = Path(lock_file)
        self.timeout = timeout
        self.lock_fd = None

    def acquire(self) -> bool:
        """Acquire the lock.

        Returns:
            True if lock acquired successfully

        Raises:
            LockError: If unable to acquire lock
        """
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)

        # Append mode keeps the holder's PID readable while we wait
        self.lock_fd = open(self.lock_file, 'a+')

        start_time = time.monotonic()
        while True:
            try:
                fcntl.flock(self.lock_fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

                self.lock_fd.seek(0)
                self.lock_fd.truncate()
                self.lock_fd.write(f"{os.getpid()}\n")
                self.lock_fd.write(f"{time.strftime('%Y-%m-%d %H:%M:%S')}\n")
                self.lock_fd.flush()

                logger.debug(f"Acquired lock: {self.lock_file}")
                return True

            except OSError:
                elapsed = time.monotonic() - start_time
                if elapsed >= self.timeout:
                    lock_info = self._read_lock_info()
                    self._close_fd()
                    if self.timeout == 0:
                        raise LockError(
                            f"Another operation on this deployment is in progress.\n"
                            f"Lock held by PID {lock_info['pid']} since {lock_info['time']}"
                        )
                    raise LockError(
                        f"Timeout waiting for lock after {self.timeout}s.\n"
                        f"Lock held by PID {lock_info['pid']} since {lock_info['time']}"
                    )

                time.sleep(0.2)

    def release(self):
        """Release the lock.

        The lock file stays on disk so every process locks the same inode.
        """
        if self.lock_fd is not None:
            try:
                fcntl.flock(self.lock_fd.fileno(), fcntl.LOCK_UN)
                logger.debug(f"Released lock: {self.lock_file}")
            except OSError as e:
                logger.warning(f"Error releasing lock: {e}")
            finally:
                self._close_fd()

    def _close_fd(self):
        if self.lock_fd is not None:
            self.lock_fd.close()
            self.lock_fd = None

    def _read_lock_info(self) -> dict:
        """Read info from lock file about who holds it."""
        try:
            with open(self.lock_file) as f:
                lines = f.readlines()
                if len(lines) >= 2:
                    return {
                        'pid': lines[0].strip(),
                        'time': lines[1].strip()
                    }
        except OSError:
            pass

        return {'pid': 'unknown', 'time': 'unknown'}

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


@contextmanager
def deployment_lock(lock_dir: Path, provider_name: str, template_id: str,
                    timeout: float = 0):
    """Hold the lock of a (provider, template) pair for the duration of the block.

    Raises:
        LockError: If unable to acquire lock
    """
    lock = DeploymentLock(lock_file_for(lock_dir, provider_name, template_id), timeout=timeout)
    lock.acquire()
    try:
        yield lock
    finally:
        lock.release()

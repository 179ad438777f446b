"""Single-instance guard backed by an flock(2) lock file.

Usage:
    lock = ProcessLock(Path("/var/run/88x2bu-installer.lock"))
    handle = lock.acquire()      # raises AlreadyRunningError if held
    try:
        ...
    finally:
        lock.release()

The kernel drops flock locks when the holding process exits, so a lock file
left behind by a crashed run never blocks the next one. The pid written into
the file is only used to tell contenders who holds the lock.
"""

from __future__ import annotations

import errno
import fcntl
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import psutil

from kmod_deployer.domain.models import LockHandle
from kmod_deployer.exceptions import AlreadyRunningError
from kmod_deployer.logging import LoggerFactory


log = LoggerFactory.for_lock()

# Attempts to win the lock when the file is replaced between open and flock.
_MAX_INODE_RACES = 5


def _read_pid(fd: int) -> Optional[int]:
    try:
        os.lseek(fd, 0, os.SEEK_SET)
        raw = os.read(fd, 64).decode("ascii", errors="ignore").strip()
    except OSError:
        return None
    return int(raw) if raw.isdigit() else None


def _same_file(fd: int, path: Path) -> bool:
    try:
        on_disk = os.stat(path)
    except FileNotFoundError:
        return False
    held = os.fstat(fd)
    return (held.st_dev, held.st_ino) == (on_disk.st_dev, on_disk.st_ino)


class ProcessLock:
    def __init__(self, path: Path, *, pid: Optional[int] = None):
        self.path = Path(path)
        self.pid = pid if pid is not None else os.getpid()
        self._fd: Optional[int] = None
        self._handle: Optional[LockHandle] = None

    @property
    def handle(self) -> Optional[LockHandle]:
        return self._handle

    @property
    def is_held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> LockHandle:
        """Take the lock without blocking.

        Raises:
            AlreadyRunningError: Another process holds the lock
        """
        if self._handle is not None:
            return self._handle
        self.path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(_MAX_INODE_RACES):
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError as error:
                holder = _read_pid(fd)
                os.close(fd)
                if error.errno not in (errno.EAGAIN, errno.EWOULDBLOCK, errno.EACCES):
                    raise
                raise AlreadyRunningError(holder, str(self.path)) from None
            except BaseException:
                os.close(fd)
                raise
            # From here on release() owns the descriptor.
            self._fd = fd
            # The previous holder may have unlinked the file after we opened it.
            if _same_file(fd, self.path):
                break
            self._fd = None
            os.close(fd)
        else:
            raise AlreadyRunningError(None, str(self.path))

        try:
            previous = _read_pid(fd)
            if previous is not None and previous != self.pid:
                state = "alive" if psutil.pid_exists(previous) else "gone"
                log.debug(f"Replacing stale lock left by PID {previous} ({state})")
            os.ftruncate(fd, 0)
            os.lseek(fd, 0, os.SEEK_SET)
            os.write(fd, f"{self.pid}\n".encode("ascii"))
            os.fsync(fd)
        except BaseException:
            self.release()
            raise

        self._handle = LockHandle(
            pid=self.pid, acquired_at=datetime.now(), path=self.path
        )
        log.info(f"Acquired exclusive lock {self.path} (PID: {self.pid})")
        return self._handle

    def release(self, handle: Optional[LockHandle] = None) -> None:
        """Release the lock and remove the lock file.

        Safe to call when the lock was never acquired or is already released.
        """
        if self._fd is None:
            return
        if handle is not None and handle != self._handle:
            log.warning(f"Ignoring release of a lock handle not held: {handle.path}")
            return
        fd, self._fd = self._fd, None
        self._handle = None
        try:
            if _same_file(fd, self.path):
                self.path.unlink()
        except OSError as error:
            log.warning(f"Unable to remove lock file {self.path}: {error}")
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
        log.info("Released exclusive lock")

    def __enter__(self) -> LockHandle:
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def describe_holder(pid: Optional[int]) -> str:
    """Human-readable description of a lock holder for error output."""
    if pid is None:
        return "unknown process"
    try:
        name = psutil.Process(pid).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return f"PID {pid}"
    return f"PID {pid} ({name})"

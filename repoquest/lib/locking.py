"""
Lock management for quest sessions.

Two layers:
- SessionLock serializes threads inside one process: one mutating action at
  a time (a second one is rejected, not queued), reads share the lock and
  wait while a mutation runs.
- repo_lock takes a non-blocking flock on .git/rqst.lock so a second engine
  process on the same working directory is rejected as well.
"""

import fcntl
import os
import threading
from contextlib import contextmanager
from pathlib import Path

from repoquest.lib.errors import SessionBusy

LOCK_FILE_NAME = "rqst.lock"


def _lock_path(repo_dir: Path) -> Path:
    git_dir = repo_dir / ".git"
    # Worktrees and submodules have a .git file rather than a directory
    if git_dir.is_dir():
        return git_dir / LOCK_FILE_NAME
    return repo_dir / f".{LOCK_FILE_NAME}"


@contextmanager
def repo_lock(repo_dir: Path, action: str):
    """
    Acquire the per-directory process lock without waiting.

    Raises:
        SessionBusy: if another process holds it
    """
    lock_file = _lock_path(repo_dir)
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    # Lock files are never deleted: unlinking would let two processes hold
    # "exclusive" locks on different inodes with the same path.
    fd = open(lock_file, 'a+')
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        fd.close()
        raise SessionBusy(
            "Another rqst process is working on this repository",
            action=action,
            cause=str(lock_file),
        ) from None

    try:
        fd.seek(0)
        fd.truncate()
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        fd.close()


class SessionLock:
    """Exclusive-mutation / shared-read lock for one session."""

    def __init__(self):
        self._cond = threading.Condition()
        self._mutating: str | None = None
        self._readers = 0

    @property
    def busy(self) -> bool:
        with self._cond:
            return self._mutating is not None

    @contextmanager
    def exclusive(self, action: str):
        """Hold the session for a mutating action; fail fast if one is running."""
        with self._cond:
            if self._mutating is not None:
                raise SessionBusy(
                    f"Session busy with '{self._mutating}'",
                    action=action,
                )
            self._mutating = action
            while self._readers:
                self._cond.wait()
        try:
            yield
        finally:
            with self._cond:
                self._mutating = None
                self._cond.notify_all()

    @contextmanager
    def shared(self):
        """Hold the session for a read; waits out any running mutation."""
        with self._cond:
            while self._mutating is not None:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                self._cond.notify_all()

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator

import structlog

from .errors import LockError

logger = structlog.get_logger()


def _try_lock(handle: IO[str]) -> bool:
    if os.name == "nt":
        import msvcrt  # type: ignore

        handle.seek(0)
        try:
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)  # type: ignore[attr-defined]
        except OSError:
            return False
        return True

    import fcntl

    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    return True


def _wait_lock(handle: IO[str]) -> None:
    if os.name == "nt":
        import msvcrt  # type: ignore

        # LK_LOCK gives up after ten one-second retries.
        while True:
            handle.seek(0)
            try:
                msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)  # type: ignore[attr-defined]
                return
            except OSError:
                continue

    import fcntl

    fcntl.flock(handle.fileno(), fcntl.LOCK_EX)


def _unlock(handle: IO[str]) -> None:
    if os.name == "nt":
        import msvcrt  # type: ignore

        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]
        return

    import fcntl

    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


@contextmanager
def exclusive_lock(lock_file: Path) -> Iterator[None]:
    """Hold an advisory exclusive lock on ``lock_file`` for the block.

    Tries without blocking first so that waiting on another process is
    reported; the file itself never holds any data.
    """
    try:
        lock_file.parent.mkdir(parents=True, exist_ok=True)
        handle = lock_file.open("a", encoding="utf-8")
    except OSError as error:
        raise LockError(f"couldn't open lock file '{lock_file}'") from error

    try:
        try:
            if not _try_lock(handle):
                logger.info("waiting for another process to unlock the lock file", path=str(lock_file))
                _wait_lock(handle)
        except OSError as error:
            raise LockError(f"couldn't lock file '{lock_file}'") from error

        try:
            yield
        finally:
            try:
                _unlock(handle)
            except OSError:
                # Closing the handle below drops the lock anyway.
                logger.debug("explicit unlock failed", path=str(lock_file))
    finally:
        handle.close()


__all__ = ["exclusive_lock"]

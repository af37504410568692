from __future__ import annotations

import getpass
import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from tracker_merge.config import DEFAULT_LOCK_POLL_INTERVAL, DEFAULT_LOCK_TIMEOUT
from tracker_merge.errors import LockTimeoutError

logger = logging.getLogger(__name__)


def lock_path_for(path: Path) -> Path:
    return path.with_name(f"{path.name}.lock")


def _lock_note() -> str:
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    stamp = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
    return f"locked_at={stamp}\nuser={user}\npid={os.getpid()}\n"


@contextmanager
def output_lock(
    path: Path,
    timeout: float = DEFAULT_LOCK_TIMEOUT,
    poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL,
) -> Iterator[Path]:
    """Hold an exclusive marker file next to ``path`` for the duration of the block.

    Another process holding the marker makes us poll until ``timeout``
    seconds have passed, then ``LockTimeoutError`` is raised. The marker is
    removed on every exit path once acquired.
    """
    lock_path = lock_path_for(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    deadline = time.monotonic() + max(timeout, 0.0)
    waited = False

    while True:
        try:
            fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            if time.monotonic() >= deadline:
                raise LockTimeoutError(lock_path, timeout) from None
            if not waited:
                logger.info("Waiting for lock held on %s", lock_path)
                waited = True
            time.sleep(poll_interval)
            continue
        try:
            os.write(fd, _lock_note().encode("utf-8"))
        except OSError:
            os.close(fd)
            lock_path.unlink(missing_ok=True)
            raise
        os.close(fd)
        break

    logger.debug("Acquired lock %s", lock_path)
    try:
        yield lock_path
    finally:
        try:
            lock_path.unlink()
        except FileNotFoundError:
            logger.warning("Lock %s vanished before release", lock_path)
        logger.debug("Released lock %s", lock_path)

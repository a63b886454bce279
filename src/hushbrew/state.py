"""Persisted last-run marker and the cross-process run lock."""

from __future__ import annotations

import fcntl
import logging
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from types import TracebackType
from uuid import uuid4

LOGGER = logging.getLogger(__name__)


def read_last_success(state_file: Path) -> date | None:
    """Return the persisted marker date, or None when absent or unreadable."""

    try:
        text = state_file.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    except OSError as exc:
        LOGGER.warning("state.read_failed path=%s error=%s", state_file, exc)
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        LOGGER.warning("state.invalid_marker path=%s content=%r", state_file, text)
        return None


def write_last_success(state_file: Path, day: date) -> Path:
    """Atomically replace the marker with `day` as a single ISO-8601 line."""

    state_file.parent.mkdir(parents=True, exist_ok=True)
    temp_path = state_file.parent / f".{state_file.name}.{uuid4().hex}.tmp"
    try:
        temp_path.write_text(day.isoformat() + "\n", encoding="utf-8")
        os.replace(temp_path, state_file)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return state_file


@dataclass(frozen=True, slots=True)
class RunState:
    """Snapshot read once at the start of a run."""

    last_success: date | None
    lock_held: bool

    def already_ran(self, today: date) -> bool:
        return self.last_success == today


def lock_is_held(lock_file: Path) -> bool:
    """True when some process currently holds the run lock on `lock_file`."""

    try:
        fd = os.open(lock_file, os.O_RDWR)
    except FileNotFoundError:
        return False
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return True
    finally:
        os.close(fd)
    return False


def read_run_state(state_file: Path, lock_file: Path) -> RunState:
    return RunState(last_success=read_last_success(state_file), lock_held=lock_is_held(lock_file))


class RunLock:
    """Exclusive run lock backed by a non-blocking `flock` on the lock file.

    The kernel drops the lock when its owner exits, so a file left behind by a
    crashed run never blocks later runs. The file holds the owner's PID for
    diagnostics only.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._fd: int | None = None

    @property
    def acquired(self) -> bool:
        return self._fd is not None

    def _is_current_file(self, fd: int) -> bool:
        # a releasing owner unlinks the path before unlocking
        try:
            on_disk = os.stat(self.path)
        except FileNotFoundError:
            return False
        held = os.fstat(fd)
        return (held.st_dev, held.st_ino) == (on_disk.st_dev, on_disk.st_ino)

    def _write_owner(self, fd: int) -> None:
        try:
            os.ftruncate(fd, 0)
            os.write(fd, f"{os.getpid()}\n".encode("utf-8"))
        except OSError as exc:
            LOGGER.warning("lock.owner_write_failed path=%s error=%s", self.path, exc)

    def acquire(self) -> bool:
        if self._fd is not None:
            return True
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("lock.open_failed path=%s error=%s", self.path, exc)
            return False
        while True:
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o644)
            except OSError as exc:
                LOGGER.warning("lock.open_failed path=%s error=%s", self.path, exc)
                return False
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                return False
            if self._is_current_file(fd):
                break
            os.close(fd)
        self._fd = fd
        self._write_owner(fd)
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        self.path.unlink(missing_ok=True)
        os.close(self._fd)
        self._fd = None

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

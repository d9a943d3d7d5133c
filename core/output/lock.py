"""Advisory generation lock backed by an exclusive marker file.

The marker is created with ``O_CREAT | O_EXCL`` and records the owning process.
It is removed on normal exit, on SIGINT/SIGTERM once ``install_signal_handlers``
has been called, and via ``atexit``. A hard kill leaks the marker; when
``stale_after_seconds`` is set, a marker older than that is broken on the next
acquire.
"""

from __future__ import annotations

import atexit
import json
import logging
import os
import signal
import socket
import time
from pathlib import Path
from types import FrameType, TracebackType
from typing import Any

from core.utils.errors import LockContentionError
from core.utils.log_events import log_event

logger = logging.getLogger("worksheet.output")


class GenerationLock:
    """Single-holder lock over the artifact output path."""

    def __init__(self, path: Path, *, stale_after_seconds: float | None = None) -> None:
        self._path = path
        self._stale_after_seconds = stale_after_seconds
        self._held = False
        self._atexit_registered = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Create the marker or raise ``LockContentionError`` without side effects."""

        if self._held:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        if self._path.exists() and self._is_stale():
            owner = self.read_owner()
            log_event(
                logger,
                logging.WARNING,
                "lock_stale_broken",
                path=str(self._path),
                owner=owner,
                stale_after_seconds=self._stale_after_seconds,
            )
            self._path.unlink(missing_ok=True)

        owner = {
            "pid": os.getpid(),
            "hostname": socket.gethostname(),
            "acquired_at": time.time(),
        }
        try:
            fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as exc:
            raise LockContentionError(
                "Another generator run appears active (lock present)",
                lock_path=self._path,
                owner=self.read_owner(),
            ) from exc

        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(owner, handle, sort_keys=True)

        self._held = True
        if not self._atexit_registered:
            atexit.register(self.release)
            self._atexit_registered = True
        log_event(logger, logging.DEBUG, "lock_acquired", path=str(self._path), **owner)

    def release(self) -> None:
        """Remove the marker if this process owns it. Safe to call repeatedly."""

        if not self._held:
            return
        self._held = False
        if self._atexit_registered:
            atexit.unregister(self.release)
            self._atexit_registered = False

        owner = self.read_owner()
        if owner.get("pid") not in (None, os.getpid()):
            log_event(
                logger,
                logging.WARNING,
                "lock_owner_changed",
                path=str(self._path),
                owner=owner,
            )
            return
        self._path.unlink(missing_ok=True)
        log_event(logger, logging.DEBUG, "lock_released", path=str(self._path))

    def read_owner(self) -> dict[str, Any]:
        """Return the marker's ownership metadata, or ``{}`` when unreadable."""

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return raw if isinstance(raw, dict) else {}

    def install_signal_handlers(self) -> None:
        """Turn SIGINT/SIGTERM into ``SystemExit(1)`` so the marker is released.

        Must be called from the main thread.
        """

        for signum in (signal.SIGINT, signal.SIGTERM):
            signal.signal(signum, _exit_on_signal)

    def _is_stale(self) -> bool:
        if self._stale_after_seconds is None:
            return False
        try:
            age = time.time() - self._path.stat().st_mtime
        except FileNotFoundError:
            return False
        return age > self._stale_after_seconds

    def __enter__(self) -> GenerationLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.release()


def _exit_on_signal(signum: int, frame: FrameType | None) -> None:
    raise SystemExit(1)

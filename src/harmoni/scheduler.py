"""Background watcher that reloads a config when its file changes.

Uses polling on the file modification time for cross-platform behavior
without additional dependencies. One daemon thread per watched Config;
the loop stops when the owner's sync_up flag goes false.
"""

from __future__ import annotations

import os
import threading
from enum import Enum
from typing import Protocol

from harmoni.errors import EventDispatchError
from harmoni.logging import VERBOSE, get_logger

log = get_logger("watcher")

# Lower bound for the poll interval in seconds
MIN_INTERVAL = 0.01


class Watchable(Protocol):
    """What the scheduler needs from the object it watches."""

    @property
    def path(self) -> str | None: ...

    @property
    def sync_up(self) -> bool: ...

    @property
    def interval(self) -> float: ...

    @property
    def last_refresh(self) -> float | None: ...

    def reload(self) -> bool: ...


class WatcherState(Enum):
    IDLE = "idle"
    WATCHING = "watching"


class ReloadScheduler:
    """Polls the owner's backing file and calls owner.reload() on change.

    A reload happens when the file exists and its mtime is strictly newer
    than owner.last_refresh. Errors during a check or reload are logged and
    the loop keeps going; the only stop condition is owner.sync_up being
    false, checked at the top of every iteration.
    """

    def __init__(self, owner: Watchable) -> None:
        self._owner = owner
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._thread: threading.Thread | None = None
        # Most recent worker, kept after it clears _thread so stop() can join it
        self._worker: threading.Thread | None = None

    @property
    def state(self) -> WatcherState:
        return WatcherState.WATCHING if self.alive else WatcherState.IDLE

    @property
    def alive(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> bool:
        """Start the poll loop unless one is already alive.

        Returns:
            True if a new worker thread was started.
        """
        with self._lock:
            # _thread is cleared by the worker under this lock as it decides to exit
            if not self._owner.sync_up or self._thread is not None:
                return False
            self._wake.clear()
            self._thread = self._worker = threading.Thread(
                target=self._poll_loop,
                name=f"harmoni-watcher:{self._owner.path}",
                daemon=True,
            )
            self._thread.start()
        log.debug("Config watcher started for %s (interval=%.2fs)", self._owner.path, self._interval())
        return True

    def wake(self) -> None:
        """Cut the current sleep short so the flag and file are rechecked."""
        self._wake.set()

    def stop(self, timeout: float | None = None) -> None:
        """Wake the worker and wait for it to exit.

        The owner's sync_up flag must already be false, otherwise the worker
        simply resumes polling.
        """
        self.wake()
        thread = self._worker
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _interval(self) -> float:
        return max(MIN_INTERVAL, float(self._owner.interval))

    def _is_stale(self) -> bool:
        path = self._owner.path
        if not path:
            return False
        try:
            mtime = os.stat(path).st_mtime
        except FileNotFoundError:
            return False
        last = self._owner.last_refresh
        return last is None or mtime > last

    def _poll_loop(self) -> None:
        """Main polling loop."""
        path = self._owner.path
        while True:
            with self._lock:
                if not self._owner.sync_up:
                    self._thread = None
                    break

            try:
                if self._is_stale():
                    log.log(VERBOSE, "Config file changed: %s", path)
                    self._owner.reload()
            except EventDispatchError as e:
                log.warning("Reload of %s finished with %d listener failure(s)", path, len(e.failures))
            except Exception:
                log.exception("Error reloading config %s", path)

            self._wake.wait(self._interval())
            self._wake.clear()

        log.debug("Config watcher stopped for %s", path)

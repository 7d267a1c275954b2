"""Hot reload of the configuration file."""

from __future__ import annotations

import enum
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from gitdub.config import ConfigError, Configuration, load_config

logger = logging.getLogger(__name__)


class WatcherState(str, enum.Enum):
    IDLE = "idle"
    POLLING = "polling"


class ConfigWatcher:
    """
    Owns the live configuration snapshot.

    Readers call :meth:`current` once and keep the returned object; the
    watcher only ever replaces the reference, it never changes a published
    :class:`Configuration`.
    """

    def __init__(
        self,
        path: str | os.PathLike,
        initial: Configuration,
        *,
        loader: Callable[[Path], Configuration] = load_config,
    ):
        self.path = Path(path)
        self.loader = loader
        self._snapshot = initial
        self._mtime = self._read_mtime()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_file(cls, path: str | os.PathLike) -> "ConfigWatcher":
        """Load the initial snapshot; a ``ConfigError`` here is fatal to the caller."""
        return cls(path, load_config(path))

    def current(self) -> Configuration:
        return self._snapshot

    @property
    def state(self) -> WatcherState:
        if self._snapshot.reload_interval > 0:
            return WatcherState.POLLING
        return WatcherState.IDLE

    def _read_mtime(self) -> Optional[float]:
        try:
            return self.path.stat().st_mtime
        except OSError:
            return None

    def poll_once(self) -> bool:
        """
        Reload the file if its modification time changed.

        Returns True when a new snapshot was published. A file that fails to
        load is logged and the previous snapshot stays live.
        """
        mtime = self._read_mtime()
        if mtime is None or mtime == self._mtime:
            return False
        self._mtime = mtime

        try:
            snapshot = self.loader(self.path)
        except ConfigError as exc:
            logger.error("reloading %s failed, keeping previous configuration: %s", self.path, exc)
            return False

        self._snapshot = snapshot
        logger.info(
            "reloaded %s (%d routing entries)", self.path, len(snapshot.routing_entries)
        )
        if snapshot.reload_interval == 0:
            logger.info("configuration monitoring disabled")
        return True

    def start(self) -> None:
        if self.state is WatcherState.IDLE:
            logger.debug("not monitoring %s", self.path)
            return
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="gitdub-config-watcher"
        )
        self._thread.start()
        logger.info(
            "monitoring %s every %s seconds", self.path, self._snapshot.reload_interval
        )

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self) -> None:
        while self.state is WatcherState.POLLING:
            if self._stop.wait(self._snapshot.reload_interval):
                return
            try:
                self.poll_once()
            except Exception as exc:
                logger.error("polling %s failed: %s", self.path, exc, exc_info=True)

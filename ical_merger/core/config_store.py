"""Holder for the process-wide configuration snapshot."""

from __future__ import annotations

import logging
import threading

from ..config_loader import ApplicationConfig
from ..exceptions import ConfigError

logger = logging.getLogger(__name__)


class ConfigStore:
    """Shares one immutable ``ApplicationConfig`` between scheduler and requests.

    Reads return the current snapshot reference without locking; snapshots are
    frozen, so readers never observe a half-applied change. ``replace`` swaps
    the reference under a writer lock and only accepts snapshots that keep the
    operating mode and refresh interval the scheduler started with.
    """

    def __init__(self, snapshot: ApplicationConfig):
        self._snapshot = snapshot
        self._write_lock = threading.Lock()

    def snapshot(self) -> ApplicationConfig:
        return self._snapshot

    def replace(self, new_snapshot: ApplicationConfig) -> ApplicationConfig:
        """Swap in a new snapshot and return the previous one.

        Raises:
            ConfigError: If the new snapshot changes the operating mode or interval.
        """
        with self._write_lock:
            current = self._snapshot
            if new_snapshot.operating_mode is not current.operating_mode:
                raise ConfigError(
                    f"Cannot switch operating mode from {current.operating_mode.value} "
                    f"to {new_snapshot.operating_mode.value} without a restart"
                )
            if new_snapshot.fetch_interval_seconds != current.fetch_interval_seconds:
                raise ConfigError("Cannot change fetch_interval_seconds without a restart")

            self._snapshot = new_snapshot
            logger.info(
                "Configuration snapshot replaced (%d -> %d calendars)",
                len(current.calendars),
                len(new_snapshot.calendars),
            )
            return current

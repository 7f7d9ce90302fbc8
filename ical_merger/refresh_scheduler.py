"""Background refresh loop that keeps the calendar cache warm in periodic mode."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from .config_loader import OperatingMode
from .core.build_runner import Builder, build_and_cache
from .core.cache import CalendarCache
from .core.config_store import ConfigStore

logger = logging.getLogger(__name__)


@dataclass
class RefreshSummary:
    """Outcome of one refresh tick."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


class RefreshScheduler:
    """Rebuilds every configured calendar on a fixed interval.

    The operating mode is read once when ``run`` starts. In on-demand mode the
    scheduler has nothing to do and returns immediately.
    """

    def __init__(self, config_store: ConfigStore, cache: CalendarCache, builder: Builder):
        """Initialize scheduler.

        Args:
            config_store: Holder of the configuration snapshot
            cache: Shared cache updated on each successful build
            builder: Calendar builder invoked once per calendar per tick
        """
        self.config_store = config_store
        self.cache = cache
        self.builder = builder
        self.ticks = 0
        self.last_tick_monotonic: Optional[float] = None

    async def refresh_once(self, calendars: Mapping[str, Any]) -> RefreshSummary:
        """Build all calendars concurrently, isolating failures per calendar.

        Args:
            calendars: identifier -> calendar source configuration

        Returns:
            RefreshSummary listing which identifiers were rebuilt
        """
        summary = RefreshSummary()
        if not calendars:
            logger.warning("No calendars configured, skipping refresh")
            return summary

        timeout = self.config_store.snapshot().build_timeout_seconds
        identifiers = list(calendars)
        results = await asyncio.gather(
            *(
                build_and_cache(self.builder, self.cache, ident, calendars[ident], timeout)
                for ident in identifiers
            ),
            return_exceptions=True,
        )

        for ident, result in zip(identifiers, results):
            if result is True:
                summary.succeeded.append(ident)
            else:
                if isinstance(result, BaseException):
                    logger.error("Unexpected error refreshing calendar %s: %r", ident, result)
                summary.failed.append(ident)

        self.ticks += 1
        self.last_tick_monotonic = time.monotonic()

        if summary.failed:
            logger.warning(
                "Refresh finished: %d/%d calendars rebuilt, failed: %s",
                len(summary.succeeded),
                summary.total,
                ", ".join(summary.failed),
            )
        else:
            logger.info("Refresh finished: %d calendars rebuilt", len(summary.succeeded))
        return summary

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run until ``stop_event`` is set.

        Ticks are scheduled at a fixed rate from the start time, so a slow
        refresh does not push later ticks back. Ticks missed while a refresh
        overran the interval are skipped rather than run back to back. The
        first periodic refresh happens one full interval after start unless
        ``refresh_on_start`` is enabled.

        Raises:
            SchedulerMisconfigured: Periodic mode without a usable interval.
        """
        snapshot = self.config_store.snapshot()
        if snapshot.operating_mode is OperatingMode.ON_DEMAND:
            logger.info("Calendars are fetched on demand; refresh scheduler not started")
            return

        interval = snapshot.refresh_interval
        logger.info("Refresh scheduler started with interval %s seconds", interval)

        loop = asyncio.get_running_loop()
        started_at = loop.time()
        next_tick = started_at + interval

        if snapshot.refresh_on_start:
            logger.info("Performing initial refresh")
            await self._tick()
            next_tick = self._next_deadline(started_at, interval, loop.time())

        while not stop_event.is_set():
            delay = max(0.0, next_tick - loop.time())
            logger.debug("Sleeping for %.2f seconds until next refresh", delay)
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            if stop_event.is_set():
                break
            await self._tick()
            next_tick = self._next_deadline(next_tick, interval, loop.time())

        logger.info("Refresh scheduler stopped")

    @staticmethod
    def _next_deadline(previous: float, interval: float, now: float) -> float:
        """First ``previous + n * interval`` (n >= 1) that is still in the future."""
        deadline = previous + interval
        if deadline <= now:
            missed = int((now - deadline) // interval) + 1
            logger.warning("Refresh overran its interval, skipping %d tick(s)", missed)
            deadline += missed * interval
        return deadline

    async def _tick(self) -> None:
        try:
            await self.refresh_once(self.config_store.snapshot().calendars)
        except Exception:
            logger.exception("Refresh loop unexpected error")

"""Answers "get calendar by identifier" requests against the shared cache."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .config_loader import OperatingMode
from .core.build_runner import Builder, build_and_cache
from .core.cache import CalendarCache
from .core.config_store import ConfigStore
from .exceptions import CalendarNotConfigured, NoCachedDocument

logger = logging.getLogger(__name__)


class CalendarService:
    """Resolves an identifier to a cached calendar document.

    In on-demand mode each request rebuilds its calendar before reading the
    cache; a failed build falls back to whatever is already cached. In
    periodic mode the builder is never called from here.
    """

    def __init__(self, config_store: ConfigStore, cache: CalendarCache, builder: Builder):
        self.config_store = config_store
        self.cache = cache
        self.builder = builder
        self._in_flight: dict[str, asyncio.Task[bool]] = {}

    async def get_document(self, identifier: str) -> str:
        """Return the document for ``identifier``.

        Raises:
            CalendarNotConfigured: identifier is not a configured calendar
            NoCachedDocument: configured, but nothing has been built yet
        """
        snapshot = self.config_store.snapshot()
        calendar_config = snapshot.calendars.get(identifier)
        if calendar_config is None:
            logger.debug("Request for unconfigured calendar %r", identifier)
            raise CalendarNotConfigured(identifier)

        if snapshot.operating_mode is OperatingMode.ON_DEMAND:
            if snapshot.coalesce_on_demand_builds:
                await self._coalesced_build(identifier, calendar_config, snapshot.build_timeout_seconds)
            else:
                await build_and_cache(
                    self.builder,
                    self.cache,
                    identifier,
                    calendar_config,
                    snapshot.build_timeout_seconds,
                )

        document = self.cache.get(identifier)
        if document is None:
            raise NoCachedDocument(identifier)
        return document

    async def _coalesced_build(self, identifier: str, calendar_config: Any, timeout: float) -> bool:
        """Join the running build for ``identifier`` or start one.

        The build runs as its own task and is shielded, so a disconnecting
        client does not cancel a build other requests are waiting on.
        """
        task = self._in_flight.get(identifier)
        if task is None:
            task = asyncio.create_task(
                build_and_cache(self.builder, self.cache, identifier, calendar_config, timeout),
                name=f"build:{identifier}",
            )
            self._in_flight[identifier] = task
            task.add_done_callback(lambda t, ident=identifier: self._forget(ident, t))
        else:
            logger.debug("Joining in-flight build for %s", identifier)
        return await asyncio.shield(task)

    def _forget(self, identifier: str, task: asyncio.Task[bool]) -> None:
        if self._in_flight.get(identifier) is task:
            del self._in_flight[identifier]

    def in_flight(self) -> list[str]:
        return list(self._in_flight)

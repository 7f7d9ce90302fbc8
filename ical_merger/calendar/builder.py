"""Build a servable calendar document from a calendar's source configuration."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..core.http_client import FETCH_CLIENT_ID, fetch_timeout, get_shared_client
from ..exceptions import BuildFailure
from .fetcher import ICSFetcher
from .merger import merge_calendars
from .models import CalendarConfig

logger = logging.getLogger(__name__)


class CalendarBuilder:
    """Fetches every feed of a calendar and merges them into one document.

    A build either produces a complete document or raises ``BuildFailure``;
    a single failing feed fails the whole build so a partial merge is never
    served in place of a previously complete one.
    """

    def __init__(
        self,
        settings: Any,
        shared_http_client: Optional[httpx.AsyncClient] = None,
        client_id: Optional[str] = None,
    ):
        """Initialize builder.

        Args:
            settings: Fetch tuning (request_timeout, max_retries, retry_backoff_factor)
            shared_http_client: Optional fixed HTTP client, used as-is for every build
            client_id: Pooled client looked up through get_shared_client on every
                build, so a client recycled for repeated failures is picked up
        """
        self.settings = settings
        self.shared_http_client = shared_http_client
        self.client_id = client_id

    async def _get_client(self) -> Optional[httpx.AsyncClient]:
        if self.shared_http_client is not None:
            return self.shared_http_client
        if self.client_id is None:
            return None
        request_timeout = float(getattr(self.settings, "request_timeout", 30))
        try:
            return await get_shared_client(self.client_id, timeout=fetch_timeout(request_timeout))
        except RuntimeError:
            logger.warning("Shared HTTP client unavailable, using a per-build client")
            return None

    async def build(self, identifier: str, calendar_config: CalendarConfig) -> str:
        """Fetch and merge all sources of one calendar.

        Raises:
            BuildFailure: If any source fails to fetch or parse
        """
        logger.debug(
            "Building calendar %s from %d source(s)", identifier, len(calendar_config.urls)
        )

        client = await self._get_client()
        fetcher = ICSFetcher(self.settings, client, self.client_id or FETCH_CLIENT_ID)
        async with fetcher:
            results = await asyncio.gather(
                *(fetcher.fetch_ics(source) for source in calendar_config.urls),
                return_exceptions=True,
            )

        fetched = []
        for source, result in zip(calendar_config.urls, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                raise BuildFailure(identifier, f"{source.display_name}: {result}") from result
            fetched.append((source, result.content))

        try:
            document = merge_calendars(identifier, fetched, calendar_config.name)
        except Exception as e:
            raise BuildFailure(identifier, e) from e

        logger.debug("Built calendar %s (%d bytes)", identifier, len(document))
        return document

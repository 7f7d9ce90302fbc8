"""HTTP client for downloading ICS calendar feeds."""

import asyncio
import logging
import random
from typing import Any, Optional

import httpx

from ..core.http_client import (
    FETCH_CLIENT_ID,
    fetch_timeout,
    record_client_error,
    record_client_success,
)
from ..exceptions import (
    CalendarAuthError,
    CalendarFetchError,
    CalendarNetworkError,
    CalendarTimeoutError,
)
from .models import CalendarSource, FetchResponse

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 30.0
JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3


class ICSFetcher:
    """Async downloader for ICS feeds with retry and backoff."""

    def __init__(
        self,
        settings: Any,
        shared_client: Optional[httpx.AsyncClient] = None,
        client_id: str = FETCH_CLIENT_ID,
    ) -> None:
        """Initialize ICS fetcher.

        Args:
            settings: Object exposing request_timeout, max_retries and
                retry_backoff_factor
            shared_client: Optional shared HTTP client for connection reuse
            client_id: Shared client id that failures and successes are recorded under
        """
        self.settings = settings
        self.client: Optional[httpx.AsyncClient] = shared_client
        self._use_shared_client = shared_client is not None
        self._client_id = client_id

    async def __aenter__(self) -> "ICSFetcher":
        await self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self._close_client()

    async def _close_client(self) -> None:
        """Close HTTP client if it's not shared."""
        if self.client is not None and not self._use_shared_client:
            if not self.client.is_closed:
                await self.client.aclose()
                logger.debug("Closed individual HTTP client")
            self.client = None

    async def _ensure_client(self) -> None:
        if self.client is None or self.client.is_closed:
            self._use_shared_client = False
            self.client = httpx.AsyncClient(
                timeout=fetch_timeout(self._default_read_timeout()),
                follow_redirects=True,
            )

    def _default_read_timeout(self) -> float:
        return float(getattr(self.settings, "request_timeout", 30))

    def _read_timeout(self, source: CalendarSource) -> float:
        """Per-source timeout, falling back to the global request_timeout."""
        if source.timeout is not None:
            return float(source.timeout)
        return self._default_read_timeout()

    async def fetch_ics(self, source: CalendarSource) -> FetchResponse:
        """Download ICS content from a source.

        Args:
            source: Source configuration (url, auth, custom headers, timeout)

        Returns:
            FetchResponse with the decoded body

        Raises:
            CalendarAuthError: HTTP 401/403
            CalendarTimeoutError: request timed out after all retries
            CalendarNetworkError: connection failures after all retries
            CalendarFetchError: any other HTTP status or an empty/non-ICS body
        """
        await self._ensure_client()
        logger.debug("Fetching ICS from %s", source.display_name)

        headers: dict[str, str] = {}
        headers.update(source.auth.get_headers())
        headers.update(source.custom_headers)

        read_timeout = self._read_timeout(source)
        try:
            response = await self._make_request_with_retry(
                source.url, headers, fetch_timeout(read_timeout)
            )
        except httpx.TimeoutException as e:
            raise CalendarTimeoutError(
                f"Request to {source.display_name} timed out after {read_timeout:g}s"
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                raise CalendarAuthError("Authentication failed - check credentials", status) from e
            if status == 403:
                raise CalendarAuthError("Access forbidden - insufficient permissions", status) from e
            raise CalendarFetchError(f"HTTP {status}: {e.response.reason_phrase}") from e
        except httpx.NetworkError as e:
            raise CalendarNetworkError(f"Network error: {e}") from e

        return self._create_response(source, response)

    def _calculate_backoff(self, attempt: int, corruption_detected: bool, backoff_factor: float) -> float:
        """Exponential backoff with jitter.

        Connection-reset style failures double the base delay, capped at
        MAX_BACKOFF_SECONDS.
        """
        base_backoff = backoff_factor**attempt
        if corruption_detected:
            base_backoff = min(base_backoff * 2, MAX_BACKOFF_SECONDS)

        jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base_backoff  # nosec B311 - jitter not cryptographic
        return base_backoff + jitter

    async def _make_request_with_retry(
        self, url: str, headers: dict[str, str], timeout: httpx.Timeout
    ) -> httpx.Response:
        """GET with retries on timeouts and network errors.

        HTTP status errors are raised immediately.
        """
        max_retries = int(getattr(self.settings, "max_retries", 3))
        backoff_factor = float(getattr(self.settings, "retry_backoff_factor", 1.5))
        corruption_detected = False
        attempt = 0

        while True:
            if self.client is None:
                raise CalendarFetchError("HTTP client not initialized")
            try:
                response = await self.client.get(url, headers=headers, timeout=timeout)
                response.raise_for_status()
            except httpx.HTTPStatusError:
                raise
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if self._use_shared_client:
                    await record_client_error(self._client_id)

                if any(
                    marker in str(e)
                    for marker in ("Connection broken", "Broken pipe", "Connection reset")
                ):
                    corruption_detected = True

                if attempt >= max_retries:
                    logger.warning("All %d attempts failed for %s: %s", attempt + 1, url, e)
                    raise

                backoff_time = self._calculate_backoff(attempt, corruption_detected, backoff_factor)
                logger.warning(
                    "Request failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1,
                    max_retries + 1,
                    backoff_time,
                    e,
                )
                await asyncio.sleep(backoff_time)
                attempt += 1
                continue

            if self._use_shared_client:
                await record_client_success(self._client_id)
            logger.debug(
                "Fetched %s (attempt %d) - %d bytes", url, attempt + 1, len(response.content)
            )
            return response

    def _create_response(self, source: CalendarSource, http_response: httpx.Response) -> FetchResponse:
        headers = dict(http_response.headers)
        content = http_response.text

        content_type = headers.get("content-type", "").lower()
        if content_type and not any(ct in content_type for ct in ("text/calendar", "text/plain")):
            logger.debug("Unexpected content type from %s: %s", source.display_name, content_type)

        if not content or not content.strip():
            raise CalendarFetchError(f"Empty ICS content received from {source.display_name}")

        if "BEGIN:VCALENDAR" not in content:
            raise CalendarFetchError(
                f"Content from {source.display_name} does not appear to be ICS"
            )

        return FetchResponse(
            content=content,
            status_code=http_response.status_code,
            source_url=source.url,
            headers=headers,
            etag=headers.get("etag"),
            last_modified=headers.get("last-modified"),
        )

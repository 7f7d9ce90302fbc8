"""Time-bounded, failure-isolated build-and-store step.

Shared by the refresh scheduler and the on-demand request path. A failed
build is logged and swallowed here; the cache keeps whatever it had.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from .cache import CalendarCache

logger = logging.getLogger(__name__)


class Builder(Protocol):
    async def build(self, identifier: str, calendar_config: Any) -> str: ...


async def build_and_cache(
    builder: Builder,
    cache: CalendarCache,
    identifier: str,
    calendar_config: Any,
    timeout: float,
) -> bool:
    """Build one calendar and store it.

    Args:
        builder: Object with an async ``build(identifier, calendar_config)``
        cache: Cache receiving the document on success
        identifier: Calendar identifier
        calendar_config: Source configuration passed to the builder
        timeout: Seconds before the build is abandoned

    Returns:
        True if the cache was updated, False if the build failed or timed out
    """
    try:
        document = await asyncio.wait_for(builder.build(identifier, calendar_config), timeout)
    except asyncio.TimeoutError:
        logger.error("Failed to build calendar %s: timed out after %.1fs", identifier, timeout)
        return False
    except Exception as exc:
        logger.error("Failed to build calendar %s: %s", identifier, exc)
        logger.debug("Build failure details for %s", identifier, exc_info=True)
        return False

    cache.put(identifier, document)
    return True

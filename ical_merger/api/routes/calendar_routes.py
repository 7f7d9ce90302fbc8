"""Calendar document route: ``GET /<identifier>``."""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

from ...exceptions import CalendarRequestError

logger = logging.getLogger(__name__)

CALENDAR_CONTENT_TYPE = "text/calendar"


def identifier_from_path(raw_path: str) -> str:
    """Join the request path segments into one literal calendar identifier.

    Empty segments (leading, trailing or doubled slashes) are dropped; no
    other normalization is applied.
    """
    return "/".join(segment for segment in raw_path.split("/") if segment)


def register_calendar_routes(app: web.Application, calendar_service: Any) -> None:
    """Register the calendar route.

    Args:
        app: aiohttp web application
        calendar_service: Object with ``async get_document(identifier) -> str``
    """

    async def get_calendar(request: web.Request) -> web.Response:
        identifier = identifier_from_path(request.match_info["ident"])

        try:
            document = await calendar_service.get_document(identifier)
        except CalendarRequestError as exc:
            logger.info("GET /%s -> %d (%s)", identifier, exc.status, exc.public_message)
            return web.Response(status=exc.status, text=exc.public_message)

        return web.Response(text=document, content_type=CALENDAR_CONTENT_TYPE, charset="utf-8")

    app.router.add_get("/{ident:.*}", get_calendar)

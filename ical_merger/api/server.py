"""ical_merger.api.server - asyncio HTTP server serving merged calendars.

This module wires the runtime together:
- an aiohttp web server answering ``GET /<identifier>``
- a background refresh scheduler (periodic mode only)
- one shared calendar cache and one shared httpx client pool
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Optional

from aiohttp import web

from ..calendar.builder import CalendarBuilder
from ..calendar_service import CalendarService
from ..config_loader import ApplicationConfig, validate_operating_mode
from ..core.cache import CalendarCache
from ..core.config_store import ConfigStore
from ..core.http_client import FETCH_CLIENT_ID, close_all_clients
from ..refresh_scheduler import RefreshScheduler
from .middleware import correlation_id_middleware
from .routes import register_calendar_routes

logger = logging.getLogger(__name__)

DEFAULT_LISTEN = "0.0.0.0"  # nosec: B104 - intentional default; override with --listen/ADDRESS
DEFAULT_PORT = 8080

CALENDAR_SERVICE_KEY = web.AppKey("calendar_service", CalendarService)


def make_app(calendar_service: CalendarService) -> web.Application:
    """Create the aiohttp application with routes wired to the calendar service."""
    app = web.Application(middlewares=[correlation_id_middleware])
    app[CALENDAR_SERVICE_KEY] = calendar_service

    register_calendar_routes(app, calendar_service)

    async def _shutdown(_app: web.Application) -> None:
        logger.info("Application shutdown requested")

    app.on_shutdown.append(_shutdown)
    return app


async def _serve(
    config: ApplicationConfig,
    listen: str = DEFAULT_LISTEN,
    port: int = DEFAULT_PORT,
    external_stop_event: Optional[asyncio.Event] = None,
    started: Optional[asyncio.Event] = None,
) -> None:
    """Run the server and the refresh scheduler until signalled to stop.

    Args:
        config: Configuration snapshot
        listen: Address to bind
        port: Port to bind
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are not registered (caller owns signal handling).
        started: Optional event set once the site is accepting connections
    """
    validate_operating_mode(config)

    config_store = ConfigStore(config)
    cache = CalendarCache()
    stop_event = external_stop_event or asyncio.Event()

    builder = CalendarBuilder(config, client_id=FETCH_CLIENT_ID)
    calendar_service = CalendarService(config_store, cache, builder)
    scheduler = RefreshScheduler(config_store, cache, builder)

    app = make_app(calendar_service)
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host=listen, port=port)
    try:
        await site.start()
    except OSError:
        logger.exception("Failed to start server on %s:%d", listen, port)
        await runner.cleanup()
        await close_all_clients()
        raise

    logger.info(
        "Serving %d calendar(s) on http://%s:%d (%s mode)",
        len(config.calendars),
        listen,
        port,
        config.operating_mode.value,
    )
    if started is not None:
        started.set()

    refresher = asyncio.create_task(scheduler.run(stop_event), name="refresh-scheduler")

    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    refresher.cancel()
    try:
        await refresher
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.warning("Refresher task error during shutdown: %s", e)

    await runner.cleanup()

    try:
        await close_all_clients()
    except Exception as e:
        logger.warning("Error cleaning up shared HTTP clients: %s", e)

    logger.info("Server shutdown complete")


def start_server(config: ApplicationConfig, listen: str = DEFAULT_LISTEN, port: int = DEFAULT_PORT) -> None:
    """Run the server, blocking until SIGINT/SIGTERM.

    Raises:
        SchedulerMisconfigured: Periodic mode without a refresh interval.
        OSError: The listen address could not be bound.
    """
    logger.debug("Running asyncio event loop for server")
    try:
        asyncio.run(_serve(config, listen, port))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")

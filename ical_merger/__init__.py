"""ical_merger - merge remote ICS feeds and serve them over HTTP.

Imports are kept light here; the server and its third-party dependencies are
only loaded when a command actually needs them.
"""

__version__ = "0.1.0"

from typing import Any, Optional, TextIO

LOG_FORMAT = (
    "%(asctime)s [%(request_id)s] %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
)
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def _make_console_handler(stream: TextIO) -> Any:
    """Colorized stream handler whose records carry the request correlation ID."""
    import logging

    from colorlog import ColoredFormatter

    from .merger_logging import CorrelationIdFilter

    handler = logging.StreamHandler(stream=stream)
    handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
    handler.addFilter(CorrelationIdFilter())
    return handler


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream colorized output to stderr.

    Only installs a handler when the root logger has none, so embedding
    applications and test runners keep their own configuration.

    Honors ICAL_MERGER_DEBUG (truthy values: "1", "true", "yes", "on") to
    force DEBUG verbosity without changing command line flags.
    """
    import logging
    import os
    import sys

    debug_env = os.environ.get("ICAL_MERGER_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    if not root.handlers:
        root.addHandler(_make_console_handler(sys.stderr))

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def check_config(args: Any) -> int:
    """Load and validate the configuration, print a summary.

    Returns:
        Process exit code (0 valid, 1 invalid)
    """
    import logging

    from .config_loader import load_config, validate_operating_mode
    from .exceptions import ConfigError

    logger = logging.getLogger(__name__)
    path = getattr(args, "path", None) or getattr(args, "config", None)

    try:
        config = load_config(path)
        mode = validate_operating_mode(config)
    except ConfigError as exc:
        logger.error("Configuration invalid: %s", exc)
        print(f"Configuration invalid: {exc}")
        return 1

    if mode.value == "periodic":
        mode_text = f"periodic (every {config.refresh_interval}s)"
    else:
        mode_text = "on demand"
    print(f"Configuration OK: {len(config.calendars)} calendar(s), refreshed {mode_text}")
    for identifier, calendar in sorted(config.calendars.items()):
        print(f"  /{identifier}: {len(calendar.urls)} source(s)")
    return 0


def run_server(args: Any) -> int:
    """Validate configuration and serve until shutdown.

    Returns:
        Process exit code
    """
    import logging

    from .config_loader import load_config, validate_operating_mode
    from .exceptions import ConfigError
    from .merger_logging import configure_merger_logging

    logger = logging.getLogger(__name__)
    configure_merger_logging(logging.getLogger().level)

    try:
        config = load_config(getattr(args, "config", None))
        validate_operating_mode(config)
    except ConfigError as exc:
        logger.critical("Refusing to start: %s", exc)
        return 1

    # Server import pulls in aiohttp/httpx/icalendar; only pay for it when serving
    from .api.server import start_server

    start_server(config, listen=args.listen, port=args.port)
    return 0

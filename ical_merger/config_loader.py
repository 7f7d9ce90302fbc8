"""ical_merger.config_loader

Configuration loader for ical_merger.

- YAML (PyYAML) by default, JSON for files ending in ``.json``.
- The loaded ``ApplicationConfig`` is immutable; it is the configuration
  snapshot shared by the refresh scheduler and every request.
"""

from __future__ import annotations

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .calendar.models import CalendarConfig
from .exceptions import ConfigError, SchedulerMisconfigured

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ICAL_MERGER_CONFIG"
DEFAULT_CONFIG_FILENAME = "config.yaml"


class OperatingMode(str, Enum):
    """How calendars are kept fresh."""

    PERIODIC = "periodic"
    ON_DEMAND = "on_demand"


class ApplicationConfig(BaseModel):
    """Typed, immutable configuration snapshot.

    Fields:
        fetch_on_demand: build a calendar on every request instead of on a timer
        fetch_interval_seconds: refresh period in periodic mode
        refresh_on_start: in periodic mode, build everything once at startup
            instead of waiting for the first interval
        build_timeout_seconds: upper bound for one calendar build
        coalesce_on_demand_builds: share one in-flight build between
            concurrent on-demand requests for the same calendar
        request_timeout: HTTP read timeout for feed fetches
        max_retries: retry attempts for network/timeout failures
        retry_backoff_factor: base for exponential retry backoff
        calendars: identifier -> calendar source configuration
    """

    fetch_on_demand: bool = False
    fetch_interval_seconds: Optional[float] = None
    refresh_on_start: bool = False
    build_timeout_seconds: float = Field(default=120.0, gt=0)
    coalesce_on_demand_builds: bool = True
    request_timeout: int = Field(default=30, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_backoff_factor: float = Field(default=1.5, gt=0)
    calendars: dict[str, CalendarConfig] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def operating_mode(self) -> OperatingMode:
        return OperatingMode.ON_DEMAND if self.fetch_on_demand else OperatingMode.PERIODIC

    @property
    def refresh_interval(self) -> float:
        """Refresh period in seconds for periodic mode.

        Raises:
            SchedulerMisconfigured: If no positive interval is configured.
        """
        interval = self.fetch_interval_seconds
        if interval is None or interval <= 0:
            raise SchedulerMisconfigured(
                "fetch_interval_seconds must be a positive number of seconds "
                "unless fetch_on_demand is enabled; calendars would never be refreshed"
            )
        return interval


def validate_operating_mode(config: ApplicationConfig) -> OperatingMode:
    """Check the operating mode is runnable and return it.

    Raises:
        SchedulerMisconfigured: Periodic mode without a usable interval.
    """
    mode = config.operating_mode
    if mode is OperatingMode.PERIODIC:
        _ = config.refresh_interval
    elif config.fetch_interval_seconds is not None:
        logger.warning(
            "fetch_interval_seconds=%s is ignored because fetch_on_demand is enabled",
            config.fetch_interval_seconds,
        )
    return mode


def _load_yaml_or_json(path: Path) -> Any:
    """Load a YAML or JSON document from ``path``.

    PyYAML is imported lazily to keep ``import ical_merger`` cheap.
    """
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc

    import yaml  # noqa: PLC0415

    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    # safe_load returns None for empty files
    return {} if loaded is None else loaded


def resolve_config_path(path: Optional[str] = None) -> Path:
    """Pick the config file: explicit path, then $ICAL_MERGER_CONFIG, then ./config.yaml."""
    if path:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path.cwd() / DEFAULT_CONFIG_FILENAME


def config_from_dict(data: dict[str, Any]) -> ApplicationConfig:
    """Validate a plain mapping into an ApplicationConfig.

    Raises:
        ConfigError: If validation fails.
    """
    try:
        return ApplicationConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_config(path: Optional[str] = None) -> ApplicationConfig:
    """Load configuration from a YAML/JSON file.

    Raises:
        ConfigError: If the file is missing, unparseable, not a mapping or invalid.
    """
    p = resolve_config_path(path)
    logger.debug("Attempting to load config from %s", p)
    if not p.is_file():
        raise ConfigError(f"Config file {p} not found")

    raw = _load_yaml_or_json(p)
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ConfigError("Config file must contain a mapping at top level")

    cfg = config_from_dict(raw)
    logger.info(
        "Loaded configuration from %s (%d calendars, mode=%s)",
        p,
        len(cfg.calendars),
        cfg.operating_mode.value,
    )
    logger.debug("Configured calendars: %s", ", ".join(sorted(cfg.calendars)) or "<none>")
    return cfg

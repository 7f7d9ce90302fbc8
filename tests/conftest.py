"""Shared fixtures for ical_merger tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from types import SimpleNamespace
from typing import Any, Optional

import pytest

from ical_merger.config_loader import ApplicationConfig, config_from_dict
from ical_merger.core.cache import CalendarCache
from ical_merger.core.http_client import close_all_clients


class StubBuilder:
    """Calendar builder double recording every build it is asked for.

    ``results`` maps identifier -> document text or an exception instance to
    raise. Identifiers without an entry build to ``"DOC:<identifier>"``.
    """

    def __init__(self, results: Optional[dict[str, Any]] = None, delay: float = 0.0):
        self.results = dict(results or {})
        self.delay = delay
        self.calls: list[str] = []

    async def build(self, identifier: str, calendar_config: Any) -> str:
        self.calls.append(identifier)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.get(identifier, f"DOC:{identifier}")
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def stub_builder_factory() -> Callable[..., StubBuilder]:
    """Return the StubBuilder class so tests can configure results and delays."""
    return StubBuilder


@pytest.fixture
def make_config() -> Callable[..., ApplicationConfig]:
    """Build an ApplicationConfig with one example feed per identifier.

    Usage:
        make_config(["a", "b"], fetch_interval_seconds=60)
    """

    def factory(identifiers: Iterable[str] = ("a",), **overrides: Any) -> ApplicationConfig:
        data: dict[str, Any] = {
            "calendars": {
                ident: {"urls": [f"https://calendars.example.com/{ident}.ics"]}
                for ident in identifiers
            }
        }
        if not overrides.get("fetch_on_demand") and "fetch_interval_seconds" not in overrides:
            data["fetch_interval_seconds"] = 3600
        data.update(overrides)
        return config_from_dict(data)

    return factory


@pytest.fixture
def cache() -> CalendarCache:
    return CalendarCache()


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Minimal fetch settings: no retries so failure tests stay fast."""
    return SimpleNamespace(
        request_timeout=5,
        max_retries=0,
        retry_backoff_factor=1.5,
    )


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment variables from leaking into tests."""
    for name in ("ICAL_MERGER_CONFIG", "ICAL_MERGER_DEBUG", "ICAL_MERGER_LOG_LEVEL", "PORT", "ADDRESS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test."""
    yield
    await close_all_clients()


# ==================== ICS Test Data Fixtures ====================


@pytest.fixture
def team_ics() -> str:
    """Calendar with a Berlin VTIMEZONE and two events (one recurring override)."""
    return (
        "BEGIN:VCALENDAR\r\n"
        "VERSION:2.0\r\n"
        "PRODID:-//Team Test//EN\r\n"
        "BEGIN:VTIMEZONE\r\n"
        "TZID:Europe/Berlin\r\n"
        "BEGIN:STANDARD\r\n"
        "DTSTART:19701025T030000\r\n"
        "TZOFFSETFROM:+0200\r\n"
        "TZOFFSETTO:+0100\r\n"
        "TZNAME:CET\r\n"
        "END:STANDARD\r\n"
        "END:VTIMEZONE\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:standup@team.test\r\n"
        "DTSTAMP:20240101T080000Z\r\n"
        "DTSTART;TZID=Europe/Berlin:20240115T090000\r\n"
        "DTEND;TZID=Europe/Berlin:20240115T091500\r\n"
        "RRULE:FREQ=DAILY;COUNT=5\r\n"
        "SUMMARY:Standup\r\n"
        "END:VEVENT\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:standup@team.test\r\n"
        "RECURRENCE-ID;TZID=Europe/Berlin:20240116T090000\r\n"
        "DTSTAMP:20240101T080000Z\r\n"
        "DTSTART;TZID=Europe/Berlin:20240116T100000\r\n"
        "DTEND;TZID=Europe/Berlin:20240116T101500\r\n"
        "SUMMARY:Standup (moved)\r\n"
        "END:VEVENT\r\n"
        "END:VCALENDAR\r\n"
    )


@pytest.fixture
def personal_ics() -> str:
    """Calendar with a private appointment, a duplicate of the team standup and the same VTIMEZONE."""
    return (
        "BEGIN:VCALENDAR\r\n"
        "VERSION:2.0\r\n"
        "PRODID:-//Personal Test//EN\r\n"
        "BEGIN:VTIMEZONE\r\n"
        "TZID:Europe/Berlin\r\n"
        "BEGIN:STANDARD\r\n"
        "DTSTART:19701025T030000\r\n"
        "TZOFFSETFROM:+0200\r\n"
        "TZOFFSETTO:+0100\r\n"
        "TZNAME:CET\r\n"
        "END:STANDARD\r\n"
        "END:VTIMEZONE\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:dentist@personal.test\r\n"
        "DTSTAMP:20240101T080000Z\r\n"
        "DTSTART:20240117T140000Z\r\n"
        "DTEND:20240117T150000Z\r\n"
        "SUMMARY:Dentist\r\n"
        "LOCATION:Main Street 1\r\n"
        "DESCRIPTION:Bring insurance card\r\n"
        "END:VEVENT\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:standup@team.test\r\n"
        "DTSTAMP:20240101T080000Z\r\n"
        "DTSTART;TZID=Europe/Berlin:20240115T090000\r\n"
        "DTEND;TZID=Europe/Berlin:20240115T091500\r\n"
        "SUMMARY:Standup copy\r\n"
        "END:VEVENT\r\n"
        "END:VCALENDAR\r\n"
    )

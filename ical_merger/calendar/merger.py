"""Merge several fetched ICS feeds into a single VCALENDAR document.

Events and timezone definitions are copied verbatim; nothing here expands
recurrences or converts times. The only rewrites are the per-source
``hide_details`` and ``summary_prefix`` transformations.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Optional

from icalendar import Calendar, Event

from ..exceptions import CalendarParseError
from .models import CalendarSource

logger = logging.getLogger(__name__)

PRODID = "-//ical-merger//EN"
BUSY_SUMMARY = "Busy"

# Properties dropped from events of sources configured with hide_details
PRIVATE_PROPERTIES = ("DESCRIPTION", "LOCATION", "ATTENDEE", "ORGANIZER", "URL", "ATTACH", "COMMENT")


def parse_calendar(content: str, source_name: str) -> Calendar:
    """Parse one ICS body into an icalendar ``Calendar``.

    Raises:
        CalendarParseError: If the body is not a single VCALENDAR.
    """
    try:
        calendar = Calendar.from_ical(content)
    except (ValueError, IndexError, KeyError) as e:
        raise CalendarParseError(f"Could not parse ICS from {source_name}: {e}") from e

    if getattr(calendar, "name", None) != "VCALENDAR":
        raise CalendarParseError(f"Top-level component from {source_name} is not a VCALENDAR")
    return calendar


def _event_key(event: Event) -> Optional[tuple[str, str]]:
    uid = event.get("UID")
    if uid is None:
        return None
    recurrence_id = event.get("RECURRENCE-ID")
    recurrence_key = recurrence_id.to_ical().decode("utf-8") if recurrence_id is not None else ""
    return str(uid), recurrence_key


def _apply_source_rules(event: Event, source: CalendarSource) -> None:
    if source.hide_details:
        for prop in PRIVATE_PROPERTIES:
            event.pop(prop, None)
        event.pop("SUMMARY", None)
        event.add("summary", BUSY_SUMMARY)

    if source.summary_prefix:
        summary = str(event.get("SUMMARY", ""))
        event.pop("SUMMARY", None)
        event.add("summary", f"{source.summary_prefix}{summary}")


def merge_calendars(
    identifier: str,
    fetched: Iterable[tuple[CalendarSource, str]],
    calendar_name: Optional[str] = None,
) -> str:
    """Merge fetched feeds into one serialized calendar.

    Args:
        identifier: Calendar identifier, used as the default calendar name
        fetched: (source, ics_body) pairs in configuration order
        calendar_name: Optional X-WR-CALNAME override

    Returns:
        The merged calendar as ICS text

    Raises:
        CalendarParseError: If any body cannot be parsed
    """
    merged = Calendar()
    merged.add("prodid", PRODID)
    merged.add("version", "2.0")
    merged.add("calscale", "GREGORIAN")
    merged.add("x-wr-calname", calendar_name or identifier)

    seen_timezones: set[str] = set()
    seen_events: set[tuple[str, str]] = set()
    event_count = 0
    duplicate_count = 0

    for source, content in fetched:
        calendar = parse_calendar(content, source.display_name)

        for component in calendar.subcomponents:
            if component.name == "VTIMEZONE":
                tzid = str(component.get("TZID", ""))
                if tzid in seen_timezones:
                    continue
                seen_timezones.add(tzid)
                merged.add_component(component)

            elif component.name == "VEVENT":
                key = _event_key(component)
                if key is not None:
                    if key in seen_events:
                        duplicate_count += 1
                        continue
                    seen_events.add(key)
                _apply_source_rules(component, source)
                merged.add_component(component)
                event_count += 1

    logger.debug(
        "Merged calendar %s: %d events, %d timezones, %d duplicates dropped",
        identifier,
        event_count,
        len(seen_timezones),
        duplicate_count,
    )
    return merged.to_ical().decode("utf-8")

"""Exception hierarchy for ical_merger.

Errors are split by where they stop propagating:

- configuration errors abort startup (``check`` and ``serve`` exit non-zero)
- build errors never leave the component that invoked the builder
- request errors become user-visible 404 responses at the HTTP boundary
"""

from __future__ import annotations


class IcalMergerError(Exception):
    """Base exception for all ical_merger errors."""


class ConfigError(IcalMergerError):
    """Configuration file could not be loaded or is invalid.

    Raised when:
    - The configuration file is missing or unreadable
    - The top level of the file is not a mapping
    - A value fails model validation
    - A snapshot replacement would change the operating mode
    """


class SchedulerMisconfigured(ConfigError):
    """Periodic mode was selected without a usable refresh interval.

    Fatal at startup: without an interval the refresh scheduler cannot run and
    the cache would silently never be populated.
    """


class BuildFailure(IcalMergerError):
    """The calendar builder failed for one identifier."""

    def __init__(self, identifier: str, cause: BaseException | str):
        self.identifier = identifier
        self.cause = cause
        super().__init__(f"Failed to build calendar {identifier}: {cause}")


class CalendarFetchError(IcalMergerError):
    """Base exception for ICS fetch errors."""


class CalendarAuthError(CalendarFetchError):
    """Authentication error during ICS fetch."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CalendarNetworkError(CalendarFetchError):
    """Network error during ICS fetch."""


class CalendarTimeoutError(CalendarFetchError):
    """Timeout error during ICS fetch."""


class CalendarParseError(IcalMergerError):
    """Fetched content is not a parseable iCalendar document."""


class CalendarRequestError(IcalMergerError):
    """A calendar request could not be answered.

    Subclasses carry the HTTP status and the public message written to the
    response body.
    """

    status: int = 404
    public_message: str = "Calendar not found"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"{self.public_message}: {identifier!r}")


class CalendarNotConfigured(CalendarRequestError):
    """Requested identifier is not in the configured set."""

    public_message = "Calendar not found"


class NoCachedDocument(CalendarRequestError):
    """Identifier is configured but no document has been built yet."""

    public_message = "No calendar found"

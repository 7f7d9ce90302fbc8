"""Calendar fetching and merging."""

from .builder import CalendarBuilder
from .fetcher import ICSFetcher
from .merger import merge_calendars
from .models import AuthType, CalendarConfig, CalendarSource, FetchResponse, SourceAuth

__all__ = [
    "AuthType",
    "CalendarBuilder",
    "CalendarConfig",
    "CalendarSource",
    "FetchResponse",
    "ICSFetcher",
    "SourceAuth",
    "merge_calendars",
]

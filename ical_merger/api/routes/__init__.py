"""Route modules for the ical_merger server."""

from .calendar_routes import register_calendar_routes

__all__ = ["register_calendar_routes"]

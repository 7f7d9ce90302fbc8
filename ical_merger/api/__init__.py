"""HTTP surface of ical_merger."""

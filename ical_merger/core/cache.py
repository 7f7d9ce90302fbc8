"""In-memory cache of built calendar documents, keyed by calendar identifier.

No persistence, eviction or TTL: the identifier set is bounded by the
configuration and documents are rebuilt from scratch after a restart.
"""

from __future__ import annotations

import datetime
import logging
import threading
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Most recent successfully built document for one identifier.

    Attributes:
        document: Complete serialized calendar
        built_at: UTC time the build finished
    """

    document: str
    built_at: datetime.datetime


class CalendarCache:
    """Thread-safe identifier -> CacheEntry mapping.

    Entries are immutable and replaced whole, so a reader sees either the old
    or the new document, never a mix. The lock is held only for the single
    dict operation and never across a build.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, identifier: str) -> Optional[str]:
        entry = self.get_entry(identifier)
        return entry.document if entry is not None else None

    def get_entry(self, identifier: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(identifier)

    def put(self, identifier: str, document: str) -> CacheEntry:
        """Replace the entry for ``identifier``; last writer wins."""
        entry = CacheEntry(document=document, built_at=datetime.datetime.now(datetime.timezone.utc))
        with self._lock:
            previous = self._entries.get(identifier)
            self._entries[identifier] = entry

        if previous is None:
            logger.debug("Cached first document for %s (%d bytes)", identifier, len(document))
        else:
            logger.debug(
                "Replaced document for %s (%d -> %d bytes)",
                identifier,
                len(previous.document),
                len(document),
            )
        return entry

    def identifiers(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

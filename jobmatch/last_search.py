"""The shared "last search" slot written by both the results and dashboard paths."""
from __future__ import annotations

import threading

from jobmatch.errors import DecodingError
from jobmatch.log import get_logger, redact
from jobmatch.models import LastSearchSummary
from jobmatch.storage import KeyValueStore

log = get_logger(__name__)

LAST_SEARCH_KEY = "jobmatch.last_search"


class LastSearchStore:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._lock = threading.Lock()

    def load(self) -> LastSearchSummary | None:
        data = self.store.get_json(LAST_SEARCH_KEY)
        if data is None:
            return None
        try:
            return LastSearchSummary.from_dict(data)
        except (DecodingError, TypeError, AttributeError) as exc:
            log.warning("Ignoring unreadable last-search record: %s", exc)
            return None

    def record(self, summary: LastSearchSummary) -> bool:
        """Store ``summary`` only if it is strictly newer than the cached one."""
        with self._lock:
            cached = self.load()
            if not summary.is_newer_than(cached):
                log.debug(
                    "Keeping cached last search %s (%s >= %s)",
                    redact(cached.view_token), cached.timestamp_iso, summary.timestamp_iso,
                )
                return False
            self.store.set_json(LAST_SEARCH_KEY, summary.to_dict())
        log.info(
            "Last search is now %s (%d matches)",
            redact(summary.view_token), summary.total_matches,
        )
        return True

    def clear(self) -> None:
        with self._lock:
            self.store.remove(LAST_SEARCH_KEY)

"""Résumé score and suggested roles for the most recent search."""
from __future__ import annotations

import threading

from jobmatch.client import APIClient
from jobmatch.errors import RequestError
from jobmatch.last_search import LastSearchStore
from jobmatch.log import get_logger, redact
from jobmatch.state import Observable, ViewState

log = get_logger(__name__)

LOAD_FAILED = "Failed to load insights. Please try again."


class InsightsLoader(Observable):
    def __init__(self, client: APIClient, last_search: LastSearchStore) -> None:
        super().__init__()
        self.client = client
        self.last_search = last_search
        self._lock = threading.RLock()
        self.view_state = ViewState.loading()
        self.resume_score: int | None = None
        self.resume_feedback: str | None = None
        self.suggested_roles: list[str] = []

    def load(self) -> ViewState:
        with self._lock:
            self.view_state = ViewState.loading()
        self._notify()

        cached = self.last_search.load()
        if cached is None:
            log.info("No recent search session found")
            return self._finish(ViewState.empty())

        log.info("Loading insights for %s", redact(cached.view_token))
        try:
            status = self.client.get_session_status(cached.view_token)
        except RequestError as exc:
            log.warning("Insights request failed: %s", exc)
            return self._finish(ViewState.error(LOAD_FAILED))

        with self._lock:
            self.resume_score = status.resume_score
            self.resume_feedback = status.resume_feedback
            self.suggested_roles = list(status.realistic_target_roles)
            has_data = self.resume_score is not None or bool(self.suggested_roles)
        return self._finish(ViewState.loaded() if has_data else ViewState.empty())

    def _finish(self, state: ViewState) -> ViewState:
        with self._lock:
            self.view_state = state
        self._notify()
        return state

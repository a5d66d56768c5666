"""Dashboard history and its synchronisation with the cached last search."""
from __future__ import annotations

import threading

from jobmatch.client import APIClient
from jobmatch.errors import HTTPError, RequestError, Unauthorized
from jobmatch.last_search import LastSearchStore
from jobmatch.log import get_logger
from jobmatch.models import Bucket, Dashboard, DashboardSessionSummary
from jobmatch.results import ResultCache
from jobmatch.state import Observable, ViewState

log = get_logger(__name__)

SIGN_IN_MESSAGE = "Please sign in to view your dashboard."
LOAD_FAILED = "Unable to load your dashboard. Please try again."


def latest_session(dashboard: Dashboard) -> DashboardSessionSummary | None:
    """Most recent session that can be reopened (has a view token, did not fail)."""
    candidates = [s for s in dashboard.recent_sessions if s.view_token and not s.is_failed]
    if not candidates:
        return None
    return max(candidates, key=lambda s: s.created_at)


class DashboardReconciler(Observable):
    def __init__(self, client: APIClient, last_search: LastSearchStore) -> None:
        super().__init__()
        self.client = client
        self.last_search = last_search
        self._lock = threading.RLock()
        self._view_state = ViewState.loading()
        self._dashboard: Dashboard | None = None

    @property
    def view_state(self) -> ViewState:
        with self._lock:
            return self._view_state

    @property
    def dashboard(self) -> Dashboard | None:
        with self._lock:
            return self._dashboard

    def _set(self, state: ViewState, dashboard: Dashboard | None = None) -> ViewState:
        with self._lock:
            self._view_state = state
            if dashboard is not None:
                self._dashboard = dashboard
        self._notify()
        return state

    def load_dashboard(self) -> ViewState:
        self._set(ViewState.loading())
        try:
            dashboard = self.client.get_dashboard()
        except Unauthorized as exc:
            log.info("Dashboard needs sign-in: %s", exc)
            return self._set(ViewState.sign_in_required(SIGN_IN_MESSAGE))
        except HTTPError as exc:
            if exc.status == 404:
                log.info("No dashboard data yet (404)")
                return self._set(ViewState.empty(), Dashboard())
            log.warning("Dashboard request failed: %s", exc)
            return self._set(ViewState.error(LOAD_FAILED))
        except RequestError as exc:
            log.warning("Dashboard request failed: %s", exc)
            return self._set(ViewState.error(LOAD_FAILED))

        log.info(
            "Loaded dashboard: %d searches, %d recent sessions",
            dashboard.summary.total_searches, len(dashboard.recent_sessions),
        )
        self.reconcile(dashboard)
        if dashboard.is_empty:
            return self._set(ViewState.empty(), dashboard)
        return self._set(ViewState.loaded(), dashboard)

    refresh = load_dashboard

    def reconcile(self, dashboard: Dashboard) -> bool:
        """Offer the newest dashboard session to the last-search slot."""
        session = latest_session(dashboard)
        if session is None:
            return False
        summary = session.to_last_search()
        if summary is None:
            return False
        return self.last_search.record(summary)

    def open_session(
        self, session: DashboardSessionSummary, bucket: Bucket = Bucket.ALL
    ) -> ResultCache:
        """Load a past session's jobs; the last-search slot is left untouched."""
        if not session.view_token:
            raise ValueError(f"session {session.id} has no view token")
        results = ResultCache(
            self.client,
            session.view_token,
            bucket=bucket,
            current_role_title=session.current_role_title,
            last_search_title=session.search_intent_title,
        )
        results.load()
        return results

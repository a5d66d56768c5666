from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from conftest import job_payload
from jobmatch.dashboard import LOAD_FAILED, SIGN_IN_MESSAGE, DashboardReconciler, latest_session
from jobmatch.errors import HTTPError, NetworkError, Unauthorized
from jobmatch.last_search import LastSearchStore
from jobmatch.models import (
    Dashboard,
    DashboardMetrics,
    DashboardSessionSummary,
    LastSearchSummary,
    parse_jobs,
)
from jobmatch.state import ViewKind

T1 = "2025-01-10T12:00:00+00:00"


class _FakeClient:
    def __init__(self, dashboard=None, error: Exception | None = None, jobs=None):
        self.dashboard = dashboard
        self.error = error
        self.jobs = jobs or []
        self.job_requests = []

    def get_dashboard(self):
        if self.error is not None:
            raise self.error
        return self.dashboard

    def get_jobs(self, view_token, bucket):
        self.job_requests.append((view_token, bucket))
        return list(self.jobs)


def session(sid: str, created: str, token: str | None = "tok-new", status: str = "completed", **kw):
    return DashboardSessionSummary(
        id=sid,
        created_at=datetime.fromisoformat(created),
        view_token=token,
        status=status,
        total_jobs=kw.pop("total_jobs", 12),
        **kw,
    )


def dashboard_with(*sessions) -> Dashboard:
    return Dashboard(summary=DashboardMetrics(total_searches=len(sessions)), recent_sessions=list(sessions))


@pytest.fixture
def last_search(store):
    ls = LastSearchStore(store)
    ls.record(LastSearchSummary("tok-old", T1, 5, last_search_title="Analyst"))
    return ls


@pytest.mark.parametrize("created, replaced", [
    ("2025-01-10T12:00:01+00:00", True),
    (T1, False),
    ("2025-01-10T11:59:59+00:00", False),
])
def test_dashboard_replaces_last_search_only_when_strictly_newer(last_search, created, replaced):
    reconciler = DashboardReconciler(_FakeClient(), last_search)

    assert reconciler.reconcile(dashboard_with(session("s1", created))) is replaced

    expected = "tok-new" if replaced else "tok-old"
    assert last_search.load().view_token == expected


def test_reconciled_summary_carries_session_fields(store):
    last_search = LastSearchStore(store)
    reconciler = DashboardReconciler(_FakeClient(), last_search)

    reconciler.reconcile(dashboard_with(session(
        "s1", "2025-02-01T09:00:00+00:00",
        title="Data Engineer", current_role_title="Analyst", total_jobs=31,
    )))

    summary = last_search.load()
    assert summary.total_matches == 31
    assert summary.last_search_title == "Data Engineer"
    assert summary.current_role_title == "Analyst"


def test_latest_session_skips_failed_and_tokenless():
    newest_failed = session("s3", "2025-03-01T00:00:00+00:00", status="failed")
    no_token = session("s2", "2025-02-15T00:00:00+00:00", token=None)
    usable = session("s1", "2025-02-01T00:00:00+00:00")

    assert latest_session(dashboard_with(newest_failed, no_token, usable)) is usable
    assert latest_session(dashboard_with(newest_failed, no_token)) is None


def test_load_dashboard_reconciles_and_loads(last_search):
    client = _FakeClient(dashboard_with(session("s1", "2025-02-01T00:00:00+00:00")))
    reconciler = DashboardReconciler(client, last_search)

    state = reconciler.load_dashboard()

    assert state.kind is ViewKind.LOADED
    assert last_search.load().view_token == "tok-new"


def test_load_dashboard_without_sessions_is_empty(last_search):
    reconciler = DashboardReconciler(_FakeClient(Dashboard()), last_search)

    assert reconciler.load_dashboard().kind is ViewKind.EMPTY
    assert last_search.load().view_token == "tok-old"


@pytest.mark.parametrize("error, kind, message", [
    (Unauthorized("No active session"), ViewKind.SIGN_IN_REQUIRED, SIGN_IN_MESSAGE),
    (HTTPError(404, "not found"), ViewKind.EMPTY, None),
    (HTTPError(500, "boom"), ViewKind.ERROR, LOAD_FAILED),
    (NetworkError("down", is_offline=True), ViewKind.ERROR, LOAD_FAILED),
])
def test_load_dashboard_failures(last_search, error, kind, message):
    reconciler = DashboardReconciler(_FakeClient(error=error), last_search)

    state = reconciler.load_dashboard()

    assert state.kind is kind
    assert state.message == message
    assert last_search.load().view_token == "tok-old"


def test_opening_a_past_session_leaves_last_search_alone(last_search):
    client = _FakeClient(jobs=parse_jobs([job_payload(1)]))
    reconciler = DashboardReconciler(client, last_search)
    past = session("s9", "2026-01-01T00:00:00+00:00", token="tok-past")

    results = reconciler.open_session(past)

    assert [j.external_job_id for j in results.jobs] == ["ext-1"]
    assert client.job_requests[0][0] == "tok-past"
    assert last_search.load().view_token == "tok-old"


def test_opening_a_session_without_token_is_rejected(last_search):
    reconciler = DashboardReconciler(_FakeClient(), last_search)

    with pytest.raises(ValueError):
        reconciler.open_session(session("s1", T1, token=None))


def test_dashboard_wire_format():
    dashboard = Dashboard.from_dict({
        "summary": {
            "total_searches": 3,
            "unique_jobs_found": 40,
            "local_jobs_count": 10,
            "national_jobs_count": 20,
            "remote_jobs_count": 10,
            "avg_jobs_per_search": "13.3",
        },
        "recent_sessions": [{
            "search_session_id": "abcdef123456",
            "created_at": "2025-01-10T12:00:00Z",
            "title_or_inferred_role": "Data Engineer",
            "total_jobs": 13,
            "status": "completed",
            "view_token": "tok123",
        }],
        "recent_starred_jobs": [{"job_id": "ext-1", "title": "Data Engineer"}],
    })

    assert dashboard.summary.avg_jobs_per_search == pytest.approx(13.3)
    s = dashboard.recent_sessions[0]
    assert s.created_at == datetime(2025, 1, 10, 12, tzinfo=timezone.utc)
    assert s.display_title == "Data Engineer"
    assert s.search_intent_title == "Data Engineer"
    assert dashboard.recent_starred_jobs[0].company == "Unknown Company"


def test_subscribers_can_read_state_from_another_thread(last_search):
    client = _FakeClient(dashboard_with(session("s1", "2025-02-01T00:00:00+00:00")))
    reconciler = DashboardReconciler(client, last_search)
    seen = []

    def on_change(component):
        reader = threading.Thread(target=lambda: seen.append(component.view_state.kind))
        reader.start()
        reader.join(2)

    reconciler.subscribe(on_change)
    reconciler.load_dashboard()

    assert seen == [ViewKind.LOADING, ViewKind.LOADED]

from __future__ import annotations

import threading

import pytest
import requests

from conftest import FakeResponse, job_payload
from jobmatch.errors import AnalysisFailed, NetworkError, PollTimeout
from jobmatch.last_search import LastSearchStore
from jobmatch.models import FailureReason, SessionState
from jobmatch.poller import (
    ANALYSIS_FAILED_FALLBACK,
    TIMEOUT_MESSAGE,
    SessionPoller,
)
from jobmatch.results import ResultCache

SESSION = "/api/public/session"
JOBS = "/api/public/jobs"


def status(value: str, **extra) -> FakeResponse:
    return FakeResponse(200, {"status": value, "created_at": "2025-01-10T12:00:00Z", **extra})


def test_completed_analysis_loads_jobs_and_records_last_search(client, http, store):
    http.add("GET", SESSION, status("processing"), status("completed"))
    http.add("GET", JOBS, FakeResponse(200, [job_payload(1), job_payload(2), job_payload(3)]))
    last_search = LastSearchStore(store)
    results = ResultCache(client, "tok123", last_search)
    poller = SessionPoller(client, results=results, interval=0)

    poller.start("tok123")
    poller.join(5)

    session = poller.session
    assert session.status is SessionState.COMPLETED
    assert session.poll_count == 2
    assert len(http.calls_to("GET", SESSION)) == 2
    assert http.calls_to("GET", JOBS)[0].kwargs["params"] == {"token": "tok123"}
    assert len(results.jobs) == 3
    summary = last_search.load()
    assert summary.view_token == "tok123"
    assert summary.total_matches == 3
    assert summary.last_search_title == "Data Engineer"
    poller.raise_for_failure()


def test_server_failure_surfaces_message_and_offers_new_upload(client, http):
    http.add("GET", SESSION, status("failed", error_message="Could not read résumé text"))
    poller = SessionPoller(client, interval=0)

    poller.start("tok123")
    poller.join(5)

    session = poller.session
    assert session.status is SessionState.FAILED
    assert session.failure_reason is FailureReason.ANALYSIS_FAILED
    assert session.failure_reason.recovery == "upload_new_file"
    assert session.error_message == "Could not read résumé text"
    with pytest.raises(AnalysisFailed):
        poller.raise_for_failure()


def test_server_failure_without_message_uses_fallback(client, http):
    http.add("GET", SESSION, status("failed"))
    poller = SessionPoller(client, interval=0)

    poller.start("tok123")
    poller.join(5)

    assert poller.session.error_message == ANALYSIS_FAILED_FALLBACK
    assert http.calls_to("GET", JOBS) == []


def test_polling_stops_at_the_ceiling(client, http):
    http.add("GET", SESSION, status("processing"))
    poller = SessionPoller(client, interval=0, max_polls=45)

    poller.start("tok123")
    poller.join(10)

    session = poller.session
    assert session.status is SessionState.FAILED
    assert session.failure_reason is FailureReason.TIMED_OUT
    assert session.failure_reason.recovery == "retry"
    assert session.error_message == TIMEOUT_MESSAGE
    assert session.poll_count == 45
    assert len(http.calls_to("GET", SESSION)) == 45
    with pytest.raises(PollTimeout):
        poller.raise_for_failure()


def test_network_error_fails_the_session(client, http):
    http.add("GET", SESSION, requests.ConnectionError("offline"))
    poller = SessionPoller(client, interval=0)

    poller.start("tok123")
    poller.join(5)

    assert poller.session.failure_reason is FailureReason.NETWORK_ERROR
    with pytest.raises(NetworkError):
        poller.raise_for_failure()


def test_cancel_stops_polling_and_updates(client, http):
    http.add("GET", SESSION, status("processing"))
    first_poll = threading.Event()
    updates = []

    def on_update(session):
        updates.append(session)
        if session.poll_count >= 1:
            first_poll.set()

    poller = SessionPoller(client, interval=30)
    poller.subscribe(on_update)
    poller.start("tok123")
    assert first_poll.wait(5)

    poller.cancel()
    seen = len(updates)
    poller.join(5)

    assert not poller.is_running
    assert poller.session.cancelled
    assert poller.session.status is SessionState.PENDING
    assert len(http.calls_to("GET", SESSION)) == 1
    assert len(updates) == seen


def test_retry_polls_the_same_token_without_uploading(client, http):
    http.add("GET", SESSION, status("processing"))
    poller = SessionPoller(client, interval=0, max_polls=2)
    poller.start("tok123")
    poller.join(5)
    assert poller.session.failure_reason is FailureReason.TIMED_OUT

    http.set("GET", SESSION, status("completed"))
    poller.retry()
    poller.join(5)

    assert poller.session.status is SessionState.COMPLETED
    assert poller.session.poll_count == 1
    assert {c.kwargs["params"]["token"] for c in http.calls_to("GET", SESSION)} == {"tok123"}
    assert http.calls_to("POST", "/api/resume") == []


def test_start_twice_is_rejected(client, http):
    http.add("GET", SESSION, status("completed"))
    poller = SessionPoller(client, interval=0)
    poller.start("tok123")
    poller.join(5)

    with pytest.raises(RuntimeError):
        poller.start("tok456")


def test_max_polls_must_be_positive(client):
    with pytest.raises(ValueError):
        SessionPoller(client, max_polls=0)


def test_subscriber_can_cancel_from_another_thread(client, http):
    http.add("GET", SESSION, status("processing"))
    cancelled = threading.Event()

    def on_update(session):
        if session.poll_count >= 1 and not cancelled.is_set():
            # a UI thread reacting to the update; it must not wait on the poller lock
            t = threading.Thread(target=poller.cancel)
            t.start()
            t.join(2)
            if not t.is_alive():
                cancelled.set()

    poller = SessionPoller(client, interval=30)
    poller.subscribe(on_update)
    poller.start("tok123")

    assert cancelled.wait(5)
    poller.join(5)
    assert not poller.is_running
    assert poller.session.cancelled
    assert len(http.calls_to("GET", SESSION)) == 1

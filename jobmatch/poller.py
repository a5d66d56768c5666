"""Polls résumé-analysis status until the server reports a terminal state.

States: pending -> completed | failed. Polls are strictly sequential on one
worker thread, separated by a fixed interval, and capped at ``max_polls``.
``cancel()`` is synchronous: once it returns the poller starts no new
request and commits no further state change. Subscribers are called without
the poller lock held, so they may call ``cancel()`` or ``retry()`` themselves.
"""
from __future__ import annotations

import threading
from dataclasses import replace

from jobmatch.client import APIClient
from jobmatch.errors import AnalysisFailed, PollTimeout, RequestError
from jobmatch.log import get_logger, redact
from jobmatch.models import AnalysisSession, FailureReason, SessionState
from jobmatch.results import ResultCache
from jobmatch.state import Observable

log = get_logger(__name__)

DEFAULT_INTERVAL = 2.0
DEFAULT_MAX_POLLS = 45

ANALYSIS_FAILED_FALLBACK = "An unknown error occurred while analyzing your résumé."
TIMEOUT_MESSAGE = "Analysis is taking longer than expected. Please try again."
STATUS_CHECK_FAILED = "Failed to check analysis status. Please try again."


class SessionPoller(Observable):
    def __init__(
        self,
        client: APIClient,
        *,
        results: ResultCache | None = None,
        interval: float = DEFAULT_INTERVAL,
        max_polls: int = DEFAULT_MAX_POLLS,
    ) -> None:
        super().__init__()
        if max_polls < 1:
            raise ValueError("max_polls must be at least 1")
        self.client = client
        self.results = results
        self.interval = interval
        self.max_polls = max_polls
        self._lock = threading.RLock()
        self._session: AnalysisSession | None = None
        self._generation = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_error: RequestError | None = None

    @property
    def session(self) -> AnalysisSession | None:
        with self._lock:
            return self._session

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    # ── Control ──────────────────────────────────────────────────────────

    def start(self, view_token: str) -> None:
        with self._lock:
            if self._session is not None and not self._session.cancelled:
                raise RuntimeError("poller already started; use retry() to poll again")
            launched = self._launch(AnalysisSession(view_token=view_token))
        self._begin(*launched)

    def retry(self) -> None:
        """Reset the count and poll the same view token again; never re-uploads."""
        with self._lock:
            if self._session is None:
                raise RuntimeError("poller was never started")
            log.info("Retrying analysis polling for %s", redact(self._session.view_token))
            launched = self._launch(AnalysisSession(view_token=self._session.view_token))
        self._begin(*launched)

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            self._stop.set()
            if self._session is not None and not self._session.status.is_terminal:
                self._session = replace(self._session, cancelled=True)
                log.info("Polling cancelled for %s", redact(self._session.view_token))

    def join(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def raise_for_failure(self) -> None:
        """Raise the typed error behind a failed session; no-op otherwise."""
        session = self.session
        if session is None or session.status is not SessionState.FAILED:
            return
        if session.failure_reason is FailureReason.TIMED_OUT:
            raise PollTimeout(session.error_message or TIMEOUT_MESSAGE)
        if session.failure_reason is FailureReason.NETWORK_ERROR and self._last_error is not None:
            raise self._last_error
        raise AnalysisFailed(session.error_message or ANALYSIS_FAILED_FALLBACK)

    def _launch(self, session: AnalysisSession) -> tuple[int, AnalysisSession, threading.Thread]:
        """Install a fresh session and worker; caller holds the lock."""
        self._generation += 1
        self._stop.set()
        self._stop = threading.Event()
        self._session = session
        self._last_error = None
        generation = self._generation
        self._thread = threading.Thread(
            target=self._run,
            args=(generation, self._stop),
            name=f"poller-{redact(session.view_token)}",
            daemon=True,
        )
        return generation, session, self._thread

    def _begin(self, generation: int, session: AnalysisSession, thread: threading.Thread) -> None:
        self._publish(generation, session)
        thread.start()

    def _publish(self, generation: int, session: AnalysisSession) -> None:
        # subscribers run outside the lock so they may call back into the poller
        self._notify(session, current=lambda: generation == self._generation)

    # ── Loop ─────────────────────────────────────────────────────────────

    def _commit(self, generation: int, **changes) -> AnalysisSession | None:
        """Apply a transition unless this loop was cancelled or superseded."""
        with self._lock:
            if generation != self._generation or self._session is None:
                return None
            self._session = replace(self._session, **changes)
            session = self._session
        self._publish(generation, session)
        return session

    def _run(self, generation: int, stop: threading.Event) -> None:
        session = self.session
        if session is None:
            return
        view_token = session.view_token
        log.info("Polling analysis status for %s", redact(view_token))
        polls = 0

        while not stop.is_set():
            polls += 1
            log.debug("Polling session status (attempt %d/%d)", polls, self.max_polls)
            try:
                status = self.client.get_session_status(view_token)
            except RequestError as exc:
                log.warning("Status poll %d failed: %s", polls, exc)
                with self._lock:
                    if generation == self._generation:
                        self._last_error = exc
                self._commit(
                    generation,
                    poll_count=polls,
                    status=SessionState.FAILED,
                    failure_reason=FailureReason.NETWORK_ERROR,
                    error_message=STATUS_CHECK_FAILED,
                )
                return

            value = (status.status or "").lower()
            if value == "completed":
                if self._commit(generation, poll_count=polls, status=SessionState.COMPLETED):
                    log.info("Analysis completed after %d poll(s)", polls)
                    self._load_results(generation)
                return
            if value == "failed":
                message = status.error_message or ANALYSIS_FAILED_FALLBACK
                if self._commit(
                    generation,
                    poll_count=polls,
                    status=SessionState.FAILED,
                    failure_reason=FailureReason.ANALYSIS_FAILED,
                    error_message=message,
                ):
                    log.warning("Analysis failed: %s", message)
                return
            if polls >= self.max_polls:
                if self._commit(
                    generation,
                    poll_count=polls,
                    status=SessionState.FAILED,
                    failure_reason=FailureReason.TIMED_OUT,
                    error_message=TIMEOUT_MESSAGE,
                ):
                    log.warning("Polling timeout reached (%d attempts)", polls)
                return
            if self._commit(generation, poll_count=polls) is None:
                return
            stop.wait(self.interval)

    def _load_results(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self.results is None:
                return
            results = self.results
        results.load()

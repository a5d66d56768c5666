"""Job results for one analysis session, re-fetched per bucket."""
from __future__ import annotations

import threading

from jobmatch.client import APIClient
from jobmatch.errors import RequestError
from jobmatch.last_search import LastSearchStore
from jobmatch.log import get_logger, redact
from jobmatch.models import Bucket, Job, LastSearchSummary, bucket_params, utc_now_iso
from jobmatch.state import Observable, ViewState

log = get_logger(__name__)

__all__ = ["Bucket", "ResultCache", "bucket_params"]

LOAD_FAILED = "Failed to load job matches. Please try again."
REFRESH_FAILED = "Failed to load jobs. Tap to retry."


class ResultCache(Observable):
    """Holds the visible job list for one view token.

    Every fetch gets a generation number; a response is applied only if no
    newer fetch was started after it and the cache has not been closed, so
    the last requested bucket always wins.
    """

    def __init__(
        self,
        client: APIClient,
        view_token: str,
        last_search: LastSearchStore | None = None,
        *,
        bucket: Bucket = Bucket.ALL,
        jobs: list[Job] | None = None,
        current_role_title: str | None = None,
        last_search_title: str | None = None,
    ) -> None:
        super().__init__()
        self.client = client
        self.view_token = view_token
        self.last_search = last_search
        self.current_role_title = current_role_title
        self.last_search_title = last_search_title
        self._lock = threading.RLock()
        self._bucket = Bucket(bucket)
        self._jobs: list[Job] = list(jobs or [])
        self._has_loaded = jobs is not None
        self._summary_recorded = jobs is not None
        self._generation = 0
        self._refreshing = False
        self._closed = False
        self._error_message: str | None = None
        if jobs is None:
            self._view_state = ViewState.loading()
        else:
            self._view_state = ViewState.loaded() if jobs else ViewState.empty()

    # ── Read side ────────────────────────────────────────────────────────

    @property
    def bucket(self) -> Bucket:
        with self._lock:
            return self._bucket

    @property
    def jobs(self) -> list[Job]:
        with self._lock:
            return list(self._jobs)

    @property
    def view_state(self) -> ViewState:
        with self._lock:
            return self._view_state

    @property
    def is_refreshing(self) -> bool:
        with self._lock:
            return self._refreshing

    @property
    def error_message(self) -> str | None:
        """Retryable banner shown above a list that failed to refresh."""
        with self._lock:
            return self._error_message

    def job(self, external_job_id: str) -> Job | None:
        with self._lock:
            for job in self._jobs:
                if job.external_job_id == external_job_id:
                    return job
        return None

    # ── Operations ───────────────────────────────────────────────────────

    def load(self) -> bool:
        return self._fetch()

    def set_bucket(self, bucket: Bucket) -> bool:
        bucket = Bucket(bucket)
        with self._lock:
            if self._closed:
                return False
            if bucket is not self._bucket:
                log.info("Bucket %s -> %s", self._bucket.value, bucket.value)
            self._bucket = bucket
        return self._fetch()

    def refresh(self) -> bool:
        return self._fetch()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._generation += 1

    # ── Internals ────────────────────────────────────────────────────────

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _fetch(self) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._generation += 1
            generation = self._generation
            bucket = self._bucket
            self._refreshing = True
            self._error_message = None
            if not self._has_loaded:
                self._view_state = ViewState.loading()
        self._publish(generation)

        try:
            jobs = self.client.get_jobs(self.view_token, bucket)
        except RequestError as exc:
            with self._lock:
                if not self._is_current(generation):
                    log.debug("Dropping stale %s failure: %s", bucket.value, exc)
                    return False
                self._refreshing = False
                if self._has_loaded:
                    self._error_message = REFRESH_FAILED
                else:
                    self._view_state = ViewState.error(LOAD_FAILED)
                log.warning("Fetching %s jobs failed: %s", bucket.value, exc)
            self._publish(generation)
            return False

        with self._lock:
            if not self._is_current(generation):
                log.debug("Dropping stale %s response (%d jobs)", bucket.value, len(jobs))
                return False
            self._jobs = jobs
            self._refreshing = False
            self._has_loaded = True
            self._view_state = ViewState.loaded() if jobs else ViewState.empty()
            record = not self._summary_recorded
            self._summary_recorded = True
            log.info("Showing %d %s jobs for %s", len(jobs), bucket.value, redact(self.view_token))
        if record:
            self._record_summary(jobs)
        self._publish(generation)
        return True

    def _publish(self, generation: int) -> None:
        # called without the lock so subscribers may switch bucket or close
        self._notify(current=lambda: self._is_current(generation))

    def _record_summary(self, jobs: list[Job]) -> None:
        if self.last_search is None:
            return
        intent = self.last_search_title
        if not intent and jobs:
            intent = jobs[0].source_query or jobs[0].title
        self.last_search.record(
            LastSearchSummary(
                view_token=self.view_token,
                timestamp_iso=utc_now_iso(),
                total_matches=len(jobs),
                current_role_title=self.current_role_title,
                last_search_title=intent,
            )
        )
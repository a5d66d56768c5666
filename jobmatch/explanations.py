"""Per-job AI match explanations, loaded lazily when a card is first expanded."""
from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

from jobmatch.client import APIClient
from jobmatch.errors import NetworkError, RequestError, describe_network_error
from jobmatch.log import get_logger
from jobmatch.models import JobExplanation
from jobmatch.state import Observable

log = get_logger(__name__)

EXPLANATION_FAILED = "Unable to analyze this job match."


class ExplanationStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


@dataclass(frozen=True)
class ExplanationEntry:
    status: ExplanationStatus = ExplanationStatus.IDLE
    explanation: JobExplanation | None = None
    error: str | None = None


_IDLE = ExplanationEntry()


class ExplanationCache(Observable):
    """Explanation state keyed by external job id for one results screen.

    Entries are never evicted; ``close()`` drops them all and makes any
    request still in flight a no-op when it returns.
    """

    def __init__(
        self,
        client: APIClient,
        view_token: str,
        *,
        executor: ThreadPoolExecutor | None = None,
        max_workers: int = 4,
    ) -> None:
        super().__init__()
        self.client = client
        self.view_token = view_token
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="explain"
        )
        self._lock = threading.RLock()
        self._entries: dict[str, ExplanationEntry] = {}
        self._requests: dict[str, int] = {}
        self._expanded: set[str] = set()
        self._closed = False

    def state(self, job_id: str) -> ExplanationEntry:
        with self._lock:
            return self._entries.get(job_id, _IDLE)

    def is_expanded(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._expanded

    def toggle(self, job_id: str) -> bool:
        """Expand or collapse a card; returns True when it is now expanded."""
        with self._lock:
            if self._closed:
                return False
            expanded = job_id not in self._expanded
            if expanded:
                self._expanded.add(job_id)
            else:
                self._expanded.discard(job_id)
            # load() re-checks the status, so a racing toggle cannot double-fetch
            needs_load = expanded and self.state(job_id).status is ExplanationStatus.IDLE
        if needs_load:
            self.load(job_id)
        else:
            self._notify()
        return expanded

    def load(self, job_id: str) -> Future | None:
        """Start a fetch for ``job_id`` unless one is loading or already loaded."""
        with self._lock:
            if self._closed:
                return None
            status = self.state(job_id).status
            if status in (ExplanationStatus.LOADING, ExplanationStatus.LOADED):
                return None
            request_id = self._requests.get(job_id, 0) + 1
            self._requests[job_id] = request_id
            self._entries[job_id] = ExplanationEntry(ExplanationStatus.LOADING)
            future = self._executor.submit(self._fetch, job_id, request_id)
        self._notify()
        return future

    def retry(self, job_id: str) -> Future | None:
        with self._lock:
            if self._closed:
                return None
            self._entries[job_id] = _IDLE
        return self.load(job_id)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._entries.clear()
            self._expanded.clear()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def _fetch(self, job_id: str, request_id: int) -> None:
        try:
            explanation = self.client.get_job_explanation(job_id, self.view_token)
        except RequestError as exc:
            if isinstance(exc, NetworkError):
                message = describe_network_error(exc)
            else:
                message = EXPLANATION_FAILED
            entry = ExplanationEntry(ExplanationStatus.ERROR, error=message)
            log.warning("Explanation for job %s failed: %s", job_id, exc)
        else:
            entry = ExplanationEntry(ExplanationStatus.LOADED, explanation=explanation)
            log.info("Loaded explanation for job %s (%d bullets)", job_id, len(explanation.bullets))

        with self._lock:
            if self._closed or self._requests.get(job_id) != request_id:
                return
            self._entries[job_id] = entry
        self._notify(current=lambda: not self._closed)

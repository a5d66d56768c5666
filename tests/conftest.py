from __future__ import annotations

import json
import os
import sys
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

# Ensure repo root (the jobmatch package) is importable when running pytest.
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

# keep test runs from writing into the repo's logs/ directory
os.environ.setdefault("JOBMATCH_LOG_DIR", str(Path(tempfile.gettempdir()) / "jobmatch-test-logs"))

import pytest

from jobmatch.auth import CREDENTIAL_KEY, AuthManager
from jobmatch.client import APIClient
from jobmatch.config import Settings
from jobmatch.storage import MemoryStore

API = "https://api.test"
AUTH = "https://auth.test/auth/v1"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str | None = None):
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text

    def json(self):
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


@dataclass
class Call:
    method: str
    path: str
    kwargs: dict

    @property
    def headers(self) -> dict:
        return self.kwargs.get("headers") or {}

    @property
    def bearer(self) -> str | None:
        value = self.headers.get("Authorization")
        return value[len("Bearer "):] if value else None


class FakeSession:
    """Stand-in for requests.Session routed by (method, path).

    Each route holds a queue of responses; the last one repeats. A queued
    item may be a FakeResponse, an exception instance (raised), or a
    callable taking the Call and returning either.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list] = {}
        self.calls: list[Call] = []
        self._lock = threading.Lock()

    def add(self, method: str, path: str, *responses) -> None:
        with self._lock:
            self.routes.setdefault((method, path), []).extend(responses)

    def set(self, method: str, path: str, *responses) -> None:
        with self._lock:
            self.routes[(method, path)] = list(responses)

    def request(self, method: str, url: str, **kwargs):
        call = Call(method, urlparse(url).path, kwargs)
        with self._lock:
            self.calls.append(call)
            queue = self.routes.get((method, call.path))
            if not queue:
                raise AssertionError(f"unexpected request {method} {call.path}")
            item = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(item):
            item = item(call)
        if isinstance(item, BaseException):
            raise item
        return item

    def calls_to(self, method: str, path: str) -> list[Call]:
        with self._lock:
            return [c for c in self.calls if c.method == method and c.path == path]


def token_payload(access: str = "acc-1", refresh: str = "ref-1", user_id: str = "user-1") -> dict:
    return {
        "access_token": access,
        "refresh_token": refresh,
        "token_type": "bearer",
        "expires_in": 3600,
        "user": {"id": user_id, "email": "ada@example.com"},
    }


def job_payload(n: int, **overrides) -> dict:
    data = {
        "id": f"row-{n}",
        "job_id": f"ext-{n}",
        "title": f"Data Engineer {n}",
        "company_name": f"Company {n}",
        "location": "Austin, TX",
        "posted_at": "2025-01-10",
        "job_url": f"https://jobs.example.com/{n}",
        "source_query": "Data Engineer",
        "category": "direct",
        "is_remote": False,
    }
    data.update(overrides)
    return data


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        base_url=API,
        auth_url=AUTH,
        auth_api_key="anon-key",
        poll_interval=0.0,
        max_polls=45,
        http_timeout=5.0,
        upload_timeout=60.0,
        store_path=tmp_path / "store.json",
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def http() -> FakeSession:
    return FakeSession()


@pytest.fixture
def signed_in(store) -> MemoryStore:
    """Store seeded with a credential; request before ``auth``."""
    store.set_json(
        CREDENTIAL_KEY,
        {"access_token": "acc-1", "refresh_token": "ref-1", "user_id": "user-1", "email": "ada@example.com"},
    )
    return store


@pytest.fixture
def auth(settings, store, http) -> AuthManager:
    return AuthManager(settings, store, session=http)


@pytest.fixture
def client(settings, auth) -> APIClient:
    return APIClient(settings, auth)

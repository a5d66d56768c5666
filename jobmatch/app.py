"""Explicitly wired services for one signed-in (or anonymous) user."""
from __future__ import annotations

from pathlib import Path

import requests

from jobmatch.auth import AuthManager
from jobmatch.client import APIClient
from jobmatch.config import Settings, load_settings
from jobmatch.dashboard import DashboardReconciler
from jobmatch.explanations import ExplanationCache
from jobmatch.insights import InsightsLoader
from jobmatch.last_search import LastSearchStore
from jobmatch.log import get_logger
from jobmatch.models import Bucket, UploadReceipt
from jobmatch.poller import SessionPoller
from jobmatch.results import ResultCache
from jobmatch.storage import KeyValueStore, get_store

log = get_logger(__name__)


class JobMatchApp:
    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.auth = AuthManager(settings, store, session=session)
        self.client = APIClient(settings, self.auth)
        self.last_search = LastSearchStore(store)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "JobMatchApp":
        settings = settings or load_settings()
        return cls(settings, get_store(settings))

    @property
    def default_bucket(self) -> Bucket:
        return Bucket(self.settings.default_bucket)

    def upload(self, path: str | Path) -> UploadReceipt:
        return self.client.upload_resume(path)

    def new_results(self, view_token: str, bucket: Bucket | None = None) -> ResultCache:
        return ResultCache(
            self.client,
            view_token,
            self.last_search,
            bucket=bucket or self.default_bucket,
        )

    def new_poller(self, results: ResultCache | None = None) -> SessionPoller:
        return SessionPoller(
            self.client,
            results=results,
            interval=self.settings.poll_interval,
            max_polls=self.settings.max_polls,
        )

    def new_explanations(self, view_token: str) -> ExplanationCache:
        return ExplanationCache(self.client, view_token)

    def new_dashboard(self) -> DashboardReconciler:
        return DashboardReconciler(self.client, self.last_search)

    def new_insights(self) -> InsightsLoader:
        return InsightsLoader(self.client, self.last_search)

    def sign_out(self) -> None:
        self.auth.sign_out()
        self.last_search.clear()

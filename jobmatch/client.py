"""JobMatchNow backend client with bearer auth and one-shot refresh-and-retry."""
from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Any

import requests

from jobmatch.auth import SESSION_EXPIRED, AuthManager
from jobmatch.config import Settings
from jobmatch.errors import FileReadError, Unauthorized
from jobmatch.log import get_logger, redact
from jobmatch.models import (
    Bucket,
    Dashboard,
    Job,
    JobExplanation,
    SessionStatus,
    UploadReceipt,
    bucket_params,
    parse_jobs,
)
from jobmatch.transport import check_status, decode_json, send

log = get_logger(__name__)

_AUTH_REJECTED = (401, 403)

_MIME_BY_EXTENSION: dict[str, str] = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".doc": "application/msword",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".txt": "text/plain",
    ".rtf": "application/rtf",
}


def guess_mime_type(path: Path) -> str:
    """Résumé MIME type from the file extension."""
    known = _MIME_BY_EXTENSION.get(path.suffix.lower())
    if known:
        return known
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


class APIClient:
    def __init__(
        self,
        settings: Settings,
        auth: AuthManager,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.auth = auth
        self.session = session or auth.session

    def _url(self, path: str) -> str:
        return f"{self.settings.base_url}/{path.lstrip('/')}"

    def _send(
        self,
        method: str,
        url: str,
        *,
        access_token: str | None = None,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        headers = dict(headers or {})
        headers.setdefault("Accept", "application/json")
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return send(
            self.session,
            method,
            url,
            headers=headers,
            timeout=timeout or self.settings.http_timeout,
            **kwargs,
        )

    def call(
        self,
        method: str,
        path: str,
        *,
        requires_auth: bool = False,
        **kwargs: Any,
    ) -> requests.Response:
        """Perform a backend call; raises a RequestError subclass on failure.

        Authenticated calls rejected with 401/403 trigger one token refresh
        and exactly one replay of the call with the new access token.
        """
        url = self._url(path)
        if not requires_auth:
            r = self._send(method, url, **kwargs)
            log.debug("%s %s -> %d", method, path, r.status_code)
            return check_status(r)

        credential = self.auth.credential
        if credential is None:
            raise Unauthorized("No active session")

        r = self._send(method, url, access_token=credential.access_token, **kwargs)
        log.debug("%s %s -> %d", method, path, r.status_code)
        if r.status_code not in _AUTH_REJECTED:
            return check_status(r)

        log.info("%s %s rejected with %d; refreshing token", method, path, r.status_code)
        fresh = self.auth.refresh(stale_access_token=credential.access_token)
        r = self._send(method, url, access_token=fresh.access_token, **kwargs)
        log.debug("%s %s (retry) -> %d", method, path, r.status_code)
        if r.status_code in _AUTH_REJECTED:
            raise Unauthorized(SESSION_EXPIRED)
        return check_status(r)

    # ── Endpoints ────────────────────────────────────────────────────────

    def upload_resume(self, path: str | Path) -> UploadReceipt:
        path = Path(path)
        if not path.is_file():
            raise FileReadError(f"File not found: {path}")
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise FileReadError(f"Failed to read {path.name}: {exc}") from exc

        mime = guess_mime_type(path)
        log.info("Uploading résumé %s (%d bytes, %s)", path.name, len(content), mime)
        r = self.call(
            "POST", "/api/resume",
            files={"file": (path.name, content, mime)},
            timeout=self.settings.upload_timeout,
        )
        receipt = UploadReceipt.from_dict(decode_json(r))
        log.info("Upload accepted, view token %s", redact(receipt.view_token))
        return receipt

    def get_session_status(self, view_token: str) -> SessionStatus:
        r = self.call("GET", "/api/public/session", params={"token": view_token})
        status = SessionStatus.from_dict(decode_json(r))
        log.debug("Session %s status: %s", redact(view_token), status.status)
        return status

    def get_jobs(self, view_token: str, bucket: Bucket = Bucket.ALL) -> list[Job]:
        bucket = Bucket(bucket)
        params = {"token": view_token, **bucket_params(bucket)}
        r = self.call("GET", "/api/public/jobs", params=params)
        jobs = parse_jobs(decode_json(r))
        log.debug("Fetched %d jobs for %s (bucket=%s)", len(jobs), redact(view_token), bucket.value)
        return jobs

    def get_job_explanation(self, job_id: str, view_token: str) -> JobExplanation:
        log.debug("Fetching explanation for job %s with token %s", job_id, redact(view_token))
        r = self.call(
            "POST", "/api/jobs/explanation",
            json={"job_id": job_id, "view_token": view_token},
        )
        return JobExplanation.from_dict(decode_json(r))

    def get_dashboard(self) -> Dashboard:
        r = self.call("GET", "/api/me/dashboard", requires_auth=True)
        dashboard = Dashboard.from_dict(decode_json(r))
        log.debug(
            "Dashboard: %d searches, %d recent sessions",
            dashboard.summary.total_searches, len(dashboard.recent_sessions),
        )
        return dashboard

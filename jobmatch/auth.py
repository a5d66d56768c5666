"""Credential lifecycle: sign in/up/out, restore, and single-flight token refresh.

The credential is stored as one JSON record so that a write is always a full
overwrite: after a crash the store holds either the old token pair or the new
one, never a mix.
"""
from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any

import requests

from jobmatch.config import Settings
from jobmatch.errors import (
    AuthenticationFailed,
    DecodingError,
    HTTPError,
    InvalidRequest,
    RequestError,
    Unauthorized,
)
from jobmatch.log import get_logger, redact
from jobmatch.models import Credential
from jobmatch.storage import KeyValueStore
from jobmatch.transport import decode_json, error_detail, send

log = get_logger(__name__)

CREDENTIAL_KEY = "jobmatch.credential"
SESSION_EXPIRED = "Session expired. Please sign in again."


@dataclass(frozen=True)
class SignUpResult:
    credential: Credential | None

    @property
    def confirmation_required(self) -> bool:
        return self.credential is None


class AuthManager:
    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.session = session or requests.Session()
        self._lock = threading.Lock()
        self._refresh_future: Future | None = None
        self._credential = self._load()

    # ── State ────────────────────────────────────────────────────────────

    @property
    def credential(self) -> Credential | None:
        with self._lock:
            return self._credential

    @property
    def is_signed_in(self) -> bool:
        return self.credential is not None

    def _load(self) -> Credential | None:
        data = self.store.get_json(CREDENTIAL_KEY)
        if data is None:
            return None
        try:
            return Credential.from_dict(data)
        except (DecodingError, ValueError, TypeError, AttributeError) as exc:
            log.warning("Discarding incomplete stored credential: %s", exc)
            self.store.remove(CREDENTIAL_KEY)
            return None

    def _save(self, credential: Credential) -> None:
        # persist first: the in-memory copy is only published once it is durable
        self.store.set_json(CREDENTIAL_KEY, credential.to_dict())
        with self._lock:
            self._credential = credential
        log.debug("Stored credential for user %s", credential.user_id or "<unknown>")

    def _clear(self) -> None:
        self.store.remove(CREDENTIAL_KEY)
        with self._lock:
            self._credential = None

    # ── HTTP helpers ─────────────────────────────────────────────────────

    def _url(self, path: str) -> str:
        if not self.settings.auth_url:
            raise InvalidRequest("Auth URL is not configured (set JOBMATCH_AUTH_URL)")
        return f"{self.settings.auth_url}/{path}"

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.settings.auth_api_key:
            headers["apikey"] = self.settings.auth_api_key
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        body: dict | None = None,
        access_token: str | None = None,
    ) -> requests.Response:
        return send(
            self.session,
            method,
            self._url(path),
            params=params,
            json=body,
            headers=self._headers(access_token),
            timeout=self.settings.http_timeout,
        )

    def _fetch_user(self, access_token: str) -> tuple[str, str | None]:
        r = self._request("GET", "user", access_token=access_token)
        if r.status_code != 200:
            raise HTTPError(r.status_code, r.text or "")
        data = decode_json(r)
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            raise DecodingError("user response has no id")
        return data["id"], data.get("email")

    def _credential_from(self, data: Any) -> Credential:
        if not isinstance(data, dict):
            raise AuthenticationFailed("Invalid response format")
        access = data.get("access_token")
        refresh = data.get("refresh_token")
        if not isinstance(access, str) or not isinstance(refresh, str) or not access or not refresh:
            raise AuthenticationFailed("Invalid response format")
        user = data.get("user")
        if isinstance(user, dict) and isinstance(user.get("id"), str):
            user_id, email = user["id"], user.get("email")
        else:
            user_id, email = self._fetch_user(access)
        return Credential(access_token=access, refresh_token=refresh, user_id=user_id, email=email)

    # ── Sign in / up / out ───────────────────────────────────────────────

    def sign_in(self, email: str, password: str) -> Credential:
        r = self._request(
            "POST", "token",
            params={"grant_type": "password"},
            body={"email": email, "password": password},
        )
        if r.status_code in (400, 401, 403, 422):
            raise AuthenticationFailed(error_detail(r))
        if r.status_code != 200:
            raise HTTPError(r.status_code, r.text or "")
        credential = self._credential_from(decode_json(r))
        self._save(credential)
        log.info("Signed in as %s", credential.email or credential.user_id)
        return credential

    def sign_up(self, email: str, password: str) -> SignUpResult:
        r = self._request("POST", "signup", body={"email": email, "password": password})
        if r.status_code in (400, 422, 429):
            raise AuthenticationFailed(error_detail(r))
        if r.status_code != 200:
            raise HTTPError(r.status_code, r.text or "")
        data = decode_json(r)
        if isinstance(data, dict) and data.get("access_token"):
            credential = self._credential_from(data)
            self._save(credential)
            log.info("Signed up and signed in as %s", email)
            return SignUpResult(credential)
        log.info("Sign-up for %s awaiting email confirmation", email)
        return SignUpResult(None)

    def sign_out(self) -> None:
        """Best-effort server logout; the local credential is cleared regardless."""
        credential = self.credential
        try:
            if credential is not None:
                r = self._request("POST", "logout", access_token=credential.access_token)
                if r.status_code >= 400:
                    log.warning("Logout returned HTTP %d; clearing local session anyway", r.status_code)
        except RequestError as exc:
            log.warning("Logout request failed (%s); clearing local session anyway", exc)
        finally:
            self._clear()
        log.info("Signed out")

    def restore_session(self) -> bool:
        """Validate a stored credential on start-up, refreshing it once if rejected."""
        credential = self.credential
        if credential is None:
            log.info("No stored session found")
            return False
        try:
            r = self._request("GET", "user", access_token=credential.access_token)
        except RequestError as exc:
            # offline start: keep the session and let the first real call decide
            log.warning("Could not verify stored session (%s); keeping it", exc)
            return True
        if r.status_code == 200:
            log.info("Existing session is valid")
            return True
        if r.status_code not in (401, 403):
            log.warning("Session check returned HTTP %d; keeping session", r.status_code)
            return True
        try:
            self.refresh(stale_access_token=credential.access_token)
        except Unauthorized:
            log.info("Stored session could not be refreshed")
            return False
        log.info("Session refreshed successfully")
        return True

    # ── Refresh ──────────────────────────────────────────────────────────

    def refresh(self, stale_access_token: str | None = None) -> Credential:
        """Exchange the refresh token for a new pair; one exchange in flight at a time.

        ``stale_access_token`` is the token a caller saw rejected. If the
        current credential already differs from it, another caller refreshed
        in the meantime and that credential is returned without a new
        exchange. Raises Unauthorized when there is no credential or the
        exchange fails (which also clears the credential). InvalidRequest from
        a missing auth URL propagates and leaves the credential in place.
        """
        with self._lock:
            current = self._credential
            if current is None:
                raise Unauthorized(SESSION_EXPIRED)
            if stale_access_token is not None and current.access_token != stale_access_token:
                return current
            owner = self._refresh_future is None
            if owner:
                self._refresh_future = Future()
            future = self._refresh_future

        if owner:
            try:
                credential = self._exchange(current)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(credential)
            finally:
                with self._lock:
                    self._refresh_future = None
        return future.result()

    def _exchange(self, current: Credential) -> Credential:
        log.info("Refreshing access token %s", redact(current.access_token))
        try:
            r = self._request(
                "POST", "token",
                params={"grant_type": "refresh_token"},
                body={"refresh_token": current.refresh_token},
            )
            if r.status_code != 200:
                raise Unauthorized(f"Refresh rejected: {error_detail(r)}")
            data = decode_json(r)
            if isinstance(data, dict) and not isinstance(data.get("user"), dict):
                # the refresh grant may omit the user object; identity is unchanged
                data = {**data, "user": {"id": current.user_id, "email": current.email}}
            credential = self._credential_from(data)
        except InvalidRequest:
            # auth URL misconfigured; the stored session itself is still good
            raise
        except RequestError as exc:
            log.warning("Token refresh failed (%s); clearing session", exc)
            self._clear()
            if isinstance(exc, Unauthorized):
                raise
            raise Unauthorized(SESSION_EXPIRED) from exc
        self._save(credential)
        log.info("Token refreshed for user %s", credential.user_id or "<unknown>")
        return credential

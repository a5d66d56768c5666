"""Thin wrapper over ``requests`` that turns transport failures into typed errors."""
from __future__ import annotations

from typing import Any

import requests

from jobmatch.errors import DecodingError, HTTPError, InvalidRequest, NetworkError
from jobmatch.log import get_logger

log = get_logger(__name__)

_INVALID = (
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidHeader,
)


def send(session: requests.Session, method: str, url: str, **kwargs: Any) -> requests.Response:
    """Perform one HTTP exchange; never raises for a non-2xx status."""
    try:
        return session.request(method, url, **kwargs)
    except _INVALID as exc:
        raise InvalidRequest(f"{method} {url}: {exc}") from exc
    except requests.Timeout as exc:
        log.warning("%s %s timed out", method, url)
        raise NetworkError(f"Request timed out: {exc}", is_timeout=True) from exc
    except (requests.exceptions.SSLError, requests.exceptions.ProxyError) as exc:
        raise NetworkError(f"Secure connection failed: {exc}") from exc
    except requests.ConnectionError as exc:
        log.warning("%s %s could not connect: %s", method, url, exc)
        raise NetworkError(f"Could not connect: {exc}", is_offline=True) from exc
    except requests.RequestException as exc:
        raise NetworkError(str(exc)) from exc


def check_status(response: requests.Response) -> requests.Response:
    if not 200 <= response.status_code < 300:
        raise HTTPError(response.status_code, response.text or "")
    return response


def decode_json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        preview = (response.text or "")[:200]
        log.debug("Undecodable body: %r", preview)
        raise DecodingError(f"Response is not valid JSON: {preview!r}") from exc


def error_detail(response: requests.Response) -> str:
    """Best human-readable message from an auth-server error body."""
    try:
        data = response.json()
    except ValueError:
        return (response.text or "").strip() or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        for key in ("error_description", "msg", "message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {response.status_code}"

"""Error taxonomy for backend calls and the messages shown for them."""
from __future__ import annotations


class RequestError(Exception):
    """Base class for every failure surfaced by the client layer."""


class InvalidRequest(RequestError):
    """Malformed URL or body; a programming error, fatal to the call."""


class Unauthorized(RequestError):
    """Missing, expired or rejected credential."""


class AuthenticationFailed(RequestError):
    """Sign-in or sign-up was rejected by the auth server."""


class HTTPError(RequestError):
    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {body[:200]}")


class DecodingError(RequestError):
    """Response body does not match the expected shape."""


class NetworkError(RequestError):
    def __init__(self, message: str, *, is_timeout: bool = False, is_offline: bool = False) -> None:
        self.is_timeout = is_timeout
        self.is_offline = is_offline
        super().__init__(message)


class FileReadError(RequestError):
    """The résumé file is missing or cannot be read."""


class PollTimeout(RequestError):
    """Client-enforced polling ceiling was reached without a terminal status."""


class AnalysisFailed(RequestError):
    """The server reported that résumé analysis failed."""


GENERIC_UPLOAD_MESSAGE = "We couldn't process your résumé. Please try again."

_UPLOAD_HTTP_MESSAGES: dict[int, str] = {
    413: "The file is too large. Please choose a smaller file.",
    400: "This file format isn't supported. Please use PDF, Word, or image files.",
    415: "This file format isn't supported. Please use PDF, Word, or image files.",
}


def describe_network_error(exc: NetworkError, *, action: str = "request") -> str:
    if exc.is_timeout:
        return f"The {action} took too long. Please check your connection and try again."
    if exc.is_offline:
        return "No internet connection. Please check your connection and try again."
    return "Connection error. Please check your internet and try again."


def describe_upload_error(exc: Exception) -> str:
    """Map an upload failure to specific guidance for the user."""
    if isinstance(exc, FileReadError):
        return "We couldn't read the selected file. Please try again."
    if isinstance(exc, HTTPError):
        if exc.status in _UPLOAD_HTTP_MESSAGES:
            return _UPLOAD_HTTP_MESSAGES[exc.status]
        if exc.status >= 500:
            return "Our servers are having issues. Please try again later."
        return GENERIC_UPLOAD_MESSAGE
    if isinstance(exc, NetworkError):
        return describe_network_error(exc, action="upload")
    return GENERIC_UPLOAD_MESSAGE

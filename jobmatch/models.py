"""Data models for credentials, analysis sessions, jobs and dashboard history."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from jobmatch.errors import DecodingError


def _require(data: dict, key: str, kind: type = str) -> Any:
    if key not in data or data[key] is None:
        raise DecodingError(f"missing required field {key!r}")
    value = data[key]
    if not isinstance(value, kind):
        raise DecodingError(f"field {key!r} should be {kind.__name__}, got {type(value).__name__}")
    return value


def _optional(data: dict, key: str, kind: type = str) -> Any:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, kind):
        raise DecodingError(f"field {key!r} should be {kind.__name__}, got {type(value).__name__}")
    return value


def _count(data: dict, key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodingError(f"field {key!r} should be int, got {type(value).__name__}")
    return value


def _as_dict(payload: Any, what: str) -> dict:
    if not isinstance(payload, dict):
        raise DecodingError(f"{what} should be an object, got {type(payload).__name__}")
    return payload


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise DecodingError(f"invalid timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Credential ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Credential:
    access_token: str
    refresh_token: str
    user_id: str
    email: str | None = None

    def __post_init__(self) -> None:
        if not self.access_token or not self.refresh_token:
            raise ValueError("access_token and refresh_token must both be set")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Credential":
        return cls(
            access_token=_require(data, "access_token"),
            refresh_token=_require(data, "refresh_token"),
            user_id=data.get("user_id") or "",
            email=data.get("email"),
        )


# ── Analysis session ─────────────────────────────────────────────────────


class SessionState(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionState.PENDING


class FailureReason(str, Enum):
    ANALYSIS_FAILED = "analysis_failed"
    TIMED_OUT = "timed_out"
    NETWORK_ERROR = "network_error"

    @property
    def recovery(self) -> str:
        """UI affordance offered for this failure."""
        if self is FailureReason.ANALYSIS_FAILED:
            return "upload_new_file"
        return "retry"


@dataclass(frozen=True)
class AnalysisSession:
    view_token: str
    status: SessionState = SessionState.PENDING
    error_message: str | None = None
    failure_reason: FailureReason | None = None
    poll_count: int = 0
    cancelled: bool = False


@dataclass(frozen=True)
class UploadReceipt:
    view_token: str
    user_search_id: str
    search_session_id: str

    @classmethod
    def from_dict(cls, payload: Any) -> "UploadReceipt":
        data = _as_dict(payload, "upload response")
        return cls(
            view_token=_require(data, "view_token"),
            user_search_id=_require(data, "user_search_id"),
            search_session_id=_require(data, "search_session_id"),
        )


@dataclass(frozen=True)
class SessionStatus:
    status: str | None = None
    created_at: str | None = None
    error_message: str | None = None
    resume_score: int | None = None
    resume_feedback: str | None = None
    realistic_target_roles: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Any) -> "SessionStatus":
        data = _as_dict(payload, "session status")
        roles = data.get("realistic_target_roles") or []
        if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
            raise DecodingError("field 'realistic_target_roles' should be a list of strings")
        score = data.get("resume_score")
        if score is not None and (isinstance(score, bool) or not isinstance(score, (int, float))):
            raise DecodingError("field 'resume_score' should be a number")
        return cls(
            status=_optional(data, "status"),
            created_at=_optional(data, "created_at"),
            error_message=_optional(data, "error_message"),
            resume_score=int(score) if score is not None else None,
            resume_feedback=_optional(data, "resume_feedback"),
            realistic_target_roles=list(roles),
        )


# ── Jobs ─────────────────────────────────────────────────────────────────


class Bucket(str, Enum):
    """Server-side job subset, selected by query parameters."""

    ALL = "all"
    REMOTE = "remote"
    LOCAL = "local"
    NATIONAL = "national"


_BUCKET_PARAMS: dict[Bucket, dict[str, str]] = {
    Bucket.ALL: {},
    Bucket.REMOTE: {"remote": "true"},
    Bucket.LOCAL: {"scope": "local", "remote": "false"},
    Bucket.NATIONAL: {"scope": "national", "remote": "false"},
}


def bucket_params(bucket: Bucket) -> dict[str, str]:
    """Query parameters the jobs endpoint expects for ``bucket``."""
    return dict(_BUCKET_PARAMS[Bucket(bucket)])


@dataclass(frozen=True)
class Job:
    id: str
    external_job_id: str
    title: str
    company_name: str
    location: str
    posted_at: str | None = None
    url: str | None = None
    source_query: str | None = None
    category: str | None = None
    is_remote: bool = False

    @classmethod
    def from_dict(cls, payload: Any) -> "Job":
        data = _as_dict(payload, "job")
        return cls(
            id=_require(data, "id"),
            external_job_id=_require(data, "job_id"),
            title=_require(data, "title"),
            company_name=_require(data, "company_name"),
            location=_require(data, "location"),
            posted_at=_optional(data, "posted_at"),
            url=_optional(data, "job_url"),
            source_query=_optional(data, "source_query"),
            category=_optional(data, "category"),
            is_remote=bool(_optional(data, "is_remote", bool) or False),
        )


def parse_jobs(payload: Any) -> list[Job]:
    if not isinstance(payload, list):
        raise DecodingError(f"jobs response should be a list, got {type(payload).__name__}")
    return [Job.from_dict(item) for item in payload]


@dataclass(frozen=True)
class JobExplanation:
    explanation_summary: str = ""
    bullets: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Any) -> "JobExplanation":
        data = _as_dict(payload, "explanation")
        bullets = data.get("bullets") or []
        if not isinstance(bullets, list) or not all(isinstance(b, str) for b in bullets):
            raise DecodingError("field 'bullets' should be a list of strings")
        return cls(
            explanation_summary=_optional(data, "explanation_summary") or "",
            bullets=list(bullets),
        )


# ── Last search ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LastSearchSummary:
    view_token: str
    timestamp_iso: str
    total_matches: int
    current_role_title: str | None = None
    last_search_title: str | None = None

    @property
    def timestamp(self) -> datetime:
        return parse_timestamp(self.timestamp_iso)

    def is_newer_than(self, other: "LastSearchSummary | None") -> bool:
        return other is None or self.timestamp > other.timestamp

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "LastSearchSummary":
        summary = cls(
            view_token=_require(data, "view_token"),
            timestamp_iso=_require(data, "timestamp_iso"),
            total_matches=_count(data, "total_matches"),
            current_role_title=_optional(data, "current_role_title"),
            last_search_title=_optional(data, "last_search_title"),
        )
        parse_timestamp(summary.timestamp_iso)
        return summary


# ── Dashboard ────────────────────────────────────────────────────────────


def _as_float(value: Any) -> float:
    """avg_jobs_per_search arrives as a number or a numeric string."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return 0.0
    return 0.0


@dataclass(frozen=True)
class DashboardMetrics:
    total_searches: int = 0
    unique_jobs_found: int = 0
    local_jobs_count: int = 0
    national_jobs_count: int = 0
    remote_jobs_count: int = 0
    avg_jobs_per_search: float = 0.0
    viewed_jobs_count: int = 0
    starred_jobs_count: int = 0

    @classmethod
    def from_dict(cls, payload: Any) -> "DashboardMetrics":
        data = _as_dict(payload, "dashboard summary")
        return cls(
            total_searches=_count(data, "total_searches"),
            unique_jobs_found=_count(data, "unique_jobs_found"),
            local_jobs_count=_count(data, "local_jobs_count"),
            national_jobs_count=_count(data, "national_jobs_count"),
            remote_jobs_count=_count(data, "remote_jobs_count"),
            avg_jobs_per_search=_as_float(data.get("avg_jobs_per_search")),
            viewed_jobs_count=_count(data, "viewed_jobs_count"),
            starred_jobs_count=_count(data, "starred_jobs_count"),
        )


@dataclass(frozen=True)
class DashboardSessionSummary:
    id: str
    created_at: datetime
    title: str | None = None
    current_role_title: str | None = None
    current_role_company: str | None = None
    last_search_title: str | None = None
    total_jobs: int = 0
    local_count: int = 0
    national_count: int = 0
    remote_count: int = 0
    status: str | None = None
    view_token: str | None = None

    @classmethod
    def from_dict(cls, payload: Any) -> "DashboardSessionSummary":
        data = _as_dict(payload, "session summary")
        return cls(
            id=_require(data, "search_session_id"),
            created_at=parse_timestamp(_require(data, "created_at")),
            title=_optional(data, "title_or_inferred_role"),
            current_role_title=_optional(data, "current_role_title"),
            current_role_company=_optional(data, "current_role_company"),
            last_search_title=_optional(data, "last_search_title"),
            total_jobs=_count(data, "total_jobs"),
            local_count=_count(data, "local_count"),
            national_count=_count(data, "national_count"),
            remote_count=_count(data, "remote_count"),
            status=_optional(data, "status"),
            view_token=_optional(data, "view_token"),
        )

    @property
    def display_title(self) -> str:
        return self.current_role_title or self.title or f"Search #{self.id[:8]}"

    @property
    def search_intent_title(self) -> str:
        return self.last_search_title or self.title or "Job Search"

    @property
    def is_failed(self) -> bool:
        return (self.status or "").lower() == "failed"

    def to_last_search(self) -> LastSearchSummary | None:
        if not self.view_token:
            return None
        return LastSearchSummary(
            view_token=self.view_token,
            timestamp_iso=self.created_at.isoformat(),
            total_matches=self.total_jobs,
            current_role_title=self.current_role_title,
            last_search_title=self.last_search_title or self.title,
        )


@dataclass(frozen=True)
class SavedJob:
    id: str
    title: str
    company: str = "Unknown Company"
    location: str = "Location not specified"
    url: str | None = None

    @classmethod
    def from_dict(cls, payload: Any) -> "SavedJob":
        data = _as_dict(payload, "saved job")
        return cls(
            id=_require(data, "job_id"),
            title=_require(data, "title"),
            company=_optional(data, "company_name") or "Unknown Company",
            location=_optional(data, "location") or "Location not specified",
            url=_optional(data, "job_url"),
        )


@dataclass(frozen=True)
class Dashboard:
    summary: DashboardMetrics = field(default_factory=DashboardMetrics)
    recent_sessions: list[DashboardSessionSummary] = field(default_factory=list)
    recent_starred_jobs: list[SavedJob] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.summary.total_searches == 0 and not self.recent_sessions

    @classmethod
    def from_dict(cls, payload: Any) -> "Dashboard":
        data = _as_dict(payload, "dashboard")
        sessions = data.get("recent_sessions") or []
        starred = data.get("recent_starred_jobs") or []
        if not isinstance(sessions, list) or not isinstance(starred, list):
            raise DecodingError("dashboard lists should be arrays")
        summary = data.get("summary")
        return cls(
            summary=DashboardMetrics.from_dict(summary) if summary is not None else DashboardMetrics(),
            recent_sessions=[DashboardSessionSummary.from_dict(s) for s in sessions],
            recent_starred_jobs=[SavedJob.from_dict(j) for j in starred],
        )

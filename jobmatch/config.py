"""Load client settings from .env, an optional YAML file and the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from jobmatch.log import get_logger
from jobmatch.models import Bucket

log = get_logger(__name__)

load_dotenv()

ROOT_DIR: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = ROOT_DIR / "config"
SETTINGS_PATH: Path = CONFIG_DIR / "settings.yaml"
DATA_DIR: Path = ROOT_DIR / "data"

# env var -> Settings field
_ENV_OVERRIDES: dict[str, str] = {
    "JOBMATCH_BASE_URL": "base_url",
    "JOBMATCH_AUTH_URL": "auth_url",
    "JOBMATCH_AUTH_KEY": "auth_api_key",
    "JOBMATCH_POLL_INTERVAL": "poll_interval",
    "JOBMATCH_MAX_POLLS": "max_polls",
    "JOBMATCH_HTTP_TIMEOUT": "http_timeout",
    "JOBMATCH_UPLOAD_TIMEOUT": "upload_timeout",
    "JOBMATCH_STORE_PATH": "store_path",
    "JOBMATCH_DEFAULT_BUCKET": "default_bucket",
}


@dataclass(frozen=True)
class Settings:
    base_url: str = "https://www.jobmatchnow.ai"
    auth_url: str = ""
    auth_api_key: str = ""
    poll_interval: float = 2.0
    max_polls: int = 45
    http_timeout: float = 30.0
    upload_timeout: float = 300.0
    store_path: Path = field(default_factory=lambda: DATA_DIR / "store.json")
    default_bucket: str = "all"


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw YAML/env value to the type of the matching Settings field."""
    if name in ("poll_interval", "http_timeout", "upload_timeout"):
        return float(value)
    if name == "max_polls":
        return int(value)
    if name == "store_path":
        return Path(value).expanduser()
    if name in ("base_url", "auth_url"):
        return str(value).rstrip("/")
    return str(value)


def load_settings(path: Path | None = None) -> Settings:
    path = path or SETTINGS_PATH
    known = {f.name for f in fields(Settings)}
    values: dict[str, Any] = {}

    if path.exists():
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        for key, value in data.items():
            if key not in known:
                log.warning("Ignoring unknown setting %r in %s", key, path.name)
                continue
            if value is not None:
                values[key] = value

    for env_key, name in _ENV_OVERRIDES.items():
        raw = get_env(env_key)
        if raw:
            values[name] = raw

    try:
        coerced = {name: _coerce(name, value) for name, value in values.items()}
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid setting value: {exc}") from exc

    settings = replace(Settings(), **coerced)
    if settings.max_polls < 1:
        raise ValueError("max_polls must be at least 1")
    try:
        Bucket(settings.default_bucket)
    except ValueError:
        choices = ", ".join(b.value for b in Bucket)
        raise ValueError(
            f"Invalid default_bucket {settings.default_bucket!r} (expected one of: {choices})"
        ) from None
    if not settings.auth_url:
        log.debug("No auth URL configured; sign-in and dashboard are unavailable")
    return settings

"""Logging for the jobmatch client.

Console output follows ``LOG_LEVEL`` (default INFO). A per-day trace file,
``jobmatch_YYYY-MM-DD.log``, captures everything at DEBUG under ``logs/``
next to the package, or under ``JOBMATCH_LOG_DIR`` when that is set.
Tokens reach the logs only through ``redact()``.
"""
from __future__ import annotations

import logging
import os
import sys
from datetime import date
from pathlib import Path

_DEFAULT_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a named logger; configures root handlers on first call."""
    global _configured
    if not _configured:
        _configure()
        _configured = True
    return logging.getLogger(name)


def redact(token: str | None, keep: int = 8) -> str:
    """Shorten a view/access token so it is safe to write to logs."""
    if not token:
        return "<none>"
    if len(token) <= keep:
        return token
    return f"{token[:keep]}…"


def trace_file(day: date | None = None) -> Path:
    """Where the DEBUG trace for ``day`` (today by default) is written."""
    log_dir = Path(os.environ.get("JOBMATCH_LOG_DIR", "") or _DEFAULT_LOG_DIR)
    return log_dir / f"jobmatch_{(day or date.today()).isoformat()}.log"


def _configure() -> None:
    root = logging.getLogger()
    # an embedding application that already set up logging keeps its handlers
    if root.handlers:
        return

    console_level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FMT)
    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(formatter)
    root.addHandler(console)

    # connection-pool chatter would drown the auth and polling traces
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    path = trace_file()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        trace = logging.FileHandler(path, encoding="utf-8")
    except OSError as exc:
        logging.getLogger(__name__).warning("File logging disabled (%s): %s", path, exc)
        return
    trace.setLevel(logging.DEBUG)
    trace.setFormatter(formatter)
    root.addHandler(trace)

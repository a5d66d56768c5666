"""JSON-file store with atomic rewrites and advisory file locking."""
from __future__ import annotations

import fcntl
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path

from jobmatch.log import get_logger
from jobmatch.storage.base import KeyValueStore

log = get_logger(__name__)


@contextmanager
def _writer_lock(lock_path: Path):
    """Hold an exclusive flock on ``lock_path`` for one read-modify-write.

    This serializes writers across processes sharing the store file; threads
    inside one process are already serialized by the store's mutex.
    """
    with open(lock_path, "a") as lock_file:
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        except OSError as exc:
            # some network filesystems refuse flock; fall back to the mutex alone
            log.debug("flock on %s unavailable: %s", lock_path.name, exc)
        yield


class JsonFileStore(KeyValueStore):
    """All keys live in one JSON object; every write replaces the whole file.

    The file is swapped in with ``os.replace`` so readers (and a process that
    restarts after a crash) see either the previous or the new contents.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock_path = self.path.with_name(self.path.name + ".lock")
        self._mutex = threading.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            log.warning("Store %s unreadable (%s); starting empty", self.path.name, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: dict[str, str]) -> None:
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _update(self, key: str, value: str | None) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._mutex, _writer_lock(self._lock_path):
            data = self._read()
            if value is None:
                if key not in data:
                    return
                data.pop(key)
            else:
                data[key] = value
            self._write(data)

    def get(self, key: str) -> str | None:
        with self._mutex:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        self._update(key, value)
        log.debug("Store %s: wrote %s", self.path.name, key)

    def remove(self, key: str) -> None:
        self._update(key, None)

from __future__ import annotations

import threading
from datetime import date

from jobmatch.log import trace_file
from jobmatch.config import Settings
from jobmatch.last_search import LAST_SEARCH_KEY, LastSearchStore
from jobmatch.models import LastSearchSummary
from jobmatch.storage import JsonFileStore, MemoryStore, get_store


def test_file_store_persists_across_instances(tmp_path):
    path = tmp_path / "nested" / "store.json"
    JsonFileStore(path).set("a", "1")
    JsonFileStore(path).set("b", "2")

    reopened = JsonFileStore(path)
    assert reopened.get("a") == "1"
    reopened.remove("a")
    assert JsonFileStore(path).get("a") is None
    assert JsonFileStore(path).get("b") == "2"


def test_corrupt_file_reads_as_empty(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("{not json")

    store = JsonFileStore(path)
    assert store.get("a") is None
    store.set("a", "1")
    assert store.get("a") == "1"


def test_unreadable_json_value_is_none():
    store = MemoryStore({"k": "{oops"})
    assert store.get_json("k") is None


def test_get_store_memory_path():
    assert isinstance(get_store(Settings(store_path=":memory:")), MemoryStore)


def test_last_search_record_only_moves_forward():
    store = MemoryStore()
    last_search = LastSearchStore(store)
    first = LastSearchSummary("tok-a", "2025-01-10T12:00:00Z", 3)
    older = LastSearchSummary("tok-b", "2025-01-09T12:00:00Z", 9)
    newer = LastSearchSummary("tok-c", "2025-01-11T12:00:00+00:00", 1)

    assert last_search.record(first) is True
    assert last_search.record(older) is False
    assert last_search.record(newer) is True
    assert last_search.load().view_token == "tok-c"

    last_search.clear()
    assert last_search.load() is None


def test_invalid_last_search_record_is_ignored():
    store = MemoryStore()
    store.set_json(LAST_SEARCH_KEY, {"view_token": "tok", "timestamp_iso": "yesterday"})

    last_search = LastSearchStore(store)
    assert last_search.load() is None
    assert last_search.record(LastSearchSummary("tok-a", "2025-01-10T12:00:00Z", 3)) is True


def test_concurrent_writers_do_not_lose_keys(tmp_path):
    path = tmp_path / "store.json"
    stores = [JsonFileStore(path) for _ in range(4)]

    def write(i):
        stores[i % len(stores)].set(f"k{i}", str(i))

    threads = [threading.Thread(target=write, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)

    reopened = JsonFileStore(path)
    assert all(reopened.get(f"k{i}") == str(i) for i in range(20))
    assert (tmp_path / "store.json.lock").exists()


def test_trace_file_is_dated_under_log_dir(monkeypatch, tmp_path):
    monkeypatch.setenv("JOBMATCH_LOG_DIR", str(tmp_path))

    assert trace_file(date(2025, 1, 10)) == tmp_path / "jobmatch_2025-01-10.log"

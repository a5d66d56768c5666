from .base import KeyValueStore
from .file import JsonFileStore
from .memory import MemoryStore

from jobmatch.log import get_logger

log = get_logger(__name__)

__all__ = ["KeyValueStore", "JsonFileStore", "MemoryStore", "get_store"]


def get_store(settings) -> KeyValueStore:
    path = settings.store_path
    if str(path) == ":memory:":
        log.info("Using in-memory store (nothing persists between runs)")
        return MemoryStore()
    log.debug("Using JSON file store at %s", path)
    return JsonFileStore(path)

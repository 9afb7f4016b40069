"""In-memory and persistent caching of the current offset sample."""

from truetime.cache.key_value_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
)
from truetime.cache.offset_cache import OffsetCache

__all__ = [
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "OffsetCache",
]

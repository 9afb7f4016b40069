"""
Persistent storage for integer fields.

`KeyValueStore` is the interface the offset cache mirrors its sample into.
Hosts with their own preferences mechanism implement it directly; two simple
implementations are provided here.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """
    Abstract interface for get/set of independent 64-bit integer fields.

    An absent field is reported as None, which is distinct from 0.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[int]:
        """Returns the value stored under |key|, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: int) -> None:
        """Stores |value| under |key|, replacing any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Removes |key|. Does nothing if it is absent."""

    def set_many(self, values: Mapping[str, int]) -> None:
        """
        Stores every entry of |values| as one update.

        Implementations that can write all fields at once should override
        this. The default writes them one at a time and, if any write fails,
        removes every key in |values| before re-raising, so a failed update
        reads back as absent rather than as a mix of old and new fields.
        """
        try:
            for key, value in values.items():
                self.set(key, value)
        except Exception:
            logger.error(
                "Failed to store %s; removing partially written fields.",
                list(values),
                exc_info=True,
            )
            for key in values:
                self.remove(key)
            raise


class InMemoryKeyValueStore(KeyValueStore):
    """A KeyValueStore backed by a dict. Contents do not survive restarts."""

    def __init__(self) -> None:
        self.__lock = threading.Lock()
        self.__values: Dict[str, int] = {}

    def get(self, key: str) -> Optional[int]:
        with self.__lock:
            return self.__values.get(key)

    def set(self, key: str, value: int) -> None:
        with self.__lock:
            self.__values[key] = int(value)

    def set_many(self, values: Mapping[str, int]) -> None:
        converted = {key: int(value) for key, value in values.items()}
        with self.__lock:
            self.__values.update(converted)

    def remove(self, key: str) -> None:
        with self.__lock:
            self.__values.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """
    A KeyValueStore persisted as a JSON object in a single file.

    Every write replaces the file atomically (write to a temporary file in the
    same directory, then `os.replace`), so a crash mid-write leaves either the
    old or the new contents. A missing file reads as empty; an unreadable one
    is logged and also treated as empty. A field holding anything other than
    an integer is logged and read as absent.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        """
        Initializes the store.

        Args:
            path: File to persist to. Its parent directory must exist.
        """
        self.__path = Path(path)
        self.__lock = threading.Lock()

    def get(self, key: str) -> Optional[int]:
        with self.__lock:
            value = self.__load().get(key)
        if value is None:
            return None

        # bool is a subclass of int, but never a valid field.
        if isinstance(value, bool) or not isinstance(value, int):
            logger.warning(
                "Time data store %s holds a non-integer %r under %r; "
                "ignoring it.",
                self.__path,
                value,
                key,
            )
            return None
        return value

    def set(self, key: str, value: int) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, int]) -> None:
        converted = {key: int(value) for key, value in values.items()}
        with self.__lock:
            stored = self.__load()
            stored.update(converted)
            self.__save(stored)

    def remove(self, key: str) -> None:
        with self.__lock:
            values = self.__load()
            if key in values:
                del values[key]
                self.__save(values)

    def __load(self) -> Dict[str, Any]:
        try:
            with open(self.__path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(
                "Could not read time data store %s: %s", self.__path, e
            )
            return {}

        if not isinstance(data, dict):
            logger.warning(
                "Time data store %s does not hold an object; ignoring it.",
                self.__path,
            )
            return {}
        return data

    def __save(self, values: Dict[str, Any]) -> None:
        fd, temp_path = tempfile.mkstemp(
            dir=self.__path.parent, prefix=f".{self.__path.name}."
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(values, f)
            os.replace(temp_path, self.__path)
        except BaseException:
            os.unlink(temp_path)
            raise

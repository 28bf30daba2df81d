"""
The durable key-value store the persistence layer writes through.

The engine only ever sees the `KeyValueStore` interface (get/set/remove of
strings by key). Two implementations are provided: an in-memory store used by
tests and short-lived processes, and a JSON file on disk used by the server.
"""
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from typing import Optional


class StorageError(Exception):
    """Raised when the underlying store cannot complete an operation."""


class StorageQuotaExceededError(StorageError):
    """Raised when a write would grow the store past its quota."""


class KeyValueStore(ABC):
    """A string-keyed store of string values."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Returns the value stored under `key`, or None if absent."""
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Stores `value` under `key`, replacing any previous value."""
        raise NotImplementedError

    @abstractmethod
    def remove(self, key: str) -> None:
        """Deletes `key`. Removing an absent key is not an error."""
        raise NotImplementedError


def _check_quota(data: dict, quota_bytes: Optional[int]) -> None:
    if quota_bytes is None:
        return
    size = sum(len(k.encode("utf-8")) + len(v.encode("utf-8")) for k, v in data.items())
    if size > quota_bytes:
        raise StorageQuotaExceededError(f"Store size {size} bytes exceeds quota of {quota_bytes} bytes.")


class InMemoryStore(KeyValueStore):
    """Keeps values in a dictionary for the lifetime of the object."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            candidate = {**self._data, key: value}
            _check_quota(candidate, self.quota_bytes)
            self._data = candidate

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """
    Keeps all keys in a single JSON object on disk.

    Every write replaces the file atomically, so a crash mid-write leaves the
    previous contents intact. A file that cannot be parsed is treated as empty.
    """

    def __init__(self, path: str, quota_bytes: Optional[int] = None):
        self.path = path
        self.quota_bytes = quota_bytes
        self._lock = threading.Lock()

    def _read(self) -> dict:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logging.warning(f"Store file '{self.path}' is unreadable, treating it as empty: {e}")
            return {}
        if not isinstance(data, dict):
            logging.warning(f"Store file '{self.path}' does not hold an object, treating it as empty.")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: dict) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".store-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Could not write store file '{self.path}': {e}") from e

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            _check_quota(data, self.quota_bytes)
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)

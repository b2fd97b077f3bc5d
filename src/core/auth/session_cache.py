"""
Key-value stores for the login session bundle.

One opaque JSON-compatible dict is kept per scope key. The stores know
nothing about what the dict means; shape validation happens in the client
that reads it. There is no expiry here: a session lives until it is purged.

Backends:
    InMemorySessionCache: process-local dict guarded by a lock
    JsonFileSessionCache: one JSON document on disk, rewritten atomically

Example:
    >>> cache = InMemorySessionCache()
    >>> cache.set("default", {"token": "abc", "userInfo": [{"userId": "1"}]})
    >>> cache.get("default")["token"]
    'abc'
    >>> cache.set("default", None)
    >>> cache.get("default") is None
    True
"""

import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class InMemorySessionCache:
    """
    Thread-safe in-memory session cache.

    Values are deep-copied on the way in and out so callers cannot mutate
    the stored record by accident.
    """

    def __init__(self):
        self._entries: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, scope_key: str) -> dict[str, Any] | None:
        with self._lock:
            value = self._entries.get(scope_key)
            return copy.deepcopy(value) if value is not None else None

    def set(self, scope_key: str, value: dict[str, Any] | None) -> None:
        with self._lock:
            if value is None:
                self._entries.pop(scope_key, None)
            else:
                self._entries[scope_key] = copy.deepcopy(value)

    def clear(self) -> None:
        """Drop every scope."""
        with self._lock:
            self._entries.clear()


class JsonFileSessionCache:
    """
    Session cache backed by a single local JSON file.

    File layout:
        {"<scope_key>": {...session bundle...}, ...}

    Writes go to a temp file in the same directory followed by os.replace(),
    so a crash never leaves a half-written document behind. Unreadable or
    malformed content is treated as an empty cache; the next write replaces it.

    Limitations:
        Single-process only. Concurrent writers in different processes are
        last-writer-wins.
    """

    def __init__(self, path: str | Path):
        """
        Initialize the file-backed cache.

        Args:
            path: Location of the JSON document. Parent directories are
                created on first write.
        """
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            raw = self._path.read_text(encoding="utf-8")
            data = json.loads(raw) if raw.strip() else {}
        except (OSError, ValueError) as e:
            logger.warning(
                "Session cache file unreadable, treating as empty",
                extra={"destination_path": str(self._path), "error_message": str(e)[:200]},
            )
            return {}
        if not isinstance(data, dict):
            return {}
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, scope_key: str) -> dict[str, Any] | None:
        with self._lock:
            value = self._read_all().get(scope_key)
            return value if isinstance(value, dict) else None

    def set(self, scope_key: str, value: dict[str, Any] | None) -> None:
        with self._lock:
            data = self._read_all()
            if value is None:
                if scope_key not in data:
                    return
                data.pop(scope_key)
            else:
                data[scope_key] = value
            self._write_all(data)


__all__ = ["InMemorySessionCache", "JsonFileSessionCache"]

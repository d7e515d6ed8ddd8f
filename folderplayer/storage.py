"""Persistent key-value storage, one JSON document per preference domain."""

import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from folderplayer.logging import get_logger

logger = get_logger(__name__)


class PreferenceStore:
    """
    String-keyed store backed by a single JSON file.

    Every write rewrites the whole document through a temp file and
    ``os.replace`` so readers never observe a half-written file. A lock
    serializes writers within the process.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Preferences %s unreadable, starting empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Preferences %s is not an object, starting empty", self.path)
            return {}
        return data

    def _flush(self) -> None:
        """Write the document atomically. Caller holds the lock."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + '.tmp')
        try:
            with open(tmp, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error("Failed to write preferences %s: %s", self.path, e, exc_info=True)

    def _get(self, key: str, default: Any) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def _put(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def get_string(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._get(key, default)
        return value if isinstance(value, str) or value is None else str(value)

    def put_string(self, key: str, value: Optional[str]) -> None:
        self._put(key, value)

    def get_long(self, key: str, default: int = 0) -> int:
        value = self._get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def put_long(self, key: str, value: int) -> None:
        self._put(key, int(value))

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._get(key, default)
        return value if isinstance(value, bool) else default

    def put_bool(self, key: str, value: bool) -> None:
        self._put(key, bool(value))

    def put_many(self, values: Dict[str, Any]) -> None:
        """Write several keys in one replace of the backing file."""
        with self._lock:
            self._data.update(values)
            self._flush()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._flush()

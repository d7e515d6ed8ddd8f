"""Time-boxed cache of directory listings.

Entries expire after a fixed TTL. There is no background timer: expired
entries are swept at the start of every lookup, which keeps behaviour
deterministic under an injected clock.
"""

import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional

from folderplayer.logging import get_logger
from folderplayer.models import Entry
from folderplayer.sorting import sort_entries

logger = get_logger(__name__)

DEFAULT_TTL_MS = 20 * 60 * 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CacheEntry:
    files: List[Entry]
    cached_at: int  # epoch ms
    sort_field: str
    sort_ascending: bool
    scroll_index: int = 0
    scroll_offset: int = 0


class DirectoryCache:
    """Path -> listing map shared by the browser and the playback engine."""

    def __init__(self, ttl_ms: int = DEFAULT_TTL_MS,
                 clock: Callable[[], int] = _now_ms) -> None:
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._entries

    def sweep(self, now: Optional[int] = None) -> int:
        """
        Drop every entry older than the TTL.

        Returns:
            Number of evicted entries
        """
        now = self._clock() if now is None else now
        with self._lock:
            stale = [p for p, e in self._entries.items() if now - e.cached_at > self.ttl_ms]
            for path in stale:
                del self._entries[path]
        if stale:
            logger.debug("Evicted %d stale listings", len(stale))
        return len(stale)

    def get(self, path: str, now: Optional[int] = None) -> Optional[CacheEntry]:
        """Fresh entry for ``path`` or None."""
        now = self._clock() if now is None else now
        self.sweep(now)
        with self._lock:
            entry = self._entries.get(path)
        if entry is None or now - entry.cached_at >= self.ttl_ms:
            return None
        return entry

    def lookup(self, path: str, sort_field: str, ascending: bool,
               now: Optional[int] = None) -> Optional[CacheEntry]:
        """
        Fresh entry sorted the requested way.

        A hit stored under another sort order is re-sorted in memory and
        written back, keeping its timestamp and scroll anchor.
        """
        entry = self.get(path, now)
        if entry is None:
            return None
        if entry.sort_field == sort_field and entry.sort_ascending == ascending:
            return entry

        resorted = replace(
            entry,
            files=sort_entries(entry.files, sort_field, ascending),
            sort_field=sort_field,
            sort_ascending=ascending,
        )
        with self._lock:
            if path in self._entries:
                self._entries[path] = resorted
        return resorted

    def put(self, path: str, files: List[Entry], sort_field: str, ascending: bool,
            now: Optional[int] = None) -> CacheEntry:
        """Store a freshly fetched listing, replacing any previous one."""
        entry = CacheEntry(
            files=list(files),
            cached_at=self._clock() if now is None else now,
            sort_field=sort_field,
            sort_ascending=ascending,
        )
        with self._lock:
            self._entries[path] = entry
        return entry

    def invalidate(self, path: str) -> None:
        with self._lock:
            self._entries.pop(path, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def save_scroll(self, path: str, index: int, offset: int) -> None:
        """Remember the scroll anchor; no-op when the path is not cached."""
        with self._lock:
            entry = self._entries.get(path)
            if entry is not None:
                self._entries[path] = replace(entry, scroll_index=index, scroll_offset=offset)

    def update_sort(self, path: str, files: List[Entry], sort_field: str, ascending: bool) -> None:
        """Replace a cached listing with a re-sorted copy without refreshing its age."""
        with self._lock:
            entry = self._entries.get(path)
            if entry is not None:
                self._entries[path] = replace(
                    entry, files=list(files), sort_field=sort_field, sort_ascending=ascending
                )

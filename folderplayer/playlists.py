"""Saved playlists stored as JSON files."""

import json
import os
import threading
import time
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from folderplayer.exceptions import PlaylistError
from folderplayer.logging import get_logger
from folderplayer.security import SecurityValidator

logger = get_logger(__name__)

DEFAULT_PLAYLIST_ID = "default"
DEFAULT_PLAYLIST_NAME = "Default"
MAX_PLAYLISTS = 11  # including the default playlist


@dataclass(frozen=True)
class PlaylistItem:
    path: str
    title: str
    artist: Optional[str] = None
    source_id: str = "local"
    artwork_uri: Optional[str] = None
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlaylistItem':
        return cls(
            path=data['path'],
            title=data.get('title', ''),
            artist=data.get('artist'),
            source_id=data.get('source_id', 'local'),
            artwork_uri=data.get('artwork_uri'),
            duration_ms=int(data.get('duration_ms', 0) or 0),
        )


@dataclass(frozen=True)
class Playlist:
    id: str
    name: str
    items: List[PlaylistItem] = field(default_factory=list)


class PlaylistStore:
    """
    Playlists on disk.

    Each playlist's items live in ``<id>.fpl`` (a JSON list); display names
    for all ids live in ``metadata.json``. The "default" playlist always
    exists and mirrors the last user-started queue.
    """

    def __init__(self, playlists_dir: Optional[Path] = None) -> None:
        """
        Initialize the store.

        Args:
            playlists_dir: Directory for playlist files.
                          If None, uses config default.
        """
        if playlists_dir is None:
            from folderplayer.config import get_config
            playlists_dir = get_config().playlists_dir
        self.playlists_dir = Path(playlists_dir)
        self.playlists_dir.mkdir(parents=True, exist_ok=True)
        self.metadata_file = self.playlists_dir / "metadata.json"
        self._lock = threading.Lock()
        self._names: Dict[str, str] = self._load_metadata()

    def _load_metadata(self) -> Dict[str, str]:
        names: Dict[str, str] = {}
        if self.metadata_file.exists():
            try:
                with open(self.metadata_file, 'r', encoding='utf-8') as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    names = {str(k): str(v) for k, v in loaded.items()}
            except (OSError, json.JSONDecodeError) as e:
                logger.error("Error loading playlist metadata: %s", e, exc_info=True)
        names.setdefault(DEFAULT_PLAYLIST_ID, DEFAULT_PLAYLIST_NAME)
        return names

    def _write_json(self, path: Path, data: Any) -> None:
        tmp = path.with_suffix(path.suffix + '.tmp')
        try:
            with open(tmp, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except OSError as e:
            raise PlaylistError(f"Cannot write {path.name}: {e}") from e

    def _save_metadata(self) -> None:
        self._write_json(self.metadata_file, self._names)

    def _file_for(self, playlist_id: str) -> Path:
        if not SecurityValidator.validate_playlist_id(playlist_id):
            raise PlaylistError(f"Invalid playlist id: {playlist_id!r}")
        return self.playlists_dir / f"{playlist_id}.fpl"

    def get_all(self) -> List[Playlist]:
        with self._lock:
            names = dict(self._names)
        return [self.get(pid) or Playlist(pid, name) for pid, name in names.items()]

    def get(self, playlist_id: str) -> Optional[Playlist]:
        """Load a playlist; None when it has no file or the file is unreadable."""
        path = self._file_for(playlist_id)
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
            items = [PlaylistItem.from_dict(d) for d in raw]
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error("Error loading playlist %s: %s", playlist_id, e, exc_info=True)
            return None
        with self._lock:
            name = self._names.get(playlist_id, playlist_id)
        return Playlist(playlist_id, name, items)

    def save(self, playlist: Playlist) -> None:
        path = self._file_for(playlist.id)
        with self._lock:
            self._write_json(path, [item.to_dict() for item in playlist.items])
            self._names[playlist.id] = playlist.name
            self._save_metadata()

    def create(self, name: str) -> Optional[str]:
        """
        Create an empty playlist.

        Returns:
            New id, or None when the name is invalid or the limit is reached
        """
        sanitized = SecurityValidator.validate_playlist_name(name)
        if not sanitized:
            logger.error("Invalid playlist name: %s", name)
            return None
        with self._lock:
            if len(self._names) >= MAX_PLAYLISTS:
                logger.warning("Playlist limit of %d reached", MAX_PLAYLISTS)
                return None
            playlist_id = f"list_{int(time.time() * 1000)}"
            while playlist_id in self._names:
                playlist_id = f"list_{int(playlist_id[5:]) + 1}"
        self.save(Playlist(playlist_id, sanitized))
        return playlist_id

    def rename(self, playlist_id: str, new_name: str) -> bool:
        if playlist_id == DEFAULT_PLAYLIST_ID:
            return False
        sanitized = SecurityValidator.validate_playlist_name(new_name)
        with self._lock:
            if not sanitized or playlist_id not in self._names:
                return False
            self._names[playlist_id] = sanitized
            self._save_metadata()
        return True

    def delete(self, playlist_id: str) -> bool:
        if playlist_id == DEFAULT_PLAYLIST_ID:
            return False
        path = self._file_for(playlist_id)
        with self._lock:
            if path.exists():
                path.unlink()
            existed = self._names.pop(playlist_id, None) is not None
            self._save_metadata()
        return existed

    def append(self, playlist_id: str, items: List[PlaylistItem]) -> None:
        with self._lock:
            name = self._names.get(playlist_id, playlist_id)
        playlist = self.get(playlist_id) or Playlist(playlist_id, name)
        self.save(replace(playlist, items=list(playlist.items) + list(items)))

    def remove_at(self, playlist_id: str, index: int) -> bool:
        playlist = self.get(playlist_id)
        if playlist is None or not 0 <= index < len(playlist.items):
            return False
        items = list(playlist.items)
        items.pop(index)
        self.save(replace(playlist, items=items))
        return True

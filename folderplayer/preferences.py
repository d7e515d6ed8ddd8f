"""Typed preference domains on top of PreferenceStore.

Three documents live in the XDG data directory: ``playback.json``
(persisted playback record and player toggles), ``sources.json`` (the
source list plus browse/sort state) and ``lyrics.json``.
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from folderplayer.config import get_config
from folderplayer.logging import get_logger
from folderplayer.models import LyricLine, SourceDescriptor
from folderplayer.storage import PreferenceStore

logger = get_logger(__name__)

ROOT_PATH = "ROOT"
DEFAULT_PLAYLIST_ID = "default"
DEFAULT_LYRIC_API_URL = "https://api.lrc.cx/lyrics"


def _store(domain: str, store: Optional[PreferenceStore]) -> PreferenceStore:
    if store is not None:
        return store
    return PreferenceStore(get_config().preferences_file(domain))


def _descriptor_from_json(value: Optional[str]) -> Optional[SourceDescriptor]:
    if not value:
        return None
    try:
        data = json.loads(value)
        return SourceDescriptor.from_dict(data) if data else None
    except (ValueError, KeyError, TypeError) as e:
        logger.warning("Discarding unreadable source descriptor: %s", e)
        return None


@dataclass(frozen=True)
class PlaybackRecord:
    """Everything needed to rebuild the last queue after a restart."""

    source: Optional[SourceDescriptor]
    folder_path: Optional[str]
    media_identity: Optional[str]
    position_ms: int = 0


@dataclass(frozen=True)
class CachedMetadata:
    """Last displayed now-playing state, shown before the player reports anything."""

    title: str = ""
    artist: str = ""
    folder_name: str = ""
    audio_info: str = ""
    cover_uri: Optional[str] = None
    lyrics: Tuple[LyricLine, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['lyrics'] = [[line.time_ms, line.text] for line in self.lyrics]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CachedMetadata':
        return cls(
            title=data.get('title', ''),
            artist=data.get('artist', ''),
            folder_name=data.get('folder_name', ''),
            audio_info=data.get('audio_info', ''),
            cover_uri=data.get('cover_uri'),
            lyrics=tuple(LyricLine(int(t), str(text)) for t, text in data.get('lyrics', [])),
        )


class PlaybackPreferences:
    """Persisted playback record, cached display state and player toggles."""

    RECORD_KEY = "playback_record"
    POSITION_KEY = "last_position"
    METADATA_KEY = "cached_metadata"

    def __init__(self, store: Optional[PreferenceStore] = None) -> None:
        self.store = _store("playback", store)

    def save_playback_state(self, source: Optional[SourceDescriptor], folder_path: Optional[str],
                            media_identity: Optional[str], position_ms: int) -> None:
        """Write source, path, identity and position together."""
        record = {
            'source': source.to_dict() if source else None,
            'folder_path': folder_path,
            'media_identity': media_identity,
        }
        self.store.put_many({
            self.RECORD_KEY: json.dumps(record),
            self.POSITION_KEY: int(position_ms),
        })

    def save_position(self, position_ms: int) -> None:
        self.store.put_long(self.POSITION_KEY, position_ms)

    def load_playback_state(self) -> PlaybackRecord:
        raw = self.store.get_string(self.RECORD_KEY)
        position = self.store.get_long(self.POSITION_KEY, 0)
        if not raw:
            return PlaybackRecord(None, None, None, position)
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning("Discarding unreadable playback record: %s", e)
            return PlaybackRecord(None, None, None, 0)

        source = None
        if data.get('source'):
            try:
                source = SourceDescriptor.from_dict(data['source'])
            except (KeyError, ValueError) as e:
                logger.warning("Discarding unreadable source in playback record: %s", e)
        return PlaybackRecord(
            source=source,
            folder_path=data.get('folder_path'),
            media_identity=data.get('media_identity'),
            position_ms=position,
        )

    def save_cached_metadata(self, metadata: CachedMetadata) -> None:
        self.store.put_string(self.METADATA_KEY, json.dumps(metadata.to_dict(), ensure_ascii=False))

    def get_cached_metadata(self) -> Optional[CachedMetadata]:
        raw = self.store.get_string(self.METADATA_KEY)
        if not raw:
            return None
        try:
            return CachedMetadata.from_dict(json.loads(raw))
        except (ValueError, TypeError) as e:
            logger.warning("Discarding unreadable cached metadata: %s", e)
            return None

    def get_auto_next_folder(self) -> bool:
        return self.store.get_bool("auto_next_folder", False)

    def save_auto_next_folder(self, enabled: bool) -> None:
        self.store.put_bool("auto_next_folder", enabled)

    def get_active_playlist_id(self) -> str:
        return self.store.get_string("active_playlist_id", DEFAULT_PLAYLIST_ID) or DEFAULT_PLAYLIST_ID

    def save_active_playlist_id(self, playlist_id: str) -> None:
        self.store.put_string("active_playlist_id", playlist_id)

    def clear_all(self) -> None:
        self.store.clear()


class SourcePreferences:
    """Saved sources, last browsed location and sort choices."""

    def __init__(self, store: Optional[PreferenceStore] = None) -> None:
        self.store = _store("sources", store)

    def get_saved_sources(self) -> List[SourceDescriptor]:
        raw = self.store.get_string("sources_list")
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except ValueError as e:
            logger.warning("Discarding unreadable source list: %s", e)
            return []
        sources = []
        for item in items:
            try:
                sources.append(SourceDescriptor.from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Skipping unreadable source entry: %s", e)
        return sources

    def save_sources(self, sources: List[SourceDescriptor]) -> None:
        self.store.put_string("sources_list", json.dumps([s.to_dict() for s in sources]))

    def save_last_browsed_state(self, source: Optional[SourceDescriptor], path: str) -> None:
        self.store.put_many({
            "last_source": json.dumps(source.to_dict()) if source else None,
            "last_path": path,
        })

    def get_last_browsed_source(self) -> Optional[SourceDescriptor]:
        return _descriptor_from_json(self.store.get_string("last_source"))

    def get_last_browsed_path(self) -> str:
        return self.store.get_string("last_path", ROOT_PATH) or ROOT_PATH

    def get_default_sort(self) -> Tuple[str, bool]:
        config = get_config()
        field_name = self.store.get_string("default_sort_field") or config.default_sort_field
        ascending = self.store.get_bool("default_sort_asc", config.default_sort_ascending)
        return field_name, ascending

    def save_default_sort(self, field_name: str, ascending: bool) -> None:
        self.store.put_many({"default_sort_field": field_name, "default_sort_asc": ascending})

    def get_directory_sort(self, path: str) -> Optional[Tuple[str, bool]]:
        field_name = self.store.get_string(f"sort_field_{path}")
        if field_name is None:
            return None
        return field_name, self.store.get_bool(f"sort_asc_{path}", True)

    def save_directory_sort(self, path: str, field_name: str, ascending: bool) -> None:
        self.store.put_many({f"sort_field_{path}": field_name, f"sort_asc_{path}": ascending})

    def get_sort_for(self, path: str) -> Tuple[str, bool]:
        """Directory override if one was saved, otherwise the default sort."""
        return self.get_directory_sort(path) or self.get_default_sort()

    def clear_all(self) -> None:
        self.store.clear()


class LyricPreferences:
    def __init__(self, store: Optional[PreferenceStore] = None) -> None:
        self.store = _store("lyrics", store)

    def get_lyric_api_url(self) -> str:
        default = get_config().lyric_api_url or DEFAULT_LYRIC_API_URL
        return self.store.get_string("lyric_api_url", default) or default

    def set_lyric_api_url(self, url: str) -> None:
        self.store.put_string("lyric_api_url", url)

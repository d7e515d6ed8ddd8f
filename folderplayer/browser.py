"""Folder browser - source list management and cached directory navigation."""
from dataclasses import replace
from typing import List, Optional, Tuple

from folderplayer.config import get_config
from folderplayer.directory_cache import DirectoryCache
from folderplayer.events import EventBus
from folderplayer.logging import get_logger
from folderplayer.models import Credentials, Entry, SourceDescriptor, SourceKind
from folderplayer.preferences import ROOT_PATH, SourcePreferences
from folderplayer.queue_builder import CUE_EXTENSION, parent_path
from folderplayer.security import SecurityValidator
from folderplayer.sorting import SortField, sort_entries
from folderplayer.sources import SourceRegistry

logger = get_logger(__name__)

DEFAULT_SERVER_NAME = "My NAS"

# Files offered for playback from a listing
MUSIC_EXTENSIONS = frozenset({
    "mp3", "flac", "m4a", "wav", "ogg", "aac", "opus", "ape", "dsf", "dff",
})


class FolderBrowser:
    """
    Browsing state for one view: the source list, the current source and
    path, the visible listing and its sort order.

    Local roots from the configuration are discovered on startup and listed
    before user-added WebDAV servers; only the latter are persisted.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        cache: Optional[DirectoryCache] = None,
        source_prefs: Optional[SourcePreferences] = None,
        event_bus: Optional[EventBus] = None,
    ):
        config = get_config()
        self._registry = registry
        self._cache = cache or DirectoryCache(config.cache_ttl_ms)
        self._prefs = source_prefs or SourcePreferences()
        self._events = event_bus or EventBus()

        self.local_sources = [
            SourceDescriptor(name=root.name or str(root), kind=SourceKind.LOCAL,
                             url=str(root), id=f"local:{root}")
            for root in config.local_roots
        ]
        self.saved_sources: List[SourceDescriptor] = self._prefs.get_saved_sources()

        self.current_source: Optional[SourceDescriptor] = None
        self.current_path = ROOT_PATH
        self.files: List[Entry] = []
        self.sort_field, self.sort_ascending = self._prefs.get_default_sort()
        self.scroll_to: Tuple[int, int] = (0, 0)

    @property
    def sources(self) -> List[SourceDescriptor]:
        return self.local_sources + self.saved_sources

    # ------------------------------------------------------------------
    # Source list
    # ------------------------------------------------------------------

    def _save_sources(self) -> None:
        self._prefs.save_sources(self.saved_sources)
        self._events.publish(EventBus.SOURCES_CHANGED, self.sources)

    def _index_of(self, source_id: str) -> int:
        return next((i for i, s in enumerate(self.saved_sources) if s.id == source_id), -1)

    def add_webdav_source(self, name: str, url: str, username: str = "", password: str = "",
                          sub_path: Optional[str] = None) -> Optional[SourceDescriptor]:
        """
        Add a WebDAV server.

        Args:
            name: Display name; blank becomes "My NAS"
            url: Server address; "http://" is assumed when no scheme is given
            username: Basic auth user
            password: Basic auth password
            sub_path: Optional folder below the server root to start in

        Returns:
            The new descriptor, or None if the address is unusable
        """
        normalized = SecurityValidator.normalize_server_url(url)
        if normalized is None:
            self._events.publish(EventBus.ERROR_MESSAGE, f"Invalid server address: {url}")
            return None
        descriptor = SourceDescriptor(
            name=name.strip() or DEFAULT_SERVER_NAME,
            kind=SourceKind.WEBDAV,
            url=normalized,
            sub_path=sub_path or None,
            credentials=Credentials(username, password) if (username or password) else None,
        )
        self.saved_sources.append(descriptor)
        self._save_sources()
        logger.info("Added source %s (%s)", descriptor.name, descriptor.url)
        return descriptor

    def edit_webdav_source(self, source_id: str, name: str, url: str, username: str = "",
                           password: str = "", sub_path: Optional[str] = None) -> bool:
        index = self._index_of(source_id)
        normalized = SecurityValidator.normalize_server_url(url)
        if index == -1 or normalized is None:
            return False
        updated = replace(
            self.saved_sources[index],
            name=name.strip() or DEFAULT_SERVER_NAME,
            url=normalized,
            sub_path=sub_path or None,
            credentials=Credentials(username, password) if (username or password) else None,
        )
        self.saved_sources[index] = updated
        # Next listing must use the new address and credentials
        self._registry.forget(source_id)
        if self.current_source is not None and self.current_source.id == source_id:
            self.current_source = updated
        self._save_sources()
        return True

    def remove_source(self, source_id: str) -> bool:
        index = self._index_of(source_id)
        if index == -1:
            return False
        del self.saved_sources[index]
        self._registry.forget(source_id)
        if self.current_source is not None and self.current_source.id == source_id:
            self.exit_source()
        self._save_sources()
        return True

    def duplicate_source(self, source_id: str) -> Optional[SourceDescriptor]:
        index = self._index_of(source_id)
        if index == -1:
            return None
        copy = self.saved_sources[index].copy_as_duplicate()
        self.saved_sources.insert(index + 1, copy)
        self._save_sources()
        return copy

    def move_source_up(self, source_id: str) -> bool:
        return self._move(source_id, -1)

    def move_source_down(self, source_id: str) -> bool:
        return self._move(source_id, 1)

    def _move(self, source_id: str, delta: int) -> bool:
        index = self._index_of(source_id)
        target = index + delta
        if index == -1 or not 0 <= target < len(self.saved_sources):
            return False
        items = self.saved_sources
        items[index], items[target] = items[target], items[index]
        self._save_sources()
        return True

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def select_source(self, source: SourceDescriptor) -> List[Entry]:
        self.current_source = source
        return await self.load_path(source.effective_root())

    async def restore_last_location(self) -> List[Entry]:
        """Reopen the source and folder that were open on the last run."""
        source = self._prefs.get_last_browsed_source()
        path = self._prefs.get_last_browsed_path()
        if source is None or path == ROOT_PATH:
            return []
        known = next((s for s in self.sources if s.id == source.id), None)
        if known is None:
            return []
        self.current_source = known
        return await self.load_path(path)

    async def load_path(self, path: str, back_navigation: bool = False) -> List[Entry]:
        """
        Show ``path`` of the current source.

        A fresh cache entry is reused, re-sorted in memory if the sort
        changed since it was stored. The scroll anchor is only restored when
        navigating back.
        """
        if self.current_source is None:
            return []

        self.current_path = path
        self._prefs.save_last_browsed_state(self.current_source, path)
        field, ascending = self._prefs.get_sort_for(path)
        self.sort_field, self.sort_ascending = field, ascending

        cached = self._cache.lookup(path, field, ascending)
        if cached is not None:
            self.files = list(cached.files)
            self.scroll_to = ((cached.scroll_index, cached.scroll_offset)
                              if back_navigation else (0, 0))
            return self.files

        client = self._registry.get(self.current_source)
        files = sort_entries(await client.list(path), field, ascending)
        if files:
            # Failed listings come back empty; do not pin them for the TTL
            self._cache.put(path, files, field, ascending)
        self.files = files
        self.scroll_to = (0, 0)
        return self.files

    async def refresh(self) -> List[Entry]:
        self._cache.invalidate(self.current_path)
        return await self.load_path(self.current_path)

    def sort_files(self, field) -> None:
        """Sort the visible listing; picking the same field again flips direction."""
        field = SortField.parse(field)
        name = field.value if isinstance(field, SortField) else field
        if name == self.sort_field:
            ascending = not self.sort_ascending
        else:
            ascending = True
        self.sort_field, self.sort_ascending = name, ascending
        self.files = sort_entries(self.files, name, ascending)

        if self.current_path != ROOT_PATH:
            self._prefs.save_directory_sort(self.current_path, name, ascending)
        self._cache.update_sort(self.current_path, self.files, name, ascending)

    def save_scroll_position(self, index: int, offset: int) -> None:
        self._cache.save_scroll(self.current_path, index, offset)

    async def navigate_up(self) -> bool:
        """
        Go to the parent folder, or leave the source at its root.

        Returns:
            False if the browser left the source instead
        """
        source = self.current_source
        if source is None:
            return False
        path = self.current_path
        root = source.effective_root()

        if source.kind == SourceKind.LOCAL:
            if path.rstrip('/') == root.rstrip('/'):
                self.exit_source()
                return False
            parent = parent_path(path)
            if parent and parent.startswith(root.rstrip('/')):
                await self.load_path(parent, back_navigation=True)
                return True
            self.exit_source()
            return False

        path_clean = path.rstrip('/')
        root_clean = root.rstrip('/')
        if path_clean == root_clean or not path_clean:
            self.exit_source()
            return False
        parent = parent_path(path)
        if len(parent) < len(root_clean) or not parent.startswith("http"):
            self.exit_source()
            return False
        # Collections are listed (and cached) under their trailing-slash URL
        await self.load_path(parent + '/', back_navigation=True)
        return True

    def exit_source(self) -> None:
        self._prefs.save_last_browsed_state(None, ROOT_PATH)
        self.current_source = None
        self.current_path = ROOT_PATH
        self.files = []

    def playable_entries(self) -> List[Entry]:
        """Audio files in the visible listing, in display order."""
        return [e for e in self.files if not e.is_directory and e.extension in MUSIC_EXTENSIONS]

    def cue_sheets(self) -> List[Entry]:
        return [e for e in self.files if not e.is_directory and e.extension == CUE_EXTENSION]

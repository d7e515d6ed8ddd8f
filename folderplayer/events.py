"""Centralized event bus for decoupled component communication."""

from typing import Any, Callable, Dict, List
from folderplayer.logging import get_logger

logger = get_logger(__name__)


class EventBus:
    """Publish-subscribe event system. Components publish/subscribe without knowing each other.

    Event Flow Architecture:
    - PlaybackEngine publishes playback notifications (*_CHANGED, PLAYBACK_*)
    - FolderBrowser publishes source and listing notifications
    - Presentation layers only subscribe; requests go through method calls
    """

    # =========================================================================
    # Engine -> UI: Playback Notifications
    # =========================================================================

    # NowPlaying snapshot after every accepted report or refinement
    NOW_PLAYING_CHANGED = "playback.now_playing_changed"
    # NowPlaying, once per confirmed new media identity
    TRACK_CHANGED = "track.changed"
    # NowPlaying with fresh position, duration and lyric index
    PLAYBACK_PROGRESS = "playback.progress"
    # Tuple[LyricLine, ...] for the current track
    LYRICS_CHANGED = "playback.lyrics_changed"
    # List[Track]
    QUEUE_CHANGED = "playback.queue_changed"
    # SleepTimer
    SLEEP_TIMER_CHANGED = "playback.sleep_timer_changed"
    # Player error code (str)
    PLAYBACK_ERROR = "playback.error"

    # =========================================================================
    # Sources & Library
    # =========================================================================

    # {"source": str, "path": str, "error": str}
    SOURCE_ERROR = "source.error"
    SOURCES_CHANGED = "source.list_changed"
    PLAYLIST_CHANGED = "playlist.changed"

    # User-visible message for a request that could not be fulfilled
    ERROR_MESSAGE = "ui.error_message"

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event not in self._subscribers:
            self._subscribers[event] = []
        self._subscribers[event].append(callback)

    def unsubscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event in self._subscribers:
            try:
                self._subscribers[event].remove(callback)
            except ValueError:
                pass

    def publish(self, event: str, data: Any = None) -> None:
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(data)
            except Exception as e:
                logger.error(
                    "Error in event callback for %s: %s", event, e, exc_info=True
                )

"""
The external player the engine drives.

The engine never decodes audio itself. Whatever actually plays (a GStreamer
pipeline, mpv, a phone's media session) is wrapped in an object with this
shape and reports back through ``PlayerListener`` callbacks.
"""

from enum import Enum
from typing import List, Optional, Protocol

from folderplayer.audio_info import AudioFormat
from folderplayer.models import Track


class PlaybackStateKind(str, Enum):
    IDLE = "idle"
    BUFFERING = "buffering"
    READY = "ready"
    ENDED = "ended"


class RepeatMode(str, Enum):
    OFF = "off"
    ALL = "all"
    ONE = "one"

    def next(self) -> 'RepeatMode':
        """OFF -> ALL -> ONE -> OFF."""
        order = [RepeatMode.OFF, RepeatMode.ALL, RepeatMode.ONE]
        return order[(order.index(self) + 1) % len(order)]


class TransitionReason(str, Enum):
    AUTO = "auto"                      # previous item finished
    SEEK = "seek"                      # next/previous/seek_to
    PLAYLIST_CHANGED = "playlist_changed"
    REPEAT = "repeat"


class PlayerListener(Protocol):
    def on_transition(self, media_identity: Optional[str], reason: TransitionReason) -> None: ...

    def on_state_changed(self, state: PlaybackStateKind) -> None: ...

    def on_is_playing_changed(self, is_playing: bool) -> None: ...

    def on_error(self, code: str) -> None: ...


class Player(Protocol):
    # Snapshot
    @property
    def media_item_count(self) -> int: ...

    @property
    def current_index(self) -> int: ...

    @property
    def current_identity(self) -> Optional[str]: ...

    @property
    def current_title(self) -> Optional[str]: ...

    @property
    def current_artist(self) -> Optional[str]: ...

    @property
    def state(self) -> PlaybackStateKind: ...

    @property
    def is_playing(self) -> bool: ...

    @property
    def position_ms(self) -> int: ...

    @property
    def duration_ms(self) -> int: ...

    @property
    def shuffle_enabled(self) -> bool: ...

    @property
    def repeat_mode(self) -> RepeatMode: ...

    @property
    def audio_format(self) -> Optional[AudioFormat]: ...

    # Commands
    def set_queue(self, tracks: List[Track], start_index: int, position_ms: int = 0) -> None: ...

    def prepare(self) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def seek_to(self, index: int, position_ms: int) -> None: ...

    def seek_to_next(self) -> None: ...

    def seek_to_previous(self) -> None: ...

    def set_shuffle_enabled(self, enabled: bool) -> None: ...

    def set_repeat_mode(self, mode: RepeatMode) -> None: ...

    def add_listener(self, listener: PlayerListener) -> None: ...

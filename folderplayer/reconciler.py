"""
Reconciling what the user asked for with what the player reports.

The player is asynchronous and can be driven by other processes (media
keys, a lock screen, an OS media session). Every callback is therefore
passed through ``observe`` first: while a play intent is pending, reports
that do not match it describe a stale or transitional player and are
suppressed so they never reach the display.

Everything here is a pure function over frozen values; the engine owns the
single current ``ReconcileState`` and swaps it on each event.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple
from urllib.parse import unquote

from folderplayer.models import LyricLine
from folderplayer.player import PlaybackStateKind

NO_SONG_TITLE = "No Song Playing"

# Extensions stripped from titles that are really file names
TITLE_EXTENSIONS = frozenset({
    "mp3", "flac", "m4a", "wav", "ogg", "aac", "opus", "ape", "dsf", "dff",
})

SHORT_FOLDER_LEN = 6


class Phase(str, Enum):
    IDLE = "idle"
    INTENT_PENDING = "intent_pending"
    SYNCED = "synced"
    RESTORING = "restoring"


@dataclass(frozen=True)
class PlaybackIntent:
    """
    A requested transition awaiting confirmation.

    ``target`` is the exact identity expected, or None when any identity
    other than ``issued_from`` will do (next, previous, a fresh queue).
    """

    target: Optional[str]
    issued_from: Optional[str]

    @property
    def is_wildcard(self) -> bool:
        return self.target is None

    def satisfied_by(self, identity: Optional[str]) -> bool:
        if self.target is None:
            return identity != self.issued_from
        return identity == self.target


@dataclass(frozen=True)
class ReconcileState:
    intent: Optional[PlaybackIntent] = None
    current_identity: Optional[str] = None
    # Identity being restored; reports for anything else are suppressed
    restoring_identity: Optional[str] = None

    @property
    def restoring(self) -> bool:
        return self.restoring_identity is not None

    @property
    def phase(self) -> Phase:
        if self.restoring:
            return Phase.RESTORING
        if self.intent is not None:
            return Phase.INTENT_PENDING
        if self.current_identity is not None:
            return Phase.SYNCED
        return Phase.IDLE


def issue_intent(state: ReconcileState, target: Optional[str],
                 issued_from: Optional[str]) -> ReconcileState:
    """Replace any pending intent; at most one is live."""
    return replace(state, intent=PlaybackIntent(target, issued_from))


def begin_restore(state: ReconcileState, identity: str) -> ReconcileState:
    """Wait for a titled report of ``identity`` before showing anything."""
    return replace(state, restoring_identity=identity)


def cancel_restore(state: ReconcileState) -> ReconcileState:
    return replace(state, restoring_identity=None)


def fail_restore(state: ReconcileState) -> ReconcileState:
    """Restoration produced no queue: back to idle, no retry."""
    return ReconcileState()


def observe(state: ReconcileState, identity: Optional[str], title: Optional[str],
            player_state: PlaybackStateKind) -> Tuple[ReconcileState, bool]:
    """
    Filter one player report.

    Args:
        state: Current reconciliation state
        identity: Identity the player reports as current
        title: Title the player reports, possibly blank while parsing
        player_state: Player state at the time of the report

    Returns:
        (new state, whether the report may update the display)
    """
    if identity is None:
        return state, False

    if state.intent is not None:
        if not state.intent.satisfied_by(identity):
            return state, False
        state = replace(state, intent=None)

    titled = bool(title and title.strip())
    if state.restoring:
        # Only a titled report of the restored track ends restoration
        if identity != state.restoring_identity or not titled:
            return state, False
        state = cancel_restore(state)
    elif not titled and player_state in (PlaybackStateKind.BUFFERING,
                                         PlaybackStateKind.IDLE):
        # No title yet: keep showing what we have instead of "nothing playing"
        return state, False

    return replace(state, current_identity=identity), True


def should_restore(saved_identity: Optional[str], player) -> bool:
    """
    Decide at startup whether to rebuild the saved queue.

    Restore into an empty player, or into one that holds something else
    while neither playing nor ready. A player that is already busy with
    another session is left alone.
    """
    if saved_identity is None:
        return False
    if player.media_item_count == 0:
        return True
    mismatch = player.current_identity != saved_identity
    return (mismatch and not player.is_playing
            and player.state != PlaybackStateKind.READY)


@dataclass(frozen=True)
class NowPlaying:
    """Everything a presentation layer shows for the current track."""

    media_identity: Optional[str] = None
    title: str = NO_SONG_TITLE
    artist: str = ""
    folder_name: str = ""
    cover_uri: Optional[str] = None
    audio_info: str = ""
    queue_index: int = -1
    position_ms: int = 0
    duration_ms: int = 0
    is_playing: bool = False
    lyrics: Tuple[LyricLine, ...] = field(default_factory=tuple)
    lyric_index: int = -1


def _clean(text: str) -> str:
    text = re.sub(r"\{.*?\}", "", text)
    text = re.sub(r"\[.*?\]", "", text)
    text = re.sub(r"(?i)\s+flac", "", text)
    return re.sub(r"\s+", " ", text).strip()


def clean_title(raw: Optional[str]) -> str:
    """Player title with a trailing audio file extension removed."""
    if not raw:
        return NO_SONG_TITLE
    if '.' in raw:
        stem, ext = raw.rsplit('.', 1)
        if ext.lower() in TITLE_EXTENSIONS:
            return stem
    return raw


def clean_folder_name(identity: Optional[str]) -> str:
    """
    Album-ish label from the folder holding ``identity``.

    Bracketed tags and a trailing "FLAC" are removed. Short disc folders
    such as "CD1" are prefixed with their parent: "Album - CD1".
    """
    if identity is None:
        return ""
    parts = [p for p in re.split(r"[/\\]", unquote(identity)) if p]
    if len(parts) < 2:
        return "Root"
    folder_index = len(parts) - 2
    folder = _clean(parts[folder_index])
    if len(folder) <= SHORT_FOLDER_LEN and folder_index >= 1:
        return f"{_clean(parts[folder_index - 1])} - {folder}"
    return folder


def parent_of_identity(identity: str) -> str:
    """Folder part of an identity, ignoring any cue track suffix."""
    base = identity.split('#', 1)[0]
    return base.rsplit('/', 1)[0] if '/' in base else ''

"""Pytest configuration and fixtures."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from folderplayer.audio_info import AudioFormat
from folderplayer.events import EventBus
from folderplayer.player import PlaybackStateKind, RepeatMode, TransitionReason


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def mock_config(monkeypatch, temp_dir):
    """Configuration rooted in a temporary XDG tree."""
    from folderplayer.config import Config

    monkeypatch.setenv('XDG_CONFIG_HOME', str(temp_dir / 'config'))
    monkeypatch.setenv('XDG_CACHE_HOME', str(temp_dir / 'cache'))
    monkeypatch.setenv('XDG_DATA_HOME', str(temp_dir / 'data'))
    Config._instance = None

    config = Config.get_instance()
    config.set('browser', 'local_roots', str(temp_dir / 'music'))
    yield config
    Config._instance = None


@pytest.fixture
def event_bus():
    return EventBus()


class EventRecorder:
    """Collects everything published for the given events."""

    def __init__(self, bus: EventBus, *events: str):
        self.received: List[Tuple[str, object]] = []
        for event in events:
            bus.subscribe(event, lambda data, event=event: self.received.append((event, data)))

    def of(self, event: str) -> list:
        return [data for name, data in self.received if name == event]

    def clear(self) -> None:
        self.received.clear()


@pytest.fixture
def recorder(event_bus):
    def make(*events: str) -> EventRecorder:
        return EventRecorder(event_bus, *events)
    return make


# ============================================================================
# Music folders on disk
# ============================================================================

@pytest.fixture
def music_dir(temp_dir):
    """
    music/
        AlbumA/ 01.mp3 02.mp3 cover.jpg
        AlbumB/ 01.mp3
        Empty/
    """
    root = temp_dir / 'music'
    album_a = root / 'AlbumA'
    album_b = root / 'AlbumB'
    album_a.mkdir(parents=True)
    album_b.mkdir()
    (root / 'Empty').mkdir()
    (album_a / '01.mp3').write_bytes(b'not really audio')
    (album_a / '02.mp3').write_bytes(b'not really audio either')
    (album_a / 'cover.jpg').write_bytes(b'jpeg')
    (album_b / '01.mp3').write_bytes(b'not really audio')
    return root


# ============================================================================
# Scripted player
# ============================================================================

class FakePlayer:
    """
    In-memory player. Commands only record themselves; tests decide when and
    what the player reports back through ``advance_to`` / ``report``.
    """

    def __init__(self):
        self.listeners = []
        self.calls: List[tuple] = []
        self.queue = []
        self.index = -1
        self.state_kind = PlaybackStateKind.IDLE
        self.playing = False
        self.position = 0
        self.duration = 0
        self.shuffle = False
        self.repeat = RepeatMode.OFF
        self.blank_titles = False
        self.format: Optional[AudioFormat] = None

    # Snapshot
    @property
    def media_item_count(self):
        return len(self.queue)

    @property
    def current_index(self):
        return self.index

    @property
    def current_track(self):
        if 0 <= self.index < len(self.queue):
            return self.queue[self.index]
        return None

    @property
    def current_identity(self):
        track = self.current_track
        return track.media_identity if track else None

    @property
    def current_title(self):
        track = self.current_track
        if track is None or self.blank_titles:
            return None
        return track.title

    @property
    def current_artist(self):
        track = self.current_track
        return track.artist if track else None

    @property
    def state(self):
        return self.state_kind

    @property
    def is_playing(self):
        return self.playing

    @property
    def position_ms(self):
        return self.position

    @property
    def duration_ms(self):
        return self.duration

    @property
    def shuffle_enabled(self):
        return self.shuffle

    @property
    def repeat_mode(self):
        return self.repeat

    @property
    def audio_format(self):
        return self.format

    # Commands
    def set_queue(self, tracks, start_index, position_ms=0):
        self.calls.append(('set_queue', start_index, position_ms))
        self.queue = list(tracks)
        self.index = start_index
        self.position = position_ms

    def prepare(self):
        self.calls.append(('prepare',))

    def play(self):
        self.calls.append(('play',))
        self.playing = True

    def pause(self):
        self.calls.append(('pause',))
        self.playing = False

    def seek_to(self, index, position_ms):
        self.calls.append(('seek_to', index, position_ms))
        self.position = position_ms

    def seek_to_next(self):
        self.calls.append(('seek_to_next',))

    def seek_to_previous(self):
        self.calls.append(('seek_to_previous',))

    def set_shuffle_enabled(self, enabled):
        self.shuffle = enabled

    def set_repeat_mode(self, mode):
        self.repeat = mode

    def add_listener(self, listener):
        self.listeners.append(listener)

    # Scripting helpers
    def called(self, name: str) -> list:
        return [c for c in self.calls if c[0] == name]

    def advance_to(self, index, reason=TransitionReason.SEEK, state=PlaybackStateKind.READY):
        """Move to ``index`` and report the transition."""
        self.index = index
        self.state_kind = state
        self.report(self.current_identity, reason)

    def report(self, identity, reason=TransitionReason.SEEK):
        for listener in self.listeners:
            listener.on_transition(identity, reason)

    def change_state(self, state: PlaybackStateKind):
        self.state_kind = state
        for listener in self.listeners:
            listener.on_state_changed(state)


@pytest.fixture
def player():
    return FakePlayer()


# ============================================================================
# WebDAV fakes
# ============================================================================

def multistatus(*responses: str) -> str:
    return ('<?xml version="1.0" encoding="utf-8"?>'
            '<d:multistatus xmlns:d="DAV:">' + ''.join(responses) + '</d:multistatus>')


def dav_response(href: str, directory: bool = False, size: int = 0,
                 modified: str = "Mon, 01 Jan 2024 10:00:00 GMT",
                 displayname: Optional[str] = None) -> str:
    props = []
    if displayname is not None:
        props.append(f'<d:displayname>{displayname}</d:displayname>')
    props.append('<d:resourcetype><d:collection/></d:resourcetype>' if directory
                 else '<d:resourcetype/>')
    if not directory:
        props.append(f'<d:getcontentlength>{size}</d:getcontentlength>')
    props.append(f'<d:getlastmodified>{modified}</d:getlastmodified>')
    return (f'<d:response><d:href>{href}</d:href>'
            f'<d:propstat><d:prop>{"".join(props)}</d:prop>'
            f'<d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>')


class DavServer:
    """Serves canned PROPFIND bodies per URL path and counts requests."""

    def __init__(self, listings: Dict[str, str]):
        self.listings = listings
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = self.listings.get(request.url.path)
        if body is None:
            return httpx.Response(404)
        return httpx.Response(207, text=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def dav_server() -> Callable[[Dict[str, str]], DavServer]:
    return DavServer

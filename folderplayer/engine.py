"""Playback engine - builds queues, drives the player, reconciles its reports."""
import asyncio
from dataclasses import replace
from typing import Any, List, Optional, Sequence, Set
from urllib.parse import unquote

from folderplayer.audio_info import AudioInfoResolver
from folderplayer.config import get_config
from folderplayer.events import EventBus
from folderplayer.logging import get_logger
from folderplayer.lyrics import LyricApiClient, LyricsResolver, current_line_index
from folderplayer.metadata import probe_audio
from folderplayer.models import Entry, SourceDescriptor, SourceKind, Track
from folderplayer.player import PlaybackStateKind, Player, RepeatMode, TransitionReason
from folderplayer.playlists import (
    DEFAULT_PLAYLIST_ID,
    DEFAULT_PLAYLIST_NAME,
    Playlist,
    PlaylistItem,
    PlaylistStore,
)
from folderplayer.preferences import (
    CachedMetadata,
    LyricPreferences,
    PlaybackPreferences,
    PlaybackRecord,
    SourcePreferences,
)
from folderplayer.queue_builder import (
    CUE_EXTENSION,
    CUE_TRACK_MARKER,
    QueueBuilder,
    extension_of,
    parent_path,
)
from folderplayer.reconciler import (
    NowPlaying,
    ReconcileState,
    begin_restore,
    cancel_restore,
    clean_folder_name,
    clean_title,
    fail_restore,
    issue_intent,
    observe,
    parent_of_identity,
    should_restore,
)
from folderplayer.sleep_timer import SleepTimer, TimerType
from folderplayer.sorting import SortField, sort_entries
from folderplayer.sources import SourceRegistry, local_path
from folderplayer.tasks import RefinementScheduler, SerialTaskQueue

logger = get_logger(__name__)

LOCAL_SOURCE_ID = "local"
LOCAL_DESCRIPTOR = SourceDescriptor(name="Local", kind=SourceKind.LOCAL, url="", id=LOCAL_SOURCE_ID)


def source_id_for(descriptor: SourceDescriptor) -> str:
    """How playlist items remember their source: "local" or the server URL."""
    return LOCAL_SOURCE_ID if descriptor.kind == SourceKind.LOCAL else descriptor.url


def _same_folder(a: str, b: str) -> bool:
    def normalize(p: str) -> str:
        return (local_path(p) if p.startswith("file://") else p).rstrip('/')
    return normalize(a) == normalize(b)


class PlaybackEngine:
    """
    Owns the "now playing" context for one player.

    User requests (play a folder, a cue sheet, next...) record an intent and
    hand a queue to the player. Player callbacks are reconciled against that
    intent before they may change what is displayed or persisted.
    """

    def __init__(
        self,
        player: Player,
        event_bus: Optional[EventBus] = None,
        registry: Optional[SourceRegistry] = None,
        playback_prefs: Optional[PlaybackPreferences] = None,
        source_prefs: Optional[SourcePreferences] = None,
        playlists: Optional[PlaylistStore] = None,
        queue_builder: Optional[QueueBuilder] = None,
        lyrics: Optional[LyricsResolver] = None,
        audio_info: Optional[AudioInfoResolver] = None,
    ):
        config = get_config()
        self._player = player
        self._events = event_bus or EventBus()
        self._owns_registry = registry is None
        self._registry = registry or SourceRegistry(
            self._events, config.request_timeout, config.max_auth_attempts
        )
        self._playback_prefs = playback_prefs or PlaybackPreferences()
        self._source_prefs = source_prefs or SourcePreferences()
        self._playlists = playlists or PlaylistStore()
        self._queue_builder = queue_builder or QueueBuilder()
        if lyrics is None:
            lyrics = LyricsResolver(LyricApiClient(LyricPreferences().get_lyric_api_url()))
        self._lyrics = lyrics
        self._audio_info = audio_info or AudioInfoResolver()

        self._progress_interval = config.progress_interval
        self._save_threshold_ms = config.position_save_threshold_ms

        # Reconciliation and display state
        self.state = ReconcileState()
        self.now_playing = NowPlaying()
        self.queue: List[Track] = []

        # Playback context (what to restore, where auto-advance starts from)
        self.current_source: Optional[SourceDescriptor] = None
        self.current_folder_path: Optional[str] = None
        self.current_cue_path: Optional[str] = None
        self.active_playlist_id = self._playback_prefs.get_active_playlist_id()
        self.auto_next_folder = self._playback_prefs.get_auto_next_folder()
        self.sleep_timer = SleepTimer()

        self._tasks = SerialTaskQueue()
        self._refinement = RefinementScheduler(self._is_current)
        self._background: Set["asyncio.Task[Any]"] = set()
        self._progress_task: Optional["asyncio.Task[Any]"] = None
        self._last_saved_position = 0

        self._player.add_listener(self)

    # ------------------------------------------------------------------
    # Startup and restoration
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Show the last known track, then restore the saved queue if the
        player is not already busy with something else.

        Returns:
            True if a restoration was attempted
        """
        record = self._playback_prefs.load_playback_state()
        self._seed_from_cache(record)
        self._adopt_record(record)

        restoring = should_restore(record.media_identity, self._player)
        if restoring:
            logger.info("Restoring last known track: %s", record.media_identity)
            self.state = begin_restore(self.state, record.media_identity)

        self._sync_from_player(self._player.current_identity)

        if restoring:
            if not await self._restore(record):
                logger.warning("Restoration failed for %s", record.media_identity)
                self.state = fail_restore(self.state)
        return restoring

    def _seed_from_cache(self, record: PlaybackRecord) -> None:
        cached = self._playback_prefs.get_cached_metadata()
        if cached is None:
            return
        self.now_playing = replace(
            self.now_playing,
            media_identity=record.media_identity,
            title=cached.title or self.now_playing.title,
            artist=cached.artist,
            folder_name=cached.folder_name,
            audio_info=cached.audio_info,
            cover_uri=cached.cover_uri,
            lyrics=tuple(cached.lyrics),
            position_ms=record.position_ms,
        )
        if record.media_identity and cached.lyrics:
            self._lyrics.seed(record.media_identity, cached.lyrics)
        self._events.publish(EventBus.NOW_PLAYING_CHANGED, self.now_playing)

    def _adopt_record(self, record: PlaybackRecord) -> None:
        if record.source is None or not record.folder_path:
            return
        self.current_source = record.source
        self._last_saved_position = record.position_ms
        if record.folder_path.lower().endswith("." + CUE_EXTENSION):
            self.current_cue_path = record.folder_path
            self.current_folder_path = parent_path(record.folder_path)
        else:
            self.current_folder_path = record.folder_path

    async def _restore(self, record: PlaybackRecord) -> bool:
        if record.source is None or not record.folder_path or not record.media_identity:
            return False
        identity = record.media_identity
        position = record.position_ms

        async with self._tasks.slot("restore"):
            if record.folder_path.lower().endswith("." + CUE_EXTENSION):
                return await self._play_cue_internal(
                    record.source, record.folder_path, identity, position, play_when_ready=False
                )
            if CUE_TRACK_MARKER in identity:
                audio = identity.split('#', 1)[0]
                cue_path = audio.rsplit('.', 1)[0] + "." + CUE_EXTENSION
                return await self._play_cue_internal(
                    record.source, cue_path, identity, position, play_when_ready=False
                )
            if identity.lower().endswith("." + CUE_EXTENSION):
                return await self._play_cue_internal(
                    record.source, identity, None, position, play_when_ready=False
                )
            return await self._play_folder_internal(
                record.source, record.folder_path, identity, position, play_when_ready=False
            )

    # ------------------------------------------------------------------
    # User requests
    # ------------------------------------------------------------------

    def _issue(self, target: Optional[str]) -> None:
        """Record a play intent; in-flight refinement for the old track is dropped."""
        self.state = issue_intent(cancel_restore(self.state), target,
                                  self._player.current_identity)
        self._refinement.cancel()

    def _clear_intent(self) -> None:
        self.state = replace(self.state, intent=None)

    def _show_pending(self, title: str, folder_name: str) -> None:
        self.now_playing = replace(
            self.now_playing,
            title=title,
            folder_name=folder_name,
            cover_uri=None,
            lyrics=(),
            lyric_index=-1,
            position_ms=0,
            duration_ms=0,
        )
        self._events.publish(EventBus.NOW_PLAYING_CHANGED, self.now_playing)

    async def play_folder(self, source: SourceDescriptor, path: str,
                          starting_file: Optional[str] = None) -> bool:
        """
        Queue every track in a folder and start playing.

        Args:
            source: Source the folder lives on
            path: Folder path or URL
            starting_file: Path or URI of the track to start at (default: first)

        Returns:
            False if the folder holds nothing playable
        """
        client = self._registry.get(source)
        target = client.resolve_uri(starting_file) if starting_file else None
        pending = starting_file.rstrip('/').rsplit('/', 1)[-1] if starting_file else "Loading..."

        async with self._tasks.slot("play_folder"):
            self._issue(target)
            self._show_pending(clean_title(pending), unquote(path.rstrip('/').rsplit('/', 1)[-1]))
            return await self._play_folder_internal(source, path, starting_file, 0,
                                                    play_when_ready=True)

    async def play_custom_list(self, source: SourceDescriptor, entries: Sequence[Entry],
                               start_index: int = 0) -> bool:
        """Play a caller-ordered list of files, e.g. a search result."""
        files = [e for e in entries if not e.is_directory]
        if not files:
            self._report_failure("Nothing to play")
            return False
        start_index = start_index if 0 <= start_index < len(files) else 0
        first = files[start_index]
        client = self._registry.get(source)
        async with self._tasks.slot("play_custom_list"):
            self._issue(client.resolve_uri(first.path))
            self._show_pending(clean_title(first.name), clean_folder_name(first.path))
            tracks = await self._queue_builder.build_from_entries(client, files)
            if not tracks:
                self._clear_intent()
                self._report_failure("Nothing to play")
                return False
            self.current_source = source
            self.current_folder_path = parent_path(first.path)
            self.current_cue_path = None
            self._set_queue(tracks, start_index, 0, play_when_ready=True)
            self._sync_default_playlist([
                PlaylistItem(path=t.source_uri, title=t.title, artist="",
                             source_id=source_id_for(source), artwork_uri=t.artwork_uri)
                for t in tracks
            ])
            self._save_state(tracks[start_index].media_identity, 0)
            return True

    async def play_cue_sheet(self, source: SourceDescriptor, cue_path: str) -> bool:
        """Play every track of a cue sheet from the first one."""
        name = cue_path.rsplit('/', 1)[-1].rsplit('.', 1)[0]

        async with self._tasks.slot("play_cue_sheet"):
            self._issue(None)
            self._show_pending(name, clean_folder_name(cue_path))
            return await self._play_cue_internal(source, cue_path, None, 0, play_when_ready=True)

    async def play_playlist(self, playlist_id: str, start_index: int = 0) -> bool:
        """Play a saved playlist starting at ``start_index``."""
        playlist = self._playlists.get(playlist_id)
        if playlist is None or not 0 <= start_index < len(playlist.items):
            self._report_failure("Playlist is empty")
            return False
        clicked = playlist.items[start_index]
        source = self._descriptor_for(clicked.source_id)
        if source is None:
            self._report_failure("The source of this playlist is no longer configured")
            return False

        if clicked.path.lower().endswith("." + CUE_EXTENSION):
            return await self.play_cue_sheet(source, clicked.path)

        async with self._tasks.slot("play_playlist"):
            self._issue(clicked.path)
            self._show_pending(clicked.title, clean_folder_name(clicked.path))
            tracks = [
                Track(
                    title=item.title,
                    source_uri=item.path,
                    media_identity=item.path,
                    extension=extension_of(item.path),
                    artwork_uri=item.artwork_uri,
                    artist=item.artist or None,
                )
                for item in playlist.items
            ]
            self.current_source = source
            self.current_folder_path = parent_path(clicked.path)
            self.current_cue_path = None
            self._set_queue(tracks, start_index, 0, play_when_ready=True)
            self._set_active_playlist(playlist.id)
            self._save_state(clicked.path, 0)
            return True

    def _descriptor_for(self, source_id: str) -> Optional[SourceDescriptor]:
        if source_id == LOCAL_SOURCE_ID:
            return LOCAL_DESCRIPTOR
        for descriptor in self._source_prefs.get_saved_sources():
            if descriptor.url == source_id:
                return descriptor
        return None

    async def next(self) -> None:
        async with self._tasks.slot("next"):
            self._issue(None)
            self._player.seek_to_next()

    async def previous(self) -> None:
        async with self._tasks.slot("previous"):
            self._issue(None)
            self._player.seek_to_previous()

    async def play_at(self, index: int) -> bool:
        if not 0 <= index < len(self.queue):
            return False
        async with self._tasks.slot("play_at"):
            self._issue(None)
            self._player.seek_to(index, 0)
            self._player.play()
        return True

    def play_pause(self) -> None:
        if self._player.is_playing:
            self._player.pause()
        else:
            self._player.play()

    def seek(self, position_ms: int) -> None:
        self._player.seek_to(self._player.current_index, max(0, position_ms))
        self.now_playing = replace(self.now_playing, position_ms=max(0, position_ms))
        self._events.publish(EventBus.PLAYBACK_PROGRESS, self.now_playing)

    def toggle_shuffle(self) -> bool:
        enabled = not self._player.shuffle_enabled
        self._player.set_shuffle_enabled(enabled)
        return enabled

    def cycle_repeat_mode(self) -> RepeatMode:
        mode = self._player.repeat_mode.next()
        self._player.set_repeat_mode(mode)
        return mode

    def set_auto_next_folder(self, enabled: bool) -> None:
        self.auto_next_folder = enabled
        self._playback_prefs.save_auto_next_folder(enabled)

    def start_sleep_timer(self, timer_type: TimerType, value: int,
                          now: Optional[int] = None) -> None:
        self.sleep_timer.start(timer_type, value, now)
        self._events.publish(EventBus.SLEEP_TIMER_CHANGED, self.sleep_timer)

    def reset_sleep_timer(self) -> None:
        self.sleep_timer.reset()
        self._events.publish(EventBus.SLEEP_TIMER_CHANGED, self.sleep_timer)

    # ------------------------------------------------------------------
    # Queue construction
    # ------------------------------------------------------------------

    async def _play_folder_internal(self, source: SourceDescriptor, path: str,
                                    starting_file: Optional[str], position_ms: int,
                                    play_when_ready: bool) -> bool:
        client = self._registry.get(source)
        sort_field, ascending = self._source_prefs.get_sort_for(path)
        tracks = await self._queue_builder.build_from_folder(client, path, sort_field, ascending)
        if not tracks:
            self._clear_intent()
            self._report_failure("This folder has no playable tracks")
            return False

        self.current_source = source
        self.current_folder_path = path
        self.current_cue_path = None

        index = 0
        if starting_file:
            target = client.resolve_uri(starting_file)
            index = next(
                (i for i, t in enumerate(tracks)
                 if t.media_identity in (target, starting_file)),
                0,
            )
        restoring = self.state.restoring
        self._set_queue(tracks, index, position_ms, play_when_ready)

        if not restoring:
            self._sync_default_playlist([
                PlaylistItem(path=t.source_uri, title=t.title, artist="",
                             source_id=source_id_for(source), artwork_uri=t.artwork_uri)
                for t in tracks
            ])
        self._save_state(tracks[index].media_identity, position_ms)
        return True

    async def _play_cue_internal(self, source: SourceDescriptor, cue_path: str,
                                 starting_identity: Optional[str], position_ms: int,
                                 play_when_ready: bool) -> bool:
        client = self._registry.get(source)
        cue_queue = await self._queue_builder.build_from_cue(client, cue_path)
        if cue_queue is None:
            self._clear_intent()
            self._report_failure("This cue sheet has no playable tracks")
            return False

        self.current_source = source
        self.current_folder_path = parent_path(cue_path)
        self.current_cue_path = cue_path

        tracks = cue_queue.tracks
        index = 0
        if starting_identity:
            index = next(
                (i for i, t in enumerate(tracks) if t.media_identity == starting_identity), 0
            )
        restoring = self.state.restoring
        self._set_queue(tracks, index, position_ms, play_when_ready)

        if not restoring:
            self._sync_default_playlist([
                PlaylistItem(
                    path=cue_path,
                    title=ct.title,
                    artist=ct.performer or "",
                    source_id=source_id_for(source),
                    artwork_uri=tracks[0].artwork_uri,
                    duration_ms=ct.end_ms - ct.start_ms if ct.end_ms else 0,
                )
                for ct in cue_queue.cue_tracks
            ])
        self._save_state(tracks[index].media_identity, position_ms, folder_path=cue_path)
        return True

    def _set_queue(self, tracks: List[Track], index: int, position_ms: int,
                   play_when_ready: bool) -> None:
        self.queue = list(tracks)
        if self.state.restoring:
            # Wait for the track actually queued; it can differ from the saved one
            self.state = begin_restore(self.state, tracks[index].media_identity)
        self._player.set_queue(self.queue, index, position_ms)
        self._player.prepare()
        if play_when_ready:
            self._player.play()
        self._events.publish(EventBus.QUEUE_CHANGED, self.queue)

    def _sync_default_playlist(self, items: List[PlaylistItem]) -> None:
        """Mirror a user-started queue into the "default" playlist."""
        self._playlists.save(Playlist(DEFAULT_PLAYLIST_ID, DEFAULT_PLAYLIST_NAME, items))
        self._set_active_playlist(DEFAULT_PLAYLIST_ID)

    def _set_active_playlist(self, playlist_id: str) -> None:
        self.active_playlist_id = playlist_id
        self._playback_prefs.save_active_playlist_id(playlist_id)
        self._events.publish(EventBus.PLAYLIST_CHANGED, playlist_id)

    def _save_state(self, identity: Optional[str], position_ms: int,
                    folder_path: Optional[str] = None) -> None:
        folder = folder_path or self.current_cue_path or self.current_folder_path
        self._playback_prefs.save_playback_state(self.current_source, folder, identity, position_ms)
        self._last_saved_position = position_ms

    def _report_failure(self, message: str) -> None:
        logger.warning(message)
        self._events.publish(EventBus.ERROR_MESSAGE, message)

    # ------------------------------------------------------------------
    # Auto-advance
    # ------------------------------------------------------------------

    def _check_and_play_next_folder(self) -> None:
        if not self.auto_next_folder:
            return
        self._spawn(self.move_next_folder())

    async def move_next_folder(self) -> bool:
        """
        Start the sibling folder that follows the current one.

        Siblings are the parent's sub-folders in the parent's saved sort
        order. No next sibling simply means playback ends.
        """
        source, current = self.current_source, self.current_folder_path
        if source is None or not current:
            return False
        client = self._registry.get(source)
        parent = parent_path(current)

        siblings = [e for e in await client.list(parent) if e.is_directory]
        if not siblings:
            return False

        field, ascending = self._source_prefs.get_sort_for(parent)
        if not isinstance(SortField.parse(field), SortField):
            field = SortField.NAME
        ordered = sort_entries(siblings, field, ascending)

        index = next((i for i, e in enumerate(ordered) if _same_folder(e.path, current)), -1)
        if index == -1 or index + 1 >= len(ordered):
            logger.info("No folder after %s", current)
            return False

        following = ordered[index + 1]
        logger.info("Advancing to next folder: %s", following.path)
        async with self._tasks.slot("next_folder"):
            self._issue(None)
            return await self._play_folder_internal(source, following.path, None, 0,
                                                    play_when_ready=True)

    # ------------------------------------------------------------------
    # Player callbacks
    # ------------------------------------------------------------------

    def on_transition(self, media_identity: Optional[str], reason: TransitionReason) -> None:
        self._sync_from_player(media_identity)

        if media_identity is None and reason == TransitionReason.AUTO:
            self._check_and_play_next_folder()

        if reason == TransitionReason.AUTO and self.sleep_timer.type == TimerType.SONGS:
            if self.sleep_timer.on_auto_transition():
                logger.info("Sleep timer reached, pausing")
                self._player.pause()
            self._events.publish(EventBus.SLEEP_TIMER_CHANGED, self.sleep_timer)

    def on_state_changed(self, state: PlaybackStateKind) -> None:
        if state == PlaybackStateKind.ENDED:
            self._check_and_play_next_folder()
            self.reset_sleep_timer()
        self._sync_from_player(self._player.current_identity)

    def on_is_playing_changed(self, is_playing: bool) -> None:
        self.now_playing = replace(self.now_playing, is_playing=is_playing)
        self._events.publish(EventBus.NOW_PLAYING_CHANGED, self.now_playing)
        if is_playing:
            self._start_progress_loop()

    def on_error(self, code: str) -> None:
        logger.error("Player error: %s", code)
        self._events.publish(EventBus.PLAYBACK_ERROR, code)

    def _track_for(self, identity: str) -> Optional[Track]:
        return next((t for t in self.queue if t.media_identity == identity), None)

    def _belongs_to_current_folder(self, identity: str) -> bool:
        folder = self.current_folder_path
        if not folder:
            return False
        candidates = {folder.rstrip('/')}
        if self.current_source is not None:
            candidates.add(self._registry.get(self.current_source).resolve_uri(folder).rstrip('/'))
        return any(c and (c + '/') in identity for c in candidates)

    def _sync_from_player(self, identity: Optional[str]) -> bool:
        """
        Reconcile one player report and refresh the display if it passes.

        Returns:
            True if the report was accepted
        """
        previous = self.now_playing.media_identity
        self.state, accepted = observe(self.state, identity, self._player.current_title,
                                       self._player.state)
        if not accepted:
            return False

        if not self.state.restoring and not self._belongs_to_current_folder(identity):
            # Someone else changed the queue; follow the player
            parent = parent_of_identity(identity)
            if parent:
                logger.info("Adopting folder context from player: %s", parent)
                self.current_folder_path = parent
                self.current_cue_path = None

        track = self._track_for(identity)
        changed = identity != previous
        title = clean_title(self._player.current_title or (track.title if track else None))
        artist = self._player.current_artist or (track.artist if track else None) or ""

        lyrics = self.now_playing.lyrics
        audio_info = self.now_playing.audio_info
        if changed:
            cached_lyrics = self._lyrics.cached(identity)
            lyrics = tuple(cached_lyrics) if cached_lyrics else ()
            audio_info = self._audio_info.cached(identity) or ""

        self.now_playing = replace(
            self.now_playing,
            media_identity=identity,
            title=title,
            artist=artist,
            folder_name=clean_folder_name(identity),
            cover_uri=track.artwork_uri if track else self.now_playing.cover_uri,
            audio_info=audio_info,
            queue_index=self._player.current_index,
            duration_ms=max(0, self._player.duration_ms),
            is_playing=self._player.is_playing,
            position_ms=0 if changed else self.now_playing.position_ms,
            lyrics=lyrics,
            lyric_index=-1 if changed else self.now_playing.lyric_index,
        )

        if changed:
            self._events.publish(EventBus.TRACK_CHANGED, self.now_playing)
            if not self.state.restoring and self._player.state != PlaybackStateKind.IDLE:
                self._save_state(identity, self._player.position_ms)
        self._events.publish(EventBus.NOW_PLAYING_CHANGED, self.now_playing)

        if changed or self._audio_info.cached(identity) is None:
            self._schedule_refinement(identity, track, title, artist)
        return True

    # ------------------------------------------------------------------
    # Refinement (lyrics, audio info)
    # ------------------------------------------------------------------

    def _is_current(self, identity: str) -> bool:
        return self.state.intent is None and self.state.current_identity == identity

    def _schedule_refinement(self, identity: str, track: Optional[Track],
                             title: str, artist: str) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No event loop; skipping refinement for %s", identity)
            return

        source = self._registry.get(self.current_source) if self.current_source else None
        source_uri = track.source_uri if track else identity
        extension = track.extension if track else extension_of(identity)

        async def work():
            embedded = None
            if source_uri.startswith("file://"):
                probe = await asyncio.to_thread(probe_audio, local_path(source_uri))
                embedded = probe.lyrics if probe else None
            lines = await self._lyrics.resolve(
                identity, source, title, artist or None,
                lyrics_uri=track.lyrics_uri if track else None,
                embedded=embedded,
            )
            duration = self._player.duration_ms
            if track is not None and track.clipping is not None and track.clipping.end_ms:
                duration = track.clipping.end_ms - track.clipping.start_ms
            info = await self._audio_info.describe(
                identity, extension, self._player.audio_format, source_uri,
                track.file_size if track else 0, max(0, duration),
            )
            return lines, info

        self._refinement.submit(identity, work, self._apply_refinement)

    def _apply_refinement(self, result) -> None:
        lines, info = result
        self.now_playing = replace(
            self.now_playing,
            lyrics=tuple(lines),
            lyric_index=current_line_index(lines, self.now_playing.position_ms),
            audio_info=info or self.now_playing.audio_info,
        )
        self._events.publish(EventBus.LYRICS_CHANGED, self.now_playing.lyrics)
        self._events.publish(EventBus.NOW_PLAYING_CHANGED, self.now_playing)
        self._playback_prefs.save_cached_metadata(CachedMetadata(
            title=self.now_playing.title,
            artist=self.now_playing.artist,
            folder_name=self.now_playing.folder_name,
            audio_info=self.now_playing.audio_info,
            cover_uri=self.now_playing.cover_uri,
            lyrics=self.now_playing.lyrics,
        ))

    # ------------------------------------------------------------------
    # Progress loop
    # ------------------------------------------------------------------

    def _start_progress_loop(self) -> None:
        if self._progress_task is not None and not self._progress_task.done():
            return
        try:
            self._progress_task = asyncio.get_running_loop().create_task(self._progress_loop())
        except RuntimeError:
            logger.debug("No event loop; progress updates disabled")

    async def _progress_loop(self) -> None:
        while self._player.is_playing:
            self.tick()
            await asyncio.sleep(self._progress_interval)

    def tick(self, now: Optional[int] = None) -> None:
        """One progress update: position, lyric line, sleep timer, position save."""
        position = self._player.position_ms
        index = current_line_index(self.now_playing.lyrics, position)
        self.now_playing = replace(
            self.now_playing,
            position_ms=position,
            duration_ms=max(0, self._player.duration_ms),
            lyric_index=index,
        )
        self._events.publish(EventBus.PLAYBACK_PROGRESS, self.now_playing)

        if self.sleep_timer.type == TimerType.TIME:
            label = self.sleep_timer.label
            if self.sleep_timer.check(now):
                logger.info("Sleep timer reached, pausing")
                self._player.pause()
                self._events.publish(EventBus.SLEEP_TIMER_CHANGED, self.sleep_timer)
            elif self.sleep_timer.label != label:
                self._events.publish(EventBus.SLEEP_TIMER_CHANGED, self.sleep_timer)

        if (not self.state.restoring
                and abs(position - self._last_saved_position) >= self._save_threshold_ms):
            self._playback_prefs.save_position(position)
            self._last_saved_position = position

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.debug("No event loop; dropped background task")
            return
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_idle(self) -> None:
        """Wait for background work (auto-advance, refinement) to settle."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self._refinement.wait()

    async def close(self) -> None:
        self._refinement.cancel()
        tasks = list(self._background)
        if self._progress_task is not None:
            tasks.append(self._progress_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._lyrics.api_client is not None:
            await self._lyrics.api_client.aclose()
        if self._owns_registry:
            await self._registry.aclose()

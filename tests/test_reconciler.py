"""Tests for intent reconciliation and display helpers."""

from folderplayer.models import Track
from folderplayer.player import PlaybackStateKind
from folderplayer.reconciler import (
    NO_SONG_TITLE,
    Phase,
    PlaybackIntent,
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

READY = PlaybackStateKind.READY
BUFFERING = PlaybackStateKind.BUFFERING


def _track(identity):
    return Track(title=identity, source_uri=identity, media_identity=identity)


class TestPlaybackIntent:
    """Test PlaybackIntent."""

    def test_exact_target(self):
        intent = PlaybackIntent('b', 'a')
        assert not intent.is_wildcard
        assert intent.satisfied_by('b')
        assert not intent.satisfied_by('c')

    def test_wildcard_accepts_anything_new(self):
        intent = PlaybackIntent(None, 'a')
        assert intent.is_wildcard
        assert intent.satisfied_by('b')
        assert not intent.satisfied_by('a')

    def test_wildcard_from_nothing(self):
        assert PlaybackIntent(None, None).satisfied_by('a')


class TestObserve:
    """Test observe."""

    def test_no_intent_accepts(self):
        state, accepted = observe(ReconcileState(), 'a', 'Song', READY)
        assert accepted
        assert state.current_identity == 'a'
        assert state.phase is Phase.SYNCED

    def test_stale_report_is_suppressed(self):
        state = issue_intent(ReconcileState(current_identity='a'), 'c', 'a')
        state, accepted = observe(state, 'b', 'Other', READY)
        assert not accepted
        assert state.intent is not None
        assert state.current_identity == 'a'
        assert state.phase is Phase.INTENT_PENDING

    def test_matching_report_clears_intent(self):
        state = issue_intent(ReconcileState(current_identity='a'), 'c', 'a')
        state, accepted = observe(state, 'c', 'Song', READY)
        assert accepted
        assert state.intent is None
        assert state.current_identity == 'c'

    def test_wildcard_ignores_report_of_old_track(self):
        state = issue_intent(ReconcileState(current_identity='a'), None, 'a')
        state, accepted = observe(state, 'a', 'Old', READY)
        assert not accepted
        state, accepted = observe(state, 'b', 'New', READY)
        assert accepted

    def test_latest_intent_wins(self):
        state = issue_intent(ReconcileState(), 'b', 'a')
        state = issue_intent(state, 'c', 'a')
        assert not observe(state, 'b', 'B', READY)[1]
        assert observe(state, 'c', 'C', READY)[1]

    def test_missing_identity(self):
        state = ReconcileState(current_identity='a')
        assert observe(state, None, 'x', READY) == (state, False)

    def test_blank_title_while_buffering(self):
        state = issue_intent(ReconcileState(current_identity='a'), 'b', 'a')
        state, accepted = observe(state, 'b', '  ', BUFFERING)
        assert not accepted
        assert state.intent is None
        assert state.current_identity == 'a'

    def test_blank_title_when_ready_is_accepted(self):
        _, accepted = observe(ReconcileState(), 'a', None, READY)
        assert accepted

    def test_restore_ends_on_real_title(self):
        state = begin_restore(ReconcileState(), 'a')
        state, accepted = observe(state, 'a', '', READY)
        assert not accepted
        assert state.phase is Phase.RESTORING
        state, accepted = observe(state, 'a', 'Song', READY)
        assert accepted
        assert not state.restoring

    def test_restore_ignores_other_tracks(self):
        """Test that a titled report of a different track keeps restoring."""
        state = begin_restore(ReconcileState(), 'saved')
        state, accepted = observe(state, 'stale', 'Stale Song', PlaybackStateKind.ENDED)
        assert not accepted
        assert state.restoring_identity == 'saved'
        assert state.current_identity is None
        state, accepted = observe(state, 'saved', 'Saved Song', READY)
        assert accepted
        assert state.phase is Phase.SYNCED

    def test_cancel_restore(self):
        state = cancel_restore(begin_restore(ReconcileState(), 'a'))
        assert not state.restoring
        assert state.phase is Phase.IDLE

    def test_fail_restore(self):
        state = fail_restore(begin_restore(ReconcileState(current_identity='a'), 'b'))
        assert state == ReconcileState()
        assert state.phase is Phase.IDLE


class TestShouldRestore:
    """Test should_restore."""

    def test_nothing_saved(self, player):
        assert not should_restore(None, player)

    def test_empty_player(self, player):
        assert should_restore('a', player)

    def test_idle_player_with_other_track(self, player):
        player.set_queue([_track('x')], 0)
        assert should_restore('a', player)

    def test_player_already_on_saved_track(self, player):
        player.set_queue([_track('a')], 0)
        assert not should_restore('a', player)

    def test_busy_player_is_left_alone(self, player):
        player.set_queue([_track('x')], 0)
        player.playing = True
        assert not should_restore('a', player)
        player.playing = False
        player.state_kind = READY
        assert not should_restore('a', player)


class TestDisplayHelpers:
    """Test title and folder name cleanup."""

    def test_clean_title(self):
        assert clean_title('01 Song.flac') == '01 Song'
        assert clean_title('Song.MP3') == 'Song'
        assert clean_title('notes.txt') == 'notes.txt'
        assert clean_title(None) == NO_SONG_TITLE
        assert clean_title('') == NO_SONG_TITLE

    def test_folder_name(self):
        assert clean_folder_name('file:///music/Album%20Name/01.mp3') == 'Album Name'
        assert clean_folder_name('http://nas/Great Album {2020} FLAC/01.flac') == 'Great Album'

    def test_short_disc_folder_gets_parent(self):
        identity = 'http://nas/music/Box Set [FLAC]/CD1/01.flac'
        assert clean_folder_name(identity) == 'Box Set - CD1'

    def test_root_and_missing(self):
        assert clean_folder_name('01.mp3') == 'Root'
        assert clean_folder_name(None) == ''

    def test_cue_identity(self):
        identity = 'file:///m/Live Album/Live.flac#track_1000'
        assert clean_folder_name(identity) == 'Live Album'
        assert parent_of_identity(identity) == 'file:///m/Live Album'

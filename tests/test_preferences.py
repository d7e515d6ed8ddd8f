"""Tests for PreferenceStore and the typed preference domains."""

import json

import pytest

from folderplayer.models import Credentials, LyricLine, SourceDescriptor, SourceKind
from folderplayer.preferences import (
    ROOT_PATH,
    CachedMetadata,
    LyricPreferences,
    PlaybackPreferences,
    SourcePreferences,
)
from folderplayer.storage import PreferenceStore


@pytest.fixture
def store(temp_dir):
    return PreferenceStore(temp_dir / 'prefs' / 'test.json')


NAS = SourceDescriptor('NAS', SourceKind.WEBDAV, 'http://nas.local', sub_path='music',
                       credentials=Credentials('u', 'p'), id='nas')


class TestPreferenceStore:
    """Test PreferenceStore."""

    def test_values_survive_reload(self, store):
        store.put_string('s', 'x')
        store.put_long('n', 42)
        store.put_bool('b', True)
        reloaded = PreferenceStore(store.path)
        assert reloaded.get_string('s') == 'x'
        assert reloaded.get_long('n') == 42
        assert reloaded.get_bool('b') is True

    def test_put_many_is_one_document(self, store):
        store.put_many({'a': 1, 'b': 'two'})
        assert json.loads(store.path.read_text(encoding='utf-8')) == {'a': 1, 'b': 'two'}
        assert not store.path.with_suffix('.json.tmp').exists()

    def test_wrong_types_fall_back_to_default(self, store):
        store.put_string('n', 'abc')
        assert store.get_long('n', 7) == 7
        assert store.get_bool('n', True) is True

    def test_corrupt_file_starts_empty(self, temp_dir):
        path = temp_dir / 'bad.json'
        path.write_text('{not json', encoding='utf-8')
        assert PreferenceStore(path).get_string('x', 'd') == 'd'

    def test_remove_and_clear(self, store):
        store.put_many({'a': 1, 'b': 2})
        store.remove('a')
        assert not store.contains('a')
        store.clear()
        assert not store.contains('b')


class TestPlaybackPreferences:
    """Test PlaybackPreferences."""

    def test_record_round_trip(self, store):
        prefs = PlaybackPreferences(store)
        prefs.save_playback_state(NAS, 'http://nas.local/music/A/', 'http://nas.local/music/A/1.mp3', 5000)
        record = PlaybackPreferences(PreferenceStore(store.path)).load_playback_state()
        assert record.source == NAS
        assert record.folder_path == 'http://nas.local/music/A/'
        assert record.media_identity == 'http://nas.local/music/A/1.mp3'
        assert record.position_ms == 5000

    def test_save_position_only(self, store):
        prefs = PlaybackPreferences(store)
        prefs.save_playback_state(None, '/m/A', '/m/A/1.mp3', 0)
        prefs.save_position(9000)
        record = prefs.load_playback_state()
        assert record.position_ms == 9000
        assert record.media_identity == '/m/A/1.mp3'
        assert record.source is None

    def test_empty_record(self, store):
        record = PlaybackPreferences(store).load_playback_state()
        assert record.media_identity is None
        assert record.position_ms == 0

    def test_cached_metadata(self, store):
        prefs = PlaybackPreferences(store)
        assert prefs.get_cached_metadata() is None
        meta = CachedMetadata(title='Song', artist='Band', folder_name='Album',
                              audio_info='MP3 | 320kbps', lyrics=(LyricLine(1000, 'la'),))
        prefs.save_cached_metadata(meta)
        assert prefs.get_cached_metadata() == meta

    def test_toggles(self, store):
        prefs = PlaybackPreferences(store)
        assert prefs.get_auto_next_folder() is False
        assert prefs.get_active_playlist_id() == 'default'
        prefs.save_auto_next_folder(True)
        prefs.save_active_playlist_id('list_1')
        assert prefs.get_auto_next_folder() is True
        assert prefs.get_active_playlist_id() == 'list_1'


class TestSourcePreferences:
    """Test SourcePreferences."""

    def test_sources_round_trip(self, store):
        prefs = SourcePreferences(store)
        prefs.save_sources([NAS])
        assert prefs.get_saved_sources() == [NAS]

    def test_unreadable_entries_are_skipped(self, store):
        store.put_string('sources_list', json.dumps([{'name': 'no id'}, NAS.to_dict()]))
        assert SourcePreferences(store).get_saved_sources() == [NAS]

    def test_last_browsed(self, store):
        prefs = SourcePreferences(store)
        assert prefs.get_last_browsed_source() is None
        assert prefs.get_last_browsed_path() == ROOT_PATH
        prefs.save_last_browsed_state(NAS, 'http://nas.local/music/A/')
        assert prefs.get_last_browsed_source() == NAS
        assert prefs.get_last_browsed_path() == 'http://nas.local/music/A/'

    def test_directory_sort_overrides_default(self, mock_config, store):
        prefs = SourcePreferences(store)
        assert prefs.get_sort_for('/m/A') == ('NAME', True)
        prefs.save_default_sort('DATE', False)
        prefs.save_directory_sort('/m/B', 'SIZE', True)
        assert prefs.get_sort_for('/m/A') == ('DATE', False)
        assert prefs.get_sort_for('/m/B') == ('SIZE', True)


class TestLyricPreferences:
    """Test LyricPreferences."""

    def test_api_url(self, mock_config, store):
        prefs = LyricPreferences(store)
        assert prefs.get_lyric_api_url().startswith('http')
        prefs.set_lyric_api_url('http://lyrics.example/api')
        assert prefs.get_lyric_api_url() == 'http://lyrics.example/api'

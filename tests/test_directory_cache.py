"""Tests for listing sort orders and the directory cache."""

from folderplayer.directory_cache import DirectoryCache
from folderplayer.models import Entry
from folderplayer.sorting import SortField, sort_entries

TTL = 20 * 60 * 1000


def _entries():
    return [
        Entry("beta.mp3", "/m/beta.mp3", False, size=300, last_modified=3),
        Entry("Alpha", "/m/Alpha", True, last_modified=5),
        Entry("alpha.mp3", "/m/alpha.mp3", False, size=100, last_modified=9),
        Entry("Zed", "/m/Zed", True, last_modified=1),
    ]


class TestSortEntries:
    """Test sort_entries."""

    def test_name_ascending_folders_first(self):
        names = [e.name for e in sort_entries(_entries(), SortField.NAME, True)]
        assert names == ["Alpha", "Zed", "alpha.mp3", "beta.mp3"]

    def test_name_descending(self):
        names = [e.name for e in sort_entries(_entries(), "NAME", False)]
        assert names == ["Zed", "Alpha", "beta.mp3", "alpha.mp3"]

    def test_date_and_size(self):
        by_date = [e.name for e in sort_entries(_entries(), "DATE", True, folders_first=False)]
        assert by_date == ["Zed", "beta.mp3", "Alpha", "alpha.mp3"]
        by_size = [e.name for e in sort_entries(_entries(), "SIZE", False)]
        assert by_size[2:] == ["beta.mp3", "alpha.mp3"]

    def test_unknown_field_keeps_order(self):
        entries = _entries()
        result = sort_entries(entries, "RATING", True, folders_first=False)
        assert result == entries
        assert SortField.parse("rating") == "rating"
        assert SortField.parse("date") is SortField.DATE


class TestDirectoryCache:
    """Test DirectoryCache."""

    def test_hit_within_ttl(self):
        cache = DirectoryCache(TTL)
        cache.put("/m", _entries(), "NAME", True, now=0)
        assert cache.get("/m", now=TTL - 1) is not None

    def test_miss_after_ttl(self):
        cache = DirectoryCache(TTL)
        cache.put("/m", _entries(), "NAME", True, now=0)
        assert cache.get("/m", now=TTL) is None
        assert cache.get("/m", now=TTL + 1) is None
        assert "/m" not in cache

    def test_sweep_removes_stale_entries_only(self):
        cache = DirectoryCache(TTL)
        cache.put("/old", [], "NAME", True, now=0)
        cache.put("/new", [], "NAME", True, now=TTL)
        assert cache.sweep(now=TTL + 1) == 1
        assert "/new" in cache
        assert len(cache) == 1

    def test_lookup_is_idempotent(self):
        cache = DirectoryCache(TTL)
        files = sort_entries(_entries(), "NAME", True)
        cache.put("/m", files, "NAME", True, now=0)
        first = cache.lookup("/m", "NAME", True, now=10)
        second = cache.lookup("/m", "NAME", True, now=20)
        assert first.files == second.files == files

    def test_lookup_resorts_in_memory(self):
        cache = DirectoryCache(TTL)
        cache.put("/m", sort_entries(_entries(), "NAME", True), "NAME", True, now=0)
        cache.save_scroll("/m", 7, 42)

        entry = cache.lookup("/m", "NAME", False, now=10)

        assert [e.name for e in entry.files] == ["Zed", "Alpha", "beta.mp3", "alpha.mp3"]
        assert entry.sort_ascending is False
        assert entry.cached_at == 0
        assert (entry.scroll_index, entry.scroll_offset) == (7, 42)
        assert cache.get("/m", now=10).sort_ascending is False

    def test_update_sort_keeps_age(self):
        cache = DirectoryCache(TTL)
        cache.put("/m", _entries(), "NAME", True, now=100)
        cache.update_sort("/m", sort_entries(_entries(), "SIZE", True), "SIZE", True)
        entry = cache.get("/m", now=200)
        assert entry.sort_field == "SIZE"
        assert entry.cached_at == 100

    def test_invalidate(self):
        cache = DirectoryCache(TTL)
        cache.put("/m", [], "NAME", True, now=0)
        cache.invalidate("/m")
        assert cache.get("/m", now=1) is None

    def test_injected_clock(self):
        now = [0]
        cache = DirectoryCache(TTL, clock=lambda: now[0])
        cache.put("/m", [], "NAME", True)
        now[0] = TTL + 5
        assert cache.get("/m") is None

"""Listing sort orders shared by the browser, the queue builder and auto-advance."""

from enum import Enum
from typing import Iterable, List, Union

from folderplayer.models import Entry


class SortField(str, Enum):
    NAME = "NAME"
    DATE = "DATE"
    SIZE = "SIZE"

    @classmethod
    def parse(cls, value: Union[str, 'SortField', None]) -> Union['SortField', str]:
        """Return the matching member, or the raw string for unknown fields."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return str(value)


_SORT_KEYS = {
    SortField.NAME: lambda e: e.name.lower(),
    SortField.DATE: lambda e: e.last_modified,
    SortField.SIZE: lambda e: e.size,
}


def _sorted(entries: List[Entry], field, ascending: bool) -> List[Entry]:
    key = _SORT_KEYS.get(SortField.parse(field))
    if key is None:
        return list(entries)
    return sorted(entries, key=key, reverse=not ascending)


def sort_entries(entries: Iterable[Entry], field, ascending: bool = True,
                 folders_first: bool = True) -> List[Entry]:
    """
    Sort a directory listing.

    Args:
        entries: Listing to sort (not modified)
        field: SortField or its name; unknown fields keep the incoming order
        ascending: Sort direction
        folders_first: Put all directories before all files

    Returns:
        New sorted list
    """
    entries = list(entries)
    if not folders_first:
        return _sorted(entries, field, ascending)
    folders = [e for e in entries if e.is_directory]
    files = [e for e in entries if not e.is_directory]
    return _sorted(folders, field, ascending) + _sorted(files, field, ascending)

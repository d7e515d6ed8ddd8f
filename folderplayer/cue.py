"""CUE sheet parsing.

Only the handful of commands needed to cut one physical audio file into
tracks are recognised: FILE, PERFORMER, TRACK, TITLE and INDEX 01.
Anything else is ignored. Parsing never raises; malformed lines are
skipped and whatever was recognised is returned.
"""

import re
from dataclasses import replace
from typing import List, Optional, Tuple

from folderplayer.models import CueTrack

FRAMES_PER_SECOND = 75

_WHITESPACE = re.compile(r"\s+")


def _argument(line: str, keyword: str) -> str:
    """Text after ``keyword`` with surrounding quotes removed."""
    value = line[len(keyword):].strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value


def _int_or_none(value: str) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return None


def parse_cue_time(value: str) -> int:
    """
    Convert an ``mm:ss:ff`` time code to milliseconds.

    Frames are 1/75 s and are rounded to the nearest millisecond.
    Time codes without exactly three parts yield 0; a non-numeric part
    counts as 0.
    """
    parts = value.strip().split(':')
    if len(parts) != 3:
        return 0
    minutes, seconds, frames = (_int_or_none(p.strip()) or 0 for p in parts)
    return minutes * 60000 + seconds * 1000 + round(frames * 1000 / FRAMES_PER_SECOND)


def parse_cue(text: str) -> Tuple[Optional[str], List[CueTrack]]:
    """
    Parse a CUE sheet.

    Args:
        text: Full sheet contents

    Returns:
        (referenced file name or None, tracks ordered as they appear)
    """
    referenced_file: Optional[str] = None
    album_performer: Optional[str] = None

    tracks: List[CueTrack] = []
    number: Optional[int] = None
    title: Optional[str] = None
    performer: Optional[str] = None
    start_ms: Optional[int] = None

    def flush():
        if number is not None and start_ms is not None:
            tracks.append(CueTrack(
                number=number,
                title=title or f"Track {number}",
                performer=performer or album_performer,
                start_ms=start_ms,
            ))

    for raw in text.splitlines():
        line = raw.strip()
        upper = line.upper()

        if upper.startswith("FILE"):
            # FILE "name with spaces.flac" WAVE
            value = line[4:].strip()
            if ' ' in value:
                value = value.rsplit(' ', 1)[0].strip()
            if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
                value = value[1:-1]
            referenced_file = value or None
        elif upper.startswith("PERFORMER"):
            if number is None:
                album_performer = _argument(line, "PERFORMER")
            else:
                performer = _argument(line, "PERFORMER")
        elif upper.startswith("TRACK"):
            flush()
            parts = _WHITESPACE.split(line)
            number = _int_or_none(parts[1]) if len(parts) > 1 else None
            title = None
            performer = None
            start_ms = None
        elif upper.startswith("TITLE"):
            # An album-level TITLE before the first TRACK is overwritten later
            title = _argument(line, "TITLE")
        elif upper.startswith("INDEX 01"):
            start_ms = parse_cue_time(line[len("INDEX 01"):])

    flush()

    for i in range(len(tracks) - 1):
        tracks[i] = replace(tracks[i], end_ms=tracks[i + 1].start_ms)

    return referenced_file, tracks

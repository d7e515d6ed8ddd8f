"""Synchronized lyrics: LRC parsing, remote lookup and per-track resolution."""

import re
from typing import Dict, List, Optional, Sequence

import httpx

from folderplayer.logging import get_logger
from folderplayer.models import LyricLine
from folderplayer.sources import MusicSource

logger = get_logger(__name__)

# [mm:ss.xx] or [mm:ss:xxx]
_TIME_TAG = re.compile(r"\[(\d{2,3}):(\d{2})[.:](\d{2,3})\]")


def parse_lrc(text: str) -> List[LyricLine]:
    """
    Parse LRC text into time-sorted lines.

    Only the first time tag of a line is used. Two-digit fractions are
    hundredths of a second, three-digit ones milliseconds. Lines without a
    tag are ignored.
    """
    result = []
    for line in text.splitlines():
        match = _TIME_TAG.search(line)
        if match is None:
            continue
        minutes, seconds, fraction = match.groups()
        millis = int(fraction) * 10 if len(fraction) == 2 else int(fraction)
        result.append(LyricLine(
            time_ms=int(minutes) * 60000 + int(seconds) * 1000 + millis,
            text=line[match.end():].strip(),
        ))
    result.sort(key=lambda l: l.time_ms)
    return result


def current_line_index(lines: Sequence[LyricLine], position_ms: int) -> int:
    """Index of the last line at or before ``position_ms``, -1 before the first."""
    index = -1
    for i, line in enumerate(lines):
        if line.time_ms <= position_ms:
            index = i
    return index


class LyricApiClient:
    """Plain GET lookup against an lrc.cx compatible endpoint."""

    def __init__(self, api_url: str, timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.api_url = api_url
        self.client = httpx.AsyncClient(timeout=timeout, follow_redirects=True,
                                        transport=transport)

    async def fetch(self, title: str, artist: Optional[str]) -> Optional[str]:
        if not self.api_url:
            return None
        try:
            response = await self.client.get(
                self.api_url, params={"title": title, "artist": artist or ""}
            )
        except httpx.HTTPError as e:
            logger.warning("Lyric lookup for %r failed: %s", title, e)
            return None
        if not response.is_success:
            logger.debug("Lyric lookup for %r returned HTTP %d", title, response.status_code)
            return None
        return response.text

    async def aclose(self) -> None:
        await self.client.aclose()


def sidecar_path(media_identity: str) -> str:
    """``<identity without extension>.lrc``, ignoring any cue track suffix."""
    base = media_identity.split('#', 1)[0]
    return base.rsplit('.', 1)[0] + ".lrc"


class LyricsResolver:
    """
    Finds lyrics for a track, first match wins:

    1. ``.lrc`` sidecar next to the audio file (the queue's hint, else the
       identity with its extension swapped)
    2. lyrics embedded in the file's tags
    3. remote lookup by title and artist

    Results are cached per media identity; an identity whose lookup came
    back empty is looked up again on the next request.
    """

    def __init__(self, api_client: Optional[LyricApiClient] = None) -> None:
        self.api_client = api_client
        self._cache: Dict[str, List[LyricLine]] = {}

    def cached(self, media_identity: str) -> Optional[List[LyricLine]]:
        return self._cache.get(media_identity)

    def seed(self, media_identity: str, lines: Sequence[LyricLine]) -> None:
        """Pre-fill the cache, e.g. from the lyrics shown before a restart."""
        if lines:
            self._cache[media_identity] = list(lines)

    async def resolve(self, media_identity: str, source: Optional[MusicSource], title: str,
                      artist: Optional[str] = None, lyrics_uri: Optional[str] = None,
                      embedded: Optional[str] = None) -> List[LyricLine]:
        cached = self._cache.get(media_identity)
        if cached:
            return cached

        lines = await self._lookup(media_identity, source, title, artist, lyrics_uri, embedded)
        self._cache[media_identity] = lines
        return lines

    async def _lookup(self, media_identity, source, title, artist, lyrics_uri, embedded):
        if source is not None:
            for path in dict.fromkeys(p for p in (lyrics_uri, sidecar_path(media_identity)) if p):
                text = await source.read_text(path)
                if text:
                    lines = parse_lrc(text)
                    if lines:
                        return lines

        if embedded and embedded.strip():
            lines = parse_lrc(embedded)
            if lines:
                return lines

        if self.api_client is not None and title:
            text = await self.api_client.fetch(title, artist)
            if text:
                lines = parse_lrc(text)
                if lines:
                    return lines

        return []

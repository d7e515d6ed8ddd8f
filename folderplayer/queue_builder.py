"""Turn directory listings and CUE sheets into playable queues."""

from dataclasses import dataclass, replace
from typing import List, Optional, Sequence
from urllib.parse import unquote

from folderplayer.cue import parse_cue
from folderplayer.logging import get_logger
from folderplayer.models import Clipping, CueTrack, Entry, Track
from folderplayer.sorting import sort_entries
from folderplayer.sources import MusicSource

logger = get_logger(__name__)

AUDIO_EXTENSIONS = frozenset({
    "mp3", "flac", "wav", "ogg", "aac", "m4a", "opus", "wma", "ape", "dsf", "dff",
})
IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png"})
LYRIC_EXTENSIONS = frozenset({"lrc"})
CUE_EXTENSION = "cue"

COVER_PRIORITY_NAMES = frozenset({"cover", "folder", "album", "front", "disk"})

# Audio file extensions tried, in order, when a cue sheet names no usable file
CUE_AUDIO_FALLBACK = ("flac", "ape", "wav", "mp3", "m4a", "dsf", "dff")

# Folder names this short ("CD1", "Disk 2") get their cover from the parent
DISC_FOLDER_MAX_LEN = 6

_MIME_TYPES = {
    "mp3": "audio/mpeg",
    "flac": "audio/flac",
    "m4a": "audio/mp4",
    "ape": "audio/x-ape",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "dsf": "audio/x-dsf",
    "dff": "audio/x-dff",
}

CUE_TRACK_MARKER = "#track_"


def mime_type_for(extension: str) -> Optional[str]:
    """Playback hint for a file extension; None leaves detection to the player."""
    return _MIME_TYPES.get(extension.lower().lstrip('.'))


def extension_of(uri: str) -> str:
    """Lower-case extension of a path or URI, ignoring any query string."""
    path = uri.split('?', 1)[0]
    tail = path.rsplit('/', 1)[-1]
    return tail.rsplit('.', 1)[1].lower() if '.' in tail else ''


def is_audio(entry: Entry) -> bool:
    return not entry.is_directory and entry.extension in AUDIO_EXTENSIONS


def parent_path(path: str) -> str:
    """Everything before the last ``/`` (trailing slashes ignored)."""
    trimmed = path.rstrip('/')
    return trimmed.rsplit('/', 1)[0] if '/' in trimmed else ''


def cue_identity(audio_uri: str, start_ms: int) -> str:
    return f"{audio_uri}{CUE_TRACK_MARKER}{start_ms}"


@dataclass(frozen=True)
class CueQueue:
    cue_path: str
    audio_path: str
    audio_uri: str
    tracks: List[Track]
    cue_tracks: List[CueTrack]


class QueueBuilder:
    """Builds queues from a source; all failures resolve to empty results."""

    async def build_from_folder(self, source: MusicSource, path: str,
                                sort_field: str = "NAME", ascending: bool = True) -> List[Track]:
        """
        Queue every supported audio file in ``path``.

        Args:
            source: Source to list from
            path: Folder path or URL
            sort_field: NAME, DATE or SIZE
            ascending: Sort direction

        Returns:
            Tracks in sorted order, all sharing one folder cover
        """
        listing = await source.list(path)
        audio = sort_entries([e for e in listing if is_audio(e)], sort_field, ascending,
                             folders_first=False)
        if not audio:
            return []

        cover = await self.find_cover(source, path, listing)
        tracks = []
        for entry in audio:
            lyric = next(
                (e for e in listing
                 if not e.is_directory and e.extension in LYRIC_EXTENSIONS
                 and e.name.startswith(entry.stem)),
                None,
            )
            tracks.append(self._track(
                source, entry, cover,
                source.resolve_uri(lyric.path) if lyric else None,
            ))
        return tracks

    async def build_from_entries(self, source: MusicSource,
                                 entries: Sequence[Entry]) -> List[Track]:
        """Queue a caller-ordered list of files, keeping their order."""
        files = [e for e in entries if not e.is_directory]
        if not files:
            return []
        cover = await self.find_cover(source, parent_path(files[0].path))
        return [self._track(source, entry, cover, None) for entry in files]

    def _track(self, source: MusicSource, entry: Entry, cover: Optional[str],
               lyrics_uri: Optional[str]) -> Track:
        uri = source.resolve_uri(entry.path)
        extension = extension_of(uri)
        return Track(
            title=entry.name,
            source_uri=uri,
            media_identity=uri,
            extension=extension,
            file_size=entry.size,
            artwork_uri=cover,
            lyrics_uri=lyrics_uri,
            mime_type=mime_type_for(extension),
        )

    async def find_cover(self, source: MusicSource, folder_path: str,
                         known_files: Optional[Sequence[Entry]] = None) -> Optional[str]:
        """
        Pick the folder's cover image.

        Priority names (cover, folder, album, front, disk) win over any other
        image. A folder with no image and a short name such as "CD1" falls
        back to its parent.
        """
        files = known_files if known_files is not None else await source.list(folder_path)
        cover = _pick_cover(files)

        if cover is None:
            normalized = folder_path.replace('\\', '/').rstrip('/')
            segments = normalized.split('/')
            if len(segments) >= 2 and len(unquote(segments[-1])) <= DISC_FOLDER_MAX_LEN:
                parent = '/'.join(segments[:-1])
                if parent:
                    cover = _pick_cover(await source.list(parent))

        return source.resolve_uri(cover.path) if cover else None

    async def build_from_cue(self, source: MusicSource, cue_path: str) -> Optional[CueQueue]:
        """
        Cut the audio file a cue sheet describes into virtual tracks.

        Returns:
            CueQueue, or None when the sheet is unreadable, has no tracks or
            no matching audio file exists next to it
        """
        text = await source.read_text(cue_path)
        if text is None:
            logger.warning("Cue sheet %s could not be read", cue_path)
            return None
        referenced, cue_tracks = parse_cue(text)
        cue_tracks = _strictly_increasing(cue_tracks)
        if not cue_tracks:
            logger.warning("Cue sheet %s has no playable tracks", cue_path)
            return None

        folder = parent_path(cue_path)
        listing = await source.list(folder)
        by_name = {e.name: e for e in listing if not e.is_directory}

        audio: Optional[Entry] = None
        if referenced:
            audio = by_name.get(referenced.replace('\\', '/').rsplit('/', 1)[-1])
        if audio is None:
            base = cue_path.rsplit('/', 1)[-1].rsplit('.', 1)[0]
            for ext in CUE_AUDIO_FALLBACK:
                audio = by_name.get(f"{base}.{ext}")
                if audio is not None:
                    break
        if audio is None:
            logger.warning("No audio file found for cue sheet %s", cue_path)
            return None

        audio_uri = source.resolve_uri(audio.path)
        extension = extension_of(audio_uri)
        cover = await self.find_cover(source, folder, listing)
        tracks = [
            Track(
                title=ct.title,
                source_uri=audio_uri,
                media_identity=cue_identity(audio_uri, ct.start_ms),
                extension=extension,
                file_size=audio.size,
                artwork_uri=cover,
                artist=ct.performer,
                clipping=Clipping(ct.start_ms, ct.end_ms),
                mime_type=mime_type_for(extension),
            )
            for ct in cue_tracks
        ]
        return CueQueue(cue_path=cue_path, audio_path=audio.path, audio_uri=audio_uri,
                        tracks=tracks, cue_tracks=cue_tracks)


def _pick_cover(files: Sequence[Entry]) -> Optional[Entry]:
    images = [f for f in files if not f.is_directory and f.extension in IMAGE_EXTENSIONS]
    for image in images:
        if image.stem.lower() in COVER_PRIORITY_NAMES:
            return image
    return images[0] if images else None


def _strictly_increasing(cue_tracks: List[CueTrack]) -> List[CueTrack]:
    """Drop tracks that do not start after their predecessor and re-link end times."""
    kept: List[CueTrack] = []
    for track in cue_tracks:
        if kept and track.start_ms <= kept[-1].start_ms:
            logger.warning("Skipping cue track %d: starts before the previous track", track.number)
            continue
        kept.append(track)
    if len(kept) == len(cue_tracks):
        return kept
    return [
        replace(track, end_ms=kept[i + 1].start_ms if i + 1 < len(kept) else None)
        for i, track in enumerate(kept)
    ]

"""Stream and tag probing for local audio files using mutagen."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from mutagen import File, MutagenError
from mutagen.flac import FLAC
from mutagen.mp3 import MP3
from mutagen.mp4 import MP4
from mutagen.oggvorbis import OggVorbis

from folderplayer.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AudioProbe:
    """Technical and descriptive facts read from one local file."""

    bitrate: int = 0  # bits per second, 0 when unknown
    sample_rate: int = 0
    channels: int = 0
    length: float = 0.0  # seconds
    title: Optional[str] = None
    artist: Optional[str] = None
    lyrics: Optional[str] = None


def probe_audio(file_path: str) -> Optional[AudioProbe]:
    """
    Read stream info and tags from a local audio file.

    Args:
        file_path: Filesystem path

    Returns:
        AudioProbe, or None when the file is missing or not recognised
    """
    if not Path(file_path).is_file():
        return None
    try:
        audio_file = File(file_path)
    except (MutagenError, OSError) as e:
        logger.debug("Cannot probe %s: %s", file_path, e)
        return None
    if audio_file is None:
        return None

    info = getattr(audio_file, 'info', None)
    return AudioProbe(
        bitrate=int(getattr(info, 'bitrate', 0) or 0),
        sample_rate=int(getattr(info, 'sample_rate', 0) or 0),
        channels=int(getattr(info, 'channels', 0) or 0),
        length=float(getattr(info, 'length', 0.0) or 0.0),
        title=_get_tag_generic(audio_file, [
            'TITLE',      # FLAC, OGG (Vorbis)
            'TIT2',       # MP3 (ID3v2)
            '\xa9nam',    # MP4 (iTunes)
        ]),
        artist=_get_tag_generic(audio_file, [
            'ARTIST',     # FLAC, OGG (Vorbis)
            'TPE1',       # MP3 (ID3v2)
            '\xa9ART',    # MP4 (iTunes)
        ]),
        lyrics=_embedded_lyrics(audio_file),
    )


def _embedded_lyrics(audio_file) -> Optional[str]:
    """Unsynchronised or LRC-formatted lyrics stored in the tags."""
    if isinstance(audio_file, MP3) and audio_file.tags is not None:
        # USLT frames are keyed "USLT::<lang>" or "USLT:<desc>:<lang>"
        for frame in audio_file.tags.getall('USLT'):
            text = str(frame.text).strip()
            if text:
                return text
        return None
    return _get_tag_generic(audio_file, [
        'LYRICS',          # FLAC, OGG (Vorbis)
        'UNSYNCEDLYRICS',  # FLAC, OGG (foobar2000)
        '\xa9lyr',         # MP4 (iTunes)
    ])


def _get_tag_generic(audio_file, tag_keys: list) -> Optional[str]:
    """Get a tag value trying multiple possible keys - works for all formats."""
    for key in tag_keys:
        try:
            value = None

            # FLAC and OGG use Vorbis comments accessed via tags attribute
            if isinstance(audio_file, (FLAC, OggVorbis)):
                if audio_file.tags is not None and key in audio_file.tags:
                    value = audio_file.tags[key]
            elif isinstance(audio_file, (MP3, MP4)):
                if key in audio_file:
                    value = audio_file[key]
            else:
                # Generic fallback: try direct access, then tags attribute
                try:
                    if key in audio_file:
                        value = audio_file[key]
                except (KeyError, TypeError):
                    tags = getattr(audio_file, 'tags', None)
                    if tags is not None and key in tags:
                        value = tags[key]

            if value is None:
                continue

            # ID3 frames carry their values in .text
            if hasattr(value, 'text'):
                value = value.text
            # Most formats return lists
            if isinstance(value, (list, tuple)):
                if not value:
                    continue
                value = value[0]
            if isinstance(value, bytes):
                value = value.decode('utf-8', errors='ignore')

            result = str(value).strip()
            if result:
                return result

        except (KeyError, AttributeError, TypeError, IndexError, ValueError):
            continue
    return None

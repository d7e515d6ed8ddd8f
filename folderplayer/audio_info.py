"""Human-readable technical audio info ("FLAC | 900kbps | 44.1kHz").

Players often report no bitrate, or a different one on every buffer. The
resolver combines the player's format with a local mutagen probe and a
size/duration estimate, snaps the result to the standard MP3 ladder, and
freezes the string per track once a bitrate is known.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional

from folderplayer.logging import get_logger
from folderplayer.metadata import AudioProbe, probe_audio
from folderplayer.sources import local_path

logger = get_logger(__name__)

STANDARD_BITRATES = (32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320)

MP3_MAX_KBPS = 320.5


@dataclass(frozen=True)
class AudioFormat:
    """What the player knows about the current stream; zero means unknown."""

    mime_type: str = ""
    bitrate: int = 0  # bits per second
    sample_rate: int = 0
    channels: int = 0


def snap_bitrate(kbps: float, extension: str) -> Optional[int]:
    """
    Round a measured bitrate to what the encoder most likely used.

    MP3 values above 320.5 are capped at 320. A value within 10 kbps or 5%
    of a standard rate becomes that rate; anything else is treated as VBR
    and rounded to whole kbps.

    Returns:
        kbps, or None for non-positive input
    """
    if kbps <= 0:
        return None

    capped = float(kbps)
    if extension.lower() == "mp3" and capped > MP3_MAX_KBPS:
        capped = 320.0

    closest = min(STANDARD_BITRATES, key=lambda s: abs(s - capped))
    diff = abs(closest - capped)
    if diff < 10.0 or diff < capped * 0.05:
        return closest
    return round(capped)


_FORMAT_NAMES = (
    ("flac", "FLAC"),
    ("alac", "ALAC"),
    ("mpeg", "MP3"),
    ("mp3", "MP3"),
    ("vorbis", "OGG"),
    ("ogg", "OGG"),
    ("opus", "OPUS"),
    ("mp4a", "AAC"),
    ("aac", "AAC"),
    ("wav", "WAV"),
    ("ape", "APE"),
    ("dsd", "DSD"),
    ("dsf", "DSD"),
    ("dff", "DSD"),
)


def display_format(mime_type: Optional[str], extension: str) -> str:
    """Short codec label from the stream MIME type, else the file extension."""
    mime = (mime_type or "").lower()
    for needle, label in _FORMAT_NAMES:
        if needle in mime:
            return label
    return extension.upper()


def format_sample_rate(hz: int) -> str:
    """44100 -> "44.1kHz", 48000 -> "48kHz", unknown -> ""."""
    if hz <= 0:
        return ""
    khz = hz / 1000.0
    if khz == int(khz):
        return f"{int(khz)}kHz"
    return f"{khz:.1f}kHz"


class AudioInfoResolver:
    """Builds and caches the info string per media identity."""

    def __init__(self) -> None:
        self._cache: Dict[str, str] = {}

    def cached(self, media_identity: str) -> Optional[str]:
        return self._cache.get(media_identity)

    async def describe(self, media_identity: str, extension: str,
                       engine_format: Optional[AudioFormat] = None,
                       source_path: Optional[str] = None,
                       file_size: int = 0, duration_ms: int = 0) -> str:
        """
        Args:
            media_identity: Cache key
            extension: File extension, used for the label and MP3 capping
            engine_format: What the player reports, if anything
            source_path: Playable URI or path; only local files are probed
            file_size: Bytes, for the size/duration estimate
            duration_ms: Track duration, for the size/duration estimate

        Returns:
            Parts joined with " | "; empty when nothing is known
        """
        cached = self._cache.get(media_identity)
        if cached is not None:
            return cached

        fmt = engine_format or AudioFormat()
        bitrate = snap_bitrate(fmt.bitrate / 1000.0, extension) if fmt.bitrate > 0 else None
        sample_rate = fmt.sample_rate

        if bitrate is None or sample_rate <= 0:
            probe = await self._probe(source_path)
            if probe is not None:
                if bitrate is None and probe.bitrate > 0:
                    bitrate = snap_bitrate(probe.bitrate / 1000.0, extension)
                if sample_rate <= 0:
                    sample_rate = probe.sample_rate

        if bitrate is None and file_size > 0 and duration_ms > 0:
            estimate = (file_size * 8) / (duration_ms / 1000.0) / 1000.0
            bitrate = snap_bitrate(estimate, extension)

        parts = [
            display_format(fmt.mime_type, extension),
            f"{bitrate}kbps" if bitrate else "",
            format_sample_rate(sample_rate),
        ]
        info = " | ".join(p for p in parts if p)

        if bitrate:
            self._cache[media_identity] = info
        return info

    async def _probe(self, source_path: Optional[str]) -> Optional[AudioProbe]:
        if not source_path:
            return None
        if source_path.startswith("file://") or source_path.startswith("/"):
            return await asyncio.to_thread(probe_audio, local_path(source_path))
        return None

#!/usr/bin/env python3
"""Folder Player - command line entry point."""

import argparse
import asyncio
import logging
import sys
from datetime import datetime

from folderplayer.config import get_config
from folderplayer.cue import parse_cue
from folderplayer.logging import AppLogger, get_logger, setup_logging
from folderplayer.preferences import SourcePreferences
from folderplayer.sorting import sort_entries
from folderplayer.sources import LocalSource

logger = get_logger(__name__)


def _format_ms(ms: int) -> str:
    seconds, millis = divmod(ms, 1000)
    minutes, seconds = divmod(seconds, 60)
    return f"{minutes:02d}:{seconds:02d}.{millis:03d}"


async def _list(path: str) -> int:
    source = LocalSource()
    field, ascending = SourcePreferences().get_sort_for(path)
    entries = sort_entries(await source.list(path), field, ascending)
    if not entries:
        print(f"No entries in {path}", file=sys.stderr)
        return 1
    for entry in entries:
        stamp = datetime.fromtimestamp(entry.last_modified / 1000).strftime("%Y-%m-%d %H:%M")
        marker = "/" if entry.is_directory else ""
        print(f"{stamp}  {entry.size:>12}  {entry.name}{marker}")
    return 0


async def _cue(path: str) -> int:
    text = await LocalSource().read_text(path)
    if text is None:
        print(f"Cannot read {path}", file=sys.stderr)
        return 1
    referenced, tracks = parse_cue(text)
    print(f"FILE {referenced or '-'}")
    for track in tracks:
        end = _format_ms(track.end_ms) if track.end_ms is not None else "end"
        performer = f" ({track.performer})" if track.performer else ""
        print(f"{track.number:02d}  {_format_ms(track.start_ms)} - {end}  {track.title}{performer}")
    return 0 if tracks else 1


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(prog="folderplayer", description="Folder-based music player tools")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    commands = parser.add_subparsers(dest="command", required=True)
    ls_parser = commands.add_parser("ls", help="List a local folder with its saved sort order")
    ls_parser.add_argument("path")
    cue_parser = commands.add_parser("cue", help="Show the tracks of a cue sheet")
    cue_parser.add_argument("file")
    args = parser.parse_args(argv)

    # Initialize config (creates directories, loads settings)
    config = get_config()

    # Initialize logging (uses config for log directory)
    setup_logging(log_dir=config.log_dir)
    if args.verbose:
        AppLogger.set_level(logging.DEBUG)
    logger.debug("Running %s", args.command)

    if args.command == "ls":
        return asyncio.run(_list(args.path))
    return asyncio.run(_cue(args.file))


if __name__ == '__main__':
    sys.exit(main())

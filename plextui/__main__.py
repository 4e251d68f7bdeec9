#!/usr/bin/env python3
"""
plextui main entry point.

Allows plextui to be run as a module: python3 -m plextui

Example:
    ```bash
    # List recently added tracks
    python3 -m plextui --server http://192.168.1.10:32400 --token XXXX

    # Search and play from the first hit on, advancing through the results
    python3 -m plextui --search "harvest moon" --play 1

    # Play an album, a playlist or everything by an artist
    python3 -m plextui --album "Harvest" --play 1
    python3 -m plextui --playlist "Road trip" --play 3
    python3 -m plextui --artist "Neil Young" --play 1

    # Browse
    python3 -m plextui --list artists
    ```
"""

import argparse
import logging
import logging.handlers
import sys
from typing import List, Optional, Sequence, TextIO, TypeVar

from plextui.config import PlexConfig, load_config
from plextui.decoder import AudioDecoder
from plextui.library import PlexClient, Track
from plextui.lyrics import LyricsFetcher
from plextui.ui import AlbumArt, NowPlayingScreen, PlaybackController, PlayQueue
from plextui.ui.now_playing import format_time

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
BROWSE_LIMIT = 500

logger = logging.getLogger("plextui")

T = TypeVar("T")


def setup_logging(level: str = "WARNING", log_file: Optional[str] = None) -> None:
    """
    Configure root logging.

    Console output goes to stderr so it does not mix with the screen. When
    log_file is set, a rotating file handler (10MB, 5 backups) is added.
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
        )
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        handlers=handlers,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="plextui", description="Terminal music player for Plex")
    parser.add_argument("--server", "-s", help="Plex server URL (overrides PLEXTUI_SERVER_URL)")
    parser.add_argument("--token", "-t", help="Plex auth token (overrides PLEXTUI_TOKEN)")
    parser.add_argument("--env-file", "-c", help="Path to a .env configuration file")

    source = parser.add_mutually_exclusive_group()
    source.add_argument("--recent", action="store_true", help="Recently added tracks (default)")
    source.add_argument("--search", metavar="QUERY", help="Search tracks")
    source.add_argument("--all", action="store_true", help="All tracks of the music library")
    source.add_argument("--artist", metavar="NAME", help="All tracks by an artist, album by album")
    source.add_argument("--album", metavar="TITLE", help="Tracks of an album")
    source.add_argument("--playlist", metavar="TITLE", help="Tracks of a playlist")
    source.add_argument("--list", choices=("artists", "albums", "playlists"), help="List library items and exit")

    parser.add_argument("--limit", type=int, default=50, metavar="N", help="Maximum tracks to list (default: 50)")
    parser.add_argument(
        "--play",
        type=int,
        metavar="INDEX",
        help="Play from track INDEX (1-based) to the end of the list",
    )
    return parser


def print_tracks(tracks: List[Track], out: Optional[TextIO] = None) -> None:
    out = out or sys.stdout
    for index, track in enumerate(tracks, start=1):
        out.write(f"{index:3d}. {track.artist} - {track.title} [{format_time(track.duration_ms)}]\n")


def find_by_name(items: Sequence[T], name: str, attr: str = "title") -> Optional[T]:
    """Case-insensitive lookup: exact match first, then the first substring match."""
    wanted = name.strip().lower()
    for item in items:
        if getattr(item, attr).lower() == wanted:
            return item
    for item in items:
        if wanted in getattr(item, attr).lower():
            return item
    return None


def list_items(client: PlexClient, kind: str, out: Optional[TextIO] = None) -> int:
    out = out or sys.stdout
    if kind == "playlists":
        for playlist in client.get_playlists(limit=BROWSE_LIMIT):
            out.write(f"{playlist.title} ({playlist.count} tracks)\n")
        return 0

    library_id = client.get_music_library_id()
    if library_id < 0:
        sys.stderr.write("plextui: no music library found\n")
        return 1
    if kind == "artists":
        for artist in client.get_artists(library_id, limit=BROWSE_LIMIT):
            out.write(f"{artist.name}\n")
    else:
        for album in client.get_albums(library_id, limit=BROWSE_LIMIT):
            year = f" ({album.year})" if album.year else ""
            out.write(f"{album.artist} - {album.title}{year}\n")
    return 0


def collect_tracks(client: PlexClient, args: argparse.Namespace) -> Optional[List[Track]]:
    """
    Tracks selected by the command line.

    Returns:
        The track list, or None if the named artist, album or playlist does
        not exist (already reported on stderr)
    """
    if args.search:
        return client.search_tracks(args.search, limit=args.limit)

    if args.playlist:
        playlist = find_by_name(client.get_playlists(limit=BROWSE_LIMIT), args.playlist)
        if playlist is None:
            sys.stderr.write(f"plextui: no playlist matching {args.playlist!r}\n")
            return None
        return client.get_playlist_tracks(playlist.id, size=args.limit)

    if not (args.all or args.artist or args.album):
        return client.get_recent_tracks(limit=args.limit)

    library_id = client.get_music_library_id()
    if library_id < 0:
        sys.stderr.write("plextui: no music library found\n")
        return None

    if args.all:
        return client.get_tracks_from_library(library_id, limit=args.limit)

    if args.album:
        album = find_by_name(client.get_albums(library_id, limit=BROWSE_LIMIT), args.album)
        if album is None:
            sys.stderr.write(f"plextui: no album matching {args.album!r}\n")
            return None
        return client.get_album_tracks(album.id)

    artist = find_by_name(client.get_artists(library_id, limit=BROWSE_LIMIT), args.artist, attr="name")
    if artist is None:
        sys.stderr.write(f"plextui: no artist matching {args.artist!r}\n")
        return None
    tracks: List[Track] = []
    for album in client.get_albums(library_id, artist_id=artist.id):
        tracks.extend(client.get_album_tracks(album.id))
    return tracks


def play(config: PlexConfig, client: PlexClient, tracks: List[Track], start_index: int) -> int:
    decoder = AudioDecoder(
        player_bin=config.player_bin,
        decoder_bin=config.decoder_bin,
        backoff_schedule_ms=config.decoder_backoff_ms,
        max_restarts=config.decoder_max_restarts,
    )
    controller = PlaybackController(decoder, token=config.token)

    lyrics = None
    if config.enable_lyrics:
        lyrics = LyricsFetcher(timeout=config.request_timeout_sec)
        lyrics.start()

    album_art = None
    if config.enable_album_art:
        album_art = AlbumArt(client.fetch_art, width=config.album_art_width, decoder_bin=config.decoder_bin)

    screen = NowPlayingScreen(
        controller,
        lyrics=lyrics,
        album_art=album_art,
        metadata=client.get_track_metadata,
        refresh_rate_ms=config.refresh_rate_ms,
        waveform_points=config.max_waveform_points,
        show_waveform=config.enable_waveform,
    )
    return screen.run(PlayQueue(tracks, start_index))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.env_file)
        if args.server:
            config.server_url = args.server.rstrip("/")
        if args.token:
            config.token = args.token
        config.validate()
        config.require_server()
    except ValueError as e:
        sys.stderr.write(f"plextui: {e}\n")
        return 2

    if args.limit <= 0:
        sys.stderr.write("plextui: --limit must be positive\n")
        return 2

    setup_logging(config.log_level, config.log_file)

    with PlexClient(config.server_url, config.token, timeout=config.request_timeout_sec) as client:
        if not client.connect():
            sys.stderr.write(f"plextui: cannot connect to {config.server_url}\n")
            return 1

        if args.list:
            return list_items(client, args.list)

        tracks = collect_tracks(client, args)
        if tracks is None:
            return 1
        if not tracks:
            sys.stdout.write("No tracks found\n")
            return 0 if args.play is None else 1

        if args.play is None:
            print_tracks(tracks)
            return 0

        if not 1 <= args.play <= len(tracks):
            sys.stderr.write(f"plextui: --play must be between 1 and {len(tracks)}\n")
            return 2

        return play(config, client, tracks, args.play - 1)


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("plextui interrupted")
        sys.exit(130)
    except Exception as e:
        logger.error(f"plextui failed: {e}", exc_info=True)
        sys.exit(1)

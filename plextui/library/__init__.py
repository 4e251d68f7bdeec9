"""
Plex library access.

This package provides the library browsing side of plextui:
- PlexClient: HTTP client for the Plex XML API
- Track, Artist, Album, Playlist: library data model
"""

from plextui.library.models import Album, Artist, AudioLevels, LyricLine, PlaybackState, Playlist, Track
from plextui.library.plex_client import PlexClient

__all__ = [
    "PlexClient",
    "Album",
    "Artist",
    "AudioLevels",
    "LyricLine",
    "PlaybackState",
    "Playlist",
    "Track",
]

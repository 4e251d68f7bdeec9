"""
Library data model.

Plain dataclasses for what the Plex API returns and what the player shows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class LyricLine:
    """One time-synced lyric line."""
    timestamp_ms: int
    text: str


@dataclass
class Track:
    """
    A playable track.

    Attributes:
        id: Plex ratingKey
        media_url: Absolute stream URL including the X-Plex-Token parameter
        thumb_url: Album art thumbnail (preferred over art_url)
        lyrics: Lyrics stored in Plex (plain or LRC text), if any
    """
    id: str
    title: str = ""
    artist: str = ""
    album: str = ""
    duration_ms: int = 0
    year: int = 0
    genre: str = ""
    bitrate: int = 0
    codec: str = ""
    media_url: str = ""
    art_url: str = ""
    thumb_url: str = ""
    lyrics: str = ""

    def get_art_url(self) -> str:
        return self.thumb_url or self.art_url


@dataclass
class Artist:
    id: str
    name: str
    art_url: str = ""


@dataclass
class Album:
    id: str
    title: str
    artist: str = ""
    art_url: str = ""
    year: int = 0


@dataclass
class Playlist:
    id: str
    title: str
    count: int = 0


@dataclass
class PlaybackState:
    """Snapshot of what the player is doing, for the UI."""
    playing: bool = False
    paused: bool = False
    position_ms: int = 0
    volume: float = 1.0
    current_track: Optional[Track] = None


@dataclass
class AudioLevels:
    """Waveform data for one UI frame."""
    waveform_data: List[float] = field(default_factory=list)
    current_level: float = 0.0
    peak_level: float = 0.0

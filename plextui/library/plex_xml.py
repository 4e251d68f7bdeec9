"""
Plex XML response parsing.

The Plex API answers with a MediaContainer element whose children describe
library sections, artists, albums, playlists or tracks. Parsing is lenient:
bad numeric attributes become 0 and malformed entries are skipped.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import List, Optional

from plextui.library.models import Album, Artist, Playlist, Track

logger = logging.getLogger(__name__)

TOKEN_PARAM = "X-Plex-Token"

_LYRICS_FIELD_TYPES = (
    "lyrics",
    "lyric",
    "lyricsTimed",
    "lyrics_timed",
    "lyricsSynced",
    "lyrics_synced",
)


class PlexXMLError(ValueError):
    """Response body is not a parseable MediaContainer."""


def parse_container(xml_text: str) -> ET.Element:
    """
    Parse a response body into its root element.

    Raises:
        PlexXMLError: If the body is empty or not well-formed XML
    """
    if not xml_text or not xml_text.strip():
        raise PlexXMLError("Empty XML response")
    try:
        return ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise PlexXMLError(f"Malformed XML response: {e}")


def _int_attr(node: ET.Element, name: str) -> int:
    try:
        return int(node.get(name, "0") or 0)
    except ValueError:
        return 0


def _absolute(server_url: str, path: str) -> str:
    if not path or path.startswith(("http://", "https://")):
        return path
    if not path.startswith("/"):
        path = "/" + path
    return server_url + path


def with_token(url: str, token: str) -> str:
    """Append the X-Plex-Token query parameter unless it is already present."""
    if not token or TOKEN_PARAM in url:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{TOKEN_PARAM}={token}"


def find_music_section(root: ET.Element) -> int:
    """Return the key of the first artist-type library section, or -1."""
    for directory in root.iter("Directory"):
        if directory.get("type") == "artist":
            try:
                return int(directory.get("key", "-1"))
            except ValueError:
                continue
    return -1


def _parse_track(node: ET.Element, server_url: str, token: str) -> Optional[Track]:
    track_id = node.get("ratingKey", "")
    if not track_id:
        return None

    track = Track(
        id=track_id,
        title=node.get("title", ""),
        artist=node.get("grandparentTitle", ""),
        album=node.get("parentTitle", ""),
        duration_ms=_int_attr(node, "duration"),
        year=_int_attr(node, "year"),
        genre=node.get("genre", ""),
    )

    for field_node in node.findall("Field"):
        if field_node.get("type", "") in _LYRICS_FIELD_TYPES:
            track.lyrics = field_node.get("value", "")
            break

    media = node.find("Media")
    if media is not None:
        track.bitrate = _int_attr(media, "bitrate")
        track.codec = media.get("audioCodec", "")
        part = media.find("Part")
        if part is not None:
            key = part.get("key", "")
            if key and server_url and token:
                track.media_url = with_token(server_url + key, token)

    track.thumb_url = _absolute(server_url, node.get("thumb", ""))
    track.art_url = _absolute(server_url, node.get("art", ""))
    return track


def parse_tracks(xml_text: str, server_url: str = "", token: str = "") -> List[Track]:
    """
    Parse Track elements from a MediaContainer.

    Args:
        xml_text: Response body
        server_url: Server base URL used to build media and art URLs
        token: Auth token appended to media URLs

    Returns:
        Tracks in document order; tracks without a ratingKey are skipped
    """
    root = parse_container(xml_text)
    tracks = []
    for node in root.iter("Track"):
        track = _parse_track(node, server_url, token)
        if track is not None:
            tracks.append(track)
    return tracks


def parse_artists(xml_text: str, server_url: str = "") -> List[Artist]:
    root = parse_container(xml_text)
    return [
        Artist(
            id=node.get("ratingKey", ""),
            name=node.get("title", ""),
            art_url=_absolute(server_url, node.get("thumb", "")),
        )
        for node in root.iter("Directory")
        if node.get("ratingKey")
    ]


def parse_albums(xml_text: str, server_url: str = "") -> List[Album]:
    root = parse_container(xml_text)
    return [
        Album(
            id=node.get("ratingKey", ""),
            title=node.get("title", ""),
            artist=node.get("parentTitle", ""),
            art_url=_absolute(server_url, node.get("thumb", "")),
            year=_int_attr(node, "year"),
        )
        for node in root.iter("Directory")
        if node.get("ratingKey")
    ]


def parse_playlists(xml_text: str) -> List[Playlist]:
    root = parse_container(xml_text)
    return [
        Playlist(
            id=node.get("ratingKey", ""),
            title=node.get("title", ""),
            count=_int_attr(node, "leafCount"),
        )
        for node in root.iter("Playlist")
        if node.get("ratingKey")
    ]

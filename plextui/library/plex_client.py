"""
Plex library client for plextui.

Browses and searches the music library of a Plex server over its XML HTTP
API. Transport and parse failures are logged and turned into empty results;
the UI loop never sees an exception from this client.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from plextui.library.models import Album, Artist, Playlist, Track
from plextui.library.plex_xml import (
    PlexXMLError,
    find_music_section,
    parse_albums,
    parse_artists,
    parse_container,
    parse_playlists,
    parse_tracks,
)

logger = logging.getLogger(__name__)

TRACK_TYPE = 10
ARTIST_TYPE = 8
ALBUM_TYPE = 9


class PlexClient:
    """
    Client for a Plex server's library API.

    Every request carries the X-Plex-Token header. Self-signed certificates
    are accepted since most servers are reached on a LAN address.
    """

    def __init__(
        self,
        server_url: str,
        token: str,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """
        Initialize Plex client.

        Args:
            server_url: Base URL, e.g. http://192.168.1.10:32400
            token: X-Plex-Token
            timeout: Request timeout in seconds (connect timeout is capped at 3s)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.server_url = server_url.rstrip("/")
        self.token = token
        self.connected = False
        self._music_section: Optional[int] = None

        self._client = httpx.Client(
            base_url=self.server_url,
            headers={"X-Plex-Token": token, "Accept": "application/xml"},
            timeout=httpx.Timeout(timeout, connect=min(timeout, 3.0)),
            verify=False,
            follow_redirects=True,
            transport=transport,
        )

        # Suppress httpx INFO level logging (one line per request otherwise)
        logging.getLogger("httpx").setLevel(logging.WARNING)

    def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """
        GET an endpoint and return the body, or None on failure.
        """
        try:
            response = self._client.get(endpoint, params=params)
            response.raise_for_status()
            return response.text
        except httpx.HTTPError as e:
            logger.warning(f"[PLEX] Request {endpoint} failed: {e}")
            return None

    def connect(self) -> bool:
        """
        Check that the server answers with a MediaContainer.

        Returns:
            True if the server is reachable and the token is accepted
        """
        if not self.server_url or not self.token:
            return False

        body = self._request("/")
        if body is None:
            self.connected = False
            return False
        try:
            root = parse_container(body)
        except PlexXMLError as e:
            logger.warning(f"[PLEX] Unexpected response from server: {e}")
            self.connected = False
            return False

        self.connected = root.tag == "MediaContainer"
        if self.connected:
            logger.info(f"[PLEX] Connected to {self.server_url}")
        return self.connected

    def get_music_library_id(self) -> int:
        """Return the section id of the first music library, or -1."""
        if self._music_section is not None:
            return self._music_section

        body = self._request("/library/sections")
        if body is None:
            return -1
        try:
            section = find_music_section(parse_container(body))
        except PlexXMLError as e:
            logger.warning(f"[PLEX] Could not parse library sections: {e}")
            return -1
        if section >= 0:
            self._music_section = section
        return section

    def _tracks(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> List[Track]:
        body = self._request(endpoint, params)
        if body is None:
            return []
        try:
            return parse_tracks(body, self.server_url, self.token)
        except PlexXMLError as e:
            logger.warning(f"[PLEX] Could not parse tracks from {endpoint}: {e}")
            return []

    def search_tracks(self, query: str, limit: int = 50, start: int = 0) -> List[Track]:
        """Server-side track search in the music library."""
        section = self.get_music_library_id()
        if section < 0:
            return []
        params: Dict[str, Any] = {"type": TRACK_TYPE, "query": query, "limit": limit}
        if start > 0:
            params["X-Plex-Container-Start"] = start
        return self._tracks(f"/library/sections/{section}/search", params)

    def get_recent_tracks(self, limit: int = 50) -> List[Track]:
        section = self.get_music_library_id()
        if section < 0:
            return []
        return self._tracks(
            f"/library/sections/{section}/recentlyAdded",
            {"type": TRACK_TYPE, "limit": limit},
        )

    def get_tracks_from_library(self, library_id: int, limit: int = 100) -> List[Track]:
        return self._tracks(f"/library/sections/{library_id}/all", {"type": TRACK_TYPE, "limit": limit})

    def get_artists(self, library_id: int, limit: int = 100) -> List[Artist]:
        body = self._request(f"/library/sections/{library_id}/all", {"type": ARTIST_TYPE, "limit": limit})
        if body is None:
            return []
        try:
            return parse_artists(body, self.server_url)
        except PlexXMLError as e:
            logger.warning(f"[PLEX] Could not parse artists: {e}")
            return []

    def get_albums(self, library_id: int, artist_id: str = "", limit: int = 100) -> List[Album]:
        if artist_id:
            endpoint = f"/library/metadata/{artist_id}/children"
        else:
            endpoint = f"/library/sections/{library_id}/all"
        body = self._request(endpoint, {"type": ALBUM_TYPE, "limit": limit})
        if body is None:
            return []
        try:
            return parse_albums(body, self.server_url)
        except PlexXMLError as e:
            logger.warning(f"[PLEX] Could not parse albums: {e}")
            return []

    def get_album_tracks(self, album_id: str) -> List[Track]:
        return self._tracks(f"/library/metadata/{album_id}/children")

    def get_playlists(self, limit: int = 50) -> List[Playlist]:
        body = self._request("/playlists/all", {"limit": limit})
        if body is None:
            return []
        try:
            return parse_playlists(body)
        except PlexXMLError as e:
            logger.warning(f"[PLEX] Could not parse playlists: {e}")
            return []

    def get_playlist_tracks(self, playlist_id: str, start: int = 0, size: int = 100) -> List[Track]:
        params: Dict[str, Any] = {}
        if start > 0:
            params["X-Plex-Container-Start"] = start
        if size > 0:
            params["X-Plex-Container-Size"] = size
        return self._tracks(f"/playlists/{playlist_id}/items", params or None)

    def get_track_metadata(self, track_id: str) -> Optional[Track]:
        """Full metadata for one track, or None if it cannot be fetched."""
        if not track_id:
            return None
        tracks = self._tracks(f"/library/metadata/{track_id}")
        return tracks[0] if tracks else None

    def fetch_art(self, art_url: str) -> Optional[bytes]:
        """Download artwork (thumb or art URL) and return the image bytes, or None."""
        if not art_url:
            return None
        try:
            response = self._client.get(art_url, headers={"Accept": "image/*"})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"[PLEX] Artwork download failed: {e}")
            return None
        return response.content or None

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PlexClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

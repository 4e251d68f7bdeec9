"""
Background lyrics fetcher for plextui.

Looks tracks up on LRCLIB from a worker thread so the UI loop never waits on
the network. Results are cached per track id; the UI polls result().
"""

import logging
import threading
from dataclasses import dataclass, field
from queue import Empty, Queue
from typing import Dict, List, Optional

import httpx

from plextui.library.models import LyricLine, Track
from plextui.lyrics.lrc import parse_lrc

logger = logging.getLogger(__name__)

LRCLIB_URL = "https://lrclib.net/api/get"
QUEUE_POLL_SEC = 0.1
STOP_JOIN_TIMEOUT_SEC = 1.0

_STOP = object()


@dataclass
class LyricsResult:
    """
    Lyrics for one track.

    Attributes:
        synced: Time-synced lines (empty when only plain lyrics exist)
        plain: Plain lyrics text, or the raw LRC text when synced is set
    """
    track_id: str
    synced: List[LyricLine] = field(default_factory=list)
    plain: str = ""

    @property
    def found(self) -> bool:
        return bool(self.synced or self.plain)


def _lyrics_result(track_id: str, synced_text: str, plain_text: str) -> LyricsResult:
    """Build a result from LRC text (may be plain text) and plain text."""
    return LyricsResult(
        track_id=track_id,
        synced=parse_lrc(synced_text) if synced_text else [],
        plain=plain_text or synced_text,
    )


class LyricsFetcher:
    """
    Fetches lyrics on a daemon worker thread.

    Requests are queued and handled in order. A track that fails to resolve
    gets an empty LyricsResult so it is not requested again.
    """

    def __init__(
        self,
        base_url: str = LRCLIB_URL,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._base_url = base_url
        self._client = httpx.Client(
            timeout=timeout,
            headers={"User-Agent": "plextui"},
            follow_redirects=True,
            transport=transport,
        )
        self._queue: "Queue[object]" = Queue()
        self._results: Dict[str, LyricsResult] = {}
        self._pending: set = set()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="LyricsFetcher", daemon=True)
        self._thread.start()

    def request(self, track: Track) -> None:
        """
        Make lyrics for track available through result(). Returns immediately.

        Lyrics stored in Plex are used as they are; otherwise a LRCLIB lookup
        is queued, which needs at least a title and an artist.
        """
        if not track.id:
            return
        if track.lyrics:
            with self._lock:
                if track.id not in self._results:
                    self._results[track.id] = _lyrics_result(track.id, track.lyrics, track.lyrics)
                    logger.debug(f"[LYRICS] Using lyrics from Plex for {track.title}")
            return
        if not track.title or not track.artist:
            return
        with self._lock:
            if track.id in self._results or track.id in self._pending:
                return
            self._pending.add(track.id)
        self._queue.put(track)

    def result(self, track_id: str) -> Optional[LyricsResult]:
        """Cached lyrics for track_id, or None while the lookup is pending."""
        with self._lock:
            return self._results.get(track_id)

    def _run(self) -> None:
        while True:
            try:
                item = self._queue.get(timeout=QUEUE_POLL_SEC)
            except Empty:
                continue
            if item is _STOP:
                break
            if not isinstance(item, Track):
                logger.warning(f"[LYRICS] Ignoring unexpected queue item {item!r}")
                continue
            result = self.fetch(item)
            with self._lock:
                self._results[item.id] = result
                self._pending.discard(item.id)

    def fetch(self, track: Track) -> LyricsResult:
        """
        Look up one track synchronously.

        Synced lyrics are preferred; plainLyrics is the fallback.
        """
        params = {"track_name": track.title, "artist_name": track.artist}
        if track.album:
            params["album_name"] = track.album
        if track.duration_ms > 0:
            params["duration"] = str(track.duration_ms // 1000)

        result = LyricsResult(track_id=track.id)
        try:
            response = self._client.get(self._base_url, params=params)
            if response.status_code == 404:
                logger.debug(f"[LYRICS] No lyrics for {track.artist} - {track.title}")
                return result
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[LYRICS] Lookup failed for {track.artist} - {track.title}: {e}")
            return result

        if not isinstance(payload, dict):
            return result

        result = _lyrics_result(track.id, payload.get("syncedLyrics") or "", payload.get("plainLyrics") or "")
        logger.debug(
            f"[LYRICS] {track.title}: {len(result.synced)} synced lines, "
            f"plain={'yes' if result.plain else 'no'}"
        )
        return result

    def stop(self, timeout: float = STOP_JOIN_TIMEOUT_SEC) -> bool:
        """
        Stop the worker and close the HTTP client.

        Returns:
            True if the worker exited within timeout
        """
        stopped = True
        if self._thread is not None:
            self._queue.put(_STOP)
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("[LYRICS] Worker did not exit within timeout; leaving it detached")
                stopped = False
            self._thread = None
        if stopped:
            self._client.close()
        return stopped

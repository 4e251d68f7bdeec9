"""
Playback controller for plextui.

Ties the current track to an AudioDecoder and keeps wall-clock position
bookkeeping for the now-playing view. Position is derived from elapsed time
since the player cannot report it.
"""

import logging
import threading
import time
from typing import Callable, Optional
from urllib.parse import parse_qs, urlsplit

from plextui.decoder import AudioDecoder
from plextui.decoder.commands import TOKEN_PARAM, strip_token
from plextui.library.models import AudioLevels, PlaybackState, Track

logger = logging.getLogger(__name__)

PEAK_DECAY = 0.95
DEFAULT_WAVEFORM_POINTS = 200


def token_from_url(url: str) -> str:
    """Return the X-Plex-Token query value of url, or ""."""
    values = parse_qs(urlsplit(url).query).get(TOKEN_PARAM)
    return values[0] if values else ""


class PlaybackController:
    """
    Plays one track at a time.

    Position runs from a monotonic clock: play() records the start, pause()
    freezes the position and resume() continues from it.
    """

    def __init__(
        self,
        decoder: AudioDecoder,
        token: str = "",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._decoder = decoder
        self._token = token
        self._clock = clock
        self._lock = threading.Lock()

        self._track: Optional[Track] = None
        self._playing = False
        self._paused = False
        self._started_at: Optional[float] = None
        self._position_ms = 0
        self._volume = 1.0
        self._peak = 0.0

    @property
    def current_track(self) -> Optional[Track]:
        return self._track

    def play(self, track: Track) -> bool:
        """
        Stop whatever is playing and start track.

        Returns:
            False if the track has no id or media URL, or the decoder fails
        """
        self.stop()
        if not track.id or not track.media_url:
            logger.warning(f"Cannot play track without id and media URL: {track.title!r}")
            return False

        token = self._token or token_from_url(track.media_url)
        url = strip_token(track.media_url)
        if not self._decoder.start(url, token):
            logger.error(f"Failed to start playback of {track.title!r}")
            return False

        with self._lock:
            self._track = track
            self._playing = True
            self._paused = False
            self._position_ms = 0
            self._started_at = self._clock()
            self._peak = 0.0
        logger.info(f"Playing {track.artist} - {track.title}")
        return True

    def pause(self) -> bool:
        with self._lock:
            if not self._playing:
                return False
            self._position_ms = self._elapsed_ms()
            self._playing = False
            self._paused = True
            self._started_at = None
        self._decoder.pause()
        return True

    def resume(self) -> bool:
        with self._lock:
            if not self._paused:
                return False
            self._started_at = self._clock() - self._position_ms / 1000.0
            self._playing = True
            self._paused = False
        self._decoder.resume()
        return True

    def toggle_pause(self) -> bool:
        """Pause if playing, resume if paused. Returns True if paused now."""
        if self._paused:
            self.resume()
        else:
            self.pause()
        return self._paused

    def stop(self) -> None:
        with self._lock:
            self._playing = False
            self._paused = False
            self._position_ms = 0
            self._started_at = None
            self._peak = 0.0
        self._decoder.stop()

    def seek(self, position_ms: int) -> bool:
        """
        Move the position counter.

        Only the displayed position changes; the stream keeps playing from
        where the player is.
        """
        with self._lock:
            if self._track is None:
                return False
            position_ms = max(0, position_ms)
            if self._track.duration_ms > 0:
                position_ms = min(position_ms, self._track.duration_ms)
            self._position_ms = position_ms
            if self._playing:
                self._started_at = self._clock() - position_ms / 1000.0
        return True

    @property
    def volume(self) -> float:
        return self._volume

    def set_volume(self, volume: float) -> float:
        self._volume = min(max(volume, 0.0), 1.0)
        return self._volume

    def _elapsed_ms(self) -> int:
        if self._started_at is None:
            return self._position_ms
        return int((self._clock() - self._started_at) * 1000)

    def _update_position(self) -> bool:
        """Advance the position; returns True if the track ran out."""
        with self._lock:
            if not self._playing:
                return False
            position = self._elapsed_ms()
            duration = self._track.duration_ms if self._track else 0
            finished = False
            if duration > 0 and position >= duration:
                position = duration
                finished = True
            elif self._decoder.player_finished():
                finished = True
            self._position_ms = position
            if finished:
                self._playing = False
                self._started_at = None
        return finished

    def state(self) -> PlaybackState:
        if self._update_position():
            logger.info("Track finished")
            self._decoder.stop()
        with self._lock:
            return PlaybackState(
                playing=self._playing,
                paused=self._paused,
                position_ms=self._position_ms,
                volume=self._volume,
                current_track=self._track,
            )

    def audio_levels(self, count: int = DEFAULT_WAVEFORM_POINTS) -> AudioLevels:
        """
        Level history and meters for one frame.

        The peak falls by PEAK_DECAY per call unless the current level is higher.
        """
        if self._update_position():
            logger.info("Track finished")
            self._decoder.stop()

        current = self._decoder.current_level()
        with self._lock:
            self._peak = max(self._peak * PEAK_DECAY, current)
            peak = self._peak
        return AudioLevels(
            waveform_data=self._decoder.recent_samples(count),
            current_level=current,
            peak_level=peak,
        )

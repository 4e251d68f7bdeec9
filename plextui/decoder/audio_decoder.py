"""
AudioDecoder: the playback/analysis facade.

AudioDecoder is the only type the rest of the application touches. It owns
the ProcessSupervisor (Player + Decoder children), the LevelRingBuffer and the
PipeReaderThread of the live decode session.

At most one session is live. start() retires the previous session before
spawning anything new, and stop() is bounded even when a child ignores
SIGTERM or the worker thread is stuck.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from plextui.audio.level_buffer import DEFAULT_CAPACITY, LevelRingBuffer
from plextui.decoder.commands import DEFAULT_DECODER_BIN, DEFAULT_PLAYER_BIN, strip_token
from plextui.decoder.pipe_reader import DEFAULT_MAX_RESTARTS, PipeReaderThread, RestartLimiter
from plextui.decoder.process_supervisor import GRACEFUL_EXIT_SEC, ProcessSupervisor

logger = logging.getLogger(__name__)

WORKER_JOIN_TIMEOUT_SEC = 0.5
WORKER_FINAL_JOIN_SEC = 0.1
WORKER_START_TIMEOUT_SEC = 1.0


@dataclass
class DecodeSession:
    """One start() call's worth of state."""
    url: str
    token: str
    reader: PipeReaderThread
    shutdown_event: threading.Event = field(default_factory=threading.Event)

    @property
    def active(self) -> bool:
        return not self.shutdown_event.is_set()


class AudioDecoder:
    """
    Plays a stream through the Player and exposes live loudness levels.

    Public surface:
        start(url, token) -> bool
        stop() -> None
        pause() -> bool
        resume() -> bool
        is_active() -> bool
        current_level() -> float
        recent_samples(count) -> list of float (len == count, left-zero-padded)
    """

    def __init__(
        self,
        player_bin: str = DEFAULT_PLAYER_BIN,
        decoder_bin: str = DEFAULT_DECODER_BIN,
        buffer_capacity: int = DEFAULT_CAPACITY,
        backoff_schedule_ms: Optional[Sequence[int]] = None,
        max_restarts: int = DEFAULT_MAX_RESTARTS,
        grace_period_sec: float = GRACEFUL_EXIT_SEC,
        join_timeout_sec: float = WORKER_JOIN_TIMEOUT_SEC,
    ) -> None:
        """
        Initialize the facade. No processes are spawned until start().

        Args:
            player_bin: Player program (default: ffplay)
            decoder_bin: Decoder program (default: ffmpeg)
            buffer_capacity: Number of levels kept for the waveform
            backoff_schedule_ms: Decoder restart delays
            max_restarts: Decoder restarts allowed per session
            grace_period_sec: SIGTERM grace window per child on stop()
            join_timeout_sec: Bound on waiting for the worker thread on stop()
        """
        self._level_buffer = LevelRingBuffer(buffer_capacity)
        self._supervisor = ProcessSupervisor(
            player_bin=player_bin,
            decoder_bin=decoder_bin,
            grace_period_sec=grace_period_sec,
        )
        self._backoff_schedule_ms = list(backoff_schedule_ms) if backoff_schedule_ms else None
        self._max_restarts = max_restarts
        self._join_timeout_sec = join_timeout_sec

        self._session: Optional[DecodeSession] = None
        # Serializes start()/stop(); never taken by the level readers
        self._control_lock = threading.Lock()

    @property
    def supervisor(self) -> ProcessSupervisor:
        return self._supervisor

    @property
    def level_buffer(self) -> LevelRingBuffer:
        return self._level_buffer

    def start(self, stream_url: str, auth_token: str) -> bool:
        """
        Start a decode session, replacing any live one.

        Args:
            stream_url: Stream URL; an X-Plex-Token query parameter is removed
            auth_token: Token passed to both children as an HTTP header

        Returns:
            True once both processes run and the worker thread is running
        """
        if not stream_url or not auth_token:
            logger.warning("start() requires a stream URL and an auth token")
            return False

        with self._control_lock:
            self._stop_locked()

            url = strip_token(stream_url)
            if not self._supervisor.start(url, auth_token):
                return False

            limiter = RestartLimiter(self._backoff_schedule_ms, self._max_restarts)
            shutdown_event = threading.Event()
            reader = PipeReaderThread(
                supervisor=self._supervisor,
                level_buffer=self._level_buffer,
                shutdown_event=shutdown_event,
                restart_limiter=limiter,
            )
            session = DecodeSession(url=url, token=auth_token, reader=reader, shutdown_event=shutdown_event)

            try:
                reader.start()
            except RuntimeError as e:
                logger.error(f"Failed to start pipe reader thread: {e}")
                shutdown_event.set()
                self._supervisor.stop()
                return False

            if not reader.started_event.wait(WORKER_START_TIMEOUT_SEC):
                logger.error("Pipe reader thread did not start in time")
                self._teardown(session)
                return False

            self._session = session
            logger.info(f"Decode session started: {url}")
            return True

    def stop(self) -> None:
        """
        Retire the live session, if any, and reset levels. Idempotent.

        Waits at most join_timeout_sec + WORKER_FINAL_JOIN_SEC for the worker
        thread, plus the child termination grace period.
        """
        with self._control_lock:
            self._stop_locked()

    def close(self) -> None:
        self.stop()

    def _stop_locked(self) -> None:
        session = self._session
        self._session = None
        if session is not None:
            self._teardown(session)
            logger.info("Decode session stopped")
        self._level_buffer.clear()

    def _teardown(self, session: DecodeSession) -> None:
        # 1. The worker checks this before and after every read and sleep
        session.shutdown_event.set()

        # 2. Decoder then Player: SIGTERM, bounded poll, SIGKILL
        self._supervisor.terminate_children()

        # 3. Two bounded joins (join_timeout_sec, then WORKER_FINAL_JOIN_SEC).
        # stop() never blocks on the worker; a stuck daemon worker is left
        # behind and its session generation keeps it off the next session.
        reader = session.reader
        if reader.is_alive():
            reader.join(timeout=self._join_timeout_sec)
            if reader.is_alive():
                logger.warning(
                    f"Pipe reader did not exit within {self._join_timeout_sec:.1f}s; detaching"
                )
                reader.join(timeout=WORKER_FINAL_JOIN_SEC)

        self._supervisor.close_pipe()

    def pause(self) -> bool:
        """Suspend playback and analysis. False if nothing is playing."""
        if self._session is None:
            return False
        return self._supervisor.pause()

    def resume(self) -> bool:
        """Continue after pause(). False if nothing is playing."""
        if self._session is None:
            return False
        return self._supervisor.resume()

    def is_active(self) -> bool:
        session = self._session
        return session is not None and session.active

    def is_paused(self) -> bool:
        return self.is_active() and self._supervisor.is_paused()

    def player_finished(self) -> bool:
        """True when a session is live but its Player has exited."""
        return self.is_active() and not self._supervisor.player_alive()

    def current_level(self) -> float:
        return self._level_buffer.current_level()

    def recent_samples(self, count: int = 100) -> List[float]:
        return self._level_buffer.snapshot(count)

    def __enter__(self) -> "AudioDecoder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

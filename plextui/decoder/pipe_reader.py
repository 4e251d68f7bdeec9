"""
Decoder pipe reader thread.

This module provides PipeReaderThread, the worker that drains the Decoder's
stdout pipe with non-blocking reads, turns PCM into loudness levels and feeds
them to the LevelRingBuffer. When the Decoder exits mid-stream it is restarted
in place; the Player is never touched, so the audible stream is unaffected.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import List, Optional, Sequence

import numpy as np

from plextui.audio.level_buffer import LevelRingBuffer
from plextui.audio.levels import SAMPLES_PER_LEVEL, compute_level, pcm_bytes_to_samples
from plextui.decoder.process_supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

READ_SIZE = 4096
IDLE_SLEEP_SEC = 0.05
ERROR_SLEEP_SEC = 0.1

DEFAULT_BACKOFF_MS = [100, 500, 1000, 2000, 5000]
DEFAULT_MAX_RESTARTS = 20


class RestartLimiter:
    """
    Rate limit for Decoder restarts within one session.

    Delays follow the backoff schedule (the last entry repeats). The schedule
    rewinds once the Decoder delivers data again, but the total number of
    restarts per session is capped.
    """

    def __init__(self, backoff_schedule_ms: Optional[Sequence[int]] = None, max_restarts: int = DEFAULT_MAX_RESTARTS) -> None:
        self._schedule_ms = list(backoff_schedule_ms or DEFAULT_BACKOFF_MS)
        self._max_restarts = max_restarts
        self._index = 0
        self._restarts = 0

    @property
    def restarts(self) -> int:
        return self._restarts

    def next_delay(self) -> Optional[float]:
        """Delay in seconds before the next restart, or None once the cap is reached."""
        if self._restarts >= self._max_restarts:
            return None
        delay_ms = self._schedule_ms[min(self._index, len(self._schedule_ms) - 1)]
        self._index += 1
        self._restarts += 1
        return delay_ms / 1000.0

    def data_received(self) -> None:
        self._index = 0


class PipeReaderThread(threading.Thread):
    """
    Worker that consumes Decoder PCM for one decode session.

    The loop never blocks on the pipe: an empty non-blocking read sleeps for
    IDLE_SLEEP_SEC on the shutdown event, so stop() is observed within one
    sleep interval.

    Attributes:
        supervisor: ProcessSupervisor owning the Decoder and its pipe
        generation: Supervisor session this reader serves
        level_buffer: LevelRingBuffer receiving computed levels
        shutdown_event: Set by the facade to end the session
        started_event: Set as soon as run() begins
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        level_buffer: LevelRingBuffer,
        shutdown_event: threading.Event,
        restart_limiter: Optional[RestartLimiter] = None,
        samples_per_level: int = SAMPLES_PER_LEVEL,
        read_size: int = READ_SIZE,
    ) -> None:
        """
        Initialize pipe reader.

        Args:
            supervisor: ProcessSupervisor for the active session
            level_buffer: Destination for loudness levels
            shutdown_event: Event that ends the loop when set
            restart_limiter: Decoder restart policy (default: RestartLimiter())
            samples_per_level: Samples per analysis window (default: 4410, 100ms)
            read_size: Maximum bytes per read call
        """
        super().__init__(name="DecoderPipeReader", daemon=True)
        self.supervisor = supervisor
        self.level_buffer = level_buffer
        self.shutdown_event = shutdown_event
        self.started_event = threading.Event()
        self.restart_limiter = restart_limiter or RestartLimiter()
        self.samples_per_level = samples_per_level
        self.read_size = read_size
        # Session this reader belongs to; the supervisor must already be started
        self.generation = supervisor.generation

        self._accumulator = np.empty(0, dtype=np.int16)
        self._carry = b""
        self._bytes_read = 0

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    def run(self) -> None:
        self.started_event.set()
        logger.info("Decoder pipe reader started")

        try:
            while not self.shutdown_event.is_set():
                fd = self.supervisor.session_read_fd(self.generation)
                if fd is None:
                    break

                try:
                    data = os.read(fd, self.read_size)
                except BlockingIOError:
                    # Decoder alive but nothing buffered yet
                    self.shutdown_event.wait(IDLE_SLEEP_SEC)
                    continue
                except OSError as e:
                    logger.debug(f"Pipe read error: {e}")
                    if not self._on_no_data(ERROR_SLEEP_SEC):
                        break
                    continue

                if self.shutdown_event.is_set():
                    break

                if not data:
                    if not self._on_no_data(IDLE_SLEEP_SEC):
                        break
                    continue

                self._consume(data)
        except Exception as e:
            logger.error(f"Unexpected error in pipe reader: {e}", exc_info=True)
        finally:
            logger.debug("Decoder pipe reader stopped")

    def _on_no_data(self, sleep_sec: float) -> bool:
        """
        Handle EOF or a read error.

        Returns:
            True to keep looping, False to end the loop
        """
        status = self.supervisor.poll_decoder_exit()
        if status is None:
            self.shutdown_event.wait(sleep_sec)
            return not self.shutdown_event.is_set()

        if self.shutdown_event.is_set():
            return False

        if status == 0 and not self.supervisor.player_alive():
            logger.info("Decoder reached end of stream with the player; analysis finished")
            return False

        delay = self.restart_limiter.next_delay()
        if delay is None:
            logger.warning(
                f"Decoder exited (status {status}) and restart limit reached "
                f"({self.restart_limiter.restarts}); waveform analysis disabled for this track"
            )
            return False

        logger.warning(f"Decoder exited (status {status}); restarting in {delay * 1000:.0f}ms")
        if self.shutdown_event.wait(delay):
            return False

        # Samples from the previous Decoder must not mix with the new stream
        self._accumulator = np.empty(0, dtype=np.int16)
        self._carry = b""

        if not self.supervisor.restart_decoder(self.generation):
            return False
        return not self.shutdown_event.is_set()

    def _consume(self, data: bytes) -> None:
        self._bytes_read += len(data)
        self.restart_limiter.data_received()

        if self._carry:
            data = self._carry + data
            self._carry = b""
        if len(data) % 2:
            # Keep the odd byte so no sample is split across reads
            self._carry = data[-1:]
            data = data[:-1]
        if not data:
            return

        self._accumulator = np.concatenate((self._accumulator, pcm_bytes_to_samples(data)))

        levels: List[float] = []
        while self._accumulator.size >= self.samples_per_level:
            levels.append(compute_level(self._accumulator[:self.samples_per_level]))
            self._accumulator = self._accumulator[self.samples_per_level:]

        if len(levels) == 1:
            self.level_buffer.push(levels[0])
        elif levels:
            self.level_buffer.push_batch(levels)

    def stop(self, timeout: float = 0.5) -> bool:
        """
        Stop the reader.

        Args:
            timeout: Maximum time to wait for the thread to exit

        Returns:
            True if the thread exited, False if it was left running (detached)
        """
        self.shutdown_event.set()
        if self.is_alive():
            self.join(timeout=timeout)
            if self.is_alive():
                logger.warning("Pipe reader did not stop within timeout")
                return False
        return True

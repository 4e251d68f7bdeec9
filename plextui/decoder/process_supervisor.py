"""
Process supervisor for the playback/analysis pipeline.

This module provides ProcessSupervisor, which owns the two external child
processes of one decode session:
- Player: plays the stream on the audio device (ffplay by default)
- Decoder: writes raw s16le mono PCM to a pipe for level analysis (ffmpeg)

The Decoder may die and be restarted while the Player keeps running, so the
liveness of each child is tracked independently.

Every child is torn down with the same two-phase pattern (terminate_process):
SIGTERM, poll for exit within a bounded grace window, then SIGKILL and wait.
"""

from __future__ import annotations

import enum
import fcntl
import logging
import os
import signal
import subprocess
import threading
import time
from typing import Callable, List, Optional

from plextui.decoder.commands import (
    DEFAULT_DECODER_BIN,
    DEFAULT_PLAYER_BIN,
    build_decoder_cmd,
    build_player_cmd,
)

logger = logging.getLogger(__name__)

GRACEFUL_EXIT_SEC = 2.0
EXIT_POLL_INTERVAL_SEC = 0.1

# Job-control signals are POSIX only
_SIGSTOP = getattr(signal, "SIGSTOP", None)
_SIGCONT = getattr(signal, "SIGCONT", None)


class SupervisorState(enum.Enum):
    """Supervisor state enumeration."""
    IDLE = 1
    STARTING = 2
    RUNNING = 3
    PAUSED = 4
    STOPPING = 5


def set_nonblocking(fd: int) -> None:
    flags = fcntl.fcntl(fd, fcntl.F_GETFL)
    fcntl.fcntl(fd, fcntl.F_SETFL, flags | os.O_NONBLOCK)


def terminate_process(
    proc: Optional[subprocess.Popen],
    name: str = "process",
    grace_period_sec: float = GRACEFUL_EXIT_SEC,
    poll_interval_sec: float = EXIT_POLL_INTERVAL_SEC,
    stopped: bool = False,
) -> Optional[int]:
    """
    Terminate a child process: graceful first, forced after a bounded wait.

    1. SIGTERM (followed by SIGCONT if the child was suspended, otherwise the
       SIGTERM stays pending until the grace window runs out)
    2. Poll for exit every poll_interval_sec for up to grace_period_sec
    3. SIGKILL and block until exit

    Safe to call on a process that has already exited.

    Args:
        proc: Process handle (None is a no-op)
        name: Label used in log messages
        grace_period_sec: Time allowed for a clean exit after SIGTERM
        poll_interval_sec: Interval between non-blocking exit checks
        stopped: True if the child may currently be suspended with SIGSTOP

    Returns:
        The process return code, or None if proc was None
    """
    if proc is None:
        return None

    if proc.poll() is not None:
        logger.debug(f"[SUPERVISOR] {name} already exited (pid={proc.pid}, code={proc.returncode})")
        return proc.returncode

    try:
        proc.terminate()
        if stopped and _SIGCONT is not None:
            proc.send_signal(_SIGCONT)
        logger.debug(f"[SUPERVISOR] {name} SIGTERM sent (pid={proc.pid})")
    except ProcessLookupError:
        # Exited between poll() and terminate()
        proc.poll()
        return proc.returncode

    deadline = time.monotonic() + grace_period_sec
    while time.monotonic() < deadline:
        if proc.poll() is not None:
            logger.debug(f"[SUPERVISOR] {name} exited cleanly (pid={proc.pid}, code={proc.returncode})")
            return proc.returncode
        time.sleep(poll_interval_sec)

    logger.warning(f"[SUPERVISOR] {name} ignored SIGTERM for {grace_period_sec:.1f}s, sending SIGKILL (pid={proc.pid})")
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    return proc.wait()


class ProcessSupervisor:
    """
    Owns the Player and Decoder processes of one decode session.

    State machine: IDLE -> STARTING -> RUNNING <-> PAUSED -> STOPPING -> IDLE

    Process handles are guarded by a lock that is only held while handles are
    read or swapped, never while waiting for a child to exit. The pipe read
    end is exposed through read_fd and changes when the Decoder is restarted.

    Each start() opens a new generation and terminate_children() closes it.
    A pipe reader holds on to the generation it was started for, so a reader
    left behind by a previous session can neither read the new session's pipe
    nor install a Decoder into it.
    """

    def __init__(
        self,
        player_bin: str = DEFAULT_PLAYER_BIN,
        decoder_bin: str = DEFAULT_DECODER_BIN,
        grace_period_sec: float = GRACEFUL_EXIT_SEC,
        poll_interval_sec: float = EXIT_POLL_INTERVAL_SEC,
        on_state_change: Optional[Callable[[SupervisorState], None]] = None,
    ) -> None:
        """
        Initialize process supervisor.

        Args:
            player_bin: Player program name or path
            decoder_bin: Decoder program name or path
            grace_period_sec: SIGTERM grace window before SIGKILL
            poll_interval_sec: Exit poll interval inside the grace window
            on_state_change: Optional callback when state changes
        """
        self._player_bin = player_bin
        self._decoder_bin = decoder_bin
        self._grace_period_sec = grace_period_sec
        self._poll_interval_sec = poll_interval_sec
        self._on_state_change = on_state_change

        self._state = SupervisorState.IDLE
        self._lock = threading.Lock()
        # Held across pause(), resume() and the Decoder install in
        # restart_decoder(); always taken before _lock
        self._pause_lock = threading.Lock()
        self._generation = 0

        self._player: Optional[subprocess.Popen] = None
        self._decoder: Optional[subprocess.Popen] = None
        self._read_fd: Optional[int] = None

        self._url = ""
        self._token = ""
        self._paused = False
        self._decoder_restarts = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get_state(self) -> SupervisorState:
        with self._lock:
            return self._state

    def _set_state(self, new_state: SupervisorState) -> None:
        with self._lock:
            old_state = self._state
            self._state = new_state
        if old_state != new_state:
            logger.debug(f"[SUPERVISOR] {old_state.name} -> {new_state.name}")
            if self._on_state_change:
                self._on_state_change(new_state)

    @property
    def read_fd(self) -> Optional[int]:
        """Current non-blocking read end of the Decoder pipe."""
        with self._lock:
            return self._read_fd

    @property
    def generation(self) -> int:
        """Identifier of the current session; changes on start() and stop."""
        with self._lock:
            return self._generation

    def session_read_fd(self, generation: int) -> Optional[int]:
        """Pipe read end, or None if that session is no longer current."""
        with self._lock:
            if generation != self._generation:
                return None
            return self._read_fd

    @property
    def decoder_restarts(self) -> int:
        with self._lock:
            return self._decoder_restarts

    @property
    def player_pid(self) -> Optional[int]:
        with self._lock:
            return self._player.pid if self._player is not None else None

    @property
    def decoder_pid(self) -> Optional[int]:
        with self._lock:
            return self._decoder.pid if self._decoder is not None else None

    def is_paused(self) -> bool:
        with self._lock:
            return self._paused

    def player_alive(self) -> bool:
        with self._lock:
            proc = self._player
        return proc is not None and proc.poll() is None

    def decoder_alive(self) -> bool:
        with self._lock:
            proc = self._decoder
        return proc is not None and proc.poll() is None

    def poll_decoder_exit(self) -> Optional[int]:
        """
        Non-blocking check for Decoder exit.

        Returns:
            Exit status if the Decoder has exited (negative for a signal),
            None if it is still running or no Decoder exists
        """
        with self._lock:
            proc = self._decoder
        if proc is None:
            return None
        return proc.poll()

    # ------------------------------------------------------------------
    # Spawning
    # ------------------------------------------------------------------

    def _spawn(self, cmd: List[str], stdout) -> subprocess.Popen:
        # New session: terminal job-control signals (Ctrl-C, Ctrl-Z) reach the
        # UI only; children are signalled explicitly by this supervisor.
        return subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=stdout,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )

    def _spawn_decoder(self, url: str, token: str) -> tuple:
        """
        Open a pipe and spawn a Decoder writing into it.

        Returns:
            (process, read_fd); the read end is already non-blocking

        Raises:
            OSError: If the pipe or the process cannot be created
        """
        read_fd, write_fd = os.pipe()
        try:
            proc = self._spawn(build_decoder_cmd(url, token, self._decoder_bin), stdout=write_fd)
        except OSError:
            os.close(read_fd)
            os.close(write_fd)
            raise
        # Parent keeps only the read end so EOF is seen when the Decoder exits
        os.close(write_fd)
        set_nonblocking(read_fd)
        return proc, read_fd

    def start(self, url: str, token: str) -> bool:
        """
        Spawn the Player and the Decoder for a new session.

        Either both processes are running on return (True) or nothing is
        left behind (False).

        Args:
            url: Stream URL (token already stripped)
            token: Auth token, passed to both children as a header

        Returns:
            True if both processes were launched
        """
        if not url or not token:
            logger.warning("[SUPERVISOR] start() rejected: stream URL and token are required")
            return False

        with self._lock:
            if self._state != SupervisorState.IDLE:
                logger.error(f"[SUPERVISOR] start() rejected in state {self._state.name}")
                return False
        self._set_state(SupervisorState.STARTING)

        try:
            player = self._spawn(build_player_cmd(url, token, self._player_bin), stdout=subprocess.DEVNULL)
        except OSError as e:
            logger.error(f"[SUPERVISOR] Failed to spawn player '{self._player_bin}': {e}")
            self._set_state(SupervisorState.IDLE)
            return False
        logger.info(f"[SUPERVISOR] Player started (pid={player.pid})")

        try:
            decoder, read_fd = self._spawn_decoder(url, token)
        except OSError as e:
            logger.error(f"[SUPERVISOR] Failed to spawn decoder '{self._decoder_bin}': {e}")
            terminate_process(player, "player", self._grace_period_sec, self._poll_interval_sec)
            self._set_state(SupervisorState.IDLE)
            return False
        logger.info(f"[SUPERVISOR] Decoder started (pid={decoder.pid})")

        with self._lock:
            self._player = player
            self._decoder = decoder
            self._read_fd = read_fd
            self._url = url
            self._token = token
            self._paused = False
            self._decoder_restarts = 0
            self._generation += 1
        self._set_state(SupervisorState.RUNNING)
        return True

    def _is_current(self, generation: int) -> bool:
        # Caller holds self._lock
        return (
            generation == self._generation
            and self._state in (SupervisorState.RUNNING, SupervisorState.PAUSED)
        )

    def restart_decoder(self, generation: Optional[int] = None) -> bool:
        """
        Replace an exited Decoder with a fresh one reading the same stream.

        The Player is not touched. Called from the pipe reader thread. The new
        Decoder is suspended on install if the session was paused meanwhile.

        Args:
            generation: Session the caller belongs to (default: the current one)

        Returns:
            True if a new Decoder is running, False if that session is over
            or the spawn failed
        """
        with self._lock:
            if generation is None:
                generation = self._generation
            if not self._is_current(generation):
                return False
            old_proc = self._decoder
            old_fd = self._read_fd
            self._decoder = None
            self._read_fd = None
            url, token = self._url, self._token

        if old_fd is not None:
            os.close(old_fd)
        if old_proc is not None and old_proc.poll() is None:
            terminate_process(old_proc, "decoder", self._grace_period_sec, self._poll_interval_sec)

        try:
            proc, read_fd = self._spawn_decoder(url, token)
        except OSError as e:
            logger.error(f"[SUPERVISOR] Decoder restart failed: {e}")
            return False

        with self._pause_lock:
            with self._lock:
                installed = self._is_current(generation)
                if installed:
                    self._decoder = proc
                    self._read_fd = read_fd
                    self._decoder_restarts += 1
                    restarts = self._decoder_restarts
                    paused = self._paused
            if installed and paused:
                self._signal(proc, _SIGSTOP, "decoder")

        if not installed:
            # That session was stopped while spawning; stop() never saw this child
            logger.info(f"[SUPERVISOR] Discarding decoder spawned for a finished session (pid={proc.pid})")
            os.close(read_fd)
            terminate_process(proc, "decoder", self._grace_period_sec, self._poll_interval_sec)
            return False

        logger.info(f"[SUPERVISOR] Decoder restarted (pid={proc.pid}, restarts={restarts})")
        return True

    # ------------------------------------------------------------------
    # Pause / resume
    # ------------------------------------------------------------------

    def _signal(self, proc: Optional[subprocess.Popen], sig: int, name: str) -> bool:
        if proc is None or proc.poll() is not None:
            return False
        try:
            proc.send_signal(sig)
        except ProcessLookupError:
            return False
        logger.debug(f"[SUPERVISOR] {name} signalled {signal.Signals(sig).name} (pid={proc.pid})")
        return True

    def pause(self) -> bool:
        """
        Suspend both children (Decoder first so it cannot race ahead).

        Returns:
            True if paused (or already paused), False if no process existed
        """
        with self._pause_lock:
            with self._lock:
                if self._paused:
                    return True
                decoder, player = self._decoder, self._player

            if _SIGSTOP is None:
                logger.warning("[SUPERVISOR] pause() unsupported: no SIGSTOP on this platform")
                return False

            signalled = self._signal(decoder, _SIGSTOP, "decoder")
            signalled = self._signal(player, _SIGSTOP, "player") or signalled
            if not signalled:
                return False

            with self._lock:
                self._paused = True
            self._set_state(SupervisorState.PAUSED)
        return True

    def resume(self) -> bool:
        """
        Continue both children (Player first).

        Returns:
            True if resumed or not paused, False if no process existed
        """
        with self._pause_lock:
            with self._lock:
                paused = self._paused
                decoder, player = self._decoder, self._player

            if player is None and decoder is None:
                return False
            if not paused:
                return True
            if _SIGCONT is None:
                return False

            signalled = self._signal(player, _SIGCONT, "player")
            signalled = self._signal(decoder, _SIGCONT, "decoder") or signalled
            with self._lock:
                self._paused = False
            self._set_state(SupervisorState.RUNNING)
        return signalled

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def terminate_children(self) -> None:
        """
        Two-phase termination of the Decoder, then the Player.

        Handles are released and the generation is closed under the lock
        first, so a concurrent restart_decoder() cannot install a new child
        afterwards. The pipe stays open until close_pipe() so the reader
        thread never reads a recycled descriptor.
        """
        with self._lock:
            if self._state == SupervisorState.IDLE:
                return
            self._generation += 1
            decoder, player = self._decoder, self._player
            self._decoder = None
            self._player = None
            paused = self._paused
            self._paused = False
        self._set_state(SupervisorState.STOPPING)

        terminate_process(decoder, "decoder", self._grace_period_sec, self._poll_interval_sec, stopped=paused)
        terminate_process(player, "player", self._grace_period_sec, self._poll_interval_sec, stopped=paused)

    def close_pipe(self) -> None:
        """Close the Decoder pipe and return to IDLE."""
        with self._lock:
            fd = self._read_fd
            self._read_fd = None
        if fd is not None:
            try:
                os.close(fd)
            except OSError as e:
                logger.debug(f"[SUPERVISOR] Pipe close failed: {e}")
        self._set_state(SupervisorState.IDLE)

    def stop(self) -> None:
        """Terminate both children and release the pipe. Idempotent."""
        self.terminate_children()
        self.close_pipe()

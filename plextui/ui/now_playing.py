"""
Now-playing screen for plextui.

Walks a play queue, redrawing album art, title, progress, waveform and the
current lyric line at a fixed rate, and reads single-key commands from the
terminal:
- space: pause / resume
- n / N: next / previous track
- + / -: volume up / down
- . / ,: seek forward / back 10 seconds
- q, ESC, Ctrl+C: quit

When a track ends the next one in the queue starts. Whatever ends the loop
(key, signal, end of queue, exception), the decoder and the lyrics worker
are stopped before run() returns.
"""

import logging
import select
import shutil
import signal
import sys
import threading
from typing import Callable, List, Optional, TextIO

from plextui.library.models import Track
from plextui.lyrics import LyricsFetcher, line_at
from plextui.ui.album_art import AlbumArt
from plextui.ui.play_queue import PlayQueue
from plextui.ui.playback import PlaybackController
from plextui.ui.waveform import DEFAULT_STYLE, render_waveform

logger = logging.getLogger(__name__)

WAVEFORM_HEIGHT = 6
MAX_WIDTH = 120
PROGRESS_FILL = "━"
PROGRESS_EMPTY = "─"
VOLUME_STEP = 0.05
SEEK_STEP_MS = 10000
KEY_HELP = "space pause  n/N next/prev  +/- volume  ./, seek  q quit"

_EXIT_SIGNALS = [getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGHUP") if hasattr(signal, name)]


class Colors:
    """ANSI escape sequences used by the screen."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    CYAN = "\033[36m"
    YELLOW = "\033[33m"
    CLEAR = "\033[H\033[2J"
    HIDE_CURSOR = "\033[?25l"
    SHOW_CURSOR = "\033[?25h"


def format_time(ms: int) -> str:
    seconds = max(0, ms) // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


def progress_bar(position_ms: int, duration_ms: int, width: int) -> str:
    if width <= 0:
        return ""
    ratio = 0.0
    if duration_ms > 0:
        ratio = min(max(position_ms / duration_ms, 0.0), 1.0)
    filled = int(round(ratio * width))
    return PROGRESS_FILL * filled + PROGRESS_EMPTY * (width - filled)


class KeyReader:
    """
    Non-blocking single key reads from a terminal.

    Puts the terminal in cbreak mode for the lifetime of the context and
    restores the previous settings on exit. On a non-tty stream read_key()
    always returns None.
    """

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._saved = None

    def __enter__(self) -> "KeyReader":
        if self._stream.isatty():
            import termios
            import tty

            fd = self._stream.fileno()
            self._saved = termios.tcgetattr(fd)
            tty.setcbreak(fd)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._saved is not None:
            import termios

            termios.tcsetattr(self._stream.fileno(), termios.TCSADRAIN, self._saved)
            self._saved = None

    @property
    def interactive(self) -> bool:
        return self._saved is not None

    def read_key(self, timeout: float) -> Optional[str]:
        if not self.interactive:
            return None
        ready, _, _ = select.select([self._stream], [], [], timeout)
        if not ready:
            return None
        return self._stream.read(1)


class NowPlayingScreen:
    """Interactive view of the play queue, one track at a time."""

    def __init__(
        self,
        controller: PlaybackController,
        lyrics: Optional[LyricsFetcher] = None,
        album_art: Optional[AlbumArt] = None,
        metadata: Optional[Callable[[str], Optional[Track]]] = None,
        refresh_rate_ms: int = 250,
        waveform_points: int = 100,
        show_waveform: bool = True,
        waveform_style: str = DEFAULT_STYLE,
        out: TextIO = sys.stdout,
        keys: TextIO = sys.stdin,
        terminal_width: Optional[Callable[[], int]] = None,
    ) -> None:
        """
        Args:
            controller: Plays tracks and reports position and levels
            lyrics: Lyrics source, or None to hide lyrics
            album_art: Artwork loader, or None to hide the art panel
            metadata: Looks up full track metadata by id before playing
                      (PlexClient.get_track_metadata)
        """
        self._controller = controller
        self._lyrics = lyrics
        self._album_art = album_art
        self._metadata = metadata
        self._refresh_sec = refresh_rate_ms / 1000.0
        self._waveform_points = waveform_points
        self._show_waveform = show_waveform
        self._waveform_style = waveform_style
        self._out = out
        self._keys = keys
        self._terminal_width = terminal_width or (lambda: shutil.get_terminal_size().columns)
        self._exit_event = threading.Event()
        self._skip = 0
        self._queue: Optional[PlayQueue] = None

    @property
    def exit_requested(self) -> bool:
        return self._exit_event.is_set()

    def request_exit(self, signum=None, frame=None) -> None:
        if signum is not None:
            logger.info(f"Received signal {signum}, stopping playback")
        self._exit_event.set()

    def handle_key(self, key: str) -> None:
        if key == " ":
            paused = self._controller.toggle_pause()
            logger.debug(f"Playback {'paused' if paused else 'resumed'}")
        elif key == "n":
            self._skip = 1
        elif key == "N":
            self._skip = -1
        elif key in ("+", "="):
            self._controller.set_volume(self._controller.volume + VOLUME_STEP)
        elif key == "-":
            self._controller.set_volume(self._controller.volume - VOLUME_STEP)
        elif key in (".", ","):
            step = SEEK_STEP_MS if key == "." else -SEEK_STEP_MS
            self._controller.seek(self._controller.state().position_ms + step)
        elif key in ("q", "Q", "\x1b", "\x03"):
            self.request_exit()

    def _lyric_line(self, track: Track, position_ms: int) -> str:
        if self._lyrics is None:
            return ""
        result = self._lyrics.result(track.id)
        if result is None:
            return "(looking up lyrics...)"
        if result.synced:
            index = line_at(result.synced, position_ms)
            return result.synced[index].text if index >= 0 else ""
        if result.plain:
            return result.plain.splitlines()[0]
        return ""

    def render_frame(self) -> str:
        """Build one frame of the screen as a string."""
        state = self._controller.state()
        track = state.current_track
        width = max(20, min(self._terminal_width(), MAX_WIDTH))

        lines: List[str] = []
        if track is None:
            lines.append("Nothing playing")
            return "\n".join(lines) + "\n"

        if self._album_art is not None:
            lines.extend(self._album_art.lines())
            lines.append("")

        lines.append(f"{Colors.BOLD}{track.title}{Colors.RESET}")
        subtitle = " - ".join(part for part in (track.artist, track.album) if part)
        lines.append(f"{Colors.DIM}{subtitle}{Colors.RESET}")
        lines.append("")

        if self._show_waveform:
            levels = self._controller.audio_levels(self._waveform_points)
            for row in render_waveform(levels.waveform_data, width, WAVEFORM_HEIGHT, self._waveform_style):
                lines.append(f"{Colors.CYAN}{row}{Colors.RESET}")
            lines.append("")

        elapsed = format_time(state.position_ms)
        total = format_time(track.duration_ms)
        bar_width = width - len(elapsed) - len(total) - 2
        lines.append(f"{elapsed} {progress_bar(state.position_ms, track.duration_ms, bar_width)} {total}")

        if state.paused:
            status = "paused"
        elif state.playing:
            status = "playing"
        else:
            status = "stopped"
        lines.append(f"{Colors.DIM}[{status}]  vol {round(state.volume * 100)}%{Colors.RESET}")
        lines.append(f"{Colors.DIM}{KEY_HELP}{Colors.RESET}")

        lyric = self._lyric_line(track, state.position_ms)
        if lyric:
            lines.append("")
            lines.append(f"{Colors.YELLOW}{lyric[:width]}{Colors.RESET}")

        if self._queue is not None:
            upcoming = self._queue.upcoming(1)
            if upcoming:
                text = f"Next: {upcoming[0].artist} - {upcoming[0].title}"
                lines.append("")
                lines.append(f"{Colors.DIM}{text[:width]}{Colors.RESET}")

        return "\n".join(lines) + "\n"

    def _install_signal_handlers(self) -> dict:
        previous = {}
        if threading.current_thread() is not threading.main_thread():
            return previous
        for sig in _EXIT_SIGNALS:
            previous[sig] = signal.signal(sig, self.request_exit)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: dict) -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    def _resolve(self, track: Track) -> Track:
        if self._metadata is None:
            return track
        full = self._metadata(track.id)
        if full is None or not full.media_url:
            return track
        return full

    def _play_current(self, queue: PlayQueue, forward: bool = True) -> bool:
        """
        Start the queue's current track, skipping tracks that fail to start.

        Returns:
            False if no remaining track (in the direction of travel) could start
        """
        track = queue.current
        while track is not None:
            track = self._resolve(track)
            if self._controller.play(track):
                if self._lyrics is not None:
                    self._lyrics.request(track)
                if self._album_art is not None:
                    self._album_art.load(track)
                return True
            logger.warning(f"Skipping unplayable track {track.title!r}")
            track = queue.advance() if forward else queue.previous()
        return False

    def run(self, queue: PlayQueue) -> int:
        """
        Play the queue from its current track until it runs out or the user quits.

        When a track ends the next one starts; n and N skip forward and back.

        Returns:
            0 on normal exit, 1 if no track could be started
        """
        previous = self._install_signal_handlers()
        self._queue = queue
        try:
            if not self._play_current(queue):
                return 1

            self._out.write(Colors.HIDE_CURSOR)
            with KeyReader(self._keys) as keys:
                while not self._exit_event.is_set():
                    self._out.write(Colors.CLEAR + self.render_frame())
                    self._out.flush()

                    step, self._skip = self._skip, 0
                    track_ended = False
                    if step == 0:
                        state = self._controller.state()
                        track_ended = not state.playing and not state.paused
                        if track_ended:
                            step = 1

                    if step:
                        moved = queue.advance() if step > 0 else queue.previous()
                        if moved is None:
                            if track_ended:
                                logger.info("Play queue finished")
                                break
                            continue
                        if not self._play_current(queue, forward=step > 0):
                            break
                        continue

                    key = keys.read_key(self._refresh_sec)
                    if key is None:
                        if not keys.interactive:
                            self._exit_event.wait(self._refresh_sec)
                    else:
                        self.handle_key(key)
            return 0
        finally:
            self._queue = None
            self._controller.stop()
            if self._lyrics is not None:
                self._lyrics.stop()
            self._out.write(Colors.SHOW_CURSOR)
            self._out.flush()
            self._restore_signal_handlers(previous)

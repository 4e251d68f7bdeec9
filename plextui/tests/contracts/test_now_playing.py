"""
Tests for the now-playing screen: frame rendering, key handling and the
guarantee that the decoder and lyrics worker are stopped on every exit path.
"""

import io
import signal
from unittest.mock import MagicMock

import pytest

from plextui.library.models import AudioLevels, LyricLine, PlaybackState, Track
from plextui.lyrics import LyricsFetcher, LyricsResult
from plextui.ui.album_art import AlbumArt
from plextui.ui.now_playing import NowPlayingScreen, format_time, progress_bar
from plextui.ui.play_queue import PlayQueue
from plextui.ui.playback import PlaybackController


@pytest.fixture
def controller(track):
    ctrl = MagicMock(spec=PlaybackController)
    ctrl.play.return_value = True
    ctrl.state.return_value = PlaybackState(playing=True, position_ms=20000, current_track=track)
    ctrl.audio_levels.return_value = AudioLevels(waveform_data=[0.5] * 10, current_level=0.5, peak_level=0.5)
    return ctrl


@pytest.fixture
def lyrics():
    fetcher = MagicMock(spec=LyricsFetcher)
    fetcher.result.return_value = None
    return fetcher


def make_screen(controller, lyrics=None, **kwargs):
    return NowPlayingScreen(
        controller,
        lyrics=lyrics,
        refresh_rate_ms=10,
        out=io.StringIO(),
        keys=io.StringIO(),
        terminal_width=lambda: 60,
        **kwargs,
    )


class TestHelpers:

    def test_format_time(self):
        assert format_time(0) == "0:00"
        assert format_time(65000) == "1:05"
        assert format_time(-5) == "0:00"

    def test_progress_bar(self):
        assert progress_bar(50, 100, 10) == "━" * 5 + "─" * 5
        assert progress_bar(500, 100, 4) == "━" * 4
        assert progress_bar(10, 0, 4) == "─" * 4
        assert progress_bar(10, 100, 0) == ""


class TestRenderFrame:

    def test_frame_shows_track_and_progress(self, controller):
        frame = make_screen(controller).render_frame()
        assert "Harvest Moon" in frame
        assert "Neil Young" in frame
        assert "0:20" in frame
        assert "5:00" in frame
        assert "[playing]" in frame

    def test_waveform_can_be_disabled(self, controller):
        make_screen(controller, show_waveform=False).render_frame()
        controller.audio_levels.assert_not_called()

    def test_waveform_uses_configured_points(self, controller):
        make_screen(controller, waveform_points=42).render_frame()
        controller.audio_levels.assert_called_once_with(42)

    def test_synced_lyric_line(self, controller, lyrics, track):
        lyrics.result.return_value = LyricsResult(
            track_id=track.id,
            synced=[LyricLine(10000, "first line"), LyricLine(30000, "second line")],
        )
        frame = make_screen(controller, lyrics).render_frame()
        assert "first line" in frame
        assert "second line" not in frame

    def test_pending_lyrics(self, controller, lyrics):
        assert "looking up lyrics" in make_screen(controller, lyrics).render_frame()

    def test_nothing_playing(self, controller):
        controller.state.return_value = PlaybackState()
        assert "Nothing playing" in make_screen(controller).render_frame()

    def test_album_art_above_title(self, controller):
        art = MagicMock(spec=AlbumArt)
        art.lines.return_value = ["<art row 1>", "<art row 2>"]
        frame = make_screen(controller, album_art=art).render_frame()
        assert frame.startswith("<art row 1>\n<art row 2>\n")
        assert frame.index("<art row 2>") < frame.index("Harvest Moon")

    def test_status_line_shows_volume(self, controller, track):
        controller.state.return_value = PlaybackState(playing=True, volume=0.4, current_track=track)
        assert "[playing]  vol 40%" in make_screen(controller).render_frame()


class TestKeys:

    def test_space_toggles_pause(self, controller):
        screen = make_screen(controller)
        screen.handle_key(" ")
        controller.toggle_pause.assert_called_once()
        assert not screen.exit_requested

    @pytest.mark.parametrize("key", ["q", "Q", "\x1b", "\x03"])
    def test_quit_keys(self, controller, key):
        screen = make_screen(controller)
        screen.handle_key(key)
        assert screen.exit_requested

    def test_other_keys_ignored(self, controller):
        screen = make_screen(controller)
        screen.handle_key("x")
        assert not screen.exit_requested
        controller.toggle_pause.assert_not_called()

    def test_volume_keys(self, controller):
        controller.volume = 0.5
        screen = make_screen(controller)
        screen.handle_key("+")
        controller.set_volume.assert_called_with(pytest.approx(0.55))
        screen.handle_key("-")
        controller.set_volume.assert_called_with(pytest.approx(0.45))

    def test_seek_keys(self, controller):
        screen = make_screen(controller)
        screen.handle_key(".")
        controller.seek.assert_called_with(30000)
        screen.handle_key(",")
        controller.seek.assert_called_with(10000)


class TestRun:

    def test_track_end_exits_and_cleans_up(self, controller, lyrics, track):
        controller.state.return_value = PlaybackState(playing=False, current_track=track)
        screen = make_screen(controller, lyrics)

        assert screen.run(PlayQueue([track])) == 0

        controller.play.assert_called_once_with(track)
        lyrics.request.assert_called_once_with(track)
        controller.stop.assert_called_once()
        lyrics.stop.assert_called_once()

    def test_play_failure(self, controller, lyrics, track):
        controller.play.return_value = False
        assert make_screen(controller, lyrics).run(PlayQueue([track])) == 1
        controller.stop.assert_called_once()
        lyrics.stop.assert_called_once()

    def test_exception_still_stops_decoder(self, controller, lyrics, track):
        controller.state.side_effect = RuntimeError("render failed")
        with pytest.raises(RuntimeError):
            make_screen(controller, lyrics).run(PlayQueue([track]))
        controller.stop.assert_called_once()
        lyrics.stop.assert_called_once()

    def test_signal_handler_requests_exit_and_is_restored(self, controller, track):
        before = signal.getsignal(signal.SIGTERM)
        screen = make_screen(controller)
        calls = {"n": 0}

        def state():
            calls["n"] += 1
            if calls["n"] == 2:
                # Handler installed by run() is the screen's own
                handler = signal.getsignal(signal.SIGTERM)
                handler(signal.SIGTERM, None)
            return PlaybackState(playing=True, position_ms=0, current_track=track)

        controller.state.side_effect = state
        assert screen.run(PlayQueue([track])) == 0
        assert screen.exit_requested
        controller.stop.assert_called_once()
        assert signal.getsignal(signal.SIGTERM) == before

    def test_cursor_restored(self, controller, track):
        controller.state.return_value = PlaybackState(playing=False, current_track=track)
        screen = make_screen(controller)
        screen.run(PlayQueue([track]))
        assert screen._out.getvalue().endswith("\033[?25h")


@pytest.fixture
def next_track():
    return Track(id="1235", title="Old Man", artist="Neil Young", album="Harvest", duration_ms=204000)


class TestQueue:

    def _record_plays(self, controller, results=None):
        played = []

        def play(track):
            played.append(track)
            return True if results is None else results.pop(0)

        controller.play.side_effect = play
        return played

    def test_track_end_starts_next_track(self, controller, lyrics, track, next_track):
        played = self._record_plays(controller)
        controller.state.return_value = PlaybackState(playing=False, current_track=track)
        art = MagicMock(spec=AlbumArt)
        art.lines.return_value = []
        screen = make_screen(controller, lyrics, album_art=art)

        assert screen.run(PlayQueue([track, next_track])) == 0

        assert played == [track, next_track]
        assert [c.args[0] for c in lyrics.request.call_args_list] == [track, next_track]
        assert [c.args[0] for c in art.load.call_args_list] == [track, next_track]
        assert "Next: Neil Young - Old Man" in screen._out.getvalue()
        controller.stop.assert_called_once()

    def test_unplayable_track_is_skipped(self, controller, track, next_track):
        played = self._record_plays(controller, results=[False, True])
        controller.state.return_value = PlaybackState(playing=False, current_track=next_track)

        assert make_screen(controller).run(PlayQueue([track, next_track])) == 0
        assert played == [track, next_track]

    def test_no_playable_track(self, controller, track, next_track):
        self._record_plays(controller, results=[False, False])
        assert make_screen(controller).run(PlayQueue([track, next_track])) == 1
        controller.stop.assert_called_once()

    def test_next_key_skips_while_playing(self, controller, track, next_track):
        played = self._record_plays(controller)
        screen = make_screen(controller)

        def state():
            if len(played) == 2:
                screen.request_exit()
            return PlaybackState(playing=True, current_track=played[-1])

        controller.state.side_effect = state
        screen.handle_key("n")
        assert screen.run(PlayQueue([track, next_track])) == 0
        assert played == [track, next_track]

    def test_previous_key_goes_back(self, controller, track, next_track):
        played = self._record_plays(controller)
        screen = make_screen(controller)

        def state():
            if len(played) == 2:
                screen.request_exit()
            return PlaybackState(playing=True, current_track=played[-1])

        controller.state.side_effect = state
        screen.handle_key("N")
        assert screen.run(PlayQueue([track, next_track], start_index=1)) == 0
        assert played == [next_track, track]

    def test_next_key_on_last_track_keeps_playing(self, controller, track):
        played = self._record_plays(controller)
        screen = make_screen(controller)
        calls = {"n": 0}

        def state():
            calls["n"] += 1
            if calls["n"] > 4:
                screen.request_exit()
            return PlaybackState(playing=True, current_track=track)

        controller.state.side_effect = state
        screen.handle_key("n")
        assert screen.run(PlayQueue([track])) == 0
        assert played == [track]

    def test_metadata_lookup_before_play(self, controller, track):
        full = Track(id=track.id, title=track.title, artist=track.artist, media_url="http://plex/part.flac")
        metadata = MagicMock(return_value=full)
        played = self._record_plays(controller)
        controller.state.return_value = PlaybackState(playing=False, current_track=full)

        assert make_screen(controller, metadata=metadata).run(PlayQueue([track])) == 0
        metadata.assert_called_once_with(track.id)
        assert played == [full]

    def test_missing_metadata_plays_listed_track(self, controller, track):
        metadata = MagicMock(return_value=None)
        played = self._record_plays(controller)
        controller.state.return_value = PlaybackState(playing=False, current_track=track)

        assert make_screen(controller, metadata=metadata).run(PlayQueue([track])) == 0
        assert played == [track]

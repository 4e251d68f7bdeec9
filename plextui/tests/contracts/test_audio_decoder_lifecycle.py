"""
Lifecycle tests for the AudioDecoder facade with real child processes.

Covers:
- at most one live Player/Decoder pair across repeated start()
- stop() idempotence, bounded even with a child that ignores SIGTERM
- zeroed levels after stop()
- Decoder restart without disturbing the Player
- pause/resume keeping the level history
- end-of-stream detection
"""

import signal
import threading
import time

import pytest

from plextui.decoder import AudioDecoder
from plextui.decoder.process_supervisor import SupervisorState

from plextui.tests.contracts._harness import EXPECTED_LEVEL, pid_alive, wait_for

STREAM_URL = "http://plex.local:32400/library/parts/99/file.flac?X-Plex-Token=secret"

requires_job_control = pytest.mark.skipif(
    not hasattr(signal, "SIGSTOP"), reason="SIGSTOP/SIGCONT not available"
)


def make_decoder(player_bin, decoder_bin, **kwargs):
    kwargs.setdefault("grace_period_sec", 0.5)
    kwargs.setdefault("backoff_schedule_ms", [20])
    return AudioDecoder(player_bin=player_bin, decoder_bin=decoder_bin, **kwargs)


class TestStartStop:

    @pytest.fixture
    def decoder(self, sleeping_player, streaming_decoder):
        dec = make_decoder(sleeping_player, streaming_decoder)
        yield dec
        dec.stop()

    def test_start_produces_levels(self, decoder):
        assert not decoder.is_active()
        assert decoder.start(STREAM_URL, "secret")
        assert decoder.is_active()
        assert wait_for(lambda: decoder.current_level() > 0.0)
        assert decoder.current_level() == pytest.approx(EXPECTED_LEVEL)
        assert decoder.recent_samples(10)[-1] == pytest.approx(EXPECTED_LEVEL)

    def test_start_rejects_empty_arguments(self, decoder):
        assert not decoder.start("", "secret")
        assert not decoder.start(STREAM_URL, "")
        assert not decoder.is_active()
        assert decoder.supervisor.get_state() == SupervisorState.IDLE

    def test_invalid_start_leaves_running_session_alone(self, decoder):
        assert decoder.start(STREAM_URL, "secret")
        player_pid = decoder.supervisor.player_pid
        assert not decoder.start("", "secret")
        assert decoder.is_active()
        assert decoder.supervisor.player_pid == player_pid

    def test_double_start_leaves_one_live_pair(self, decoder):
        assert decoder.start(STREAM_URL, "secret")
        first = (decoder.supervisor.player_pid, decoder.supervisor.decoder_pid)

        assert decoder.start(STREAM_URL, "secret")
        second = (decoder.supervisor.player_pid, decoder.supervisor.decoder_pid)

        assert set(first).isdisjoint(second)
        for pid in first:
            assert not pid_alive(pid), "previous session's children must be gone"
        for pid in second:
            assert pid_alive(pid)

    def test_stop_is_idempotent(self, decoder, thread_leak_guard):
        decoder.stop()
        assert decoder.start(STREAM_URL, "secret")
        decoder.stop()
        decoder.stop()
        assert not decoder.is_active()
        assert decoder.supervisor.get_state() == SupervisorState.IDLE

    def test_levels_are_zero_after_stop(self, decoder):
        assert decoder.start(STREAM_URL, "secret")
        assert wait_for(lambda: decoder.current_level() > 0.0)

        decoder.stop()

        assert decoder.current_level() == 0.0
        samples = decoder.recent_samples(100)
        assert len(samples) == 100
        assert all(level == 0.0 for level in samples)

    def test_stop_reaps_children(self, decoder):
        assert decoder.start(STREAM_URL, "secret")
        pids = (decoder.supervisor.player_pid, decoder.supervisor.decoder_pid)
        decoder.stop()
        for pid in pids:
            assert not pid_alive(pid)

    def test_context_manager_stops(self, sleeping_player, streaming_decoder):
        with make_decoder(sleeping_player, streaming_decoder) as dec:
            assert dec.start(STREAM_URL, "secret")
            pid = dec.supervisor.player_pid
        assert not dec.is_active()
        assert not pid_alive(pid)

    def test_pause_without_session(self, decoder):
        assert not decoder.pause()
        assert not decoder.resume()

    def test_missing_player_binary(self, tmp_path, streaming_decoder):
        dec = make_decoder(str(tmp_path / "missing"), streaming_decoder)
        assert not dec.start(STREAM_URL, "secret")
        assert not dec.is_active()


class TestBoundedStop:

    def test_stop_with_sigterm_ignoring_player(self, stubborn_player, streaming_decoder, thread_leak_guard):
        dec = make_decoder(stubborn_player, streaming_decoder, grace_period_sec=0.3)
        assert dec.start(STREAM_URL, "secret")
        player_pid = dec.supervisor.player_pid
        time.sleep(0.5)  # player has installed its SIGTERM handler

        start = time.monotonic()
        dec.stop()
        elapsed = time.monotonic() - start

        # grace window for each child plus SIGKILL and a bounded worker join
        assert elapsed < 0.3 * 2 + 1.5
        assert not pid_alive(player_pid)
        assert not dec.is_active()


class TestDecoderRestart:

    def test_decoder_restart_leaves_player_alone(self, sleeping_player, crashing_decoder):
        dec = make_decoder(sleeping_player, crashing_decoder, max_restarts=3)
        try:
            assert dec.start(STREAM_URL, "secret")
            player_pid = dec.supervisor.player_pid

            assert wait_for(lambda: dec.supervisor.decoder_restarts >= 2)

            assert dec.supervisor.player_pid == player_pid
            assert dec.supervisor.player_alive()
            assert dec.is_active()
            assert dec.current_level() == pytest.approx(EXPECTED_LEVEL)
        finally:
            dec.stop()

    def test_restart_cap_is_respected(self, sleeping_player, crashing_decoder):
        dec = make_decoder(sleeping_player, crashing_decoder, max_restarts=2)
        try:
            assert dec.start(STREAM_URL, "secret")
            assert wait_for(lambda: dec.supervisor.decoder_restarts >= 2)
            time.sleep(0.5)
            assert dec.supervisor.decoder_restarts == 2
            assert dec.supervisor.player_alive(), "analysis ending must not stop playback"
        finally:
            dec.stop()

    def test_end_of_stream_is_detected(self, finished_player, eos_decoder):
        dec = make_decoder(finished_player, eos_decoder)
        try:
            assert dec.start(STREAM_URL, "secret")
            assert wait_for(dec.player_finished)
            time.sleep(0.3)
            assert dec.supervisor.decoder_restarts == 0
        finally:
            dec.stop()


@requires_job_control
class TestPauseResume:

    @pytest.fixture
    def decoder(self, sleeping_player, streaming_decoder):
        dec = make_decoder(sleeping_player, streaming_decoder, grace_period_sec=1.0)
        yield dec
        dec.stop()

    def test_pause_freezes_levels_and_resume_continues(self, decoder):
        assert decoder.start(STREAM_URL, "secret")
        assert wait_for(lambda: decoder.level_buffer.stats().total_pushed >= 5)

        assert decoder.pause()
        assert decoder.is_paused()
        time.sleep(0.3)  # drain whatever was already in the pipe
        frozen = decoder.level_buffer.stats().total_pushed
        history = decoder.recent_samples(50)
        time.sleep(0.3)
        assert decoder.level_buffer.stats().total_pushed == frozen
        assert decoder.recent_samples(50) == history
        assert any(level > 0.0 for level in history)

        assert decoder.resume()
        assert not decoder.is_paused()
        assert wait_for(lambda: decoder.level_buffer.stats().total_pushed > frozen)

    def test_stop_while_paused_is_prompt(self, decoder):
        assert decoder.start(STREAM_URL, "secret")
        assert decoder.pause()

        start = time.monotonic()
        decoder.stop()

        assert time.monotonic() - start < 1.5
        assert not decoder.is_active()

    def test_pause_then_resume_stays_active_and_keeps_history(self, decoder):
        assert decoder.start(STREAM_URL, "secret")
        assert wait_for(lambda: decoder.level_buffer.stats().total_pushed >= 3)
        pushed = decoder.level_buffer.stats().total_pushed

        assert decoder.pause()
        assert decoder.is_active()
        assert decoder.resume()
        assert decoder.is_active()

        assert decoder.level_buffer.stats().total_pushed >= pushed
        assert decoder.recent_samples(pushed)[-1] == pytest.approx(EXPECTED_LEVEL)


class TestDetachedWorker:

    def test_detached_worker_cannot_take_over_next_session(self, sleeping_player, crashing_decoder, streaming_decoder):
        dec = make_decoder(sleeping_player, crashing_decoder, join_timeout_sec=0.2)
        sup = dec.supervisor
        real_spawn_decoder = sup._spawn_decoder
        in_spawn, release = threading.Event(), threading.Event()
        stale = []

        def held_spawn(url, token):
            proc, read_fd = real_spawn_decoder(url, token)
            if threading.current_thread().name == "DecoderPipeReader" and not in_spawn.is_set():
                # First restart of the first session hangs until released
                stale.append(proc)
                in_spawn.set()
                release.wait(5.0)
            return proc, read_fd

        sup._spawn_decoder = held_spawn
        try:
            assert dec.start(STREAM_URL, "secret")
            assert in_spawn.wait(5.0)
            start = time.monotonic()
            dec.stop()
            # Both worker joins are bounded; the held worker is left running
            assert time.monotonic() - start < 1.5
            assert any(t.name == "DecoderPipeReader" and t.is_alive() for t in threading.enumerate())

            sup._decoder_bin = streaming_decoder
            assert dec.start(STREAM_URL, "secret")
            decoder_pid = sup.decoder_pid

            release.set()
            assert wait_for(lambda: stale[0].poll() is not None)
            assert sup.decoder_pid == decoder_pid
            assert wait_for(lambda: dec.current_level() > 0.0)
        finally:
            release.set()
            dec.stop()

        assert not pid_alive(decoder_pid)
        assert not pid_alive(stale[0].pid)

"""
Shared pytest fixtures for contract tests.

Lifecycle tests run real child processes: small Python scripts written to
tmp_path with a shebang pointing at the running interpreter. They accept and
ignore the ffplay/ffmpeg arguments the supervisor passes.
"""
import stat
import sys
import textwrap
import threading

import pytest

from plextui.library.models import Track


@pytest.fixture
def make_script(tmp_path):
    """Factory writing an executable Python script and returning its path."""
    def _make(name, body):
        path = tmp_path / name
        path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)
    return _make


@pytest.fixture
def sleeping_player(make_script):
    """Player that plays 'forever' and exits on SIGTERM."""
    return make_script("fake_player", """
        import time
        time.sleep(60)
    """)


@pytest.fixture
def stubborn_player(make_script):
    """Player that ignores SIGTERM, only SIGKILL ends it."""
    return make_script("stubborn_player", """
        import signal
        import time
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        print("ready", flush=True)
        while True:
            time.sleep(0.05)
    """)


@pytest.fixture
def finished_player(make_script):
    """Player that exits immediately with status 0."""
    return make_script("finished_player", """
        import sys
        sys.exit(0)
    """)


@pytest.fixture
def streaming_decoder(make_script):
    """Decoder that writes level-0.5 PCM windows until it is terminated."""
    return make_script("fake_decoder", """
        import sys
        import time
        window = (8192).to_bytes(2, "little", signed=True) * 4410
        out = sys.stdout.buffer
        try:
            while True:
                out.write(window)
                out.flush()
                time.sleep(0.02)
        except BrokenPipeError:
            pass
    """)


@pytest.fixture
def crashing_decoder(make_script):
    """Decoder that writes a few windows then exits with status 1."""
    return make_script("crashing_decoder", """
        import sys
        window = (8192).to_bytes(2, "little", signed=True) * 4410
        out = sys.stdout.buffer
        for _ in range(3):
            out.write(window)
        out.flush()
        sys.exit(1)
    """)


@pytest.fixture
def eos_decoder(make_script):
    """Decoder that writes a few windows then exits cleanly (end of stream)."""
    return make_script("eos_decoder", """
        import sys
        import time
        time.sleep(0.5)  # outlive the finished player
        window = (8192).to_bytes(2, "little", signed=True) * 4410
        out = sys.stdout.buffer
        for _ in range(2):
            out.write(window)
        out.flush()
        sys.exit(0)
    """)


@pytest.fixture
def track():
    return Track(
        id="1234",
        title="Harvest Moon",
        artist="Neil Young",
        album="Harvest Moon",
        duration_ms=300000,
        media_url="http://plex.local:32400/library/parts/99/file.flac?X-Plex-Token=secret",
    )


@pytest.fixture(autouse=False)  # Set to True to enable automatic thread leak detection
def thread_leak_guard():
    """
    Optional fixture to detect thread leaks between tests.

    This ensures shutdown contracts are actually respected across tests.
    Enable by setting autouse=True or request it explicitly in tests.
    """
    before = set(t.ident for t in threading.enumerate())
    yield
    after = set(t.ident for t in threading.enumerate() if t.is_alive())
    leaked = after - before
    if leaked:
        leaked_threads = [t for t in threading.enumerate() if t.ident in leaked]
        thread_info = "\n".join(f"  - {t.name} (daemon={t.daemon})" for t in leaked_threads)
        assert False, f"Thread leak detected, shutdown incomplete.\nLeaked threads:\n{thread_info}"

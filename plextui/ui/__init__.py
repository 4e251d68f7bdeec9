"""
Terminal front end: playback control, play queue, album art, waveform
rendering and the now-playing screen.
"""

from plextui.ui.album_art import AlbumArt
from plextui.ui.now_playing import NowPlayingScreen
from plextui.ui.play_queue import PlayQueue
from plextui.ui.playback import PlaybackController
from plextui.ui.waveform import render_waveform

__all__ = ["AlbumArt", "NowPlayingScreen", "PlayQueue", "PlaybackController", "render_waveform"]

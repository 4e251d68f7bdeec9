"""
plextui - terminal music player for Plex servers.

Streams tracks through an external player while a parallel decoder feeds
a live level history for the waveform display.
"""

__version__ = "0.1.0"

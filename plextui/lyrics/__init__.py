"""
Lyrics lookup and LRC parsing.
"""

from plextui.lyrics.fetcher import LyricsFetcher, LyricsResult
from plextui.lyrics.lrc import line_at, parse_lrc

__all__ = ["LyricsFetcher", "LyricsResult", "line_at", "parse_lrc"]

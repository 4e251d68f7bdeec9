"""
Command lines for the external Player and Decoder programs.

Both programs receive the auth token as an HTTP header, never as a URL
parameter; some decoders mishandle the token when it is left in the query
string.
"""

from __future__ import annotations

from typing import List
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

TOKEN_PARAM = "X-Plex-Token"

DEFAULT_PLAYER_BIN = "ffplay"
DEFAULT_DECODER_BIN = "ffmpeg"


def auth_header(token: str) -> str:
    """Header block in the format ffmpeg/ffplay expect for -headers."""
    return f"{TOKEN_PARAM}: {token}\r\n"


def strip_token(url: str) -> str:
    """
    Remove any X-Plex-Token query parameter from a stream URL.

    Other query parameters are preserved in their original order.

    Args:
        url: Stream URL, possibly carrying the token

    Returns:
        URL without the token parameter (and without a dangling '?')
    """
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != TOKEN_PARAM]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def build_player_cmd(url: str, token: str, player_bin: str = DEFAULT_PLAYER_BIN) -> List[str]:
    """Player: plays the stream on the audio device and exits when done."""
    return [
        player_bin,
        "-headers", auth_header(token),
        "-nodisp",
        "-autoexit",
        "-loglevel", "quiet",
        url,
    ]


def build_decoder_cmd(url: str, token: str, decoder_bin: str = DEFAULT_DECODER_BIN) -> List[str]:
    """Decoder: raw s16le mono 44.1 kHz on stdout, for level analysis only."""
    return [
        decoder_bin,
        "-headers", auth_header(token),
        "-i", url,
        "-f", "s16le",
        "-acodec", "pcm_s16le",
        "-ar", "44100",
        "-ac", "1",
        "-loglevel", "error",
        "pipe:1",
    ]

"""
LRC lyrics parsing.

LRCLIB returns synced lyrics as LRC text: one line per lyric, each prefixed
by one or more [mm:ss.xx] timestamps. Header tags such as [ar:Artist] carry
metadata and are skipped.
"""

import re
from typing import List

from plextui.library.models import LyricLine

_TIMESTAMP_RE = re.compile(r"\[(\d+):(\d+)(?:[.:](\d+))?\]")
_METADATA_RE = re.compile(r"^\[[A-Za-z]+:")


def _to_ms(minutes: str, seconds: str, fraction: str) -> int:
    ms = (int(minutes) * 60 + int(seconds)) * 1000
    if fraction:
        # .x is tenths, .xx hundredths, .xxx milliseconds
        ms += int(fraction[:3].ljust(3, "0"))
    return ms


def parse_lrc(text: str) -> List[LyricLine]:
    """
    Parse LRC text into lyric lines sorted by timestamp.

    A line with several timestamps yields one LyricLine per timestamp.
    Escaped newlines ("\\n" as two characters) are treated as line breaks.
    Lines without text after their timestamps are dropped.

    Returns:
        Empty list if the text carries no timestamps
    """
    if not text or "[" not in text or ":" not in text:
        return []

    lines: List[LyricLine] = []
    for raw in text.replace("\\n", "\n").splitlines():
        raw = raw.strip()
        if not raw or _METADATA_RE.match(raw):
            continue

        pos = 0
        stamps = []
        while True:
            match = _TIMESTAMP_RE.match(raw, pos)
            if match is None:
                break
            stamps.append(_to_ms(*(g or "" for g in match.groups())))
            pos = match.end()

        lyric = raw[pos:].strip()
        if not stamps or not lyric:
            continue
        lines.extend(LyricLine(timestamp_ms=ms, text=lyric) for ms in stamps)

    lines.sort(key=lambda line: line.timestamp_ms)
    return lines


def line_at(lines: List[LyricLine], position_ms: int) -> int:
    """
    Index of the lyric line showing at position_ms, or -1 before the first line.
    """
    current = -1
    for index, line in enumerate(lines):
        if line.timestamp_ms > position_ms:
            break
        current = index
    return current

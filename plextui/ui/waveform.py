"""
Text rendering of the level history.

Levels in [0, 1] are drawn with Unicode block elements at eighth-cell
vertical resolution.
"""

from typing import List, Sequence

import numpy as np

BLOCKS = "▁▂▃▄▅▆▇█"
FULL = "█"
EMPTY = " "
UPPER_HALF = "▀"

STYLES = ("bars", "mirrored", "line")
DEFAULT_STYLE = "mirrored"


def resample(levels: Sequence[float], width: int) -> np.ndarray:
    """Linear interpolation of levels onto width points, clamped to [0, 1]."""
    if width <= 0:
        return np.zeros(0, dtype=np.float32)
    if len(levels) == 0:
        return np.zeros(width, dtype=np.float32)

    source = np.clip(np.asarray(levels, dtype=np.float32), 0.0, 1.0)
    if len(source) == 1:
        return np.full(width, source[0], dtype=np.float32)
    positions = np.linspace(0.0, len(source) - 1, num=width)
    return np.interp(positions, np.arange(len(source)), source).astype(np.float32)


def _bar_rows(values: np.ndarray, height: int) -> List[str]:
    eighths = np.rint(values * height * 8).astype(int)
    rows = []
    for row in range(height):
        floor = (height - 1 - row) * 8
        cells = []
        for filled in eighths:
            fill = filled - floor
            if fill >= 8:
                cells.append(FULL)
            elif fill <= 0:
                cells.append(EMPTY)
            else:
                cells.append(BLOCKS[fill - 1])
        rows.append("".join(cells))
    return rows


def _flip(cell: str) -> str:
    if cell in (FULL, EMPTY):
        return cell
    return UPPER_HALF if BLOCKS.index(cell) >= 3 else EMPTY


def _mirrored_rows(values: np.ndarray, height: int) -> List[str]:
    top_height = (height + 1) // 2
    top = _bar_rows(values, top_height)
    bottom = ["".join(_flip(c) for c in row) for row in reversed(top)]
    return top + bottom[: height - top_height]


def _line_rows(values: np.ndarray, height: int) -> List[str]:
    steps = np.rint(values * (height * 8 - 1)).astype(int)
    grid = [[EMPTY] * len(values) for _ in range(height)]
    for col, step in enumerate(steps):
        row = height - 1 - step // 8
        grid[row][col] = BLOCKS[step % 8]
    return ["".join(row) for row in grid]


def render_waveform(
    levels: Sequence[float],
    width: int,
    height: int,
    style: str = DEFAULT_STYLE,
) -> List[str]:
    """
    Render levels as height rows of exactly width characters.

    Args:
        levels: Oldest-first level history
        width: Columns
        height: Rows
        style: "bars", "mirrored" or "line"

    Raises:
        ValueError: If style is unknown
    """
    if style not in STYLES:
        raise ValueError(f"Unknown waveform style: {style} (must be one of: {', '.join(STYLES)})")
    if width <= 0 or height <= 0:
        return []

    values = resample(levels, width)
    if style == "bars":
        return _bar_rows(values, height)
    if style == "line":
        return _line_rows(values, height)
    return _mirrored_rows(values, height)

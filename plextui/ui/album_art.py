"""
Album art for the now-playing screen.

Artwork is downloaded from the Plex server, scaled by the decoder program
(ffmpeg) to a small grid of RGB pixels and drawn with upper-half blocks: each
character cell shows two pixels, the top one as foreground colour and the
bottom one as background colour. Tracks without artwork get a block-letter
PLEX logo instead.
"""

import logging
import subprocess
from typing import Callable, List, Optional, Tuple

import numpy as np

from plextui.library.models import Track

logger = logging.getLogger(__name__)

DEFAULT_ART_WIDTH = 24
DECODE_TIMEOUT_SEC = 5.0

UPPER_HALF = "▀"
FULL_BLOCK = "█"
RESET = "\033[0m"

WHITE = (255, 255, 255)
PLEX_ORANGE = (255, 140, 0)

# 5x7 block letters, one string per row
_LOGO_LETTERS = {
    "P": ("11111", "10001", "10001", "11111", "10000", "10000", "10000"),
    "L": ("10000", "10000", "10000", "10000", "10000", "10000", "11111"),
    "E": ("11111", "10000", "10000", "11110", "10000", "10000", "11111"),
    "X": ("10001", "01010", "00100", "00100", "01010", "10001", "10001"),
}
LOGO_WIDTH = 4 * 5 + 3
LOGO_HEIGHT = 7

RGB = Tuple[int, int, int]


def _fg(rgb: RGB) -> str:
    return f"\033[38;2;{rgb[0]};{rgb[1]};{rgb[2]}m"


def _bg(rgb: RGB) -> str:
    return f"\033[48;2;{rgb[0]};{rgb[1]};{rgb[2]}m"


def build_scale_cmd(width: int, height: int, decoder_bin: str = "ffmpeg") -> List[str]:
    """
    Command that reads an image on stdin and writes width*height rgb24 pixels.

    The image keeps its aspect ratio and is padded with black.
    """
    vf = (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease:flags=area,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:black"
    )
    return [
        decoder_bin,
        "-hide_banner",
        "-loglevel", "quiet",
        "-i", "pipe:0",
        "-vf", vf,
        "-frames:v", "1",
        "-f", "rawvideo",
        "-pix_fmt", "rgb24",
        "pipe:1",
    ]


def decode_image(
    data: bytes,
    width: int,
    height: int,
    decoder_bin: str = "ffmpeg",
    timeout: float = DECODE_TIMEOUT_SEC,
) -> Optional[np.ndarray]:
    """
    Scale encoded image bytes (JPEG, PNG, ...) to a pixel grid.

    Returns:
        uint8 array of shape (height, width, 3), or None if decoding failed
    """
    if not data or width <= 0 or height <= 0:
        return None
    try:
        proc = subprocess.run(
            build_scale_cmd(width, height, decoder_bin),
            input=data,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning(f"[ART] Image decode failed: {e}")
        return None

    expected = width * height * 3
    if proc.returncode != 0 or len(proc.stdout) < expected:
        logger.debug(f"[ART] Decoder returned {proc.returncode} with {len(proc.stdout)}/{expected} bytes")
        return None
    return np.frombuffer(proc.stdout[:expected], dtype=np.uint8).reshape(height, width, 3)


def render_pixels(pixels: np.ndarray) -> List[str]:
    """Two pixel rows per text row; an odd last pixel row is dropped."""
    rows: List[str] = []
    for y in range(0, pixels.shape[0] - 1, 2):
        cells = [
            _fg((int(top[0]), int(top[1]), int(top[2])))
            + _bg((int(bottom[0]), int(bottom[1]), int(bottom[2])))
            + UPPER_HALF
            for top, bottom in zip(pixels[y], pixels[y + 1])
        ]
        rows.append("".join(cells) + RESET)
    return rows


def _logo_color(letter: str, row: int, col: int) -> RGB:
    # The left stroke of the X (the chevron) is orange
    if letter == "X" and (col == 0 or (col == 1 and row in (1, 4)) or (col == 2 and row in (2, 3))):
        return PLEX_ORANGE
    return WHITE


def render_placeholder(width: int, rows: int) -> List[str]:
    """Block-letter PLEX logo centred in width x rows cells."""
    if width <= 0 or rows <= 0:
        return []
    grid = [[" "] * width for _ in range(rows)]
    x0 = max(0, (width - LOGO_WIDTH) // 2)
    y0 = max(0, (rows - LOGO_HEIGHT) // 2)

    for index, letter in enumerate("PLEX"):
        for row, bits in enumerate(_LOGO_LETTERS[letter]):
            y = y0 + row
            if y >= rows:
                break
            for col, bit in enumerate(bits):
                x = x0 + index * 6 + col
                if bit == "1" and x < width:
                    grid[y][x] = _fg(_logo_color(letter, row, col)) + FULL_BLOCK + RESET
    return ["".join(cells) for cells in grid]


class AlbumArt:
    """
    Artwork of the current track, fetched and scaled once per track.

    Attributes:
        width: Width in character cells
        rows: Height in character cells (two pixel rows each)
    """

    def __init__(
        self,
        fetch: Callable[[str], Optional[bytes]],
        width: int = DEFAULT_ART_WIDTH,
        rows: Optional[int] = None,
        decoder_bin: str = "ffmpeg",
    ) -> None:
        """
        Args:
            fetch: Downloads artwork bytes for a URL (PlexClient.fetch_art)
            width: Width in cells
            rows: Height in cells (default: width // 2, square on most fonts)
            decoder_bin: Program used to scale the image
        """
        self._fetch = fetch
        self.width = width
        self.rows = rows if rows is not None else max(1, width // 2)
        self._decoder_bin = decoder_bin
        self._track_id: Optional[str] = None
        self._lines: List[str] = []

    @property
    def has_art(self) -> bool:
        return bool(self._lines)

    def load(self, track: Track) -> bool:
        """
        Fetch and scale the artwork of track; a repeat call is a no-op.

        Returns:
            True if artwork is available for track
        """
        if track.id == self._track_id:
            return self.has_art
        self._track_id = track.id
        self._lines = []

        url = track.get_art_url()
        if not url:
            return False
        data = self._fetch(url)
        if not data:
            return False
        pixels = decode_image(data, self.width, self.rows * 2, self._decoder_bin)
        if pixels is None:
            return False
        self._lines = render_pixels(pixels)
        logger.debug(f"[ART] Loaded artwork for {track.title!r}")
        return True

    def lines(self) -> List[str]:
        """Rendered artwork, or the logo placeholder when there is none."""
        if self._lines:
            return list(self._lines)
        return render_placeholder(self.width, self.rows)

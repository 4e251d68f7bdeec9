"""
Loudness extraction for the waveform analysis path.

The decoder process emits raw little-endian 16-bit mono PCM at 44.1 kHz.
This module reduces a window of those samples to a single normalized
loudness value in [0.0, 1.0] suitable for visualization.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np

# Analysis PCM format (matches the decoder command line)
SAMPLE_RATE = 44100
CHANNELS = 1
BYTES_PER_SAMPLE = 2

# 4410 samples = 100ms of mono audio at 44.1 kHz -> ~10 level updates per second
SAMPLES_PER_LEVEL = 4410

# RMS of music rarely gets near full scale; scale up so the waveform is visible
LEVEL_GAIN = 2.0

_FULL_SCALE = 32768.0


def pcm_bytes_to_samples(data: bytes) -> np.ndarray:
    """
    Convert raw s16le bytes to an int16 sample array.

    Args:
        data: Raw PCM bytes. Length must be a multiple of 2.

    Returns:
        numpy int16 array (little-endian) of len(data) // 2 samples

    Raises:
        ValueError: If data has an odd number of bytes
    """
    if len(data) % BYTES_PER_SAMPLE:
        raise ValueError(f"PCM chunk must be a whole number of samples, got {len(data)} bytes")
    return np.frombuffer(data, dtype="<i2")


def compute_level(samples: Union[np.ndarray, Sequence[int]]) -> float:
    """
    Reduce a window of int16 samples to a loudness value.

    level = min(1.0, sqrt(mean((s / 32768)^2)) * LEVEL_GAIN)

    An empty window yields 0.0.
    """
    arr = np.asarray(samples, dtype=np.float64)
    if arr.size == 0:
        return 0.0
    normalized = arr / _FULL_SCALE
    rms = float(np.sqrt(np.mean(normalized * normalized)))
    return max(0.0, min(1.0, rms * LEVEL_GAIN))

"""
Audio analysis primitives.

This package provides the pieces of the waveform analysis path that do no I/O:
- compute_level: reduces a PCM window to a normalized loudness value
- LevelRingBuffer: thread-safe rolling history of loudness values
"""

from plextui.audio.levels import SAMPLES_PER_LEVEL, compute_level, pcm_bytes_to_samples
from plextui.audio.level_buffer import LevelRingBuffer, LevelRingBufferStats

__all__ = [
    "SAMPLES_PER_LEVEL",
    "compute_level",
    "pcm_bytes_to_samples",
    "LevelRingBuffer",
    "LevelRingBufferStats",
]

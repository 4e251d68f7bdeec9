"""
Playback/analysis subprocess pipeline.

This package provides:
- AudioDecoder: facade used by the UI (start/stop/pause/resume, levels)
- ProcessSupervisor: owns the Player and Decoder child processes
- PipeReaderThread: drains Decoder PCM and restarts the Decoder on exit
"""

from plextui.decoder.audio_decoder import AudioDecoder
from plextui.decoder.pipe_reader import PipeReaderThread, RestartLimiter
from plextui.decoder.process_supervisor import ProcessSupervisor, SupervisorState, terminate_process

__all__ = [
    "AudioDecoder",
    "PipeReaderThread",
    "RestartLimiter",
    "ProcessSupervisor",
    "SupervisorState",
    "terminate_process",
]

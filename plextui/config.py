"""
Configuration management for plextui.

Reads configuration from a .env file and environment variables with sensible
defaults. Command-line flags override the server URL and token.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Default .env file location
DEFAULT_ENV_FILE = Path.home() / ".config" / "plex-tui" / "plextui.env"

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")


def _load_env_file(env_file: Optional[str] = None) -> None:
    """Load environment variables from the .env file if it exists."""
    env_path = Path(env_file or os.getenv("PLEXTUI_ENV_FILE", str(DEFAULT_ENV_FILE))).expanduser()
    if env_path.exists():
        load_dotenv(env_path, override=False)  # Don't override existing env vars
        logger.debug(f"Loaded environment file {env_path}")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _parse_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}: {raw} (must be an integer)")


def _parse_backoff_schedule(backoff_str: str) -> List[int]:
    """
    Parse decoder restart backoff schedule from comma-separated string.

    Args:
        backoff_str: Comma-separated list of milliseconds (e.g., "100,500,1000")

    Returns:
        List of backoff delays in milliseconds

    Raises:
        ValueError: If parsing fails or values are invalid
    """
    if not backoff_str:
        raise ValueError("Backoff schedule cannot be empty")

    try:
        delays = [int(x.strip()) for x in backoff_str.split(",")]
    except ValueError:
        raise ValueError(f"Invalid backoff schedule format: {backoff_str} (must be comma-separated integers)")
    if any(d < 0 for d in delays):
        raise ValueError("Backoff delays must not be negative")
    return delays


@dataclass
class PlexConfig:
    """plextui configuration loaded from .env file and environment variables."""

    # Server
    server_url: str = ""
    token: str = ""
    request_timeout_sec: float = 5.0

    # Display
    refresh_rate_ms: int = 250
    max_waveform_points: int = 100

    # Features
    enable_waveform: bool = True
    enable_lyrics: bool = True
    enable_album_art: bool = True
    album_art_width: int = 24

    # External programs
    player_bin: str = "ffplay"
    decoder_bin: str = "ffmpeg"

    # Decoder restart policy
    decoder_backoff_ms: List[int] = field(
        default_factory=lambda: [100, 500, 1000, 2000, 5000]
    )
    decoder_max_restarts: int = 20

    # Logging
    log_level: str = "WARNING"
    log_file: Optional[str] = None

    @classmethod
    def load_config(cls, env_file: Optional[str] = None) -> "PlexConfig":
        """
        Load configuration from environment variables.

        Args:
            env_file: Optional .env path (default: PLEXTUI_ENV_FILE or
                      ~/.config/plex-tui/plextui.env)

        Returns:
            PlexConfig instance with loaded values

        Raises:
            ValueError: If configuration is invalid
        """
        _load_env_file(env_file)

        timeout_str = os.getenv("PLEXTUI_REQUEST_TIMEOUT_SEC", "5")
        try:
            request_timeout_sec = float(timeout_str)
        except ValueError:
            raise ValueError(f"Invalid PLEXTUI_REQUEST_TIMEOUT_SEC: {timeout_str} (must be a number)")

        backoff_str = os.getenv("PLEXTUI_DECODER_BACKOFF_MS", "100,500,1000,2000,5000")
        try:
            decoder_backoff_ms = _parse_backoff_schedule(backoff_str)
        except ValueError as e:
            raise ValueError(f"Invalid PLEXTUI_DECODER_BACKOFF_MS: {e}")

        log_file = os.getenv("PLEXTUI_LOG_FILE") or None

        config = cls(
            server_url=os.getenv("PLEXTUI_SERVER_URL", "").rstrip("/"),
            token=os.getenv("PLEXTUI_TOKEN", ""),
            request_timeout_sec=request_timeout_sec,
            refresh_rate_ms=_parse_int("PLEXTUI_REFRESH_RATE_MS", "250"),
            max_waveform_points=_parse_int("PLEXTUI_MAX_WAVEFORM_POINTS", "100"),
            enable_waveform=_parse_bool(os.getenv("PLEXTUI_ENABLE_WAVEFORM", "true")),
            enable_lyrics=_parse_bool(os.getenv("PLEXTUI_ENABLE_LYRICS", "true")),
            enable_album_art=_parse_bool(os.getenv("PLEXTUI_ENABLE_ALBUM_ART", "true")),
            album_art_width=_parse_int("PLEXTUI_ALBUM_ART_WIDTH", "24"),
            player_bin=os.getenv("PLEXTUI_PLAYER_BIN", "ffplay"),
            decoder_bin=os.getenv("PLEXTUI_DECODER_BIN", "ffmpeg"),
            decoder_backoff_ms=decoder_backoff_ms,
            decoder_max_restarts=_parse_int("PLEXTUI_DECODER_MAX_RESTARTS", "20"),
            log_level=os.getenv("PLEXTUI_LOG_LEVEL", "WARNING"),
            log_file=log_file,
        )

        config.validate()
        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.server_url and not self.server_url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid server URL: {self.server_url} (must start with http:// or https://)")

        if self.request_timeout_sec <= 0:
            raise ValueError(f"Invalid request timeout: {self.request_timeout_sec} (must be > 0)")

        if self.refresh_rate_ms <= 0:
            raise ValueError(f"Invalid refresh rate: {self.refresh_rate_ms} (must be > 0)")

        if self.max_waveform_points <= 0:
            raise ValueError(f"Invalid waveform points: {self.max_waveform_points} (must be > 0)")

        if self.album_art_width <= 0:
            raise ValueError(f"Invalid album art width: {self.album_art_width} (must be > 0)")

        if not self.decoder_backoff_ms:
            raise ValueError("Decoder backoff schedule cannot be empty")

        if self.decoder_max_restarts < 0:
            raise ValueError(f"Invalid decoder max restarts: {self.decoder_max_restarts} (must be >= 0)")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_log_levels:
            raise ValueError(
                f"Invalid log level: {self.log_level} "
                f"(must be one of: {', '.join(valid_log_levels)})"
            )

    def require_server(self) -> None:
        """
        Raises:
            ValueError: If the server URL or token is missing
        """
        if not self.server_url or not self.token:
            raise ValueError(
                "Plex server URL and token are required "
                "(set PLEXTUI_SERVER_URL / PLEXTUI_TOKEN or pass --server / --token)"
            )


def load_config(env_file: Optional[str] = None) -> PlexConfig:
    """
    Load and validate configuration from environment variables.

    Raises:
        ValueError: If configuration is invalid
    """
    try:
        return PlexConfig.load_config(env_file)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        raise

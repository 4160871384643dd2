"""
Runtime Configuration Module

Manages export settings that can be changed at runtime.
Loads default values from config.py and allows per-export overrides.
"""
from dataclasses import dataclass, asdict
from typing import Optional

# Import defaults from config.py
from config import (
    EXPORT_SAMPLE_RATE,
    EXPORT_CHANNELS,
    MP3_BITRATE_KBPS,
    MP3_BLOCK_SIZE,
    DEFAULT_SILENCE_SECONDS,
    INTER_CUE_PAUSE_SECONDS,
    PLAYBACK_TIMEOUT_MARGIN_SECONDS,
    VIDEO_WIDTH,
    VIDEO_HEIGHT,
    VIDEO_FPS,
    VIDEO_CONTAINER,
    VIDEO_BITRATE,
    CAPTURE_SAMPLE_RATE,
    CAPTURE_CHANNELS,
)
from models.assets import FrameConfig


@dataclass
class ExportConfig:
    """
    Export configuration shared by the audio and video export paths.

    Each export call takes an explicit instance; ``get_config()`` only
    supplies the application-wide default when the caller passes none.
    """
    # Audio export
    sample_rate: int = EXPORT_SAMPLE_RATE
    channels: int = EXPORT_CHANNELS
    mp3_bitrate_kbps: int = MP3_BITRATE_KBPS
    mp3_block_size: int = MP3_BLOCK_SIZE

    # Cue timing
    default_silence_seconds: float = DEFAULT_SILENCE_SECONDS
    inter_cue_pause_seconds: float = INTER_CUE_PAUSE_SECONDS
    playback_timeout_margin_seconds: float = PLAYBACK_TIMEOUT_MARGIN_SECONDS

    # Video export
    video_width: int = VIDEO_WIDTH
    video_height: int = VIDEO_HEIGHT
    video_fps: int = VIDEO_FPS
    video_container: str = VIDEO_CONTAINER
    video_bitrate: int = VIDEO_BITRATE
    capture_sample_rate: int = CAPTURE_SAMPLE_RATE
    capture_channels: int = CAPTURE_CHANNELS

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.channels not in (1, 2):
            raise ValueError(f"channels must be 1 or 2, got {self.channels}")
        if self.mp3_block_size <= 0 or self.mp3_block_size % 576:
            raise ValueError("mp3_block_size must be a positive multiple of 576")
        if self.video_container not in ("webm", "mp4"):
            raise ValueError(f"Unsupported video container: {self.video_container}")
        if min(self.default_silence_seconds, self.inter_cue_pause_seconds,
               self.playback_timeout_margin_seconds) < 0:
            raise ValueError("Timing settings must not be negative")

    def frame_config(self, aspect_ratio: Optional[str] = None) -> FrameConfig:
        """Get the video frame size - from an aspect preset or the configured size.

        Args:
            aspect_ratio: '16:9' or '9:16'; None uses video_width/video_height

        Returns:
            FrameConfig with width, height and fps
        """
        if aspect_ratio is None:
            return FrameConfig(self.video_width, self.video_height, self.video_fps)
        return FrameConfig.from_aspect(aspect_ratio, self.video_fps)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ExportConfig":
        """Create from dictionary."""
        # Filter only known fields to avoid errors with old/new config versions
        known_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered_data = {k: v for k, v in data.items() if k in known_fields}
        return cls(**filtered_data)

    def reset_to_defaults(self):
        """Reset all settings to default values from config.py."""
        defaults = ExportConfig()
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(defaults, name))


# Global default instance
_runtime_config: Optional[ExportConfig] = None


def get_config() -> ExportConfig:
    """Get the application-wide default export configuration."""
    global _runtime_config
    if _runtime_config is None:
        _runtime_config = ExportConfig()
    return _runtime_config


def set_config(config: ExportConfig):
    """Replace the application-wide default export configuration."""
    global _runtime_config
    _runtime_config = config

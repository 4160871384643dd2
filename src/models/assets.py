"""
Export Assets - Finished byte containers produced by an export.

Assets are created once per export call and never updated afterwards.
Downstream steps (save to disk, upload, podcast packaging) treat them
as opaque blobs.
"""
import base64
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from config import ASPECT_RATIOS


class AudioFormat(Enum):
    """Audio container kind"""
    WAV = "wav"   # lossless
    MP3 = "mp3"   # lossy

    @property
    def mime_type(self) -> str:
        return {"wav": "audio/wav", "mp3": "audio/mpeg"}[self.value]

    @property
    def is_lossless(self) -> bool:
        return self is AudioFormat.WAV


VIDEO_MIME_TYPES = {
    "webm": "video/webm",
    "mp4": "video/mp4",
}


@dataclass(frozen=True)
class FrameConfig:
    """Size and rate of the rendered video frame"""
    width: int
    height: int
    fps: int = 30

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid frame size {self.width}x{self.height}")
        if self.fps <= 0:
            raise ValueError(f"Invalid frame rate {self.fps}")

    @classmethod
    def from_aspect(cls, aspect_ratio: str, fps: int = 30) -> "FrameConfig":
        """Frame preset for '16:9' (landscape) or '9:16' (portrait)"""
        if aspect_ratio not in ASPECT_RATIOS:
            raise ValueError(f"Unknown aspect ratio: {aspect_ratio}")
        width, height = ASPECT_RATIOS[aspect_ratio]
        return cls(width, height, fps)


@dataclass(frozen=True)
class EncodedAudioAsset:
    """An encoded audio container.

    Attributes:
        data: The container bytes.
        kind: Which container was actually produced.
        fallback_error: The lossy encoder failure that forced a lossless
            substitute, or None if the preferred format was produced.
    """
    data: bytes
    kind: AudioFormat
    fallback_error: Optional[Exception] = None

    @property
    def mime_type(self) -> str:
        return self.kind.mime_type

    @property
    def is_fallback(self) -> bool:
        return self.fallback_error is not None

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"

    def save(self, output_path: str | Path) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(self.data)
        return output_path

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class VideoAsset:
    """An interleaved audio+video container"""
    data: bytes
    mime_type: str
    duration: float
    width: int
    height: int
    fps: int

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"

    def save(self, output_path: str | Path) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(self.data)
        return output_path

    def __len__(self) -> int:
        return len(self.data)

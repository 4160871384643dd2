"""
Sample Buffer - Immutable decoded audio samples.

A SampleBuffer holds one float32 array per channel at a known sample rate.
Buffers are never mutated in place: resampling, down-mixing and
concatenation always produce a new buffer.
"""
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np


def _frozen(samples) -> np.ndarray:
    arr = np.array(samples, dtype=np.float32, copy=True).reshape(-1)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class SampleBuffer:
    """Decoded raw audio at a known rate and channel layout.

    Attributes:
        sample_rate: Samples per second per channel (Hz).
        channels: One read-only float32 array per channel, values nominally
            in [-1.0, 1.0].
    """
    sample_rate: int
    channels: tuple

    def __post_init__(self):
        object.__setattr__(self, "channels", tuple(_frozen(ch) for ch in self.channels))

    # -- Constructors ------------------------------------------------------

    @classmethod
    def from_mono(cls, samples, sample_rate: int) -> "SampleBuffer":
        return cls(sample_rate=sample_rate, channels=(samples,))

    @classmethod
    def from_channels(cls, channels: Sequence, sample_rate: int) -> "SampleBuffer":
        return cls(sample_rate=sample_rate, channels=tuple(channels))

    @classmethod
    def from_interleaved(cls, samples, sample_rate: int, channel_count: int) -> "SampleBuffer":
        """Split an interleaved frame-major array into per-channel arrays."""
        arr = np.asarray(samples, dtype=np.float32).reshape(-1)
        frames = len(arr) // channel_count
        arr = arr[:frames * channel_count].reshape(frames, channel_count)
        return cls(sample_rate=sample_rate, channels=tuple(arr[:, c] for c in range(channel_count)))

    @classmethod
    def silent(cls, duration: float, sample_rate: int, channel_count: int = 1) -> "SampleBuffer":
        frames = int(round(duration * sample_rate))
        zeros = np.zeros(frames, dtype=np.float32)
        return cls(sample_rate=sample_rate, channels=tuple(zeros for _ in range(channel_count)))

    # -- Properties --------------------------------------------------------

    @property
    def channel_count(self) -> int:
        return len(self.channels)

    @property
    def frame_count(self) -> int:
        return len(self.channels[0]) if self.channels else 0

    @property
    def duration(self) -> float:
        """Duration in seconds"""
        if self.sample_rate <= 0:
            return 0.0
        return self.frame_count / self.sample_rate

    def interleaved(self) -> np.ndarray:
        """Return samples as one frame-major array (L R L R ...)."""
        if not self.channels:
            return np.zeros(0, dtype=np.float32)
        return np.stack(self.channels, axis=1).reshape(-1)

    def validate(self) -> Optional[str]:
        """Return a reason string if the buffer is structurally invalid, else None."""
        if not isinstance(self.sample_rate, (int, np.integer)) or self.sample_rate <= 0:
            return f"invalid sample rate {self.sample_rate!r}"
        if self.channel_count == 0:
            return "buffer has no channels"
        if self.channel_count > 2:
            return f"unsupported channel count {self.channel_count}"
        lengths = {len(ch) for ch in self.channels}
        if len(lengths) > 1:
            return f"channel lengths differ: {sorted(lengths)}"
        for index, ch in enumerate(self.channels):
            if not np.all(np.isfinite(ch)):
                return f"channel {index} contains non-finite samples"
        return None

    def __repr__(self) -> str:
        return (f"SampleBuffer(sample_rate={self.sample_rate}, "
                f"channels={self.channel_count}, frames={self.frame_count})")

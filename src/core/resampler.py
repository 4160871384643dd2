"""
Resampler - Convert sample buffers to a target rate and channel layout.

Used by the audio merger for every cue and by the capture sink when it
assembles the live audio track.
"""
import numpy as np

from models.audio import SampleBuffer


def resample_channel(samples: np.ndarray, src_rate: int, dst_rate: int, length: int) -> np.ndarray:
    """Linear-interpolation resample of one channel to exactly *length* samples.

    Output sample k is taken at source position ``k * src_rate / dst_rate``.
    Positions past the last source sample hold the last value.
    """
    if length <= 0:
        return np.zeros(0, dtype=np.float32)
    if len(samples) == 0:
        return np.zeros(length, dtype=np.float32)
    if src_rate == dst_rate and len(samples) == length:
        return np.array(samples, dtype=np.float32)
    positions = np.arange(length, dtype=np.float64) * (src_rate / dst_rate)
    source_index = np.arange(len(samples), dtype=np.float64)
    return np.interp(positions, source_index, samples).astype(np.float32)


def remix_channels(channels: tuple, target_channels: int) -> list[np.ndarray]:
    """Down-mix (channel mean) or up-mix (duplicate mono) to *target_channels*."""
    if len(channels) == target_channels:
        return [np.asarray(ch, dtype=np.float32) for ch in channels]
    if target_channels == 1:
        stacked = np.stack([np.asarray(ch, dtype=np.float32) for ch in channels])
        return [stacked.mean(axis=0).astype(np.float32)]
    if len(channels) == 1:
        return [np.asarray(channels[0], dtype=np.float32)] * target_channels
    raise ValueError(f"Cannot remix {len(channels)} channels to {target_channels}")


def conformed_length(buffer: SampleBuffer, target_rate: int) -> int:
    """Number of samples *buffer* occupies at *target_rate* (rounded up)."""
    return -(-buffer.frame_count * target_rate // buffer.sample_rate)


def conform(
    buffer: SampleBuffer,
    target_rate: int,
    target_channels: int,
    length: int | None = None,
) -> SampleBuffer:
    """Return a new buffer at *target_rate* / *target_channels*.

    Args:
        buffer: Source buffer (left untouched)
        target_rate: Output sample rate
        target_channels: 1 or 2
        length: Exact output length in samples. Defaults to the rounded-up
            duration at the target rate.
    """
    if target_rate <= 0:
        raise ValueError(f"target_rate must be positive, got {target_rate}")
    if length is None:
        length = conformed_length(buffer, target_rate)

    mixed = remix_channels(buffer.channels, target_channels)
    out = [resample_channel(ch, buffer.sample_rate, target_rate, length) for ch in mixed]
    return SampleBuffer.from_channels(out, target_rate)


def downmix_to_mono(buffer: SampleBuffer) -> np.ndarray:
    """Mono float samples of *buffer* at its own rate."""
    if buffer.channel_count == 0:
        return np.zeros(0, dtype=np.float32)
    return remix_channels(buffer.channels, 1)[0]

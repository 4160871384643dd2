"""
WAV Encoder - 16-bit PCM WAV container with the standard 44-byte header.

Lossless and dependency-free; this is the guaranteed fallback whenever
MP3 encoding is unavailable.
"""
import contextlib
import io
import wave

import numpy as np

from models.assets import AudioFormat, EncodedAudioAsset
from models.audio import SampleBuffer

WAV_HEADER_SIZE = 44
BITS_PER_SAMPLE = 16


def to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Clamp floats to [-1, 1] and scale to int16.

    Positive samples scale by 32767 and negative ones by 32768, so the
    full negative range is used without overflowing the positive side.
    """
    clamped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clamped >= 0, np.round(clamped * 32767.0), np.round(clamped * 32768.0))
    return np.clip(scaled, -32768, 32767).astype("<i2")


def from_pcm16(ints: np.ndarray) -> np.ndarray:
    """Inverse of to_pcm16 (exact for every int16 value)."""
    ints = np.asarray(ints, dtype=np.float64)
    return np.where(ints >= 0, ints / 32767.0, ints / 32768.0).astype(np.float32)


def encode_wav_bytes(buffer: SampleBuffer) -> bytes:
    """Serialize *buffer* as a 16-bit PCM WAV file."""
    pcm = to_pcm16(buffer.interleaved())

    out = io.BytesIO()
    with contextlib.closing(wave.open(out, "wb")) as wf:
        wf.setnchannels(buffer.channel_count)
        wf.setsampwidth(BITS_PER_SAMPLE // 8)
        wf.setframerate(buffer.sample_rate)
        wf.writeframes(pcm.tobytes())
    return out.getvalue()


def to_lossless_container(buffer: SampleBuffer) -> EncodedAudioAsset:
    """Encode *buffer* as a WAV asset."""
    return EncodedAudioAsset(data=encode_wav_bytes(buffer), kind=AudioFormat.WAV)


def decode_wav(data: bytes) -> SampleBuffer:
    """Decode a 16-bit PCM WAV produced by this encoder back into floats."""
    with contextlib.closing(wave.open(io.BytesIO(data), "rb")) as wf:
        if wf.getsampwidth() != BITS_PER_SAMPLE // 8:
            raise ValueError(f"Only 16-bit WAV is supported, got {wf.getsampwidth() * 8}-bit")
        channel_count = wf.getnchannels()
        rate = wf.getframerate()
        raw = wf.readframes(wf.getnframes())
    ints = np.frombuffer(raw, dtype="<i2")
    return SampleBuffer.from_interleaved(from_pcm16(ints), rate, channel_count)

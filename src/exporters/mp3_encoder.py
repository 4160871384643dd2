"""\
MP3 Encoder - Block-based lossy encoding with lossless fallback.

Samples are streamed block by block into an FFmpeg libmp3lame process
(mono, fixed bitrate). Any failure produces an EncodingUnavailable result
instead of an exception; encode_audio() then substitutes the WAV output.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from pydub.utils import which

from config import MP3_BITRATE_KBPS, MP3_BLOCK_SIZE
from core.errors import EncodingUnavailable
from core.resampler import downmix_to_mono
from exporters.wav_encoder import to_lossless_container, to_pcm16
from models.assets import AudioFormat, EncodedAudioAsset
from models.audio import SampleBuffer

logger = logging.getLogger(__name__)

# Input rates the MPEG-1/2/2.5 layer III encoder accepts
MP3_SAMPLE_RATES = {8000, 11025, 12000, 16000, 22050, 24000, 32000, 44100, 48000}


class Mp3BlockEncoder:
    """Streaming MP3 encoder backed by an FFmpeg subprocess.

    encode_block() feeds one block of int16 samples and returns whatever
    encoded bytes the encoder has produced so far; flush() closes the input
    and drains the frames FFmpeg still holds.
    """

    def __init__(self, sample_rate: int, bitrate_kbps: int = MP3_BITRATE_KBPS):
        if sample_rate not in MP3_SAMPLE_RATES:
            raise EncodingUnavailable(f"MP3 does not support a {sample_rate} Hz input rate")

        ffmpeg = which("ffmpeg")
        if ffmpeg is None:
            raise EncodingUnavailable("FFmpeg was not found; MP3 encoding is unavailable")

        cmd = [
            ffmpeg,
            "-hide_banner",
            "-loglevel",
            "error",
            "-f",
            "s16le",
            "-ar",
            str(sample_rate),
            "-ac",
            "1",
            "-i",
            "pipe:0",
            "-c:a",
            "libmp3lame",
            "-b:a",
            f"{bitrate_kbps}k",
            "-f",
            "mp3",
            "pipe:1",
        ]
        try:
            self._proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise EncodingUnavailable(f"Failed to start MP3 encoder: {e}") from e

        self._lock = threading.Lock()
        self._pending: list[bytes] = []
        self._stderr: list[bytes] = []
        self._stdout_reader = threading.Thread(target=self._read_stdout, daemon=True)
        self._stderr_reader = threading.Thread(target=self._read_stderr, daemon=True)
        self._stdout_reader.start()
        self._stderr_reader.start()

    def _read_stdout(self):
        while True:
            chunk = self._proc.stdout.read1(65536)
            if not chunk:
                break
            with self._lock:
                self._pending.append(chunk)

    def _read_stderr(self):
        for line in self._proc.stderr:
            self._stderr.append(line)

    def _drain(self) -> bytes:
        with self._lock:
            data = b"".join(self._pending)
            self._pending.clear()
        return data

    def _error_tail(self) -> str:
        return b"".join(self._stderr[-20:]).decode("utf-8", errors="replace").strip()

    def encode_block(self, block: np.ndarray) -> bytes:
        """Encode one block of int16 samples."""
        try:
            self._proc.stdin.write(np.asarray(block, dtype="<i2").tobytes())
            self._proc.stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as e:
            self.close()
            raise EncodingUnavailable(f"MP3 encoder rejected a block: {e} {self._error_tail()}") from e
        return self._drain()

    def flush(self) -> bytes:
        """Finish encoding and return the remaining bytes."""
        try:
            self._proc.stdin.close()
        except (BrokenPipeError, OSError) as e:
            self.close()
            raise EncodingUnavailable(f"MP3 encoder failed while flushing: {e}") from e
        rc = self._proc.wait()
        self._stdout_reader.join()
        self._stderr_reader.join()
        if rc != 0:
            raise EncodingUnavailable(f"MP3 encoding failed (code={rc})\n{self._error_tail()}")
        return self._drain()

    def close(self):
        """Terminate the encoder process if it is still running."""
        if self._proc.poll() is None:
            self._proc.kill()
            self._proc.wait()


EncoderFactory = Callable[[int, int], Mp3BlockEncoder]


@dataclass(frozen=True)
class LossyResult:
    """Either an MP3 asset or the reason MP3 encoding was unavailable"""
    asset: Optional[EncodedAudioAsset] = None
    error: Optional[EncodingUnavailable] = None

    @property
    def ok(self) -> bool:
        return self.asset is not None

    def unwrap_or_fallback(self, buffer: SampleBuffer) -> EncodedAudioAsset:
        """The MP3 asset, or a WAV of *buffer* tagged with the failure."""
        if self.asset is not None:
            return self.asset
        logger.warning("MP3 encoding failed, using WAV format instead: %s", self.error)
        wav = to_lossless_container(buffer)
        return EncodedAudioAsset(data=wav.data, kind=AudioFormat.WAV, fallback_error=self.error)


def to_lossy_container(
    buffer: SampleBuffer,
    bitrate_kbps: int = MP3_BITRATE_KBPS,
    block_size: int = MP3_BLOCK_SIZE,
    encoder_factory: EncoderFactory = Mp3BlockEncoder,
) -> LossyResult:
    """Encode *buffer* as mono MP3

    Args:
        buffer: Normalized sample buffer
        bitrate_kbps: Fixed MP3 bitrate
        block_size: Samples per encode call (multiple of 576)
        encoder_factory: Builds the block encoder from (sample_rate, bitrate)

    Returns:
        LossyResult holding the asset, or the EncodingUnavailable error
    """
    if block_size <= 0 or block_size % 576:
        raise ValueError("block_size must be a positive multiple of 576")
    if buffer.frame_count == 0:
        return LossyResult(error=EncodingUnavailable("Cannot encode an empty buffer as MP3"))

    pcm = to_pcm16(downmix_to_mono(buffer))

    encoder = None
    chunks: list[bytes] = []
    try:
        encoder = encoder_factory(buffer.sample_rate, bitrate_kbps)
        for i in range(0, len(pcm), block_size):
            chunk = encoder.encode_block(pcm[i:i + block_size])
            if chunk:
                chunks.append(chunk)
        tail = encoder.flush()
        if tail:
            chunks.append(tail)
    except EncodingUnavailable as e:
        return LossyResult(error=e)
    except Exception as e:
        return LossyResult(error=EncodingUnavailable(f"MP3 encoder error: {e}"))
    finally:
        if encoder is not None:
            encoder.close()

    data = b"".join(chunks)
    if not data:
        return LossyResult(error=EncodingUnavailable("MP3 encoder produced no output"))
    return LossyResult(asset=EncodedAudioAsset(data=data, kind=AudioFormat.MP3))


def encode_audio(
    buffer: SampleBuffer,
    prefer: AudioFormat = AudioFormat.MP3,
    bitrate_kbps: int = MP3_BITRATE_KBPS,
    block_size: int = MP3_BLOCK_SIZE,
    encoder_factory: EncoderFactory = Mp3BlockEncoder,
) -> EncodedAudioAsset:
    """Encode *buffer* in the preferred format, always returning some asset.

    WAV is produced directly; MP3 falls back to WAV when the codec fails.
    The returned asset's ``kind`` says which format was actually produced.
    """
    if prefer is AudioFormat.WAV:
        return to_lossless_container(buffer)
    result = to_lossy_container(buffer, bitrate_kbps, block_size, encoder_factory)
    return result.unwrap_or_fallback(buffer)

"""
Audio Loader - Decode generated audio payloads into SampleBuffers
"""
import base64
import binascii
import io
from pathlib import Path

import numpy as np
import soundfile as sf
from pydub import AudioSegment

from config import SPEECH_SAMPLE_RATE
from models.audio import SampleBuffer

# Formats libsndfile reads natively; everything else goes through ffmpeg
SOUNDFILE_EXTENSIONS = {".wav", ".flac", ".ogg", ".aiff", ".aif"}


class AudioLoader:
    """Turn speech/SFX service output into SampleBuffers"""

    def decode_raw_pcm(
        self,
        data: bytes | str,
        sample_rate: int = SPEECH_SAMPLE_RATE,
        channel_count: int = 1
    ) -> SampleBuffer:
        """Decode interleaved little-endian 16-bit PCM

        Args:
            data: Raw bytes, or a base64 string of them
            sample_rate: Rate of the PCM stream
            channel_count: Number of interleaved channels

        Returns:
            SampleBuffer with samples scaled by 1/32768
        """
        if isinstance(data, str):
            try:
                data = base64.b64decode(data, validate=False)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"Invalid base64 PCM payload: {e}") from e

        usable = len(data) - (len(data) % 2)
        ints = np.frombuffer(data[:usable], dtype="<i2")
        return SampleBuffer.from_interleaved(ints.astype(np.float32) / 32768.0, sample_rate, channel_count)

    def load_audio(self, audio_path: str | Path) -> SampleBuffer:
        """Load an audio file

        Args:
            audio_path: Path to the audio file

        Returns:
            SampleBuffer at the file's own rate and channel layout
        """
        audio_path = Path(audio_path)
        if not audio_path.is_file():
            raise FileNotFoundError(f"Audio file not found: {audio_path}")
        if audio_path.suffix.lower() in SOUNDFILE_EXTENSIONS:
            data, rate = sf.read(str(audio_path), dtype="float32", always_2d=True)
            return SampleBuffer.from_channels([data[:, c] for c in range(data.shape[1])], int(rate))
        return self.from_segment(AudioSegment.from_file(str(audio_path)))

    def load_audio_bytes(self, data: bytes) -> SampleBuffer:
        """Decode an encoded audio file (MP3/WAV) held in memory"""
        try:
            samples, rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
            return SampleBuffer.from_channels([samples[:, c] for c in range(samples.shape[1])], int(rate))
        except (sf.LibsndfileError, RuntimeError, TypeError):
            return self.from_segment(AudioSegment.from_file(io.BytesIO(data)))

    def from_segment(self, segment: AudioSegment) -> SampleBuffer:
        """Convert a pydub AudioSegment to a SampleBuffer"""
        samples = np.array(segment.get_array_of_samples(), dtype=np.float32)
        full_scale = float(1 << (8 * segment.sample_width - 1))
        return SampleBuffer.from_interleaved(samples / full_scale, segment.frame_rate, segment.channels)

    def extract_segment(
        self,
        buffer: SampleBuffer,
        start_time: float,
        end_time: float
    ) -> SampleBuffer:
        """Extract a segment from a longer buffer (e.g. a trimmed SFX clip)

        Args:
            buffer: Source buffer
            start_time: Start time in seconds
            end_time: End time in seconds

        Returns:
            New SampleBuffer covering [start_time, end_time)
        """
        start = max(0, int(round(start_time * buffer.sample_rate)))
        end = min(buffer.frame_count, int(round(end_time * buffer.sample_rate)))
        end = max(start, end)
        return SampleBuffer.from_channels([ch[start:end] for ch in buffer.channels], buffer.sample_rate)

"""
Audio Merger - Concatenate cue audio into one buffer at a fixed rate
"""
import logging
from dataclasses import dataclass, field
from fractions import Fraction
from math import ceil
from typing import Iterable

import numpy as np

from config import EXPORT_SAMPLE_RATE, EXPORT_CHANNELS
from core.errors import MalformedAudioCue
from core.resampler import conform
from exporters.wav_encoder import to_lossless_container
from models.assets import EncodedAudioAsset
from models.audio import SampleBuffer
from models.cue import Cue, Timeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CueSpan:
    """Where one cue's audio landed in the merged buffer"""
    cue_index: int
    start_sample: int
    sample_count: int

    @property
    def end_sample(self) -> int:
        return self.start_sample + self.sample_count


@dataclass(frozen=True)
class MergedAudio:
    """Merged buffer plus the sample range of every audio-bearing cue"""
    buffer: SampleBuffer
    spans: tuple = field(default_factory=tuple)

    @property
    def duration(self) -> float:
        return self.buffer.duration

    @property
    def sample_rate(self) -> int:
        return self.buffer.sample_rate

    def span_for(self, cue_index: int) -> CueSpan | None:
        for span in self.spans:
            if span.cue_index == cue_index:
                return span
        return None


class AudioMerger:
    """Merge cue audio back-to-back with zero gaps"""

    def __init__(self, target_rate: int = EXPORT_SAMPLE_RATE, target_channels: int = EXPORT_CHANNELS):
        if target_rate <= 0:
            raise ValueError(f"target_rate must be positive, got {target_rate}")
        if target_channels not in (1, 2):
            raise ValueError(f"target_channels must be 1 or 2, got {target_channels}")
        self.target_rate = target_rate
        self.target_channels = target_channels

    def merge(self, cues: Timeline | Iterable[Cue]) -> MergedAudio:
        """Merge the audio of every cue in order

        Cues without audio contribute zero samples. Cue boundaries are taken
        from the exact cumulative duration, so offsets never drift over
        long timelines.

        Args:
            cues: Timeline (or any ordered iterable of cues)

        Returns:
            MergedAudio at target_rate / target_channels

        Raises:
            MalformedAudioCue: if any cue's buffer is structurally invalid.
                Nothing is merged in that case.
        """
        snapshot = cues.snapshot() if isinstance(cues, Timeline) else tuple(cues)
        audio_cues = [(i, c.audio) for i, c in enumerate(snapshot) if c.audio is not None]

        # Validate everything before building any output
        for index, buffer in audio_cues:
            reason = buffer.validate()
            if reason is not None:
                raise MalformedAudioCue(index, reason)

        boundaries = [0]
        elapsed = Fraction(0)
        for _, buffer in audio_cues:
            elapsed += Fraction(buffer.frame_count, buffer.sample_rate)
            boundaries.append(ceil(elapsed * self.target_rate))

        total = boundaries[-1]
        out = [np.zeros(total, dtype=np.float32) for _ in range(self.target_channels)]
        spans = []

        for (index, buffer), start, end in zip(audio_cues, boundaries, boundaries[1:]):
            converted = conform(buffer, self.target_rate, self.target_channels, length=end - start)
            for channel, samples in zip(out, converted.channels):
                channel[start:end] = samples
            spans.append(CueSpan(cue_index=index, start_sample=start, sample_count=end - start))

        merged = SampleBuffer.from_channels(out, self.target_rate)
        logger.info(
            "Merged %d audio cue(s) of %d into %.3fs at %d Hz",
            len(audio_cues), len(snapshot), merged.duration, self.target_rate,
        )
        return MergedAudio(buffer=merged, spans=tuple(spans))


def merge(
    cues: Timeline | Iterable[Cue],
    target_rate: int = EXPORT_SAMPLE_RATE,
    target_channels: int = EXPORT_CHANNELS,
) -> MergedAudio:
    """Merge cue audio into one buffer (see AudioMerger.merge)"""
    return AudioMerger(target_rate, target_channels).merge(cues)


def export_cue_wav(cue: Cue, cue_index: int = 0) -> EncodedAudioAsset:
    """Encode a single cue's audio as WAV at its own rate and layout"""
    if cue.audio is None:
        raise ValueError(f"Cue {cue_index} has no audio to export")
    reason = cue.audio.validate()
    if reason is not None:
        raise MalformedAudioCue(cue_index, reason)
    return to_lossless_container(cue.audio)

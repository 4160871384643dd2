import io
import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import soundfile as sf

from core.errors import EncodingUnavailable, MalformedAudioCue
from exporters.audio_export import export_audio
from models.assets import AudioFormat
from models.audio import SampleBuffer
from models.cue import Cue, Timeline
from runtime_config import ExportConfig


def _no_mp3(sample_rate, bitrate_kbps):
    raise EncodingUnavailable("codec missing")


def test_wav_export_of_scenario(make_tone):
    timeline = Timeline([
        Cue(audio=make_tone(1.0, 24000)),
        Cue(image=b"still"),
        Cue(audio=make_tone(0.5, 24000)),
    ])
    progress = []

    asset, merged = export_audio(
        timeline,
        prefer=AudioFormat.WAV,
        config=ExportConfig(),
        progress_callback=lambda p, m: progress.append(p),
    )

    assert asset.kind is AudioFormat.WAV
    assert merged.buffer.frame_count == 66150
    info = sf.info(io.BytesIO(asset.data))
    assert info.samplerate == 44100
    assert info.channels == 1
    assert info.frames == 66150
    assert progress == [10, 50, 100]


def test_mp3_failure_still_produces_audio(make_tone):
    timeline = Timeline([Cue(audio=make_tone(0.2, 24000))])
    asset, merged = export_audio(timeline, config=ExportConfig(), encoder_factory=_no_mp3)

    assert asset.kind is AudioFormat.WAV
    assert asset.is_fallback
    assert sf.info(io.BytesIO(asset.data)).frames == merged.buffer.frame_count


def test_malformed_cue_produces_nothing(make_tone):
    bad = SampleBuffer.from_mono([float("inf")], 24000)
    progress = []
    with pytest.raises(MalformedAudioCue):
        export_audio(
            Timeline([Cue(audio=make_tone(0.1, 24000)), Cue(audio=bad)]),
            config=ExportConfig(),
            progress_callback=lambda p, m: progress.append(p),
        )
    assert 100 not in progress

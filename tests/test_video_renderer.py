"""
Tests for the cue timeline player and video export sessions.

A recording fake stands in for the FFmpeg sink so the player's ordering,
frame-hold, timeout and cancellation behaviour can be checked on the real
event loop clock without encoding anything.
"""
import asyncio
import shutil
import subprocess
import sys
import os
import threading

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from core.errors import CaptureSinkFailure, ExportCancelled, ExportError, MalformedAudioCue
import exporters.video_renderer as video_renderer
from exporters.capture_sink import CaptureSink
from exporters.video_renderer import (
    CueTimelinePlayer,
    ExportSession,
    RenderState,
    render_cover_video,
    render_video,
)
from models.assets import FrameConfig
from models.audio import SampleBuffer
from models.cue import CastMember, CharacterRegistry, Cue, SceneDefinition, SceneRegistry, Timeline
from runtime_config import ExportConfig


FRAME = FrameConfig(32, 18, fps=10)


class FakeSink(CaptureSink):
    """Records frames and playback against the loop clock"""

    def __init__(self, complete=True, fail_on_stop=False):
        self.complete = complete
        self.fail_on_stop = fail_on_stop
        self.events = []
        self.frames = []
        self.played = []
        self._loop = None
        self._t0 = 0.0

    @property
    def mime_type(self):
        return "video/webm"

    @property
    def elapsed(self):
        return 0.0 if self._loop is None else self._loop.time() - self._t0

    async def start(self):
        self._loop = asyncio.get_running_loop()
        self._t0 = self._loop.time()
        self.events.append("start")

    def capture_frame(self, image):
        self.frames.append((self.elapsed, image.copy()))
        self.events.append("frame")

    def play(self, buffer):
        self.played.append((self.elapsed, buffer))
        self.events.append("play")
        done = self._loop.create_future()
        if self.complete:
            self._loop.call_later(buffer.duration, done.set_result, None)
        return done

    async def stop(self):
        self.events.append("stop")
        if self.fail_on_stop:
            raise CaptureSinkFailure("muxer crashed")
        return b"video-bytes"

    async def abort(self):
        self.events.append("abort")


def _config(**overrides):
    values = dict(
        inter_cue_pause_seconds=0.0,
        default_silence_seconds=0.05,
        playback_timeout_margin_seconds=0.1,
    )
    values.update(overrides)
    return ExportConfig(**values)


def _player(sink, config=None, **kwargs):
    session = ExportSession.create(FRAME, config or _config(), sink_factory=lambda fc, cfg: sink)
    return CueTimelinePlayer(session, config=config or _config(), **kwargs)


def _center(image):
    return image.pixelColor(image.width() // 2, image.height() // 2).name()


def test_cues_play_in_order_and_hold_frames(make_png, make_tone):
    sink = FakeSink()
    cues = [
        Cue(audio=make_tone(0.05, 24000), image=make_png("#ff0000")),
        Cue(audio=make_tone(0.05, 24000), image=make_png("#00ff00")),
        Cue(audio=make_tone(0.05, 24000)),
    ]
    player = _player(sink)

    asset = asyncio.run(player.render(Timeline(cues)))

    assert player.state is RenderState.DONE
    assert asset.data == b"video-bytes"
    assert asset.mime_type == "video/webm"
    assert (asset.width, asset.height, asset.fps) == (32, 18, 10)
    assert [buf for _, buf in sink.played] == [c.audio for c in cues]
    assert sink.events == ["start", "frame", "frame", "play", "frame", "play", "play", "stop"]

    # Initial black frame, then red, then green held through the last cue
    assert [_center(img) for _, img in sink.frames] == ["#000000", "#ff0000", "#00ff00"]
    assert [r.frame_source for r in player.records] == ["cue", "cue", "held"]


def test_each_cue_starts_after_previous_ends(make_tone):
    sink = FakeSink()
    cues = [Cue(audio=make_tone(0.08, 24000)), Cue(audio=make_tone(0.04, 24000))]
    player = _player(sink, config=_config(inter_cue_pause_seconds=0.02))

    asyncio.run(player.render(Timeline(cues)))

    first, second = player.records
    assert first.end - first.start >= 0.079
    assert second.start - first.end >= 0.019
    assert sink.played[1][0] >= sink.played[0][0] + 0.099


def test_character_and_scene_fallbacks(make_png, make_tone):
    sink = FakeSink()
    cast = CharacterRegistry([CastMember(name="Alice", image=make_png("#0000ff"))])
    scenes = SceneRegistry([SceneDefinition(name="Forest", image=make_png("#ffff00"))])
    cues = [
        Cue(audio=make_tone(0.02, 24000), character="Alice", location="Forest"),
        Cue(audio=make_tone(0.02, 24000), character="Nobody", location="Forest"),
    ]
    player = _player(sink, cast=cast, scenes=scenes)

    asyncio.run(player.render(Timeline(cues)))

    assert [r.frame_source for r in player.records] == ["character", "scene"]
    assert [_center(img) for _, img in sink.frames[1:]] == ["#0000ff", "#ffff00"]


def test_undecodable_image_keeps_black_frame(qapp, make_tone):
    sink = FakeSink()
    player = _player(sink)

    asyncio.run(player.render(Timeline([Cue(audio=make_tone(0.02, 24000), image=b"broken")])))

    assert player.records[0].frame_source == "blank"
    assert len(sink.frames) == 1
    assert player.state is RenderState.DONE


def test_missing_completion_times_out(qapp, make_tone):
    sink = FakeSink(complete=False)
    cues = [Cue(audio=make_tone(0.03, 24000)), Cue(audio=make_tone(0.03, 24000))]
    player = _player(sink, config=_config(playback_timeout_margin_seconds=0.05))

    asyncio.run(player.render(Timeline(cues)))

    assert player.state is RenderState.DONE
    assert [r.timed_out for r in player.records] == [True, True]
    assert len(sink.played) == 2
    for record in player.records:
        assert record.end - record.start >= 0.079


def test_silent_cue_holds_for_silence_duration(qapp):
    sink = FakeSink()
    cues = [Cue(silence_duration=0.1), Cue()]
    player = _player(sink, config=_config(default_silence_seconds=0.05))

    asset = asyncio.run(player.render(Timeline(cues)))

    assert sink.played == []
    assert player.records[0].end - player.records[0].start >= 0.099
    assert player.records[1].end - player.records[1].start >= 0.049
    assert asset.duration >= 0.149


def test_scenario_duration(make_png, make_tone):
    """1.0s + image-only silence + 0.5s with no pause"""
    sink = FakeSink()
    cues = [
        Cue(audio=make_tone(1.0, 24000), image=make_png("#ff0000")),
        Cue(image=make_png("#00ff00"), silence_duration=0.2),
        Cue(audio=make_tone(0.5, 24000)),
    ]
    asset = asyncio.run(_player(sink).render(Timeline(cues)))
    assert asset.duration == pytest.approx(1.7, abs=0.1)


def test_progress_reports_states(qapp, make_tone):
    sink = FakeSink()
    seen = []
    player = None

    def on_progress(percent, message):
        seen.append((percent, player.state, player.cue_index))

    player = _player(sink, progress_callback=on_progress)
    cues = [Cue(audio=make_tone(0.01, 24000)), Cue(audio=make_tone(0.01, 24000))]
    asyncio.run(player.render(Timeline(cues)))

    assert seen == [
        (0, RenderState.RENDERING, 0),
        (47, RenderState.RENDERING, 1),
        (95, RenderState.FLUSHING, None),
        (100, RenderState.DONE, None),
    ]


def test_cancel_between_cues(qapp, make_tone):
    sink = FakeSink()
    player = None

    def on_progress(percent, message):
        if player.cue_index == 0:
            player.cancel()

    player = _player(sink, progress_callback=on_progress)
    cues = [Cue(audio=make_tone(0.02, 24000)) for _ in range(3)]

    with pytest.raises(ExportCancelled):
        asyncio.run(player.render(Timeline(cues)))

    assert player.state is RenderState.CANCELLED
    assert len(sink.played) == 1
    assert "stop" not in sink.events
    assert sink.events[-1] == "abort"


def test_cancelled_before_start(qapp, make_tone):
    sink = FakeSink()
    event = threading.Event()
    event.set()

    with pytest.raises(ExportCancelled):
        asyncio.run(render_video(
            Timeline([Cue(audio=make_tone(0.01, 24000))]),
            frame_config=FRAME,
            config=_config(),
            sink_factory=lambda fc, cfg: sink,
            cancel_event=event,
        ))
    assert "start" not in sink.events


def test_stop_failure_marks_failed(qapp, make_tone):
    sink = FakeSink(fail_on_stop=True)
    player = _player(sink)

    with pytest.raises(CaptureSinkFailure):
        asyncio.run(player.render(Timeline([Cue(audio=make_tone(0.01, 24000))])))

    assert player.state is RenderState.FAILED
    assert sink.events[-1] == "abort"


def test_malformed_audio_rejected_before_capture(qapp, make_tone):
    sink = FakeSink()
    bad = SampleBuffer.from_channels([[0.0, 0.0], [0.0]], 24000)
    player = _player(sink)

    with pytest.raises(MalformedAudioCue) as exc_info:
        asyncio.run(player.render(Timeline([Cue(audio=make_tone(0.01, 24000)), Cue(audio=bad)])))

    assert exc_info.value.cue_index == 1
    assert sink.events == []


def test_empty_timeline_rejected(qapp):
    with pytest.raises(ValueError):
        asyncio.run(_player(FakeSink()).render(Timeline()))


def test_player_is_single_use(qapp, make_tone):
    player = _player(FakeSink())
    timeline = Timeline([Cue(audio=make_tone(0.01, 24000))])
    asyncio.run(player.render(timeline))
    with pytest.raises(RuntimeError):
        asyncio.run(player.render(timeline))


def test_concurrent_sessions_are_independent(make_png, make_tone):
    sinks = [FakeSink(), FakeSink()]
    red = Timeline([Cue(audio=make_tone(0.05, 24000), image=make_png("#ff0000"))])
    green = Timeline([Cue(audio=make_tone(0.05, 24000), image=make_png("#00ff00"))])

    async def both():
        return await asyncio.gather(
            render_video(red, FRAME, config=_config(), sink_factory=lambda fc, cfg: sinks[0]),
            render_video(green, FRAME, config=_config(), sink_factory=lambda fc, cfg: sinks[1]),
        )

    assets = asyncio.run(both())

    assert len(assets) == 2
    assert _center(sinks[0].frames[-1][1]) == "#ff0000"
    assert _center(sinks[1].frames[-1][1]) == "#00ff00"


def _decode_frames(path, frame_config):
    """Decode a rendered video into an (n, height, width, 3) RGB array"""
    out = subprocess.run(
        [shutil.which("ffmpeg"), "-v", "error", "-i", str(path), "-f", "rawvideo", "-pix_fmt", "rgb24", "pipe:1"],
        check=True,
        capture_output=True,
    ).stdout
    return np.frombuffer(out, dtype=np.uint8).reshape(-1, frame_config.height, frame_config.width, 3)


def _dominant(frame):
    r, g, b = frame[frame.shape[0] // 2, frame.shape[1] // 2].astype(int)
    if r > 150 and b < 100:
        return "red"
    if b > 150 and r < 100:
        return "blue"
    if max(r, g, b) < 60:
        return "black"
    return "other"


@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="FFmpeg not installed")
@pytest.mark.parametrize("container", ["mp4", "webm"])
def test_real_capture_shows_each_cue_image(make_png, make_tone, tmp_path, container):
    colors = ["red", "blue"] * 5
    pngs = {"red": make_png("#ff0000"), "blue": make_png("#0000ff")}
    cues = [Cue(audio=make_tone(0.4, 24000), image=pngs[colors[0]])]
    # Silent holds of a non-frame-aligned length
    cues += [Cue(image=pngs[color], silence_duration=0.15) for color in colors[1:]]
    config = _config(video_container=container)
    session = ExportSession.create(FRAME, config)
    player = CueTimelinePlayer(session, config=config)

    try:
        asset = asyncio.run(player.render(Timeline(cues)))
    except CaptureSinkFailure as e:
        if "Unknown encoder" in str(e) or "Encoder not found" in str(e):
            pytest.skip(f"FFmpeg build lacks the codec: {e}")
        raise

    assert asset.mime_type == f"video/{container}"
    path = asset.save(tmp_path / f"out.{container}")
    frames = _decode_frames(path, FRAME)
    assert len(frames) >= int(asset.duration * FRAME.fps) - 1

    for record, color in zip(player.records, colors):
        middle = (record.start + record.end) / 2
        index = min(int(middle * FRAME.fps), len(frames) - 1)
        assert _dominant(frames[index]) == color, f"cue {record.cue_index} at {middle:.2f}s"


def test_cover_video_needs_audio(make_png):
    with pytest.raises(ValueError):
        render_cover_video(SampleBuffer.from_mono([], 44100), make_png())


def test_cover_video_without_ffmpeg(make_png, make_tone, monkeypatch):
    monkeypatch.setattr(video_renderer, "which", lambda name: None)
    with pytest.raises(ExportError):
        render_cover_video(make_tone(0.2, 44100), make_png())


@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="FFmpeg not installed")
def test_real_cover_video(make_png, make_tone):
    progress = []
    try:
        asset = render_cover_video(make_tone(1.0, 44100), make_png("#ff0000", 40, 40),
                                   width=64, height=36, container="mp4",
                                   progress_callback=lambda p, m: progress.append(p))
    except ExportError as e:
        if "Unknown encoder" in str(e) or "Encoder not found" in str(e):
            pytest.skip(f"FFmpeg build lacks the codec: {e}")
        raise

    assert asset.mime_type == "video/mp4"
    assert (asset.width, asset.height) == (64, 36)
    assert asset.duration == pytest.approx(1.0)
    assert progress[-1] == 100

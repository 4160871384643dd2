"""\
Video Renderer - Export the cue timeline as an audio+still-image video.

render_video() drives a CueTimelinePlayer through one export session:
each cue's image is drawn onto the session surface, its audio is played
into the capture sink, and the player waits for the completion signal
(bounded by a timeout) before moving on. Nothing is shared between
sessions, so concurrent exports are independent.

render_cover_video() is the offline path for a podcast cover video: the
merged audio plus a single still image, rendered directly by FFmpeg.
"""

from __future__ import annotations

import asyncio
import logging
import re
import subprocess
import tempfile
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from pydub.utils import which

from config import COVER_VIDEO_WIDTH, COVER_VIDEO_HEIGHT, COVER_VIDEO_FPS
from core.errors import CaptureSinkFailure, ExportCancelled, ExportError, FrameLoadFailure, MalformedAudioCue
from exporters.capture_sink import CaptureSink, FfmpegCaptureSink
from exporters.frame_selector import resolve_frame
from exporters.render_surface import RenderSurface, decode_image, fit_inside
from exporters.wav_encoder import encode_wav_bytes
from models.assets import VIDEO_MIME_TYPES, FrameConfig, VideoAsset
from models.audio import SampleBuffer
from models.cue import CharacterRegistry, Cue, ImageRef, SceneRegistry, Timeline
from runtime_config import ExportConfig, get_config

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]
SinkFactory = Callable[[FrameConfig, ExportConfig], CaptureSink]


class RenderState(Enum):
    IDLE = "idle"
    RENDERING = "rendering"
    FLUSHING = "flushing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CueRecord:
    """What the player did for one cue"""
    cue_index: int
    start: float
    end: float
    frame_source: str  # "cue" | "character" | "scene" | "held" | "blank"
    timed_out: bool = False


def default_sink_factory(frame_config: FrameConfig, config: ExportConfig) -> CaptureSink:
    return FfmpegCaptureSink(
        frame_config,
        container=config.video_container,
        sample_rate=config.capture_sample_rate,
        channels=config.capture_channels,
        video_bitrate=config.video_bitrate,
    )


@dataclass
class ExportSession:
    """Rendering surface and capture sink owned by one video export"""
    frame_config: FrameConfig
    surface: RenderSurface
    sink: CaptureSink

    @classmethod
    def create(
        cls,
        frame_config: FrameConfig,
        config: ExportConfig,
        sink_factory: Optional[SinkFactory] = None,
    ) -> "ExportSession":
        factory = sink_factory or default_sink_factory
        return cls(
            frame_config=frame_config,
            surface=RenderSurface(frame_config.width, frame_config.height),
            sink=factory(frame_config, config),
        )


class CueTimelinePlayer:
    """Plays cues in order into a capture sink while switching frames.

    States: IDLE -> RENDERING(cue_index) -> FLUSHING -> DONE | FAILED,
    or CANCELLED when cancel() was requested between cues.
    """

    def __init__(
        self,
        session: ExportSession,
        config: Optional[ExportConfig] = None,
        cast: Optional[CharacterRegistry] = None,
        scenes: Optional[SceneRegistry] = None,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.session = session
        self.config = config or get_config()
        self.cast = cast
        self.scenes = scenes
        self._cancel_event = cancel_event or threading.Event()
        self._progress_callback = progress_callback
        self._state = RenderState.IDLE
        self._cue_index: Optional[int] = None
        self.records: list[CueRecord] = []

    @property
    def state(self) -> RenderState:
        return self._state

    @property
    def cue_index(self) -> Optional[int]:
        """Index of the cue being rendered (RENDERING only)"""
        return self._cue_index if self._state is RenderState.RENDERING else None

    def cancel(self):
        """Request cancellation; honoured before the next cue starts"""
        self._cancel_event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _emit(self, percent: int, message: str):
        if self._progress_callback:
            self._progress_callback(percent, message)

    def _check_cancelled(self):
        if self._cancel_event.is_set():
            raise ExportCancelled("Video export was cancelled")

    # -- Per-cue steps -----------------------------------------------------

    def _show_frame(self, index: int, cue: Cue) -> str:
        """Draw the cue's frame, or keep the previous one. Returns the frame source."""
        surface = self.session.surface
        held = "held" if surface.has_drawn else "blank"

        selection = resolve_frame(cue, self.cast, self.scenes)
        if selection is None:
            logger.debug("Cue %d: no image found, keeping previous frame", index + 1)
            return held

        try:
            image = decode_image(selection.image)
        except FrameLoadFailure as e:
            logger.warning("Cue %d: failed to load %s image, keeping previous frame: %s",
                           index + 1, selection.source.value, e)
            return held

        logger.debug("Cue %d: using %s image", index + 1, selection.source.value)
        surface.draw_cover(image)
        self.session.sink.capture_frame(surface.snapshot())
        return selection.source.value

    async def _play(self, index: int, buffer: SampleBuffer) -> bool:
        """Play *buffer* and wait for it to end. Returns False on timeout."""
        done = self.session.sink.play(buffer)
        timeout = buffer.duration + self.config.playback_timeout_margin_seconds
        try:
            await asyncio.wait_for(asyncio.shield(done), timeout)
        except asyncio.TimeoutError:
            logger.warning("Cue %d: playback did not signal completion within %.2fs, continuing",
                           index + 1, timeout)
            return False
        except CaptureSinkFailure:
            raise
        except Exception as e:
            raise CaptureSinkFailure(f"Playback failed on cue {index + 1}: {e}") from e
        return True

    # -- Main loop ---------------------------------------------------------

    async def render(self, timeline: Timeline) -> VideoAsset:
        """Render every cue in order and return the finished video

        Raises:
            MalformedAudioCue: a cue's audio buffer is structurally invalid
            ExportCancelled: cancel() was requested; no output is returned
            CaptureSinkFailure: capture failed; no output is returned
        """
        if self._state is not RenderState.IDLE:
            raise RuntimeError("A player renders exactly one timeline")

        cues = timeline.snapshot()
        if not cues:
            raise ValueError("Timeline has no cues to render")
        for index, cue in enumerate(cues):
            if cue.audio is not None:
                reason = cue.audio.validate()
                if reason is not None:
                    raise MalformedAudioCue(index, reason)

        sink = self.session.sink
        total = len(cues)
        try:
            self._check_cancelled()
            await sink.start()
            # Black frame until the first image is drawn
            sink.capture_frame(self.session.surface.snapshot())

            for index, cue in enumerate(cues):
                if index > 0 and self.config.inter_cue_pause_seconds > 0:
                    await asyncio.sleep(self.config.inter_cue_pause_seconds)
                self._check_cancelled()

                self._state = RenderState.RENDERING
                self._cue_index = index
                self._emit(int(index * 95 / total), f"Processing frame {index + 1}/{total}...")

                start = sink.elapsed
                source = self._show_frame(index, cue)
                timed_out = False
                if cue.audio is not None:
                    timed_out = not await self._play(index, cue.audio)
                else:
                    await asyncio.sleep(cue.duration(self.config.default_silence_seconds))
                self.records.append(CueRecord(index, start, sink.elapsed, source, timed_out))

            self._state = RenderState.FLUSHING
            self._emit(95, "Finalizing video...")
            duration = sink.elapsed
            data = await sink.stop()

        except ExportCancelled:
            self._state = RenderState.CANCELLED
            await sink.abort()
            logger.info("Video export cancelled before cue %s", (self._cue_index or 0) + 1)
            raise
        except asyncio.CancelledError:
            self._state = RenderState.CANCELLED
            await sink.abort()
            raise
        except Exception:
            self._state = RenderState.FAILED
            await sink.abort()
            raise

        self._state = RenderState.DONE
        self._emit(100, "Done")
        frame = self.session.frame_config
        return VideoAsset(
            data=data,
            mime_type=sink.mime_type,
            duration=duration,
            width=frame.width,
            height=frame.height,
            fps=frame.fps,
        )


async def render_video(
    timeline: Timeline,
    frame_config: Optional[FrameConfig] = None,
    cast: Optional[CharacterRegistry] = None,
    scenes: Optional[SceneRegistry] = None,
    config: Optional[ExportConfig] = None,
    sink_factory: Optional[SinkFactory] = None,
    cancel_event: Optional[threading.Event] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> VideoAsset:
    """Export *timeline* as a video with a fresh session (see CueTimelinePlayer)

    The video lasts the sum of the cue durations plus
    ``config.inter_cue_pause_seconds`` between each pair of consecutive cues,
    i.e. ``(len(timeline) - 1) * pause`` longer than the cues alone. Set the
    pause to 0 for a video exactly as long as its cues.
    """
    config = config or get_config()
    frame_config = frame_config or config.frame_config()
    session = ExportSession.create(frame_config, config, sink_factory)
    player = CueTimelinePlayer(
        session,
        config=config,
        cast=cast,
        scenes=scenes,
        cancel_event=cancel_event,
        progress_callback=progress_callback,
    )
    return await player.render(timeline)


# ---------------------------------------------------------------------------
# Cover video (offline)
# ---------------------------------------------------------------------------

def render_cover_video(
    audio: SampleBuffer,
    cover: ImageRef,
    width: int = COVER_VIDEO_WIDTH,
    height: int = COVER_VIDEO_HEIGHT,
    fps: int = COVER_VIDEO_FPS,
    container: str = "webm",
    progress_callback: Optional[ProgressCallback] = None,
) -> VideoAsset:
    """Render a static cover image over the merged audio

    Args:
        audio: Merged timeline audio
        cover: Cover art (fitted inside the frame over black)
        width, height, fps: Output frame settings
        container: 'webm' or 'mp4'
        progress_callback: Called with (percent, message)

    Raises:
        FrameLoadFailure: the cover image cannot be decoded
        ExportError: FFmpeg is missing or fails
    """
    if container not in VIDEO_MIME_TYPES:
        raise ValueError(f"Unsupported video container: {container}")
    if audio.frame_count == 0:
        raise ValueError("Cover video needs non-empty audio")
    ffmpeg = which("ffmpeg")
    if ffmpeg is None:
        raise ExportError("FFmpeg was not found; cover video is unavailable")

    frame = fit_inside(decode_image(cover), width, height)
    duration = audio.duration

    with tempfile.TemporaryDirectory(prefix="rde_cover_") as tmp:
        tmp_dir = Path(tmp)
        cover_path = tmp_dir / "cover.png"
        audio_path = tmp_dir / "audio.wav"
        output_path = tmp_dir / f"cover.{container}"

        if not frame.save(str(cover_path), "PNG"):
            raise ExportError("Failed to write cover frame")
        audio_path.write_bytes(encode_wav_bytes(audio))

        if progress_callback:
            progress_callback(5, "Preparing cover video...")

        cmd = [
            ffmpeg, "-y", "-hide_banner",
            "-loop", "1", "-framerate", str(fps), "-t", f"{duration}", "-i", str(cover_path),
            "-i", str(audio_path),
            "-map", "0:v", "-map", "1:a",
            "-t", f"{duration}",
        ]
        if container == "webm":
            cmd += ["-c:v", "libvpx-vp9", "-deadline", "realtime", "-cpu-used", "8",
                    "-c:a", "libopus", "-ar", "48000"]
        else:
            cmd += ["-c:v", "libx264", "-preset", "ultrafast", "-tune", "stillimage",
                    "-pix_fmt", "yuv420p", "-c:a", "aac", "-movflags", "+faststart"]
        cmd += ["-progress", "pipe:1", "-nostats", str(output_path)]

        total_us = int(duration * 1_000_000)
        last_pct = -1

        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )

        combined_output: list[str] = []
        for line in proc.stdout:
            combined_output.append(line)

            m = re.match(r"out_time_ms=(\d+)", line.strip())
            if m and total_us > 0:
                # FFmpeg reports microseconds despite the name
                pct = int(min(99, (int(m.group(1)) / total_us) * 100))
                if pct != last_pct:
                    last_pct = pct
                    if progress_callback:
                        progress_callback(pct, "Rendering cover video...")

        rc = proc.wait()
        if rc != 0:
            tail = "".join(combined_output[-40:])
            raise ExportError(f"FFmpeg cover video failed (code={rc})\n{tail}")

        data = output_path.read_bytes()

    if progress_callback:
        progress_callback(100, "Done")

    return VideoAsset(
        data=data,
        mime_type=VIDEO_MIME_TYPES[container],
        duration=duration,
        width=width,
        height=height,
        fps=fps,
    )

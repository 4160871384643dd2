"""\
Capture Sink - Records a live audio+image render into a video container.

While the cue player drives playback, the sink timestamps every captured
frame and every started audio buffer against the event loop clock. Each
play() call returns a future that resolves when the buffer has finished
playing on that clock. stop() assembles the recorded audio track (silence
wherever nothing played), then muxes frames and audio with FFmpeg.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from abc import ABC, abstractmethod
from math import ceil
from pathlib import Path
from typing import Optional

import numpy as np
from pydub.utils import which
from PyQt6.QtGui import QImage

from config import CAPTURE_SAMPLE_RATE, CAPTURE_CHANNELS, VIDEO_BITRATE, VIDEO_CONTAINER
from core.errors import CaptureSinkFailure
from core.resampler import conform
from exporters.wav_encoder import encode_wav_bytes
from models.assets import VIDEO_MIME_TYPES, FrameConfig
from models.audio import SampleBuffer

logger = logging.getLogger(__name__)


class CaptureSink(ABC):
    """Real-time capture of the rendering surface plus live audio.

    A sink is owned by exactly one export session.
    """

    @property
    @abstractmethod
    def mime_type(self) -> str:
        ...

    @property
    @abstractmethod
    def elapsed(self) -> float:
        """Seconds since start() on the capture clock"""

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    def capture_frame(self, image: QImage) -> None:
        """Show *image* from now until the next captured frame"""

    @abstractmethod
    def play(self, buffer: SampleBuffer) -> asyncio.Future:
        """Start playing *buffer* now; the future resolves when it has ended"""

    @abstractmethod
    async def stop(self) -> bytes:
        """Stop recording and return the finished container bytes"""

    @abstractmethod
    async def abort(self) -> None:
        """Stop recording and discard everything"""


class FfmpegCaptureSink(CaptureSink):
    """Capture sink that muxes the recording with FFmpeg on stop()"""

    def __init__(
        self,
        frame_config: FrameConfig,
        container: str = VIDEO_CONTAINER,
        sample_rate: int = CAPTURE_SAMPLE_RATE,
        channels: int = CAPTURE_CHANNELS,
        video_bitrate: int = VIDEO_BITRATE,
    ):
        if container not in VIDEO_MIME_TYPES:
            raise ValueError(f"Unsupported video container: {container}")
        self.frame_config = frame_config
        self.container = container
        self.sample_rate = sample_rate
        self.channels = channels
        self.video_bitrate = video_bitrate

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._t0 = 0.0
        self._state = "idle"  # idle | recording | flushing | stopped
        self._frames: list[tuple[float, QImage]] = []
        self._audio: list[tuple[float, SampleBuffer]] = []
        self._pending: list[asyncio.TimerHandle] = []

    @property
    def mime_type(self) -> str:
        return VIDEO_MIME_TYPES[self.container]

    @property
    def elapsed(self) -> float:
        if self._loop is None:
            return 0.0
        return self._loop.time() - self._t0

    def _require_recording(self):
        if self._state != "recording":
            raise CaptureSinkFailure(f"Capture sink is not recording (state={self._state})")

    async def start(self) -> None:
        if self._state != "idle":
            raise CaptureSinkFailure("Capture sink can only be started once")
        if which("ffmpeg") is None:
            raise CaptureSinkFailure("FFmpeg was not found; video capture is unavailable")
        self._loop = asyncio.get_running_loop()
        self._t0 = self._loop.time()
        self._state = "recording"

    def capture_frame(self, image: QImage) -> None:
        self._require_recording()
        self._frames.append((self.elapsed, image.copy()))

    def play(self, buffer: SampleBuffer) -> asyncio.Future:
        self._require_recording()
        done = self._loop.create_future()
        self._audio.append((self.elapsed, buffer))

        def _ended():
            if not done.done():
                done.set_result(None)

        self._pending.append(self._loop.call_later(buffer.duration, _ended))
        return done

    def _cancel_pending(self):
        for handle in self._pending:
            handle.cancel()
        self._pending.clear()

    async def abort(self) -> None:
        self._cancel_pending()
        self._frames.clear()
        self._audio.clear()
        self._state = "stopped"

    # -- Flush -------------------------------------------------------------

    def build_audio_track(self, total_duration: float) -> SampleBuffer:
        """Place every played buffer at its start time over silence"""
        total = int(ceil(total_duration * self.sample_rate))
        out = [np.zeros(total, dtype=np.float32) for _ in range(self.channels)]
        for started, buffer in self._audio:
            converted = conform(buffer, self.sample_rate, self.channels)
            start = min(int(round(started * self.sample_rate)), total)
            end = min(start + converted.frame_count, total)
            for channel, samples in zip(out, converted.channels):
                channel[start:end] = samples[:end - start]
        return SampleBuffer.from_channels(out, self.sample_rate)

    def frame_segments(self, total_duration: float) -> list[tuple[QImage, int]]:
        """(image, frame_count) runs covering the whole video

        Capture times are snapped to frame indices (round(t * fps)) and the
        run lengths are differences of those cumulative indices, so rounding
        never accumulates across cues. A capture landing on the same frame
        index as the previous one replaces it. The first run starts at
        frame 0.
        """
        fps = self.frame_config.fps
        total_frames = max(1, int(round(total_duration * fps)))

        starts: list[tuple[int, QImage]] = []
        for i, (started, image) in enumerate(self._frames):
            index = 0 if i == 0 else min(int(round(started * fps)), total_frames)
            if starts and starts[-1][0] == index:
                starts[-1] = (index, image)
            else:
                starts.append((index, image))

        segments = []
        for i, (index, image) in enumerate(starts):
            end = starts[i + 1][0] if i + 1 < len(starts) else total_frames
            if end > index:
                segments.append((image, end - index))
        return segments

    def _build_command(self, frame_paths: list[tuple[str, int]], audio_path: str,
                       total_duration: float, output_path: str) -> list[str]:
        width, height, fps = self.frame_config.width, self.frame_config.height, self.frame_config.fps
        cmd: list[str] = [which("ffmpeg") or "ffmpeg", "-y", "-hide_banner", "-loglevel", "error"]

        # One spare frame per input; trim cuts each run to its exact frame count
        for path, frame_count in frame_paths:
            input_seconds = (frame_count + 1) / fps
            cmd += ["-loop", "1", "-framerate", str(fps), "-t", f"{input_seconds:.6f}", "-i", path]

        audio_input_index = len(frame_paths)
        cmd += ["-i", audio_path]

        filter_parts = [
            f"[{i}:v]scale={width}:{height},setsar=1,format=yuv420p,fps={fps},"
            f"trim=end_frame={frame_count},setpts=PTS-STARTPTS[v{i}]"
            for i, (_, frame_count) in enumerate(frame_paths)
        ]
        concat_inputs = "".join(f"[v{i}]" for i in range(len(frame_paths)))
        filter_parts.append(f"{concat_inputs}concat=n={len(frame_paths)}:v=1:a=0[vout]")

        cmd += [
            "-filter_complex",
            ";".join(filter_parts),
            "-map",
            "[vout]",
            "-map",
            f"{audio_input_index}:a:0",
            "-t",
            f"{total_duration}",
            "-r",
            str(fps),
        ]

        if self.container == "webm":
            cmd += [
                "-c:v",
                "libvpx-vp9",
                "-b:v",
                str(self.video_bitrate),
                "-deadline",
                "realtime",
                "-cpu-used",
                "8",
                "-c:a",
                "libopus",
                "-ar",
                "48000",
                "-f",
                "webm",
            ]
        else:
            cmd += [
                "-c:v",
                "libx264",
                "-preset",
                "ultrafast",
                "-crf",
                "28",
                "-pix_fmt",
                "yuv420p",
                "-c:a",
                "aac",
                "-movflags",
                "+faststart",
                "-f",
                "mp4",
            ]
        cmd.append(output_path)
        return cmd

    async def stop(self) -> bytes:
        self._require_recording()
        total_duration = self.elapsed
        self._state = "flushing"
        self._cancel_pending()

        if total_duration <= 0:
            raise CaptureSinkFailure("Nothing was captured")
        if not self._frames:
            raise CaptureSinkFailure("No frame was captured")

        try:
            with tempfile.TemporaryDirectory(prefix="rde_capture_") as tmp:
                tmp_dir = Path(tmp)

                frame_paths = []
                for i, (image, frame_count) in enumerate(self.frame_segments(total_duration)):
                    path = str(tmp_dir / f"frame_{i:04d}.png")
                    if not image.save(path, "PNG"):
                        raise CaptureSinkFailure(f"Failed to write frame {i}")
                    frame_paths.append((path, frame_count))

                audio_path = tmp_dir / "audio.wav"
                audio_path.write_bytes(encode_wav_bytes(self.build_audio_track(total_duration)))

                output_path = str(tmp_dir / f"capture.{self.container}")
                cmd = self._build_command(frame_paths, str(audio_path), total_duration, output_path)

                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                )
                out, _ = await proc.communicate()
                if proc.returncode != 0:
                    tail = "\n".join(out.decode("utf-8", errors="replace").splitlines()[-40:])
                    raise CaptureSinkFailure(f"FFmpeg capture failed (code={proc.returncode})\n{tail}")

                data = Path(output_path).read_bytes()
        except OSError as e:
            raise CaptureSinkFailure(f"Capture flush failed: {e}") from e
        finally:
            self._frames.clear()
            self._audio.clear()
            self._state = "stopped"

        logger.info("Captured %.2fs of video (%d bytes, %s)", total_duration, len(data), self.container)
        return data

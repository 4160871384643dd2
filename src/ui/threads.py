import asyncio
import threading
import traceback
from typing import Optional

from PyQt6.QtCore import QThread, pyqtSignal

from core.errors import ExportCancelled
from models.assets import AudioFormat, FrameConfig
from models.cue import CharacterRegistry, SceneRegistry, Timeline
from runtime_config import ExportConfig, get_config


class AudioExportThread(QThread):
    """Background thread for audio export (merge + encode)"""
    progress = pyqtSignal(int, str)  # progress %, status message
    finished = pyqtSignal(bool, str, object)  # success, message, EncodedAudioAsset

    def __init__(self, timeline: Timeline, prefer: AudioFormat = AudioFormat.MP3,
                 config: Optional[ExportConfig] = None):
        super().__init__()
        # Snapshot so later edits to the timeline do not leak into this export
        self.timeline = Timeline(list(timeline.snapshot()))
        self.prefer = prefer
        self.config = config or get_config()

    def run(self):
        try:
            from exporters.audio_export import export_audio

            asset, merged = export_audio(
                self.timeline,
                prefer=self.prefer,
                config=self.config,
                progress_callback=self._on_progress,
            )
            if asset.is_fallback:
                message = f"{self.prefer.value.upper()} encoding unavailable, exported WAV ({merged.duration:.1f}s)"
            else:
                message = f"Exported {asset.kind.value.upper()} ({merged.duration:.1f}s)"
            self.finished.emit(True, message, asset)

        except Exception as e:
            traceback.print_exc()
            self.finished.emit(False, f"Audio export failed: {str(e)}", None)

    def _on_progress(self, progress: int, message: str):
        self.progress.emit(progress, message)


class VideoExportThread(QThread):
    """Background thread for video export (real-time cue playback + capture)"""
    progress = pyqtSignal(int, str)  # progress %, status message
    finished = pyqtSignal(bool, str, object)  # success, message, VideoAsset

    def __init__(self, timeline: Timeline, frame_config: Optional[FrameConfig] = None,
                 cast: Optional[CharacterRegistry] = None, scenes: Optional[SceneRegistry] = None,
                 config: Optional[ExportConfig] = None, sink_factory=None):
        super().__init__()
        self.timeline = Timeline(list(timeline.snapshot()))
        self.config = config or get_config()
        self.frame_config = frame_config or self.config.frame_config()
        self.cast = cast
        self.scenes = scenes
        self.sink_factory = sink_factory
        self._cancel_event = threading.Event()

    def cancel(self):
        """Request cancellation; takes effect before the next cue"""
        self._cancel_event.set()

    def run(self):
        try:
            from exporters.video_renderer import render_video

            self.progress.emit(0, "Initializing...")
            asset = asyncio.run(render_video(
                self.timeline,
                self.frame_config,
                cast=self.cast,
                scenes=self.scenes,
                config=self.config,
                sink_factory=self.sink_factory,
                cancel_event=self._cancel_event,
                progress_callback=self._on_progress,
            ))
            self.finished.emit(True, f"Video exported ({asset.duration:.1f}s)", asset)

        except ExportCancelled:
            self.finished.emit(False, "Video export was cancelled.", None)
        except Exception as e:
            traceback.print_exc()
            self.finished.emit(False, f"Video generation failed: {str(e)}", None)

    def _on_progress(self, progress: int, message: str):
        self.progress.emit(progress, message)

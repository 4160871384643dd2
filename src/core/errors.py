"""
Export Errors

MalformedAudioCue and CaptureSinkFailure are fatal for the current export.
EncodingUnavailable and FrameLoadFailure are recovered locally (lossless
fallback, frame hold). A playback timeout is not an error; it is only logged.
"""


class ExportError(Exception):
    """Base class for all export failures"""


class MalformedAudioCue(ExportError):
    """A cue's SampleBuffer is structurally invalid"""

    def __init__(self, cue_index: int, reason: str):
        self.cue_index = cue_index
        self.reason = reason
        super().__init__(f"Cue {cue_index} has malformed audio: {reason}")


class EncodingUnavailable(ExportError):
    """The lossy codec could not initialize or encode a block"""


class FrameLoadFailure(ExportError):
    """An image reference could not be decoded"""


class CaptureSinkFailure(ExportError):
    """The capture sink failed while rendering or flushing"""


class ExportCancelled(ExportError):
    """The export was cancelled between cues; partial output was discarded"""

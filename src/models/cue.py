"""
Cues - Timeline entries for a radio drama export.

A Timeline is an ordered list of Cues (dialogue, sound effect, or a silent
image-only beat). Insertion order is playback order; the export path never
reorders or drops a cue.

Character portraits and scene backgrounds live in name-keyed registries so
that the frame selector can fall back to them when a cue has no image.
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional

from models.audio import SampleBuffer

# Opaque image handle: a decoded QImage, encoded image bytes (PNG/JPEG),
# or a base64 / data: URL string.
ImageRef = Any


@dataclass
class Cue:
    """One entry on the drama timeline.

    Attributes:
        audio: Generated speech/SFX samples, or None for a silent cue.
        image: The cue's own generated image, if any.
        character: Speaking character name (looked up in the cast).
        location: Scene name (looked up in the scene registry).
        silence_duration: How long to hold the frame when there is no
            audio. None means the configured default.
    """
    audio: Optional[SampleBuffer] = None
    image: Optional[ImageRef] = None
    character: str = ""
    location: str = ""
    cue_type: str = "speech"  # "speech" | "sfx"
    text: str = ""
    silence_duration: Optional[float] = None
    uuid: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def has_audio(self) -> bool:
        return self.audio is not None

    def duration(self, default_silence: float) -> float:
        """Logical duration: audio length, or the silence hold length."""
        if self.audio is not None:
            return self.audio.duration
        if self.silence_duration is not None:
            return float(self.silence_duration)
        return float(default_silence)


class Timeline:
    """Ordered sequence of cues."""

    def __init__(self, cues: Optional[List[Cue]] = None):
        self._cues: list[Cue] = list(cues or [])

    def add(self, cue: Cue) -> None:
        self._cues.append(cue)

    def snapshot(self) -> tuple[Cue, ...]:
        """Immutable view of the cue order for one export call."""
        return tuple(self._cues)

    def audio_cues(self) -> list[tuple[int, Cue]]:
        """(index, cue) for every cue that carries audio, in order."""
        return [(i, c) for i, c in enumerate(self._cues) if c.has_audio]

    def audio_duration(self) -> float:
        """Sum of the durations of all audio-bearing cues (seconds)."""
        return sum(c.audio.duration for _, c in self.audio_cues())

    def duration(self, default_silence: float, inter_cue_pause: float = 0.0) -> float:
        """Total video timeline duration, including pauses between cues."""
        if not self._cues:
            return 0.0
        total = sum(c.duration(default_silence) for c in self._cues)
        return total + inter_cue_pause * (len(self._cues) - 1)

    def __len__(self) -> int:
        return len(self._cues)

    def __iter__(self) -> Iterator[Cue]:
        return iter(self._cues)

    def __getitem__(self, index: int) -> Cue:
        return self._cues[index]


# ---------------------------------------------------------------------------
# Cast and scenes
# ---------------------------------------------------------------------------

@dataclass
class CastMember:
    """A character with an optional portrait image."""
    name: str
    image: Optional[ImageRef] = None
    voice: str = ""
    description: str = ""


@dataclass
class SceneDefinition:
    """A location with an optional background image."""
    name: str
    image: Optional[ImageRef] = None
    visual_description: str = ""


class _NamedRegistry:
    """Name-keyed registry; later additions replace earlier ones."""

    def __init__(self, entries=None):
        self._entries: dict = {}
        for entry in entries or []:
            self.add(entry)

    def add(self, entry) -> None:
        self._entries[entry.name] = entry

    def remove(self, name: str):
        """Remove and return the entry, or ``None`` if not found."""
        return self._entries.pop(name, None)

    def get(self, name: str):
        if not name:
            return None
        return self._entries.get(name)

    def image_for(self, name: str) -> Optional[ImageRef]:
        """Image registered under *name*, or None."""
        entry = self.get(name)
        return entry.image if entry is not None else None

    def all(self) -> list:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: str) -> bool:
        return name in self._entries


class CharacterRegistry(_NamedRegistry):
    """Cast members by name."""

    def get(self, name: str) -> Optional[CastMember]:
        return super().get(name)


class SceneRegistry(_NamedRegistry):
    """Scene definitions by name."""

    def get(self, name: str) -> Optional[SceneDefinition]:
        return super().get(name)

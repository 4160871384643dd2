"""
Frame Selector - Decide which still image a cue shows in the video.

Candidates are evaluated in a fixed priority order and the first present
one wins:

  1. the cue's own generated image (most specific)
  2. the speaking character's portrait
  3. the scene/location background

If none is present the caller keeps showing the previous frame.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from models.cue import CharacterRegistry, Cue, ImageRef, SceneRegistry


class FrameSource(Enum):
    CUE = "cue"
    CHARACTER = "character"
    SCENE = "scene"


@dataclass(frozen=True)
class FrameSelection:
    image: ImageRef
    source: FrameSource


def frame_candidates(
    cue: Cue,
    cast: Optional[CharacterRegistry] = None,
    scenes: Optional[SceneRegistry] = None,
) -> list[tuple[FrameSource, Optional[ImageRef]]]:
    """Tagged priority list of image candidates for *cue*."""
    return [
        (FrameSource.CUE, cue.image),
        (FrameSource.CHARACTER, cast.image_for(cue.character) if cast is not None else None),
        (FrameSource.SCENE, scenes.image_for(cue.location) if scenes is not None else None),
    ]


def resolve_frame(
    cue: Cue,
    cast: Optional[CharacterRegistry] = None,
    scenes: Optional[SceneRegistry] = None,
) -> Optional[FrameSelection]:
    """First present candidate with its source tag, or None."""
    for source, image in frame_candidates(cue, cast, scenes):
        if image is not None:
            return FrameSelection(image=image, source=source)
    return None


def select_frame(
    cue: Cue,
    cast: Optional[CharacterRegistry] = None,
    scenes: Optional[SceneRegistry] = None,
) -> Optional[ImageRef]:
    """Image to show for *cue*, or None to hold the previous frame."""
    selection = resolve_frame(cue, cast, scenes)
    return selection.image if selection is not None else None

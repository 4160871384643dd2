"""
Export Data Models.

Public API:

  Audio:
    SampleBuffer

  Timeline:
    Cue, Timeline, ImageRef
    CastMember, CharacterRegistry
    SceneDefinition, SceneRegistry

  Assets:
    AudioFormat, EncodedAudioAsset, VideoAsset, FrameConfig
"""

from models.audio import SampleBuffer
from models.cue import (
    Cue,
    Timeline,
    ImageRef,
    CastMember,
    CharacterRegistry,
    SceneDefinition,
    SceneRegistry,
)
from models.assets import (
    AudioFormat,
    EncodedAudioAsset,
    VideoAsset,
    FrameConfig,
)

__all__ = [
    # Audio
    "SampleBuffer",
    # Timeline
    "Cue",
    "Timeline",
    "ImageRef",
    "CastMember",
    "CharacterRegistry",
    "SceneDefinition",
    "SceneRegistry",
    # Assets
    "AudioFormat",
    "EncodedAudioAsset",
    "VideoAsset",
    "FrameConfig",
]

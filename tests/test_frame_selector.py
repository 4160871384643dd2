import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from exporters.frame_selector import FrameSource, frame_candidates, resolve_frame, select_frame
from models.cue import CastMember, CharacterRegistry, Cue, SceneDefinition, SceneRegistry


@pytest.fixture
def cast():
    return CharacterRegistry([CastMember(name="Alice", image=b"alice"), CastMember(name="Bob")])


@pytest.fixture
def scenes():
    return SceneRegistry([SceneDefinition(name="Forest", image=b"forest")])


def test_cue_image_wins(cast, scenes):
    cue = Cue(image=b"own", character="Alice", location="Forest")
    selection = resolve_frame(cue, cast, scenes)
    assert selection.image == b"own"
    assert selection.source is FrameSource.CUE


def test_character_before_scene(cast, scenes):
    cue = Cue(character="Alice", location="Forest")
    assert resolve_frame(cue, cast, scenes).source is FrameSource.CHARACTER
    assert select_frame(cue, cast, scenes) == b"alice"


def test_scene_when_character_has_no_image(cast, scenes):
    cue = Cue(character="Bob", location="Forest")
    selection = resolve_frame(cue, cast, scenes)
    assert selection.source is FrameSource.SCENE
    assert selection.image == b"forest"


def test_nothing_found_returns_none(cast, scenes):
    assert select_frame(Cue(character="Nobody", location="Moon"), cast, scenes) is None
    assert resolve_frame(Cue()) is None


def test_registries_are_optional():
    assert select_frame(Cue(character="Alice", location="Forest")) is None
    assert select_frame(Cue(image=b"own")) == b"own"


def test_candidates_are_in_priority_order(cast, scenes):
    cue = Cue(character="Alice", location="Forest")
    assert frame_candidates(cue, cast, scenes) == [
        (FrameSource.CUE, None),
        (FrameSource.CHARACTER, b"alice"),
        (FrameSource.SCENE, b"forest"),
    ]

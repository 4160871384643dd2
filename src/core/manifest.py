"""
Cue Manifest - Build a Timeline from a JSON list of generated files.

Example::

    {
      "cues": [
        {"audio": "lines/001.wav", "character": "Alice", "location": "Forest"},
        {"image": "images/title.png", "silence": 3.0},
        {"audio": "sfx/thunder.mp3", "type": "sfx", "audio_start": 1.5, "audio_end": 4.0}
      ],
      "cast": [{"name": "Alice", "image": "portraits/alice.png"}],
      "scenes": [{"name": "Forest", "image": "scenes/forest.png"}]
    }

Relative paths are resolved against the manifest's directory.
"""
import json
from pathlib import Path
from typing import Optional

from core.audio_loader import AudioLoader
from models.cue import CastMember, CharacterRegistry, Cue, SceneDefinition, SceneRegistry, Timeline


class CueManifest:
    """Timeline plus cast/scene registries loaded from a manifest file"""

    def __init__(self, timeline: Timeline, cast: CharacterRegistry, scenes: SceneRegistry):
        self.timeline = timeline
        self.cast = cast
        self.scenes = scenes

    @classmethod
    def load(cls, manifest_path: str | Path, loader: Optional[AudioLoader] = None) -> "CueManifest":
        manifest_path = Path(manifest_path)
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
        return cls.from_dict(data, manifest_path.parent, loader)

    @classmethod
    def from_dict(
        cls,
        data: dict,
        base_dir: str | Path = ".",
        loader: Optional[AudioLoader] = None
    ) -> "CueManifest":
        base_dir = Path(base_dir)
        loader = loader or AudioLoader()

        def _image(path: Optional[str]) -> Optional[bytes]:
            if not path:
                return None
            return (base_dir / path).read_bytes()

        timeline = Timeline()
        for item in data.get("cues", []):
            audio = None
            if item.get("audio"):
                audio = loader.load_audio(base_dir / item["audio"])
                if "audio_start" in item or "audio_end" in item:
                    audio = loader.extract_segment(
                        audio,
                        float(item.get("audio_start", 0.0)),
                        float(item.get("audio_end", audio.duration)),
                    )
            timeline.add(Cue(
                audio=audio,
                image=_image(item.get("image")),
                character=item.get("character", ""),
                location=item.get("location", ""),
                cue_type=item.get("type", "speech"),
                text=item.get("text", ""),
                silence_duration=item.get("silence"),
            ))

        cast = CharacterRegistry(
            CastMember(name=c["name"], image=_image(c.get("image")), voice=c.get("voice", ""))
            for c in data.get("cast", [])
        )
        scenes = SceneRegistry(
            SceneDefinition(name=s["name"], image=_image(s.get("image")),
                            visual_description=s.get("visual_description", ""))
            for s in data.get("scenes", [])
        )
        return cls(timeline, cast, scenes)

"""
Radio Drama Exporter - Entry Point

Usage:
  python src/main.py audio  drama.json -o drama.mp3 [--format wav]
  python src/main.py video  drama.json -o drama.webm [--aspect 9:16]
  python src/main.py cover  drama.json --cover cover.png -o cover.webm
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add src to path for running as script
sys.path.insert(0, str(Path(__file__).parent))

from core.errors import ExportError
from core.manifest import CueManifest
from exporters.audio_export import export_audio
from exporters.audio_merger import AudioMerger
from exporters.video_renderer import render_cover_video, render_video
from models.assets import AudioFormat
from runtime_config import ExportConfig, get_config

logger = logging.getLogger("radio_drama_exporter")


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    ap = argparse.ArgumentParser(description="Export a radio drama cue timeline as audio or video")
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    audio = sub.add_parser("audio", help="Merge all cue audio into one MP3/WAV file")
    audio.add_argument("manifest", help="Cue manifest JSON")
    audio.add_argument("-o", "--output", required=True, help="Output audio file")
    audio.add_argument("--format", choices=["mp3", "wav"], default="mp3")
    audio.add_argument("--rate", type=int, default=None, help="Target sample rate")
    audio.add_argument("--channels", type=int, choices=[1, 2], default=None)

    video = sub.add_parser("video", help="Render the timeline as a video (plays in real time)")
    video.add_argument("manifest", help="Cue manifest JSON")
    video.add_argument("-o", "--output", required=True, help="Output video file")
    video.add_argument("--aspect", choices=["16:9", "9:16"], default=None)
    video.add_argument("--container", choices=["webm", "mp4"], default=None)
    video.add_argument("--silence", type=float, default=None, help="Hold time for cues without audio")
    video.add_argument("--pause", type=float, default=None, help="Pause between cues")

    cover = sub.add_parser("cover", help="Render merged audio over a single cover image")
    cover.add_argument("manifest", help="Cue manifest JSON")
    cover.add_argument("--cover", required=True, help="Cover image file")
    cover.add_argument("-o", "--output", required=True, help="Output video file")
    cover.add_argument("--container", choices=["webm", "mp4"], default="webm")

    return ap.parse_args(argv)


def _config_from_args(args: argparse.Namespace) -> ExportConfig:
    overrides = get_config().to_dict()
    for arg_name, field_name in (
        ("rate", "sample_rate"),
        ("channels", "channels"),
        ("container", "video_container"),
        ("silence", "default_silence_seconds"),
        ("pause", "inter_cue_pause_seconds"),
    ):
        value = getattr(args, arg_name, None)
        if value is not None:
            overrides[field_name] = value
    return ExportConfig.from_dict(overrides)


def _print_progress(percent: int, message: str):
    logger.info("[%3d%%] %s", percent, message)


def main(argv=None) -> int:
    """Command line entry point"""
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = _config_from_args(args)
        manifest = CueManifest.load(args.manifest)

        if args.command == "audio":
            asset, _ = export_audio(
                manifest.timeline,
                prefer=AudioFormat(args.format),
                config=config,
                progress_callback=_print_progress,
            )
            output = Path(args.output)
            if asset.kind.value != args.format:
                output = output.with_suffix(f".{asset.kind.value}")
            asset.save(output)

        elif args.command == "video":
            asset = asyncio.run(render_video(
                manifest.timeline,
                config.frame_config(args.aspect),
                cast=manifest.cast,
                scenes=manifest.scenes,
                config=config,
                progress_callback=_print_progress,
            ))
            output = asset.save(args.output)

        else:
            merged = AudioMerger(config.sample_rate, config.channels).merge(manifest.timeline)
            asset = render_cover_video(
                merged.buffer,
                Path(args.cover).read_bytes(),
                container=args.container,
                progress_callback=_print_progress,
            )
            output = asset.save(args.output)

    except (ExportError, ValueError, OSError) as e:
        logger.error("%s", e)
        return 1

    logger.info("Saved %s", output)
    return 0


if __name__ == "__main__":
    sys.exit(main())

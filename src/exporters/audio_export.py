"""
Audio Export - Merge the timeline and encode it in one call
"""
import logging
from typing import Callable, Optional

from exporters.audio_merger import AudioMerger, MergedAudio
from exporters.mp3_encoder import EncoderFactory, Mp3BlockEncoder, encode_audio
from models.assets import AudioFormat, EncodedAudioAsset
from models.cue import Timeline
from runtime_config import ExportConfig, get_config

logger = logging.getLogger(__name__)


def export_audio(
    timeline: Timeline,
    prefer: AudioFormat = AudioFormat.MP3,
    config: Optional[ExportConfig] = None,
    progress_callback: Optional[Callable[[int, str], None]] = None,
    encoder_factory: EncoderFactory = Mp3BlockEncoder,
) -> tuple[EncodedAudioAsset, MergedAudio]:
    """Merge every audio cue and encode the result

    Succeeds with some valid container as long as the timeline is
    well-formed: MP3 is preferred, WAV is the guaranteed fallback.

    Args:
        timeline: Cues to export
        prefer: Requested container
        config: Export settings (defaults to the global config)
        progress_callback: Called with (percent, message)
        encoder_factory: MP3 block encoder constructor

    Returns:
        Tuple of (encoded asset, merged audio)

    Raises:
        MalformedAudioCue: a cue's audio buffer is structurally invalid
    """
    config = config or get_config()

    if progress_callback:
        progress_callback(10, "Merging audio...")
    merged = AudioMerger(config.sample_rate, config.channels).merge(timeline)

    if progress_callback:
        progress_callback(50, f"Encoding {prefer.value.upper()}...")
    asset = encode_audio(
        merged.buffer,
        prefer=prefer,
        bitrate_kbps=config.mp3_bitrate_kbps,
        block_size=config.mp3_block_size,
        encoder_factory=encoder_factory,
    )

    if asset.is_fallback:
        logger.warning("Exported WAV instead of %s", prefer.value.upper())
    logger.info("Exported %.2fs of audio as %s (%d bytes)", merged.duration, asset.kind.value, len(asset))

    if progress_callback:
        progress_callback(100, "Done")
    return asset, merged

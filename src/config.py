"""
Radio Drama Exporter Configuration
"""
# Audio export settings
EXPORT_SAMPLE_RATE = 44100  # Standard export sample rate
EXPORT_CHANNELS = 1  # Mono is safer for mixed speech/SFX sources
SPEECH_SAMPLE_RATE = 24000  # Raw PCM rate returned by the speech service

# Lossy (MP3) settings
MP3_BITRATE_KBPS = 128
MP3_BLOCK_SIZE = 1152  # Must be a multiple of 576 (MPEG frame granularity)

# Cue timing
DEFAULT_SILENCE_SECONDS = 2.0  # How long an image-only cue is shown
INTER_CUE_PAUSE_SECONDS = 0.2  # Small pause between lines
PLAYBACK_TIMEOUT_MARGIN_SECONDS = 0.1  # Extra wait before giving up on a completion signal

# Video settings
VIDEO_WIDTH = 1920
VIDEO_HEIGHT = 1080
VIDEO_FPS = 30
VIDEO_CONTAINER = "webm"  # 'webm' (VP9 + Opus) or 'mp4' (H.264 + AAC)
VIDEO_BITRATE = 8_000_000  # 8 Mbps for high quality
CAPTURE_SAMPLE_RATE = 44100
CAPTURE_CHANNELS = 2

ASPECT_RATIOS = {
    '16:9': (1920, 1080),
    '9:16': (1080, 1920),
}

# Cover video (single still image + merged audio)
COVER_VIDEO_WIDTH = 1280
COVER_VIDEO_HEIGHT = 720
COVER_VIDEO_FPS = 1  # 1 fps is enough for a static image

"""
Configuration settings related to video conversion.

This module defines the recognised input extensions, the hardware and software
encoder profiles, the default conversion settings and the accepted value
ranges for user-supplied options.
"""
from .common import USER_CONFIG

_defaults_config = USER_CONFIG.get("defaults") or {}

# --- Input Discovery ---
VIDEO_EXTENSIONS = (".mp4", ".mkv", ".avi", ".mov", ".webm")

# Output folder created inside the input folder when none is given.
OUTPUT_DIR_TEMPLATE = "converted_videos_{fps}fps"
OUTPUT_NAME_TEMPLATE = "{stem}_{fps}fps{suffix}"

# --- Default Conversion Settings ---
DEFAULT_TARGET_FPS = float(_defaults_config.get("target_fps", 30))
DEFAULT_KEEP_AUDIO = bool(_defaults_config.get("keep_audio", False))
DEFAULT_AUDIO_BITRATE = int(_defaults_config.get("audio_bitrate", 192))  # kbps
DEFAULT_CRF = int(_defaults_config.get("crf", 16))
DEFAULT_CPU_LIMIT = int(_defaults_config.get("cpu_limit", 75))  # percent
DEFAULT_USE_GPU = bool(_defaults_config.get("use_gpu", False))

# --- Accepted Ranges ---
MAX_TARGET_FPS = 1000.0
MIN_CRF, MAX_CRF = 0, 51
MIN_AUDIO_BITRATE, MAX_AUDIO_BITRATE = 1, 512
MIN_CPU_LIMIT, MAX_CPU_LIMIT = 1, 100

# --- Timing ---
# Decimal places used in the setpts/atempo filter arguments.
TIMING_PRECISION = 5
TEMPO_STAGE_PRECISION = 3
MIN_TEMPO_STAGE = 0.5
MAX_TEMPO_STAGE = 2.0

# --- Encoder Profiles ---
# Each vendor has its own quality and preset flags; they are not interchangeable.
ENCODER_PROFILES = {
    "nvidia": {
        "encoder": "h264_nvenc",
        "quality_flags": ("-cq",),
        "preset_flag": "-preset",
        "preset": "p4",
    },
    "amd": {
        "encoder": "h264_amf",
        "quality_flags": ("-qp_i", "-qp_p", "-qp_b"),
        "preset_flag": "-quality",
        "preset": "balanced",
    },
    "intel": {
        "encoder": "h264_qsv",
        "quality_flags": ("-global_quality",),
        "preset_flag": "-preset",
        "preset": "medium",
    },
    "cpu": {
        "encoder": "libx264",
        "quality_flags": ("-crf",),
        "preset_flag": "-preset",
        "preset": "slow",
    },
}
# Hardware probing order.
HARDWARE_PRIORITY = ("nvidia", "amd", "intel")
PIXEL_FORMAT = "yuv420p"

# Synthetic clip used for the trial encode of a hardware encoder.
TRIAL_ENCODE_SOURCE = "color=black:s=320x240:d=1"

# --- Audio ---
AUDIO_ENCODER = "aac"

# --- Thumbnails ---
THUMBNAIL_SEEK_SECONDS = 1
THUMBNAIL_WIDTH = 320
THUMBNAIL_JPEG_QUALITY = 5

"""
Command-Line Interface (CLI) setup for Free FPS.

This module uses Python's `argparse` to define and parse the command-line
arguments, and turns the arguments of the ``convert`` command into the
immutable `ConversionOptions` the pipeline runs with.
"""
import argparse
from pathlib import Path
from typing import List, Optional

from .config.common import FFMPEG_PATH, FFPROBE_PATH, LOG_DIR
from .config.video import (
    DEFAULT_AUDIO_BITRATE,
    DEFAULT_CPU_LIMIT,
    DEFAULT_CRF,
    DEFAULT_KEEP_AUDIO,
    DEFAULT_TARGET_FPS,
    DEFAULT_USE_GPU,
)
from .domain.models import ConversionOptions, Vendor


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="freefps",
        description="Retime videos to a new frame rate without dropping or duplicating frames.",
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO", choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the console logging level."
    )
    parser.add_argument(
        "--log-dir", type=Path, default=LOG_DIR,
        help="Directory for the rotating log file and the failed-command log."
    )
    parser.add_argument(
        "--ffmpeg", type=Path, default=FFMPEG_PATH,
        help="Path to the ffmpeg binary (default: system-installed)."
    )
    parser.add_argument(
        "--ffprobe", type=Path, default=FFPROBE_PATH,
        help="Path to the ffprobe binary (default: system-installed, optional)."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    convert = subparsers.add_parser("convert", help="Convert the videos of a folder.")
    convert.add_argument("folder", type=Path, help="Folder containing the videos.")
    convert.add_argument(
        "--fps", type=float, default=DEFAULT_TARGET_FPS,
        help=f"Target frame rate, fractional values allowed (default: {DEFAULT_TARGET_FPS:g})."
    )
    convert.add_argument(
        "--files", type=Path, nargs="+", default=None,
        help="Convert only these files (inside FOLDER), in this order."
    )
    convert.add_argument(
        "--output", type=Path, default=None,
        help="Output folder (default: FOLDER/converted_videos_<fps>fps)."
    )
    convert.add_argument(
        "--keep-audio", action="store_true", default=DEFAULT_KEEP_AUDIO,
        help="Keep the audio track, tempo-adjusted to stay in sync."
    )
    convert.add_argument(
        "--audio-bitrate", type=int, default=DEFAULT_AUDIO_BITRATE,
        help=f"AAC bitrate in kbps when keeping audio (default: {DEFAULT_AUDIO_BITRATE})."
    )
    convert.add_argument(
        "--crf", type=int, default=None,
        help=f"Encode at this constant quality instead of matching the source bitrate (fallback: {DEFAULT_CRF})."
    )
    convert.add_argument(
        "--cpu-limit", type=int, default=DEFAULT_CPU_LIMIT,
        help=f"Percentage of CPU threads the encoder may use (default: {DEFAULT_CPU_LIMIT})."
    )
    convert.add_argument(
        "--gpu", action="store_true", default=DEFAULT_USE_GPU,
        help="Use a hardware encoder if one is available."
    )
    convert.add_argument(
        "--gpu-vendor", type=str, default=None, choices=[v.value for v in Vendor if v.is_hardware],
        help="Only try this vendor's hardware encoder (implies --gpu)."
    )
    convert.add_argument(
        "--no-overwrite", action="store_true",
        help="Fail files whose output already exists instead of replacing it."
    )
    convert.add_argument(
        "--no-report", action="store_true",
        help="Do not write a conversion report into the output folder."
    )

    scan = subparsers.add_parser("scan", help="List the videos of a folder that would be converted.")
    scan.add_argument("folder", type=Path, help="Folder containing the videos.")
    scan.add_argument(
        "--thumbnail-dir", type=Path, default=None,
        help="Write a JPEG preview of every video into this directory."
    )

    subparsers.add_parser("tools", help="Show which ffmpeg/ffprobe binaries are used.")
    subparsers.add_parser("gpu", help="Show which hardware encoders work on this machine.")
    return parser


def get_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parses command-line arguments for Free FPS.

    Returns:
        argparse.Namespace: An object containing the parsed command-line
                            arguments as attributes.
    """
    return build_parser().parse_args(argv)


def options_from_args(args: argparse.Namespace) -> ConversionOptions:
    """Builds the batch options for the ``convert`` command."""
    gpu_vendor = Vendor(args.gpu_vendor) if args.gpu_vendor else None
    return ConversionOptions(
        target_fps=args.fps,
        keep_audio=args.keep_audio,
        audio_bitrate=args.audio_bitrate,
        use_custom_quality=args.crf is not None,
        crf=args.crf if args.crf is not None else DEFAULT_CRF,
        cpu_limit=args.cpu_limit,
        use_gpu=args.gpu or gpu_vendor is not None,
        gpu_vendor=gpu_vendor,
        ffmpeg_path=args.ffmpeg,
        ffprobe_path=args.ffprobe,
        output_folder=args.output,
        overwrite=not args.no_overwrite,
        write_report=not args.no_report,
    )

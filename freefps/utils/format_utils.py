"""
Formatting helpers for log lines, output names and the ffmpeg command line.
"""
from datetime import timedelta
from fractions import Fraction
from pathlib import Path
from typing import Iterable, Union

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")
# Largest denominator kept when turning a float rate back into a ratio.
MAX_RATE_DENOMINATOR = 1_001_000


def format_timedelta(elapsed: timedelta) -> str:
    """``HH:MM:SS``; anything that is not a timedelta renders as zero."""
    if not isinstance(elapsed, timedelta):
        return "00:00:00"
    minutes, seconds = divmod(int(elapsed.total_seconds()), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def formatted_size(size_bytes: float) -> str:
    """Binary-prefixed size for listings: 1536 -> "1.50 KB", 2 MiB -> "2 MB"."""
    size = max(0.0, float(size_bytes))
    unit_index = 0
    while size >= 1024 and unit_index < len(SIZE_UNITS) - 1:
        size /= 1024
        unit_index += 1
    if unit_index == 0:
        return f"{int(size)} B"
    return f"{size:.2f} {SIZE_UNITS[unit_index]}".replace(".00", "")


def format_fps(fps: float) -> str:
    """
    Frame-rate label for file and folder names, without trailing zeros.

    25.0 becomes "25", 23.976 stays "23.976".
    """
    text = f"{float(fps):.3f}".rstrip("0").rstrip(".")
    return text or "0"


def format_rate(fps: Union[float, Fraction]) -> str:
    """
    Exact frame rate for ffmpeg's ``-r``.

    Integral rates render as integers, others as a ratio ffmpeg parses
    directly: 25.0 -> "25", 30000/1001 -> "30000/1001", 23.976 -> "2997/125".
    """
    rate = Fraction(fps).limit_denominator(MAX_RATE_DENOMINATOR)
    if rate.denominator == 1:
        return str(rate.numerator)
    return f"{rate.numerator}/{rate.denominator}"


def contains_any_extensions(path: Path, extensions: Iterable[str]) -> bool:
    """Case-insensitive suffix check; extensions may omit the leading dot."""
    wanted = {ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in extensions}
    return path.suffix.lower() in wanted

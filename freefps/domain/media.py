"""
Source files and the facts extracted from them.

`SourceFile` is what file discovery produces; `ProbeResult` is what the media
prober produces for it. Both are immutable once created.

The parse helpers in this module turn ffmpeg's human-readable diagnostic text
(``ffmpeg -i <file>`` on stderr) into structured values. They raise typed
exceptions instead of returning sentinels so the prober can decide which
missing facts are fatal.
"""
import re
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path
from typing import Optional

from .exceptions import DurationNotDetectedException, FpsNotDetectedException

# First video stream descriptor line, e.g.
#   "  Stream #0:0[0x1](und): Video: h264 (High) ..., 1920x1080, 29.97 fps, ..."
_VIDEO_STREAM_LINE_RE = re.compile(r"^\s*Stream.*Video.*$", re.MULTILINE)
_FPS_TOKEN_RE = re.compile(r"(\d+(?:\.\d+)?)\s*fps\b")
# Anchored, case-sensitive top-level header: "  Duration: 00:01:02.50, start: ..."
_DURATION_HEADER_RE = re.compile(r"^\s*Duration:\s*(\d+):(\d+):(\d+(?:\.\d+)?)", re.MULTILINE)

# ffmpeg prints NTSC rates rounded to two decimals (23.98, 29.97, 59.94).
_NTSC_BASES = (24, 30, 48, 60, 120, 240)
_NTSC_TOLERANCE = 0.01


@dataclass(frozen=True)
class SourceFile:
    """A video file selected for conversion."""

    path: Path
    name: str
    size: int

    @classmethod
    def from_path(cls, path: Path) -> "SourceFile":
        return cls(path=path, name=path.name, size=path.stat().st_size)


@dataclass(frozen=True)
class ProbeResult:
    """
    Facts about one source file.

    Attributes:
        fps: Source frame rate as an exact fraction (24000/1001 rather than 23.976).
        duration: Container duration in seconds, or None if it could not be read.
        creation_time: The container's ``creation_time`` tag (ISO-8601), if present.
        modified_time: Filesystem mtime (POSIX timestamp), the creation-time fallback.
        size: File size in bytes.
    """

    fps: Fraction
    duration: Optional[float]
    creation_time: Optional[str]
    modified_time: float
    size: int


def normalize_fps(value: float | str | Fraction) -> Fraction:
    """
    Converts a printed frame rate to an exact fraction.

    Values within 0.01 of an NTSC rate (n * 1000/1001) snap to that rate so
    that "23.98" from ffmpeg's diagnostic text does not drift against the
    real 24000/1001 stream clock.
    """
    if isinstance(value, Fraction):
        fps = value
    else:
        fps = Fraction(str(value))
    for base in _NTSC_BASES:
        ntsc = Fraction(base * 1000, 1001)
        if abs(float(fps) - float(ntsc)) <= _NTSC_TOLERANCE:
            return ntsc
    return fps


def parse_rational(text: Optional[str]) -> Optional[Fraction]:
    """
    Parses an ffprobe rational such as ``"30000/1001"`` or a plain number.

    Returns None for missing, malformed or non-positive values ("0/0" is what
    ffprobe reports for streams without a frame rate).
    """
    if not text:
        return None
    text = text.strip()
    try:
        if "/" in text:
            num, den = text.split("/", 1)
            if int(den) == 0:
                return None
            value = Fraction(int(num), int(den))
        else:
            value = Fraction(text)
    except (ValueError, ZeroDivisionError):
        return None
    return value if value > 0 else None


def parse_fps_from_diagnostics(text: str) -> Fraction:
    """
    Extracts the frame rate of the first video stream from ffmpeg's diagnostic output.

    Raises:
        FpsNotDetectedException: If there is no video stream line, or the line
                                 carries no numeric ``fps`` token.
    """
    stream_line = _VIDEO_STREAM_LINE_RE.search(text)
    if not stream_line:
        raise FpsNotDetectedException("No video stream found in probe output.")
    fps_match = _FPS_TOKEN_RE.search(stream_line.group(0))
    if not fps_match:
        raise FpsNotDetectedException(f"No fps value in stream line: {stream_line.group(0).strip()}")
    fps = normalize_fps(fps_match.group(1))
    if fps <= 0:
        raise FpsNotDetectedException(f"Non-positive fps value: {fps_match.group(1)}")
    return fps


def parse_duration_from_diagnostics(text: str) -> float:
    """
    Extracts the top-level ``Duration: H:MM:SS[.fraction]`` header in seconds.

    Raises:
        DurationNotDetectedException: If the header is absent (or reads ``N/A``).
    """
    match = _DURATION_HEADER_RE.search(text)
    if not match:
        raise DurationNotDetectedException("No 'Duration:' header in probe output.")
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)

"""
Inspects source files and produces a `ProbeResult` for each one.

Two strategies are tried in order:

1. `StructuredProbe` asks ffprobe (through ffmpeg-python) for JSON stream and
   format data. Frame rates come back as exact rationals.
2. `DiagnosticTextProbe` runs ``ffmpeg -i <file>`` and parses the stream
   summary it prints on stderr. This works with a bare ffmpeg install.

The first strategy that yields a frame rate wins. A missing duration is not
fatal: the file can still be retimed, it just cannot get a computed bitrate.
"""
import re
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path
from typing import List, Optional

import ffmpeg
from loguru import logger

from ..domain.exceptions import (
    DurationNotDetectedException,
    FpsNotDetectedException,
    MetadataReadFailedException,
    ProbeFailedException,
)
from ..domain.media import (
    ProbeResult,
    parse_duration_from_diagnostics,
    parse_fps_from_diagnostics,
    parse_rational,
)
from ..utils.ffmpeg_utils import run_cmd
from ..utils.time_utils import timestamp_to_iso

_CREATION_TIME_RE = re.compile(r"^\s*creation_time\s*:\s*(\S+)", re.MULTILINE)


@dataclass(frozen=True)
class StreamFacts:
    """What a single probing strategy could find out."""

    fps: Fraction
    duration: Optional[float]
    creation_time: Optional[str]


class ProbeStrategy:
    name: str = "base"

    def inspect(self, path: Path) -> StreamFacts:
        raise NotImplementedError("Subclasses must implement inspect().")


class StructuredProbe(ProbeStrategy):
    """Reads stream and format data from ffprobe's JSON output."""

    name = "ffprobe"

    def __init__(self, ffprobe_bin: str):
        self.ffprobe_bin = ffprobe_bin

    def inspect(self, path: Path) -> StreamFacts:
        try:
            info = ffmpeg.probe(str(path), cmd=self.ffprobe_bin)
        except ffmpeg.Error as e:
            stderr = e.stderr.decode("utf-8", errors="replace") if e.stderr else ""
            raise ProbeFailedException(f"ffprobe failed for {path.name}: {stderr.strip()[-500:]}") from e
        except OSError as e:
            raise ProbeFailedException(f"Could not run ffprobe: {e}") from e

        video_stream = next(
            (s for s in info.get("streams", []) if s.get("codec_type") == "video"),
            None,
        )
        if video_stream is None:
            raise FpsNotDetectedException(f"No video stream in {path.name}")

        fps = parse_rational(video_stream.get("avg_frame_rate")) or parse_rational(
            video_stream.get("r_frame_rate")
        )
        if fps is None:
            raise FpsNotDetectedException(f"ffprobe reported no usable frame rate for {path.name}")

        fmt = info.get("format", {})
        duration = None
        try:
            duration = float(fmt["duration"])
        except (KeyError, TypeError, ValueError):
            pass
        if duration is not None and duration <= 0:
            duration = None

        creation_time = (fmt.get("tags") or {}).get("creation_time") or (
            video_stream.get("tags") or {}
        ).get("creation_time")
        return StreamFacts(fps=fps, duration=duration, creation_time=creation_time)


class DiagnosticTextProbe(ProbeStrategy):
    """Parses the human-readable summary ``ffmpeg -i`` prints on stderr."""

    name = "ffmpeg"

    def __init__(self, ffmpeg_bin: str):
        self.ffmpeg_bin = ffmpeg_bin

    def inspect(self, path: Path) -> StreamFacts:
        # Without an output ffmpeg exits nonzero; the summary is still complete.
        result = run_cmd([self.ffmpeg_bin, "-hide_banner", "-i", str(path)])
        if result is None:
            raise ProbeFailedException(f"Could not run ffmpeg to inspect {path.name}")
        text = result.stderr or ""

        fps = parse_fps_from_diagnostics(text)
        try:
            duration = parse_duration_from_diagnostics(text)
        except DurationNotDetectedException:
            duration = None

        match = _CREATION_TIME_RE.search(text)
        creation_time = match.group(1) if match else None
        return StreamFacts(fps=fps, duration=duration, creation_time=creation_time)


class MediaProber:
    """
    Produces a `ProbeResult` for a source file.

    Args:
        ffmpeg_bin: Resolved ffmpeg executable. Always available.
        ffprobe_bin: Resolved ffprobe executable, or None if not installed.
    """

    def __init__(self, ffmpeg_bin: str, ffprobe_bin: Optional[str] = None):
        self.strategies: List[ProbeStrategy] = []
        if ffprobe_bin:
            self.strategies.append(StructuredProbe(ffprobe_bin))
        self.strategies.append(DiagnosticTextProbe(ffmpeg_bin))

    def probe(self, path: Path) -> ProbeResult:
        """
        Inspects one file.

        Raises:
            MetadataReadFailedException: If the file's size or mtime cannot be read.
            ProbeFailedException: If no strategy could determine the frame rate.
        """
        try:
            stat = path.stat()
        except OSError as e:
            raise MetadataReadFailedException(f"Cannot read metadata of {path}: {e}") from e

        facts = None
        last_error: Optional[ProbeFailedException] = None
        for strategy in self.strategies:
            try:
                facts = strategy.inspect(path)
                logger.debug(
                    f"Probed {path.name} with {strategy.name}: fps={facts.fps}, duration={facts.duration}"
                )
                break
            except ProbeFailedException as e:
                logger.debug(f"{strategy.name} probe failed for {path.name}: {e}")
                last_error = e

        if facts is None:
            raise last_error or ProbeFailedException(f"Could not probe {path.name}")

        if facts.duration is None:
            logger.warning(f"Duration of {path.name} could not be determined; bitrate mode is unavailable for it.")

        return ProbeResult(
            fps=facts.fps,
            duration=facts.duration,
            creation_time=facts.creation_time,
            modified_time=stat.st_mtime,
            size=stat.st_size,
        )


def resolve_creation_time(probe: ProbeResult) -> str:
    """The container's creation time if tagged, otherwise the file's mtime in the same ISO form."""
    if probe.creation_time:
        return probe.creation_time
    return timestamp_to_iso(probe.modified_time)

"""
Decides how the video stream is rate-controlled for one file.

In bitrate mode the output gets the same average bitrate as the source
carried, spread over the new (stretched or compressed) duration, so the
converted file ends up about the same size as the original. When that cannot
be computed the file is encoded at constant quality instead and the reason is
kept on the plan.
"""
from typing import Optional

from loguru import logger

from ..domain.exceptions import EmptyInputFileException, FreeFpsException, InvalidNewDurationException
from ..domain.media import ProbeResult
from ..domain.models import ConstantQuality, QualityPlan, TargetBitrate


def compute_target_kbps(size_bytes: int, new_duration: float) -> int:
    """
    Average bitrate (kbit/s) that fits ``size_bytes`` into ``new_duration`` seconds.

    Raises:
        EmptyInputFileException: If the size is zero or negative.
        InvalidNewDurationException: If the new duration is zero or negative.
    """
    if size_bytes <= 0:
        raise EmptyInputFileException(f"Input size is {size_bytes} bytes")
    if new_duration <= 0:
        raise InvalidNewDurationException(f"New duration is {new_duration} s")
    return max(1, round(size_bytes * 8 / new_duration / 1000))


def plan_quality(
    probe: Optional[ProbeResult],
    target_fps: float,
    bitrate_mode_requested: bool,
    fallback_crf: int,
) -> QualityPlan:
    """
    Chooses constant quality or a target bitrate for one file.

    Never raises: if bitrate mode was requested but the size, duration or
    frame rate needed for it is missing or invalid, the plan falls back to
    `ConstantQuality` with ``fallback_crf`` and logs a warning.
    """
    if not bitrate_mode_requested:
        return ConstantQuality(crf=fallback_crf)

    reason = None
    if probe is None:
        reason = "no probe result"
    elif probe.duration is None:
        reason = "duration unknown"
    elif probe.fps <= 0 or target_fps <= 0:
        reason = "invalid frame rate"
    else:
        new_duration = probe.duration * float(probe.fps) / target_fps
        try:
            kbps = compute_target_kbps(probe.size, new_duration)
        except FreeFpsException as e:
            reason = e.details or e.code.name
        else:
            return TargetBitrate(kbps=kbps, new_duration=new_duration)

    logger.warning(f"Target bitrate unavailable ({reason}); encoding at constant quality CRF {fallback_crf}.")
    return ConstantQuality(crf=fallback_crf, fallback_reason=reason)

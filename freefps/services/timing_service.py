"""
Computes how a file's timestamps and audio tempo are rescaled.

Retiming stretches or compresses the timeline: every frame is kept and shown
for ``source_fps / target_fps`` times as long. Audio is tempo-adjusted by the
reciprocal so it stays in sync, and ffmpeg's atempo filter only accepts
factors within [0.5, 2.0], so larger changes are split into a chain.
"""
from fractions import Fraction
from typing import List, Tuple, Union

from ..config.video import MAX_TEMPO_STAGE, MIN_TEMPO_STAGE, TEMPO_STAGE_PRECISION, TIMING_PRECISION
from ..domain.exceptions import InvalidFpsException
from ..domain.models import TimingPlan


def decompose_tempo(tempo_factor: float) -> Tuple[float, ...]:
    """
    Splits a tempo factor into atempo stages, each within [0.5, 2.0].

    Stages of exactly 2.0 (or 0.5) are emitted while the remaining factor is
    out of range; the remainder becomes the final stage. For example 0.2
    becomes (0.5, 0.5, 0.8) and 5.0 becomes (2.0, 2.0, 1.25).
    """
    if tempo_factor <= 0:
        raise InvalidFpsException(f"Tempo factor must be positive, got {tempo_factor}")
    if MIN_TEMPO_STAGE <= tempo_factor <= MAX_TEMPO_STAGE:
        return (tempo_factor,)

    stages: List[float] = []
    remaining = tempo_factor
    while remaining > MAX_TEMPO_STAGE:
        stages.append(MAX_TEMPO_STAGE)
        remaining /= MAX_TEMPO_STAGE
    while remaining < MIN_TEMPO_STAGE:
        stages.append(MIN_TEMPO_STAGE)
        remaining /= MIN_TEMPO_STAGE
    stages.append(round(remaining, TEMPO_STAGE_PRECISION))
    return tuple(stages)


def compute_timing_plan(source_fps: Union[Fraction, float], target_fps: float) -> TimingPlan:
    """
    Derives the timing plan for converting ``source_fps`` to ``target_fps``.

    Args:
        source_fps: The probed frame rate of the source.
        target_fps: The requested output frame rate.

    Returns:
        A `TimingPlan` whose ``pts_scale`` and ``tempo_factor`` are rounded to
        five decimals.

    Raises:
        InvalidFpsException: If either rate is not positive.
    """
    if source_fps <= 0:
        raise InvalidFpsException(f"Source fps must be positive, got {source_fps}")
    if target_fps <= 0:
        raise InvalidFpsException(f"Target fps must be positive, got {target_fps}")

    source = float(source_fps)
    pts_scale = round(source / target_fps, TIMING_PRECISION)
    tempo_factor = round(target_fps / source, TIMING_PRECISION)
    return TimingPlan(
        pts_scale=pts_scale,
        tempo_factor=tempo_factor,
        tempo_stages=decompose_tempo(tempo_factor),
    )

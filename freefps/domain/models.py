"""
Value objects that flow through a conversion batch.

Per file, the engine derives three plans from the probe result: a
`TimingPlan` (how timestamps and audio tempo are rescaled), a `QualityPlan`
(constant quality or a computed target bitrate) and, once per batch, an
`EncoderChoice`. Together with the batch-wide `ConversionOptions` they form a
`ConversionJob`, which fully determines the transcoding command. Each job ends
in exactly one `JobOutcome`.
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from ..config.video import (
    DEFAULT_AUDIO_BITRATE,
    DEFAULT_CPU_LIMIT,
    DEFAULT_CRF,
    DEFAULT_KEEP_AUDIO,
    DEFAULT_TARGET_FPS,
    DEFAULT_USE_GPU,
    ENCODER_PROFILES,
    MAX_AUDIO_BITRATE,
    MAX_CPU_LIMIT,
    MAX_CRF,
    MAX_TARGET_FPS,
    MIN_AUDIO_BITRATE,
    MIN_CPU_LIMIT,
    MIN_CRF,
    PIXEL_FORMAT,
    TIMING_PRECISION,
)
from .exceptions import (
    AudioBitrateInvalidException,
    FileSystemException,
    FreeFpsException,
    InvalidFpsException,
    VideoQualityOutOfRangeException,
)
from .media import ProbeResult, SourceFile


# --- Timing ---
@dataclass(frozen=True)
class TimingPlan:
    """
    How timestamps and audio tempo are rescaled for one file.

    ``pts_scale`` and ``tempo_factor`` are reciprocal. ``tempo_stages`` is the
    chain of atempo values, each within [0.5, 2.0], whose product is
    ``tempo_factor``.
    """

    pts_scale: float
    tempo_factor: float
    tempo_stages: Tuple[float, ...]

    def video_filter(self) -> str:
        return f"setpts={self.pts_scale:.{TIMING_PRECISION}f}*PTS"

    def audio_filter(self) -> str:
        return ",".join(f"atempo={stage}" for stage in self.tempo_stages)


# --- Quality ---
@dataclass(frozen=True)
class ConstantQuality:
    """
    Constant-quality encoding at ``crf``.

    ``fallback_reason`` is set when a target bitrate was requested but could
    not be computed for the file.
    """

    crf: int
    fallback_reason: Optional[str] = None

    mode = "constant_quality"


@dataclass(frozen=True)
class TargetBitrate:
    kbps: int
    new_duration: float

    mode = "target_bitrate"


QualityPlan = Union[ConstantQuality, TargetBitrate]


# --- Encoder ---
class Vendor(str, Enum):
    NVIDIA = "nvidia"
    AMD = "amd"
    INTEL = "intel"
    CPU = "cpu"

    @property
    def is_hardware(self) -> bool:
        return self is not Vendor.CPU


@dataclass(frozen=True)
class EncoderChoice:
    """
    The video encoder for a batch and the flags that drive it.

    Quality and preset flags differ per vendor (NVENC takes ``-cq``, AMF takes
    ``-qp_i/-qp_p/-qp_b`` and ``-quality``, QSV takes ``-global_quality``), so
    they travel with the choice instead of being assembled by the caller.
    """

    vendor: Vendor
    encoder: str
    quality_flags: Tuple[str, ...]
    preset_flag: str
    preset: str

    @classmethod
    def for_vendor(cls, vendor: Vendor) -> "EncoderChoice":
        profile = ENCODER_PROFILES[vendor.value]
        return cls(
            vendor=vendor,
            encoder=profile["encoder"],
            quality_flags=tuple(profile["quality_flags"]),
            preset_flag=profile["preset_flag"],
            preset=profile["preset"],
        )

    def video_args(self, quality: QualityPlan) -> List[str]:
        args = ["-c:v", self.encoder]
        if isinstance(quality, TargetBitrate):
            args += ["-b:v", f"{quality.kbps}k"]
        else:
            for flag in self.quality_flags:
                args += [flag, str(quality.crf)]
        args += [self.preset_flag, self.preset, "-pix_fmt", PIXEL_FORMAT]
        return args


# --- Batch options ---
@dataclass(frozen=True)
class ConversionOptions:
    """
    Immutable settings for one batch, supplied by the caller.

    ``use_custom_quality`` selects constant-quality encoding with ``crf``;
    otherwise the engine computes a target bitrate per file (and falls back
    to ``crf`` when it cannot).
    """

    target_fps: float = DEFAULT_TARGET_FPS
    keep_audio: bool = DEFAULT_KEEP_AUDIO
    audio_bitrate: int = DEFAULT_AUDIO_BITRATE
    use_custom_quality: bool = False
    crf: int = DEFAULT_CRF
    cpu_limit: int = DEFAULT_CPU_LIMIT
    use_gpu: bool = DEFAULT_USE_GPU
    gpu_vendor: Optional[Vendor] = None
    ffmpeg_path: Optional[Path] = None
    ffprobe_path: Optional[Path] = None
    output_folder: Optional[Path] = None
    overwrite: bool = True
    write_report: bool = True

    @property
    def bitrate_mode_requested(self) -> bool:
        return not self.use_custom_quality

    def validate(self):
        """
        Checks every option against its accepted range.

        Raises:
            InvalidFpsException: Target fps not in (0, 1000].
            AudioBitrateInvalidException: Keep-audio with a bitrate outside 1..512 kbps.
            VideoQualityOutOfRangeException: Custom quality with a CRF outside 0..51.
            FileSystemException: CPU limit outside 1..100 percent.
        """
        if not 0 < self.target_fps <= MAX_TARGET_FPS:
            raise InvalidFpsException(
                f"Target fps must be in (0, {MAX_TARGET_FPS:g}], got {self.target_fps}"
            )
        if self.keep_audio and not MIN_AUDIO_BITRATE <= self.audio_bitrate <= MAX_AUDIO_BITRATE:
            raise AudioBitrateInvalidException(
                f"Audio bitrate must be between {MIN_AUDIO_BITRATE} and {MAX_AUDIO_BITRATE} kbps, got {self.audio_bitrate}"
            )
        if self.use_custom_quality and not MIN_CRF <= self.crf <= MAX_CRF:
            raise VideoQualityOutOfRangeException(
                f"CRF must be between {MIN_CRF} and {MAX_CRF}, got {self.crf}"
            )
        if not MIN_CPU_LIMIT <= self.cpu_limit <= MAX_CPU_LIMIT:
            raise FileSystemException(
                f"CPU limit must be between {MIN_CPU_LIMIT} and {MAX_CPU_LIMIT}, got {self.cpu_limit}"
            )


# --- Jobs ---
class JobState(str, Enum):
    PENDING = "pending"
    PROBING = "probing"
    PLANNING = "planning"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED)


# Allowed transitions of the per-file state machine.
JOB_TRANSITIONS = {
    JobState.PENDING: {JobState.PROBING, JobState.FAILED, JobState.CANCELLED},
    JobState.PROBING: {JobState.PLANNING, JobState.FAILED, JobState.CANCELLED},
    JobState.PLANNING: {JobState.RUNNING, JobState.FAILED, JobState.CANCELLED},
    JobState.RUNNING: {JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED},
}


class ConversionStatus(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ConversionJob:
    """Everything needed to build the transcoding command for one file."""

    source: SourceFile
    output_path: Path
    probe: ProbeResult
    timing: TimingPlan
    quality: QualityPlan
    encoder: EncoderChoice
    options: ConversionOptions
    creation_time: str
    threads: Optional[int] = None


@dataclass(frozen=True)
class JobOutcome:
    """Terminal result of one file. Never retried automatically."""

    source: SourceFile
    status: ConversionStatus
    output_path: Optional[Path] = None
    error: Optional[FreeFpsException] = None
    quality: Optional[QualityPlan] = None
    encoder: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status is ConversionStatus.SUCCESS

    def to_dict(self) -> dict:
        entry = {
            "file": str(self.source.path),
            "status": self.status.value,
            "output": str(self.output_path) if self.output_path else None,
            "encoder": self.encoder,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
        }
        if self.quality is not None:
            entry["quality"] = {"mode": self.quality.mode, **asdict(self.quality)}
        if self.error is not None:
            entry["error"] = self.error.to_dict()
        return entry


# --- Progress ---
@dataclass(frozen=True)
class ProgressEvent:
    current_file: str
    current_file_index: int
    total_files: int
    percentage: float
    status: ConversionStatus

    def to_dict(self) -> dict:
        return {
            "current_file": self.current_file,
            "current_file_index": self.current_file_index,
            "total_files": self.total_files,
            "percentage": self.percentage,
            "status": self.status.value,
        }


@dataclass
class BatchSummary:
    """Aggregated outcomes of one batch, in processing order."""

    output_dir: Path
    outcomes: List[JobOutcome] = field(default_factory=list)
    cancelled: bool = False

    def _count(self, status: ConversionStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def succeeded(self) -> int:
        return self._count(ConversionStatus.SUCCESS)

    @property
    def failed(self) -> int:
        return self._count(ConversionStatus.ERROR)

    @property
    def cancelled_count(self) -> int:
        return self._count(ConversionStatus.CANCELLED)

    @property
    def success(self) -> bool:
        """True only if every selected file was converted."""
        return bool(self.outcomes) and self.succeeded == len(self.outcomes)

    def to_dict(self) -> dict:
        return {
            "output_dir": str(self.output_dir),
            "success": self.success,
            "cancelled": self.cancelled,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled_files": self.cancelled_count,
            "files": [outcome.to_dict() for outcome in self.outcomes],
        }

"""Tests for option validation and the batch value objects."""
from pathlib import Path

import pytest

from freefps.domain.exceptions import (
    AudioBitrateInvalidException,
    ErrorCode,
    FileSystemException,
    InvalidFpsException,
    TranscodeFailedException,
    VideoQualityOutOfRangeException,
)
from freefps.domain.media import SourceFile
from freefps.domain.models import (
    BatchSummary,
    ConstantQuality,
    ConversionOptions,
    ConversionStatus,
    EncoderChoice,
    JOB_TRANSITIONS,
    JobOutcome,
    JobState,
    ProgressEvent,
    TargetBitrate,
    Vendor,
)


def test_default_options_are_valid():
    ConversionOptions().validate()


@pytest.mark.parametrize(
    "overrides, error",
    [
        ({"target_fps": 0}, InvalidFpsException),
        ({"target_fps": -24}, InvalidFpsException),
        ({"target_fps": 1000.5}, InvalidFpsException),
        ({"keep_audio": True, "audio_bitrate": 0}, AudioBitrateInvalidException),
        ({"keep_audio": True, "audio_bitrate": 513}, AudioBitrateInvalidException),
        ({"use_custom_quality": True, "crf": 52}, VideoQualityOutOfRangeException),
        ({"use_custom_quality": True, "crf": -1}, VideoQualityOutOfRangeException),
        ({"cpu_limit": 0}, FileSystemException),
        ({"cpu_limit": 101}, FileSystemException),
    ],
)
def test_invalid_options(overrides, error):
    with pytest.raises(error):
        ConversionOptions(**overrides).validate()


def test_unused_settings_are_not_validated():
    ConversionOptions(keep_audio=False, audio_bitrate=0, use_custom_quality=False, crf=99).validate()


def test_boundary_options_are_valid():
    ConversionOptions(target_fps=1000, keep_audio=True, audio_bitrate=512, use_custom_quality=True, crf=0, cpu_limit=1).validate()


def test_options_are_immutable():
    options = ConversionOptions()
    with pytest.raises(AttributeError):
        options.target_fps = 60


def test_bitrate_mode_follows_custom_quality():
    assert ConversionOptions(use_custom_quality=False).bitrate_mode_requested
    assert not ConversionOptions(use_custom_quality=True).bitrate_mode_requested


@pytest.mark.parametrize(
    "vendor, expected",
    [
        (Vendor.CPU, ["-c:v", "libx264", "-crf", "18", "-preset", "slow", "-pix_fmt", "yuv420p"]),
        (Vendor.NVIDIA, ["-c:v", "h264_nvenc", "-cq", "18", "-preset", "p4", "-pix_fmt", "yuv420p"]),
        (Vendor.INTEL, ["-c:v", "h264_qsv", "-global_quality", "18", "-preset", "medium", "-pix_fmt", "yuv420p"]),
        (
            Vendor.AMD,
            ["-c:v", "h264_amf", "-qp_i", "18", "-qp_p", "18", "-qp_b", "18", "-quality", "balanced", "-pix_fmt", "yuv420p"],
        ),
    ],
)
def test_video_args_constant_quality(vendor, expected):
    assert EncoderChoice.for_vendor(vendor).video_args(ConstantQuality(crf=18)) == expected


def test_video_args_bitrate_mode_ignores_quality_flags():
    args = EncoderChoice.for_vendor(Vendor.AMD).video_args(TargetBitrate(kbps=4000, new_duration=10.0))
    assert args == ["-c:v", "h264_amf", "-b:v", "4000k", "-quality", "balanced", "-pix_fmt", "yuv420p"]


def test_vendor_hardware_flag():
    assert [v for v in Vendor if v.is_hardware] == [Vendor.NVIDIA, Vendor.AMD, Vendor.INTEL]


def test_terminal_states_have_no_transitions():
    for state in JobState:
        assert state.is_terminal == (state not in JOB_TRANSITIONS)


def _outcome(name, status, **kwargs):
    return JobOutcome(SourceFile(Path(name), name, 10), status, **kwargs)


def test_batch_summary_counts():
    summary = BatchSummary(
        output_dir=Path("out"),
        outcomes=[
            _outcome("a.mp4", ConversionStatus.SUCCESS),
            _outcome("b.mp4", ConversionStatus.ERROR, error=TranscodeFailedException("boom")),
            _outcome("c.mp4", ConversionStatus.CANCELLED),
        ],
    )
    assert (summary.succeeded, summary.failed, summary.cancelled_count) == (1, 1, 1)
    assert not summary.success


def test_batch_summary_success_needs_every_file():
    assert not BatchSummary(output_dir=Path("out")).success
    assert BatchSummary(output_dir=Path("out"), outcomes=[_outcome("a.mp4", ConversionStatus.SUCCESS)]).success


def test_outcome_to_dict_carries_structured_error_and_quality():
    outcome = _outcome(
        "b.mp4",
        ConversionStatus.ERROR,
        error=TranscodeFailedException("boom"),
        quality=ConstantQuality(crf=16, fallback_reason="duration unknown"),
    )
    entry = outcome.to_dict()
    assert entry["status"] == "error"
    assert entry["error"] == {"code": int(ErrorCode.FFMPEG_FAILED), "details": "boom"}
    assert entry["quality"] == {"mode": "constant_quality", "crf": 16, "fallback_reason": "duration unknown"}


def test_progress_event_to_dict():
    event = ProgressEvent("a.mp4", 1, 3, 42.5, ConversionStatus.PROCESSING)
    assert event.to_dict() == {
        "current_file": "a.mp4",
        "current_file_index": 1,
        "total_files": 3,
        "percentage": 42.5,
        "status": "processing",
    }

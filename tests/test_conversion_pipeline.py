"""Tests for the batch pipeline."""
import threading

import pytest
import yaml

from freefps.domain.exceptions import (
    ConversionCancelledException,
    ErrorCode,
    FfmpegNotFoundException,
    FolderNotFoundException,
    InvalidFpsException,
    NoVideoFilesException,
    TranscodeFailedException,
)
from freefps.domain.models import ConversionOptions, ConversionStatus, EncoderChoice, JobOutcome, Vendor
from freefps.pipeline import conversion_pipeline
from freefps.pipeline.conversion_pipeline import ConversionPipeline


class FakeSelector:
    instances = []

    def __init__(self, ffmpeg_bin):
        self.ffmpeg_bin = ffmpeg_bin
        self.calls = []
        FakeSelector.instances.append(self)

    def select(self, use_hardware, preferred_vendor=None, force_reprobe=False):
        self.calls.append((use_hardware, preferred_vendor, force_reprobe))
        return EncoderChoice.for_vendor(Vendor.CPU)


class FakeExecutor:
    """Succeeds every file; `hooks` maps a file name to a callable run during its job."""

    hooks = {}
    failing = set()
    cancelling = set()
    executed = []

    def __init__(self, ffmpeg_bin, prober, encoder, options, error_log=None):
        self.encoder = encoder
        self.options = options

    def execute(self, source, output_path, cancel, on_progress=None):
        FakeExecutor.executed.append(source.name)
        for pct in (0.0, 40.0, 80.0):
            on_progress(pct)
        hook = FakeExecutor.hooks.get(source.name)
        if hook:
            hook()
        if source.name in FakeExecutor.cancelling:
            cancel.cancel()
            return JobOutcome(source, ConversionStatus.CANCELLED, error=ConversionCancelledException("killed"))
        if source.name in FakeExecutor.failing:
            return JobOutcome(source, ConversionStatus.ERROR, error=TranscodeFailedException("boom"))
        output_path.write_bytes(b"converted")
        on_progress(100.0)
        return JobOutcome(source, ConversionStatus.SUCCESS, output_path=output_path, encoder=self.encoder.encoder)


@pytest.fixture(autouse=True)
def fake_services(monkeypatch):
    FakeSelector.instances = []
    FakeExecutor.hooks = {}
    FakeExecutor.failing = set()
    FakeExecutor.cancelling = set()
    FakeExecutor.executed = []
    monkeypatch.setattr(conversion_pipeline, "resolve_ffmpeg", lambda path=None: "ffmpeg")
    monkeypatch.setattr(conversion_pipeline, "resolve_ffprobe", lambda path=None: None)
    monkeypatch.setattr(conversion_pipeline, "EncoderSelector", FakeSelector)
    monkeypatch.setattr(conversion_pipeline, "JobExecutor", FakeExecutor)


@pytest.fixture
def make_pipeline(tmp_path):
    def _make(events=None, **option_overrides):
        options = ConversionOptions(**{"target_fps": 25, **option_overrides})
        listener = events.append if events is not None else None
        return ConversionPipeline(options, on_progress=listener, error_log_dir=tmp_path / "logs")

    return _make


def test_converts_every_file_in_name_order(make_pipeline, video_folder):
    events = []
    summary = make_pipeline(events).run(video_folder)

    assert summary.success
    assert not summary.cancelled
    assert [o.source.name for o in summary.outcomes] == ["a.mp4", "b.mkv", "c.MOV", "d.avi", "e.webm"]
    assert summary.output_dir == video_folder.resolve() / "converted_videos_25fps"
    assert (summary.output_dir / "a_25fps.mp4").read_bytes() == b"converted"
    assert (summary.output_dir / "c_25fps.MOV").exists()

    for index in range(1, 6):
        pcts = [e.percentage for e in events if e.current_file_index == index]
        assert pcts == sorted(pcts)
        assert pcts[-1] == 100.0
    assert {e.total_files for e in events} == {5}
    assert events[-1].status is ConversionStatus.SUCCESS


def test_cancel_after_second_file(make_pipeline, video_folder):
    events = []
    pipeline = make_pipeline(events)
    FakeExecutor.hooks = {"b.mkv": pipeline.cancel}

    summary = pipeline.run(video_folder)

    statuses = [o.status for o in summary.outcomes]
    assert statuses[:2] == [ConversionStatus.SUCCESS, ConversionStatus.SUCCESS]
    assert statuses[2:] == [ConversionStatus.CANCELLED] * 3
    assert FakeExecutor.executed == ["a.mp4", "b.mkv"]
    assert summary.cancelled
    assert not summary.success
    assert all(o.error.code is ErrorCode.CANCELLED for o in summary.outcomes[2:])
    cancelled_events = [e for e in events if e.status is ConversionStatus.CANCELLED]
    assert [e.current_file_index for e in cancelled_events] == [3, 4, 5]


def test_cancellation_does_not_leak_into_the_next_batch(make_pipeline, video_folder):
    pipeline = make_pipeline()
    FakeExecutor.hooks = {"a.mp4": pipeline.cancel}
    assert pipeline.run(video_folder).cancelled

    FakeExecutor.hooks = {}
    assert pipeline.run(video_folder).success


def test_failed_file_does_not_stop_the_batch(make_pipeline, video_folder):
    FakeExecutor.failing = {"b.mkv"}
    summary = make_pipeline().run(video_folder)
    assert summary.succeeded == 4
    assert summary.failed == 1
    assert not summary.success
    assert summary.outcomes[1].error.code is ErrorCode.FFMPEG_FAILED


def test_explicit_selection_keeps_caller_order(make_pipeline, video_folder):
    summary = make_pipeline().run(video_folder, files=[video_folder / "e.webm", video_folder / "a.mp4"])
    assert [o.source.name for o in summary.outcomes] == ["e.webm", "a.mp4"]
    assert summary.success


def test_explicit_selection_rejects_paths_outside_folder(make_pipeline, video_folder, tmp_path):
    outside = tmp_path / "outside.mp4"
    outside.write_bytes(b"x")
    summary = make_pipeline().run(
        video_folder,
        files=[outside, video_folder / "missing.mp4", video_folder / "a.mp4"],
    )
    codes = [o.error.code for o in summary.outcomes if o.error]
    assert codes == [ErrorCode.PATH_TRAVERSAL_DETECTED, ErrorCode.INVALID_INPUT_PATH]
    assert FakeExecutor.executed == ["a.mp4"]
    assert summary.succeeded == 1


def test_custom_output_folder(make_pipeline, video_folder, tmp_path):
    target = tmp_path / "out" / "nested"
    summary = make_pipeline(output_folder=target).run(video_folder)
    assert summary.output_dir == target
    assert (target / "a_25fps.mp4").exists()


def test_report_is_written(make_pipeline, video_folder):
    summary = make_pipeline().run(video_folder)
    report = yaml.safe_load((summary.output_dir / "conversion_report.yaml").read_text(encoding="utf-8"))
    assert report["target_fps"] == 25
    assert report["encoder"] == "libx264"
    assert report["success"] is True
    assert len(report["files"]) == 5
    assert report["files"][0]["status"] == "success"


def test_report_can_be_disabled(make_pipeline, video_folder):
    summary = make_pipeline(write_report=False).run(video_folder)
    assert not (summary.output_dir / "conversion_report.yaml").exists()


def test_encoder_is_selected_once_per_batch(make_pipeline, video_folder):
    pipeline = make_pipeline(use_gpu=True, gpu_vendor=Vendor.AMD)
    pipeline.run(video_folder)
    pipeline.run(video_folder, force_reprobe=True)
    assert len(FakeSelector.instances) == 1
    assert FakeSelector.instances[0].calls == [(True, Vendor.AMD, False), (True, Vendor.AMD, True)]


def test_missing_folder(make_pipeline, tmp_path):
    with pytest.raises(FolderNotFoundException):
        make_pipeline().run(tmp_path / "nope")


def test_folder_without_videos(make_pipeline, tmp_path):
    (tmp_path / "readme.txt").write_text("hi")
    with pytest.raises(NoVideoFilesException):
        make_pipeline().run(tmp_path)


def test_invalid_options_abort_before_any_file(make_pipeline, video_folder):
    with pytest.raises(InvalidFpsException):
        make_pipeline(target_fps=0).run(video_folder)
    assert FakeExecutor.executed == []


def test_missing_ffmpeg_aborts(monkeypatch, make_pipeline, video_folder):
    def missing(path=None):
        raise FfmpegNotFoundException("ffmpeg is not installed")

    monkeypatch.setattr(conversion_pipeline, "resolve_ffmpeg", missing)
    with pytest.raises(FfmpegNotFoundException) as exc_info:
        make_pipeline().run(video_folder)
    assert exc_info.value.to_dict() == {"code": 10, "details": "ffmpeg is not installed"}


def test_run_in_background(make_pipeline, video_folder):
    pipeline = make_pipeline()
    try:
        future = pipeline.run_in_background(video_folder)
        summary = future.result(timeout=10)
    finally:
        pipeline.shutdown()
    assert summary.success


def test_cancel_background_batch(make_pipeline, video_folder):
    pipeline = make_pipeline()
    started = threading.Event()
    release = threading.Event()

    def block():
        started.set()
        release.wait(5)

    FakeExecutor.hooks = {"a.mp4": block}
    try:
        future = pipeline.run_in_background(video_folder)
        assert started.wait(5)
        assert pipeline.is_running
        pipeline.cancel()
        release.set()
        summary = future.result(timeout=10)
    finally:
        pipeline.shutdown()
    assert summary.cancelled
    assert summary.cancelled_count == 4


def test_only_one_batch_at_a_time(make_pipeline, video_folder):
    pipeline = make_pipeline()
    inner_errors = []

    def nested_run():
        try:
            pipeline.run(video_folder)
        except RuntimeError as e:
            inner_errors.append(e)

    FakeExecutor.hooks = {"a.mp4": nested_run}
    pipeline.run(video_folder)
    assert len(inner_errors) == 1


def _percentages_by_file(events):
    by_file = {}
    for event in events:
        by_file.setdefault(event.current_file_index, []).append(event.percentage)
    return by_file


def test_failed_file_keeps_its_last_percentage(make_pipeline, video_folder):
    FakeExecutor.failing = {"b.mkv"}
    events = []
    make_pipeline(events).run(video_folder)

    for pcts in _percentages_by_file(events).values():
        assert pcts == sorted(pcts)
    error_event = next(e for e in events if e.status is ConversionStatus.ERROR)
    assert error_event.current_file == "b.mkv"
    assert error_event.percentage == 80.0


def test_file_cancelled_mid_transcode_keeps_its_last_percentage(make_pipeline, video_folder):
    FakeExecutor.cancelling = {"c.MOV"}
    events = []
    summary = make_pipeline(events).run(video_folder)

    for pcts in _percentages_by_file(events).values():
        assert pcts == sorted(pcts)
    cancelled = [e for e in events if e.status is ConversionStatus.CANCELLED]
    assert [(e.current_file, e.percentage) for e in cancelled] == [
        ("c.MOV", 80.0),
        ("d.avi", 0.0),
        ("e.webm", 0.0),
    ]
    assert summary.cancelled


def test_cancel_reaches_a_queued_background_batch(make_pipeline, video_folder):
    pipeline = make_pipeline()
    started = threading.Event()
    release = threading.Event()

    def block():
        started.set()
        release.wait(5)

    FakeExecutor.hooks = {"a.mp4": block}
    try:
        first = pipeline.run_in_background(video_folder)
        assert started.wait(5)
        FakeExecutor.hooks = {}
        second = pipeline.run_in_background(video_folder)
        pipeline.cancel()
        release.set()
        first_summary = first.result(timeout=10)
        second_summary = second.result(timeout=10)
    finally:
        pipeline.shutdown()
    assert first_summary.cancelled
    assert second_summary.cancelled
    assert second_summary.cancelled_count == 5
    assert pipeline._pending == []


def test_running_batch_token_is_the_one_cancel_reaches(make_pipeline, video_folder):
    pipeline = make_pipeline()
    seen = []

    def inspect_tokens():
        seen.append((pipeline._cancel.is_cancelled, list(pipeline._pending)))
        pipeline.cancel()

    FakeExecutor.hooks = {"a.mp4": inspect_tokens}
    try:
        summary = pipeline.run_in_background(video_folder).result(timeout=10)
    finally:
        pipeline.shutdown()
    assert seen == [(False, [])]
    assert summary.cancelled
    assert FakeExecutor.executed == ["a.mp4"]

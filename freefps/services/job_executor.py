"""
Runs the conversion of a single file.

A job moves through ``PENDING -> PROBING -> PLANNING -> RUNNING`` and ends in
``SUCCEEDED``, ``FAILED`` or ``CANCELLED``. Every failure of one file is turned
into a `JobOutcome` here so the batch can move on to the next file.

While ffmpeg runs, its ``-progress pipe:1`` key/value stream is read from
stdout and turned into a non-decreasing percentage. stderr is drained on a
separate thread (keeping only the tail for error reports) so a chatty encoder
can never block on a full pipe.
"""
import subprocess
import threading
import time
from collections import deque
from pathlib import Path
from typing import Callable, Deque, List, Optional

from loguru import logger

from ..config.video import AUDIO_ENCODER
from ..domain.exceptions import (
    ConversionCancelledException,
    FileSystemException,
    FreeFpsException,
    InvalidInputPathException,
    ToolSpawnFailedException,
    TranscodeFailedException,
)
from ..domain.media import SourceFile
from ..domain.models import (
    JOB_TRANSITIONS,
    ConversionJob,
    ConversionOptions,
    ConversionStatus,
    EncoderChoice,
    JobOutcome,
    JobState,
)
from ..utils.ffmpeg_utils import display_command, lower_process_priority, popen_kwargs, threads_from_cpu_limit
from ..utils.format_utils import format_rate
from ..utils.time_utils import apply_file_timestamps
from .logging_service import ErrorLog
from .probe_service import MediaProber, resolve_creation_time
from .quality_service import plan_quality
from .timing_service import compute_timing_plan

STDERR_TAIL_LINES = 40
# Progress stays below this until ffmpeg has exited successfully.
MAX_RUNNING_PERCENTAGE = 99.9
CANCEL_POLL_SECONDS = 0.25

ProgressCallback = Callable[[float], None]


class CancellationToken:
    """A one-way cancel switch shared between the caller and running jobs."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


def parse_progress_time(key: str, value: str) -> Optional[float]:
    """
    Converts an ``out_time*`` progress value to seconds.

    ``out_time_us`` is in microseconds; ``out_time_ms`` is, despite its name,
    also microseconds in current ffmpeg builds but milliseconds in old ones,
    so it is read as milliseconds only when ``out_time_us`` is absent.
    ``out_time`` is ``HH:MM:SS.micro``.
    """
    value = value.strip()
    if value.isdigit():
        number = int(value)
        if key == "out_time_us":
            return number / 1_000_000
        if key == "out_time_ms":
            return number / 1_000
        return float(number)
    parts = value.split(":")
    if len(parts) == 3:
        try:
            return int(parts[0]) * 3600 + int(parts[1]) * 60 + float(parts[2])
        except ValueError:
            return None
    return None


class ProgressTracker:
    """
    Turns ffmpeg progress key/value pairs into a percentage.

    Two estimates are kept, encoded frames against the expected frame count
    and output time against the expected output duration; the smaller one is
    reported. The value never decreases and stays below 100 until the caller
    marks the job finished.
    """

    def __init__(self, total_frames: Optional[int], total_seconds: Optional[float]):
        self.total_frames = total_frames if total_frames and total_frames > 0 else None
        self.total_seconds = total_seconds if total_seconds and total_seconds > 0 else None
        self.last_frame: Optional[int] = None
        self.last_seconds: Optional[float] = None
        self.percentage = 0.0
        self._seen_us = False

    def update(self, key: str, value: str) -> Optional[float]:
        """Feeds one key/value pair; returns the new percentage if it increased."""
        if key == "frame":
            try:
                self.last_frame = int(value)
            except ValueError:
                return None
        elif key in ("out_time_us", "out_time_ms", "out_time"):
            if key == "out_time_us":
                self._seen_us = True
            elif key == "out_time_ms" and self._seen_us:
                return None
            seconds = parse_progress_time(key, value)
            if seconds is None:
                return None
            self.last_seconds = seconds
        else:
            return None
        return self._emit()

    def _emit(self) -> Optional[float]:
        fractions = []
        if self.last_frame is not None and self.total_frames:
            fractions.append(self.last_frame / self.total_frames)
        if self.last_seconds is not None and self.total_seconds:
            fractions.append(self.last_seconds / self.total_seconds)
        if not fractions:
            return None
        pct = min(max(0.0, min(fractions)) * 100, MAX_RUNNING_PERCENTAGE)
        if pct > self.percentage:
            self.percentage = pct
            return pct
        return None


def remove_partial_output(path: Path):
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove partial output {path}: {e}")


class JobExecutor:
    """
    Converts one source file with a batch-wide encoder and options.

    Args:
        ffmpeg_bin: Resolved ffmpeg executable.
        prober: The media prober for source files.
        encoder: The encoder selected for the batch.
        options: The batch options.
        error_log: Where failed transcodes are recorded, if anywhere.
    """

    def __init__(
        self,
        ffmpeg_bin: str,
        prober: MediaProber,
        encoder: EncoderChoice,
        options: ConversionOptions,
        error_log: Optional[ErrorLog] = None,
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.prober = prober
        self.encoder = encoder
        self.options = options
        self.error_log = error_log
        self.state = JobState.PENDING

    def _transition(self, new_state: JobState):
        if new_state not in JOB_TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"Illegal job transition {self.state.value} -> {new_state.value}")
        logger.trace(f"Job state: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def build_command(self, job: ConversionJob) -> List[str]:
        """Assembles the full ffmpeg argument list for a planned job."""
        options = job.options
        cmd = [
            self.ffmpeg_bin,
            "-y" if options.overwrite else "-n",
            "-i", str(job.source.path),
            "-vf", job.timing.video_filter(),
            "-r", format_rate(options.target_fps),
        ]
        cmd += job.encoder.video_args(job.quality)
        if options.keep_audio:
            cmd += ["-c:a", AUDIO_ENCODER, "-b:a", f"{options.audio_bitrate}k", "-af", job.timing.audio_filter()]
        else:
            cmd += ["-an"]
        if job.threads:
            cmd += ["-threads", str(job.threads)]
        if job.creation_time:
            cmd += ["-metadata", f"creation_time={job.creation_time}"]
        cmd += ["-progress", "pipe:1", "-nostats", str(job.output_path)]
        return cmd

    def plan(self, source: SourceFile, output_path: Path) -> ConversionJob:
        """
        Probes the source and derives its timing and quality plans.

        Raises:
            FreeFpsException: Any probe, timing or path error for this file.
        """
        self._transition(JobState.PROBING)
        probe = self.prober.probe(source.path)

        self._transition(JobState.PLANNING)
        if output_path.resolve() == source.path.resolve():
            raise InvalidInputPathException(f"Output would overwrite the source: {output_path}")
        if not self.options.overwrite and output_path.exists():
            raise FileSystemException(f"Output already exists: {output_path}")

        timing = compute_timing_plan(probe.fps, self.options.target_fps)
        quality = plan_quality(
            probe,
            self.options.target_fps,
            self.options.bitrate_mode_requested,
            self.options.crf,
        )
        return ConversionJob(
            source=source,
            output_path=output_path,
            probe=probe,
            timing=timing,
            quality=quality,
            encoder=self.encoder,
            options=self.options,
            creation_time=resolve_creation_time(probe),
            threads=threads_from_cpu_limit(self.options.cpu_limit),
        )

    def execute(
        self,
        source: SourceFile,
        output_path: Path,
        cancel: CancellationToken,
        on_progress: Optional[ProgressCallback] = None,
    ) -> JobOutcome:
        """
        Runs one file through the whole state machine.

        Never raises for per-file problems: probe, planning and transcode
        errors become a FAILED outcome, cancellation a CANCELLED one.
        """
        self.state = JobState.PENDING
        started = time.monotonic()
        job: Optional[ConversionJob] = None

        def outcome(status: ConversionStatus, error: Optional[FreeFpsException] = None) -> JobOutcome:
            return JobOutcome(
                source=source,
                status=status,
                output_path=output_path if status is ConversionStatus.SUCCESS else None,
                error=error,
                quality=job.quality if job else None,
                encoder=self.encoder.encoder,
                elapsed_seconds=time.monotonic() - started,
            )

        if cancel.is_cancelled:
            self._transition(JobState.CANCELLED)
            return outcome(ConversionStatus.CANCELLED, ConversionCancelledException("Cancelled before start"))

        try:
            job = self.plan(source, output_path)
        except FreeFpsException as e:
            logger.error(f"Skipping {source.name}: {e}")
            self._transition(JobState.FAILED)
            return outcome(ConversionStatus.ERROR, e)

        cmd = self.build_command(job)
        self._transition(JobState.RUNNING)
        try:
            self._run_process(job, cmd, cancel, on_progress)
        except ConversionCancelledException as e:
            logger.warning(f"Conversion of {source.name} cancelled.")
            remove_partial_output(output_path)
            self._transition(JobState.CANCELLED)
            return outcome(ConversionStatus.CANCELLED, e)
        except (TranscodeFailedException, ToolSpawnFailedException) as e:
            logger.error(f"Conversion of {source.name} failed: {e}")
            if self.error_log:
                self.error_log.write(
                    f"File: {source.path}",
                    f"Command: {display_command(cmd)}",
                    f"Error: {e}",
                )
            remove_partial_output(output_path)
            self._transition(JobState.FAILED)
            return outcome(ConversionStatus.ERROR, e)
        except BaseException:
            remove_partial_output(output_path)
            self._transition(JobState.FAILED)
            raise

        self._transition(JobState.SUCCEEDED)
        apply_file_timestamps(output_path, job.creation_time, job.probe.modified_time)
        if on_progress:
            on_progress(100.0)
        logger.success(f"Converted {source.name} -> {output_path.name}")
        return outcome(ConversionStatus.SUCCESS)

    def _run_process(
        self,
        job: ConversionJob,
        cmd: List[str],
        cancel: CancellationToken,
        on_progress: Optional[ProgressCallback],
    ):
        logger.bind(ffmpeg_cmd=True).info(f"Running: {display_command(cmd)}")
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                **popen_kwargs(),
            )
        except OSError as e:
            raise ToolSpawnFailedException(f"Could not start ffmpeg: {e}") from e

        if self.options.cpu_limit < 100:
            lower_process_priority(process.pid)

        stderr_tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        killed = threading.Event()

        def drain_stderr():
            for line in process.stderr:
                stderr_tail.append(line.rstrip())

        def kill():
            if killed.is_set():
                return
            killed.set()
            try:
                process.kill()
            except OSError as e:
                logger.debug(f"ffmpeg already gone: {e}")

        def watch_cancel():
            while process.poll() is None:
                if cancel.wait(CANCEL_POLL_SECONDS):
                    kill()
                    return

        drain_thread = threading.Thread(target=drain_stderr, name="ffmpeg-stderr", daemon=True)
        watch_thread = threading.Thread(target=watch_cancel, name="ffmpeg-cancel", daemon=True)
        drain_thread.start()
        watch_thread.start()

        probe = job.probe
        total_frames = max(1, round(probe.duration * float(probe.fps))) if probe.duration else None
        total_seconds = probe.duration * job.timing.pts_scale if probe.duration else None
        tracker = ProgressTracker(total_frames, total_seconds)

        try:
            if on_progress:
                on_progress(0.0)
            for line in process.stdout:
                if cancel.is_cancelled:
                    kill()
                    break
                key, sep, value = line.partition("=")
                if not sep:
                    continue
                key, value = key.strip(), value.strip()
                pct = tracker.update(key, value)
                if pct is not None and on_progress:
                    on_progress(pct)
                if key == "progress" and value == "end":
                    break
            returncode = process.wait()
        except BaseException:
            # A failing listener or an interrupt must not leave ffmpeg running.
            kill()
            process.wait()
            raise
        finally:
            watch_thread.join(timeout=CANCEL_POLL_SECONDS * 4)
            drain_thread.join(timeout=5)

        if killed.is_set():
            raise ConversionCancelledException(f"Cancelled while converting {job.source.name}")
        if returncode != 0:
            tail = "\n".join(stderr_tail)
            raise TranscodeFailedException(f"ffmpeg exited with code {returncode}:\n{tail}")

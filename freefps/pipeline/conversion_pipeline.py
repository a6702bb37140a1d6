"""
The batch pipeline: converts every selected video of a folder to the target frame rate.

Files are converted strictly one after another, so at most one ffmpeg
transcode runs per pipeline instance. A batch can run on the caller's thread
(`ConversionPipeline.run`) or on a background worker
(`ConversionPipeline.run_in_background`); either way `cancel()` stops it after
killing the current transcode, and every file not yet started is reported as
cancelled.
"""
import concurrent.futures
import threading
from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger

from ..config.common import LOG_DIR
from ..domain.exceptions import ConversionCancelledException, NoVideoFilesException
from ..domain.media import SourceFile
from ..domain.models import (
    BatchSummary,
    ConversionOptions,
    ConversionStatus,
    EncoderChoice,
    JobOutcome,
    ProgressEvent,
)
from ..services.encoder_selector import EncoderSelector
from ..services.file_processing_service import ProcessVideoFiles, output_path_for, resolve_output_dir
from ..services.job_executor import CancellationToken, JobExecutor
from ..services.logging_service import ConversionReport, ErrorLog
from ..services.probe_service import MediaProber
from ..utils.ffmpeg_utils import resolve_ffmpeg, resolve_ffprobe
from ..utils.format_utils import format_fps

ProgressListener = Callable[[ProgressEvent], None]


class ConversionPipeline:
    """
    Runs conversion batches with one immutable set of options.

    Args:
        options: The settings for every batch run by this instance.
        on_progress: Receives a `ProgressEvent` for every progress step and
                     every finished file.
        error_log_dir: Directory of the failed-command log; None disables it.
    """

    def __init__(
        self,
        options: ConversionOptions,
        on_progress: Optional[ProgressListener] = None,
        error_log_dir: Optional[Path] = LOG_DIR,
    ):
        self.options = options
        self.on_progress = on_progress
        self.error_log_dir = error_log_dir
        self._lock = threading.Lock()
        self._cancel = CancellationToken()
        self._pending: List[CancellationToken] = []
        self._selector: Optional[EncoderSelector] = None
        self._background: Optional[concurrent.futures.ThreadPoolExecutor] = None

    def cancel(self):
        """Cancels the running batch and any queued background batch. Batches started later are not affected."""
        logger.info("Cancellation requested.")
        self._cancel.cancel()
        for token in list(self._pending):
            token.cancel()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run_in_background(
        self, folder: Path, files: Optional[List[Path]] = None, force_reprobe: bool = False
    ) -> concurrent.futures.Future:
        """
        Starts a batch on a background worker and returns its `Future`.

        The future resolves to the `BatchSummary`, or raises the setup error
        that prevented the batch from starting.
        """
        if self._background is None:
            self._background = concurrent.futures.ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="freefps-batch"
            )
        token = CancellationToken()
        self._pending.append(token)
        return self._background.submit(self._run, folder, files, token, force_reprobe)

    def shutdown(self):
        if self._background is not None:
            self._background.shutdown(wait=True)
            self._background = None

    def run(self, folder: Path, files: Optional[List[Path]] = None, force_reprobe: bool = False) -> BatchSummary:
        """
        Converts a batch and blocks until it finishes.

        Args:
            folder: The input folder.
            files: An explicit selection (paths inside ``folder``), converted in
                   the given order. When omitted, the folder is scanned.
            force_reprobe: Probe encoder capabilities again instead of reusing
                           the result of a previous batch.

        Returns:
            The per-file outcomes. Cancellation is reported here, not raised.

        Raises:
            FreeFpsException: A setup-level failure (invalid options, missing
                              folder, no eligible files, ffmpeg not found).
        """
        return self._run(folder, files, CancellationToken(), force_reprobe)

    def _emit(self, source: SourceFile, index: int, total: int, percentage: float, status: ConversionStatus):
        if self.on_progress is None:
            return
        self.on_progress(
            ProgressEvent(
                current_file=source.name,
                current_file_index=index,
                total_files=total,
                percentage=percentage,
                status=status,
            )
        )

    def _select_encoder(self, ffmpeg_bin: str, force_reprobe: bool) -> EncoderChoice:
        if self._selector is None or self._selector.ffmpeg_bin != ffmpeg_bin:
            self._selector = EncoderSelector(ffmpeg_bin)
        return self._selector.select(
            self.options.use_gpu,
            self.options.gpu_vendor,
            force_reprobe=force_reprobe,
        )

    def _make_error_log(self) -> Optional[ErrorLog]:
        if self.error_log_dir is None:
            return None
        try:
            return ErrorLog(self.error_log_dir)
        except OSError as e:
            logger.warning(f"Failed-command log disabled: {e}")
            return None

    def _discard_pending(self, token: CancellationToken):
        if token in self._pending:
            self._pending.remove(token)

    def _run(
        self,
        folder: Path,
        files: Optional[List[Path]],
        token: CancellationToken,
        force_reprobe: bool,
    ) -> BatchSummary:
        if not self._lock.acquire(blocking=False):
            self._discard_pending(token)
            raise RuntimeError("A conversion batch is already running on this pipeline.")
        # Published before leaving the queue so a concurrent cancel() always reaches it.
        self._cancel = token
        self._discard_pending(token)
        try:
            return self._run_locked(folder, files, token, force_reprobe)
        finally:
            self._lock.release()

    def _run_locked(
        self,
        folder: Path,
        files: Optional[List[Path]],
        token: CancellationToken,
        force_reprobe: bool,
    ) -> BatchSummary:
        options = self.options
        options.validate()

        handler = ProcessVideoFiles(folder)
        rejected = []
        if files is None:
            sources = handler.files
        else:
            sources, rejected = handler.select(files)
        if not sources and not rejected:
            raise NoVideoFilesException(f"No video files to convert in {folder}")

        ffmpeg_bin = resolve_ffmpeg(options.ffmpeg_path)
        ffprobe_bin = resolve_ffprobe(options.ffprobe_path)
        output_dir = resolve_output_dir(handler.source_dir, options.target_fps, options.output_folder)

        encoder = self._select_encoder(ffmpeg_bin, force_reprobe)
        executor = JobExecutor(
            ffmpeg_bin,
            MediaProber(ffmpeg_bin, ffprobe_bin),
            encoder,
            options,
            error_log=self._make_error_log(),
        )

        total = len(rejected) + len(sources)
        summary = BatchSummary(output_dir=output_dir)
        logger.info(
            f"Converting {len(sources)} file(s) to {format_fps(options.target_fps)} fps into {output_dir}"
        )

        index = 0
        for path, error in rejected:
            index += 1
            source = SourceFile(path=path, name=path.name, size=0)
            summary.outcomes.append(JobOutcome(source=source, status=ConversionStatus.ERROR, error=error))
            self._emit(source, index, total, 0.0, ConversionStatus.ERROR)

        for source in sources:
            index += 1
            if token.is_cancelled:
                summary.outcomes.append(
                    JobOutcome(
                        source=source,
                        status=ConversionStatus.CANCELLED,
                        error=ConversionCancelledException("Batch cancelled before this file started"),
                    )
                )
                self._emit(source, index, total, 0.0, ConversionStatus.CANCELLED)
                continue

            logger.info(f"[{index}/{total}] {source.name}")
            output_path = output_path_for(source.path, output_dir, options.target_fps)

            last_pct = 0.0

            def on_file_progress(pct: float, source=source, index=index):
                nonlocal last_pct
                last_pct = pct
                self._emit(source, index, total, pct, ConversionStatus.PROCESSING)

            result = executor.execute(source, output_path, token, on_file_progress)
            summary.outcomes.append(result)
            # A failed or cancelled file keeps the percentage it had reached.
            self._emit(source, index, total, 100.0 if result.succeeded else last_pct, result.status)

        summary.cancelled = token.is_cancelled
        logger.info(
            f"Batch finished: {summary.succeeded} succeeded, {summary.failed} failed, "
            f"{summary.cancelled_count} cancelled."
        )
        if options.write_report:
            ConversionReport(output_dir).write(summary, options, encoder.encoder)
        return summary

"""
Main entry point for the Free FPS application.

This script initializes logging, parses command-line arguments and runs the
requested command:

- ``convert``: retimes the videos of a folder, showing a progress bar per file.
  Ctrl+C cancels the batch after killing the running transcode.
- ``scan``: lists the videos that would be converted (optionally writing thumbnails).
- ``tools``: shows which ffmpeg/ffprobe binaries are used and their versions.
- ``gpu``: shows which hardware encoders pass a trial encode.

Exit status: 0 when every file converted, 1 when some files failed, 2 when
the batch could not start, 130 when it was cancelled.
"""
import concurrent.futures
import sys
from datetime import datetime
from typing import Optional

from loguru import logger
from tqdm import tqdm

from freefps.cli import get_args, options_from_args
from freefps.config.common import LOGGER_FORMAT
from freefps.domain.exceptions import FreeFpsException
from freefps.domain.models import ConversionStatus, ProgressEvent
from freefps.pipeline.conversion_pipeline import ConversionPipeline
from freefps.services.encoder_selector import EncoderSelector
from freefps.services.file_processing_service import scan_folder
from freefps.services.logging_service import configure_logger
from freefps.services.thumbnail_service import extract_thumbnail
from freefps.utils.ffmpeg_utils import resolve_ffmpeg, resolve_ffprobe, tool_version
from freefps.utils.format_utils import format_timedelta, formatted_size

EXIT_SUCCESS = 0
EXIT_PARTIAL = 1
EXIT_ERROR = 2
EXIT_CANCELLED = 130

# Configure the logger for initial setup.
# The level is overridden once the command-line arguments are parsed.
logger.remove()
logger.add(sys.stderr, level="INFO", format=LOGGER_FORMAT)


class TqdmProgress:
    """Renders pipeline progress events as one tqdm bar per file."""

    def __init__(self):
        self.bar: Optional[tqdm] = None
        self.index = 0

    def __call__(self, event: ProgressEvent):
        if event.current_file_index != self.index:
            self.close()
            self.index = event.current_file_index
            self.bar = tqdm(
                total=100,
                desc=f"[{event.current_file_index}/{event.total_files}] {event.current_file[:40]}",
                unit="%",
                bar_format="{desc}: {percentage:3.0f}%|{bar}| [{elapsed}<{remaining}]",
            )
        if self.bar is None:
            return
        self.bar.update(max(0.0, event.percentage - self.bar.n))
        if event.status is not ConversionStatus.PROCESSING:
            self.bar.set_postfix_str(event.status.value)
            self.close()

    def close(self):
        if self.bar is not None:
            self.bar.close()
            self.bar = None


def run_convert(args) -> int:
    options = options_from_args(args)
    progress = TqdmProgress()
    pipeline = ConversionPipeline(options, on_progress=progress, error_log_dir=args.log_dir)
    future = pipeline.run_in_background(args.folder, args.files)
    try:
        while True:
            try:
                summary = future.result(timeout=0.5)
                break
            except concurrent.futures.TimeoutError:
                continue
            except KeyboardInterrupt:
                logger.warning("Interrupted. Cancelling the batch...")
                pipeline.cancel()
    finally:
        progress.close()
        pipeline.shutdown()

    for outcome in summary.outcomes:
        if outcome.error is not None and outcome.status is ConversionStatus.ERROR:
            logger.error(f"{outcome.source.name}: [{outcome.error.code.name}] {outcome.error.details}")

    logger.info(
        f"{summary.succeeded} converted, {summary.failed} failed, {summary.cancelled_count} cancelled. "
        f"Output: {summary.output_dir}"
    )
    if summary.cancelled:
        return EXIT_CANCELLED
    if summary.success:
        logger.success("All files converted.")
        return EXIT_SUCCESS
    return EXIT_PARTIAL


def run_scan(args) -> int:
    files = scan_folder(args.folder)
    ffmpeg_bin = resolve_ffmpeg(args.ffmpeg) if args.thumbnail_dir else None
    if args.thumbnail_dir:
        args.thumbnail_dir.mkdir(parents=True, exist_ok=True)
    for source in files:
        print(f"{source.name}\t{formatted_size(source.size)}")
        if ffmpeg_bin:
            data = extract_thumbnail(ffmpeg_bin, source.path)
            if data:
                (args.thumbnail_dir / f"{source.path.stem}.jpg").write_bytes(data)
    logger.info(f"{len(files)} video file(s) in {args.folder}")
    return EXIT_SUCCESS


def run_tools(args) -> int:
    ffmpeg_bin = resolve_ffmpeg(args.ffmpeg)
    print(f"ffmpeg:  {ffmpeg_bin} ({tool_version(ffmpeg_bin) or 'unknown version'})")
    ffprobe_bin = resolve_ffprobe(args.ffprobe)
    if ffprobe_bin:
        print(f"ffprobe: {ffprobe_bin} ({tool_version(ffprobe_bin) or 'unknown version'})")
    else:
        print("ffprobe: not found (probing uses ffmpeg only)")
    return EXIT_SUCCESS


def run_gpu(args) -> int:
    selector = EncoderSelector(resolve_ffmpeg(args.ffmpeg))
    vendors = selector.available_hardware()
    if not vendors:
        print("No working hardware encoder found; libx264 will be used.")
    for vendor in vendors:
        print(f"{vendor.value}: available")
    return EXIT_SUCCESS


COMMANDS = {
    "convert": run_convert,
    "scan": run_scan,
    "tools": run_tools,
    "gpu": run_gpu,
}


def main(argv=None) -> int:
    """
    Parses the arguments, configures logging and runs the selected command.

    Setup-level errors are logged together with their structured
    ``{code, details}`` form and map to exit status 2.
    """
    args = get_args(argv)
    log_file = configure_logger(args.log_level, args.log_dir)
    if log_file:
        logger.debug(f"Logging to {log_file}")
    logger.debug(f"Parsed arguments: {args}")

    started = datetime.now()
    try:
        exit_code = COMMANDS[args.command](args)
    except FreeFpsException as e:
        logger.error(f"{e.code.name}: {e.details or ''} {e.to_dict()}")
        return EXIT_ERROR
    logger.debug(f"Finished in {format_timedelta(datetime.now() - started)}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())

"""
This module configures application logging and writes the per-batch files.

Console and file logging go through loguru. In addition:

- `ErrorLog` appends a human-readable record of every failed transcode
  (command line, return code, last lines of ffmpeg's stderr) to a text file,
  which is usually all that is needed to reproduce a failure by hand.
- `ConversionReport` writes a machine-readable YAML summary of a batch into
  its output folder.
"""
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger

from ..config.common import (
    ERROR_LOG_FILE_NAME,
    FILE_LOGGER_FORMAT,
    LOG_FILE_NAME,
    LOG_RETENTION,
    LOG_ROTATION,
    LOGGER_FORMAT,
    REPORT_FILE_NAME,
)
from ..domain.models import BatchSummary, ConversionOptions


def configure_logger(level: str = "INFO", log_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Replaces loguru's default sink with the application's sinks.

    A coloured stderr sink is always added. When ``log_dir`` is given, a file
    sink rotating at 10 MB and keeping 7 days of history is added as well; it
    always records DEBUG and above, including every transcoding command.

    Returns the log file path, or None if no file sink could be set up.
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOGGER_FORMAT)
    if log_dir is None:
        return None
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Could not create log directory '{log_dir}': {e}")
        return None
    log_file = log_dir / LOG_FILE_NAME
    logger.add(
        log_file,
        level="DEBUG",
        format=FILE_LOGGER_FORMAT,
        rotation=LOG_ROTATION,
        retention=LOG_RETENTION,
        encoding="utf-8",
        enqueue=True,
    )
    return log_file


class Log:
    """
    A base class for the file logs written next to the conversion.

    Determines the log directory from the given base path and makes sure it
    exists.
    """

    linesep_marker: str = "=" * 50

    def __init__(self, log_base_path: Path):
        self.log_file_path: Path
        if log_base_path.suffix:
            self.log_dir: Path = log_base_path.parent.resolve()
        else:
            self.log_dir = log_base_path.resolve()
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def write(self, *args, **kwargs):
        raise NotImplementedError("Subclasses must implement the write() method.")


class ErrorLog(Log):
    """
    Appends failed-transcode records to a plain text file.

    Each record is a few lines followed by a separator, giving a chronological
    history of failures across batches.
    """

    def __init__(self, error_log_dir: Path, filename: str = ERROR_LOG_FILE_NAME):
        super().__init__(error_log_dir)
        self.log_file_path = self.log_dir / filename

    def write(self, *error_messages: str):
        if not error_messages:
            return

        timestamp = datetime.now().isoformat(timespec="seconds")
        content_to_write = "\n".join((f"[{timestamp}]",) + error_messages) + "\n" + self.linesep_marker + "\n"

        try:
            with self.log_file_path.open("a", encoding="utf-8") as f:
                f.write(content_to_write)
        except OSError as e:
            # Keep the information in the main log if the file cannot be written.
            logger.error(f"Failed to write to error log {self.log_file_path}: {e}")
            for msg in error_messages:
                logger.error(f"  - {msg}")


class ConversionReport(Log):
    """
    Writes the outcome of a batch as YAML into the output folder.

    The report lists the options the batch ran with and, per file, the status,
    output path, encoder, quality mode (including any silent fallback to
    constant quality) and the structured error if the file failed.
    """

    def __init__(self, output_dir: Path, filename: str = REPORT_FILE_NAME):
        super().__init__(output_dir)
        self.log_file_path = self.log_dir / filename

    def write(self, summary: BatchSummary, options: ConversionOptions, encoder: Optional[str] = None):
        report = {
            "generated_at": datetime.now().isoformat(timespec="seconds"),
            "target_fps": options.target_fps,
            "keep_audio": options.keep_audio,
            "audio_bitrate_kbps": options.audio_bitrate if options.keep_audio else None,
            "quality": "constant_quality" if options.use_custom_quality else "target_bitrate",
            "encoder": encoder,
            **summary.to_dict(),
        }
        try:
            with self.log_file_path.open("w", encoding="utf-8") as f:
                yaml.safe_dump(report, f, allow_unicode=True, sort_keys=False)
        except OSError as e:
            logger.error(f"Failed to write conversion report {self.log_file_path}: {e}")
            return
        logger.info(f"Conversion report written to {self.log_file_path}")

"""
Defines the error taxonomy for Free FPS.

Every failure the engine can report is a subclass of `FreeFpsException` and
carries an `ErrorCode`. The numeric values are stable so that a UI (or any
other caller) can map them to localized messages; `to_dict()` renders the
structured ``{code, details}`` error handed to such callers.

Setup-level errors (missing folder, no eligible files, missing ffmpeg, invalid
options) abort a batch before any file is attempted. Per-file errors (probe,
transcode, path validation) are recorded on that file's outcome and the batch
moves on.
"""
from enum import IntEnum
from typing import Optional


class ErrorCode(IntEnum):
    """Numeric error codes shared with callers."""

    NONE = 0
    CANCELLED = 1
    FOLDER_NOT_FOUND = 2
    NO_VIDEO_FILES = 3
    IO = 4

    # Tooling
    FFMPEG_NOT_FOUND = 10
    FFPROBE_NOT_FOUND = 11
    FFMPEG_SPAWN_FAILED = 12
    FFPROBE_FAILED = 13
    FFMPEG_FAILED = 14

    # Validation
    INVALID_FPS = 20
    INVALID_NEW_DURATION = 21
    EMPTY_INPUT_FILE = 22
    VIDEO_QUALITY_OUT_OF_RANGE = 23
    AUDIO_BITRATE_INVALID = 24
    READ_METADATA_FAILED = 25
    PATH_TRAVERSAL_DETECTED = 26
    INVALID_INPUT_PATH = 27


class FreeFpsException(Exception):
    """Base class for all custom exceptions in Free FPS."""

    code: ErrorCode = ErrorCode.NONE

    def __init__(self, details: Optional[str] = None):
        super().__init__(details or self.code.name)
        self.details = details

    def to_dict(self) -> dict:
        return {"code": int(self.code), "details": self.details}


# --- Batch setup ---
class FolderNotFoundException(FreeFpsException):
    """Raised when the input folder does not exist."""

    code = ErrorCode.FOLDER_NOT_FOUND


class NoVideoFilesException(FreeFpsException):
    """Raised when the input folder (or explicit file list) yields nothing to convert."""

    code = ErrorCode.NO_VIDEO_FILES


class FileSystemException(FreeFpsException):
    """Generic filesystem failure, e.g. the output folder cannot be created."""

    code = ErrorCode.IO


class ConversionCancelledException(FreeFpsException):
    """
    Raised inside a job when the cancellation token fires.

    Cancellation is a terminal status rather than a real error; the job
    executor turns it into a `Cancelled` outcome.
    """

    code = ErrorCode.CANCELLED


# --- External tools ---
class ToolNotFoundException(FreeFpsException):
    """Base class for a missing external tool."""

    code = ErrorCode.IO


class FfmpegNotFoundException(ToolNotFoundException):
    code = ErrorCode.FFMPEG_NOT_FOUND


class FfprobeNotFoundException(ToolNotFoundException):
    code = ErrorCode.FFPROBE_NOT_FOUND


class ToolSpawnFailedException(FreeFpsException):
    """Raised when an external process cannot be started at all."""

    code = ErrorCode.FFMPEG_SPAWN_FAILED


# --- Probing ---
class ProbeFailedException(FreeFpsException):
    """
    Raised when a source file cannot be inspected.

    The more specific subclasses tell which fact was missing from the
    inspection output.
    """

    code = ErrorCode.FFPROBE_FAILED


class FpsNotDetectedException(ProbeFailedException):
    """Raised when no video stream line or no numeric fps token is found."""


class DurationNotDetectedException(ProbeFailedException):
    """
    Raised when the top-level ``Duration:`` header is missing.

    The media prober does not let this escape: a missing duration only
    disables bitrate mode for that file.
    """


class MetadataReadFailedException(FreeFpsException):
    """Raised when filesystem metadata (size, mtime) of a source cannot be read."""

    code = ErrorCode.READ_METADATA_FAILED


# --- Transcoding ---
class TranscodeFailedException(FreeFpsException):
    """Raised when the transcoding process exits with a nonzero status."""

    code = ErrorCode.FFMPEG_FAILED


# --- Validation ---
class InvalidFpsException(FreeFpsException):
    code = ErrorCode.INVALID_FPS


class InvalidNewDurationException(FreeFpsException):
    code = ErrorCode.INVALID_NEW_DURATION


class EmptyInputFileException(FreeFpsException):
    code = ErrorCode.EMPTY_INPUT_FILE


class VideoQualityOutOfRangeException(FreeFpsException):
    code = ErrorCode.VIDEO_QUALITY_OUT_OF_RANGE


class AudioBitrateInvalidException(FreeFpsException):
    code = ErrorCode.AUDIO_BITRATE_INVALID


class InvalidInputPathException(FreeFpsException):
    """Raised when a requested input path does not exist or is not a regular file."""

    code = ErrorCode.INVALID_INPUT_PATH


class PathTraversalDetectedException(InvalidInputPathException):
    """Raised when a requested input path resolves outside the input folder."""

    code = ErrorCode.PATH_TRAVERSAL_DETECTED

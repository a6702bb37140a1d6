"""
Timestamp helpers.

The converted file should sort next to its source in any tool that orders by
date, so the engine carries the source's creation time into both the
container metadata and the output file's filesystem timestamps.
"""
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from loguru import logger


def timestamp_to_iso(timestamp: float) -> str:
    """Renders a POSIX timestamp as UTC ISO-8601 with millisecond precision, e.g. ``2024-05-01T10:00:00.123Z``."""
    dt = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_timestamp(value: str) -> Optional[datetime]:
    """
    Parses the ISO-8601 strings found in ``creation_time`` tags.

    Handles the trailing ``Z`` and the 6-digit microsecond form ffprobe prints
    (``2023-07-14T09:30:12.000000Z``). A naive value is taken to be UTC.
    Returns None if the string cannot be parsed.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value!r}")
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _set_windows_creation_time(path: Path, timestamp: float):
    """Sets the NTFS creation time through the Win32 API."""
    import ctypes
    from ctypes import wintypes

    kernel32 = ctypes.windll.kernel32
    kernel32.CreateFileW.restype = wintypes.HANDLE
    file_write_attributes = 0x100
    open_existing = 3
    file_flag_backup_semantics = 0x02000000
    handle = kernel32.CreateFileW(
        str(path), file_write_attributes, 0, None, open_existing, file_flag_backup_semantics, None
    )
    if handle == wintypes.HANDLE(-1).value:
        raise OSError(f"CreateFileW failed for {path}")
    try:
        # FILETIME counts 100ns intervals since 1601-01-01.
        intervals = int((timestamp + 11644473600) * 10_000_000)
        filetime = wintypes.FILETIME(intervals & 0xFFFFFFFF, intervals >> 32)
        if not kernel32.SetFileTime(handle, ctypes.byref(filetime), None, None):
            raise OSError(f"SetFileTime failed for {path}")
    finally:
        kernel32.CloseHandle(handle)


def apply_file_timestamps(path: Path, iso_timestamp: Optional[str], fallback_timestamp: Optional[float] = None) -> bool:
    """
    Sets access/modification (and on Windows, creation) time of ``path``.

    Uses ``iso_timestamp`` when it parses, else ``fallback_timestamp``.
    Returns True if the timestamps were applied. Failures are logged, never
    raised: the conversion itself already succeeded.
    """
    parsed = parse_iso_timestamp(iso_timestamp) if iso_timestamp else None
    timestamp = parsed.timestamp() if parsed else fallback_timestamp
    if timestamp is None:
        logger.warning(f"No usable timestamp to apply to {path.name}.")
        return False
    try:
        os.utime(path, (timestamp, timestamp))
    except OSError as e:
        logger.warning(f"Could not set modification time for {path.name}: {e}")
        return False
    if sys.platform == "win32":
        try:
            _set_windows_creation_time(path, timestamp)
        except OSError as e:
            logger.warning(f"Could not set creation time for {path.name}: {e}")
    return True

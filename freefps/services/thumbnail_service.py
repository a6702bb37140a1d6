"""
Extracts small JPEG previews of source videos.
"""
import subprocess
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config.video import THUMBNAIL_JPEG_QUALITY, THUMBNAIL_SEEK_SECONDS, THUMBNAIL_WIDTH
from ..utils.ffmpeg_utils import popen_kwargs
from .job_executor import CANCEL_POLL_SECONDS, CancellationToken


def extract_thumbnail(ffmpeg_bin: str, path: Path, cancel: Optional[CancellationToken] = None) -> Optional[bytes]:
    """
    Grabs one frame near the start of ``path`` as JPEG bytes.

    Returns None if ffmpeg fails, produces nothing, or ``cancel`` fires.
    """
    cmd = [
        ffmpeg_bin,
        "-hide_banner",
        "-loglevel", "error",
        "-ss", str(THUMBNAIL_SEEK_SECONDS),
        "-i", str(path),
        "-frames:v", "1",
        "-vf", f"scale={THUMBNAIL_WIDTH}:-2",
        "-q:v", str(THUMBNAIL_JPEG_QUALITY),
        "-f", "mjpeg",
        "-",
    ]
    try:
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            **popen_kwargs(),
        )
    except OSError as e:
        logger.warning(f"Could not start ffmpeg for thumbnail of {path.name}: {e}")
        return None

    while True:
        try:
            stdout, stderr = process.communicate(timeout=CANCEL_POLL_SECONDS)
            break
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.is_cancelled:
                process.kill()
                process.communicate()
                logger.debug(f"Thumbnail extraction for {path.name} cancelled.")
                return None

    if process.returncode != 0 or not stdout:
        logger.debug(f"No thumbnail for {path.name}: {stderr.decode('utf-8', errors='replace').strip()}")
        return None
    return stdout


"""
This module provides utility functions for locating and running the external
tools (ffmpeg and ffprobe).

It includes tool resolution (explicit path, system PATH, common install
directories), a safe wrapper for short-lived tool invocations, command
rendering for logs, and best-effort CPU limiting for a spawned transcoder.
"""
import math
import os
import shlex
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

import psutil
from loguru import logger

from ..domain.exceptions import FfmpegNotFoundException, FfprobeNotFoundException

# Checked after PATH when looking for a system-installed tool.
if sys.platform == "darwin":
    COMMON_TOOL_DIRS = (Path("/opt/homebrew/bin"), Path("/usr/local/bin"), Path("/usr/bin"))
else:
    COMMON_TOOL_DIRS = (Path("/usr/local/bin"), Path("/usr/bin"))

# Niceness applied to the transcoder on POSIX systems.
LOWERED_NICENESS = 10


def popen_kwargs() -> dict:
    """Extra keyword arguments for subprocess calls (hides the console window on Windows)."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {}


def _find_system_tool(name: str) -> Optional[str]:
    found = shutil.which(name)
    if found:
        return found
    exe_name = f"{name}.exe" if sys.platform == "win32" else name
    for directory in COMMON_TOOL_DIRS:
        candidate = directory / exe_name
        if candidate.is_file():
            return str(candidate)
    return None


def resolve_ffmpeg(custom_path: Optional[Path] = None) -> str:
    """
    Determines the ffmpeg executable to use.

    An explicitly configured path must exist. Without one, the system PATH and
    the common install directories are searched.

    Raises:
        FfmpegNotFoundException: If no usable ffmpeg binary is found.
    """
    if custom_path:
        if Path(custom_path).is_file():
            logger.debug(f"Using ffmpeg from configured path: '{custom_path}'")
            return str(custom_path)
        raise FfmpegNotFoundException(f"Configured ffmpeg not found: {custom_path}")
    found = _find_system_tool("ffmpeg")
    if not found:
        raise FfmpegNotFoundException("ffmpeg is not installed or not on PATH.")
    return found


def resolve_ffprobe(custom_path: Optional[Path] = None) -> Optional[str]:
    """
    Determines the ffprobe executable to use.

    ffprobe is optional: when it is not installed the engine probes with
    ffmpeg's diagnostic output alone. An explicitly configured path that does
    not exist is still an error.

    Raises:
        FfprobeNotFoundException: If a configured ffprobe path does not exist.
    """
    if custom_path:
        if Path(custom_path).is_file():
            logger.debug(f"Using ffprobe from configured path: '{custom_path}'")
            return str(custom_path)
        raise FfprobeNotFoundException(f"Configured ffprobe not found: {custom_path}")
    found = _find_system_tool("ffprobe")
    if not found:
        logger.warning("ffprobe not found. Falling back to ffmpeg diagnostics for probing.")
    return found


def display_command(cmd_list: List[str]) -> str:
    """Formats a command list as a single copy-pasteable string for logs."""
    if os.name == "nt":
        return subprocess.list2cmdline(cmd_list)
    return shlex.join(cmd_list)


def run_cmd(cmd_list: List[str], show_cmd: bool = False) -> Optional[subprocess.CompletedProcess]:
    """
    Executes a short-lived external command and captures its output.

    Args:
        cmd_list: The command as a list of arguments (never run through a shell).
        show_cmd: If True, the command is logged at DEBUG level before execution.

    Returns:
        A `subprocess.CompletedProcess` with decoded stdout/stderr, or `None` if
        the command could not be started at all.
    """
    if not cmd_list:
        logger.error("run_cmd received an empty command list.")
        return None

    if show_cmd:
        logger.debug(f"Executing command: {display_command(cmd_list)}")

    try:
        result = subprocess.run(
            cmd_list,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            stdin=subprocess.DEVNULL,
            **popen_kwargs(),
        )
    except FileNotFoundError:
        logger.error(f"Command not found: '{cmd_list[0]}'.")
        return None
    except OSError as e:
        logger.error(f"Could not start '{cmd_list[0]}': {e}")
        return None

    if result.stderr and result.returncode != 0:
        logger.debug(f"Command stderr (error, rc={result.returncode}): {result.stderr[-2000:]}")
    elif result.stdout:
        logger.trace(f"Command stdout: {result.stdout[:500]}")
    return result


def tool_version(binary: str) -> Optional[str]:
    """
    Returns the version token reported by ``<binary> -version``.

    For "ffmpeg version 6.1.1-static https://..." this is "6.1.1-static".
    Falls back to the whole first line when the format is unexpected, and
    returns None if the tool cannot be run.
    """
    result = run_cmd([binary, "-version"])
    if result is None:
        return None
    text = result.stdout or result.stderr
    lines = text.splitlines()
    if not lines:
        return None
    first_line = lines[0].strip()
    tool_name = Path(binary).stem
    prefix = f"{tool_name} version "
    if first_line.startswith(prefix):
        rest = first_line[len(prefix):].split()
        if rest:
            return rest[0]
    return first_line


def threads_from_cpu_limit(cpu_limit: int) -> Optional[int]:
    """
    Translates a CPU percentage into an encoder thread count.

    Returns None for 100 % (let the encoder decide); otherwise at least one
    thread and never more than the machine has.
    """
    if cpu_limit >= 100:
        return None
    max_cpus = psutil.cpu_count(logical=True) or 1
    fraction = max(1, cpu_limit) / 100.0
    return max(1, min(max_cpus, math.ceil(max_cpus * fraction)))


def lower_process_priority(pid: int) -> bool:
    """
    Lowers the scheduling priority of a running process.

    This is a best-effort hint, not a resource cap. Returns False (with a
    warning) when the priority could not be changed.
    """
    try:
        process = psutil.Process(pid)
        if sys.platform == "win32":
            process.nice(psutil.BELOW_NORMAL_PRIORITY_CLASS)
        else:
            process.nice(LOWERED_NICENESS)
    except (psutil.Error, OSError) as e:
        logger.warning(f"Could not lower priority of process {pid}: {e}")
        return False
    logger.debug(f"Lowered scheduling priority of process {pid}.")
    return True

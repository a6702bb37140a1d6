"""
Common configuration settings used throughout the application.

This module holds the logging format, the names of the files the application
writes next to its output, and the loader for the user configuration file.
The user file lets people point the application at specific ffmpeg/ffprobe
binaries or change the default conversion settings without touching the code.
"""
import os
from pathlib import Path

import yaml
from loguru import logger

# --- User-Defined Configuration ---
# Loaded from 'config.user.yaml' at the project root, or from the file named by
# the FREEFPS_CONFIG environment variable.

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
USER_CONFIG_PATH = Path(os.environ.get("FREEFPS_CONFIG", PROJECT_ROOT / "config.user.yaml"))


def load_user_config(config_path: Path = USER_CONFIG_PATH) -> dict:
    """
    Reads the user configuration file.

    Returns an empty dict when the file is missing or cannot be parsed, so a
    broken config never prevents the application from starting.
    """
    if not config_path.is_file():
        logger.debug(f"User config '{config_path}' not found. Using built-in defaults.")
        return {}
    try:
        with config_path.open("r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not load or parse '{config_path}': {e}")
        return {}
    if not isinstance(loaded, dict):
        logger.warning(f"Ignoring '{config_path}': top level must be a mapping.")
        return {}
    return loaded


USER_CONFIG = load_user_config()
_paths_config = USER_CONFIG.get("paths") or {}

# Explicit tool binaries. None means "use the system-installed tool".
FFMPEG_PATH: Path | None = Path(_paths_config["ffmpeg"]) if _paths_config.get("ffmpeg") else None
FFPROBE_PATH: Path | None = Path(_paths_config["ffprobe"]) if _paths_config.get("ffprobe") else None

# Directory for the rotating log file and the failed-command log.
LOG_DIR: Path = Path(_paths_config.get("log_dir") or Path.home() / ".freefps" / "logs")


# --- Logging Configuration ---

LOGGER_FORMAT = (
    "<green>{time:MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

# Plain format for the log file (no colour markup).
FILE_LOGGER_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"

LOG_FILE_NAME = "freefps.log"
LOG_ROTATION = "10 MB"
LOG_RETENTION = "7 days"

ERROR_LOG_FILE_NAME = "error.txt"

# Written into the output folder after each batch.
REPORT_FILE_NAME = "conversion_report.yaml"

"""
Provides services for discovering input videos and naming their outputs.

This module contains the logic for the first phase of a batch, where the
application decides which files to convert. The services here are responsible for:
- Finding the eligible video files directly inside the input folder.
- Validating an explicit file selection against that folder, so that a
  selected path can never point outside of it.
- Deriving the output folder and output file names, which embed the target
  frame rate so that runs at different rates never collide.
"""
from pathlib import Path
from typing import List, Optional, Tuple

from loguru import logger

from ..config.video import OUTPUT_DIR_TEMPLATE, OUTPUT_NAME_TEMPLATE, VIDEO_EXTENSIONS
from ..domain.exceptions import (
    FileSystemException,
    FolderNotFoundException,
    FreeFpsException,
    InvalidInputPathException,
    PathTraversalDetectedException,
)
from ..domain.media import SourceFile
from ..utils.format_utils import contains_any_extensions, format_fps, formatted_size


def validate_safe_path(path: Path, base_folder: Path) -> Path:
    """
    Resolves ``path`` and checks that it is a regular file inside ``base_folder``.

    Relative paths are taken relative to ``base_folder``. Symlinks are resolved
    before the containment check.

    Returns:
        The canonical path of the file.

    Raises:
        PathTraversalDetectedException: If the path resolves outside the folder.
        InvalidInputPathException: If the path does not exist or is not a file.
    """
    base = base_folder.resolve()
    candidate = path if path.is_absolute() else base / path
    resolved = candidate.resolve()
    if not resolved.is_relative_to(base):
        raise PathTraversalDetectedException(f"{path} is outside of {base}")
    if not resolved.is_file():
        raise InvalidInputPathException(f"{path} does not exist or is not a regular file")
    return resolved


class ProcessVideoFiles:
    """
    Discovers the video files of one input folder.

    Scanning is not recursive: converted output lives in a subfolder of the
    input folder and must not be picked up again by a later run.

    Attributes:
        source_dir (Path): The canonical input folder.
        files (List[SourceFile]): Eligible files, sorted by name.
    """

    def __init__(self, folder: Path):
        if not folder.is_dir():
            raise FolderNotFoundException(f"Input folder does not exist: {folder}")
        self.source_dir = folder.resolve()
        self.files: List[SourceFile] = []
        self.set_files_to_process()

    def set_files_to_process(self):
        """Populates ``self.files`` with the eligible videos in the folder."""
        try:
            entries = sorted(self.source_dir.iterdir(), key=lambda p: p.name.lower())
        except OSError as e:
            raise FileSystemException(f"Cannot list {self.source_dir}: {e}") from e

        files = []
        for entry in entries:
            if not contains_any_extensions(entry, VIDEO_EXTENSIONS):
                continue
            try:
                resolved = validate_safe_path(entry, self.source_dir)
                files.append(SourceFile.from_path(resolved))
            except FreeFpsException as e:
                logger.debug(f"Ignoring {entry.name}: {e}")
            except OSError as e:
                logger.warning(f"Cannot read {entry.name}: {e}")
        self.files = files
        total_size = sum(f.size for f in files)
        logger.debug(f"Found {len(files)} video file(s) ({formatted_size(total_size)}) in {self.source_dir}")

    def select(self, requested: List[Path]) -> Tuple[List[SourceFile], List[Tuple[Path, FreeFpsException]]]:
        """
        Validates an explicit file selection, keeping the caller's order.

        Returns:
            The accepted files and, separately, each rejected path with the
            error that rejected it.
        """
        accepted: List[SourceFile] = []
        rejected: List[Tuple[Path, FreeFpsException]] = []
        for path in requested:
            try:
                resolved = validate_safe_path(path, self.source_dir)
                accepted.append(SourceFile.from_path(resolved))
            except FreeFpsException as e:
                logger.warning(f"Rejected input {path}: {e}")
                rejected.append((path, e))
            except OSError as e:
                error = FileSystemException(f"Cannot read {path}: {e}")
                logger.warning(f"Rejected input {path}: {error}")
                rejected.append((path, error))
        return accepted, rejected


def scan_folder(folder: Path) -> List[SourceFile]:
    """
    Lists the eligible video files directly inside ``folder``.

    Raises:
        FolderNotFoundException: If the folder does not exist.
    """
    return ProcessVideoFiles(folder).files


def resolve_output_dir(input_folder: Path, target_fps: float, output_folder: Optional[Path] = None) -> Path:
    """
    Returns the output folder, creating it if needed.

    Defaults to ``<input>/converted_videos_<fps>fps``.

    Raises:
        FileSystemException: If the folder cannot be created.
    """
    if output_folder is not None:
        output_dir = output_folder
    else:
        output_dir = input_folder / OUTPUT_DIR_TEMPLATE.format(fps=format_fps(target_fps))
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FileSystemException(f"Cannot create output folder {output_dir}: {e}") from e
    return output_dir


def output_path_for(source_path: Path, output_dir: Path, target_fps: float) -> Path:
    """``clip.mp4`` at 25 fps becomes ``<output_dir>/clip_25fps.mp4``."""
    name = OUTPUT_NAME_TEMPLATE.format(
        stem=source_path.stem,
        fps=format_fps(target_fps),
        suffix=source_path.suffix,
    )
    return output_dir / name

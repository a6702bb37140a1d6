"""Shared fixtures for the Free FPS test suite."""
from fractions import Fraction
from pathlib import Path

import pytest

from freefps.domain.media import ProbeResult

DIAGNOSTIC_OUTPUT = """\
Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'clip.mp4':
  Metadata:
    major_brand     : isom
    creation_time   : 2023-07-14T09:30:12.000000Z
  Duration: 00:01:02.50, start: 0.000000, bitrate: 1234 kb/s
  Stream #0:0[0x1](und): Video: h264 (High) (avc1 / 0x31637661), yuv420p(progressive), 1920x1080, 1000 kb/s, 29.97 fps, 29.97 tbr, 30k tbn (default)
  Stream #0:1[0x2](und): Audio: aac (LC) (mp4a / 0x6134706D), 48000 Hz, stereo, fltp, 128 kb/s (default)
At least one output file must be specified
"""


@pytest.fixture
def make_probe():
    def _make(**overrides) -> ProbeResult:
        values = dict(
            fps=Fraction(30),
            duration=60.0,
            creation_time=None,
            modified_time=1_700_000_000.0,
            size=100_000_000,
        )
        values.update(overrides)
        return ProbeResult(**values)

    return _make


@pytest.fixture
def video_folder(tmp_path: Path) -> Path:
    """A folder with five small 'videos' and some files that must be ignored."""
    folder = tmp_path / "videos"
    folder.mkdir()
    for name in ("a.mp4", "b.mkv", "c.MOV", "d.avi", "e.webm"):
        (folder / name).write_bytes(b"\x00" * 1024)
    (folder / "notes.txt").write_text("not a video")
    (folder / "nested.mp4").mkdir()
    return folder

"""Tests for thumbnail extraction."""
import subprocess
from pathlib import Path

from freefps.services import thumbnail_service
from freefps.services.job_executor import CancellationToken
from freefps.services.thumbnail_service import extract_thumbnail


class FakeProcess:
    def __init__(self, stdout=b"", stderr=b"", returncode=0, hangs=False):
        self._stdout = stdout
        self._stderr = stderr
        self.returncode = returncode
        self.hangs = hangs
        self.killed = False

    def communicate(self, timeout=None):
        if self.hangs and not self.killed:
            raise subprocess.TimeoutExpired("ffmpeg", timeout)
        return self._stdout, self._stderr

    def kill(self):
        self.killed = True


def patch_popen(monkeypatch, process):
    calls = []

    def fake_popen(cmd, **kwargs):
        calls.append(cmd)
        return process

    monkeypatch.setattr(thumbnail_service.subprocess, "Popen", fake_popen)
    return calls


def test_extract_thumbnail(monkeypatch):
    calls = patch_popen(monkeypatch, FakeProcess(stdout=b"\xff\xd8jpeg"))
    assert extract_thumbnail("ffmpeg", Path("clip.mp4")) == b"\xff\xd8jpeg"
    cmd = calls[0]
    assert cmd[cmd.index("-i") + 1] == "clip.mp4"
    assert cmd[-3:] == ["-f", "mjpeg", "-"]


def test_failed_extraction_gives_none(monkeypatch):
    patch_popen(monkeypatch, FakeProcess(stderr=b"Invalid data", returncode=1))
    assert extract_thumbnail("ffmpeg", Path("broken.mp4")) is None


def test_cancelled_extraction_kills_ffmpeg(monkeypatch):
    process = FakeProcess(stdout=b"abc", hangs=True)
    patch_popen(monkeypatch, process)
    token = CancellationToken()
    token.cancel()
    assert extract_thumbnail("ffmpeg", Path("clip.mp4"), token) is None
    assert process.killed


def test_ffmpeg_that_cannot_start(monkeypatch):
    def broken_popen(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(thumbnail_service.subprocess, "Popen", broken_popen)
    assert extract_thumbnail("missing-ffmpeg", Path("clip.mp4")) is None

"""Shared test fixtures."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from momentclip.engine import ClipPipeline
from momentclip.library import ClipLibrary, UploadStore
from momentclip.scratch import ScratchStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_settings_path() -> Path:
    return FIXTURES_DIR / "sample_settings.json"


@pytest.fixture
def pipeline(tmp_path: Path) -> ClipPipeline:
    p = ClipPipeline(
        library=ClipLibrary(tmp_path / "clips"),
        uploads=UploadStore(tmp_path / "uploads"),
        scratch=ScratchStore(tmp_path / "scratch"),
        max_workers=3,
    )
    yield p
    p.shutdown()


def fake_ffmpeg(fail_when=None):
    """A subprocess.run stand-in that writes its last argument as output.

    ``fail_when(cmd)`` returning True makes that invocation exit non-zero.
    """
    def run(cmd, **kwargs):
        if cmd[0] == "ffprobe":
            return MagicMock(returncode=0, stdout='{"format": {"duration": "60.0"}}', stderr="")
        if fail_when is not None and fail_when(cmd):
            Path(cmd[-1]).write_bytes(b"partial")
            return MagicMock(returncode=1, stdout="", stderr="Conversion failed!")
        Path(cmd[-1]).write_bytes(b"output of " + cmd[-1].encode())
        return MagicMock(returncode=0, stdout="", stderr="frame=1 speed=1x")
    return run


@pytest.fixture
def ffmpeg():
    return fake_ffmpeg

"""Scratch files for intermediate artifacts.

Each file belongs to the stage that acquired it and is removed when that
stage's ``session()`` exits, whether the stage succeeded or not.
"""

import logging
import tempfile
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from momentclip.errors import CleanupFailure
from momentclip.models import ScratchFile

logger = logging.getLogger(__name__)


def default_scratch_dir() -> Path:
    return Path(tempfile.gettempdir()) / "momentclip-scratch"


class ScratchSession:
    """Files acquired within one ``ScratchStore.session()`` block."""

    def __init__(self, store: "ScratchStore"):
        self._store = store
        self.files: list[ScratchFile] = []

    def acquire(self, purpose: str, suffix: str = "") -> ScratchFile:
        scratch = self._store.acquire(purpose, suffix)
        self.files.append(scratch)
        return scratch

    def release_all(self) -> None:
        # Release in acquisition order.
        for scratch in self.files:
            self._store.release(scratch)
        self.files.clear()


class ScratchStore:
    def __init__(self, root: Path | None = None):
        self.root = Path(root) if root else default_scratch_dir()

    def acquire(self, purpose: str, suffix: str = "") -> ScratchFile:
        """Return a path no other caller in this process will be handed.

        Nothing is created on disk; the caller's tool writes the file.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / f"{purpose}-{uuid.uuid4().hex}{suffix}"
        return ScratchFile(path=path, purpose=purpose)

    def release(self, scratch: ScratchFile) -> bool:
        """Delete ``scratch``. Failures are logged and reported as False."""
        try:
            scratch.path.unlink(missing_ok=True)
        except OSError as e:
            failure = CleanupFailure(f"could not remove {scratch.purpose} file {scratch.path}: {e}")
            logger.warning("%s", failure)
            return False
        return True

    @contextmanager
    def session(self) -> Iterator[ScratchSession]:
        session = ScratchSession(self)
        try:
            yield session
        finally:
            session.release_all()

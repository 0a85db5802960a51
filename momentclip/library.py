"""Uploaded sources and served clips on disk."""

import logging
import re
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from momentclip.models import ClipArtifact

logger = logging.getLogger(__name__)

CLIP_ID_RE = re.compile(r"^clip-[0-9a-f]+$")


class UploadStore:
    """Source videos uploaded by users, served under ``url_prefix``."""

    def __init__(self, uploads_dir: Path, url_prefix: str = "/uploads"):
        self.uploads_dir = Path(uploads_dir).absolute()
        self.url_prefix = url_prefix.rstrip("/")

    def save(self, upload: FileStorage) -> str:
        """Store an upload under a fresh name and return its URL."""
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        ext = Path(secure_filename(upload.filename or "")).suffix.lower() or ".mp4"
        name = f"{uuid.uuid4()}{ext}"
        upload.save(self.uploads_dir / name)
        logger.info("Stored upload %r as %s", upload.filename, name)
        return f"{self.url_prefix}/{name}"

    def resolve(self, source_ref: str) -> Path:
        """Map an upload URL (or bare file name) to its path on disk.

        Only the final path component is used, so a reference can never
        point outside the uploads directory.
        """
        name = PurePosixPath(urlparse(source_ref).path).name
        if not name or name in (".", ".."):
            raise ValueError(f"Invalid video reference: {source_ref!r}")
        return self.uploads_dir / name


def display_name(clip_id: str) -> str:
    words = clip_id.removeprefix("clip-").split("-")
    return " ".join(
        w.capitalize() if i == 0 else w.lower() for i, w in enumerate(words)
    )


class ClipLibrary:
    """Finished clips, written into ``clips_dir`` and served under ``url_prefix``."""

    def __init__(self, clips_dir: Path, url_prefix: str = "/clips"):
        self.clips_dir = Path(clips_dir).absolute()
        self.url_prefix = url_prefix.rstrip("/")
        self._artifacts: dict[str, ClipArtifact] = {}
        self._lock = threading.Lock()

    def allocate(self) -> tuple[str, Path]:
        """Return a new clip id and the path its video should be written to."""
        self.clips_dir.mkdir(parents=True, exist_ok=True)
        clip_id = f"clip-{uuid.uuid4().hex}"
        return clip_id, self.path_for(clip_id)

    def path_for(self, clip_id: str) -> Path:
        if not CLIP_ID_RE.match(clip_id):
            raise ValueError(f"Invalid clip id: {clip_id!r}")
        return self.clips_dir / f"{clip_id}.mp4"

    def url_for(self, clip_id: str) -> str:
        return f"{self.url_prefix}/{clip_id}.mp4"

    def register(self, artifact: ClipArtifact) -> ClipArtifact:
        with self._lock:
            self._artifacts[artifact.id] = artifact
        return artifact

    def get(self, clip_id: str) -> ClipArtifact | None:
        with self._lock:
            artifact = self._artifacts.get(clip_id)
        if artifact is not None:
            return artifact

        try:
            path = self.path_for(clip_id)
        except ValueError:
            return None
        if not path.is_file():
            return None
        return self._from_disk(path)

    def _from_disk(self, path: Path) -> ClipArtifact:
        created = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        return ClipArtifact(
            id=path.stem,
            filename=path.name,
            url=self.url_for(path.stem),
            label=display_name(path.stem),
            created_at=created,
        )

    def list_clips(self) -> list[ClipArtifact]:
        """All clips on disk, newest first."""
        if not self.clips_dir.is_dir():
            return []
        clips = [
            self.get(p.stem) or self._from_disk(p)
            for p in self.clips_dir.glob("clip-*.mp4")
            if CLIP_ID_RE.match(p.stem)
        ]
        return sorted(clips, key=lambda c: c.created_at, reverse=True)

    def delete(self, clip_id: str) -> bool:
        path = self.path_for(clip_id)
        with self._lock:
            self._artifacts.pop(clip_id, None)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Deleted clip %s", clip_id)
        return True

"""Orchestrator — runs the per-clip pipeline: extract, subtitle, clean up.

Each ClipRequest moves through its own states independently; a failure in
one request is reported as a ClipFailure and never touches any other.
"""

import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable

from momentclip import ffutil
from momentclip.editors.subtitles import build_srt, normalize_track
from momentclip.errors import MomentClipError
from momentclip.library import ClipLibrary, UploadStore
from momentclip.models import (
    ClipArtifact,
    ClipFailure,
    ClipRequest,
    ClipStatus,
    PipelineStage,
    SubtitledVideo,
    SubtitleSegment,
    SubtitleStyle,
)
from momentclip.scratch import ScratchStore

logger = logging.getLogger(__name__)

SubtitleSource = Callable[[Path], list[SubtitleSegment]]
ProgressCallback = Callable[[str, PipelineStage], None]

TERMINAL_STAGES = (PipelineStage.DONE, PipelineStage.FAILED)


class ClipPipeline:
    def __init__(
        self,
        library: ClipLibrary,
        uploads: UploadStore,
        scratch: ScratchStore | None = None,
        style: SubtitleStyle | None = None,
        max_workers: int = 4,
        on_progress: ProgressCallback | None = None,
        max_statuses: int = 1000,
    ):
        self.library = library
        self.uploads = uploads
        self.scratch = scratch or ScratchStore()
        self.style = style or SubtitleStyle()
        self.max_workers = max_workers
        self.on_progress = on_progress
        self.max_statuses = max_statuses
        self._statuses: OrderedDict[str, ClipStatus] = OrderedDict()
        self._status_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None

    # --- status -----------------------------------------------------------

    def status(self, request_id: str) -> ClipStatus | None:
        with self._status_lock:
            return self._statuses.get(request_id)

    def _record(self, request_id: str, status: ClipStatus) -> None:
        """Store ``status``, evicting the oldest finished requests past the limit.

        Requests still in progress are never evicted.
        """
        with self._status_lock:
            self._statuses[request_id] = status
            self._statuses.move_to_end(request_id)
            excess = len(self._statuses) - self.max_statuses
            if excess <= 0:
                return
            finished = [
                rid for rid, s in self._statuses.items()
                if s.stage in TERMINAL_STAGES and rid != request_id
            ]
            for rid in finished[:excess]:
                del self._statuses[rid]

    def _set(self, request_id: str, stage: PipelineStage) -> None:
        self._record(request_id, ClipStatus(stage=stage))
        logger.debug("Clip request %s -> %s", request_id, stage.value)
        if self.on_progress:
            self.on_progress(request_id, stage)

    def _fail(self, request_id: str, stage: PipelineStage, error: Exception) -> ClipFailure:
        reason = str(error) or type(error).__name__
        self._record(
            request_id,
            ClipStatus(stage=PipelineStage.FAILED, failed_stage=stage, reason=reason),
        )
        logger.error("Clip request %s failed while %s: %s", request_id, stage.value, reason)
        if self.on_progress:
            self.on_progress(request_id, PipelineStage.FAILED)
        return ClipFailure(request_id=request_id, stage=stage, reason=reason)

    # --- stages -----------------------------------------------------------

    def create_clip(self, request: ClipRequest) -> ClipArtifact | ClipFailure:
        """Cut ``request.range`` out of its source into a new served clip.

        Every call is a fresh attempt under a newly generated clip id, so a
        failed request can simply be submitted again.
        """
        self._set(request.id, PipelineStage.PENDING)
        self._set(request.id, PipelineStage.EXTRACTING)
        try:
            source = self.uploads.resolve(request.source_ref)
            clip_id, output = self.library.allocate()
            ffutil.extract_range(source, request.range, output)
        except (MomentClipError, OSError, ValueError) as e:
            return self._fail(request.id, PipelineStage.EXTRACTING, e)

        artifact = self.library.register(
            ClipArtifact(
                id=clip_id,
                filename=output.name,
                url=self.library.url_for(clip_id),
                source_request_id=request.id,
                label=request.label,
            )
        )
        logger.info("Created %s for request %s", artifact.url, request.id)
        self._set(request.id, PipelineStage.EXTRACTED)
        return artifact

    def add_subtitles(
        self, clip: ClipArtifact, track: list[SubtitleSegment]
    ) -> SubtitledVideo | ClipFailure:
        """Burn ``track`` into ``clip`` and return the resulting video bytes.

        The SRT document, the converted ASS document and the re-encoded video
        are scratch files; all three are gone by the time this returns.
        """
        request_id = clip.source_request_id or clip.id
        self._set(request_id, PipelineStage.SUBTITLES_PENDING)
        return self._embed(clip, track, request_id)

    def _embed(
        self, clip: ClipArtifact, track: list[SubtitleSegment], request_id: str
    ) -> SubtitledVideo | ClipFailure:
        with self.scratch.session() as session:
            srt = session.acquire("subtitles", ".srt")
            ass = session.acquire("subtitles", ".ass")
            output = session.acquire("output", ".mp4")
            try:
                segments = normalize_track(track)
                if not segments:
                    raise ValueError("Subtitle track is empty")
                document = build_srt(segments)
                srt.path.write_text(document, encoding="utf-8")

                ffutil.convert_subtitle_format(srt.path, ass.path)
                ffutil.embed_subtitles(
                    self.library.path_for(clip.id), ass.path, output.path, self.style
                )
                data = output.path.read_bytes()
            except (MomentClipError, OSError, ValueError) as e:
                return self._fail(request_id, PipelineStage.SUBTITLES_PENDING, e)

        self._set(request_id, PipelineStage.SUBTITLES_EMBEDDED)
        return SubtitledVideo(clip_id=clip.id, data=data, subtitles=document)

    def run(
        self,
        request: ClipRequest,
        subtitle_source: SubtitleSource | None = None,
    ) -> ClipArtifact | SubtitledVideo | ClipFailure:
        """Run every stage for one request, ending in DONE or FAILED."""
        result = self.create_clip(request)
        if isinstance(result, ClipFailure):
            return result

        if subtitle_source is not None:
            self._set(request.id, PipelineStage.SUBTITLES_PENDING)
            try:
                track = subtitle_source(self.library.path_for(result.id))
            except Exception as e:
                # Sources wrap third-party models that raise their own types.
                return self._fail(request.id, PipelineStage.SUBTITLES_PENDING, e)

            subtitled = self._embed(result, track, request.id)
            if isinstance(subtitled, ClipFailure):
                return subtitled
            self._set(request.id, PipelineStage.DONE)
            return subtitled

        self._set(request.id, PipelineStage.DONE)
        return result

    # --- concurrency ------------------------------------------------------

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="momentclip"
            )
        return self._executor

    def submit(
        self,
        request: ClipRequest,
        subtitle_source: SubtitleSource | None = None,
    ) -> Future:
        """Schedule ``run(request)`` on the worker pool."""
        self._set(request.id, PipelineStage.PENDING)
        return self._pool().submit(self.run, request, subtitle_source)

    def run_batch(
        self,
        requests: list[ClipRequest],
        subtitle_source: SubtitleSource | None = None,
    ) -> dict[str, ClipArtifact | SubtitledVideo | ClipFailure]:
        """Run all requests concurrently and collect one result per request.

        Request ids must be unique within the batch.
        """
        seen: set[str] = set()
        for req in requests:
            if req.id in seen:
                raise ValueError(f"Duplicate request id in batch: {req.id!r}")
            seen.add(req.id)

        futures = {req.id: self.submit(req, subtitle_source) for req in requests}
        results: dict[str, ClipArtifact | SubtitledVideo | ClipFailure] = {}
        for request_id, fut in futures.items():
            try:
                results[request_id] = fut.result()
            except Exception as e:
                logger.exception("Unexpected error in clip request %s", request_id)
                stage = (self.status(request_id) or ClipStatus(PipelineStage.PENDING)).stage
                results[request_id] = self._fail(request_id, stage, e)
        return results

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

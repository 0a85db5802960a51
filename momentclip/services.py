"""Builds the pipeline and its collaborators from Settings."""

from functools import partial

from momentclip.analyzers.gemini import GeminiAnalyzer
from momentclip.analyzers.transcribe import transcribe
from momentclip.config import Settings
from momentclip.engine import ClipPipeline, ProgressCallback, SubtitleSource
from momentclip.library import ClipLibrary, UploadStore
from momentclip.scratch import ScratchStore


def build_pipeline(
    settings: Settings, on_progress: ProgressCallback | None = None
) -> ClipPipeline:
    return ClipPipeline(
        library=ClipLibrary(settings.clips_dir),
        uploads=UploadStore(settings.uploads_dir),
        scratch=ScratchStore(settings.scratch_dir),
        style=settings.subtitles.style(),
        max_workers=settings.max_workers,
        on_progress=on_progress,
    )


def build_analyzer(settings: Settings) -> GeminiAnalyzer:
    """Raises UpstreamError when no API key is configured."""
    return GeminiAnalyzer(settings.gemini)


def subtitle_source(settings: Settings, pipeline: ClipPipeline) -> SubtitleSource:
    """The configured way of turning a clip into subtitle segments."""
    if settings.subtitles.backend == "whisper":
        return partial(transcribe, config=settings.subtitles, scratch=pipeline.scratch)
    return build_analyzer(settings).generate_subtitles

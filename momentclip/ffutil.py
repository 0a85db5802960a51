"""FFmpeg/ffprobe subprocess helpers.

Every call builds an argument list and never goes through a shell. Success is
decided by the exit status alone; stderr is only carried along as the error
message. Each helper writes exactly one output file chosen by the caller and
never deletes its inputs.
"""

import json
import logging
import shutil
import subprocess
from pathlib import Path

from momentclip.errors import (
    EmbedFailed,
    ExtractionFailed,
    ProcessFailed,
    SourceNotFound,
    SubtitleConversionFailed,
)
from momentclip.models import SubtitleStyle, TimeRange

logger = logging.getLogger(__name__)

# Keep error messages readable; ffmpeg prints its banner first.
STDERR_TAIL = 2000

# Container durations are rounded by ffprobe; allow this much slack.
DURATION_TOLERANCE = 0.05


class FFmpegNotFoundError(RuntimeError):
    pass


def check_ffmpeg() -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in ("ffmpeg", "ffprobe"):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def _tail(stderr: str | None) -> str:
    return (stderr or "")[-STDERR_TAIL:]


def _discard(path: Path) -> None:
    """Remove a partial output left behind by a failed invocation."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove partial output %s: %s", path, e)


def _run(cmd: list[str], error_cls: type[ProcessFailed], message: str, output_path: Path) -> None:
    logger.debug("Running %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        _discard(output_path)
        raise error_cls(f"{message}: could not start {cmd[0]}", str(e)) from e

    if result.returncode != 0:
        _discard(output_path)
        raise error_cls(f"{message} (rc={result.returncode})", _tail(result.stderr))


def probe_duration(input_path: Path) -> float:
    """Return the container duration in seconds via ffprobe."""
    cmd = [
        "ffprobe",
        "-v", "error",
        "-print_format", "json",
        "-show_format",
        str(input_path),
    ]
    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.returncode != 0:
        raise ExtractionFailed(
            f"ffprobe could not read {input_path.name} (rc={result.returncode})",
            _tail(result.stderr),
        )
    try:
        data = json.loads(result.stdout)
        return float(data["format"]["duration"])
    except (ValueError, KeyError, TypeError) as e:
        raise ExtractionFailed(f"ffprobe reported no duration for {input_path.name}") from e


def extract_range(source_path: Path, time_range: TimeRange, output_path: Path) -> Path:
    """Copy the streams between ``time_range.start`` and ``time_range.end``.

    Streams are copied, not re-encoded. A range that runs past the end of the
    source is rejected instead of producing a silently truncated clip.
    """
    source_path = Path(source_path)
    if not source_path.is_file():
        raise SourceNotFound(f"Source file not found: {source_path.name}")

    duration = probe_duration(source_path)
    if time_range.end > duration + DURATION_TOLERANCE:
        raise ExtractionFailed(
            f"Requested range ends at {time_range.end:.3f}s but "
            f"{source_path.name} is only {duration:.3f}s long"
        )

    cmd = [
        "ffmpeg", "-y",
        "-i", str(source_path),
        "-ss", f"{time_range.start:.3f}",
        "-t", f"{time_range.duration:.3f}",
        "-c:v", "copy",
        "-c:a", "copy",
        str(output_path),
    ]
    logger.info(
        "Extracting %.3fs-%.3fs from %s", time_range.start, time_range.end, source_path.name
    )
    _run(cmd, ExtractionFailed, "ffmpeg clip extraction failed", output_path)

    if not output_path.exists() or output_path.stat().st_size == 0:
        _discard(output_path)
        raise ExtractionFailed(f"ffmpeg produced no data for {output_path.name}")
    return output_path


def convert_subtitle_format(srt_path: Path, ass_path: Path) -> Path:
    """Convert an SRT document into a styled ASS document."""
    cmd = [
        "ffmpeg", "-y",
        "-i", str(srt_path),
        str(ass_path),
    ]
    _run(cmd, SubtitleConversionFailed, "Subtitle conversion failed", ass_path)
    return ass_path


def _backslash_escape(text: str, special: str) -> str:
    return "".join("\\" + c if c in special else c for c in text)


def escape_filter_path(path: Path) -> str:
    """Escape a path for use as a filter option value."""
    return _backslash_escape(str(path).replace("\\", "/"), "\\':")


def escape_filtergraph(text: str) -> str:
    """Escape one filter description for embedding in a filtergraph.

    ffmpeg unescapes the graph first and each option value second, so option
    values have to go through ``escape_filter_path`` before this.
    """
    return _backslash_escape(text, "\\'[],;")


def embed_subtitles(
    video_path: Path,
    subtitle_path: Path,
    output_path: Path,
    style: SubtitleStyle | None = None,
) -> Path:
    """Re-encode ``video_path`` with the subtitles burned into the frame."""
    style = style or SubtitleStyle()
    vf = "subtitles=" + escape_filtergraph(
        f"filename={escape_filter_path(subtitle_path)}"
        f":force_style={style.force_style()}"
    )
    cmd = [
        "ffmpeg", "-y",
        "-i", str(video_path),
        "-vf", vf,
        "-c:v", "libx264",
        "-preset", "fast",
        "-crf", "23",
        "-c:a", "aac",
        "-b:a", "128k",
        str(output_path),
    ]
    logger.info("Burning subtitles into %s", Path(video_path).name)
    _run(cmd, EmbedFailed, "Subtitle burn-in failed", output_path)
    return output_path


def extract_audio(
    input_path: Path, output_path: Path, sample_rate: int = 16000
) -> Path:
    """Extract audio as mono WAV at the given sample rate (for Whisper)."""
    cmd = [
        "ffmpeg", "-y",
        "-i", str(input_path),
        "-vn",
        "-acodec", "pcm_s16le",
        "-ar", str(sample_rate),
        "-ac", "1",
        str(output_path),
    ]
    _run(cmd, ExtractionFailed, "Audio extraction failed", output_path)
    return output_path

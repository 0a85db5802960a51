"""Speech-to-text subtitles using OpenAI Whisper, run locally."""

import logging
from pathlib import Path

from momentclip import ffutil
from momentclip.config import SubtitleConfig
from momentclip.models import SubtitleSegment
from momentclip.scratch import ScratchStore

logger = logging.getLogger(__name__)


def transcribe(
    input_path: Path, config: SubtitleConfig, scratch: ScratchStore
) -> list[SubtitleSegment]:
    """Extract audio, run Whisper, and return timed subtitle segments."""
    import whisper

    with scratch.session() as session:
        wav = session.acquire("audio", ".wav")
        ffutil.extract_audio(input_path, wav.path)

        model = whisper.load_model(config.whisper_model)
        result = model.transcribe(str(wav.path), language=config.language)

    segments: list[SubtitleSegment] = []
    for seg in result["segments"]:
        text = seg["text"].strip()
        if not text or seg["end"] <= seg["start"]:
            continue
        segments.append(SubtitleSegment(start=seg["start"], end=seg["end"], text=text))
    logger.info("Whisper produced %d segments for %s", len(segments), Path(input_path).name)
    return segments

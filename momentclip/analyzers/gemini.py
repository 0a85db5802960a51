"""Moment detection and subtitle generation with the Gemini API."""

import json
import logging
import mimetypes
import time
from pathlib import Path
from typing import Callable

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from momentclip.config import GeminiConfig
from momentclip.errors import (
    MalformedTimecode,
    ProcessingTimeout,
    UpstreamError,
    UpstreamParseFailure,
)
from momentclip.models import Moment, SubtitleSegment, TimeRange
from momentclip.timecode import parse_seconds, parse_timecode

logger = logging.getLogger(__name__)

MOMENTS_PROMPT = (
    "Analyze this video and identify interesting moments. Return a JSON array of "
    "objects with 'start' and 'end' timecodes (in MM:SS format) and a brief "
    "'description' of each moment. Keep descriptions concise and engaging. "
    "RETURN ONLY JSON, NO OTHER TEXT. "
    'Format: [{"start": "00:00", "end": "00:10", "description": "Description of the moment"}]'
)

SUBTITLES_PROMPT = (
    "Analyze this video and generate subtitles. Return a JSON array of objects with "
    "'start' and 'end' timecodes (in seconds) and the 'text' for each subtitle "
    "segment. Keep subtitles concise and natural, 2-4 seconds per segment. "
    "RETURN ONLY JSON, NO OTHER TEXT. "
    'Format: [{"start": 0, "end": 3, "text": "Subtitle text"}]'
)

MOMENTS_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "start": types.Schema(type=types.Type.STRING, description="Start time in MM:SS format"),
            "end": types.Schema(type=types.Type.STRING, description="End time in MM:SS format"),
            "description": types.Schema(type=types.Type.STRING, description="Description of the moment"),
        },
        required=["start", "end", "description"],
    ),
)

SUBTITLES_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "start": types.Schema(type=types.Type.NUMBER, description="Start time in seconds"),
            "end": types.Schema(type=types.Type.NUMBER, description="End time in seconds"),
            "text": types.Schema(type=types.Type.STRING, description="Subtitle text"),
        },
        required=["start", "end", "text"],
    ),
)


def _load_array(text: str | None) -> list[dict]:
    if not text:
        raise UpstreamParseFailure("No response received from Gemini")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise UpstreamParseFailure(f"Gemini response is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise UpstreamParseFailure("Gemini response is not a JSON array")
    if not all(isinstance(item, dict) for item in data):
        raise UpstreamParseFailure("Gemini response array must contain objects")
    return data


def parse_moments(text: str | None) -> list[Moment]:
    """Parse a ``[{start, end, description}]`` response with MM:SS timecodes."""
    moments: list[Moment] = []
    for i, item in enumerate(_load_array(text)):
        try:
            time_range = TimeRange(
                start=parse_timecode(item["start"]),
                end=parse_timecode(item["end"]),
            )
            description = str(item["description"])
        except KeyError as e:
            raise UpstreamParseFailure(f"Moment {i} is missing {e}") from e
        except (MalformedTimecode, ValueError) as e:
            raise UpstreamParseFailure(f"Moment {i} has an invalid time range: {e}") from e
        moments.append(Moment(range=time_range, description=description))
    return moments


def parse_subtitle_segments(text: str | None) -> list[SubtitleSegment]:
    """Parse a ``[{start, end, text}]`` response with times in seconds."""
    return subtitle_segments_from(_load_array(text))


def subtitle_segments_from(items: list) -> list[SubtitleSegment]:
    segments: list[SubtitleSegment] = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise UpstreamParseFailure(f"Subtitle {i} is not an object")
        try:
            segments.append(
                SubtitleSegment(
                    start=parse_seconds(item["start"]),
                    end=parse_seconds(item["end"]),
                    text=str(item["text"]).strip(),
                )
            )
        except KeyError as e:
            raise UpstreamParseFailure(f"Subtitle {i} is missing {e}") from e
        except (MalformedTimecode, ValueError) as e:
            raise UpstreamParseFailure(f"Subtitle {i} has invalid timing: {e}") from e
    return segments


class GeminiAnalyzer:
    """Uploads a video to Gemini and asks it about the content."""

    def __init__(
        self,
        config: GeminiConfig,
        client: genai.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if client is None:
            if not config.api_key:
                raise UpstreamError("No Gemini API key configured")
            client = genai.Client(api_key=config.api_key)
        self.client = client
        self.config = config
        self._sleep = sleep

    def upload(self, video_path: Path):
        """Upload ``video_path`` and wait until Gemini has finished ingesting it.

        Polls every ``poll_interval`` seconds, at most ``max_poll_attempts``
        times, then gives up with ProcessingTimeout. The remote file is
        deleted again on every path that does not return it.
        """
        mime_type = mimetypes.guess_type(str(video_path))[0] or "video/mp4"
        logger.info("Uploading %s to Gemini", Path(video_path).name)
        try:
            uploaded = self.client.files.upload(
                file=str(video_path), config={"mime_type": mime_type}
            )
        except genai_errors.APIError as e:
            raise UpstreamError(f"Gemini upload failed: {e}") from e

        try:
            return self._wait_until_active(uploaded, Path(video_path).name)
        except genai_errors.APIError as e:
            self._delete_remote(uploaded)
            raise UpstreamError(f"Gemini upload failed: {e}") from e
        except UpstreamError:
            self._delete_remote(uploaded)
            raise

    def _wait_until_active(self, uploaded, display_name: str):
        name = uploaded.name
        for attempt in range(self.config.max_poll_attempts):
            if attempt:
                self._sleep(self.config.poll_interval)
                uploaded = self.client.files.get(name=name)
            state = getattr(uploaded.state, "name", None)
            if state == "ACTIVE":
                logger.info("Gemini file %s is ready", name)
                return uploaded
            if state == "FAILED":
                raise UpstreamError(f"Gemini could not process {display_name}")
            logger.debug("Gemini file %s state %s (poll %d)", name, state, attempt)

        raise ProcessingTimeout(
            f"Gemini did not finish processing {display_name} after "
            f"{self.config.max_poll_attempts} checks"
        )

    def _delete_remote(self, uploaded) -> None:
        try:
            self.client.files.delete(name=uploaded.name)
        except genai_errors.APIError as e:
            logger.warning("Failed to delete Gemini file %s: %s", uploaded.name, e)

    def _ask(self, video_path: Path, prompt: str, schema: types.Schema) -> str | None:
        uploaded = self.upload(video_path)
        try:
            response = self.client.models.generate_content(
                model=self.config.model,
                contents=[uploaded, prompt],
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=schema,
                ),
            )
        except genai_errors.APIError as e:
            raise UpstreamError(f"Gemini request failed: {e}") from e
        finally:
            self._delete_remote(uploaded)
        logger.debug("Gemini raw response: %s", response.text)
        return response.text

    def detect_moments(self, video_path: Path, prompt: str | None = None) -> list[Moment]:
        text = self._ask(video_path, prompt or MOMENTS_PROMPT, MOMENTS_SCHEMA)
        moments = parse_moments(text)
        logger.info("Gemini found %d moments in %s", len(moments), Path(video_path).name)
        return moments

    def generate_subtitles(self, video_path: Path) -> list[SubtitleSegment]:
        return parse_subtitle_segments(self._ask(video_path, SUBTITLES_PROMPT, SUBTITLES_SCHEMA))

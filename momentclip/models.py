"""Shared data types used across MomentClip."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from momentclip.timecode import parse_timecode


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TimeRange:
    """A start/end time pair in seconds."""

    start: float
    end: float

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError(f"start must be non-negative, got {self.start}")
        if self.end <= self.start:
            raise ValueError(f"end ({self.end}) must be greater than start ({self.start})")

    @property
    def duration(self) -> float:
        return self.end - self.start

    @classmethod
    def from_timecodes(cls, start: str, end: str) -> "TimeRange":
        return cls(start=parse_timecode(start), end=parse_timecode(end))


@dataclass(frozen=True)
class SubtitleSegment:
    """One caption: text shown between ``start`` and ``end`` seconds."""

    start: float
    end: float
    text: str

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError(f"start must be non-negative, got {self.start}")
        if self.end <= self.start:
            raise ValueError(f"end ({self.end}) must be greater than start ({self.start})")


@dataclass(frozen=True)
class Moment:
    """An interesting moment reported by the AI analyzer."""

    range: TimeRange
    description: str


@dataclass
class ClipRequest:
    """Cut ``range`` out of the uploaded video identified by ``source_ref``."""

    source_ref: str
    range: TimeRange
    label: str = ""
    id: str = field(default_factory=_new_id)


@dataclass(frozen=True)
class ClipArtifact:
    """A finished clip, reachable at ``url``."""

    id: str
    filename: str
    url: str
    source_request_id: str | None = None
    label: str = ""
    created_at: datetime = field(default_factory=_now)


class PipelineStage(Enum):
    PENDING = "pending"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    SUBTITLES_PENDING = "subtitles_pending"
    SUBTITLES_EMBEDDED = "subtitles_embedded"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ClipFailure:
    request_id: str
    stage: PipelineStage
    reason: str


@dataclass(frozen=True)
class ClipStatus:
    stage: PipelineStage
    failed_stage: PipelineStage | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class SubtitledVideo:
    """Result of burning subtitles into a clip."""

    clip_id: str
    data: bytes
    subtitles: str


@dataclass(frozen=True)
class ScratchFile:
    path: Path
    purpose: str
    created_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class SubtitleStyle:
    """Fixed look for burned-in captions (ASS ``force_style`` fields)."""

    font_name: str = "Arial"
    font_size: int = 24
    primary_colour: str = "&HFFFFFF"
    outline_colour: str = "&H000000"
    outline: int = 1

    def force_style(self) -> str:
        return (
            f"FontName={self.font_name},FontSize={self.font_size},"
            f"PrimaryColour={self.primary_colour},OutlineColour={self.outline_colour},"
            f"Outline={self.outline}"
        )

"""Subtitle editor — renders a subtitle track as an SRT document."""

import logging

from momentclip.models import SubtitleSegment
from momentclip.timecode import format_srt_time

logger = logging.getLogger(__name__)


def normalize_track(segments: list[SubtitleSegment]) -> list[SubtitleSegment]:
    """Sort segments by start time and clamp overlaps.

    A segment that runs into its successor is cut off where the successor
    starts; if nothing is left of it, it is dropped.
    """
    ordered = sorted(segments, key=lambda seg: seg.start)
    result: list[SubtitleSegment] = []

    for i, seg in enumerate(ordered):
        end = seg.end
        if i + 1 < len(ordered):
            end = min(end, ordered[i + 1].start)
        if end <= seg.start:
            logger.warning(
                "Dropping subtitle %r at %.3fs: fully overlapped by the next segment",
                seg.text, seg.start,
            )
            continue
        if end != seg.end:
            seg = SubtitleSegment(start=seg.start, end=end, text=seg.text)
        result.append(seg)
    return result


def build_srt(segments: list[SubtitleSegment]) -> str:
    """Render segments as a 1-indexed SRT document, each entry blank-terminated."""
    lines: list[str] = []
    for i, seg in enumerate(segments, 1):
        lines.append(str(i))
        lines.append(f"{format_srt_time(seg.start)} --> {format_srt_time(seg.end)}")
        lines.append(seg.text)
        lines.append("")
    return "".join(line + "\n" for line in lines)

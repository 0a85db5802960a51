"""Conversions between timecode text and seconds.

Two output forms exist and are chosen by the caller: ``format_srt_time`` for
subtitle documents (``HH:MM:SS,mmm``) and ``format_short`` for display
(``MM:SS``). Both truncate rather than round.
"""

import math
from decimal import ROUND_DOWN, Decimal

from momentclip.errors import MalformedTimecode


def parse_timecode(text: str) -> float:
    """Parse ``MM:SS`` or ``H:MM:SS`` into seconds.

    The last field is seconds; each preceding field is sixty times more
    significant than the one after it.
    """
    if not isinstance(text, str):
        raise MalformedTimecode(f"timecode must be text, got {type(text).__name__}")

    fields = text.strip().split(":")
    if len(fields) not in (2, 3):
        raise MalformedTimecode(f"expected MM:SS or H:MM:SS, got {text!r}")

    seconds = 0
    for part in fields:
        if not part.isascii() or not part.isdigit():
            raise MalformedTimecode(f"non-numeric field {part!r} in {text!r}")
        seconds = seconds * 60 + int(part)
    return float(seconds)


def parse_seconds(value) -> float:
    """Parse a numeric seconds value as returned by the AI service."""
    if isinstance(value, bool):
        raise MalformedTimecode(f"not a number of seconds: {value!r}")
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise MalformedTimecode(f"not a number of seconds: {value!r}") from None
    if not math.isfinite(seconds) or seconds < 0:
        raise MalformedTimecode(f"seconds must be finite and non-negative: {value!r}")
    return seconds


def to_seconds(value) -> float:
    """Accept either a colon timecode or a plain number of seconds."""
    if isinstance(value, str) and ":" in value:
        return parse_timecode(value)
    return parse_seconds(value)


def _split(seconds: float) -> tuple[int, int, int, int]:
    if seconds < 0:
        raise ValueError(f"cannot format negative duration {seconds}")
    # repr() keeps the shortest exact decimal form, so 1.001 stays 1.001
    total_ms = int(
        (Decimal(repr(float(seconds))) * 1000).quantize(Decimal(1), rounding=ROUND_DOWN)
    )
    h, rem = divmod(total_ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms = divmod(rem, 1000)
    return h, m, s, ms


def format_srt_time(seconds: float) -> str:
    h, m, s, ms = _split(seconds)
    return f"{h:02d}:{m:02d}:{s:02d},{ms:03d}"


def format_short(seconds: float) -> str:
    h, m, s, _ = _split(seconds)
    return f"{h * 60 + m:02d}:{s:02d}"

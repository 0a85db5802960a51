"""Settings — loaded from an optional JSON file, then the environment."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from momentclip.models import SubtitleStyle
from momentclip.scratch import default_scratch_dir


@dataclass
class GeminiConfig:
    """Access to the hosted Gemini model."""

    api_key: str | None = None
    model: str = "gemini-2.0-flash"
    poll_interval: float = 1.0
    max_poll_attempts: int = 120


@dataclass
class SubtitleConfig:
    """Where subtitles come from and how they look once burned in."""

    backend: str = "gemini"
    whisper_model: str = "base"
    language: str | None = None
    font_name: str = "Arial"
    font_size: int = 24
    outline: int = 1

    def style(self) -> SubtitleStyle:
        return SubtitleStyle(
            font_name=self.font_name, font_size=self.font_size, outline=self.outline
        )


@dataclass
class Settings:
    """Top-level application settings."""

    data_dir: Path = Path("data")
    scratch_dir: Path = field(default_factory=default_scratch_dir)
    max_workers: int = 4
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    subtitles: SubtitleConfig = field(default_factory=SubtitleConfig)

    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def clips_dir(self) -> Path:
        return self.data_dir / "clips"


SUBTITLE_BACKENDS = ("gemini", "whisper")


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] = os.environ,
) -> Settings:
    """Build Settings from a JSON file (if given) and environment overrides."""
    data: dict = {}
    if path is not None:
        data = json.loads(Path(path).read_text())
        if not isinstance(data, dict):
            raise ValueError("Settings file must contain a JSON object")

    gemini = GeminiConfig(**data["gemini"]) if "gemini" in data else GeminiConfig()
    subtitles = SubtitleConfig(**data["subtitles"]) if "subtitles" in data else SubtitleConfig()

    if subtitles.backend not in SUBTITLE_BACKENDS:
        raise ValueError(
            f"subtitles.backend must be one of {', '.join(SUBTITLE_BACKENDS)}, "
            f"got {subtitles.backend!r}"
        )

    settings = Settings(
        data_dir=Path(data.get("data_dir", "data")),
        max_workers=int(data.get("max_workers", 4)),
        gemini=gemini,
        subtitles=subtitles,
    )
    if "scratch_dir" in data:
        settings.scratch_dir = Path(data["scratch_dir"])

    if environ.get("GOOGLE_GEMINI_API_KEY"):
        settings.gemini.api_key = environ["GOOGLE_GEMINI_API_KEY"]
    if environ.get("MOMENTCLIP_DATA_DIR"):
        settings.data_dir = Path(environ["MOMENTCLIP_DATA_DIR"])
    if environ.get("MOMENTCLIP_SCRATCH_DIR"):
        settings.scratch_dir = Path(environ["MOMENTCLIP_SCRATCH_DIR"])

    return settings

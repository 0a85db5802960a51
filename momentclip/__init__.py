"""MomentClip — cut AI-detected moments out of videos and burn in subtitles."""

__version__ = "0.1.0"

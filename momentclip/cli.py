"""Thin CLI entry point — cuts clips locally or serves the web API."""

import argparse
import logging
import sys
from pathlib import Path

from momentclip import ffutil
from momentclip.config import load_settings
from momentclip.engine import ClipPipeline
from momentclip.errors import MomentClipError, UpstreamError
from momentclip.library import ClipLibrary, UploadStore
from momentclip.models import ClipFailure, ClipRequest, PipelineStage, SubtitledVideo, TimeRange
from momentclip.scratch import ScratchStore
from momentclip.services import build_analyzer, subtitle_source
from momentclip.timecode import format_short, to_seconds


def parse_range(text: str) -> TimeRange:
    """Parse ``START-END`` where each side is a timecode or seconds."""
    start, sep, end = text.partition("-")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected START-END, got {text!r}")
    try:
        return TimeRange(start=to_seconds(start), end=to_seconds(end))
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="momentclip",
        description="MomentClip — cut interesting moments out of videos and burn in subtitles.",
    )
    parser.add_argument("--config", "-c", type=Path, help="Path to a JSON settings file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug output")
    sub = parser.add_subparsers(dest="command")

    clip = sub.add_parser("clip", help="Cut one or more ranges out of a video")
    clip.add_argument("video", type=Path, help="Input video file")
    clip.add_argument(
        "--range", "-r", dest="ranges", type=parse_range, action="append", required=True,
        help="Time range as START-END, e.g. 1:05-1:20 (repeatable)",
    )
    clip.add_argument("--subtitles", action="store_true", help="Burn in generated subtitles")
    clip.add_argument("--output-dir", "-o", type=Path, default=Path("clips"), help="Where clips are written")

    moments = sub.add_parser("moments", help="Ask Gemini for interesting moments in a video")
    moments.add_argument("video", type=Path, help="Input video file")
    moments.add_argument("--prompt", type=str, default=None, help="Custom analysis prompt")

    serve = sub.add_parser("serve", help="Launch the web API")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    settings = load_settings(args.config)

    if args.command == "serve":
        from momentclip.web import create_app
        app = create_app(settings)
        print(f"MomentClip API: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False)
        return

    try:
        ffutil.check_ffmpeg()
    except ffutil.FFmpegNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "moments":
        try:
            found = build_analyzer(settings).detect_moments(args.video, prompt=args.prompt)
        except UpstreamError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        for m in found:
            print(f"{format_short(m.range.start)}-{format_short(m.range.end)}  {m.description}")
        return

    def on_progress(request_id: str, stage: PipelineStage) -> None:
        print(f"  [{request_id}] {stage.value}")

    # Cut straight from the given file into the requested directory.
    pipeline = ClipPipeline(
        library=ClipLibrary(args.output_dir, url_prefix=str(args.output_dir.absolute())),
        uploads=UploadStore(args.video.parent),
        scratch=ScratchStore(settings.scratch_dir),
        style=settings.subtitles.style(),
        max_workers=settings.max_workers,
        on_progress=on_progress,
    )

    source = None
    if args.subtitles:
        try:
            source = subtitle_source(settings, pipeline)
        except MomentClipError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

    requests = [ClipRequest(source_ref=args.video.name, range=r) for r in args.ranges]
    results = pipeline.run_batch(requests, subtitle_source=source)
    pipeline.shutdown()

    print()
    failed = 0
    for req in requests:
        result = results[req.id]
        span = f"{format_short(req.range.start)}-{format_short(req.range.end)}"
        if isinstance(result, ClipFailure):
            failed += 1
            print(f"  {span}: FAILED while {result.stage.value}: {result.reason}")
        elif isinstance(result, SubtitledVideo):
            out = pipeline.library.path_for(result.clip_id).with_name(f"{result.clip_id}-subtitled.mp4")
            out.write_bytes(result.data)
            print(f"  {span}: {out}")
        else:
            print(f"  {span}: {pipeline.library.path_for(result.id)}")

    if failed:
        sys.exit(1)

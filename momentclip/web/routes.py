"""HTTP routes for MomentClip."""

import base64
import logging

from flask import (
    Blueprint,
    current_app,
    jsonify,
    request,
    send_from_directory,
)

from momentclip.analyzers.gemini import subtitle_segments_from
from momentclip.engine import ClipPipeline
from momentclip.errors import (
    ProcessingTimeout,
    UpstreamError,
    UpstreamParseFailure,
)
from momentclip.models import ClipArtifact, ClipFailure, ClipRequest, TimeRange
from momentclip.services import build_analyzer, subtitle_source
from momentclip.timecode import format_short, to_seconds

logger = logging.getLogger(__name__)

bp = Blueprint("web", __name__)


def _pipeline() -> ClipPipeline:
    return current_app.config["PIPELINE"]


def _clip_json(clip: ClipArtifact) -> dict:
    return {
        "id": clip.id,
        "name": clip.filename,
        "displayName": clip.label or clip.id,
        "url": clip.url,
        "requestId": clip.source_request_id,
        "createdAt": int(clip.created_at.timestamp() * 1000),
    }


def _failure_json(failure: ClipFailure) -> dict:
    return {
        "status": "error",
        "requestId": failure.request_id,
        "stage": failure.stage.value,
        "message": failure.reason,
    }


def _upstream_error(e: UpstreamError):
    if isinstance(e, ProcessingTimeout):
        return jsonify({"error": str(e)}), 504
    if isinstance(e, UpstreamParseFailure):
        return jsonify({"error": f"Failed to parse video analysis: {e}"}), 502
    return jsonify({"error": str(e)}), 502


def _clip_request(video_url: str, item: dict) -> ClipRequest:
    """Build a ClipRequest; raises ValueError on bad timing."""
    time_range = TimeRange(start=to_seconds(item.get("start")), end=to_seconds(item.get("end")))
    req = ClipRequest(
        source_ref=video_url,
        range=time_range,
        label=str(item.get("description") or ""),
    )
    if isinstance(item.get("requestId"), str) and item["requestId"]:
        req.id = item["requestId"]
    return req


# --- media ------------------------------------------------------------------


@bp.route("/uploads/<path:name>")
def serve_upload(name: str):
    return send_from_directory(_pipeline().uploads.uploads_dir, name)


@bp.route("/clips/<path:name>")
def serve_clip(name: str):
    return send_from_directory(_pipeline().library.clips_dir, name)


@bp.route("/api/upload", methods=["POST"])
def upload():
    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400

    f = request.files["file"]
    if not f.filename:
        return jsonify({"error": "Empty filename"}), 400

    url = _pipeline().uploads.save(f)
    return jsonify({"url": url})


# --- moments ----------------------------------------------------------------


@bp.route("/api/moments", methods=["POST"])
def detect_moments():
    data = request.get_json(silent=True) or {}
    file_url = data.get("fileUrl")
    if not file_url:
        return jsonify({"error": "No file URL provided"}), 400

    try:
        video_path = _pipeline().uploads.resolve(file_url)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not video_path.is_file():
        return jsonify({"error": "Video file not found"}), 404

    try:
        analyzer = current_app.config.get("ANALYZER") or build_analyzer(current_app.config["SETTINGS"])
    except UpstreamError as e:
        return jsonify({"error": str(e)}), 503

    try:
        moments = analyzer.detect_moments(video_path, prompt=data.get("prompt"))
    except UpstreamError as e:
        return _upstream_error(e)

    return jsonify({
        "timecodes": [
            {
                "start": format_short(m.range.start),
                "end": format_short(m.range.end),
                "description": m.description,
            }
            for m in moments
        ]
    })


# --- clips ------------------------------------------------------------------


@bp.route("/api/clips")
def list_clips():
    clips = _pipeline().library.list_clips()
    return jsonify({"clips": [_clip_json(c) for c in clips]})


@bp.route("/api/clips", methods=["POST"])
def create_clip():
    data = request.get_json(silent=True) or {}
    video_url = data.get("videoUrl")
    if not video_url:
        return jsonify({"status": "error", "message": "No video URL provided"}), 400

    try:
        req = _clip_request(video_url, data)
    except ValueError as e:
        return jsonify({"status": "error", "message": str(e)}), 400

    result = _pipeline().run(req)
    if isinstance(result, ClipFailure):
        return jsonify(_failure_json(result)), 500
    return jsonify({"status": "success", "requestId": req.id, "clip": _clip_json(result)})


@bp.route("/api/clips/batch", methods=["POST"])
def create_clips():
    data = request.get_json(silent=True) or {}
    video_url = data.get("videoUrl")
    ranges = data.get("ranges")
    if not video_url or not isinstance(ranges, list) or not ranges:
        return jsonify({"error": "videoUrl and a non-empty ranges array are required"}), 400

    try:
        requests = [_clip_request(video_url, item) for item in ranges]
    except (ValueError, AttributeError) as e:
        return jsonify({"error": f"Invalid range: {e}"}), 400

    ids = [req.id for req in requests]
    if len(set(ids)) != len(ids):
        return jsonify({"error": "requestId values must be unique within a batch"}), 400

    results = _pipeline().run_batch(requests)
    body = []
    for req in requests:
        result = results[req.id]
        if isinstance(result, ClipFailure):
            body.append(_failure_json(result))
        else:
            body.append({"status": "success", "requestId": req.id, "clip": _clip_json(result)})
    return jsonify({"results": body})


@bp.route("/api/clips/status/<request_id>")
def clip_status(request_id: str):
    status = _pipeline().status(request_id)
    if status is None:
        return jsonify({"error": "Clip request not found"}), 404
    return jsonify(status.to_dict())


@bp.route("/api/clips/<clip_id>", methods=["DELETE"])
def delete_clip(clip_id: str):
    try:
        deleted = _pipeline().library.delete(clip_id)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not deleted:
        return jsonify({"error": "Clip not found"}), 404
    return jsonify({"success": True})


@bp.route("/api/clips/<clip_id>/subtitles", methods=["POST"])
def add_subtitles(clip_id: str):
    pipeline = _pipeline()
    clip = pipeline.library.get(clip_id)
    if clip is None:
        return jsonify({"error": "Clip not found"}), 404

    data = request.get_json(silent=True) or {}
    if "subtitles" in data:
        if not isinstance(data["subtitles"], list):
            return jsonify({"error": "subtitles must be an array"}), 400
        try:
            track = subtitle_segments_from(data["subtitles"])
        except UpstreamParseFailure as e:
            return jsonify({"error": str(e)}), 400
    else:
        try:
            source = current_app.config.get("SUBTITLE_SOURCE") or subtitle_source(
                current_app.config["SETTINGS"], pipeline
            )
        except UpstreamError as e:
            return jsonify({"error": str(e)}), 503
        try:
            track = source(pipeline.library.path_for(clip.id))
        except UpstreamError as e:
            return _upstream_error(e)
        except Exception as e:
            logger.exception("Subtitle generation failed for %s", clip.id)
            return jsonify({"error": f"Subtitle generation failed: {e}"}), 500

    result = pipeline.add_subtitles(clip, track)
    if isinstance(result, ClipFailure):
        return jsonify({
            "error": f"Processing failed: {result.reason}",
            "stage": result.stage.value,
        }), 500

    encoded = base64.b64encode(result.data).decode("ascii")
    return jsonify({
        "success": True,
        "videoData": f"data:video/mp4;base64,{encoded}",
        "subtitles": result.subtitles,
    })

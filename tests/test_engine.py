"""Tests for the clip pipeline."""

from pathlib import Path
from unittest.mock import patch

import pytest

from momentclip.errors import UpstreamParseFailure
from momentclip.models import (
    ClipArtifact,
    ClipFailure,
    ClipRequest,
    PipelineStage,
    SubtitledVideo,
    SubtitleSegment,
    TimeRange,
)

TRACK = [SubtitleSegment(start=0, end=3, text="Hi")]


def _upload(pipeline, name: str = "source.mp4") -> str:
    pipeline.uploads.uploads_dir.mkdir(parents=True, exist_ok=True)
    (pipeline.uploads.uploads_dir / name).write_bytes(b"video")
    return f"/uploads/{name}"


def _request(ref: str, start: float = 0, end: float = 5) -> ClipRequest:
    return ClipRequest(source_ref=ref, range=TimeRange(start=start, end=end), label="moment")


def _scratch_files(pipeline) -> list[Path]:
    root = pipeline.scratch.root
    return sorted(root.iterdir()) if root.exists() else []


class TestCreateClip:
    def test_success(self, pipeline, ffmpeg):
        req = _request(_upload(pipeline))
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            clip = pipeline.create_clip(req)

        assert isinstance(clip, ClipArtifact)
        assert clip.source_request_id == req.id
        assert clip.url == f"/clips/{clip.id}.mp4"
        assert clip.label == "moment"
        assert (pipeline.library.clips_dir / clip.filename).exists()
        assert pipeline.library.get(clip.id) is clip
        assert pipeline.status(req.id).stage == PipelineStage.EXTRACTED

    def test_missing_source(self, pipeline):
        req = _request("/uploads/missing.mp4")
        result = pipeline.create_clip(req)

        assert isinstance(result, ClipFailure)
        assert result.stage == PipelineStage.EXTRACTING
        assert "missing.mp4" in result.reason
        status = pipeline.status(req.id)
        assert status.stage == PipelineStage.FAILED
        assert status.failed_stage == PipelineStage.EXTRACTING

    def test_ffmpeg_failure_leaves_no_clip(self, pipeline, ffmpeg):
        req = _request(_upload(pipeline))
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg(fail_when=lambda cmd: True)):
            result = pipeline.create_clip(req)

        assert isinstance(result, ClipFailure)
        assert "Conversion failed!" in result.reason
        assert list(pipeline.library.clips_dir.glob("*.mp4")) == []

    def test_retry_after_failure_is_fresh_attempt(self, pipeline, ffmpeg):
        req = _request(_upload(pipeline))
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg(fail_when=lambda cmd: True)):
            first = pipeline.create_clip(req)
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            second = pipeline.create_clip(req)
            third = pipeline.create_clip(req)

        assert isinstance(first, ClipFailure)
        assert isinstance(second, ClipArtifact)
        assert isinstance(third, ClipArtifact)
        assert second.id != third.id
        assert pipeline.status(req.id).stage == PipelineStage.EXTRACTED

    def test_progress_callback(self, pipeline, ffmpeg):
        seen = []
        pipeline.on_progress = lambda request_id, stage: seen.append(stage)
        req = _request(_upload(pipeline))
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            pipeline.create_clip(req)
        assert seen == [PipelineStage.PENDING, PipelineStage.EXTRACTING, PipelineStage.EXTRACTED]


class TestAddSubtitles:
    def _clip(self, pipeline, ffmpeg) -> ClipArtifact:
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            return pipeline.create_clip(_request(_upload(pipeline)))

    def test_success_returns_video_and_cleans_up(self, pipeline, ffmpeg):
        clip = self._clip(pipeline, ffmpeg)
        before = _scratch_files(pipeline)
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()) as mock_run:
            result = pipeline.add_subtitles(clip, TRACK)

        assert isinstance(result, SubtitledVideo)
        assert result.clip_id == clip.id
        assert result.data.startswith(b"output of ")
        assert result.subtitles == "1\n00:00:00,000 --> 00:00:03,000\nHi\n\n"
        assert _scratch_files(pipeline) == before
        assert pipeline.status(clip.source_request_id).stage == PipelineStage.SUBTITLES_EMBEDDED

        convert_cmd, embed_cmd = (c[0][0] for c in mock_run.call_args_list)
        assert convert_cmd[-2].endswith(".srt") and convert_cmd[-1].endswith(".ass")
        assert embed_cmd[embed_cmd.index("-i") + 1] == str(pipeline.library.path_for(clip.id))

    def test_embed_failure_still_removes_converted_document(self, pipeline, ffmpeg):
        clip = self._clip(pipeline, ffmpeg)
        before = _scratch_files(pipeline)
        fail_embed = ffmpeg(fail_when=lambda cmd: "-vf" in cmd)
        with patch("momentclip.ffutil.subprocess.run", side_effect=fail_embed):
            result = pipeline.add_subtitles(clip, TRACK)

        assert isinstance(result, ClipFailure)
        assert result.stage == PipelineStage.SUBTITLES_PENDING
        assert "burn-in failed" in result.reason
        assert _scratch_files(pipeline) == before

    def test_conversion_failure_cleans_up(self, pipeline, ffmpeg):
        clip = self._clip(pipeline, ffmpeg)
        fail_convert = ffmpeg(fail_when=lambda cmd: cmd[-1].endswith(".ass"))
        with patch("momentclip.ffutil.subprocess.run", side_effect=fail_convert) as mock_run:
            result = pipeline.add_subtitles(clip, TRACK)

        assert isinstance(result, ClipFailure)
        assert "Subtitle conversion failed" in result.reason
        assert mock_run.call_count == 1
        assert _scratch_files(pipeline) == []

    def test_empty_track(self, pipeline, ffmpeg):
        clip = self._clip(pipeline, ffmpeg)
        with patch("momentclip.ffutil.subprocess.run") as mock_run:
            result = pipeline.add_subtitles(clip, [])
        assert isinstance(result, ClipFailure)
        assert "empty" in result.reason
        mock_run.assert_not_called()

    def test_overlapping_track_is_normalized(self, pipeline, ffmpeg):
        clip = self._clip(pipeline, ffmpeg)
        track = [
            SubtitleSegment(start=2, end=5, text="second"),
            SubtitleSegment(start=0, end=3, text="first"),
        ]
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            result = pipeline.add_subtitles(clip, track)
        assert result.subtitles == (
            "1\n00:00:00,000 --> 00:00:02,000\nfirst\n\n"
            "2\n00:00:02,000 --> 00:00:05,000\nsecond\n\n"
        )


class TestRun:
    def test_without_subtitles_ends_done(self, pipeline, ffmpeg):
        req = _request(_upload(pipeline))
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            result = pipeline.run(req)
        assert isinstance(result, ClipArtifact)
        assert pipeline.status(req.id).stage == PipelineStage.DONE

    def test_with_subtitle_source(self, pipeline, ffmpeg):
        req = _request(_upload(pipeline))
        calls = []

        def source(path: Path):
            calls.append(path)
            return TRACK

        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            result = pipeline.run(req, subtitle_source=source)

        assert isinstance(result, SubtitledVideo)
        assert calls == [pipeline.library.path_for(result.clip_id)]
        assert pipeline.status(req.id).stage == PipelineStage.DONE

    def test_subtitle_source_failure(self, pipeline, ffmpeg):
        req = _request(_upload(pipeline))

        def source(path: Path):
            raise UpstreamParseFailure("Gemini response is not valid JSON")

        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            result = pipeline.run(req, subtitle_source=source)

        assert isinstance(result, ClipFailure)
        assert result.stage == PipelineStage.SUBTITLES_PENDING
        assert pipeline.status(req.id).failed_stage == PipelineStage.SUBTITLES_PENDING

    def test_subtitle_source_runtime_error_is_reported(self, pipeline, ffmpeg):
        req = _request(_upload(pipeline))

        def source(path: Path):
            raise RuntimeError("CUDA out of memory")

        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            result = pipeline.run(req, subtitle_source=source)

        assert isinstance(result, ClipFailure)
        assert result.stage == PipelineStage.SUBTITLES_PENDING
        assert result.reason == "CUDA out of memory"
        assert pipeline.status(req.id).stage == PipelineStage.FAILED

    def test_progress_reports_each_stage_once(self, pipeline, ffmpeg):
        seen = []
        pipeline.on_progress = lambda request_id, stage: seen.append(stage)
        req = _request(_upload(pipeline))
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            pipeline.run(req, subtitle_source=lambda path: TRACK)

        assert seen == [
            PipelineStage.PENDING,
            PipelineStage.EXTRACTING,
            PipelineStage.EXTRACTED,
            PipelineStage.SUBTITLES_PENDING,
            PipelineStage.SUBTITLES_EMBEDDED,
            PipelineStage.DONE,
        ]


class TestRunBatch:
    def test_failure_isolation(self, pipeline, ffmpeg):
        ok_ref = _upload(pipeline)
        requests = [
            _request(ok_ref, 0, 5),
            _request("/uploads/missing.mp4", 5, 10),
            _request(ok_ref, 10, 15),
        ]
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            results = pipeline.run_batch(requests)

        first, second, third = (results[r.id] for r in requests)
        assert isinstance(first, ClipArtifact)
        assert isinstance(second, ClipFailure)
        assert isinstance(third, ClipArtifact)
        assert first.id != third.id
        assert pipeline.status(requests[0].id).stage == PipelineStage.DONE
        assert pipeline.status(requests[1].id).stage == PipelineStage.FAILED
        assert pipeline.status(requests[2].id).stage == PipelineStage.DONE

    def test_unexpected_error_is_contained(self, pipeline, ffmpeg):
        ok_ref = _upload(pipeline)
        requests = [_request(ok_ref), _request(ok_ref)]

        def source(path: Path):
            raise RuntimeError("boom")

        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            results = pipeline.run_batch(requests, subtitle_source=source)

        assert all(isinstance(r, ClipFailure) for r in results.values())
        assert all(r.reason == "boom" for r in results.values())

    def test_submit_returns_future(self, pipeline, ffmpeg):
        req = _request(_upload(pipeline))
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            future = pipeline.submit(req)
            assert isinstance(future.result(timeout=10), ClipArtifact)

    def test_duplicate_request_ids_rejected(self, pipeline, ffmpeg):
        ref = _upload(pipeline)
        first = _request(ref, 0, 5)
        second = ClipRequest(source_ref=ref, range=TimeRange(start=5, end=10), id=first.id)
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()) as mock_run:
            with pytest.raises(ValueError, match="Duplicate request id"):
                pipeline.run_batch([first, second])

        mock_run.assert_not_called()
        assert pipeline.status(first.id) is None


class TestStatusRetention:
    def test_oldest_finished_statuses_are_evicted(self, pipeline, ffmpeg):
        pipeline.max_statuses = 2
        ref = _upload(pipeline)
        requests = [_request(ref), _request(ref), _request(ref)]
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            for req in requests:
                pipeline.run(req)

        assert pipeline.status(requests[0].id) is None
        assert pipeline.status(requests[1].id).stage == PipelineStage.DONE
        assert pipeline.status(requests[2].id).stage == PipelineStage.DONE

    def test_unfinished_statuses_are_kept(self, pipeline, ffmpeg):
        pipeline.max_statuses = 1
        ref = _upload(pipeline)
        requests = [_request(ref), _request(ref)]
        with patch("momentclip.ffutil.subprocess.run", side_effect=ffmpeg()):
            for req in requests:
                pipeline.create_clip(req)

        assert all(pipeline.status(r.id).stage == PipelineStage.EXTRACTED for r in requests)

import pytest

from fastgif.config import Settings
from fastgif.pipeline import (
    PipelineOutcome,
    PipelineRequest,
    ProcessExitError,
    SpawnError,
    Stage,
    build_request,
)
from fastgif.pipeline.commands import ffmpeg_argv, gifski_argv


class TestPipelineOutcome:
    def test_requires_exactly_one_result(self):
        with pytest.raises(ValueError):
            PipelineOutcome()
        with pytest.raises(ValueError):
            PipelineOutcome(data=b"GIF89a", error=SpawnError("boom"))

    def test_success_unwraps_payload(self):
        outcome = PipelineOutcome.success(b"GIF89a")
        assert outcome.ok
        assert outcome.unwrap() == b"GIF89a"

    def test_failure_unwrap_raises_recorded_error(self):
        error = ProcessExitError("gifski process failed with exit code: 1", exit_code=1)
        outcome = PipelineOutcome.failure(error)
        assert not outcome.ok
        with pytest.raises(ProcessExitError) as info:
            outcome.unwrap()
        assert info.value is error


class TestPipelineError:
    def test_describe_includes_stage_exit_code_and_diagnostics(self):
        error = ProcessExitError(
            "ffmpeg process failed with exit code: 1",
            stage=Stage.PRODUCER,
            exit_code=1,
            diagnostics="[ffmpeg stderr]\nServer returned 404 Not Found",
        )
        text = error.describe()
        assert text.startswith("ffmpeg process failed with exit code: 1")
        assert "Error: ProcessExitError" in text
        assert "Stage: producer" in text
        assert "Exit code: 1" in text
        assert "Server returned 404 Not Found" in text

    def test_default_stage_per_kind(self):
        assert SpawnError("x").stage is Stage.PRODUCER
        assert SpawnError("x", stage=Stage.CONSUMER).stage is Stage.CONSUMER


class TestRequestAndCommands:
    def test_request_is_immutable_and_stores_tuples(self):
        request = PipelineRequest(source="in.mp4", producer_argv=["ffmpeg"], consumer_argv=["gifski"])
        assert request.producer_argv == ("ffmpeg",)
        with pytest.raises(AttributeError):
            request.source = "other.mp4"

    def test_request_rejects_empty_argv(self):
        with pytest.raises(ValueError):
            PipelineRequest(source="in.mp4", producer_argv=[], consumer_argv=["gifski"])

    def test_ffmpeg_reads_source_and_writes_yuv4mpegpipe_to_stdout(self):
        argv = ffmpeg_argv("https://video.twimg.com/tweet_video/abc.mp4", Settings(ffmpeg_bin="/opt/ffmpeg"))
        assert argv[0] == "/opt/ffmpeg"
        assert argv[argv.index("-i") + 1] == "https://video.twimg.com/tweet_video/abc.mp4"
        assert argv[argv.index("-f") + 1] == "yuv4mpegpipe"
        assert argv[-1] == "-"

    def test_gifski_fast_flag_follows_settings(self):
        assert gifski_argv(Settings()) == ("gifski", "--output", "-", "--fast", "-")
        assert gifski_argv(Settings(gifski_fast=False)) == ("gifski", "--output", "-", "-")

    def test_build_request_labels_the_job(self):
        request = build_request("abc.mp4", Settings(), label="abc")
        assert request.name == "abc"
        assert request.consumer_argv[0] == "gifski"

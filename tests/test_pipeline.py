import threading

import pytest

from domain.errors import (
    MissingPrerequisiteError, PipelineBusyError, StageFailedError, SummarizationError,
)
from domain.models import MediaAsset, Stage, StageStatus
from ports.summarization import SummarizationTarget
from ports.transcription import TranscriptionTarget
from use_cases.batch_transcribe import BatchTranscriptionScheduler
from use_cases.transcribe import PipelineSettings, TranscriptionPipeline
from conftest import FakeSummarizer, FakeTranscriber

EXPECTED_TRANSCRIPT = "text of seg-000 text of seg-001 text of seg-002 text of seg-003"


@pytest.fixture
def asset():
    return MediaAsset(data=b"RIFF....WAVEfmt", mime_type="audio/wav", name="meeting.wav")


def _status(pipeline, stage):
    return pipeline.checkpoint.record(stage).status


def test_run_produces_stitched_transcript(pipeline, asset, transcriber, codec):
    text = pipeline.run(asset)

    assert text == EXPECTED_TRANSCRIPT
    assert len(pipeline.checkpoint.segments) == 4
    assert len(transcriber.calls) == 4
    assert codec.calls.count("convert") == 1


def test_success_releases_codec_and_resets_stages(pipeline, asset, codec):
    pipeline.run(asset)

    cp = pipeline.checkpoint
    assert not codec.is_loaded()
    assert "release" in codec.calls
    assert cp.record(Stage.SETUP).status == StageStatus.SUCCESS
    for stage in (Stage.CONVERT, Stage.SPLIT, Stage.TRANSCRIBE):
        assert cp.record(stage).status == StageStatus.IDLE
    assert cp.transcript == EXPECTED_TRANSCRIPT


def test_checkpoint_is_persisted(pipeline, asset, store):
    pipeline.run(asset)

    stored = store.load(pipeline.checkpoint.run_id)
    assert stored.transcript == EXPECTED_TRANSCRIPT
    assert [seg.id for seg in stored.segments] == ["seg-000", "seg-001", "seg-002", "seg-003"]
    assert stored.asset_name == "meeting.wav"


def test_progress_ends_with_transcribe_done(pipeline, asset, progress):
    pipeline.run(asset)

    event = progress.latest(pipeline.checkpoint.run_id)
    assert event.stage == "transcribe"
    assert event.progress == 1.0


def test_convert_failure_halts_the_run(pipeline, asset, codec):
    codec.fail_convert = True

    with pytest.raises(StageFailedError) as excinfo:
        pipeline.run(asset)

    assert excinfo.value.stage == "convert"
    assert _status(pipeline, Stage.CONVERT) == StageStatus.ERROR
    assert pipeline.checkpoint.record(Stage.CONVERT).error == "unsupported codec"
    assert _status(pipeline, Stage.SPLIT) == StageStatus.IDLE
    assert "cut" not in codec.calls


def test_retry_convert_after_failure(pipeline, asset, codec):
    codec.fail_convert = True
    with pytest.raises(StageFailedError):
        pipeline.run(asset)

    codec.fail_convert = False
    assert pipeline.retry_from(Stage.CONVERT) == EXPECTED_TRANSCRIPT


def test_retry_requires_prerequisite_artifact(pipeline, asset, codec):
    codec.fail_convert = True
    with pytest.raises(StageFailedError):
        pipeline.run(asset)

    with pytest.raises(MissingPrerequisiteError) as excinfo:
        pipeline.retry_from(Stage.SPLIT)
    assert excinfo.value.artifact == "converted"

    with pytest.raises(MissingPrerequisiteError):
        pipeline.retry_from(Stage.TRANSCRIBE)


def test_retry_without_any_run(pipeline):
    with pytest.raises(MissingPrerequisiteError):
        pipeline.retry_from(Stage.CONVERT)


def test_setup_and_summarize_are_not_retryable(pipeline, asset):
    pipeline.run(asset)
    with pytest.raises(ValueError):
        pipeline.retry_from(Stage.SETUP)
    with pytest.raises(ValueError):
        pipeline.retry_from(Stage.SUMMARIZE)


def test_retry_transcribe_reuses_segments_and_finished_pieces(pipeline, asset, codec, transcriber):
    transcriber.fail_on = {"seg-002"}
    with pytest.raises(StageFailedError) as excinfo:
        pipeline.run(asset)

    assert excinfo.value.stage == "transcribe"
    cp = pipeline.checkpoint
    assert _status(pipeline, Stage.SPLIT) == StageStatus.SUCCESS
    assert _status(pipeline, Stage.TRANSCRIBE) == StageStatus.ERROR
    assert sorted(cp.pieces) == ["seg-000", "seg-001", "seg-003"]
    assert cp.transcript is None

    transcriber.fail_on = set()
    transcriber.calls.clear()
    codec.calls.clear()

    assert pipeline.retry_from(Stage.TRANSCRIBE) == EXPECTED_TRANSCRIPT
    assert transcriber.calls == ["seg-002.mp3"]
    assert "convert" not in codec.calls
    assert "cut" not in codec.calls


def test_retry_split_does_not_convert_again(pipeline, asset, codec, transcriber):
    pipeline.run(asset)
    codec.calls.clear()
    transcriber.calls.clear()

    assert pipeline.retry_from(Stage.SPLIT) == EXPECTED_TRANSCRIPT
    assert "convert" not in codec.calls
    assert "cut" in codec.calls
    # new segments mean every piece is transcribed again
    assert len(transcriber.calls) == 4


def test_new_run_after_failure_does_light_cleanup(pipeline, asset, codec, transcriber):
    transcriber.fail_on = {"seg-001"}
    with pytest.raises(StageFailedError):
        pipeline.run(asset)
    first = pipeline.checkpoint
    assert codec.is_loaded()

    transcriber.fail_on = set()
    assert pipeline.run(asset) == EXPECTED_TRANSCRIPT

    assert "clear" in codec.calls
    assert pipeline.checkpoint.run_id != first.run_id
    assert first.converted is None
    assert first.segments is None


def test_resume_from_store_in_a_new_pipeline(pipeline, asset, codec, transcriber, store, progress, rate_limiter):
    transcriber.fail_on = {"seg-003"}
    with pytest.raises(StageFailedError):
        pipeline.run(asset)
    run_id = pipeline.checkpoint.run_id

    transcriber.fail_on = set()
    transcriber.calls.clear()
    scheduler = BatchTranscriptionScheduler(
        lambda: TranscriptionTarget(provider="groq", model="whisper-large-v3", adapter=transcriber),
        rate_limiter,
    )
    restarted = TranscriptionPipeline(
        codec=codec,
        scheduler=scheduler,
        checkpoints=store,
        progress=progress,
        settings=PipelineSettings(max_segment_bytes=1_000_000),
    )

    cp = restarted.resume(run_id)
    assert cp.record(Stage.TRANSCRIBE).status == StageStatus.ERROR
    assert restarted.retry_from(Stage.TRANSCRIBE) == EXPECTED_TRANSCRIPT
    assert transcriber.calls == ["seg-003.mp3"]


def test_resume_unknown_run(pipeline):
    with pytest.raises(KeyError):
        pipeline.resume("does-not-exist")


def test_summarize_after_run(pipeline, asset, summarizer):
    pipeline.run(asset)

    summary = pipeline.summarize("Summarize in one line.")

    assert summary == "summary of 12 words"
    assert summarizer.calls == [("Summarize in one line.", EXPECTED_TRANSCRIPT, "llama-3.3-70b-versatile")]
    assert pipeline.checkpoint.summary == summary
    assert _status(pipeline, Stage.SUMMARIZE) == StageStatus.SUCCESS


def test_summarize_uses_default_prompt(pipeline, asset, summarizer):
    pipeline.run(asset)
    pipeline.summarize()
    assert summarizer.calls[0][0] == "You are a helpful assistant."


def test_summarize_failure_keeps_transcript(pipeline, asset):
    pipeline.run(asset)
    failing = SummarizationTarget(provider="openai", model="chatgpt-4o-latest", adapter=FakeSummarizer(fail=True))

    with pytest.raises(SummarizationError):
        pipeline.summarize(target=failing)

    cp = pipeline.checkpoint
    assert cp.transcript == EXPECTED_TRANSCRIPT
    assert cp.summary is None
    assert cp.record(Stage.SUMMARIZE).status == StageStatus.ERROR
    assert cp.record(Stage.SUMMARIZE).error == "rate limited"


def test_summarize_requires_transcript(pipeline):
    with pytest.raises(MissingPrerequisiteError):
        pipeline.summarize()


def test_concurrent_run_is_rejected(pipeline, asset, transcriber):
    started = threading.Event()
    release = threading.Event()
    original = transcriber.transcribe

    def blocking_transcribe(audio, model, filename="segment.mp3"):
        started.set()
        release.wait(timeout=5)
        return original(audio, model, filename)

    transcriber.transcribe = blocking_transcribe
    worker = threading.Thread(target=pipeline.run, args=(asset,))
    worker.start()
    try:
        assert started.wait(timeout=5)
        with pytest.raises(PipelineBusyError):
            pipeline.run(asset)
        with pytest.raises(PipelineBusyError):
            pipeline.retry_from(Stage.TRANSCRIBE)
    finally:
        release.set()
        worker.join(timeout=5)

    assert pipeline.checkpoint.transcript == EXPECTED_TRANSCRIPT


def test_status_before_any_run(pipeline):
    assert pipeline.status() is None


def test_status_reports_stages_and_artifacts(pipeline, asset):
    pipeline.run(asset)

    cp = pipeline.status()

    assert cp is pipeline.checkpoint
    assert cp.record(Stage.SETUP).status == StageStatus.SUCCESS
    assert cp.artifacts() == {
        "asset": True, "converted": True, "segments": True, "transcript": True, "summary": False,
    }
    assert cp.used_sources() == ["groq/whisper-large-v3"]


def test_status_after_transcribe_failure(pipeline, asset, transcriber):
    transcriber.fail_on = {"seg-001"}
    with pytest.raises(StageFailedError):
        pipeline.run(asset)

    cp = pipeline.status()

    assert cp.record(Stage.TRANSCRIBE).status == StageStatus.ERROR
    assert cp.artifacts()["segments"] is True
    assert cp.artifacts()["transcript"] is False
    assert sorted(cp.sources) == ["seg-000", "seg-002", "seg-003"]


def test_sources_follow_a_provider_switch(codec, transcriber, rate_limiter, store, progress, asset):
    other = FakeTranscriber(name="openai")
    current = {"target": TranscriptionTarget(provider="groq", model="whisper-large-v3", adapter=transcriber)}
    transcriber.fail_on = {"seg-003"}
    scheduler = BatchTranscriptionScheduler(lambda: current["target"], rate_limiter, progress=progress)
    pipeline = TranscriptionPipeline(
        codec=codec,
        scheduler=scheduler,
        checkpoints=store,
        progress=progress,
        settings=PipelineSettings(max_segment_bytes=1_000_000),
    )
    with pytest.raises(StageFailedError):
        pipeline.run(asset)

    current["target"] = TranscriptionTarget(provider="openai", model="whisper-1", adapter=other)
    pipeline.retry_from(Stage.TRANSCRIBE)

    cp = pipeline.status()
    assert cp.sources["seg-000"] == "groq/whisper-large-v3"
    assert cp.sources["seg-003"] == "openai/whisper-1"
    assert cp.used_sources() == ["groq/whisper-large-v3", "openai/whisper-1"]
    assert other.calls == ["seg-003.mp3"]

"""TranscriptionPipeline — checkpointed Convert → Split → Transcribe state machine.

Accepts all ports via dependency injection. Every stage goes
idle → running → success | error; a success advances to the next stage,
an error halts the machine and leaves the artifacts of earlier stages in
the checkpoint so the failed stage can be retried without recomputing
them.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Optional

from domain.errors import (
    BatchTranscriptionError, ConversionError, MissingPrerequisiteError,
    PipelineBusyError, StageFailedError, SummarizationError,
)
from domain.models import (
    STAGE_ORDER, Checkpoint, MediaAsset, NormalizedAudio, Stage, StageStatus,
    TranscriptPiece,
)
from ports.audio import CodecPort
from ports.checkpoint_store import CheckpointStorePort
from ports.progress import ProgressPort
from ports.summarization import DEFAULT_SYSTEM_PROMPT, SummarizationTarget
from post_processing import stitch_transcripts
from use_cases.batch_transcribe import BatchTranscriptionScheduler
from use_cases.split import DEFAULT_BOUNDARY_OVERLAP, DEFAULT_MAX_DEPTH, RecursiveSplitter

logger = logging.getLogger(__name__)

# Stages driven by run()/retry_from(); summarize is triggered separately.
PIPELINE_STAGES = [Stage.CONVERT, Stage.SPLIT, Stage.TRANSCRIBE]


@dataclass
class PipelineSettings:
    """Tunables of one pipeline instance."""
    max_segment_bytes: int = 25 * 1024 * 1024
    sample_rate: int = 16000
    boundary_overlap: float = DEFAULT_BOUNDARY_OVERLAP
    max_split_depth: int = DEFAULT_MAX_DEPTH
    allow_unsplit_fallback: bool = False
    overlap_window: int = 10
    min_overlap_words: int = 5
    max_overlap_words: int = 20
    similarity_threshold: float = 0.8


class TranscriptionPipeline:
    def __init__(
        self,
        codec: CodecPort,
        scheduler: BatchTranscriptionScheduler,
        checkpoints: CheckpointStorePort,
        progress: ProgressPort,
        settings: Optional[PipelineSettings] = None,
        resolve_summarizer: Optional[Callable[[], SummarizationTarget]] = None,
    ):
        self._codec = codec
        self._scheduler = scheduler
        self._checkpoints = checkpoints
        self._progress = progress
        self.settings = settings or PipelineSettings()
        self._resolve_summarizer = resolve_summarizer
        self._checkpoint: Optional[Checkpoint] = None
        self._lock = threading.Lock()

    # -- public operations ------------------------------------------------

    @property
    def checkpoint(self) -> Optional[Checkpoint]:
        return self._checkpoint

    def status(self) -> Optional[Checkpoint]:
        """Current checkpoint: stage records plus the artifacts it holds.

        None before the first run. See ``Checkpoint.artifacts`` for which
        artifacts are present.
        """
        return self._checkpoint

    def setup(self) -> None:
        """Load the codec. Runs lazily before the first conversion."""
        with self._exclusive():
            if self._checkpoint is None:
                self._checkpoint = self._new_checkpoint(None)
            self._ensure_setup()

    def run(self, asset: MediaAsset) -> str:
        """Start a fresh run for ``asset`` and return the stitched transcript.

        Raises:
            StageFailedError: a stage failed; its record holds the cause.
            PipelineBusyError: another run is in progress.
        """
        with self._exclusive():
            if self._checkpoint is not None and self._codec.is_loaded():
                self._light_cleanup()
            self._checkpoint = self._new_checkpoint(asset)
            logger.info(
                f"[{self._checkpoint.run_id}] New run for {asset.name} "
                f"({asset.mime_type}, {asset.size_bytes} bytes)"
            )
            self._ensure_setup()
            return self._run_from(Stage.CONVERT)

    def retry_from(self, stage: Stage) -> str:
        """Reset ``stage`` and later stages, then re-run from ``stage``.

        Uses the checkpointed artifact of the previous stage as input.

        Raises:
            MissingPrerequisiteError: the input artifact of ``stage`` is absent.
        """
        stage = Stage(stage)
        if stage not in PIPELINE_STAGES:
            raise ValueError(f"Stage '{stage.value}' cannot be retried; use one of {[s.value for s in PIPELINE_STAGES]}")
        with self._exclusive():
            cp = self._checkpoint
            if cp is None:
                raise MissingPrerequisiteError(stage.value, "checkpoint")
            missing = cp.missing_prerequisite(stage)
            if missing:
                raise MissingPrerequisiteError(stage.value, missing)
            logger.info(f"[{cp.run_id}] Retrying from stage '{stage.value}'")
            cp.reset_from(stage)
            self._save()
            self._ensure_setup()
            return self._run_from(stage)

    def resume(self, run_id: str) -> Checkpoint:
        """Load a persisted checkpoint so its stages can be retried."""
        with self._exclusive():
            cp = self._checkpoints.load(run_id)
            if cp is None:
                raise KeyError(f"No checkpoint stored for run {run_id}")
            if self._checkpoint is not None and self._codec.is_loaded():
                self._light_cleanup()
            self._checkpoint = cp
            logger.info(f"[{run_id}] Resumed checkpoint")
            return cp

    def summarize(self, system_prompt: str = "", target: Optional[SummarizationTarget] = None) -> str:
        """Send the finished transcript to the summarization provider.

        A failure only marks the summarize stage as errored; the transcript
        stays in the checkpoint.
        """
        with self._exclusive():
            cp = self._checkpoint
            if cp is None:
                raise MissingPrerequisiteError(Stage.SUMMARIZE.value, "transcript")
            missing = cp.missing_prerequisite(Stage.SUMMARIZE)
            if missing:
                raise MissingPrerequisiteError(Stage.SUMMARIZE.value, missing)
            if target is None:
                if self._resolve_summarizer is None:
                    raise SummarizationError("No summarization provider configured")
                target = self._resolve_summarizer()

            record = cp.record(Stage.SUMMARIZE)
            record.start()
            self._progress.report(cp.run_id, Stage.SUMMARIZE.value, detail=f"{target.provider}/{target.model}")
            try:
                summary = target.adapter.complete(system_prompt or DEFAULT_SYSTEM_PROMPT, cp.transcript, target.model)
            except Exception as e:
                record.fail(e)
                self._save()
                logger.error(f"[{cp.run_id}] Summarization failed: {e}")
                raise SummarizationError(str(e)) from e
            cp.summary = summary
            record.succeed()
            self._save()
            logger.info(f"[{cp.run_id}] Summary received from {target.provider}")
            return summary

    # -- state machine ----------------------------------------------------

    @contextmanager
    def _exclusive(self):
        if not self._lock.acquire(blocking=False):
            raise PipelineBusyError("A transcription run is already in progress")
        try:
            yield
        finally:
            self._lock.release()

    def _new_checkpoint(self, asset: Optional[MediaAsset]) -> Checkpoint:
        cp = Checkpoint(run_id=uuid.uuid4().hex[:12], asset=asset)
        if asset is not None:
            cp.asset_name = asset.name
            cp.asset_mime_type = asset.mime_type
            cp.asset_size = asset.size_bytes
        return cp

    def _ensure_setup(self) -> None:
        record = self._checkpoint.record(Stage.SETUP)
        if self._codec.is_loaded() and record.status == StageStatus.SUCCESS:
            return
        self._execute(Stage.SETUP, self._codec.load)

    def _run_from(self, stage: Stage) -> str:
        handlers = {
            Stage.CONVERT: self._convert,
            Stage.SPLIT: self._split,
            Stage.TRANSCRIBE: self._transcribe,
        }
        for current in PIPELINE_STAGES[PIPELINE_STAGES.index(stage):]:
            self._execute(current, handlers[current])

        transcript = self._checkpoint.transcript
        self._cleanup_after_success()
        return transcript

    def _execute(self, stage: Stage, handler: Callable[[], None]) -> None:
        cp = self._checkpoint
        record = cp.record(stage)
        record.start()
        self._save()
        self._progress.report(cp.run_id, stage.value)
        logger.info(f"[{cp.run_id}] Stage '{stage.value}' running")
        try:
            handler()
        except Exception as e:
            record.fail(e)
            self._save()
            logger.error(f"[{cp.run_id}] Stage '{stage.value}' failed: {e}")
            raise StageFailedError(stage.value, e) from e
        record.succeed()
        self._save()
        self._progress.report(cp.run_id, stage.value, progress=1.0, detail="done")
        logger.info(f"[{cp.run_id}] Stage '{stage.value}' succeeded")

    def _convert(self) -> None:
        cp = self._checkpoint
        cp.clear_artifacts_after(Stage.CONVERT)
        asset = cp.asset
        data = self._codec.convert(asset.data, asset.mime_type, self.settings.sample_rate)
        if not data:
            raise ConversionError(f"Codec produced no audio for {asset.name}")
        cp.converted = NormalizedAudio(data=data, sample_rate=self.settings.sample_rate)
        logger.info(f"[{cp.run_id}] Converted audio: {len(data)} bytes")

    def _split(self) -> None:
        cp = self._checkpoint
        cp.clear_artifacts_after(Stage.SPLIT)
        splitter = RecursiveSplitter(
            self._codec,
            self.settings.max_segment_bytes,
            boundary_overlap=self.settings.boundary_overlap,
            max_depth=self.settings.max_split_depth,
            allow_unsplit_fallback=self.settings.allow_unsplit_fallback,
        )
        cp.segments = splitter.split(cp.converted)
        for seg in cp.segments:
            logger.info(
                f"[{cp.run_id}] Segment {seg.index + 1} ({seg.size_bytes / 1024 / 1024:.2f} MB): "
                f"{seg.start:.2f}-{seg.end:.2f}s"
            )

    def _transcribe(self) -> None:
        cp = self._checkpoint
        cp.clear_artifacts_after(Stage.TRANSCRIBE)
        try:
            pieces = self._scheduler.transcribe(
                cp.segments,
                completed=dict(cp.pieces),
                on_batch=self._record_pieces,
                run_id=cp.run_id,
            )
        except BatchTranscriptionError as e:
            # Keep what the failing batch did finish
            self._record_pieces(e.completed)
            raise

        cp.transcript = stitch_transcripts(
            [piece.text for piece in pieces],
            window=self.settings.overlap_window,
            min_overlap=self.settings.min_overlap_words,
            max_overlap=self.settings.max_overlap_words,
            threshold=self.settings.similarity_threshold,
        )
        logger.info(f"[{cp.run_id}] All segments transcribed and stitched ({len(cp.transcript)} characters)")

    def _record_pieces(self, pieces: list[TranscriptPiece]) -> None:
        if not pieces:
            return
        for piece in pieces:
            self._checkpoint.pieces[piece.segment_id] = piece.text
            if piece.source:
                self._checkpoint.sources[piece.segment_id] = piece.source
        self._save()

    # -- cleanup ----------------------------------------------------------

    def _light_cleanup(self) -> None:
        previous = self._checkpoint
        logger.info(f"[{previous.run_id}] Releasing resources of previous run")
        try:
            self._codec.clear()
        except OSError as e:
            logger.warning(f"Cleanup error: {e}")
        previous.clear_artifacts_after(Stage.CONVERT)

    def _cleanup_after_success(self) -> None:
        cp = self._checkpoint
        try:
            self._codec.release()
            logger.info(f"[{cp.run_id}] Codec working area released")
        except OSError as e:
            logger.warning(f"Cleanup error: {e}")
        for stage in STAGE_ORDER:
            if stage != Stage.SETUP:
                cp.record(stage).reset()
        self._save()

    def _save(self) -> None:
        self._checkpoints.save(self._checkpoint)

"""Framework-agnostic domain models for the segmented transcription pipeline.

The API layer exposes these through Pydantic DTOs (models.py) via the
mappers in mappers.py; nothing in here knows about HTTP or JSON.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Stage(str, Enum):
    SETUP = "setup"
    CONVERT = "convert"
    SPLIT = "split"
    TRANSCRIBE = "transcribe"
    SUMMARIZE = "summarize"


# Execution order of the stages driven by the pipeline.
STAGE_ORDER = [Stage.SETUP, Stage.CONVERT, Stage.SPLIT, Stage.TRANSCRIBE, Stage.SUMMARIZE]


class StageStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class MediaAsset:
    """An uploaded audio or video file, immutable once submitted."""
    data: bytes = field(repr=False)
    mime_type: str
    name: str

    @property
    def is_video(self) -> bool:
        return self.mime_type.startswith("video/")

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class NormalizedAudio:
    """Mono, fixed-rate, lossy-compressed audio produced by the codec."""
    data: bytes = field(repr=False)
    sample_rate: int
    mime_type: str = "audio/mpeg"

    def __len__(self) -> int:
        return len(self.data)


@dataclass
class Segment:
    """A time-bounded slice of normalized audio, small enough to upload."""
    id: str
    index: int
    start: float
    end: float
    audio: bytes = field(repr=False)
    oversized: bool = False

    @property
    def size_bytes(self) -> int:
        return len(self.audio)

    @property
    def source_span(self) -> tuple[float, float]:
        return (self.start, self.end)

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class TranscriptPiece:
    segment_id: str
    text: str
    # "provider/model" that produced the text; empty when no call was made
    source: str = ""


@dataclass
class StageRecord:
    status: StageStatus = StageStatus.IDLE
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def start(self) -> None:
        self.status = StageStatus.RUNNING
        self.error = None
        self.started_at = datetime.now(timezone.utc)
        self.finished_at = None

    def succeed(self) -> None:
        self.status = StageStatus.SUCCESS
        self.finished_at = datetime.now(timezone.utc)

    def fail(self, cause: BaseException) -> None:
        self.status = StageStatus.ERROR
        self.error = str(cause) or type(cause).__name__
        self.finished_at = datetime.now(timezone.utc)

    def reset(self) -> None:
        self.status = StageStatus.IDLE
        self.error = None
        self.started_at = None
        self.finished_at = None


def _fresh_stages() -> dict[Stage, StageRecord]:
    return {stage: StageRecord() for stage in STAGE_ORDER}


@dataclass
class Checkpoint:
    """Stage records plus the artifacts each completed stage produced.

    Enough state to resume any stage without recomputing its predecessors.
    ``pieces`` may be partial: it maps segment ids to the texts that were
    transcribed before a batch failed.
    """
    run_id: str
    asset_name: str = ""
    asset_mime_type: str = ""
    asset_size: int = 0
    stages: dict[Stage, StageRecord] = field(default_factory=_fresh_stages)
    asset: Optional[MediaAsset] = None
    converted: Optional[NormalizedAudio] = None
    segments: Optional[list[Segment]] = None
    pieces: dict[str, str] = field(default_factory=dict)
    sources: dict[str, str] = field(default_factory=dict)
    transcript: Optional[str] = None
    summary: Optional[str] = None

    def record(self, stage: Stage) -> StageRecord:
        return self.stages[stage]

    def missing_prerequisite(self, stage: Stage) -> Optional[str]:
        """Name of the first input artifact ``stage`` needs but lacks, or None."""
        if stage == Stage.CONVERT and self.asset is None:
            return "asset"
        if stage == Stage.SPLIT and self.converted is None:
            return "converted"
        if stage == Stage.TRANSCRIBE and self.segments is None:
            return "segments"
        if stage == Stage.SUMMARIZE and self.transcript is None:
            return "transcript"
        return None

    def artifacts(self) -> dict[str, bool]:
        """Which stage artifacts are currently held."""
        return {
            "asset": self.asset is not None,
            "converted": self.converted is not None,
            "segments": self.segments is not None,
            "transcript": self.transcript is not None,
            "summary": self.summary is not None,
        }

    def used_sources(self) -> list[str]:
        """Distinct provider/model pairs that transcribed the current pieces."""
        return sorted({source for source in self.sources.values() if source})

    def reset_from(self, stage: Stage) -> None:
        """Reset ``stage`` and every later stage to idle."""
        for later in STAGE_ORDER[STAGE_ORDER.index(stage):]:
            self.stages[later].reset()

    def clear_artifacts_after(self, stage: Stage) -> None:
        """Drop the artifacts produced by ``stage`` and every later stage."""
        position = STAGE_ORDER.index(stage)
        if position <= STAGE_ORDER.index(Stage.CONVERT):
            self.converted = None
        if position <= STAGE_ORDER.index(Stage.SPLIT):
            self.segments = None
            self.pieces = {}
            self.sources = {}
        if position <= STAGE_ORDER.index(Stage.TRANSCRIBE):
            self.transcript = None
        self.summary = None

    def ordered_pieces(self) -> list[TranscriptPiece]:
        if not self.segments:
            return []
        return [
            TranscriptPiece(segment_id=seg.id, text=self.pieces[seg.id], source=self.sources.get(seg.id, ""))
            for seg in self.segments
            if seg.id in self.pieces
        ]

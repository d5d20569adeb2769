"""Domain -> DTO mappers.

Converts Checkpoint and Segment (domain) into the Pydantic models served by
the API. Audio bytes never leave the domain layer.
"""

from typing import Optional

from domain.models import Checkpoint, Segment, StageRecord
from models import ProgressInfo, RunStatus, SegmentInfo, StageRecordInfo
from ports.progress import ProgressEvent


def stage_to_dto(record: StageRecord) -> StageRecordInfo:
    return StageRecordInfo(
        status=record.status.value,
        error=record.error,
        started_at=record.started_at,
        finished_at=record.finished_at,
    )


def segment_to_dto(seg: Segment, transcribed: bool = False) -> SegmentInfo:
    return SegmentInfo(
        id=seg.id,
        index=seg.index,
        start=seg.start,
        end=seg.end,
        size_bytes=seg.size_bytes,
        oversized=seg.oversized,
        transcribed=transcribed,
    )


def checkpoint_to_status(cp: Checkpoint, event: Optional[ProgressEvent] = None) -> RunStatus:
    """Convert a checkpoint to its API view, preserving segment order."""
    segments = None
    if cp.segments is not None:
        segments = [segment_to_dto(seg, seg.id in cp.pieces) for seg in cp.segments]
    return RunStatus(
        run_id=cp.run_id,
        asset_name=cp.asset_name,
        asset_mime_type=cp.asset_mime_type,
        asset_size=cp.asset_size,
        stages={stage.value: stage_to_dto(record) for stage, record in cp.stages.items()},
        artifacts=cp.artifacts(),
        has_converted_audio=cp.converted is not None,
        converted_size=len(cp.converted) if cp.converted is not None else None,
        segments=segments,
        transcript=cp.transcript,
        summary=cp.summary,
        sources=cp.used_sources(),
        progress=ProgressInfo(stage=event.stage, progress=event.progress, detail=event.detail) if event else None,
    )

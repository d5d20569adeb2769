from datetime import datetime
from typing import List, Optional, Dict
from pydantic import BaseModel


class StageRecordInfo(BaseModel):
    """Status of one pipeline stage"""
    status: str
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class SegmentInfo(BaseModel):
    """One split segment, without its audio"""
    id: str
    index: int
    start: float
    end: float
    size_bytes: int
    oversized: bool = False
    transcribed: bool = False


class ProgressInfo(BaseModel):
    stage: str
    progress: float = 0.0
    detail: Optional[str] = None


class RunStatus(BaseModel):
    """Checkpoint view: stage records plus which artifacts are present"""
    run_id: str
    asset_name: str
    asset_mime_type: str
    asset_size: int
    stages: Dict[str, StageRecordInfo]
    artifacts: Dict[str, bool] = {}
    has_converted_audio: bool = False
    converted_size: Optional[int] = None
    segments: Optional[List[SegmentInfo]] = None
    transcript: Optional[str] = None
    summary: Optional[str] = None
    sources: List[str] = []
    progress: Optional[ProgressInfo] = None


class TranscriptionResponse(BaseModel):
    """Response of a run or retry"""
    run_id: str
    text: str
    segment_count: int
    # provider/model pairs that transcribed the segments
    sources: List[str]


class SummaryRequest(BaseModel):
    system_prompt: str = ""


class SummaryResponse(BaseModel):
    run_id: str
    summary: str
    provider: str
    model: str


class ProviderUpdate(BaseModel):
    provider: str
    model: Optional[str] = None
    chat_model: Optional[str] = None
    api_key: Optional[str] = None


class ProviderInfo(BaseModel):
    provider: str
    model: str
    chat_model: str
    has_api_key: bool

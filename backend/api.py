"""HTTP surface of the transcription pipeline.

Thin wiring around TranscriptionPipeline: submit a file, inspect the
checkpoint, retry a stage, summarize, and switch the live provider.
"""

import logging
from typing import Optional

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from config import Config, create_pipeline, get_config
from domain.errors import (
    MissingPrerequisiteError, PipelineBusyError, ProviderConfigurationError,
    StageFailedError, SummarizationError,
)
from domain.models import MediaAsset, Stage
from mappers import checkpoint_to_status
from models import (
    ProviderInfo, ProviderUpdate, RunStatus, SummaryRequest, SummaryResponse,
    TranscriptionResponse,
)
from ports.progress import ProgressPort
from use_cases.transcribe import TranscriptionPipeline

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    MissingPrerequisiteError: 409,
    PipelineBusyError: 409,
    ProviderConfigurationError: 400,
    StageFailedError: 502,
    SummarizationError: 502,
}


def create_app(
    pipeline: Optional[TranscriptionPipeline] = None,
    progress: Optional[ProgressPort] = None,
    cfg: Optional[Config] = None,
) -> FastAPI:
    cfg = cfg or get_config()
    if pipeline is None:
        pipeline, infra = create_pipeline(cfg)
        progress = infra["progress"]

    app = FastAPI(title="StitchScribe", description="Segmented transcription pipeline")
    app.state.pipeline = pipeline

    for error_type, status_code in ERROR_STATUS.items():
        app.add_exception_handler(error_type, _error_handler(status_code))

    def _current_status() -> RunStatus:
        cp = pipeline.status()
        if cp is None:
            raise HTTPException(status_code=404, detail="No run yet")
        event = progress.latest(cp.run_id) if progress else None
        return checkpoint_to_status(cp, event)

    def _transcription_response(text: str) -> TranscriptionResponse:
        cp = pipeline.checkpoint
        return TranscriptionResponse(
            run_id=cp.run_id,
            text=text,
            segment_count=len(cp.segments or []),
            sources=cp.used_sources(),
        )

    @app.get("/health")
    def health():
        return {"status": "ok", "config": cfg.as_dict()}

    @app.post("/v1/runs", response_model=TranscriptionResponse)
    def create_run(file: UploadFile = File(...)):
        data = file.file.read()
        if not data:
            raise HTTPException(status_code=400, detail="Empty upload")
        asset = MediaAsset(
            data=data,
            mime_type=file.content_type or "application/octet-stream",
            name=file.filename or "upload",
        )
        logger.info(f"Selected file: {asset.name} ({asset.size_bytes} bytes)")
        text = pipeline.run(asset)
        return _transcription_response(text)

    @app.get("/v1/runs/current", response_model=RunStatus)
    def current_run():
        return _current_status()

    @app.post("/v1/runs/{run_id}/resume", response_model=RunStatus)
    def resume_run(run_id: str):
        try:
            pipeline.resume(run_id)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown run {run_id}")
        return _current_status()

    @app.post("/v1/runs/current/retry/{stage}", response_model=TranscriptionResponse)
    def retry_stage(stage: str):
        try:
            target = Stage(stage)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown stage {stage!r}")
        try:
            text = pipeline.retry_from(target)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _transcription_response(text)

    @app.post("/v1/runs/current/summary", response_model=SummaryResponse)
    def summarize(body: SummaryRequest):
        target = cfg.resolve_summarization_target()
        summary = pipeline.summarize(body.system_prompt, target=target)
        return SummaryResponse(
            run_id=pipeline.checkpoint.run_id,
            summary=summary,
            provider=target.provider,
            model=target.model,
        )

    @app.get("/v1/config/provider", response_model=ProviderInfo)
    def get_provider():
        return _provider_info(cfg)

    @app.put("/v1/config/provider", response_model=ProviderInfo)
    def update_provider(body: ProviderUpdate):
        if body.api_key is not None:
            cfg.set_api_key(body.provider, body.api_key)
        cfg.set_provider(body.provider, model=body.model, chat_model=body.chat_model)
        return _provider_info(cfg)

    return app


def _provider_info(cfg: Config) -> ProviderInfo:
    provider = cfg.provider
    return ProviderInfo(
        provider=provider,
        model=cfg.transcription_model(provider),
        chat_model=cfg.chat_model(provider),
        has_api_key=cfg.has_api_key(provider),
    )


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception):
        logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler

"""JsonCheckpointStore — persists checkpoints as a JSON manifest plus audio files.

Layout per run::

    <root>/<run_id>/checkpoint.json
    <root>/<run_id>/asset.bin
    <root>/<run_id>/converted.mp3
    <root>/<run_id>/segments/seg-000.mp3 ...

Binary artifacts are only rewritten when a different bytes object is saved
under the same name, so saving after every transcription batch stays cheap.
Run ids are restricted to a safe file-name alphabet.
"""

import os
import json
import shutil
import logging
import re
from datetime import datetime
from typing import Any, Optional

from domain.models import (
    Checkpoint, MediaAsset, NormalizedAudio, Segment, Stage, StageRecord, StageStatus,
)
from ports.checkpoint_store import CheckpointStorePort

logger = logging.getLogger(__name__)

MANIFEST = "checkpoint.json"
RUN_ID_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]{0,63}")


class JsonCheckpointStore(CheckpointStorePort):
    def __init__(self, root_dir: str):
        self._root = root_dir
        # path -> bytes object last written there
        self._written: dict[str, bytes] = {}

    def save(self, checkpoint: Checkpoint) -> None:
        run_dir = self._run_dir(checkpoint.run_id)
        os.makedirs(run_dir, exist_ok=True)

        manifest: dict[str, Any] = {
            "run_id": checkpoint.run_id,
            "asset": {
                "name": checkpoint.asset_name,
                "mime_type": checkpoint.asset_mime_type,
                "size": checkpoint.asset_size,
                "file": None,
            },
            "stages": {stage.value: _record_to_dict(record) for stage, record in checkpoint.stages.items()},
            "converted": None,
            "segments": None,
            "pieces": checkpoint.pieces,
            "sources": checkpoint.sources,
            "transcript": checkpoint.transcript,
            "summary": checkpoint.summary,
        }

        if checkpoint.asset is not None:
            manifest["asset"]["file"] = self._write_blob(run_dir, "asset.bin", checkpoint.asset.data)

        if checkpoint.converted is not None:
            manifest["converted"] = {
                "file": self._write_blob(run_dir, "converted.mp3", checkpoint.converted.data),
                "sample_rate": checkpoint.converted.sample_rate,
                "mime_type": checkpoint.converted.mime_type,
            }
        else:
            self._remove_blob(run_dir, "converted.mp3")

        segments_dir = os.path.join(run_dir, "segments")
        if checkpoint.segments is not None:
            manifest["segments"] = [
                {
                    "id": seg.id,
                    "index": seg.index,
                    "start": seg.start,
                    "end": seg.end,
                    "oversized": seg.oversized,
                    "file": self._write_blob(run_dir, os.path.join("segments", f"{seg.id}.mp3"), seg.audio),
                }
                for seg in checkpoint.segments
            ]
            keep = {f"{seg.id}.mp3" for seg in checkpoint.segments}
            for name in os.listdir(segments_dir) if os.path.isdir(segments_dir) else []:
                if name not in keep:
                    self._remove_blob(run_dir, os.path.join("segments", name))
        elif os.path.isdir(segments_dir):
            shutil.rmtree(segments_dir)
            self._forget(segments_dir)

        tmp_path = os.path.join(run_dir, MANIFEST + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(manifest, f, indent=2)
        os.replace(tmp_path, os.path.join(run_dir, MANIFEST))

    def load(self, run_id: str) -> Optional[Checkpoint]:
        if not RUN_ID_PATTERN.fullmatch(run_id):
            logger.warning(f"Rejected invalid run id {run_id!r}")
            return None
        run_dir = self._run_dir(run_id)
        try:
            with open(os.path.join(run_dir, MANIFEST)) as f:
                data = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError) as e:
            logger.warning(f"Could not load checkpoint {run_id}: {e}")
            return None

        asset_info = data.get("asset") or {}
        cp = Checkpoint(
            run_id=data["run_id"],
            asset_name=asset_info.get("name", ""),
            asset_mime_type=asset_info.get("mime_type", ""),
            asset_size=asset_info.get("size", 0),
            pieces=dict(data.get("pieces") or {}),
            sources=dict(data.get("sources") or {}),
            transcript=data.get("transcript"),
            summary=data.get("summary"),
        )
        for name, record in (data.get("stages") or {}).items():
            cp.stages[Stage(name)] = _record_from_dict(record)

        if asset_info.get("file"):
            cp.asset = MediaAsset(
                data=_read(run_dir, asset_info["file"]),
                mime_type=cp.asset_mime_type,
                name=cp.asset_name,
            )
        converted = data.get("converted")
        if converted:
            cp.converted = NormalizedAudio(
                data=_read(run_dir, converted["file"]),
                sample_rate=converted["sample_rate"],
                mime_type=converted.get("mime_type", "audio/mpeg"),
            )
        segments = data.get("segments")
        if segments is not None:
            cp.segments = [
                Segment(
                    id=seg["id"],
                    index=seg["index"],
                    start=seg["start"],
                    end=seg["end"],
                    audio=_read(run_dir, seg["file"]),
                    oversized=seg.get("oversized", False),
                )
                for seg in segments
            ]
        return cp

    def delete(self, run_id: str) -> None:
        run_dir = self._run_dir(run_id)
        if os.path.isdir(run_dir):
            shutil.rmtree(run_dir)
        self._forget(run_dir)

    def _run_dir(self, run_id: str) -> str:
        if not RUN_ID_PATTERN.fullmatch(run_id):
            raise ValueError(f"Invalid run id: {run_id!r}")
        return os.path.join(self._root, run_id)

    def _write_blob(self, run_dir: str, relative: str, data: bytes) -> str:
        path = os.path.join(run_dir, relative)
        if self._written.get(path) is not data or not os.path.exists(path):
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
            self._written[path] = data
        return relative

    def _remove_blob(self, run_dir: str, relative: str) -> None:
        path = os.path.join(run_dir, relative)
        if os.path.exists(path):
            os.unlink(path)
        self._written.pop(path, None)

    def _forget(self, prefix: str) -> None:
        for path in [p for p in self._written if p.startswith(prefix)]:
            del self._written[path]


def _record_to_dict(record: StageRecord) -> dict:
    return {
        "status": record.status.value,
        "error": record.error,
        "started_at": record.started_at.isoformat() if record.started_at else None,
        "finished_at": record.finished_at.isoformat() if record.finished_at else None,
    }


def _record_from_dict(data: dict) -> StageRecord:
    return StageRecord(
        status=StageStatus(data.get("status", StageStatus.IDLE.value)),
        error=data.get("error"),
        started_at=datetime.fromisoformat(data["started_at"]) if data.get("started_at") else None,
        finished_at=datetime.fromisoformat(data["finished_at"]) if data.get("finished_at") else None,
    )


def _read(run_dir: str, relative: str) -> bytes:
    with open(os.path.join(run_dir, relative), "rb") as f:
        return f.read()

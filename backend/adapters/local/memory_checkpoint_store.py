"""InMemoryCheckpointStore — keeps checkpoints for the lifetime of the process."""

import threading
from dataclasses import replace
from typing import Optional

from domain.models import Checkpoint
from ports.checkpoint_store import CheckpointStorePort


def _snapshot(cp: Checkpoint) -> Checkpoint:
    # Audio bytes are immutable and shared; containers are copied
    return replace(
        cp,
        stages={stage: replace(record) for stage, record in cp.stages.items()},
        segments=list(cp.segments) if cp.segments is not None else None,
        pieces=dict(cp.pieces),
        sources=dict(cp.sources),
    )


class InMemoryCheckpointStore(CheckpointStorePort):
    def __init__(self):
        self._checkpoints: dict[str, Checkpoint] = {}
        self._lock = threading.Lock()

    def save(self, checkpoint: Checkpoint) -> None:
        with self._lock:
            self._checkpoints[checkpoint.run_id] = _snapshot(checkpoint)

    def load(self, run_id: str) -> Optional[Checkpoint]:
        with self._lock:
            cp = self._checkpoints.get(run_id)
            return _snapshot(cp) if cp is not None else None

    def delete(self, run_id: str) -> None:
        with self._lock:
            self._checkpoints.pop(run_id, None)

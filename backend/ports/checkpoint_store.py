"""CheckpointStorePort — abstract interface for persisting pipeline checkpoints."""

from abc import ABC, abstractmethod
from typing import Optional

from domain.models import Checkpoint


class CheckpointStorePort(ABC):
    @abstractmethod
    def save(self, checkpoint: Checkpoint) -> None:
        """Persist the checkpoint, replacing any previous version of the run."""

    @abstractmethod
    def load(self, run_id: str) -> Optional[Checkpoint]:
        """Return the stored checkpoint for ``run_id``, or None."""

    @abstractmethod
    def delete(self, run_id: str) -> None:
        """Remove the stored checkpoint. Missing runs are ignored."""

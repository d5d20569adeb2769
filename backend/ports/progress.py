"""ProgressPort — abstract interface for reporting pipeline progress."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class ProgressEvent:
    stage: str
    progress: float = 0.0
    detail: Optional[str] = None


class ProgressPort(ABC):
    @abstractmethod
    def report(
        self,
        run_id: str,
        stage: str,
        progress: float = 0.0,
        detail: Optional[str] = None,
    ) -> None:
        """Report progress. stage: setup, convert, split, transcribe, summarize."""

    def latest(self, run_id: str) -> Optional[ProgressEvent]:
        """Most recent event of ``run_id``, if the adapter keeps one."""
        return None

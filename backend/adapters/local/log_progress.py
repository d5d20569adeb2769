"""LogProgressAdapter — reports progress via logging and remembers the latest event per run."""

import logging
import threading
from typing import Optional

from ports.progress import ProgressEvent, ProgressPort

logger = logging.getLogger(__name__)


class LogProgressAdapter(ProgressPort):
    def __init__(self):
        self._latest: dict[str, ProgressEvent] = {}
        self._lock = threading.Lock()

    def report(
        self,
        run_id: str,
        stage: str,
        progress: float = 0.0,
        detail: Optional[str] = None,
    ) -> None:
        with self._lock:
            self._latest[run_id] = ProgressEvent(stage=stage, progress=progress, detail=detail)
        msg = f"[{run_id}] {stage}"
        if progress > 0:
            msg += f" {progress:.0%}"
        if detail:
            msg += f" ({detail})"
        logger.info(msg)

    def latest(self, run_id: str) -> Optional[ProgressEvent]:
        with self._lock:
            return self._latest.get(run_id)

"""BatchTranscriptionScheduler — bounded fan-out of segment transcriptions.

Segments are sent to the provider in fixed-size batches. Every call in a
batch runs concurrently; the scheduler waits for the whole batch, then
pauses through the rate limiter before the next one. Output order always
matches input order, whatever order the calls complete in.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Optional

from domain.errors import BatchTranscriptionError, SegmentTranscriptionError
from domain.models import Segment, TranscriptPiece
from ports.progress import ProgressPort
from ports.rate_limiter import RateLimiterPort
from ports.transcription import TranscriptionTarget

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
# Hard cap on concurrent provider calls
MAX_BATCH_SIZE = 10


class BatchTranscriptionScheduler:
    def __init__(
        self,
        resolve_target: Callable[[], TranscriptionTarget],
        rate_limiter: RateLimiterPort,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        progress: Optional[ProgressPort] = None,
    ):
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {batch_size}")
        self._resolve_target = resolve_target
        self._rate_limiter = rate_limiter
        self._batch_size = batch_size
        self._progress = progress

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def transcribe(
        self,
        segments: list[Segment],
        *,
        completed: Optional[dict[str, str]] = None,
        on_batch: Optional[Callable[[list[TranscriptPiece]], None]] = None,
        run_id: str = "",
    ) -> list[TranscriptPiece]:
        """Transcribe ``segments`` and return one piece per segment, in order.

        Args:
            segments: Ordered segment list from the splitter.
            completed: Texts already transcribed in an earlier attempt, keyed
                by segment id. Those segments are not sent again.
            on_batch: Called with the pieces of every batch that succeeds.
            run_id: Used only for progress reporting.

        Raises:
            BatchTranscriptionError: at least one segment of a batch failed.
                Pieces that succeeded in that batch are attached to the error.
        """
        completed = completed or {}
        pending = [seg for seg in segments if seg.id not in completed]
        if len(pending) < len(segments):
            logger.info(f"Skipping {len(segments) - len(pending)} already transcribed segment(s)")

        batches = [
            pending[i:i + self._batch_size]
            for i in range(0, len(pending), self._batch_size)
        ]
        fresh: dict[str, TranscriptPiece] = {}

        for number, batch in enumerate(batches, start=1):
            logger.info(f"Transcribing batch {number}/{len(batches)} ({len(batch)} segments)")
            pieces = self._run_batch(number, batch)
            for piece in pieces:
                fresh[piece.segment_id] = piece
            if on_batch:
                on_batch(pieces)
            if self._progress:
                self._progress.report(
                    run_id, "transcribe",
                    progress=number / len(batches),
                    detail=f"batch {number}/{len(batches)}",
                )
            if number < len(batches):
                self._rate_limiter.cool_down(number)

        return [
            fresh.get(seg.id) or TranscriptPiece(segment_id=seg.id, text=completed[seg.id])
            for seg in segments
        ]

    def _run_batch(self, number: int, batch: list[Segment]) -> list[TranscriptPiece]:
        with ThreadPoolExecutor(max_workers=self._batch_size) as pool:
            futures = []
            for seg in batch:
                # Resolved at dispatch so a provider switch applies to later calls only
                target = self._resolve_target()
                futures.append(pool.submit(self._transcribe_one, seg, target))
            wait(futures)

        pieces: list[TranscriptPiece] = []
        failures: list[SegmentTranscriptionError] = []
        for seg, future in zip(batch, futures):
            error = future.exception()
            if error is None:
                pieces.append(future.result())
            else:
                failures.append(SegmentTranscriptionError(seg.id, error))

        if failures:
            for failure in failures:
                logger.error(f"Batch {number}: {failure}")
            raise BatchTranscriptionError(number, failures, completed=pieces)
        return pieces

    @staticmethod
    def _transcribe_one(seg: Segment, target: TranscriptionTarget) -> TranscriptPiece:
        if seg.size_bytes == 0:
            logger.debug(f"Segment {seg.id} is empty, nothing to transcribe")
            return TranscriptPiece(segment_id=seg.id, text="")
        logger.info(f"Transcribing segment {seg.id} ({seg.size_bytes} bytes) with {target.provider}/{target.model}")
        text = target.adapter.transcribe(seg.audio, target.model, filename=f"{seg.id}.mp3")
        logger.info(f"Transcription received for segment {seg.id} ({target.provider})")
        return TranscriptPiece(segment_id=seg.id, text=text or "", source=f"{target.provider}/{target.model}")

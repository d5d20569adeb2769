"""RecursiveSplitter — halves oversized audio until every piece fits the upload limit.

Each split cuts the chunk at its midpoint with a fixed overlap on both sides
of the cut, so the stitcher has duplicated wording to find and trim at the
boundary. Pieces are returned left-to-right, which is temporal order.
"""

import logging
from typing import Optional

from domain.errors import DurationProbeError, SplitDepthExceededError
from domain.models import NormalizedAudio, Segment
from ports.audio import CodecPort

logger = logging.getLogger(__name__)

DEFAULT_BOUNDARY_OVERLAP = 3.0
DEFAULT_MAX_DEPTH = 12


class RecursiveSplitter:
    def __init__(
        self,
        codec: CodecPort,
        max_bytes: int,
        *,
        boundary_overlap: float = DEFAULT_BOUNDARY_OVERLAP,
        max_depth: int = DEFAULT_MAX_DEPTH,
        allow_unsplit_fallback: bool = False,
    ):
        if max_bytes <= 0:
            raise ValueError(f"max_bytes must be positive, got {max_bytes}")
        self._codec = codec
        self._max_bytes = max_bytes
        self._overlap = boundary_overlap
        self._max_depth = max_depth
        self._allow_unsplit_fallback = allow_unsplit_fallback

    def split(self, audio: NormalizedAudio) -> list[Segment]:
        """Split ``audio`` into ordered segments no larger than ``max_bytes``.

        Raises:
            DurationProbeError: an oversized chunk's duration is unknown and
                the unsplit fallback is disabled.
            SplitDepthExceededError: splitting did not converge.
        """
        parts = self._split(audio.data, offset=0.0, duration=None, depth=0)
        segments = [
            Segment(id=f"seg-{i:03d}", index=i, start=start, end=end, audio=data, oversized=oversized)
            for i, (start, end, data, oversized) in enumerate(parts)
        ]
        logger.info(
            f"Split {len(audio.data)} bytes into {len(segments)} segment(s) "
            f"(limit {self._max_bytes} bytes)"
        )
        return segments

    def _split(
        self, data: bytes, offset: float, duration: Optional[float], depth: int
    ) -> list[tuple[float, float, bytes, bool]]:
        size = len(data)
        if size <= self._max_bytes:
            if duration is None:
                duration = self._probe_for_span(data)
            logger.debug(f"Chunk at {offset:.2f}s is below limit: {size} bytes")
            return [(offset, offset + duration, data, False)]

        if depth >= self._max_depth:
            raise SplitDepthExceededError(
                f"Chunk at {offset:.2f}s still {size} bytes after {depth} splits"
            )

        logger.info(f"Chunk at {offset:.2f}s is too big ({size} bytes). Splitting in half with overlap")
        try:
            total = self._codec.probe_duration(data)
        except DurationProbeError:
            if not self._allow_unsplit_fallback:
                raise
            logger.warning(
                f"Could not determine duration of chunk at {offset:.2f}s; "
                f"keeping it unsplit at {size} bytes, above the {self._max_bytes} byte limit"
            )
            end = offset + duration if duration is not None else offset
            return [(offset, end, data, True)]

        if total <= 0:
            logger.warning(f"Chunk at {offset:.2f}s reports zero duration; emitting an empty segment")
            return [(offset, offset, b"", False)]

        half = total / 2
        left_end = min(half + self._overlap, total)
        right_start = max(half - self._overlap, 0.0)
        logger.info(
            f"Splitting at {offset + half:.2f}s. "
            f"Left: {offset:.2f}-{offset + left_end:.2f}, "
            f"Right: {offset + right_start:.2f}-{offset + total:.2f}"
        )

        left = self._codec.cut(data, 0.0, left_end)
        right = self._codec.cut(data, right_start, total)
        for part in (left, right):
            if len(part) >= size:
                raise SplitDepthExceededError(
                    f"Cut of chunk at {offset:.2f}s did not shrink it ({len(part)} >= {size} bytes)"
                )

        return (
            self._split(left, offset, left_end, depth + 1)
            + self._split(right, offset + right_start, total - right_start, depth + 1)
        )

    def _probe_for_span(self, data: bytes) -> float:
        # Only needed to label the span of an audio that was never cut
        if not data:
            return 0.0
        try:
            return self._codec.probe_duration(data)
        except DurationProbeError as e:
            logger.warning(f"Duration unknown for unsplit audio, span left empty: {e}")
            return 0.0

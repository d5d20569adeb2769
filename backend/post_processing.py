"""Post-processing for segment transcripts.

Stitches per-segment texts into one transcript, removing the wording that
is duplicated because adjacent segments overlap by a few seconds of audio.
The matching is lexical and best-effort: it only looks at a fixed window
of trailing words.
"""

import logging
from typing import List, Tuple

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 10
DEFAULT_MIN_OVERLAP = 5
DEFAULT_MAX_OVERLAP = 20
DEFAULT_THRESHOLD = 0.8


def levenshtein_distance(a: str, b: str) -> int:
    """Character-level edit distance between two strings."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def similarity_score(a: str, b: str) -> float:
    """1 - normalized edit distance. Two empty strings are identical."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max_len


def find_best_overlap(
    prev_words: List[str],
    curr_words: List[str],
    min_overlap: int = DEFAULT_MIN_OVERLAP,
    max_overlap: int = DEFAULT_MAX_OVERLAP,
) -> Tuple[int, float]:
    """Find how many leading words of ``curr_words`` repeat the tail of ``prev_words``.

    Candidates are tried in ascending order and only a strictly better
    score replaces the current best, so on ties the shorter overlap wins.

    Returns:
        (overlap word count, similarity score); (0, 0.0) if no candidate fits.
    """
    best_overlap = 0
    best_score = 0.0
    for candidate in range(min_overlap, max_overlap + 1):
        if candidate > len(prev_words) or candidate > len(curr_words):
            break
        prev_tail = " ".join(prev_words[-candidate:]).lower()
        curr_head = " ".join(curr_words[:candidate]).lower()
        score = similarity_score(prev_tail, curr_head)
        if score > best_score:
            best_score = score
            best_overlap = candidate
    return best_overlap, best_score


def stitch_transcripts(
    pieces: List[str],
    *,
    window: int = DEFAULT_WINDOW,
    min_overlap: int = DEFAULT_MIN_OVERLAP,
    max_overlap: int = DEFAULT_MAX_OVERLAP,
    threshold: float = DEFAULT_THRESHOLD,
) -> str:
    """Join ordered segment transcripts, dropping duplicated boundary words.

    Args:
        pieces: Segment texts in temporal order.
        window: Number of trailing words of the stitched text to compare.
        min_overlap: Smallest overlap length (in words) considered.
        max_overlap: Largest overlap length (in words) considered.
        threshold: Minimum similarity for the overlap to be removed.

    Returns:
        The stitched transcript, stripped of surrounding whitespace.
    """
    if not pieces:
        return ""

    stitched = pieces[0].strip()
    for i, piece in enumerate(pieces[1:], start=1):
        prev_window = stitched.split()[-window:]
        curr_words = piece.split()
        overlap, score = find_best_overlap(prev_window, curr_words, min_overlap, max_overlap)
        logger.debug(
            f"Between segment {i} and {i + 1}: best overlap = {overlap}, score = {score:.2f}"
        )

        adjusted = piece.strip()
        if score >= threshold and overlap > 0:
            adjusted = " ".join(curr_words[overlap:])
            logger.debug(
                f"Overlap detected (score {score:.2f} >= {threshold}). "
                f"Removing {overlap} words from segment {i + 1}"
            )
        # Empty segments (silence) must not leave double spaces behind
        if adjusted:
            stitched = stitched + " " + adjusted

    return stitched.strip()

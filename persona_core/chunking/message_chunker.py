"""
Message Chunking
================

Splits one model completion into 2-4 message-sized chunks for human-like
delivery. Boundaries are preferred in this order: sentence end, clause
punctuation, word midpoint, and (for a single long token) character midpoint.
Adjacent pieces are then merged back, smallest pair first, until the chunk
count matches the word-count target.
"""

from __future__ import annotations

import logging
import math
import re
from typing import List, Optional

from ..exceptions import MemoryValidationError

logger = logging.getLogger(__name__)

DEFAULT_MIN_CHUNKS = 2
DEFAULT_MAX_CHUNKS = 4
DEFAULT_TARGET_WORDS_PER_CHUNK = 24

_WS_RE = re.compile(r"\s+")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_CLAUSE_RE = re.compile(r"(?<=[,;:])\s+|\s+(?:-|--)\s+")


def _word_count(text: str) -> int:
    return len(text.split())


def _split_once(segment: str) -> Optional[List[str]]:
    """Split a segment at its best available boundary, or None if it cannot be split."""
    clauses = [part.strip() for part in _CLAUSE_RE.split(segment) if part.strip()]
    if len(clauses) > 1:
        return clauses

    words = segment.split()
    if len(words) > 1:
        middle = len(words) // 2
        return [" ".join(words[:middle]), " ".join(words[middle:])]

    if len(segment) > 1:
        middle = len(segment) // 2
        return [segment[:middle], segment[middle:]]
    return None


def _merge_smallest_pair(segments: List[str]) -> List[str]:
    best = 0
    best_size = math.inf
    for index in range(len(segments) - 1):
        size = _word_count(segments[index]) + _word_count(segments[index + 1])
        if size < best_size:
            best, best_size = index, size
    merged = f"{segments[best]} {segments[best + 1]}"
    return segments[:best] + [merged] + segments[best + 2 :]


def chunk_response_text(
    text: str,
    min_chunks: int = DEFAULT_MIN_CHUNKS,
    max_chunks: int = DEFAULT_MAX_CHUNKS,
    target_words_per_chunk: int = DEFAULT_TARGET_WORDS_PER_CHUNK,
) -> List[str]:
    """
    Split ``text`` into between ``min_chunks`` and ``max_chunks`` chunks.

    Args:
        text: Model completion
        min_chunks: Lower bound on chunk count (>= 2)
        max_chunks: Upper bound on chunk count (<= 4)
        target_words_per_chunk: Preferred chunk size, drives the chunk count

    Returns:
        Non-empty chunks in reading order

    Raises:
        MemoryValidationError: Text shorter than two characters after trimming
    """
    if not 2 <= min_chunks <= max_chunks <= 4:
        raise MemoryValidationError(f"chunk bounds must satisfy 2 <= min <= max <= 4, got {min_chunks}..{max_chunks}")
    normalized = _WS_RE.sub(" ", text or "").strip()
    if len(normalized) < 2:
        raise MemoryValidationError("Cannot chunk a completion shorter than two characters")

    words = _word_count(normalized)
    desired = min(max_chunks, max(min_chunks, math.ceil(words / max(1, target_words_per_chunk))))

    segments = [s.strip() for s in _SENTENCE_RE.split(normalized) if s.strip()]
    while len(segments) < desired:
        # Split the largest splittable segment; ties go to the earliest.
        order = sorted(range(len(segments)), key=lambda i: (-_word_count(segments[i]), -len(segments[i]), i))
        for index in order:
            pieces = _split_once(segments[index])
            if pieces:
                segments = segments[:index] + pieces + segments[index + 1 :]
                break
        else:
            break

    while len(segments) > desired:
        segments = _merge_smallest_pair(segments)

    logger.debug(f"Chunked {words} words into {len(segments)} chunks (target {desired})")
    return segments


__all__ = [
    "DEFAULT_MAX_CHUNKS",
    "DEFAULT_MIN_CHUNKS",
    "DEFAULT_TARGET_WORDS_PER_CHUNK",
    "chunk_response_text",
]

"""
Memory Retrieval Engine - Multi-signal scoring over memory candidates

WHAT: Ranks memory nodes against a query embedding using four weighted signals
WHERE: persona_core/runtime/memory/retrieval.py - retrieval layer
WHO: Context gathering upstream, MemoryManager, recall benchmark
TIME: O(n·d) for n candidates of dimension d; pure function, no I/O

Signals (each clamped to [0, 1]):
- semantic  = (cosine(memory, query) + 1) / 2, or 0 when either vector is unusable
- recency   = 1 / (1 + age_days / 14)
- emotional = |emotional_valence|
- frequency = log10(max(1, access_count) + 1) / log10(101)

score = Σ signal × weight, default weights semantic 0.4, recency 0.3,
emotional 0.2, frequency 0.1.

Boundary Notes:
- Candidates without a usable embedding are still ranked (semantic = 0)
- Ties keep the caller's candidate order (stable sort)
- Bad weights or mismatched dimensions fail fast with MemoryValidationError
"""

from __future__ import annotations

import math
from typing import Any, Iterable, List, Mapping, Optional, Sequence

import numpy as np
from pydantic import ValidationError

from ...exceptions import EmbeddingDimensionError, MemoryValidationError
from .models import (
    MemoryNode,
    RetrievalResult,
    RetrievalWeights,
    ScoredMemory,
    SignalBreakdown,
    iso_to_unix_ms,
    to_iso_timestamp,
)

DAY_MS = 24 * 60 * 60 * 1000
RECENCY_HALF_DAYS = 14.0
DEFAULT_RETRIEVAL_WEIGHTS = RetrievalWeights()
DEFAULT_RETRIEVAL_LIMIT = 10


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _as_array(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    return np.nan_to_num(arr, nan=0.0, posinf=0.0, neginf=0.0)


def has_usable_embedding(embedding: Sequence[float]) -> bool:
    """True when the vector has at least one finite, non-zero component."""
    if len(embedding) == 0:
        return False
    return any(math.isfinite(v) and v != 0.0 for v in embedding)


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    """
    Cosine similarity in [-1, 1]; 0 if either vector is unusable.

    Non-finite components are treated as 0. Raises EmbeddingDimensionError
    when both vectors are usable but differ in length.
    """
    if not has_usable_embedding(left) or not has_usable_embedding(right):
        return 0.0
    if len(left) != len(right):
        raise EmbeddingDimensionError(len(left), len(right))

    v1 = _as_array(left)
    v2 = _as_array(right)
    norm = float(np.linalg.norm(v1)) * float(np.linalg.norm(v2))
    if norm == 0.0:
        return 0.0
    return _clamp(float(np.dot(v1, v2)) / norm, -1.0, 1.0)


def compute_semantic_score(memory_embedding: Sequence[float], query_embedding: Sequence[float]) -> float:
    if not has_usable_embedding(memory_embedding) or not has_usable_embedding(query_embedding):
        return 0.0
    similarity = cosine_similarity(memory_embedding, query_embedding)
    return _clamp((similarity + 1.0) / 2.0, 0.0, 1.0)


def compute_recency_score(timestamp_iso: str, now_iso: str) -> float:
    age_ms = max(0, iso_to_unix_ms(now_iso) - iso_to_unix_ms(timestamp_iso))
    age_days = age_ms / DAY_MS
    return _clamp(1.0 / (1.0 + age_days / RECENCY_HALF_DAYS), 0.0, 1.0)


def compute_emotional_score(emotional_valence: float) -> float:
    if not math.isfinite(emotional_valence):
        return 0.0
    return _clamp(abs(emotional_valence), 0.0, 1.0)


def compute_frequency_score(access_count: float) -> float:
    if not math.isfinite(access_count):
        access_count = 0
    normalized = math.log10(max(1.0, float(access_count)) + 1.0) / math.log10(101.0)
    return _clamp(normalized, 0.0, 1.0)


def compute_signal_breakdown(
    memory: MemoryNode, query_embedding: Sequence[float], now_iso: str
) -> SignalBreakdown:
    return SignalBreakdown(
        semantic=compute_semantic_score(memory.embedding, query_embedding),
        recency=compute_recency_score(memory.timestamp_iso, now_iso),
        emotional=compute_emotional_score(memory.emotional_valence),
        frequency=compute_frequency_score(memory.access_count),
    )


def apply_weighted_score(
    breakdown: SignalBreakdown, weights: RetrievalWeights = DEFAULT_RETRIEVAL_WEIGHTS
) -> float:
    weighted = (
        breakdown.semantic * weights.semantic
        + breakdown.recency * weights.recency
        + breakdown.emotional * weights.emotional
        + breakdown.frequency * weights.frequency
    )
    return _clamp(weighted, 0.0, 1.0)


def coerce_weights(weights: RetrievalWeights | Mapping[str, Any] | None) -> RetrievalWeights:
    """Accept a weights model, a plain mapping, or None (defaults)."""
    if weights is None:
        return DEFAULT_RETRIEVAL_WEIGHTS
    if isinstance(weights, RetrievalWeights):
        return weights
    try:
        return RetrievalWeights(**dict(weights))
    except ValidationError as exc:
        raise MemoryValidationError(f"Invalid retrieval weights: {exc}") from exc


def _check_dimensions(candidates: Iterable[MemoryNode], query_embedding: Sequence[float]) -> None:
    if not has_usable_embedding(query_embedding):
        return
    expected = len(query_embedding)
    for memory in candidates:
        if has_usable_embedding(memory.embedding) and len(memory.embedding) != expected:
            raise EmbeddingDimensionError(expected, len(memory.embedding), memory_id=memory.id)


def retrieve_memories(
    candidates: Sequence[MemoryNode],
    query_embedding: Sequence[float],
    now_iso: Any,
    limit: int = DEFAULT_RETRIEVAL_LIMIT,
    weights: RetrievalWeights | Mapping[str, Any] | None = None,
) -> RetrievalResult:
    """
    Score every candidate and return the top ``limit`` by weighted score.

    Args:
        candidates: Memory snapshot; never mutated
        query_embedding: Query vector (same dimensionality as memories)
        now_iso: Clock value (ISO string, epoch, or datetime)
        limit: Maximum selections, clamped to at least 1
        weights: Optional weight override; must sum to 1

    Returns:
        RetrievalResult sorted by non-increasing score

    Raises:
        MemoryValidationError: Invalid weights or mismatched embedding lengths
    """
    resolved_weights = coerce_weights(weights)
    now = to_iso_timestamp(now_iso)
    capped_limit = max(1, int(limit))
    _check_dimensions(candidates, query_embedding)

    discarded = 0
    scored: List[ScoredMemory] = []
    for memory in candidates:
        if not has_usable_embedding(memory.embedding):
            discarded += 1
        breakdown = compute_signal_breakdown(memory, query_embedding, now)
        scored.append(
            ScoredMemory(memory=memory, score=apply_weighted_score(breakdown, resolved_weights), breakdown=breakdown)
        )

    # sorted() is stable with reverse=True, so ties keep candidate order
    selected = sorted(scored, key=lambda entry: entry.score, reverse=True)[:capped_limit]

    return RetrievalResult(
        selected=selected,
        weights=resolved_weights,
        formula=resolved_weights.formula(),
        discarded_without_embedding=discarded,
    )


__all__ = [
    "DEFAULT_RETRIEVAL_WEIGHTS",
    "DEFAULT_RETRIEVAL_LIMIT",
    "apply_weighted_score",
    "coerce_weights",
    "compute_emotional_score",
    "compute_frequency_score",
    "compute_recency_score",
    "compute_semantic_score",
    "compute_signal_breakdown",
    "cosine_similarity",
    "has_usable_embedding",
    "retrieve_memories",
    "to_iso_timestamp",
    "iso_to_unix_ms",
]

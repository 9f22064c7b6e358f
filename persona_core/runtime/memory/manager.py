"""
Memory Manager - Facade over retrieval, consolidation, and provenance

WHAT: Wires the pure memory engines to injected embedding and clock collaborators
WHERE: persona_core/runtime/memory/manager.py - memory layer entry point
WHO: Upstream context gathering, maintenance jobs, debugging tools
TIME: Dominated by the injected embed_text call

Boundary Notes:
- Never touches storage; callers load records and persist results
- Legacy store records are clamped into range rather than rejected
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import asdict
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Mapping, Optional, Sequence

from .consolidation import ConsolidationThresholds, consolidate_memories
from .embedding import DEFAULT_EMBEDDING_DIMENSIONS, DeterministicEmbedder, EmbedText
from .models import (
    ConsolidationReport,
    MemoryNode,
    ProvenanceLink,
    RetrievalResult,
    RetrievalWeights,
    utc_now_iso,
)
from .provenance import dedupe_provenance, provenance_debug_lines, read_provenance_from_metadata
from .retrieval import DEFAULT_RETRIEVAL_LIMIT, DEFAULT_RETRIEVAL_WEIGHTS, retrieve_memories

if TYPE_CHECKING:
    # persona_core.config imports the memory models, so only type-check against it here.
    from ...config import ConsolidationConfig, EmbeddingConfig, PersonaCoreConfig, RetrievalConfig

logger = logging.getLogger(__name__)

NowIso = Callable[[], str]


def _clamped(value: Any, lo: float, hi: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(lo, min(hi, number))


class MemoryManager:
    """
    Memory facade with injectable collaborators.

    Args:
        embed_text: Async text→vector provider (defaults to the deterministic
            embedding at ``embedding.dimensions``)
        now_iso: Clock returning ISO-8601 timestamps
        retrieval: Default limit and weights for ``retrieve_relevant``
        consolidation: Default thresholds for ``consolidate``
        embedding: Dimensions of the default embedder
    """

    def __init__(
        self,
        embed_text: Optional[EmbedText] = None,
        now_iso: Optional[NowIso] = None,
        *,
        retrieval: Optional[RetrievalConfig] = None,
        consolidation: Optional[ConsolidationConfig] = None,
        embedding: Optional[EmbeddingConfig] = None,
    ) -> None:
        dimensions = embedding.dimensions if embedding is not None else DEFAULT_EMBEDDING_DIMENSIONS
        self.embed_text: EmbedText = embed_text or DeterministicEmbedder(dimensions)
        self.now_iso: NowIso = now_iso or utc_now_iso
        self.retrieval_limit = retrieval.limit if retrieval is not None else DEFAULT_RETRIEVAL_LIMIT
        self.retrieval_weights = retrieval.weights if retrieval is not None else DEFAULT_RETRIEVAL_WEIGHTS
        self.thresholds = ConsolidationThresholds()
        if consolidation is not None:
            self.thresholds = ConsolidationThresholds(
                merge_similarity_threshold=consolidation.merge_similarity_threshold,
                decay_after_days=consolidation.decay_after_days,
                emotional_strengthen_threshold=consolidation.emotional_strengthen_threshold,
            )
        self.thresholds.validate()

    @classmethod
    def from_config(
        cls,
        config: PersonaCoreConfig,
        embed_text: Optional[EmbedText] = None,
        now_iso: Optional[NowIso] = None,
    ) -> MemoryManager:
        return cls(
            embed_text,
            now_iso,
            retrieval=config.retrieval,
            consolidation=config.consolidation,
            embedding=config.embedding,
        )

    def normalize_record(self, record: Mapping[str, Any], fallback_user_id: str = "unknown-user") -> MemoryNode:
        """Coerce a raw store record into a MemoryNode, clamping legacy out-of-range values."""
        payload = dict(record)
        metadata = dict(payload.get("metadata") or {})
        payload["emotional_valence"] = _clamped(
            payload.get("emotional_valence", payload.get("emotionalValence", 0.0)), -1.0, 1.0, 0.0
        )
        payload["decay_factor"] = _clamped(payload.get("decay_factor", payload.get("decayFactor", 0.5)), 0.0, 1.0, 0.5)
        payload.pop("emotionalValence", None)
        payload.pop("decayFactor", None)

        if not payload.get("id"):
            digest = hashlib.blake2b(str(payload.get("content") or "").encode("utf-8"), digest_size=4).hexdigest()
            payload["id"] = f"memory-{digest}"
        if "provenance" not in payload:
            payload["provenance"] = read_provenance_from_metadata(str(payload["id"]), metadata)
        payload["metadata"] = metadata

        return MemoryNode.from_record(payload, fallback_user_id=fallback_user_id, now_iso=self.now_iso())

    async def retrieve_relevant(
        self,
        query: str,
        memories: Sequence[MemoryNode],
        *,
        limit: Optional[int] = None,
        query_embedding: Optional[Sequence[float]] = None,
        now_iso: Optional[str] = None,
        weights: RetrievalWeights | Mapping[str, Any] | None = None,
    ) -> RetrievalResult:
        if query_embedding is None:
            query_embedding = list(await self.embed_text(query))
        return retrieve_memories(
            memories,
            query_embedding,
            now_iso if now_iso is not None else self.now_iso(),
            limit=self.retrieval_limit if limit is None else limit,
            weights=self.retrieval_weights if weights is None else weights,
        )

    def consolidate(
        self,
        memories: Sequence[MemoryNode],
        *,
        now_iso: Optional[str] = None,
        dry_run: bool = False,
        **thresholds: float,
    ) -> ConsolidationReport:
        options = {**asdict(self.thresholds), **thresholds}
        return consolidate_memories(
            memories,
            now_iso=now_iso if now_iso is not None else self.now_iso(),
            dry_run=dry_run,
            **options,
        )

    def with_provenance(self, memory: MemoryNode, message_refs: Iterable[Mapping[str, str]]) -> MemoryNode:
        """Return a copy of ``memory`` linked to additional source messages."""
        refs = list(message_refs)
        created_at = self.now_iso()
        links: List[ProvenanceLink] = list(memory.provenance)
        for ref in refs:
            links.append(
                ProvenanceLink(
                    memory_id=memory.id,
                    message_id=ref["message_id"],
                    thread_id=ref["thread_id"],
                    created_at_iso=created_at,
                )
            )
        return memory.model_copy(
            update={
                "provenance": dedupe_provenance(links),
                "metadata": {
                    **memory.metadata,
                    "source_message_ids": [str(ref["message_id"]) for ref in refs],
                },
            },
            deep=True,
        )

    def debug_provenance(self, memories: Sequence[MemoryNode]) -> List[str]:
        return provenance_debug_lines(memories)


__all__ = ["MemoryManager", "NowIso"]

"""
Associative Memory - Retrieval, Consolidation & Provenance

WHAT: Local library for scoring, maintaining, and tracing durable memories (no I/O)
WHERE: persona_core/runtime/memory/ - runtime memory subsystem
WHO: Learner creating nodes; context gathering and maintenance jobs reading them
TIME: Retrieval O(n·d); consolidation O(n²·d)

Memory Types:
- semantic: Stable facts about the user or the world
- episodic: Things that happened in a specific conversation
- emotional: Emotionally charged moments worth reinforcing

Operations (pure functions over immutable snapshots):
- retrieve_memories(candidates, query_embedding, now_iso, limit, weights)
- consolidate_memories(memories, now_iso, dry_run, thresholds...)
- build_deterministic_embedding(text, dimensions)

Boundary Notes:
- Persistence and embedding providers are injected collaborators
- Malformed input fails fast with MemoryValidationError
"""

from .consolidation import ConsolidationEngine, ConsolidationThresholds, consolidate_memories  # noqa: F401
from .embedding import (  # noqa: F401
    DeterministicEmbedder,
    EmbedText,
    build_deterministic_embedding,
)
from .manager import MemoryManager  # noqa: F401
from .models import (  # noqa: F401
    ConsolidationReport,
    MemoryNode,
    ProvenanceLink,
    RetrievalResult,
    RetrievalWeights,
    ScoredMemory,
    SignalBreakdown,
    iso_to_unix_ms,
    to_iso_timestamp,
)
from .retrieval import cosine_similarity, has_usable_embedding, retrieve_memories  # noqa: F401

__all__ = [
    "ConsolidationEngine",
    "ConsolidationThresholds",
    "consolidate_memories",
    "DeterministicEmbedder",
    "EmbedText",
    "build_deterministic_embedding",
    "MemoryManager",
    "ConsolidationReport",
    "MemoryNode",
    "ProvenanceLink",
    "RetrievalResult",
    "RetrievalWeights",
    "ScoredMemory",
    "SignalBreakdown",
    "iso_to_unix_ms",
    "to_iso_timestamp",
    "cosine_similarity",
    "has_usable_embedding",
    "retrieve_memories",
]

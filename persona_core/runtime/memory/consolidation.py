"""
Memory Consolidation Engine - Merge, strengthen, and decay memory sets

WHAT: Maintenance pass planning near-duplicate merges, emotional reinforcement, and decay
WHERE: persona_core/runtime/memory/consolidation.py - maintenance layer
WHO: Background jobs or MemoryManager consolidating a user's memory snapshot
TIME: O(n²·d) similarity matrix; pure computation, persistence is external

Three phases over a snapshot of memories:
1. Merge: same-type memories whose cosine similarity is at or above the
   threshold are grouped transitively; each group survives as its
   earliest-created member, the rest fold into ``merged_ids``.
2. Strengthen: surviving memories with |valence| >= threshold.
3. Decay: remaining memories (not strengthened, not part of a merge) older
   than ``decay_after_days``; they are dropped from the committed state.

Dry-run returns the plan only. Neither mode mutates the caller's objects;
commit mode returns the desired state in ``resulting_memories`` and leaves
persistence to the caller.

Boundary Notes:
- Same inputs and clock always yield an identical report
- total_output = total_input - merged - decayed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from ...exceptions import EmbeddingDimensionError, MemoryValidationError
from .models import (
    ConsolidationAction,
    ConsolidationReport,
    ConsolidationSummary,
    MemoryNode,
    MergePlan,
    iso_to_unix_ms,
    to_iso_timestamp,
    utc_now_iso,
)
from .provenance import dedupe_provenance
from .retrieval import DAY_MS, has_usable_embedding

logger = logging.getLogger(__name__)

STRENGTHEN_DECAY_BOOST = 0.08


@dataclass(slots=True)
class ConsolidationThresholds:
    merge_similarity_threshold: float = 0.9
    decay_after_days: float = 30.0
    emotional_strengthen_threshold: float = 0.75

    def validate(self) -> None:
        if not -1.0 <= self.merge_similarity_threshold <= 1.0:
            raise MemoryValidationError(
                f"merge_similarity_threshold must be within [-1, 1], got {self.merge_similarity_threshold}"
            )
        if self.decay_after_days < 0:
            raise MemoryValidationError(f"decay_after_days must be >= 0, got {self.decay_after_days}")
        if not 0.0 <= self.emotional_strengthen_threshold <= 1.0:
            raise MemoryValidationError(
                "emotional_strengthen_threshold must be within [0, 1], "
                f"got {self.emotional_strengthen_threshold}"
            )


class _UnionFind:
    def __init__(self, size: int) -> None:
        self.parent = list(range(size))

    def find(self, item: int) -> int:
        while self.parent[item] != item:
            self.parent[item] = self.parent[self.parent[item]]
            item = self.parent[item]
        return item

    def union(self, left: int, right: int) -> None:
        a, b = self.find(left), self.find(right)
        if a != b:
            # Keep the lower index as root so grouping is order-stable
            self.parent[max(a, b)] = min(a, b)


def _similarity_matrix(memories: Sequence[MemoryNode]) -> tuple[np.ndarray, List[bool]]:
    usable = [has_usable_embedding(m.embedding) for m in memories]
    dims = {len(m.embedding) for m, ok in zip(memories, usable) if ok}
    if len(dims) > 1:
        expected = min(dims)
        offender = next(m for m, ok in zip(memories, usable) if ok and len(m.embedding) != expected)
        raise EmbeddingDimensionError(expected, len(offender.embedding), memory_id=offender.id)
    size = len(memories)
    if not dims:
        return np.zeros((size, size), dtype=np.float64), usable

    dim = dims.pop()
    matrix = np.zeros((size, dim), dtype=np.float64)
    for index, (memory, ok) in enumerate(zip(memories, usable)):
        if ok:
            matrix[index] = memory.embedding
    matrix = np.nan_to_num(matrix, nan=0.0, posinf=0.0, neginf=0.0)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0.0] = 1.0
    unit = matrix / norms
    return np.clip(unit @ unit.T, -1.0, 1.0), usable


def _merge_group(primary: MemoryNode, members: Sequence[MemoryNode]) -> MemoryNode:
    """Fold ``members`` (primary included) into the primary's committed state."""
    embeddings = [m.embedding for m in members if has_usable_embedding(m.embedding)]
    merged_embedding = (
        np.mean(np.asarray(embeddings, dtype=np.float64), axis=0).tolist() if embeddings else list(primary.embedding)
    )
    others = [m for m in members if m.id != primary.id]
    merged_from = list(primary.metadata.get("merged_from") or [])
    merged_from.extend(m.id for m in others)

    provenance = list(primary.provenance)
    for member in others:
        provenance.extend(member.provenance)

    valence = sum(m.emotional_valence for m in members) / len(members)
    return primary.model_copy(
        update={
            "embedding": merged_embedding,
            "access_count": sum(m.access_count for m in members),
            "decay_factor": max(m.decay_factor for m in members),
            "emotional_valence": max(-1.0, min(1.0, valence)),
            "provenance": dedupe_provenance(provenance),
            "metadata": {**primary.metadata, "merged_from": merged_from},
        }
    )


def consolidate_memories(
    memories: Sequence[MemoryNode],
    now_iso: Any = None,
    dry_run: bool = False,
    merge_similarity_threshold: float = 0.9,
    decay_after_days: float = 30.0,
    emotional_strengthen_threshold: float = 0.75,
) -> ConsolidationReport:
    """
    Plan (and unless ``dry_run``, compute) one consolidation pass.

    Args:
        memories: Snapshot of memory nodes; never mutated
        now_iso: Clock value; defaults to the current UTC time
        dry_run: Return only the plan, no resulting state
        merge_similarity_threshold: Cosine similarity at/above which memories merge
        decay_after_days: Age beyond which unreinforced memories decay
        emotional_strengthen_threshold: |valence| at/above which memories are strengthened

    Returns:
        ConsolidationReport with merge plans, strengthened/decayed ids and summary
    """
    thresholds = ConsolidationThresholds(
        merge_similarity_threshold=merge_similarity_threshold,
        decay_after_days=decay_after_days,
        emotional_strengthen_threshold=emotional_strengthen_threshold,
    )
    thresholds.validate()
    now = to_iso_timestamp(now_iso) if now_iso is not None else utc_now_iso()
    now_ms = iso_to_unix_ms(now)

    working = [m.model_copy(deep=True) for m in memories]
    similarity, usable = _similarity_matrix(working)
    size = len(working)

    groups = _UnionFind(size)
    for left in range(size):
        if not usable[left]:
            continue
        for right in range(left + 1, size):
            if not usable[right] or working[left].type != working[right].type:
                continue
            if similarity[left, right] >= merge_similarity_threshold:
                groups.union(left, right)

    members_by_root: Dict[int, List[int]] = {}
    for index in range(size):
        members_by_root.setdefault(groups.find(index), []).append(index)

    merge_plans: List[MergePlan] = []
    actions: List[ConsolidationAction] = []
    consumed: set[int] = set()
    survivors: Dict[int, MemoryNode] = {}

    for root in sorted(members_by_root):
        indices = members_by_root[root]
        if len(indices) < 2:
            continue
        primary_index = min(indices, key=lambda i: (iso_to_unix_ms(working[i].timestamp_iso), i))
        merged_indices = [i for i in indices if i != primary_index]
        strongest = max(
            float(similarity[a, b]) for a in indices for b in indices if a < b
        )
        primary = working[primary_index]
        merge_plans.append(
            MergePlan(
                primary_id=primary.id,
                merged_ids=[working[i].id for i in merged_indices],
                similarity=round(strongest, 4),
            )
        )
        actions.append(
            ConsolidationAction(
                kind="merge",
                memory_ids=[primary.id] + [working[i].id for i in merged_indices],
                reason=f"similarity >= {merge_similarity_threshold}",
            )
        )
        consumed.update(merged_indices)
        survivors[primary_index] = _merge_group(primary, [working[i] for i in indices])

    strengthened_ids: List[str] = []
    decayed_ids: List[str] = []
    resulting: List[MemoryNode] = []

    for index in range(size):
        if index in consumed:
            continue
        memory = survivors.get(index, working[index])
        if abs(memory.emotional_valence) >= emotional_strengthen_threshold:
            memory = memory.model_copy(
                update={
                    "decay_factor": min(1.0, memory.decay_factor + STRENGTHEN_DECAY_BOOST),
                    "access_count": memory.access_count + 1,
                }
            )
            strengthened_ids.append(memory.id)
            actions.append(
                ConsolidationAction(
                    kind="strengthen_emotional",
                    memory_ids=[memory.id],
                    reason=f"|emotional_valence| >= {emotional_strengthen_threshold}",
                )
            )
        elif index not in survivors:
            age_days = max(0, now_ms - iso_to_unix_ms(memory.timestamp_iso)) / DAY_MS
            # Strictly older: a memory exactly decay_after_days old is kept.
            if age_days > decay_after_days:
                decayed_ids.append(memory.id)
                actions.append(
                    ConsolidationAction(
                        kind="decay",
                        memory_ids=[memory.id],
                        reason=f"age > {decay_after_days:g}d without reinforcement",
                    )
                )
                continue
        resulting.append(memory)

    merged_count = sum(len(plan.merged_ids) for plan in merge_plans)
    summary = ConsolidationSummary(
        total_input=size,
        total_output=size - merged_count - len(decayed_ids),
        merged_count=merged_count,
    )
    logger.info(
        f"Consolidation ({'dry-run' if dry_run else 'commit'}): {size} in, {summary.total_output} out, "
        f"{len(merge_plans)} merge plans, {len(strengthened_ids)} strengthened, {len(decayed_ids)} decayed"
    )
    return ConsolidationReport(
        dry_run=dry_run,
        merge_plans=merge_plans,
        strengthened_ids=strengthened_ids,
        decayed_ids=decayed_ids,
        actions=actions,
        resulting_memories=[] if dry_run else resulting,
        summary=summary,
    )


class ConsolidationEngine:
    """
    Runs consolidation passes with fixed thresholds and an injectable clock.

    Two modes:
    1. Dry run: report the plan without producing new state
    2. Commit: also return the desired memory set for the caller to persist
    """

    def __init__(
        self,
        thresholds: Optional[ConsolidationThresholds] = None,
        *,
        now_iso: Optional[Callable[[], str]] = None,
    ) -> None:
        self.thresholds = thresholds or ConsolidationThresholds()
        self.thresholds.validate()
        self._now_iso = now_iso or utc_now_iso

    def plan(self, memories: Sequence[MemoryNode]) -> ConsolidationReport:
        return self.run(memories, dry_run=True)

    def run(self, memories: Sequence[MemoryNode], *, dry_run: bool = False) -> ConsolidationReport:
        return consolidate_memories(
            memories,
            now_iso=self._now_iso(),
            dry_run=dry_run,
            merge_similarity_threshold=self.thresholds.merge_similarity_threshold,
            decay_after_days=self.thresholds.decay_after_days,
            emotional_strengthen_threshold=self.thresholds.emotional_strengthen_threshold,
        )


__all__ = [
    "ConsolidationEngine",
    "ConsolidationThresholds",
    "consolidate_memories",
]

import asyncio
import math

import pytest

from persona_core.benchmarks.recall import run_recall_benchmark
from persona_core.exceptions import EmbeddingDimensionError, MemoryValidationError
from persona_core.runtime.memory.embedding import build_deterministic_embedding
from persona_core.runtime.memory.models import MemoryNode
from persona_core.runtime.memory.retrieval import (
    compute_frequency_score,
    compute_recency_score,
    compute_semantic_score,
    cosine_similarity,
    retrieve_memories,
)

NOW = "2026-05-31T12:00:00.000Z"


def make_memory(memory_id: str, content: str, *, days_old: float = 1.0, valence: float = 0.0, access: int = 1,
                embedding=None) -> MemoryNode:
    return MemoryNode(
        id=memory_id,
        user_id="u1",
        content=content,
        embedding=build_deterministic_embedding(content, 64) if embedding is None else embedding,
        timestamp_iso=1_780_228_800_000 - int(days_old * 86_400_000),
        emotional_valence=valence,
        access_count=access,
    )


def test_cosine_is_symmetric_and_bounded():
    a = build_deterministic_embedding("alpha beta gamma", 64)
    b = build_deterministic_embedding("beta delta", 64)
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
    assert -1.0 <= cosine_similarity(a, b) <= 1.0
    assert cosine_similarity(a, [-v for v in a]) == pytest.approx(-1.0)


def test_semantic_score_in_unit_interval_and_zero_for_unusable():
    a = build_deterministic_embedding("alpha", 64)
    assert 0.0 <= compute_semantic_score(a, [-v for v in a]) <= 1.0
    assert compute_semantic_score([], a) == 0.0
    assert compute_semantic_score([0.0] * 64, a) == 0.0
    assert compute_semantic_score([math.nan] * 64, a) == 0.0


def test_recency_and_frequency_signals():
    assert compute_recency_score(NOW, NOW) == 1.0
    assert compute_recency_score("2026-05-17T12:00:00.000Z", NOW) == pytest.approx(0.5)
    # future timestamps clamp to age 0
    assert compute_recency_score("2026-06-30T12:00:00.000Z", NOW) == 1.0
    assert compute_frequency_score(0) == compute_frequency_score(1)
    assert compute_frequency_score(100) == pytest.approx(1.0)


def test_selected_sorted_and_limited():
    memories = [make_memory(f"m{i}", f"note number {i} about topic {i % 3}", days_old=i, valence=(i % 5) / 5)
                for i in range(12)]
    query = build_deterministic_embedding("topic 1", 64)

    result = retrieve_memories(memories, query, NOW, limit=4)

    scores = [entry.score for entry in result.selected]
    assert len(result.selected) == 4
    assert scores == sorted(scores, reverse=True)
    for entry in result.selected:
        for value in entry.breakdown.model_dump().values():
            assert 0.0 <= value <= 1.0
    assert result.formula == "semantic(0.4)+recency(0.3)+emotional(0.2)+frequency(0.1)"


def test_limit_clamped_to_at_least_one():
    memories = [make_memory("a", "alpha"), make_memory("b", "beta")]
    result = retrieve_memories(memories, build_deterministic_embedding("alpha", 64), NOW, limit=0)
    assert len(result.selected) == 1


def test_ties_keep_candidate_order():
    same = build_deterministic_embedding("identical", 64)
    memories = [make_memory(mid, "identical", embedding=list(same)) for mid in ("first", "second", "third")]

    result = retrieve_memories(memories, same, NOW, limit=3)

    assert [entry.memory.id for entry in result.selected] == ["first", "second", "third"]


def test_unusable_embeddings_still_ranked_and_counted():
    memories = [
        make_memory("good", "alpha"),
        make_memory("empty", "beta", embedding=[]),
        make_memory("zero", "gamma", embedding=[0.0] * 64),
    ]
    result = retrieve_memories(memories, build_deterministic_embedding("alpha", 64), NOW, limit=10)

    assert result.discarded_without_embedding == 2
    assert {entry.memory.id for entry in result.selected} == {"good", "empty", "zero"}
    by_id = {entry.memory.id: entry for entry in result.selected}
    assert by_id["empty"].breakdown.semantic == 0.0


def test_bad_weights_and_dimension_mismatch_fail_fast():
    memories = [make_memory("a", "alpha")]
    query = build_deterministic_embedding("alpha", 64)

    with pytest.raises(MemoryValidationError):
        retrieve_memories(memories, query, NOW, weights={"semantic": 0.9, "recency": 0.3, "emotional": 0.0, "frequency": 0.0})
    with pytest.raises(MemoryValidationError):
        retrieve_memories(memories, query, NOW, weights={"semantic": -0.1, "recency": 0.9, "emotional": 0.1, "frequency": 0.1})
    with pytest.raises(EmbeddingDimensionError):
        retrieve_memories(memories, build_deterministic_embedding("alpha", 32), NOW)


def test_custom_weights_change_ranking():
    memories = [
        make_memory("old-relevant", "launch deadline friday", days_old=60),
        make_memory("new-irrelevant", "sunny windowsill cat", days_old=0),
    ]
    query = build_deterministic_embedding("launch deadline friday", 64)

    semantic_only = retrieve_memories(
        memories, query, NOW, weights={"semantic": 1.0, "recency": 0.0, "emotional": 0.0, "frequency": 0.0}
    )
    recency_only = retrieve_memories(
        memories, query, NOW, weights={"semantic": 0.0, "recency": 1.0, "emotional": 0.0, "frequency": 0.0}
    )

    assert semantic_only.selected[0].memory.id == "old-relevant"
    assert recency_only.selected[0].memory.id == "new-irrelevant"


def test_retrieval_is_idempotent_and_does_not_mutate_input():
    memories = [make_memory(f"m{i}", f"entry {i}", days_old=i) for i in range(5)]
    snapshot = [m.model_dump() for m in memories]
    query = build_deterministic_embedding("entry 3", 64)

    first = retrieve_memories(memories, query, NOW, limit=3)
    second = retrieve_memories(memories, query, NOW, limit=3)

    assert first.model_dump() == second.model_dump()
    assert [m.model_dump() for m in memories] == snapshot


def test_recall_benchmark_meets_target():
    result = asyncio.run(run_recall_benchmark(fact_count=20, turns=100, limit=3, target_rate=0.65))

    assert result.planted_facts == 20
    assert result.recall_rate >= 0.65
    assert result.passed

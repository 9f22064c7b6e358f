import pytest

from persona_core.exceptions import EmbeddingDimensionError, MemoryValidationError
from persona_core.runtime.memory.consolidation import ConsolidationEngine, ConsolidationThresholds, consolidate_memories
from persona_core.runtime.memory.models import MemoryNode, ProvenanceLink

NOW = "2026-05-31T12:00:00.000Z"
NOW_MS = 1_780_228_800_000
DAY_MS = 86_400_000


def unit(index: int, dims: int = 8) -> list:
    vec = [0.0] * dims
    vec[index] = 1.0
    return vec


def node(memory_id, embedding, *, days_old=1.0, valence=0.0, access=1, decay=0.5, type="semantic", provenance=()):
    return MemoryNode(
        id=memory_id,
        user_id="u1",
        type=type,
        content=f"content {memory_id}",
        embedding=embedding,
        timestamp_iso=NOW_MS - int(days_old * DAY_MS),
        emotional_valence=valence,
        access_count=access,
        decay_factor=decay,
        provenance=[
            ProvenanceLink(memory_id=memory_id, message_id=mid, thread_id="t1", created_at_iso=NOW) for mid in provenance
        ],
    )


def test_merges_near_duplicates_into_earliest_member():
    memories = [
        node("newer", unit(0), days_old=1, access=2, provenance=("msg-a",)),
        node("older", [0.99, 0.05, 0, 0, 0, 0, 0, 0], days_old=5, access=3, provenance=("msg-a", "msg-b")),
        node("other", unit(1), days_old=1),
    ]

    report = consolidate_memories(memories, now_iso=NOW)

    assert len(report.merge_plans) == 1
    plan = report.merge_plans[0]
    assert plan.primary_id == "older"
    assert plan.merged_ids == ["newer"]
    assert plan.similarity >= 0.9
    assert report.summary.total_input == 3
    assert report.summary.total_output == 2
    assert report.summary.merged_count == 1

    survivor = next(m for m in report.resulting_memories if m.id == "older")
    assert survivor.access_count == 5
    assert survivor.metadata["merged_from"] == ["newer"]
    assert sorted(link.message_id for link in survivor.provenance) == ["msg-a", "msg-b"]


def test_transitive_overlaps_share_one_plan():
    a = [1.0, 0.0, 0, 0, 0, 0, 0, 0]
    b = [0.95, 0.312, 0, 0, 0, 0, 0, 0]
    c = [0.81, 0.586, 0, 0, 0, 0, 0, 0]
    memories = [node("a", a, days_old=3), node("b", b, days_old=2), node("c", c, days_old=1)]

    report = consolidate_memories(memories, now_iso=NOW, merge_similarity_threshold=0.94)

    assert len(report.merge_plans) == 1
    assert report.merge_plans[0].primary_id == "a"
    assert report.merge_plans[0].merged_ids == ["b", "c"]


def test_below_threshold_and_different_types_do_not_merge():
    memories = [
        node("x", [1.0, 0.5, 0, 0, 0, 0, 0, 0]),
        node("y", [0.5, 1.0, 0, 0, 0, 0, 0, 0]),
        node("z", [1.0, 0.5, 0, 0, 0, 0, 0, 0], type="episodic"),
    ]
    report = consolidate_memories(memories, now_iso=NOW)

    assert report.merge_plans == []


def test_strengthen_and_decay_rules():
    memories = [
        node("salient-old", unit(0), days_old=90, valence=-0.8, decay=0.5),
        node("stale", unit(1), days_old=45),
        node("fresh", unit(2), days_old=2),
        node("boundary", unit(3), days_old=30),
    ]

    report = consolidate_memories(memories, now_iso=NOW)

    assert report.strengthened_ids == ["salient-old"]
    assert report.decayed_ids == ["stale"]
    assert report.summary.total_output == 3
    strengthened = next(m for m in report.resulting_memories if m.id == "salient-old")
    assert strengthened.decay_factor == pytest.approx(0.58)
    assert strengthened.access_count == 2
    assert "stale" not in {m.id for m in report.resulting_memories}


def test_merge_survivor_never_decays():
    memories = [node("a", unit(0), days_old=100), node("b", unit(0), days_old=90)]
    report = consolidate_memories(memories, now_iso=NOW)

    assert report.decayed_ids == []
    assert [m.id for m in report.resulting_memories] == ["a"]


def test_dry_run_reports_plan_without_state_or_mutation():
    memories = [
        node("a", unit(0), days_old=10),
        node("b", unit(0), days_old=5),
        node("stale", unit(1), days_old=60),
    ]
    snapshot = [m.model_dump() for m in memories]

    dry = consolidate_memories(memories, now_iso=NOW, dry_run=True)
    again = consolidate_memories(memories, now_iso=NOW, dry_run=True)
    committed = consolidate_memories(memories, now_iso=NOW)

    assert dry.dry_run is True
    assert dry.resulting_memories == []
    assert dry.summary.total_input == 3
    assert dry.summary.total_output == 1
    assert dry.model_dump() == again.model_dump()
    assert dry.merge_plans == committed.merge_plans
    assert [m.model_dump() for m in memories] == snapshot
    assert len(committed.resulting_memories) == committed.summary.total_output


def test_mismatched_dimensions_and_bad_thresholds_raise():
    with pytest.raises(EmbeddingDimensionError):
        consolidate_memories([node("a", unit(0, 8)), node("b", unit(0, 16))], now_iso=NOW)
    with pytest.raises(MemoryValidationError):
        consolidate_memories([], now_iso=NOW, decay_after_days=-1)


def test_engine_uses_injected_clock():
    engine = ConsolidationEngine(ConsolidationThresholds(decay_after_days=7), now_iso=lambda: NOW)
    report = engine.plan([node("week-old", unit(0), days_old=8)])

    assert report.dry_run
    assert report.decayed_ids == ["week-old"]

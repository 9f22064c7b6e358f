import pytest

from persona_core.benchmarks.timing import run_timing_benchmark
from persona_core.chunking import chunk_response_text
from persona_core.exceptions import MemoryValidationError
from persona_core.runtime.pipeline.timing import (
    MAX_DELAY_MS,
    MAX_TYPING_MS,
    MIN_DELAY_MS,
    MIN_TYPING_MS,
    compute_timing_plan,
    compute_typing_duration,
    plan_strategic_non_response,
    simulate_read_receipt_delay,
    simulate_revision_event,
)


def test_short_reply_still_yields_two_chunks():
    assert chunk_response_text("Yes, ship it now.") == ["Yes,", "ship it now."]
    assert chunk_response_text("Hi") == ["H", "i"]


def test_chunk_count_tracks_length_and_preserves_words():
    long_text = " ".join(f"word{i}" for i in range(100))
    chunks = chunk_response_text(long_text)

    assert len(chunks) == 4
    assert " ".join(chunks).split() == long_text.split()


def test_many_short_sentences_merge_down_to_target():
    text = " ".join(f"Point {i} holds." for i in range(10))
    chunks = chunk_response_text(text)

    assert len(chunks) == 2
    assert all(chunk.strip() for chunk in chunks)
    assert " ".join(chunks) == text


@pytest.mark.parametrize("bad", ["", " ", "x", None])
def test_too_short_text_is_rejected(bad):
    with pytest.raises(MemoryValidationError):
        chunk_response_text(bad)


def test_invalid_bounds_are_rejected():
    with pytest.raises(MemoryValidationError):
        chunk_response_text("Hello there friend.", min_chunks=1)
    with pytest.raises(MemoryValidationError):
        chunk_response_text("Hello there friend.", min_chunks=3, max_chunks=2)


def test_typing_and_read_delay_are_monotone():
    short, long = "ok sure", "ok sure, let me think about that for a moment before replying"
    assert compute_typing_duration(long, 0.2) >= compute_typing_duration(short, 0.2)
    assert compute_typing_duration(long, 0.9) >= compute_typing_duration(long, 0.2)
    assert simulate_read_receipt_delay(200, 0.5) >= simulate_read_receipt_delay(20, 0.5)
    assert simulate_read_receipt_delay(20, 0.9) >= simulate_read_receipt_delay(20, 0.1)
    assert simulate_read_receipt_delay(10_000, 1.0) == 4600
    assert compute_typing_duration("x" * 10_000, 1.0) == MAX_TYPING_MS


def test_timing_plan_is_bounded_and_deterministic():
    for index, complexity in [(0, 0.0), (0, 1.0), (1, 0.5), (3, 1.0)]:
        plan = compute_timing_plan("Let us protect Friday.", index, complexity, read_delay=20_000)
        assert MIN_DELAY_MS <= plan.delay_before <= MAX_DELAY_MS
        assert MIN_TYPING_MS <= plan.typing_duration <= MAX_TYPING_MS
        assert plan == compute_timing_plan("Let us protect Friday.", index, complexity, read_delay=20_000)


def test_revision_pause_only_when_revising():
    revising = simulate_revision_event("Are you sure?", 0.9, contains_question=True)
    calm = simulate_revision_event("ok", 0.1, contains_question=False)

    assert revising.should_revise and revising.pause_ms == 1932
    assert not calm.should_revise and calm.pause_ms == 0


def test_strategic_plan_accumulates_relational_factors():
    tense = plan_strategic_non_response("close", 0.5, unresolved_tension=True, period="late_night")
    relaxed = plan_strategic_non_response("close", 0.5, unresolved_tension=False, period="afternoon")

    assert tense.should_delay and tense.delay_ms == 6300
    assert "unresolved_tension" in tense.reason and "late_night" in tense.reason
    assert not relaxed.should_delay and relaxed.delay_ms == 0
    assert relaxed.reason == "relational=none"


def test_timing_benchmark_passes():
    result = run_timing_benchmark()

    assert result.sample_count == 6
    assert result.chunk_count >= 12
    assert result.pass_rate >= 0.95
    assert result.passed

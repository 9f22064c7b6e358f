"""
Timing Model - Read receipts, typing, revision pauses, strategic delays

WHAT: Pure functions turning text and emotional signals into delivery timings
WHERE: persona_core/runtime/pipeline/timing.py - humanizer sub-models
WHO: Humanizer stage; timing benchmark
TIME: O(len(text)) per call, no I/O, no hidden state

Bounds (milliseconds):
- read delay:   400 .. 4600, non-decreasing in text length and complexity
- delay_before: 150 .. 12000
- typing:       300 .. 20000, non-decreasing in text length and complexity

Jitter is derived from BLAKE2b(text, chunk_index) so identical inputs always
produce identical plans.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

from .types import DayPeriod, RelationshipStage, RevisionEvent, StrategicNonResponse

MIN_DELAY_MS = 150
MAX_DELAY_MS = 12_000
MIN_TYPING_MS = 300
MAX_TYPING_MS = 20_000
CHARS_PER_SECOND = 12.0

REVISION_THRESHOLD = 0.55

_HEDGE_RE = re.compile(r"\b(maybe|actually|though|honestly|i think|not sure|but)\b", re.IGNORECASE)


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _jitter(text: str, chunk_index: int) -> float:
    """Deterministic value in [0, 1) for the (text, chunk_index) pair."""
    digest = hashlib.blake2b(f"{chunk_index}:{text}".encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "little") / 2**64


@dataclass(slots=True, frozen=True)
class TimingPlan:
    delay_before: int
    typing_duration: int


def simulate_read_receipt_delay(text_length: int, emotional_complexity: float) -> int:
    """Time before the incoming message is "read"; longer and heavier messages take longer."""
    length = max(0, int(text_length))
    complexity = _clamp(emotional_complexity, 0.0, 1.0)
    return round(400 + min(length * 12, 2400) + complexity * 1800)


def compute_typing_duration(text: str, emotional_complexity: float) -> int:
    complexity = _clamp(emotional_complexity, 0.0, 1.0)
    per_char_ms = 1000.0 / CHARS_PER_SECOND
    raw = MIN_TYPING_MS + len(text) * per_char_ms * (1.0 + 0.5 * complexity)
    return round(_clamp(raw, MIN_TYPING_MS, MAX_TYPING_MS))


def compute_timing_plan(
    text: str,
    chunk_index: int,
    emotional_complexity: float,
    read_delay: int,
) -> TimingPlan:
    """
    Delay before sending a chunk and how long the typing indicator shows.

    The first chunk waits for the read delay plus thinking time; later chunks
    only pause between messages.
    """
    complexity = _clamp(emotional_complexity, 0.0, 1.0)
    jitter = _jitter(text, chunk_index)
    if chunk_index == 0:
        delay = max(0, read_delay) + 250 + complexity * 900 + jitter * 250
    else:
        delay = 350 + complexity * 600 + jitter * 400
    return TimingPlan(
        delay_before=round(_clamp(delay, MIN_DELAY_MS, MAX_DELAY_MS)),
        typing_duration=compute_typing_duration(text, complexity),
    )


def simulate_revision_event(text: str, emotional_complexity: float, contains_question: bool) -> RevisionEvent:
    """Decide whether the persona pauses to reconsider before sending."""
    complexity = _clamp(emotional_complexity, 0.0, 1.0)
    score = complexity * 0.6
    reasons = [f"complexity={complexity:.2f}"]
    if contains_question:
        score += 0.2
        reasons.append("question")
    if len(text) > 120:
        score += 0.15
        reasons.append("long_message")
    if _HEDGE_RE.search(text):
        score += 0.1
        reasons.append("hedging")

    if score < REVISION_THRESHOLD:
        return RevisionEvent(should_revise=False, pause_ms=0, reason="no_revision; " + ", ".join(reasons))
    return RevisionEvent(
        should_revise=True,
        pause_ms=round(600 + min(score, 1.0) * 1800),
        reason="reconsidering; " + ", ".join(reasons),
    )


def plan_strategic_non_response(
    relationship_stage: RelationshipStage,
    emotional_complexity: float,
    unresolved_tension: bool,
    period: DayPeriod,
) -> StrategicNonResponse:
    """Relational delay plan: tension, late hours, and guarded stages slow replies."""
    complexity = _clamp(emotional_complexity, 0.0, 1.0)
    delay = 0.0
    reasons = []
    if unresolved_tension:
        delay += 2500 + complexity * 4000
        reasons.append("unresolved_tension")
    if period == "late_night":
        delay += 1800
        reasons.append("late_night")
    if relationship_stage in ("stranger", "acquaintance") and complexity >= 0.7:
        delay += 1200
        reasons.append(f"guarded_{relationship_stage}")

    return StrategicNonResponse(
        should_delay=delay > 0,
        delay_ms=round(delay),
        reason="relational=" + ("+".join(reasons) if reasons else "none"),
    )


__all__ = [
    "TimingPlan",
    "compute_timing_plan",
    "compute_typing_duration",
    "plan_strategic_non_response",
    "simulate_read_receipt_delay",
    "simulate_revision_event",
]

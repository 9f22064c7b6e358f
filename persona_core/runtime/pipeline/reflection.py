"""
Reflection Engine - Periodic pattern summaries over recent conversation

WHAT: Detects recurring topics and emotional/relational/planning cues and summarizes them
WHERE: persona_core/runtime/pipeline/reflection.py - learner sub-model
WHO: Learner, every N messages once the conversation is long enough
TIME: O(window · tokens)

Boundary Notes:
- Pure: same messages and clock produce the same session
- At most six patterns; always three observations
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import List, Literal, Sequence

from pydantic import BaseModel, Field

from .types import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_MAX_WINDOW = 40

STOPWORDS = frozenset(
    {"the", "and", "for", "that", "with", "this", "have", "from", "your", "just",
     "about", "there", "what", "when", "they", "will"}
)
STRESS_TERMS = ("stressed", "overwhelmed", "anxious", "panic", "burnout")
WARMTH_TERMS = ("thanks", "appreciate", "love", "grateful", "proud")
PLANNING_TERMS = ("plan", "roadmap", "deadline", "launch", "scope")

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")


class BehaviorPattern(BaseModel):
    id: str
    kind: Literal["topic", "emotion", "relationship", "linguistic"]
    label: str
    occurrences: int = Field(ge=0)
    trend: Literal["rising", "falling", "stable"]


class GrowthInsight(BaseModel):
    id: str
    summary: str
    evidence: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)


class ReflectionEvolution(BaseModel):
    vocabulary_adds: List[str] = Field(default_factory=list)
    interests_added: List[str] = Field(default_factory=list)
    stance_adjustments: List[str] = Field(default_factory=list)


class ReflectionSession(BaseModel):
    id: str
    thread_id: str
    persona_id: str
    created_at_iso: str
    window_size: int
    observations: List[GrowthInsight]
    patterns: List[BehaviorPattern]
    evolution: ReflectionEvolution


def should_run_reflection(total_messages: int, every_n_messages: int, min_messages: int) -> bool:
    if total_messages < min_messages:
        return False
    return total_messages % max(1, every_n_messages) == 0


def _tokens(text: str) -> List[str]:
    return [t for t in _NON_ALNUM_RE.sub(" ", text.lower()).split() if len(t) >= 4 and t not in STOPWORDS]


def _count_containing(messages: Sequence[ChatMessage], terms: Sequence[str]) -> int:
    return sum(1 for m in messages if any(term in m.text.lower() for term in terms))


def _trend(early: int, late: int) -> str:
    if late > early:
        return "rising"
    if late < early:
        return "falling"
    return "stable"


def detect_behavior_patterns(messages: Sequence[ChatMessage], max_window: int = DEFAULT_MAX_WINDOW) -> List[BehaviorPattern]:
    if not messages:
        return []
    recent = list(messages)[-max_window:]
    midpoint = max(1, len(recent) // 2)
    early, late = recent[:midpoint], recent[midpoint:]

    counts: Counter[str] = Counter()
    for message in recent:
        counts.update(_tokens(message.text))
    # most_common keeps first-seen order among equal counts
    patterns = [
        BehaviorPattern(
            id=f"pattern-topic-{index}-{term}",
            kind="topic",
            label=f"Frequent topic: {term}",
            occurrences=count,
            trend=_trend(_count_containing(early, [term]), _count_containing(late, [term])),
        )
        for index, (term, count) in enumerate(counts.most_common(2))
    ]

    cue_groups = (
        ("pattern-emotion-stress", "emotion", "Stress cues appeared repeatedly", STRESS_TERMS),
        ("pattern-relationship-warmth", "relationship", "Relationship warmth signals increased", WARMTH_TERMS),
        ("pattern-linguistic-planning", "linguistic", "Execution-focused language is recurrent", PLANNING_TERMS),
    )
    for pattern_id, kind, label, terms in cue_groups:
        occurrences = _count_containing(recent, terms)
        if occurrences > 0:
            patterns.append(
                BehaviorPattern(
                    id=pattern_id,
                    kind=kind,
                    label=label,
                    occurrences=occurrences,
                    trend=_trend(_count_containing(early, terms), _count_containing(late, terms)),
                )
            )
    return patterns[:6]


def _evolution(patterns: Sequence[BehaviorPattern]) -> ReflectionEvolution:
    evolution = ReflectionEvolution()
    for pattern in patterns:
        if pattern.kind == "topic":
            term = pattern.label.split(": ", 1)[-1]
            if pattern.occurrences >= 3:
                evolution.vocabulary_adds.append(term)
            if pattern.trend == "rising":
                evolution.interests_added.append(term)
        elif pattern.kind == "emotion" and pattern.trend != "falling":
            evolution.stance_adjustments.append("slow pacing and validate before advising")
        elif pattern.kind == "relationship":
            evolution.stance_adjustments.append("reference shared context more often")
    return evolution


def run_reflection_session(
    thread_id: str,
    persona_id: str,
    messages: Sequence[ChatMessage],
    now_iso: str,
    max_window: int = DEFAULT_MAX_WINDOW,
) -> ReflectionSession:
    window = list(messages)[-max_window:]
    patterns = detect_behavior_patterns(window, max_window)
    evidence = [m.text.strip() for m in window[-3:] if m.text.strip()]
    kinds = {p.kind for p in patterns}
    topic_count = sum(1 for p in patterns if p.kind == "topic")

    observations = [
        GrowthInsight(
            id=f"insight-{now_iso}-topics",
            summary=f"Detected {topic_count} recurring topic signal(s) in recent conversations.",
            evidence=evidence,
            confidence=0.72,
        ),
        GrowthInsight(
            id=f"insight-{now_iso}-emotion",
            summary=(
                "Emotional trend markers suggest adjusting response pacing and validation."
                if "emotion" in kinds
                else "Emotional tone appears stable with no strong stress escalation."
            ),
            evidence=evidence,
            confidence=0.76 if "emotion" in kinds else 0.61,
        ),
        GrowthInsight(
            id=f"insight-{now_iso}-relationship",
            summary=(
                "Relationship continuity signals are present; keep referencing shared context."
                if "relationship" in kinds
                else "Relationship signals are limited; prioritize trust-building in future turns."
            ),
            evidence=evidence,
            confidence=0.7 if "relationship" in kinds else 0.58,
        ),
    ]

    session = ReflectionSession(
        id=f"reflection-{thread_id}-{now_iso}",
        thread_id=thread_id,
        persona_id=persona_id,
        created_at_iso=now_iso,
        window_size=len(window),
        observations=observations,
        patterns=patterns,
        evolution=_evolution(patterns),
    )
    logger.info(
        f"Reflection {session.id}: {len(observations)} observations, {len(patterns)} patterns over {len(window)} messages"
    )
    return session


__all__ = [
    "BehaviorPattern",
    "GrowthInsight",
    "ReflectionEvolution",
    "ReflectionSession",
    "detect_behavior_patterns",
    "run_reflection_session",
    "should_run_reflection",
]

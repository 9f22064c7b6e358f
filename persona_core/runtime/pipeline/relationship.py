"""
Relationship State Machine - Pure stage transitions

WHAT: Immutable relationship state and a pure transition(state, trigger) function
WHERE: persona_core/runtime/pipeline/relationship.py - learner sub-model
WHO: Learner computing the per-turn relationship update
TIME: O(1)

Stages advance or retreat at most one step per transition, toward the
target stage implied by trust, message count, days together, and conflict.

Boundary Notes:
- transition() never mutates its inputs; replaying triggers reproduces state
- trust_score stays within [0, 1]
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Tuple

from .types import AttachmentStyle, RelationshipStage

STAGE_ORDER: Tuple[RelationshipStage, ...] = ("stranger", "acquaintance", "friend", "close", "intimate")

REPAIR_WEIGHTS: Dict[str, float] = {
    "apology": 0.25,
    "acknowledge_harm": 0.25,
    "behavior_change": 0.2,
    "follow_through": 0.2,
    "check_in": 0.1,
}
REPAIR_COMPLETE = 0.6


@dataclass(slots=True, frozen=True)
class AttachmentProfile:
    silence_penalty_per_hour: float
    conflict_penalty: float
    conflict_escalation: float


ATTACHMENT_PROFILES: Dict[str, AttachmentProfile] = {
    "secure": AttachmentProfile(0.0, 0.01, 0.2),
    "anxious": AttachmentProfile(0.002, 0.03, 0.6),
    "avoidant": AttachmentProfile(0.0005, 0.02, 0.4),
    "disorganized": AttachmentProfile(0.0015, 0.035, 0.8),
}
SILENCE_GRACE_HOURS = 4.0


@dataclass(slots=True, frozen=True)
class RelationshipState:
    stage: RelationshipStage = "stranger"
    trust_score: float = 0.3
    message_count: int = 0
    days_together: int = 1
    unresolved_conflict: bool = False
    attachment_style: AttachmentStyle = "secure"
    repair_progress: float = 0.0


@dataclass(slots=True, frozen=True)
class RelationshipTrigger:
    """One interaction's worth of signals."""

    positive_signals: int = 0
    negative_signals: int = 0
    conflict_triggered: bool = False
    silence_hours: float = 0.0
    repair_actions: Tuple[str, ...] = ()
    days_elapsed: int = 0


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def determine_target_stage(
    trust_score: float, message_count: int, days_together: int, unresolved_conflict: bool
) -> RelationshipStage:
    if unresolved_conflict and trust_score < 0.55:
        return "acquaintance"
    if trust_score >= 0.9 and days_together >= 60 and message_count >= 600:
        return "intimate"
    if trust_score >= 0.75 and days_together >= 30 and message_count >= 250:
        return "close"
    if trust_score >= 0.55 and message_count >= 80:
        return "friend"
    if trust_score >= 0.35 and message_count >= 20:
        return "acquaintance"
    return "stranger"


def step_stage(current: RelationshipStage, target: RelationshipStage) -> RelationshipStage:
    """Move one stage toward ``target``."""
    current_rank = STAGE_ORDER.index(current)
    target_rank = STAGE_ORDER.index(target)
    if target_rank > current_rank:
        return STAGE_ORDER[current_rank + 1]
    if target_rank < current_rank:
        return STAGE_ORDER[current_rank - 1]
    return current


def _trust_delta(state: RelationshipState, trigger: RelationshipTrigger) -> float:
    profile = ATTACHMENT_PROFILES.get(state.attachment_style, ATTACHMENT_PROFILES["secure"])
    delta = trigger.positive_signals * 0.015 - trigger.negative_signals * 0.02
    delta -= max(0.0, trigger.silence_hours - SILENCE_GRACE_HOURS) * profile.silence_penalty_per_hour
    if state.unresolved_conflict or trigger.conflict_triggered:
        delta -= profile.conflict_penalty
    if trigger.conflict_triggered:
        delta -= profile.conflict_escalation * 0.08
    return delta


def _apply_repair(state: RelationshipState, actions: Tuple[str, ...]) -> RelationshipState:
    progress = state.repair_progress + sum(REPAIR_WEIGHTS.get(action, 0.0) for action in set(actions))
    if state.unresolved_conflict and progress >= REPAIR_COMPLETE:
        return replace(
            state,
            unresolved_conflict=False,
            repair_progress=0.0,
            trust_score=_clamp(state.trust_score + 0.03, 0.0, 1.0),
        )
    return replace(state, repair_progress=_clamp(progress, 0.0, 1.0))


def transition(state: RelationshipState, trigger: RelationshipTrigger) -> RelationshipState:
    """Return the state after one interaction."""
    nxt = replace(
        state,
        message_count=state.message_count + 1,
        days_together=state.days_together + max(0, trigger.days_elapsed),
    )
    nxt = replace(nxt, trust_score=_clamp(nxt.trust_score + _trust_delta(nxt, trigger), 0.0, 1.0))

    if trigger.conflict_triggered:
        nxt = replace(
            nxt,
            unresolved_conflict=True,
            repair_progress=0.0,
            trust_score=_clamp(nxt.trust_score - 0.05, 0.0, 1.0),
        )
    if trigger.repair_actions or nxt.unresolved_conflict:
        nxt = _apply_repair(nxt, trigger.repair_actions)

    target = determine_target_stage(nxt.trust_score, nxt.message_count, nxt.days_together, nxt.unresolved_conflict)
    return replace(nxt, stage=step_stage(nxt.stage, target))


def detect_repair_actions(text: str) -> Tuple[str, ...]:
    lowered = text.lower()
    actions = []
    if "sorry" in lowered or "apolog" in lowered:
        actions.append("apology")
    if "i know i hurt" in lowered or "i understand" in lowered:
        actions.append("acknowledge_harm")
    if "i will" in lowered or "next time" in lowered or "i changed" in lowered:
        actions.extend(["behavior_change", "follow_through"])
    if "checking in" in lowered:
        actions.append("check_in")
    return tuple(actions)


def count_signals(text: str, terms: Tuple[str, ...]) -> int:
    lowered = text.lower()
    return sum(1 for term in terms if term in lowered)


__all__ = [
    "RelationshipState",
    "RelationshipTrigger",
    "determine_target_stage",
    "detect_repair_actions",
    "count_signals",
    "step_stage",
    "transition",
]

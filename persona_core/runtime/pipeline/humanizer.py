"""
Humanizer Stage - Paced, chunked delivery of one completion

WHAT: Splits the model text into 2-4 timed messages and plans strategic delays
WHERE: persona_core/runtime/pipeline/humanizer.py - pipeline stage 6
WHO: PipelineOrchestrator after the LLM caller
TIME: O(len(text)); deterministic for a given payload

Boundary Notes:
- Every message has delay_before > 0 and typing_duration > 0
- Unavailability from the temporal snapshot always forces should_delay
- Single-token completions become the token plus a configured follow-up
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Callable, List, Optional

from ...chunking import chunk_response_text
from ...config import HumanizerConfig
from .imperfection import IMPERFECTION_PROFILES, apply_imperfections
from .timing import (
    TimingPlan,
    compute_timing_plan,
    plan_strategic_non_response,
    simulate_read_receipt_delay,
    simulate_revision_event,
)
from .types import (
    HumanizedMessage,
    HumanizedPlan,
    HumanizerOutput,
    LLMCallerOutput,
    RevisionEvent,
    StrategicNonResponse,
)

logger = logging.getLogger(__name__)

MIN_ADJUSTED_TYPING_MS = 140
BASELINE_ENERGY = 0.55


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def energy_adjusted_typing(typing_duration: int, energy: float) -> int:
    """Low energy slows typing (up to +45%), high energy speeds it (down to -20%)."""
    factor = 1.0 + _clamp(BASELINE_ENERGY - energy, -0.2, 0.45)
    return max(MIN_ADJUSTED_TYPING_MS, round(typing_duration * factor))


class Humanizer:
    """
    Pipeline stage converting ``llm.text`` into a HumanizedPlan.

    Sub-models default to the pure timing and imperfection functions and can
    be replaced for testing. Imperfections only run when the config enables them.
    """

    name = "humanizer"

    def __init__(
        self,
        config: Optional[HumanizerConfig] = None,
        *,
        read_delay: Callable[[int, float], int] = simulate_read_receipt_delay,
        timing: Callable[[str, int, float, int], TimingPlan] = compute_timing_plan,
        revision: Callable[[str, float, bool], RevisionEvent] = simulate_revision_event,
        strategic_delay: Callable[..., StrategicNonResponse] = plan_strategic_non_response,
        imperfections: Optional[Callable[[str, float, int], str]] = None,
    ) -> None:
        self.config = config or HumanizerConfig()
        if self.config.imperfection_profile not in IMPERFECTION_PROFILES:
            raise ValueError(f"Unknown imperfection profile: {self.config.imperfection_profile!r}")
        self._imperfections = imperfections or partial(apply_imperfections, profile=self.config.imperfection_profile)
        self._read_delay = read_delay
        self._timing = timing
        self._revision = revision
        self._strategic_delay = strategic_delay

    def _chunks(self, text: str) -> List[str]:
        normalized = text.strip()
        if normalized and len(normalized.split()) == 1:
            # A lone token is never split mid-word.
            return [normalized, self.config.short_reply_followup]
        return chunk_response_text(
            text,
            min_chunks=self.config.min_chunks,
            max_chunks=self.config.max_chunks,
            target_words_per_chunk=self.config.target_words_per_chunk,
        )

    def _messages(self, payload: LLMCallerOutput, complexity: float) -> List[HumanizedMessage]:
        chunks = self._chunks(payload.llm.text)
        read_delay = self._read_delay(len(payload.user_message.text), complexity)
        temporal = payload.context.temporal
        energy = temporal.energy_level if temporal is not None else payload.identity.energy
        intensity = _clamp(0.1 + complexity * 0.5, 0.0, 1.0)

        messages: List[HumanizedMessage] = []
        for index, chunk in enumerate(chunks):
            if self.config.imperfections:
                chunk = self._imperfections(chunk, intensity, payload.timestamp + index)
            plan = self._timing(chunk, index, complexity, read_delay)
            revision = self._revision(chunk, complexity, "?" in chunk)
            messages.append(
                HumanizedMessage(
                    text=chunk,
                    chunk_index=index,
                    total_chunks=len(chunks),
                    delay_before=plan.delay_before + revision.pause_ms,
                    typing_duration=energy_adjusted_typing(plan.typing_duration, energy),
                    read_delay=read_delay,
                    revision=revision,
                )
            )
        return messages

    def _strategic_non_response(self, payload: LLMCallerOutput, complexity: float) -> StrategicNonResponse:
        relationship = payload.context.relationship
        relational = self._strategic_delay(
            relationship.stage,
            complexity,
            relationship.unresolved_tension,
            payload.context.time.period,
        )

        temporal = payload.context.temporal
        if temporal is not None and not temporal.availability.available:
            availability = temporal.availability
            return StrategicNonResponse(
                should_delay=True,
                delay_ms=max(relational.delay_ms, availability.suggested_delay_ms),
                reason=f"{relational.reason}; temporal={availability.mode}:{availability.reason or 'unavailable'}",
            )
        if self.config.relational_delay and relational.should_delay:
            return relational
        return StrategicNonResponse(should_delay=False, delay_ms=0, reason=f"{relational.reason}; available")

    async def run(self, payload: LLMCallerOutput) -> HumanizerOutput:
        complexity = _clamp(payload.emotional.discharge_risk, 0.0, 1.0)
        messages = self._messages(payload, complexity)
        strategic = self._strategic_non_response(payload, complexity)
        logger.debug(
            f"Humanized {len(payload.llm.text)} chars into {len(messages)} messages "
            f"(delay={strategic.should_delay}, {strategic.delay_ms}ms)"
        )
        return HumanizerOutput.extend(
            payload,
            humanized=HumanizedPlan(messages=messages, strategic_non_response=strategic),
        )


__all__ = ["Humanizer", "energy_adjusted_typing"]

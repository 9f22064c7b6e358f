from typing import Optional

import pytest

from persona_core.runtime.pipeline.types import (
    Availability,
    ChatMessage,
    EmotionalLayerState,
    EmotionalState,
    GatheredContext,
    LLMCallerOutput,
    LLMCallResult,
    PipelineInput,
    PipelinePersona,
    PromptPayload,
    RelationshipSnapshot,
    ResolvedIdentity,
    TemporalSnapshot,
    TimeContext,
)

USER_TS_MS = 1_780_228_800_000  # 2026-05-31T12:00:00Z


def build_input(user_text: str = "I need to remember the launch deadline is Friday.") -> PipelineInput:
    return PipelineInput(
        thread_id="thread-1",
        user_id="user-1",
        persona_id="persona-1",
        user_message=ChatMessage(id="msg-1", role="user", text=user_text, timestamp=USER_TS_MS),
        timestamp=USER_TS_MS,
    )


def build_context(
    *,
    available: bool = True,
    suggested_delay_ms: int = 0,
    energy: Optional[float] = 0.55,
    message_count: int = 5,
    unresolved_tension: bool = False,
    period: str = "afternoon",
    history=None,
) -> GatheredContext:
    temporal = None
    if energy is not None:
        temporal = TemporalSnapshot(
            energy_level=energy,
            availability=Availability(
                available=available,
                mode="available" if available else "busy",
                reason="" if available else "in a meeting",
                suggested_delay_ms=suggested_delay_ms,
            ),
        )
    return GatheredContext(
        history=list(history or []),
        time=TimeContext(hour=14, period=period),
        relationship=RelationshipSnapshot(
            stage="acquaintance",
            trust_score=0.4,
            days_together=10,
            message_count=message_count,
            unresolved_tension=unresolved_tension,
        ),
        persona=PipelinePersona(id="persona-1", name="Mira"),
        temporal=temporal,
    )


def build_llm_output(
    llm_text: str = (
        "That makes sense. The launch deadline is important, so let us protect Friday. "
        "I will keep the checklist short and we can review it together tomorrow morning."
    ),
    *,
    user_text: str = "I need to remember the launch deadline is Friday.",
    discharge_risk: float = 0.3,
    felt_intensity: float = 0.4,
    variant: str = "baseline_self",
    **context_kwargs,
) -> LLMCallerOutput:
    return LLMCallerOutput(
        **dict(build_input(user_text)),
        context=build_context(**context_kwargs),
        identity=ResolvedIdentity(variant=variant, energy=0.6),
        emotional=EmotionalState(
            felt=EmotionalLayerState(label="calm", intensity=felt_intensity),
            discharge_risk=discharge_risk,
        ),
        prompt=PromptPayload(system_instruction="You are Mira."),
        llm=LLMCallResult(text=llm_text, provider_id="fake", model="fake-1"),
    )


@pytest.fixture
def llm_output_factory():
    return build_llm_output


@pytest.fixture
def pipeline_input():
    return build_input()


@pytest.fixture
def context_factory():
    return build_context

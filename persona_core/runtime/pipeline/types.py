"""
Pipeline Payloads - Accumulator models passed between turn stages

WHAT: Pydantic payloads for the seven-stage turn pipeline and stage protocol
WHERE: persona_core/runtime/pipeline/types.py - pipeline data layer
WHO: Orchestrator verifying stage contracts; humanizer and learner reading upstream fields
TIME: Model validation <1ms per stage

Each stage output subclasses its input payload and adds exactly one field:

    PipelineInput
      -> ContextGathererOutput    (+context)
      -> IdentityResolverOutput   (+identity)
      -> EmotionalProcessorOutput (+emotional)
      -> PromptBuilderOutput      (+prompt)
      -> LLMCallerOutput          (+llm)
      -> HumanizerOutput          (+humanized)
      -> LearnerOutput            (+learner)

Boundary Notes:
- ``extend`` copies prior fields by reference; nested models are not revalidated
- Undeclared fields (e.g. from a stage returning a richer subclass) are kept
- Stages must return the next payload type or a subclass of it (checked by the orchestrator)
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from ..memory.models import MemoryNode
from ..persona.graph import PersonaAspect

RelationshipStage = Literal["stranger", "acquaintance", "friend", "close", "intimate"]
DayPeriod = Literal["morning", "afternoon", "evening", "late_night"]
AttachmentStyle = Literal["secure", "anxious", "avoidant", "disorganized"]
IdentityVariant = Literal[
    "morning_self",
    "afternoon_self",
    "evening_self",
    "tired_self",
    "stressed_self",
    "baseline_self",
]
EmotionalLabel = Literal["joy", "calm", "neutral", "affection", "anxiety", "frustration", "sadness"]


class StagePayload(BaseModel):
    """Base for accumulator payloads."""

    # Fields added by a stage subclass travel on to later stages as extras.
    model_config = ConfigDict(extra="allow")

    @classmethod
    def extend(cls, previous: BaseModel, **fields: Any):
        """Build this payload from its predecessor plus the new field(s)."""
        return cls.model_validate({**dict(previous), **fields})


class ChatMessage(BaseModel):
    id: str
    role: Literal["user", "model", "system"] = "user"
    text: str
    timestamp: int = Field(ge=0, description="Unix epoch milliseconds")


class TimeContext(BaseModel):
    hour: int = Field(ge=0, le=23)
    period: DayPeriod
    day_type: Literal["weekday", "weekend"] = "weekday"
    is_weekend: bool = False


class Availability(BaseModel):
    available: bool = True
    mode: Literal["available", "busy", "away", "sleeping"] = "available"
    reason: str = ""
    suggested_delay_ms: int = Field(default=0, ge=0)


class TemporalSnapshot(BaseModel):
    energy_level: float = Field(ge=0.0, le=1.0)
    availability: Availability = Field(default_factory=Availability)


class MemoryHit(BaseModel):
    id: str
    content: str
    type: str = "semantic"
    score: float = 0.0
    emotional_valence: float = 0.0
    timestamp_iso: Optional[str] = None


class RelationshipSnapshot(BaseModel):
    stage: RelationshipStage = "stranger"
    trust_score: float = Field(default=0.3, ge=0.0, le=1.0)
    days_together: int = Field(default=1, ge=0)
    message_count: int = Field(default=0, ge=0)
    unresolved_tension: bool = False


class PipelinePersona(BaseModel):
    id: str
    name: str
    system_instruction: str = ""
    aspects: List[PersonaAspect] = Field(default_factory=list)
    attachment_style: AttachmentStyle = "secure"


class GatheredContext(BaseModel):
    history: List[ChatMessage] = Field(default_factory=list)
    memories: List[MemoryHit] = Field(default_factory=list)
    time: TimeContext
    relationship: RelationshipSnapshot = Field(default_factory=RelationshipSnapshot)
    persona: PipelinePersona
    temporal: Optional[TemporalSnapshot] = None


class ResolvedIdentity(BaseModel):
    variant: IdentityVariant = "baseline_self"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    energy: float = Field(default=0.55, ge=0.0, le=1.0)
    reasons: List[str] = Field(default_factory=list)


class EmotionalLayerState(BaseModel):
    label: EmotionalLabel = "neutral"
    intensity: float = Field(default=0.0, ge=-1.0, le=1.0)
    rationale: str = ""


class EmotionalState(BaseModel):
    surface: EmotionalLayerState = Field(default_factory=EmotionalLayerState)
    felt: EmotionalLayerState = Field(default_factory=EmotionalLayerState)
    suppressed: EmotionalLayerState = Field(default_factory=EmotionalLayerState)
    unconscious: EmotionalLayerState = Field(default_factory=EmotionalLayerState)
    emotional_debt: float = 0.0
    discharge_risk: float = 0.0


class PromptPayload(BaseModel):
    system_instruction: str
    estimated_tokens: int = Field(default=0, ge=0)
    selected_aspect_ids: List[str] = Field(default_factory=list)


class LLMCallResult(BaseModel):
    text: str
    provider_id: str = "unknown"
    model: str = "unknown"
    timed_out: bool = False


class RevisionEvent(BaseModel):
    should_revise: bool
    pause_ms: int = Field(ge=0)
    reason: str


class HumanizedMessage(BaseModel):
    text: str
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=2, le=4)
    delay_before: int = Field(gt=0)
    typing_duration: int = Field(gt=0)
    read_delay: int = Field(ge=0)
    revision: RevisionEvent


class StrategicNonResponse(BaseModel):
    should_delay: bool
    delay_ms: int = Field(ge=0)
    reason: str


class HumanizedPlan(BaseModel):
    messages: List[HumanizedMessage] = Field(min_length=2, max_length=4)
    strategic_non_response: StrategicNonResponse


class RelationshipUpdate(BaseModel):
    stage: RelationshipStage
    trust_delta: float
    rationale: str


class PersonaGrowthEvent(BaseModel):
    id: str
    kind: Literal["style_shift", "boundary_adjustment", "interest_update"]
    description: str
    queued_at_iso: str


class ReflectionSummary(BaseModel):
    session_id: str
    generated_at_iso: str
    observation_count: int = Field(ge=0)
    observations: List[str] = Field(default_factory=list)
    pattern_count: int = Field(ge=0)
    evolution: Dict[str, List[str]] = Field(default_factory=dict)


class SideEffectError(BaseModel):
    """A collaborator failure captured by the learner instead of raised."""

    collaborator: Literal["persist_memory", "emit_growth_events"]
    target_id: Optional[str] = None
    error: str


class LearnerResult(BaseModel):
    extracted_memories: List[MemoryNode]
    relationship_update: RelationshipUpdate
    growth_events: List[PersonaGrowthEvent] = Field(default_factory=list)
    reflection: Optional[ReflectionSummary] = None
    side_effect_errors: List[SideEffectError] = Field(default_factory=list)


class PipelineInput(StagePayload):
    thread_id: str
    user_id: str
    persona_id: str
    user_message: ChatMessage
    timestamp: int = Field(ge=0, description="Unix epoch milliseconds")


class ContextGathererOutput(PipelineInput):
    context: GatheredContext


class IdentityResolverOutput(ContextGathererOutput):
    identity: ResolvedIdentity


class EmotionalProcessorOutput(IdentityResolverOutput):
    emotional: EmotionalState


class PromptBuilderOutput(EmotionalProcessorOutput):
    prompt: PromptPayload


class LLMCallerOutput(PromptBuilderOutput):
    llm: LLMCallResult


class HumanizerOutput(LLMCallerOutput):
    humanized: HumanizedPlan


class LearnerOutput(HumanizerOutput):
    learner: LearnerResult


@runtime_checkable
class PipelineStage(Protocol):
    """A named async stage returning the next accumulator payload."""

    name: str

    async def run(self, payload: Any) -> Any: ...


__all__ = [
    "RelationshipStage",
    "DayPeriod",
    "AttachmentStyle",
    "ChatMessage",
    "TimeContext",
    "Availability",
    "TemporalSnapshot",
    "MemoryHit",
    "RelationshipSnapshot",
    "PipelinePersona",
    "GatheredContext",
    "ResolvedIdentity",
    "EmotionalLayerState",
    "EmotionalState",
    "PromptPayload",
    "LLMCallResult",
    "RevisionEvent",
    "HumanizedMessage",
    "StrategicNonResponse",
    "HumanizedPlan",
    "RelationshipUpdate",
    "PersonaGrowthEvent",
    "ReflectionSummary",
    "SideEffectError",
    "LearnerResult",
    "PipelineInput",
    "ContextGathererOutput",
    "IdentityResolverOutput",
    "EmotionalProcessorOutput",
    "PromptBuilderOutput",
    "LLMCallerOutput",
    "HumanizerOutput",
    "LearnerOutput",
    "PipelineStage",
    "StagePayload",
]

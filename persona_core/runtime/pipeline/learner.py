"""
Learner Stage - Post-turn memory extraction and reflection

WHAT: Extracts memory nodes from the exchange, updates relationship state, queues growth events
WHERE: persona_core/runtime/pipeline/learner.py - pipeline stage 7
WHO: PipelineOrchestrator after the humanizer
TIME: Dominated by injected embed_text / persist_memory calls

Extraction:
- user sentences (>= 20 chars) become episodic memories
- model sentences become semantic memories
- top ``max_memories`` by salience; the whole user message is the fallback

Boundary Notes:
- Collaborator failures never raise; they are logged and returned in
  ``learner.side_effect_errors``
- Ids come from an injected id_factory for reproducible output
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence

from ...config import EmbeddingConfig, LearnerConfig
from ..memory.embedding import DEFAULT_EMBEDDING_DIMENSIONS, DeterministicEmbedder, EmbedText
from ..memory.manager import NowIso
from ..memory.models import MemoryNode, iso_to_unix_ms, to_iso_timestamp, utc_now_iso
from ..memory.provenance import ProvenanceSource, create_provenance_links
from .reflection import run_reflection_session, should_run_reflection
from .relationship import RelationshipState, RelationshipTrigger, count_signals, detect_repair_actions, transition
from .types import (
    ChatMessage,
    HumanizerOutput,
    LearnerOutput,
    LearnerResult,
    PersonaGrowthEvent,
    ReflectionSummary,
    RelationshipUpdate,
    SideEffectError,
)

logger = logging.getLogger(__name__)

PersistMemory = Callable[[MemoryNode], Awaitable[None]]
EmitGrowthEvents = Callable[[List[PersonaGrowthEvent]], Awaitable[None]]
IdFactory = Callable[[str, str, int], str]

MIN_SENTENCE_CHARS = 20
MAX_SENTENCES_PER_SIDE = 4
SALIENCE_KEYWORDS = ("need", "goal", "important", "remember", "always", "never", "launch", "deadline")
POSITIVE_TERMS = ("thanks", "appreciate", "love", "trust", "great")
NEGATIVE_TERMS = ("angry", "upset", "frustrated", "hurt", "disappointed")

_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_WS_RE = re.compile(r"\s+")
_SLUG_RE = re.compile(r"[^a-z0-9]")


def default_id_factory(prefix: str, text: str, index: int) -> str:
    slug = _SLUG_RE.sub("", text[:24].lower()) or "memory"
    digest = hashlib.blake2b(text.encode("utf-8"), digest_size=6).hexdigest()
    return f"{prefix}-{slug}-{digest}-{index}"


async def _noop_persist(memory: MemoryNode) -> None:
    return None


async def _noop_emit(events: List[PersonaGrowthEvent]) -> None:
    return None


@dataclass(slots=True)
class MemoryCandidate:
    id: str
    content: str
    type: str
    salience: float
    source: str


def salience_score(text: str) -> float:
    lowered = text.lower()
    hits = sum(1 for keyword in SALIENCE_KEYWORDS if keyword in lowered)
    return max(0.0, min(1.0, 0.3 + hits * 0.12 + min(0.4, len(text) / 400)))


def split_sentences(text: str) -> List[str]:
    normalized = _WS_RE.sub(" ", text or "").strip()
    if not normalized:
        return []
    sentences = [s.strip() for s in _SENTENCE_RE.split(normalized)]
    return [s for s in sentences if len(s) >= MIN_SENTENCE_CHARS][:MAX_SENTENCES_PER_SIDE]


def extract_memory_candidates(
    user_text: str, model_text: str, id_factory: IdFactory, max_memories: int = 3
) -> List[MemoryCandidate]:
    candidates = [
        MemoryCandidate(id_factory("usr", sentence, index), sentence, "episodic", salience_score(sentence), "user")
        for index, sentence in enumerate(split_sentences(user_text))
    ]
    candidates.extend(
        MemoryCandidate(id_factory("asst", sentence, index), sentence, "semantic", salience_score(sentence), "assistant")
        for index, sentence in enumerate(split_sentences(model_text))
    )
    if not candidates and user_text.strip():
        candidates.append(MemoryCandidate(id_factory("usr", user_text, 0), user_text.strip(), "episodic", 0.4, "user"))

    # stable: equal salience keeps user-before-model order
    candidates.sort(key=lambda c: c.salience, reverse=True)
    return candidates[: max(1, max_memories)]


def compute_relationship_update(payload: HumanizerOutput) -> RelationshipUpdate:
    snapshot = payload.context.relationship
    previous = RelationshipState(
        stage=snapshot.stage,
        trust_score=snapshot.trust_score,
        message_count=snapshot.message_count,
        days_together=snapshot.days_together,
        unresolved_conflict=snapshot.unresolved_tension,
        attachment_style=payload.context.persona.attachment_style,
    )
    merged_text = f"{payload.user_message.text} {payload.llm.text}"
    repair_actions = detect_repair_actions(payload.user_message.text)
    trigger = RelationshipTrigger(
        positive_signals=count_signals(merged_text, POSITIVE_TERMS),
        negative_signals=count_signals(merged_text, NEGATIVE_TERMS),
        conflict_triggered=snapshot.unresolved_tension and not repair_actions,
        silence_hours=10.0 if payload.context.time.period == "late_night" else 2.0,
        repair_actions=repair_actions,
        days_elapsed=1,
    )
    nxt = transition(previous, trigger)
    return RelationshipUpdate(
        stage=nxt.stage,
        trust_delta=round(nxt.trust_score - previous.trust_score, 4),
        rationale=f"state_machine from {previous.stage} to {nxt.stage}; repair_actions={len(repair_actions)}",
    )


def build_growth_events(payload: HumanizerOutput, now_iso: str) -> List[PersonaGrowthEvent]:
    stamp = iso_to_unix_ms(now_iso)
    events: List[PersonaGrowthEvent] = []
    if payload.emotional.discharge_risk >= 0.65:
        events.append(
            PersonaGrowthEvent(
                id=f"growth-boundary-{stamp}",
                kind="boundary_adjustment",
                description="High emotional load suggests boundary recalibration for future turns.",
                queued_at_iso=now_iso,
            )
        )
    if payload.identity.variant == "stressed_self":
        events.append(
            PersonaGrowthEvent(
                id=f"growth-style-{stamp}",
                kind="style_shift",
                description="Stress-state communication style reinforced as contextual adaptation.",
                queued_at_iso=now_iso,
            )
        )
    if payload.user_message.text.strip():
        events.append(
            PersonaGrowthEvent(
                id=f"growth-interest-{stamp}",
                kind="interest_update",
                description="User message topic stored for preference and topic graph updates.",
                queued_at_iso=now_iso,
            )
        )
    return events


class Learner:
    """
    Pipeline stage turning a finished turn into memories and growth signals.

    Args:
        config: Reflection cadence and extraction limits
        embed_text: Async text→vector provider
        now_iso: Clock
        persist_memory: Async sink for each new MemoryNode
        emit_growth_events: Async sink for growth events
        id_factory: (prefix, text, index) -> memory id
        embedding: Dimensions of the default embedder when embed_text is not given
    """

    name = "learner"

    def __init__(
        self,
        config: Optional[LearnerConfig] = None,
        *,
        embed_text: Optional[EmbedText] = None,
        now_iso: Optional[NowIso] = None,
        persist_memory: Optional[PersistMemory] = None,
        emit_growth_events: Optional[EmitGrowthEvents] = None,
        id_factory: Optional[IdFactory] = None,
        embedding: Optional[EmbeddingConfig] = None,
    ) -> None:
        self.config = config or LearnerConfig()
        dimensions = embedding.dimensions if embedding is not None else DEFAULT_EMBEDDING_DIMENSIONS
        self.embed_text = embed_text or DeterministicEmbedder(dimensions)
        self.now_iso = now_iso or utc_now_iso
        self.persist_memory = persist_memory or _noop_persist
        self.emit_growth_events = emit_growth_events or _noop_emit
        self.id_factory = id_factory or default_id_factory

    def _provenance_sources(self, payload: HumanizerOutput, candidate: MemoryCandidate, now_iso: str):
        sources = [
            ProvenanceSource(
                message_id=payload.user_message.id,
                thread_id=payload.thread_id,
                role="user",
                text=payload.user_message.text,
                timestamp=payload.user_message.timestamp,
            )
        ]
        if candidate.source == "assistant":
            sources.append(
                ProvenanceSource(
                    message_id=f"assistant-turn-{payload.thread_id}-{iso_to_unix_ms(now_iso)}",
                    thread_id=payload.thread_id,
                    role="model",
                    text=payload.llm.text,
                    timestamp=now_iso,
                )
            )
        return sources

    async def _build_memories(self, payload: HumanizerOutput, now_iso: str) -> List[MemoryNode]:
        candidates = extract_memory_candidates(
            payload.user_message.text, payload.llm.text, self.id_factory, self.config.max_memories
        )
        embeddings = await asyncio.gather(*(self.embed_text(c.content) for c in candidates))
        valence = max(-1.0, min(1.0, payload.emotional.felt.intensity))

        memories: List[MemoryNode] = []
        for candidate, embedding in zip(candidates, embeddings):
            provenance = create_provenance_links(candidate.id, self._provenance_sources(payload, candidate, now_iso))
            memories.append(
                MemoryNode(
                    id=candidate.id,
                    user_id=payload.user_id,
                    type=candidate.type,
                    content=candidate.content,
                    embedding=list(embedding),
                    timestamp_iso=now_iso,
                    emotional_valence=valence,
                    access_count=1,
                    decay_factor=0.5,
                    metadata={
                        "source": candidate.source,
                        "thread_id": payload.thread_id,
                        "salience": candidate.salience,
                        "source_message_ids": [link.message_id for link in provenance],
                    },
                    provenance=provenance,
                )
            )
        return memories

    def _reflect(self, payload: HumanizerOutput, now_iso: str) -> Optional[ReflectionSummary]:
        total = payload.context.relationship.message_count + 1
        if not self.config.reflection_enabled or not should_run_reflection(
            total, self.config.reflection_every_n_messages, self.config.reflection_min_messages
        ):
            return None

        model_turn = ChatMessage(
            id=f"reflection-model-{iso_to_unix_ms(now_iso)}",
            role="model",
            text=payload.llm.text,
            timestamp=iso_to_unix_ms(now_iso),
        )
        session = run_reflection_session(
            payload.thread_id,
            payload.persona_id,
            [*payload.context.history, payload.user_message, model_turn],
            now_iso,
            self.config.reflection_max_window,
        )
        return ReflectionSummary(
            session_id=session.id,
            generated_at_iso=session.created_at_iso,
            observation_count=len(session.observations),
            observations=[item.summary for item in session.observations],
            pattern_count=len(session.patterns),
            evolution=session.evolution.model_dump(),
        )

    async def _run_side_effects(
        self, memories: Sequence[MemoryNode], events: List[PersonaGrowthEvent]
    ) -> List[SideEffectError]:
        calls = [("persist_memory", memory.id, self.persist_memory(memory)) for memory in memories]
        if events:
            calls.append(("emit_growth_events", None, self.emit_growth_events(list(events))))

        results = await asyncio.gather(*(call for _, _, call in calls), return_exceptions=True)
        errors: List[SideEffectError] = []
        for (collaborator, target_id, _), result in zip(calls, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"Learner collaborator {collaborator} failed for {target_id or 'batch'}: {result}")
                errors.append(
                    SideEffectError(
                        collaborator=collaborator,
                        target_id=target_id,
                        error=f"{type(result).__name__}: {result}",
                    )
                )
        return errors

    async def run(self, payload: HumanizerOutput) -> LearnerOutput:
        now_iso = to_iso_timestamp(self.now_iso())
        memories = await self._build_memories(payload, now_iso)
        relationship_update = compute_relationship_update(payload)
        growth_events = build_growth_events(payload, now_iso)

        reflection = self._reflect(payload, now_iso)
        if reflection is not None:
            stamp = iso_to_unix_ms(now_iso)
            growth_events.extend(
                PersonaGrowthEvent(
                    id=f"growth-reflection-{stamp}-{index}",
                    kind="interest_update",
                    description=f"Reflection promoted vocabulary/interest token: {word}",
                    queued_at_iso=now_iso,
                )
                for index, word in enumerate(reflection.evolution.get("vocabulary_adds", []))
            )
            growth_events = growth_events[: self.config.max_growth_events]

        side_effect_errors = await self._run_side_effects(memories, growth_events)

        return LearnerOutput.extend(
            payload,
            learner=LearnerResult(
                extracted_memories=memories,
                relationship_update=relationship_update,
                growth_events=growth_events,
                reflection=reflection,
                side_effect_errors=side_effect_errors,
            ),
        )


__all__ = [
    "EmitGrowthEvents",
    "IdFactory",
    "Learner",
    "MemoryCandidate",
    "PersistMemory",
    "build_growth_events",
    "compute_relationship_update",
    "default_id_factory",
    "extract_memory_candidates",
    "salience_score",
    "split_sentences",
]

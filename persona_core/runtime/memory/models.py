"""
Memory Models - Type-safe data structures for associative memory

WHAT: Pydantic models for memory nodes, provenance, retrieval and consolidation results
WHERE: persona_core/runtime/memory/models.py - data layer
WHO: Learner creating nodes; retrieval/consolidation engines reading them
TIME: Model validation <1ms

All timestamps are normalized to ISO-8601 UTC with millisecond precision
(``2026-05-31T12:00:00.000Z``). Embeddings are plain lists of doubles whose
length is fixed per deployment; an empty or all-zero embedding is legal but
"unusable" for semantic scoring.

Boundary Notes:
- Models enforce value ranges; malformed numeric fields fail validation
- Record conversion accepts snake_case and camelCase store payloads
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ...exceptions import MemoryValidationError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# Numeric epochs below this are seconds, at or above it milliseconds.
EPOCH_SECONDS_CUTOFF = 10_000_000_000

MemoryType = Literal["semantic", "episodic", "emotional"]

_DIGITS_RE = re.compile(r"^-?\d+$")


def _epoch_to_datetime(value: float) -> datetime:
    if not math.isfinite(value):
        raise MemoryValidationError(f"Non-finite epoch timestamp: {value!r}")
    millis = round(value * 1000) if abs(value) < EPOCH_SECONDS_CUTOFF else round(value)
    return EPOCH + timedelta(milliseconds=millis)


def format_iso(dt: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with millisecond precision and a Z suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return format_iso(datetime.now(timezone.utc))


def parse_iso(value: str) -> datetime:
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError as exc:
        raise MemoryValidationError(f"Unparseable timestamp: {value!r}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_iso_timestamp(value: Any, fallback_iso: Optional[str] = None) -> str:
    """
    Normalize a timestamp-like value to ISO-8601 with millisecond precision.

    Accepts ISO strings, Unix seconds or milliseconds (numbers or digit
    strings; values below 10,000,000,000 are seconds) and ``datetime``.
    Empty values return ``fallback_iso`` when given, otherwise raise.
    """
    if isinstance(value, datetime):
        return format_iso(value)
    if isinstance(value, bool):
        raise MemoryValidationError(f"Boolean is not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return format_iso(_epoch_to_datetime(float(value)))
    if isinstance(value, str) and value.strip():
        trimmed = value.strip()
        if _DIGITS_RE.match(trimmed):
            return format_iso(_epoch_to_datetime(float(int(trimmed))))
        return format_iso(parse_iso(trimmed))
    if fallback_iso is not None:
        return fallback_iso
    raise MemoryValidationError(f"Missing or invalid timestamp: {value!r}")


def iso_to_unix_ms(iso: str) -> int:
    """Convert an ISO-8601 timestamp to integer Unix milliseconds."""
    return (parse_iso(iso) - EPOCH) // timedelta(milliseconds=1)


class ProvenanceLink(BaseModel):
    """Traceability link from a memory to the conversation message it came from."""

    memory_id: str
    message_id: str
    thread_id: str
    role: str = "unknown"
    excerpt: str = ""
    created_at_iso: str

    @field_validator("created_at_iso", mode="before")
    @classmethod
    def _normalize_created_at(cls, value: Any) -> str:
        return to_iso_timestamp(value)

    def dedupe_key(self) -> str:
        return f"{self.message_id}:{self.thread_id}:{self.created_at_iso}"


class MemoryNode(BaseModel):
    """
    A single durable memory in the associative store.

    Examples:
    - type="episodic", content="I finally booked the flight to Lisbon for June."
    - type="semantic", content="Weekly reviews happen every Friday afternoon."
    """

    id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    type: MemoryType = "semantic"
    content: str
    embedding: List[float] = Field(default_factory=list)
    timestamp_iso: str
    emotional_valence: float = Field(default=0.0, ge=-1.0, le=1.0, allow_inf_nan=False)
    access_count: int = Field(default=1, ge=0)
    decay_factor: float = Field(default=0.5, ge=0.0, le=1.0, allow_inf_nan=False)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    provenance: List[ProvenanceLink] = Field(default_factory=list)

    @field_validator("timestamp_iso", mode="before")
    @classmethod
    def _normalize_timestamp(cls, value: Any) -> str:
        return to_iso_timestamp(value)

    def to_record(self) -> Dict[str, Any]:
        """Convert to the snake_case record handed to persistence collaborators."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "content": self.content,
            "embedding": list(self.embedding),
            "timestamp": self.timestamp_iso,
            "emotional_valence": self.emotional_valence,
            "access_count": self.access_count,
            "decay_factor": self.decay_factor,
            "metadata": dict(self.metadata),
            "provenance": [link.model_dump() for link in self.provenance],
        }

    @classmethod
    def from_record(
        cls,
        record: Mapping[str, Any],
        *,
        fallback_user_id: str = "unknown-user",
        now_iso: Optional[str] = None,
    ) -> MemoryNode:
        """
        Create a node from a store record.

        Accepts snake_case or camelCase keys and ``timestamp`` / ``created_at``
        as ISO strings, epochs or datetimes. Missing valence defaults to 0,
        missing decay to 0.5, and access count is floored at 1.
        """
        metadata = dict(record.get("metadata") or {})
        raw_ts = record.get("timestamp_iso") or record.get("timestamp") or record.get("created_at")
        timestamp_iso = to_iso_timestamp(raw_ts, fallback_iso=now_iso)

        access = record.get("access_count", record.get("accessCount", metadata.get("accessCount")))
        if not isinstance(access, (int, float)) or isinstance(access, bool) or not math.isfinite(access):
            access = 1

        memory_id = str(record.get("id") or "")
        provenance = record.get("provenance", metadata.get("provenance")) or []
        return cls(
            id=memory_id,
            user_id=str(record.get("user_id") or record.get("userId") or fallback_user_id),
            type=record.get("type") or "semantic",
            content=str(record.get("content") or ""),
            embedding=list(record.get("embedding") or []),
            timestamp_iso=timestamp_iso,
            emotional_valence=record.get("emotional_valence", record.get("emotionalValence", 0.0)),
            access_count=max(1, int(access)),
            decay_factor=record.get("decay_factor", record.get("decayFactor", 0.5)),
            metadata=metadata,
            provenance=[
                link if isinstance(link, ProvenanceLink) else ProvenanceLink(**{"memory_id": memory_id, **link})
                for link in provenance
                if isinstance(link, (ProvenanceLink, Mapping))
            ],
        )


class RetrievalWeights(BaseModel):
    """Per-signal weights for retrieval scoring; must be non-negative and sum to 1."""

    model_config = ConfigDict(frozen=True)

    semantic: float = Field(default=0.4, ge=0.0, le=1.0, allow_inf_nan=False)
    recency: float = Field(default=0.3, ge=0.0, le=1.0, allow_inf_nan=False)
    emotional: float = Field(default=0.2, ge=0.0, le=1.0, allow_inf_nan=False)
    frequency: float = Field(default=0.1, ge=0.0, le=1.0, allow_inf_nan=False)

    @model_validator(mode="after")
    def _check_sum(self) -> RetrievalWeights:
        total = self.semantic + self.recency + self.emotional + self.frequency
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"retrieval weights must sum to 1.0, got {total:.6f}")
        return self

    def formula(self) -> str:
        return (
            f"semantic({self.semantic:g})+recency({self.recency:g})"
            f"+emotional({self.emotional:g})+frequency({self.frequency:g})"
        )


class SignalBreakdown(BaseModel):
    semantic: float = Field(ge=0.0, le=1.0)
    recency: float = Field(ge=0.0, le=1.0)
    emotional: float = Field(ge=0.0, le=1.0)
    frequency: float = Field(ge=0.0, le=1.0)


class ScoredMemory(BaseModel):
    memory: MemoryNode
    score: float = Field(ge=0.0, le=1.0)
    breakdown: SignalBreakdown


class RetrievalResult(BaseModel):
    """Ranked, budget-limited retrieval selection with the weights that produced it."""

    selected: List[ScoredMemory]
    weights: RetrievalWeights
    formula: str
    discarded_without_embedding: int = Field(ge=0)


class MergePlan(BaseModel):
    primary_id: str
    merged_ids: List[str]
    similarity: float


class ConsolidationAction(BaseModel):
    kind: Literal["merge", "strengthen_emotional", "decay"]
    memory_ids: List[str]
    reason: str


class ConsolidationSummary(BaseModel):
    total_input: int
    total_output: int
    merged_count: int


class ConsolidationReport(BaseModel):
    """Plan (and, outside dry-run, the committed state) of one consolidation pass."""

    dry_run: bool
    merge_plans: List[MergePlan] = Field(default_factory=list)
    strengthened_ids: List[str] = Field(default_factory=list)
    decayed_ids: List[str] = Field(default_factory=list)
    actions: List[ConsolidationAction] = Field(default_factory=list)
    resulting_memories: List[MemoryNode] = Field(default_factory=list)
    summary: ConsolidationSummary


__all__ = [
    "MemoryType",
    "MemoryNode",
    "ProvenanceLink",
    "RetrievalWeights",
    "SignalBreakdown",
    "ScoredMemory",
    "RetrievalResult",
    "MergePlan",
    "ConsolidationAction",
    "ConsolidationSummary",
    "ConsolidationReport",
    "format_iso",
    "parse_iso",
    "utc_now_iso",
    "to_iso_timestamp",
    "iso_to_unix_ms",
]

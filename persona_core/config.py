"""
Runtime Configuration - Tunables for memory, humanizer, learner, pipeline

WHAT: Dataclass configs with defaults and PERSONA_CORE_* environment overrides
WHERE: persona_core/config.py - read once by callers wiring the runtime
WHO: Applications constructing MemoryManager, Humanizer, Learner, orchestrator
TIME: Config resolution <1ms

Every engine accepts explicit arguments; these configs only bundle the
defaults so deployments can override them from the environment.

Boundary Notes:
- Embedding dimensions must be fixed per deployment
- Retrieval weights are validated (non-negative, sum to 1)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .runtime.memory.models import RetrievalWeights

ENV_PREFIX = "PERSONA_CORE_"


def _env_str(name: str) -> str | None:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    return int(raw) if raw is not None else default


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    return float(raw) if raw is not None else default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env_str(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class EmbeddingConfig:
    dimensions: int = 256

    @classmethod
    def from_env(cls) -> "EmbeddingConfig":
        return cls(dimensions=_env_int("EMBED_DIMENSIONS", 256))


@dataclass(slots=True)
class RetrievalConfig:
    limit: int = 10
    weights: RetrievalWeights = field(default_factory=RetrievalWeights)

    @classmethod
    def from_env(cls) -> "RetrievalConfig":
        defaults = RetrievalWeights()
        weights = RetrievalWeights(
            semantic=_env_float("WEIGHT_SEMANTIC", defaults.semantic),
            recency=_env_float("WEIGHT_RECENCY", defaults.recency),
            emotional=_env_float("WEIGHT_EMOTIONAL", defaults.emotional),
            frequency=_env_float("WEIGHT_FREQUENCY", defaults.frequency),
        )
        return cls(limit=_env_int("RETRIEVAL_LIMIT", 10), weights=weights)


@dataclass(slots=True)
class ConsolidationConfig:
    merge_similarity_threshold: float = 0.9
    decay_after_days: float = 30.0
    emotional_strengthen_threshold: float = 0.75

    @classmethod
    def from_env(cls) -> "ConsolidationConfig":
        return cls(
            merge_similarity_threshold=_env_float("MERGE_SIMILARITY_THRESHOLD", 0.9),
            decay_after_days=_env_float("DECAY_AFTER_DAYS", 30.0),
            emotional_strengthen_threshold=_env_float("EMOTIONAL_STRENGTHEN_THRESHOLD", 0.75),
        )


@dataclass(slots=True)
class HumanizerConfig:
    min_chunks: int = 2
    max_chunks: int = 4
    target_words_per_chunk: int = 24
    # Let the relationship/tension model request a delay even while available.
    relational_delay: bool = False
    imperfections: bool = False
    imperfection_profile: str = "casual"
    # Second message sent after a single-token completion.
    short_reply_followup: str = "🙂"

    def __post_init__(self) -> None:
        if not 2 <= self.min_chunks <= self.max_chunks <= 4:
            raise ValueError(
                f"chunk bounds must satisfy 2 <= min <= max <= 4, got {self.min_chunks}..{self.max_chunks}"
            )
        if self.target_words_per_chunk < 1:
            raise ValueError("target_words_per_chunk must be positive")
        if not self.short_reply_followup.strip():
            raise ValueError("short_reply_followup must not be blank")

    @classmethod
    def from_env(cls) -> "HumanizerConfig":
        return cls(
            min_chunks=_env_int("HUMANIZER_MIN_CHUNKS", 2),
            max_chunks=_env_int("HUMANIZER_MAX_CHUNKS", 4),
            target_words_per_chunk=_env_int("HUMANIZER_TARGET_WORDS", 24),
            relational_delay=_env_bool("HUMANIZER_RELATIONAL_DELAY", False),
            imperfections=_env_bool("HUMANIZER_IMPERFECTIONS", False),
            imperfection_profile=_env_str("HUMANIZER_IMPERFECTION_PROFILE") or "casual",
            short_reply_followup=_env_str("HUMANIZER_SHORT_REPLY_FOLLOWUP") or "🙂",
        )


@dataclass(slots=True)
class LearnerConfig:
    reflection_enabled: bool = True
    reflection_every_n_messages: int = 12
    reflection_min_messages: int = 20
    reflection_max_window: int = 40
    max_memories: int = 3
    max_growth_events: int = 8

    def __post_init__(self) -> None:
        if self.reflection_every_n_messages < 1:
            raise ValueError("reflection_every_n_messages must be >= 1")

    @classmethod
    def from_env(cls) -> "LearnerConfig":
        return cls(
            reflection_enabled=_env_bool("REFLECTION_ENABLED", True),
            reflection_every_n_messages=_env_int("REFLECTION_EVERY_N", 12),
            reflection_min_messages=_env_int("REFLECTION_MIN_MESSAGES", 20),
            reflection_max_window=_env_int("REFLECTION_MAX_WINDOW", 40),
            max_memories=_env_int("LEARNER_MAX_MEMORIES", 3),
        )


@dataclass(slots=True)
class PipelineConfig:
    max_retries: int = 0
    retry_delay_ms: int = 0

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        return cls(
            max_retries=_env_int("MAX_RETRIES", 0),
            retry_delay_ms=_env_int("RETRY_DELAY_MS", 0),
        )


@dataclass(slots=True)
class PersonaCoreConfig:
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    consolidation: ConsolidationConfig = field(default_factory=ConsolidationConfig)
    humanizer: HumanizerConfig = field(default_factory=HumanizerConfig)
    learner: LearnerConfig = field(default_factory=LearnerConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    @classmethod
    def from_env(cls) -> "PersonaCoreConfig":
        return cls(
            embedding=EmbeddingConfig.from_env(),
            retrieval=RetrievalConfig.from_env(),
            consolidation=ConsolidationConfig.from_env(),
            humanizer=HumanizerConfig.from_env(),
            learner=LearnerConfig.from_env(),
            pipeline=PipelineConfig.from_env(),
        )


__all__ = [
    "EmbeddingConfig",
    "RetrievalConfig",
    "ConsolidationConfig",
    "HumanizerConfig",
    "LearnerConfig",
    "PipelineConfig",
    "PersonaCoreConfig",
]

"""
Pipeline Orchestrator - Sequential, typed, retryable turn execution

WHAT: Runs the seven turn stages in fixed order with a bounded retry on the LLM caller
WHERE: persona_core/runtime/pipeline/orchestrator.py - pipeline control layer
WHO: Applications handling one user turn
TIME: Sum of stage latencies plus retry waits

Stage order:
1. context_gatherer    (injected)
2. identity_resolver   (injected)
3. emotional_processor (injected)
4. prompt_builder      (injected)
5. llm_caller          (injected, retried)
6. humanizer           (core)
7. learner             (core)

Boundary Notes:
- Every stage failure surfaces as PipelineExecutionError naming the stage
- Validation failures are never retried; the wait between retries is fixed
- One telemetry span ``pipeline.<stage>`` per attempt
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from ...config import PersonaCoreConfig, PipelineConfig
from ...exceptions import MemoryValidationError, PipelineExecutionError, StageContractError
from ..telemetry import NoOpTelemetryClient, TelemetryClient
from .humanizer import Humanizer
from .learner import Learner
from .types import (
    ContextGathererOutput,
    EmotionalProcessorOutput,
    HumanizerOutput,
    IdentityResolverOutput,
    LearnerOutput,
    LLMCallerOutput,
    PipelineInput,
    PipelineStage,
    PromptBuilderOutput,
)

logger = logging.getLogger(__name__)

RETRIED_STAGE = "llm_caller"

STAGE_OUTPUTS: Tuple[Tuple[str, Type[BaseModel]], ...] = (
    ("context_gatherer", ContextGathererOutput),
    ("identity_resolver", IdentityResolverOutput),
    ("emotional_processor", EmotionalProcessorOutput),
    ("prompt_builder", PromptBuilderOutput),
    ("llm_caller", LLMCallerOutput),
    ("humanizer", HumanizerOutput),
    ("learner", LearnerOutput),
)

NON_RETRYABLE = (ValidationError, MemoryValidationError, StageContractError)


def is_retryable(error: BaseException) -> bool:
    """Malformed input fails the same way every time; anything else may be transient."""
    return isinstance(error, Exception) and not isinstance(error, NON_RETRYABLE)


@dataclass(slots=True)
class PipelineStages:
    """The five injected upstream stages plus the core humanizer and learner."""

    context_gatherer: PipelineStage
    identity_resolver: PipelineStage
    emotional_processor: PipelineStage
    prompt_builder: PipelineStage
    llm_caller: PipelineStage
    humanizer: PipelineStage = field(default_factory=Humanizer)
    learner: PipelineStage = field(default_factory=Learner)

    def ordered(self) -> List[Tuple[str, PipelineStage, Type[BaseModel]]]:
        return [(slot, getattr(self, slot), output) for slot, output in STAGE_OUTPUTS]


class PipelineOrchestrator:
    """
    Executes PipelineStages for one turn.

    Args:
        stages: Stage implementations
        config: Default retry policy
        telemetry: Span sink (no-op by default)
    """

    def __init__(
        self,
        stages: PipelineStages,
        *,
        config: Optional[PipelineConfig] = None,
        telemetry: Optional[TelemetryClient] = None,
    ) -> None:
        self.stages = stages
        self.config = config or PipelineConfig()
        self.telemetry = telemetry or NoOpTelemetryClient()

    @classmethod
    def from_config(
        cls,
        config: PersonaCoreConfig,
        *,
        context_gatherer: PipelineStage,
        identity_resolver: PipelineStage,
        emotional_processor: PipelineStage,
        prompt_builder: PipelineStage,
        llm_caller: PipelineStage,
        telemetry: Optional[TelemetryClient] = None,
        **learner_collaborators: Any,
    ) -> "PipelineOrchestrator":
        """
        Wire the core stages from one aggregate config.

        ``learner_collaborators`` (embed_text, persist_memory, ...) are passed
        to the Learner unchanged.
        """
        stages = PipelineStages(
            context_gatherer=context_gatherer,
            identity_resolver=identity_resolver,
            emotional_processor=emotional_processor,
            prompt_builder=prompt_builder,
            llm_caller=llm_caller,
            humanizer=Humanizer(config.humanizer),
            learner=Learner(config.learner, embedding=config.embedding, **learner_collaborators),
        )
        return cls(stages, config=config.pipeline, telemetry=telemetry)

    async def run(
        self,
        payload: PipelineInput,
        max_retries: Optional[int] = None,
        retry_delay_ms: Optional[int] = None,
    ) -> LearnerOutput:
        """
        Run all stages and return the fully accumulated payload.

        Raises:
            PipelineExecutionError: A stage failed (after retries for the LLM caller)
        """
        retries = max(0, self.config.max_retries if max_retries is None else max_retries)
        delay_ms = max(0, self.config.retry_delay_ms if retry_delay_ms is None else retry_delay_ms)

        if not isinstance(payload, PipelineInput):
            cause = StageContractError(f"pipeline input must be PipelineInput, got {type(payload).__name__}")
            raise PipelineExecutionError("orchestrator", cause) from cause

        value: Any = payload
        for slot, stage, output_type in self.stages.ordered():
            stage_retries = retries if slot == RETRIED_STAGE else 0
            value = await self._execute_stage(slot, stage, value, output_type, stage_retries, delay_ms)
        return value

    async def _execute_stage(
        self,
        slot: str,
        stage: PipelineStage,
        value: Any,
        output_type: Type[BaseModel],
        max_retries: int,
        retry_delay_ms: int,
    ) -> Any:
        name = getattr(stage, "name", None) or slot
        attempt = 0
        while True:
            attempt += 1
            span = self.telemetry.span(f"pipeline.{slot}", attributes={"stage": name, "attempt": attempt})
            with span:
                try:
                    result = await stage.run(value)
                    if not isinstance(result, output_type):
                        raise StageContractError(
                            f"stage {name} returned {type(result).__name__}, expected {output_type.__name__}"
                        )
                    return result
                except Exception as exc:
                    span.set_attribute("success", False)
                    span.set_attribute("error_type", type(exc).__name__)
                    failure = exc

            if attempt > max_retries or not is_retryable(failure):
                logger.error(f"Stage {name} failed after {attempt} attempt(s): {failure!r}")
                raise PipelineExecutionError(name, failure, attempts=attempt) from failure

            logger.warning(f"Stage {name} attempt {attempt} failed ({failure!r}); retrying in {retry_delay_ms}ms")
            if retry_delay_ms > 0:
                await asyncio.sleep(retry_delay_ms / 1000.0)


__all__ = [
    "PipelineOrchestrator",
    "PipelineStages",
    "STAGE_OUTPUTS",
    "is_retryable",
]

"""
Error Taxonomy - Failures raised across the persona runtime

WHAT: Exception hierarchy for pipeline, memory, and validation failures
WHERE: persona_core/exceptions.py - shared by every runtime subsystem
WHO: Orchestrator wrapping stage failures; engines rejecting malformed input
TIME: n/a

Boundary Notes:
- Stage failures surface to callers only as PipelineExecutionError
- Validation errors fail fast and are never retried by the orchestrator
"""

from __future__ import annotations


class PersonaCoreError(Exception):
    """Base class for all persona-core failures."""


class MemoryValidationError(PersonaCoreError, ValueError):
    """Raised when memory, weight, or text inputs are malformed."""


class EmbeddingDimensionError(MemoryValidationError):
    """Raised when two usable embeddings disagree on dimensionality."""

    def __init__(self, expected: int, actual: int, *, memory_id: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        self.memory_id = memory_id
        where = f" for memory {memory_id}" if memory_id else ""
        super().__init__(f"Embedding dimension mismatch{where}: expected {expected}, got {actual}")


class StageContractError(PersonaCoreError):
    """Raised when a stage returns a payload that does not extend its input."""


class PipelineExecutionError(PersonaCoreError):
    """Raised when a pipeline stage fails; carries the stage name and cause."""

    def __init__(
        self,
        stage: str,
        cause: BaseException,
        message: str | None = None,
        *,
        attempts: int = 1,
    ) -> None:
        super().__init__(message or f"Pipeline failed at stage {stage}: {cause}")
        self.stage = stage
        self.cause = cause
        self.attempts = attempts


__all__ = [
    "PersonaCoreError",
    "MemoryValidationError",
    "EmbeddingDimensionError",
    "StageContractError",
    "PipelineExecutionError",
]

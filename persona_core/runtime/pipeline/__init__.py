"""
Turn Pipeline - Seven typed stages from user message to paced reply and memories

WHAT: Accumulator payloads, timing model, humanizer, learner, and orchestrator
WHERE: persona_core/runtime/pipeline/ - per-turn execution subsystem
WHO: Applications running one pipeline per user turn
TIME: Bounded by the injected LLM caller

Boundary Notes:
- Stages 1-5 are injected collaborators; humanizer and learner are core
- No shared mutable state between pipeline runs
"""

from .humanizer import Humanizer  # noqa: F401
from .imperfection import apply_imperfections  # noqa: F401
from .learner import Learner  # noqa: F401
from .orchestrator import PipelineOrchestrator, PipelineStages  # noqa: F401
from .timing import (  # noqa: F401
    TimingPlan,
    compute_timing_plan,
    plan_strategic_non_response,
    simulate_read_receipt_delay,
    simulate_revision_event,
)

__all__ = [
    "Humanizer",
    "apply_imperfections",
    "Learner",
    "PipelineOrchestrator",
    "PipelineStages",
    "TimingPlan",
    "compute_timing_plan",
    "plan_strategic_non_response",
    "simulate_read_receipt_delay",
    "simulate_revision_event",
]

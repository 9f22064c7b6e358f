"""
Persona Runtime Module

WHAT: Runtime subsystem for the conversational synthesis and memory pipeline
WHERE: persona_core/runtime/ - orchestration layer above injected model/storage collaborators
WHO: Applications turning one model completion into paced messages and durable memories
TIME: Per-turn pipeline; memory maintenance runs out of band

Subsystems:
- memory: Associative memory retrieval, consolidation, provenance
- persona: Token-budgeted persona aspect graph
- pipeline: Seven-stage turn pipeline (five injected stages + humanizer + learner)
- telemetry: Stage spans

Boundary Notes:
- No module-level mutable state; concurrent turns are independent
- Persistence, LLM calls, and embedding providers are injected
"""

__all__ = ["memory", "persona", "pipeline", "telemetry"]

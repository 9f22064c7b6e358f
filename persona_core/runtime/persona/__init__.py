"""
Persona Context - Aspect graph retrieval under a token budget

WHAT: Selects the persona aspects most relevant to a query
WHERE: persona_core/runtime/persona/ - persona context subsystem
WHO: Prompt construction (external stage) choosing persona slices
TIME: Query O(n·t)
"""

from .graph import (  # noqa: F401
    PersonaAspect,
    PersonaGraphEdge,
    PersonaGraphNode,
    PersonaGraphStore,
    PersonaRetrievalResult,
)

__all__ = [
    "PersonaAspect",
    "PersonaGraphEdge",
    "PersonaGraphNode",
    "PersonaGraphStore",
    "PersonaRetrievalResult",
]

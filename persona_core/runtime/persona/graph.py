"""
Persona Aspect Graph - Token-budgeted persona context retrieval

WHAT: Weighted relevance graph over persona aspects with greedy budgeted selection
WHERE: persona_core/runtime/persona/graph.py - persona context layer
WHO: Prompt construction selecting which persona slices fit the turn
TIME: Build O(n²·t); query O(n·t + e)

Edges are symmetric pairs weighted by token overlap |A∩B| / max(|A|, |B|),
created only when overlap > 0. A query scores each node by direct overlap
with the query plus a relational boost of 0.05 × Σ outgoing edge weights.

Boundary Notes:
- Selection never exceeds the token budget, except in the fallback
- Fallback (nothing scores > 0) returns the smallest-token nodes
"""

from __future__ import annotations

import re
from typing import Dict, FrozenSet, Iterable, List, Sequence

from pydantic import BaseModel, Field

DEFAULT_TOKEN_BUDGET = 200
DEFAULT_ASPECT_LIMIT = 3
RELATIONAL_BOOST = 0.05
MIN_TOKEN_LENGTH = 3

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")


class PersonaAspect(BaseModel):
    """A named slice of persona definition, e.g. "Execution Discipline"."""

    id: str
    title: str
    content: str
    keywords: List[str] = Field(default_factory=list)
    estimated_tokens: int = Field(ge=0)


class PersonaGraphNode(BaseModel):
    id: str
    title: str
    content: str
    keywords: List[str] = Field(default_factory=list)
    estimated_tokens: int = Field(ge=0)


class PersonaGraphEdge(BaseModel):
    from_id: str
    to_id: str
    weight: float = Field(gt=0.0, le=1.0)


class PersonaRetrievalResult(BaseModel):
    nodes: List[PersonaGraphNode]
    total_estimated_tokens: int


def _tokens(text: str) -> List[str]:
    return [t for t in _NON_ALNUM_RE.sub(" ", text.lower()).split() if len(t) >= MIN_TOKEN_LENGTH]


def _node_tokens(node: PersonaGraphNode) -> FrozenSet[str]:
    tokens = set(_tokens(node.title)) | set(_tokens(node.content))
    for keyword in node.keywords:
        tokens.update(_tokens(keyword))
    return frozenset(tokens)


def overlap_score(left: FrozenSet[str], right: FrozenSet[str]) -> float:
    if not left or not right:
        return 0.0
    return len(left & right) / max(len(left), len(right))


class PersonaGraphStore:
    """
    Immutable aspect graph.

    Build with ``from_aspects``; query with ``retrieve_relevant``. Accessors
    return copies so callers cannot alter the graph.
    """

    def __init__(self, nodes: Sequence[PersonaGraphNode], edges: Sequence[PersonaGraphEdge]) -> None:
        self._nodes: List[PersonaGraphNode] = list(nodes)
        self._edges: List[PersonaGraphEdge] = list(edges)
        self._tokens: Dict[str, FrozenSet[str]] = {node.id: _node_tokens(node) for node in self._nodes}
        self._outgoing: Dict[str, float] = {}
        for edge in self._edges:
            self._outgoing[edge.from_id] = self._outgoing.get(edge.from_id, 0.0) + edge.weight

    @classmethod
    def from_aspects(cls, aspects: Iterable[PersonaAspect]) -> "PersonaGraphStore":
        nodes = [PersonaGraphNode(**aspect.model_dump()) for aspect in aspects]
        token_sets = [_node_tokens(node) for node in nodes]

        edges: List[PersonaGraphEdge] = []
        for source in range(len(nodes)):
            for target in range(source + 1, len(nodes)):
                weight = overlap_score(token_sets[source], token_sets[target])
                if weight > 0:
                    edges.append(PersonaGraphEdge(from_id=nodes[source].id, to_id=nodes[target].id, weight=weight))
                    edges.append(PersonaGraphEdge(from_id=nodes[target].id, to_id=nodes[source].id, weight=weight))
        return cls(nodes, edges)

    def get_nodes(self) -> List[PersonaGraphNode]:
        return [node.model_copy(deep=True) for node in self._nodes]

    def get_edges(self) -> List[PersonaGraphEdge]:
        return [edge.model_copy() for edge in self._edges]

    def retrieve_relevant(
        self,
        query: str,
        token_budget: int = DEFAULT_TOKEN_BUDGET,
        limit: int = DEFAULT_ASPECT_LIMIT,
    ) -> PersonaRetrievalResult:
        query_tokens = frozenset(_tokens(query))
        scored = []
        for node in self._nodes:
            score = overlap_score(query_tokens, self._tokens[node.id])
            score += self._outgoing.get(node.id, 0.0) * RELATIONAL_BOOST
            if score > 0:
                scored.append((score, node))
        scored.sort(key=lambda entry: entry[0], reverse=True)

        selected: List[PersonaGraphNode] = []
        used = 0
        for _, node in scored:
            if len(selected) >= limit:
                break
            if used + node.estimated_tokens > token_budget:
                continue
            selected.append(node)
            used += node.estimated_tokens

        if not selected and self._nodes:
            fallback = sorted(self._nodes, key=lambda node: node.estimated_tokens)[: max(0, limit)]
            return PersonaRetrievalResult(
                nodes=[node.model_copy(deep=True) for node in fallback],
                total_estimated_tokens=sum(node.estimated_tokens for node in fallback),
            )

        return PersonaRetrievalResult(
            nodes=[node.model_copy(deep=True) for node in selected],
            total_estimated_tokens=used,
        )


__all__ = [
    "PersonaAspect",
    "PersonaGraphNode",
    "PersonaGraphEdge",
    "PersonaRetrievalResult",
    "PersonaGraphStore",
    "overlap_score",
]

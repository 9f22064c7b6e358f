"""
Deterministic Embedding - Hash-bucketed bag-of-tokens vectors

WHAT: Fallback text→vector function used when no embedding provider is injected
WHERE: persona_core/runtime/memory/embedding.py - leaf utility of the memory layer
WHO: Learner and MemoryManager defaults; reproducible tests and benchmarks
TIME: O(tokens + dimensions) per call, no I/O

Tokens are lower-cased alphanumeric runs. Each token is hashed with BLAKE2b
to a bucket index and a sign, contributes ``sign * (1 + len(token) / 12)``,
and the result is L2-normalized. Same text always yields the same vector,
independent of process or call order.

Boundary Notes:
- Token-less input returns a unit vector so it is never "unusable"
- Real providers plug in through the ``EmbedText`` collaborator signature
"""

from __future__ import annotations

import hashlib
import re
from typing import Awaitable, Callable, List, Sequence

import numpy as np

DEFAULT_EMBEDDING_DIMENSIONS = 256
MIN_EMBEDDING_DIMENSIONS = 8

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")

EmbedText = Callable[[str], Awaitable[Sequence[float]]]


def tokenize(text: str) -> List[str]:
    """Lower-case, replace non-alphanumerics with spaces, split on whitespace."""
    return _NON_ALNUM_RE.sub(" ", (text or "").lower()).split()


def _bucket_and_sign(token: str, dims: int) -> tuple[int, float]:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    idx = int.from_bytes(digest[:4], "little", signed=False) % dims
    sign = 1.0 if (digest[4] & 1) == 0 else -1.0
    return idx, sign


def build_deterministic_embedding(
    text: str, dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS
) -> List[float]:
    """Embed ``text`` into an L2-normalized vector of ``dimensions`` doubles."""
    dims = max(MIN_EMBEDDING_DIMENSIONS, int(dimensions))
    vec = np.zeros((dims,), dtype=np.float64)
    tokens = tokenize(text)
    if not tokens:
        vec[0] = 1.0
        return vec.tolist()

    for token in tokens:
        idx, sign = _bucket_and_sign(token, dims)
        vec[idx] += sign * (1.0 + len(token) / 12.0)

    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        # Every contribution cancelled out; fall back to the empty-text vector.
        vec[0] = 1.0
        return vec.tolist()
    return (vec / norm).tolist()


class DeterministicEmbedder:
    """Async embedder over the deterministic embedding; also usable as an ``EmbedText`` callable."""

    def __init__(self, dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS) -> None:
        self.dimensions = max(MIN_EMBEDDING_DIMENSIONS, int(dimensions))

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [build_deterministic_embedding(t, self.dimensions) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return build_deterministic_embedding(text, self.dimensions)

    async def __call__(self, text: str) -> list[float]:
        return await self.embed_single(text)


__all__ = [
    "DEFAULT_EMBEDDING_DIMENSIONS",
    "EmbedText",
    "DeterministicEmbedder",
    "build_deterministic_embedding",
    "tokenize",
]

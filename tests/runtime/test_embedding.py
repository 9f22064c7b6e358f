import asyncio
import math

from persona_core.runtime.memory.embedding import (
    DeterministicEmbedder,
    build_deterministic_embedding,
    tokenize,
)
from persona_core.runtime.memory.retrieval import cosine_similarity, has_usable_embedding


def test_tokenize_lowercases_and_strips_punctuation():
    assert tokenize("Hello, World! It's 2026.") == ["hello", "world", "it", "s", "2026"]


def test_embedding_is_deterministic_and_normalized():
    first = build_deterministic_embedding("Weekly reviews happen every Friday afternoon.")
    second = build_deterministic_embedding("Weekly reviews happen every Friday afternoon.")

    assert first == second
    assert len(first) == 256
    assert math.isclose(math.sqrt(sum(v * v for v in first)), 1.0, rel_tol=1e-9)


def test_embedding_ignores_case_and_punctuation():
    assert build_deterministic_embedding("Launch DATE!") == build_deterministic_embedding("launch date")


def test_tokenless_text_yields_unit_vector():
    vec = build_deterministic_embedding("   ?!  ", dimensions=16)
    assert vec[0] == 1.0
    assert sum(abs(v) for v in vec[1:]) == 0.0
    assert has_usable_embedding(vec)


def test_minimum_dimensions_enforced():
    assert len(build_deterministic_embedding("anything", dimensions=2)) == 8


def test_similar_texts_are_closer_than_unrelated_texts():
    base = build_deterministic_embedding("the launch deadline moved to friday")
    near = build_deterministic_embedding("launch deadline moved to friday morning")
    far = build_deterministic_embedding("my cat enjoys sunny windowsills")

    assert cosine_similarity(base, near) > cosine_similarity(base, far)


def test_async_embedder_matches_function():
    embedder = DeterministicEmbedder(dimensions=32)

    single = asyncio.run(embedder.embed_single("hello there"))
    batch = asyncio.run(embedder.embed(["hello there", "general kenobi"]))

    assert single == build_deterministic_embedding("hello there", 32)
    assert batch[0] == single
    assert len(batch) == 2

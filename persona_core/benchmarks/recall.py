#!/usr/bin/env python3
"""Memory recall benchmark.

Plants ``fact_count`` facts, each carrying a unique anchor token, among noise
memories, then queries every anchor and checks whether its fact lands in the
top ``limit`` results.

Usage:
  python -m persona_core.benchmarks.recall --facts 20 --turns 100 --limit 3
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass, field
from typing import List

from ..runtime.memory.embedding import build_deterministic_embedding
from ..runtime.memory.manager import MemoryManager
from ..runtime.memory.models import MemoryNode, iso_to_unix_ms, to_iso_timestamp

BENCHMARK_NOW_ISO = "2026-05-31T12:00:00.000Z"
HOUR_MS = 3_600_000

TOPICS = (
    "launch date",
    "weekly benchmark",
    "distribution channel",
    "pricing model",
    "creator loop",
    "community metric",
    "content cadence",
    "retention target",
    "conversion baseline",
    "decision review",
)


@dataclass(slots=True)
class PlantedFact:
    id: str
    fact: str
    query: str
    emotional_valence: float = 0.8


@dataclass(slots=True)
class RecallBenchmarkResult:
    planted_facts: int
    turns: int
    recovered: int
    recall_rate: float
    target_rate: float
    passed: bool
    misses: List[str] = field(default_factory=list)


def generate_planted_facts(count: int) -> List[PlantedFact]:
    facts = []
    for index in range(count):
        number = index + 1
        anchor = f"anchor{number}zxq{number * 13}"
        facts.append(
            PlantedFact(
                id=f"fact-{number}",
                fact=f"Fact {number}: user's {TOPICS[index % len(TOPICS)]} is tracked explicitly in planning notes ({anchor}).",
                query=anchor,
            )
        )
    return facts


def build_memory_corpus(facts: List[PlantedFact], turns: int, dimensions: int = 256) -> List[MemoryNode]:
    now_ms = iso_to_unix_ms(BENCHMARK_NOW_ISO)
    corpus = [
        MemoryNode(
            id=fact.id,
            user_id="benchmark-user",
            type="semantic",
            content=fact.fact,
            embedding=build_deterministic_embedding(fact.fact, dimensions),
            timestamp_iso=to_iso_timestamp(now_ms - (index + 1) * HOUR_MS),
            emotional_valence=fact.emotional_valence,
            access_count=3 + (index % 4),
            decay_factor=0.75,
            metadata={"planted": True},
        )
        for index, fact in enumerate(facts)
    ]
    for index in range(max(0, turns - len(facts))):
        content = f"Noise {index + 1}: unrelated status note about generic productivity."
        corpus.append(
            MemoryNode(
                id=f"noise-{index + 1}",
                user_id="benchmark-user",
                type="semantic",
                content=content,
                embedding=build_deterministic_embedding(content, dimensions),
                timestamp_iso=to_iso_timestamp(now_ms - (len(facts) + index + 1) * HOUR_MS),
                emotional_valence=0.05,
                access_count=1,
                decay_factor=0.35,
                metadata={"planted": False},
            )
        )
    return corpus


async def run_recall_benchmark(
    fact_count: int = 20,
    turns: int = 100,
    limit: int = 3,
    target_rate: float = 0.65,
    dimensions: int = 256,
) -> RecallBenchmarkResult:
    facts = generate_planted_facts(fact_count)
    corpus = build_memory_corpus(facts, turns, dimensions)

    async def embed(text: str) -> List[float]:
        return build_deterministic_embedding(text, dimensions)

    manager = MemoryManager(embed_text=embed, now_iso=lambda: BENCHMARK_NOW_ISO)

    misses: List[str] = []
    for fact in facts:
        result = await manager.retrieve_relevant(fact.query, corpus, limit=limit)
        if not any(entry.memory.id == fact.id for entry in result.selected):
            misses.append(fact.id)

    recovered = fact_count - len(misses)
    recall_rate = recovered / fact_count if fact_count else 0.0
    return RecallBenchmarkResult(
        planted_facts=fact_count,
        turns=turns,
        recovered=recovered,
        recall_rate=recall_rate,
        target_rate=target_rate,
        passed=recall_rate >= target_rate,
        misses=misses,
    )


def main() -> int:
    ap = argparse.ArgumentParser(description="Memory recall benchmark")
    ap.add_argument("--facts", type=int, default=20)
    ap.add_argument("--turns", type=int, default=100)
    ap.add_argument("--limit", type=int, default=3)
    ap.add_argument("--target", type=float, default=0.65)
    args = ap.parse_args()

    result = asyncio.run(run_recall_benchmark(args.facts, args.turns, args.limit, args.target))
    print(
        f"[recall] recovered {result.recovered}/{result.planted_facts} "
        f"rate={result.recall_rate:.3f} target={result.target_rate:.2f} passed={result.passed}"
    )
    if result.misses:
        print(f"[recall] misses: {', '.join(result.misses)}")
    return 0 if result.passed else 1


if __name__ == "__main__":
    raise SystemExit(main())

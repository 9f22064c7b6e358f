#!/usr/bin/env python3
"""Timing model benchmark.

Chunks a fixed set of sample completions, runs the read-receipt and timing
models over every chunk, and checks that each plan stays inside the delivery
bounds (delay 150..12000 ms, typing 300..20000 ms).

Usage:
  python -m persona_core.benchmarks.timing
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from ..chunking import chunk_response_text
from ..runtime.pipeline.timing import (
    MAX_DELAY_MS,
    MAX_TYPING_MS,
    MIN_DELAY_MS,
    MIN_TYPING_MS,
    compute_timing_plan,
    simulate_read_receipt_delay,
)

DEFAULT_SAMPLES: Tuple[Tuple[str, float], ...] = (
    ("Yes, ship it now.", 0.15),
    ("I agree, but we should define one measurable weekly objective first.", 0.35),
    ("I am uncertain; we need to compare upside and downside scenarios before committing.", 0.55),
    ("I care about this outcome deeply and I do not want to overpromise execution capacity.", 0.7),
    ("Let us keep scope tight this week and review outcomes every Friday with explicit benchmark deltas.", 0.4),
    ("I feel tension around this plan, so I need one pause day and then a more stable execution path.", 0.78),
)


@dataclass(slots=True)
class TimingBenchmarkResult:
    sample_count: int
    chunk_count: int
    average_read_delay_ms: int
    average_typing_duration_ms: int
    p95_typing_duration_ms: int
    pass_rate: float
    passed: bool


def percentile(values: Sequence[float], p: float) -> float:
    if not values:
        return 0.0
    xs = sorted(values)
    index = min(len(xs) - 1, max(0, int((len(xs) - 1) * p)))
    return xs[index]


def run_timing_benchmark(
    samples: Sequence[Tuple[str, float]] = DEFAULT_SAMPLES,
    target_words_per_chunk: int = 16,
) -> TimingBenchmarkResult:
    read_delays: List[int] = []
    typing: List[int] = []
    chunk_count = 0
    in_range = 0

    for text, complexity in samples:
        chunks = chunk_response_text(text, target_words_per_chunk=target_words_per_chunk)
        chunk_count += len(chunks)
        for index, chunk in enumerate(chunks):
            read_delay = simulate_read_receipt_delay(len(chunk), complexity)
            plan = compute_timing_plan(chunk, index, complexity, read_delay)
            read_delays.append(read_delay)
            typing.append(plan.typing_duration)
            if (
                MIN_DELAY_MS <= plan.delay_before <= MAX_DELAY_MS
                and MIN_TYPING_MS <= plan.typing_duration <= MAX_TYPING_MS
            ):
                in_range += 1

    pass_rate = round(in_range / chunk_count, 4) if chunk_count else 0.0
    return TimingBenchmarkResult(
        sample_count=len(samples),
        chunk_count=chunk_count,
        average_read_delay_ms=round(sum(read_delays) / len(read_delays)) if read_delays else 0,
        average_typing_duration_ms=round(sum(typing) / len(typing)) if typing else 0,
        p95_typing_duration_ms=round(percentile(typing, 0.95)),
        pass_rate=pass_rate,
        passed=pass_rate >= 0.95,
    )


def main() -> int:
    ap = argparse.ArgumentParser(description="Timing model benchmark")
    ap.add_argument("--target-words", type=int, default=16)
    args = ap.parse_args()

    result = run_timing_benchmark(target_words_per_chunk=args.target_words)
    print(
        f"[timing] samples={result.sample_count} chunks={result.chunk_count} "
        f"read_avg={result.average_read_delay_ms}ms typing_avg={result.average_typing_duration_ms}ms "
        f"typing_p95={result.p95_typing_duration_ms}ms pass_rate={result.pass_rate:.4f} passed={result.passed}"
    )
    return 0 if result.passed else 1


if __name__ == "__main__":
    raise SystemExit(main())

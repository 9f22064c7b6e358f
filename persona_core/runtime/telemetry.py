"""
Telemetry Spans - Timing and outcome of pipeline stages

WHAT: Lightweight span API recording stage duration, attempt, and success
WHERE: persona_core/runtime/telemetry.py - observability layer
WHO: PipelineOrchestrator (one span per stage attempt); benchmarks
TIME: Zero-overhead with NoOpTelemetryClient, <0.1ms per span otherwise

Spans are context managers. On exit they stamp ``duration_ms`` and
``success`` (plus ``error_type`` when an exception escaped) and hand the
attributes to the client's ``emit_span`` hook.

Boundary Notes:
- Spans never swallow exceptions
- Clients must not raise; a failing sink would mask the stage error
"""

from __future__ import annotations

import sys
import time
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TextIO, Tuple


class TelemetrySpan(AbstractContextManager["TelemetrySpan"]):
    """Context manager capturing span attributes and wall-clock duration."""

    def __init__(
        self,
        client: "TelemetryClient",
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._client = client
        self.name = name
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self._start: float = 0.0

    def __enter__(self) -> "TelemetrySpan":
        self._start = time.perf_counter()
        return self

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def __exit__(self, exc_type, exc, exc_tb) -> bool:
        duration_ms = (time.perf_counter() - self._start) * 1000.0
        self.attributes.setdefault("success", exc is None)
        if exc_type is not None:
            self.attributes.setdefault("error_type", exc_type.__name__)
        self.attributes["duration_ms"] = round(duration_ms, 3)
        self._client.emit_span(self.name, self.attributes)
        return False


class TelemetryClient:
    """Base telemetry client; override `emit_span` for custom sinks."""

    def span(
        self,
        name: str,
        *,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> TelemetrySpan:
        return TelemetrySpan(self, name, attributes)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        raise NotImplementedError


@dataclass(slots=True)
class NoOpTelemetryClient(TelemetryClient):
    """Telemetry client that discards spans."""

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:  # noqa: D401 - intentionally empty
        pass


@dataclass(slots=True)
class RecordingTelemetryClient(TelemetryClient):
    """Keeps finished spans in memory, in completion order."""

    spans: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        self.spans.append((name, dict(attributes)))

    def names(self) -> List[str]:
        return [name for name, _ in self.spans]


class ConsoleTelemetryClient(TelemetryClient):
    """Writes one line per span; for local debugging."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream or sys.stderr

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        payload = {k: attributes[k] for k in sorted(attributes)}
        print(f"[telemetry] {name}: {payload}", file=self._stream)


__all__ = [
    "TelemetrySpan",
    "TelemetryClient",
    "NoOpTelemetryClient",
    "RecordingTelemetryClient",
    "ConsoleTelemetryClient",
]

"""Decision spans and counters through OpenTelemetry, when it is installed."""

from __future__ import annotations

from typing import Any

try:
    from opentelemetry import metrics, trace

    _HAS_OTEL = True
except ImportError:
    _HAS_OTEL = False


def has_otel() -> bool:
    """True when the opentelemetry API imported."""
    return _HAS_OTEL


class _NoOpSpan:
    """Stands in for a span when opentelemetry is missing."""

    def __enter__(self):
        return self

    def __exit__(self, *args):
        pass

    def set_attribute(self, key, value):
        pass

    def end(self):
        pass


class DecisionTelemetry:
    """Traces and counts decisions. Every method is a no-op without
    the ``otel`` extra (pip install hookguard[otel]).
    """

    def __init__(self):
        if _HAS_OTEL:
            self._tracer = trace.get_tracer("hookguard")
            self._meter = metrics.get_meter("hookguard")
            self._decision_counter = self._meter.create_counter(
                "hookguard.decisions",
                description="Number of hook decisions, by event kind and action",
            )
            self._failure_counter = self._meter.create_counter(
                "hookguard.dispatch_failures",
                description="Number of synthesized decisions, by error code",
            )
        else:
            self._tracer = None
            self._meter = None

    def start_span(self, event_kind: str, tool_name: str | None = None) -> Any:
        """Span covering one decision; a _NoOpSpan without opentelemetry."""
        if not self._tracer:
            return _NoOpSpan()
        attributes = {"hookguard.event_kind": event_kind}
        if tool_name:
            attributes["hookguard.tool_name"] = tool_name
        return self._tracer.start_span(f"hook.decide {event_kind}", attributes=attributes)

    def record_decision(self, event_kind: str, action: str, error: str | None = None) -> None:
        if not self._meter:
            return
        self._decision_counter.add(1, {"hookguard.event_kind": event_kind, "hookguard.action": action})
        if error:
            self._failure_counter.add(1, {"hookguard.error": error})

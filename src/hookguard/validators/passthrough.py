"""Validator for lifecycle events that carry nothing to inspect."""

from __future__ import annotations

from hookguard.decisions import Decision
from hookguard.events import Event, EventKind

_STOP_EVENTS = frozenset({EventKind.STOP, EventKind.SUBAGENT_STOP})


def passthrough(event: Event) -> Decision:
    """Let the session proceed: stops are allowed, everything else continues."""
    if event.event_kind in _STOP_EVENTS:
        return Decision.allow()
    return Decision.continue_()

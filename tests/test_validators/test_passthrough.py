"""Tests for the passthrough validator."""

from __future__ import annotations

import pytest

from hookguard.decisions import Action
from hookguard.events import create_event
from hookguard.validators import passthrough


@pytest.mark.parametrize("kind", ["Stop", "SubagentStop"])
def test_stops_allowed(kind):
    assert passthrough(create_event({"event_kind": kind})).action == Action.ALLOW


@pytest.mark.parametrize("kind", ["SessionStart", "Notification", "PreCompact"])
def test_others_continue(kind):
    decision = passthrough(create_event({"event_kind": kind}))
    assert decision.action == Action.CONTINUE
    assert decision.valid_for(create_event({"event_kind": kind}).event_kind)

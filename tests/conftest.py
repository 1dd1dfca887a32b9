"""Shared test fixtures."""

from __future__ import annotations

import pytest

from hookguard import Hookguard
from hookguard.storage import MemoryBackend


class CapturingAuditSink:
    """Audit sink that keeps every event (for tests)."""

    def __init__(self):
        self.events = []

    async def emit(self, event):
        self.events.append(event)


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def sink():
    return CapturingAuditSink()


@pytest.fixture
def guard(sink, backend):
    return Hookguard(audit_sink=sink, backend=backend)


@pytest.fixture
def bash_payload():
    return {"event_kind": "PreToolUse", "tool_name": "Bash", "params": {"command": "ls -la"}}


@pytest.fixture
def read_payload():
    return {"event_kind": "PreToolUse", "tool_name": "Read", "params": {"file_path": "src/app.py"}}

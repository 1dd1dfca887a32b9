"""Tests for session lifecycle tracking."""

from __future__ import annotations

import pytest

from hookguard.events import EventKind
from hookguard.lifecycle import TRANSITIONS, SessionLifecycle, is_valid_transition

K = EventKind


@pytest.fixture
def lifecycle(backend):
    return SessionLifecycle(backend)


class TestTransitions:
    def test_table_covers_every_kind(self):
        for kind in EventKind:
            assert kind in TRANSITIONS

    def test_session_must_start_first(self):
        assert is_valid_transition(None, K.SESSION_START)
        assert not is_valid_transition(None, K.PRE_TOOL_USE)

    def test_session_start_only_once(self):
        for previous in EventKind:
            assert not is_valid_transition(previous, K.SESSION_START)

    def test_tool_cycle(self):
        assert is_valid_transition(K.USER_PROMPT_SUBMIT, K.PRE_TOOL_USE)
        assert is_valid_transition(K.PRE_TOOL_USE, K.POST_TOOL_USE)
        assert is_valid_transition(K.POST_TOOL_USE, K.PRE_TOOL_USE)

    def test_blocked_pre_tool_use_may_be_followed_by_another(self):
        assert is_valid_transition(K.PRE_TOOL_USE, K.PRE_TOOL_USE)

    def test_post_without_pre(self):
        assert not is_valid_transition(K.USER_PROMPT_SUBMIT, K.POST_TOOL_USE)
        assert not is_valid_transition(K.POST_TOOL_USE, K.POST_TOOL_USE)

    def test_stop_is_terminal(self):
        for kind in EventKind:
            assert not is_valid_transition(K.STOP, kind)


class TestSessionLifecycle:
    async def test_new_session_has_no_last_event(self, lifecycle):
        assert await lifecycle.last_event("s1") is None

    async def test_record_and_check(self, lifecycle):
        assert await lifecycle.check("s1", K.SESSION_START) == (True, None)
        await lifecycle.record("s1", K.SESSION_START)
        assert await lifecycle.check("s1", K.POST_TOOL_USE) == (False, K.SESSION_START)
        assert await lifecycle.check("s1", K.USER_PROMPT_SUBMIT) == (True, K.SESSION_START)

    async def test_sessions_isolated(self, lifecycle):
        await lifecycle.record("s1", K.SESSION_START)
        assert await lifecycle.last_event("s2") is None

    async def test_event_count(self, lifecycle):
        await lifecycle.record("s1", K.SESSION_START)
        await lifecycle.record("s1", K.USER_PROMPT_SUBMIT)
        assert await lifecycle.event_count("s1") == 2
        assert await lifecycle.event_count("s2") == 0

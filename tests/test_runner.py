"""Tests for HookRunner: spawning hook commands and applying fail policy."""

from __future__ import annotations

import sys

from hookguard.decisions import Action, FailMode
from hookguard.errors import HookTimeout, MalformedDecisionOutput, UnknownEventKind
from hookguard.events import EventKind
from hookguard.runner import HookCommand, HookRunner

BASH_LS = {"event_kind": "PreToolUse", "tool_name": "Bash", "params": {"command": "ls"}}


def _python(script: str, timeout_ms: int | None = None) -> HookCommand:
    return HookCommand(command=(sys.executable, "-c", script), timeout_ms=timeout_ms)


ECHO_TOOL = """
import json, sys
event = json.load(sys.stdin)
print(json.dumps({"action": "block", "message": "saw " + event["tool_name"]}))
"""

ALLOW = 'print(\'{"action": "allow"}\')'
SLOW = "import time; time.sleep(10)"
GARBAGE = "print('definitely not json')"
SILENT = "import sys; sys.exit(1)"
RETRY = 'print(\'{"action": "retry", "message": "again"}\')'
BLOCK_EXIT_2 = 'import sys; print(\'{"action": "block", "message": "nope"}\'); sys.exit(2)'


class TestHookCommand:
    def test_argv_from_tuple(self):
        assert HookCommand(command=("a", "b c")).argv() == ["a", "b c"]

    def test_argv_from_string(self):
        assert HookCommand(command="python -m hooks 'two words'").argv() == ["python", "-m", "hooks", "two words"]


class TestHookRunner:
    async def test_payload_on_stdin(self):
        runner = HookRunner(hooks={EventKind.PRE_TOOL_USE: _python(ECHO_TOOL)})
        outcome = await runner.run(BASH_LS)
        assert outcome.decision.action == Action.BLOCK
        assert outcome.decision.message == "saw Bash"
        assert outcome.exit_code == 0
        assert not outcome.failed

    async def test_no_hook_configured(self):
        runner = HookRunner()
        assert (await runner.run(BASH_LS)).decision.action == Action.ALLOW
        post = await runner.run({"event_kind": "PostToolUse", "tool_name": "Read", "result": {}})
        assert post.decision.action == Action.CONTINUE

    async def test_invalid_event(self):
        outcome = await HookRunner().run({"tool_name": "Bash"})
        assert outcome.decision.action == Action.BLOCK
        assert isinstance(outcome.error, UnknownEventKind)

    async def test_timeout_fail_closed(self):
        runner = HookRunner(hooks={EventKind.PRE_TOOL_USE: _python(SLOW, timeout_ms=200)})
        outcome = await runner.run(BASH_LS)
        assert isinstance(outcome.error, HookTimeout)
        assert outcome.decision.action == Action.BLOCK
        assert outcome.decision.error == "HookTimeout"

    async def test_timeout_fail_open(self):
        runner = HookRunner(
            hooks={EventKind.PRE_TOOL_USE: _python(SLOW, timeout_ms=200)},
            fail_mode=FailMode.OPEN,
        )
        outcome = await runner.run(BASH_LS)
        assert outcome.decision.action == Action.ALLOW
        assert outcome.decision.error == "HookTimeout"

    async def test_tool_timeout_overrides_hook_timeout(self):
        runner = HookRunner(
            hooks={EventKind.PRE_TOOL_USE: _python(SLOW, timeout_ms=60_000)},
            tool_timeouts={"Bash": 200},
        )
        outcome = await runner.run(BASH_LS)
        assert isinstance(outcome.error, HookTimeout)

    async def test_garbage_output(self):
        runner = HookRunner(hooks={EventKind.PRE_TOOL_USE: _python(GARBAGE)})
        outcome = await runner.run(BASH_LS)
        assert isinstance(outcome.error, MalformedDecisionOutput)
        assert outcome.decision.action == Action.BLOCK

    async def test_garbage_output_fail_open(self):
        runner = HookRunner(hooks={EventKind.PRE_TOOL_USE: _python(GARBAGE)}, fail_mode=FailMode.OPEN)
        outcome = await runner.run(BASH_LS)
        assert outcome.decision.action == Action.ALLOW

    async def test_no_output(self):
        runner = HookRunner(hooks={EventKind.PRE_TOOL_USE: _python(SILENT)})
        outcome = await runner.run(BASH_LS)
        assert isinstance(outcome.error, MalformedDecisionOutput)

    async def test_action_invalid_for_kind(self):
        runner = HookRunner(hooks={EventKind.PRE_TOOL_USE: _python(RETRY)})
        outcome = await runner.run(BASH_LS)
        assert isinstance(outcome.error, MalformedDecisionOutput)

    async def test_nonzero_exit_with_decision_is_used(self):
        runner = HookRunner(hooks={EventKind.PRE_TOOL_USE: _python(BLOCK_EXIT_2)})
        outcome = await runner.run(BASH_LS)
        assert outcome.decision.message == "nope"
        assert outcome.exit_code == 2
        assert not outcome.failed

    async def test_missing_executable(self):
        runner = HookRunner(hooks={EventKind.STOP: HookCommand(command=("/nonexistent/hookguard-hook",))})
        outcome = await runner.run({"event_kind": "Stop"})
        assert isinstance(outcome.error, MalformedDecisionOutput)
        assert outcome.decision.action == Action.BLOCK

    async def test_hook_only_for_its_kind(self):
        runner = HookRunner(hooks={EventKind.PRE_TOOL_USE: _python(ALLOW)})
        outcome = await runner.run({"event_kind": "Stop"})
        assert outcome.decision.action == Action.ALLOW
        assert outcome.exit_code is None

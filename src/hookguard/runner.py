"""Host-side hook invocation — spawn, time out, parse, apply fail policy."""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
from dataclasses import dataclass, field
from typing import Any

from hookguard.decisions import PERMISSIVE_ACTION, Decision, FailMode, synthesize_decision
from hookguard.errors import HookError, HookTimeout, MalformedDecisionOutput
from hookguard.events import Event, EventKind, create_event

logger = logging.getLogger(__name__)

DEFAULT_HOOK_TIMEOUT_MS = 60_000
MAX_OUTPUT_BYTES = 1_048_576


@dataclass(frozen=True)
class HookCommand:
    """Executable configured for one event kind."""

    command: tuple[str, ...] | str
    timeout_ms: int | None = None

    def argv(self) -> list[str]:
        if isinstance(self.command, str):
            return shlex.split(self.command)
        return list(self.command)


@dataclass
class RunOutcome:
    decision: Decision
    error: HookError | None = None
    exit_code: int | None = None
    stderr: str = ""

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class HookRunner:
    """Invoke the hook configured for an event and always return a Decision.

    Timeouts kill the child process; its pending output is discarded.
    """

    hooks: dict[EventKind, HookCommand] = field(default_factory=dict)
    fail_mode: FailMode = FailMode.CLOSED
    timeout_ms: int = DEFAULT_HOOK_TIMEOUT_MS
    tool_timeouts: dict[str, int] = field(default_factory=dict)
    env: dict[str, str] | None = None

    def timeout_for(self, event: Event, hook: HookCommand) -> float:
        if event.tool_name is not None and event.tool_name in self.tool_timeouts:
            return self.tool_timeouts[event.tool_name] / 1000
        if hook.timeout_ms is not None:
            return hook.timeout_ms / 1000
        return self.timeout_ms / 1000

    async def invoke(self, event: Event, payload: dict[str, Any], hook: HookCommand) -> tuple[Decision, int, str]:
        """Run *hook* once. Returns (decision, exit_code, stderr).

        Raises:
            HookTimeout: the process did not exit in time.
            MalformedDecisionOutput: no parseable decision, or one invalid
                for the event kind.
        """
        argv = hook.argv()
        timeout = self.timeout_for(event, hook)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
            )
        except OSError as exc:
            raise MalformedDecisionOutput(f"could not start hook {argv[0]!r}: {exc}") from exc

        body = json.dumps(payload, default=str).encode("utf-8")
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(body), timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise HookTimeout(f"hook {argv[0]!r} exceeded {timeout:.3f}s", timeout=timeout) from None

        err_text = stderr.decode("utf-8", errors="replace")
        text = stdout[:MAX_OUTPUT_BYTES].decode("utf-8", errors="replace").strip()
        if not text:
            raise MalformedDecisionOutput(f"hook {argv[0]!r} exited {proc.returncode} without a decision")

        decision = Decision.from_json(text)
        if not decision.valid_for(event.event_kind):
            raise MalformedDecisionOutput(
                f"hook returned '{decision.action.value}', which is not valid for {event.event_kind.value}"
            )
        return decision, proc.returncode, err_text

    async def run(self, payload: dict[str, Any]) -> RunOutcome:
        """Resolve *payload* to a Decision, synthesizing one on any failure."""
        try:
            event = create_event(payload)
        except HookError as exc:
            return RunOutcome(decision=synthesize_decision(exc, self.fail_mode), error=exc)

        hook = self.hooks.get(event.event_kind)
        if hook is None:
            return RunOutcome(decision=Decision(action=PERMISSIVE_ACTION[event.event_kind]))

        try:
            decision, exit_code, err_text = await self.invoke(event, payload, hook)
        except HookError as exc:
            logger.warning("Hook for %s failed (%s): %s", event.event_kind.value, exc.code, exc.message)
            return RunOutcome(decision=synthesize_decision(exc, self.fail_mode, event.event_kind), error=exc)

        if exit_code != 0:
            logger.warning("Hook for %s exited %d with decision %s", event.event_kind.value, exit_code, decision.action)
        return RunOutcome(decision=decision, exit_code=exit_code, stderr=err_text)

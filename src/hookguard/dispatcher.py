"""Dispatcher — validate one event and route it to exactly one validator."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from hookguard.decisions import Decision, FailMode, synthesize_decision
from hookguard.errors import (
    HookError,
    HookTimeout,
    MalformedDecisionOutput,
    MissingRequiredField,
    UnknownEventKind,
)
from hookguard.events import Event, EventKind, ToolRegistry, create_event, default_tool_registry
from hookguard.validators.passthrough import passthrough
from hookguard.validators.prompts import PromptTransform
from hookguard.validators.results import ResultValidator
from hookguard.validators.security import SecurityValidator

logger = logging.getLogger(__name__)

Validator = Callable[[Event], Decision]

DEFAULT_TIMEOUT_MS = 5_000


@dataclass
class DispatchOutcome:
    """Result of one dispatch: always carries a well-formed Decision."""

    decision: Decision
    event: Event | None = None
    error: HookError | None = None
    duration_ms: int = 0
    cached: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def rejected(self) -> bool:
        """The event itself was malformed and never reached a validator."""
        return isinstance(self.error, (UnknownEventKind, MissingRequiredField))


def _run_abandonable(fn: Validator, event: Event, timeout: float) -> asyncio.Future:
    """Run *fn* on a daemon thread; the future resolves with its result.

    A validator that outlives *timeout* is abandoned, not cancelled: the
    thread keeps running but its result is discarded and it never holds
    up process exit.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()

    def _deliver(setter: Callable, value: Any) -> None:
        if not future.done():
            setter(value)

    def _target() -> None:
        try:
            result = fn(event)
        except Exception as exc:
            callback, value = future.set_exception, exc
        else:
            callback, value = future.set_result, result
        try:
            loop.call_soon_threadsafe(_deliver, callback, value)
        except RuntimeError:
            # Event loop already closed: the result was abandoned.
            pass

    threading.Thread(target=_target, name=f"hookguard-{event.event_kind.value}", daemon=True).start()
    return future


class Dispatcher:
    """Routes events over the closed EventKind set.

    This is the single source of dispatch logic. It never raises:
    every failure becomes a synthesized Decision according to
    ``fail_mode``.
    """

    def __init__(
        self,
        *,
        security: SecurityValidator | None = None,
        results: ResultValidator | None = None,
        prompts: PromptTransform | None = None,
        tools: ToolRegistry | None = None,
        fail_mode: FailMode | str = FailMode.CLOSED,
        timeout_ms: int | None = DEFAULT_TIMEOUT_MS,
    ):
        self.tools = tools or default_tool_registry()
        self.security = security or SecurityValidator(tools=self.tools)
        self.results = results or ResultValidator()
        self.prompts = prompts or PromptTransform()
        self.fail_mode = FailMode(fail_mode)
        self.timeout_ms = timeout_ms

    def validator_for(self, event: Event) -> Validator:
        match event.event_kind:
            case EventKind.PRE_TOOL_USE:
                return self.security
            case EventKind.POST_TOOL_USE:
                return self.results
            case EventKind.USER_PROMPT_SUBMIT:
                return self.prompts
            case (
                EventKind.SESSION_START
                | EventKind.NOTIFICATION
                | EventKind.STOP
                | EventKind.SUBAGENT_STOP
                | EventKind.PRE_COMPACT
            ):
                return passthrough

    def timeout_for(self, event: Event) -> float | None:
        """Seconds allowed for *event*: per-tool timeout, else the default."""
        timeout_ms = self.timeout_ms
        if event.tool_name is not None:
            spec = self.tools.get(event.tool_name)
            if spec.timeout_ms is not None:
                timeout_ms = spec.timeout_ms
        return None if timeout_ms is None else timeout_ms / 1000

    def parse(self, payload: Any) -> Event:
        """Validate a raw payload. Raises UnknownEventKind / MissingRequiredField."""
        return create_event(payload)

    async def decide(self, event: Event) -> Decision:
        """Invoke the event's validator under its timeout.

        Raises:
            HookTimeout: the validator did not finish in time.
            MalformedDecisionOutput: the validator crashed or returned an
                invalid decision for this event kind.
            RuleEvaluationError: a rule could not be evaluated.
        """
        validator = self.validator_for(event)
        timeout = self.timeout_for(event)
        name = getattr(validator, "__name__", type(validator).__name__)

        try:
            if timeout is None:
                decision = validator(event)
            else:
                decision = await asyncio.wait_for(_run_abandonable(validator, event, timeout), timeout)
        except TimeoutError:
            raise HookTimeout(
                f"{name} did not decide {event.event_kind.value} within {timeout:.3f}s", timeout=timeout
            ) from None
        except HookError:
            raise
        except Exception as exc:
            logger.exception("Validator %s raised", name)
            raise MalformedDecisionOutput(f"{name} raised {type(exc).__name__}: {exc}") from exc

        if not isinstance(decision, Decision):
            raise MalformedDecisionOutput(f"{name} returned {type(decision).__name__}, not a Decision")
        if not decision.valid_for(event.event_kind):
            raise MalformedDecisionOutput(
                f"{name} returned '{decision.action.value}', which is not valid for {event.event_kind.value}"
            )
        return decision

    def fail(self, error: HookError, event: Event | None = None, duration_ms: int = 0) -> DispatchOutcome:
        """Outcome for a failure: the synthesized Decision under ``fail_mode``."""
        logger.warning("Dispatch failed (%s): %s", error.code, error.message)
        kind = event.event_kind if event is not None else None
        decision = synthesize_decision(error, self.fail_mode, kind)
        return DispatchOutcome(decision=decision, event=event, error=error, duration_ms=duration_ms)

    async def resolve(self, event: Event) -> DispatchOutcome:
        """Decide an already-validated event, mapping failures to decisions."""
        start = time.monotonic()
        try:
            decision = await self.decide(event)
        except HookError as exc:
            return self.fail(exc, event, int((time.monotonic() - start) * 1000))
        return DispatchOutcome(decision=decision, event=event, duration_ms=int((time.monotonic() - start) * 1000))

    async def dispatch(self, payload: Any) -> DispatchOutcome:
        """Parse, validate and decide. Always returns a Decision."""
        try:
            event = self.parse(payload)
        except HookError as exc:
            return self.fail(exc)
        return await self.resolve(event)

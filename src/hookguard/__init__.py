"""hookguard — lifecycle hook validation for agent sessions."""

from __future__ import annotations

from importlib.metadata import version as _pkg_version

try:
    __version__ = _pkg_version("hookguard")
except Exception:  # pragma: no cover
    __version__ = "0.0.0-dev"

import logging
import time
from pathlib import Path
from typing import Any

from hookguard.audit import (
    AuditAction,
    AuditEvent,
    AuditSink,
    FileAuditSink,
    NullAuditSink,
    RedactionPolicy,
    StderrAuditSink,
)
from hookguard.builtins import DEFAULT_RETRY_BUDGET, DEFAULT_TEMPLATES, default_rules
from hookguard.cache import DecisionCache
from hookguard.decisions import ACTIONS_BY_KIND, Action, Decision, FailMode, synthesize_decision
from hookguard.dispatcher import DEFAULT_TIMEOUT_MS, DispatchOutcome, Dispatcher
from hookguard.errors import (
    HookError,
    HookguardConfigError,
    HookTimeout,
    LifecycleViolation,
    MalformedDecisionOutput,
    MissingRequiredField,
    RuleEvaluationError,
    UnknownEventKind,
)
from hookguard.events import Event, EventKind, ToolRegistry, create_event, default_tool_registry
from hookguard.lifecycle import SessionLifecycle, is_valid_transition
from hookguard.rules import MatchKind, Rule, Severity, evaluate_rules
from hookguard.runner import HookCommand, HookRunner
from hookguard.storage import FileBackend, MemoryBackend, StorageBackend
from hookguard.telemetry import DecisionTelemetry, has_otel
from hookguard.types import ToolSpec
from hookguard.validators import PathScope, PromptTransform, ResultValidator, SecurityValidator

logger = logging.getLogger(__name__)

__all__ = [
    "__version__",
    "Hookguard",
    "HookguardConfigError",
    "HookError",
    "UnknownEventKind",
    "MissingRequiredField",
    "MalformedDecisionOutput",
    "HookTimeout",
    "RuleEvaluationError",
    "LifecycleViolation",
    "Event",
    "EventKind",
    "create_event",
    "ToolRegistry",
    "ToolSpec",
    "Decision",
    "Action",
    "ACTIONS_BY_KIND",
    "FailMode",
    "synthesize_decision",
    "Rule",
    "Severity",
    "MatchKind",
    "evaluate_rules",
    "Dispatcher",
    "DispatchOutcome",
    "SecurityValidator",
    "ResultValidator",
    "PromptTransform",
    "PathScope",
    "DecisionCache",
    "SessionLifecycle",
    "is_valid_transition",
    "StorageBackend",
    "MemoryBackend",
    "FileBackend",
    "AuditAction",
    "AuditEvent",
    "AuditSink",
    "StderrAuditSink",
    "FileAuditSink",
    "RedactionPolicy",
    "DecisionTelemetry",
    "HookCommand",
    "HookRunner",
    "has_otel",
]

_AUDIT_ACTIONS = {
    Action.ALLOW: AuditAction.EVENT_ALLOWED,
    Action.BLOCK: AuditAction.EVENT_BLOCKED,
    Action.MODIFY: AuditAction.EVENT_MODIFIED,
    Action.RETRY: AuditAction.EVENT_RETRY,
    Action.CONTINUE: AuditAction.EVENT_CONTINUED,
}


class Hookguard:
    """Main configuration and entrypoint.

    Owns the dispatcher plus the optional side channels (audit sink,
    telemetry, decision cache, lifecycle tracking). None of the side
    channels can change a decision except lifecycle enforcement, which
    is opt-in.
    """

    def __init__(
        self,
        *,
        rules: list[Rule] | None = None,
        tools: ToolRegistry | None = None,
        paths: PathScope | None = None,
        templates: dict[str, str] | None = None,
        context_prefix: bool = True,
        fail_mode: FailMode | str = FailMode.CLOSED,
        timeout_ms: int | None = DEFAULT_TIMEOUT_MS,
        redaction: RedactionPolicy | None = None,
        retry_budget: int = DEFAULT_RETRY_BUDGET,
        retry_on_error: bool = True,
        audit_sink: AuditSink | None = None,
        backend: StorageBackend | None = None,
        lifecycle: bool = False,
        enforce_lifecycle: bool = False,
        cache: DecisionCache | None = None,
        hooks: dict[EventKind, HookCommand] | None = None,
        policy_version: str | None = None,
    ):
        self.rules = default_rules() if rules is None else list(rules)
        self.tools = tools or default_tool_registry()
        self.redaction = redaction or RedactionPolicy()
        self.audit_sink = audit_sink or StderrAuditSink(self.redaction)
        self.backend = backend or MemoryBackend()
        self.telemetry = DecisionTelemetry()
        self.cache = cache
        self.hooks = dict(hooks or {})
        self.policy_version = policy_version
        self.lifecycle = SessionLifecycle(self.backend) if lifecycle or enforce_lifecycle else None
        self.enforce_lifecycle = enforce_lifecycle

        self.dispatcher = Dispatcher(
            security=SecurityValidator(rules=self.rules, paths=paths or PathScope(), tools=self.tools),
            results=ResultValidator(
                rules=self.rules,
                redaction=self.redaction,
                retry_budget=retry_budget,
                retry_on_error=retry_on_error,
            ),
            prompts=PromptTransform(
                rules=self.rules,
                templates=dict(DEFAULT_TEMPLATES) if templates is None else dict(templates),
                context_prefix=context_prefix,
            ),
            tools=self.tools,
            fail_mode=fail_mode,
            timeout_ms=timeout_ms,
        )

    @property
    def fail_mode(self) -> FailMode:
        return self.dispatcher.fail_mode

    @classmethod
    def from_yaml(
        cls,
        path: str | Path,
        *,
        fail_mode: FailMode | str | None = None,
        audit_sink: AuditSink | None = None,
        backend: StorageBackend | None = None,
    ) -> Hookguard:
        """Create a Hookguard instance from a YAML policy file.

        Args:
            path: Path to the YAML policy.
            fail_mode: Override the policy's ``defaults.fail_mode``.
            audit_sink: Custom audit sink (otherwise built from ``observability``).
            backend: Custom storage backend for lifecycle tracking.

        Raises:
            HookguardConfigError: If the YAML is invalid.
        """
        from hookguard.yaml_engine.loader import load_policy

        policy, policy_hash = load_policy(path)
        return cls._from_policy(policy, str(policy_hash), fail_mode, audit_sink, backend)

    @classmethod
    def from_yaml_string(
        cls,
        content: str | bytes,
        *,
        fail_mode: FailMode | str | None = None,
        audit_sink: AuditSink | None = None,
        backend: StorageBackend | None = None,
    ) -> Hookguard:
        """Like :meth:`from_yaml` but accepts YAML content directly."""
        from hookguard.yaml_engine.loader import load_policy_string

        policy, policy_hash = load_policy_string(content)
        return cls._from_policy(policy, str(policy_hash), fail_mode, audit_sink, backend)

    @classmethod
    def from_template(
        cls,
        name: str,
        *,
        fail_mode: FailMode | str | None = None,
        audit_sink: AuditSink | None = None,
        backend: StorageBackend | None = None,
    ) -> Hookguard:
        """Create a Hookguard instance from a built-in template ("default", "strict").

        Raises:
            HookguardConfigError: If the template does not exist.
        """
        template_path = template_dir() / f"{name}.yaml"
        if not template_path.exists():
            raise HookguardConfigError(
                f"Template '{name}' not found. Available: {', '.join(sorted(list_templates()))}"
            )
        return cls.from_yaml(template_path, fail_mode=fail_mode, audit_sink=audit_sink, backend=backend)

    @classmethod
    def _from_policy(
        cls,
        policy: dict,
        policy_version: str,
        fail_mode: FailMode | str | None,
        audit_sink: AuditSink | None,
        backend: StorageBackend | None,
    ) -> Hookguard:
        from hookguard.yaml_engine.compiler import compile_policy

        compiled = compile_policy(policy)
        obs = compiled.observability

        if obs.get("otel") and not has_otel():
            logger.warning("observability.otel is set but opentelemetry is not installed")

        # Auto-configure audit sink from observability block if not explicitly provided
        if audit_sink is None:
            if obs.get("webhook"):
                from hookguard.sinks.webhook import WebhookAuditSink

                audit_sink = WebhookAuditSink(
                    obs["webhook"]["url"],
                    headers=obs["webhook"].get("headers"),
                    redaction_policy=compiled.redaction,
                )
            elif obs.get("file"):
                audit_sink = FileAuditSink(obs["file"], compiled.redaction)
            elif obs.get("stderr", True) is False:
                audit_sink = NullAuditSink()

        if backend is None and compiled.state_file:
            backend = FileBackend(compiled.state_file)

        return cls(
            rules=compiled.rules,
            tools=compiled.tools,
            paths=compiled.paths,
            templates=compiled.templates,
            context_prefix=compiled.context_prefix,
            fail_mode=fail_mode or compiled.fail_mode,
            timeout_ms=compiled.timeout_ms,
            redaction=compiled.redaction,
            retry_budget=compiled.retry_budget,
            retry_on_error=compiled.retry_on_error,
            audit_sink=audit_sink,
            backend=backend,
            lifecycle=compiled.lifecycle_enabled,
            enforce_lifecycle=compiled.lifecycle_enforce,
            cache=DecisionCache(compiled.cache_max_entries) if compiled.cache_max_entries else None,
            hooks=compiled.hooks,
            policy_version=policy_version,
        )

    async def _check_lifecycle(self, event: Event) -> LifecycleViolation | None:
        """Track *event* in its session; a storage failure skips tracking."""
        if self.lifecycle is None or not event.session_id:
            return None
        try:
            valid, previous = await self.lifecycle.check(event.session_id, event.event_kind)
            if not valid:
                after = previous.value if previous else "session start"
                violation = LifecycleViolation(f"{event.event_kind.value} is not allowed after {after}")
                logger.warning("Session %s: %s", event.session_id, violation.message)
                if self.enforce_lifecycle:
                    return violation
            await self.lifecycle.record(event.session_id, event.event_kind)
        except Exception:
            logger.exception("Lifecycle tracking skipped for session %s", event.session_id)
        return None

    async def evaluate(self, payload: Any) -> DispatchOutcome:
        """Decide one raw payload without emitting audit events."""
        start = time.monotonic()
        try:
            event = self.dispatcher.parse(payload)
        except HookError as exc:
            return self.dispatcher.fail(exc)

        violation = await self._check_lifecycle(event)
        if violation is not None and self.enforce_lifecycle:
            return self.dispatcher.fail(violation, event, int((time.monotonic() - start) * 1000))

        if self.cache is not None:
            cached = self.cache.get(event)
            if cached is not None:
                return DispatchOutcome(
                    decision=cached,
                    event=event,
                    duration_ms=int((time.monotonic() - start) * 1000),
                    cached=True,
                )

        outcome = await self.dispatcher.resolve(event)
        if self.cache is not None and not outcome.failed:
            self.cache.put(event, outcome.decision)
        return outcome

    async def record(self, outcome: DispatchOutcome) -> None:
        """Emit the audit event and metrics for *outcome*.

        Audit failures are logged and never affect the decision.
        """
        event = outcome.event
        decision = outcome.decision
        kind = event.event_kind.value if event is not None else ""

        self.telemetry.record_decision(kind or "unknown", decision.action.value, decision.error)

        if isinstance(outcome.error, LifecycleViolation):
            action = AuditAction.LIFECYCLE_VIOLATION
        elif outcome.failed:
            action = AuditAction.DISPATCH_FAILED
        else:
            action = _AUDIT_ACTIONS[decision.action]

        audit_event = AuditEvent(
            session_id=event.session_id if event is not None else "",
            event_kind=kind,
            tool_name=event.tool_name if event is not None else None,
            params=event.params if event is not None else {},
            action=action,
            decision=decision.action.value,
            rule_id=decision.rule_id,
            error=decision.error,
            message=decision.message,
            redacted_result=bool(
                event is not None
                and event.event_kind == EventKind.POST_TOOL_USE
                and decision.modified_payload is not None
            ),
            cached=outcome.cached,
            duration_ms=outcome.duration_ms,
            policy_version=self.policy_version,
            fail_mode=self.fail_mode.value,
        )
        try:
            await self.audit_sink.emit(audit_event)
        except Exception:
            logger.exception("Audit sink %s failed", type(self.audit_sink).__name__)

    async def handle(self, payload: Any) -> DispatchOutcome:
        """Decide *payload* and record it."""
        kind, tool_name = "", None
        if isinstance(payload, dict):
            kind = str(payload.get("event_kind") or payload.get("hook_event_name") or "")
            tool_name = payload.get("tool_name") if isinstance(payload.get("tool_name"), str) else None
        span = self.telemetry.start_span(kind, tool_name)
        try:
            outcome = await self.evaluate(payload)
            span.set_attribute("hookguard.action", outcome.decision.action.value)
        finally:
            span.end()
        await self.record(outcome)
        return outcome

    async def close(self) -> None:
        """Release audit sink resources (HTTP sessions)."""
        close = getattr(self.audit_sink, "close", None)
        if close is not None:
            await close()

    def runner(self) -> HookRunner:
        """Host-side runner for the hooks configured in this policy."""
        return HookRunner(
            hooks=self.hooks,
            fail_mode=self.fail_mode,
            tool_timeouts=self.tools.timeouts(),
        )


def template_dir() -> Path:
    return Path(__file__).parent / "yaml_engine" / "templates"


def list_templates() -> list[str]:
    return [p.stem for p in template_dir().glob("*.yaml")]

"""Error taxonomy for hook dispatch and policy loading."""

from __future__ import annotations


class HookguardConfigError(Exception):
    """Raised for configuration/load-time errors (invalid YAML, schema failures, etc.)."""

    pass


class HookError(Exception):
    """Base class for errors resolved at the dispatcher boundary.

    Every subclass carries a stable ``code`` that ends up in the
    synthesized Decision's ``error`` field.
    """

    code = "HookError"

    # Under fail_mode "open" these errors resolve to a permissive decision.
    fail_open_eligible = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnknownEventKind(HookError):  # noqa: N818
    """event_kind missing or outside the closed set."""

    code = "UnknownEventKind"


class MissingRequiredField(HookError):  # noqa: N818
    """A field required by the event kind is absent or malformed."""

    code = "MissingRequiredField"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class MalformedDecisionOutput(HookError):  # noqa: N818
    """A hook produced no decision, or one that violates the decision schema."""

    code = "MalformedDecisionOutput"
    fail_open_eligible = True


class HookTimeout(HookError):  # noqa: N818
    """A hook did not produce a decision within the allotted time."""

    code = "HookTimeout"
    fail_open_eligible = True

    def __init__(self, message: str, timeout: float | None = None):
        self.timeout = timeout
        super().__init__(message)


class RuleEvaluationError(HookError):  # noqa: N818
    """A rule's matcher could not be evaluated (bad pattern, wrong value type)."""

    code = "RuleEvaluationError"

    def __init__(self, message: str, rule_id: str | None = None):
        self.rule_id = rule_id
        super().__init__(message)


class LifecycleViolation(HookError):  # noqa: N818
    """An event arrived out of order for its session."""

    code = "LifecycleViolation"


ERROR_CODES: dict[str, type[HookError]] = {
    cls.code: cls
    for cls in (
        UnknownEventKind,
        MissingRequiredField,
        MalformedDecisionOutput,
        HookTimeout,
        RuleEvaluationError,
        LifecycleViolation,
    )
}

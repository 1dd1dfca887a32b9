"""Decision — the verdict a hook hands back to the session host."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from hookguard.errors import ERROR_CODES, HookError, MalformedDecisionOutput
from hookguard.events import EventKind

MAX_MESSAGE_LENGTH = 500


class Action(StrEnum):
    ALLOW = "allow"
    BLOCK = "block"
    MODIFY = "modify"
    RETRY = "retry"
    CONTINUE = "continue"


ACTIONS_BY_KIND: dict[EventKind, frozenset[Action]] = {
    EventKind.PRE_TOOL_USE: frozenset({Action.ALLOW, Action.BLOCK, Action.MODIFY}),
    EventKind.POST_TOOL_USE: frozenset({Action.CONTINUE, Action.RETRY, Action.BLOCK}),
    EventKind.USER_PROMPT_SUBMIT: frozenset({Action.CONTINUE, Action.BLOCK, Action.MODIFY}),
    EventKind.STOP: frozenset({Action.ALLOW, Action.BLOCK, Action.CONTINUE}),
    EventKind.SUBAGENT_STOP: frozenset({Action.ALLOW, Action.BLOCK, Action.CONTINUE}),
    EventKind.SESSION_START: frozenset({Action.ALLOW, Action.CONTINUE, Action.BLOCK}),
    EventKind.NOTIFICATION: frozenset({Action.ALLOW, Action.CONTINUE, Action.BLOCK}),
    EventKind.PRE_COMPACT: frozenset({Action.ALLOW, Action.CONTINUE, Action.BLOCK}),
}

# Action a host should treat as "proceed unchanged" for each kind.
PERMISSIVE_ACTION: dict[EventKind, Action] = {
    kind: Action.ALLOW if Action.ALLOW in actions else Action.CONTINUE for kind, actions in ACTIONS_BY_KIND.items()
}

_PAYLOAD_ACTIONS = frozenset({Action.MODIFY, Action.CONTINUE})
_WIRE_KEYS = {"action", "message", "modified_payload", "error", "rule_id"}


def _truncate(message: str | None) -> str | None:
    if message is not None and len(message) > MAX_MESSAGE_LENGTH:
        return message[: MAX_MESSAGE_LENGTH - 3] + "..."
    return message


@dataclass(frozen=True)
class Decision:
    action: Action
    message: str | None = None
    modified_payload: dict[str, Any] | None = None
    # Set only on decisions synthesized from a dispatch failure
    error: str | None = None
    # Set when a rule produced the block
    rule_id: str | None = None

    def __post_init__(self):
        if self.action == Action.BLOCK and not self.message:
            raise ValueError("a block decision requires a message")
        if self.modified_payload is not None and self.action not in _PAYLOAD_ACTIONS:
            raise ValueError(f"modified_payload is not allowed with action '{self.action.value}'")

    @classmethod
    def allow(cls, message: str | None = None) -> Decision:
        return cls(action=Action.ALLOW, message=_truncate(message))

    @classmethod
    def block(cls, message: str, *, rule_id: str | None = None, error: str | None = None) -> Decision:
        """Block with an actionable message (truncated to 500 chars)."""
        return cls(action=Action.BLOCK, message=_truncate(message), rule_id=rule_id, error=error)

    @classmethod
    def modify(cls, modified_payload: dict[str, Any], message: str | None = None) -> Decision:
        return cls(action=Action.MODIFY, message=_truncate(message), modified_payload=modified_payload)

    @classmethod
    def retry(cls, message: str) -> Decision:
        return cls(action=Action.RETRY, message=_truncate(message))

    @classmethod
    def continue_(cls, modified_payload: dict[str, Any] | None = None, message: str | None = None) -> Decision:
        return cls(action=Action.CONTINUE, message=_truncate(message), modified_payload=modified_payload)

    @property
    def is_synthesized(self) -> bool:
        return self.error is not None

    def valid_for(self, kind: EventKind) -> bool:
        return self.action in ACTIONS_BY_KIND[kind]

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the decision wire schema, omitting absent optionals."""
        data: dict[str, Any] = {"action": self.action.value}
        if self.message is not None:
            data["message"] = self.message
        if self.modified_payload is not None:
            data["modified_payload"] = self.modified_payload
        if self.error is not None:
            data["error"] = self.error
        if self.rule_id is not None:
            data["rule_id"] = self.rule_id
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), default=str)

    @classmethod
    def from_wire(cls, data: Any) -> Decision:
        """Parse a decision object produced by a hook.

        Raises:
            MalformedDecisionOutput: if *data* does not honor the schema.
        """
        if not isinstance(data, dict):
            raise MalformedDecisionOutput("decision must be a JSON object")
        unknown = set(data) - _WIRE_KEYS
        if unknown:
            raise MalformedDecisionOutput(f"decision has unknown fields: {', '.join(sorted(unknown))}")
        try:
            action = Action(data.get("action"))
        except ValueError:
            raise MalformedDecisionOutput(f"decision action {data.get('action')!r} is not valid") from None

        for key in ("message", "error", "rule_id"):
            if data.get(key) is not None and not isinstance(data[key], str):
                raise MalformedDecisionOutput(f"decision {key} must be a string")
        if data.get("error") is not None and data["error"] not in ERROR_CODES:
            raise MalformedDecisionOutput(f"decision error {data['error']!r} is not a known error code")
        payload = data.get("modified_payload")
        if payload is not None and not isinstance(payload, dict):
            raise MalformedDecisionOutput("decision modified_payload must be an object")

        try:
            return cls(
                action=action,
                message=data.get("message"),
                modified_payload=payload,
                error=data.get("error"),
                rule_id=data.get("rule_id"),
            )
        except ValueError as exc:
            raise MalformedDecisionOutput(str(exc)) from exc

    @classmethod
    def from_json(cls, text: str | bytes) -> Decision:
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as exc:
            raise MalformedDecisionOutput(f"hook output is not valid JSON: {exc}") from exc
        return cls.from_wire(data)


class FailMode(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


def synthesize_decision(
    error: HookError,
    fail_mode: FailMode | str = FailMode.CLOSED,
    kind: EventKind | None = None,
) -> Decision:
    """Turn a dispatch failure into the Decision the host receives.

    Every failure blocks, except timeouts and malformed hook output under
    an explicit fail-open policy, which resolve to the kind's permissive
    action. The message always names the failure so a synthesized block
    cannot be mistaken for a rule match.
    """
    if FailMode(fail_mode) == FailMode.OPEN and error.fail_open_eligible:
        action = PERMISSIVE_ACTION[kind] if kind is not None else Action.ALLOW
        return Decision(
            action=action,
            message=_truncate(f"Hook failure ({error.code}) ignored under fail-open policy: {error.message}"),
            error=error.code,
        )
    return Decision.block(f"Hook failure ({error.code}): {error.message}", error=error.code)

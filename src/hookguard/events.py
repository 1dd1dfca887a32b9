"""Lifecycle Event — immutable snapshot of one hook invocation's input."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from hookguard.errors import MissingRequiredField, UnknownEventKind
from hookguard.types import ToolSpec


class EventKind(StrEnum):
    """Closed set of lifecycle points at which a hook is invoked."""

    SESSION_START = "SessionStart"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    NOTIFICATION = "Notification"
    STOP = "Stop"
    SUBAGENT_STOP = "SubagentStop"
    PRE_COMPACT = "PreCompact"


TOOL_EVENTS = frozenset({EventKind.PRE_TOOL_USE, EventKind.POST_TOOL_USE})

# Claude-style payload keys accepted alongside the canonical names.
_ALIASES = {
    "hook_event_name": "event_kind",
    "tool_input": "params",
    "tool_response": "result",
}

_KNOWN_KEYS = {
    "event_kind",
    "session_id",
    "tool_name",
    "params",
    "result",
    "timestamp",
    "prompt",
    "context",
    "cwd",
    "retry_attempt",
    "retry_budget",
}


@dataclass(frozen=True)
class Event:
    """Immutable record of one lifecycle occurrence.

    ALWAYS create via create_event() factory, never directly.
    """

    event_kind: EventKind
    session_id: str = ""
    tool_name: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    prompt: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    cwd: str | None = None

    # PostToolUse retry bookkeeping supplied by the host
    retry_attempt: int = 0
    retry_budget: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)


class ToolRegistry:
    """Maps tool names to the params the security validator inspects.

    Unregistered tools get a generic spec: no required params, the
    common path keys checked, every string value open to ``*`` rules.
    """

    def __init__(self, specs: list[ToolSpec] | None = None):
        self._tools: dict[str, ToolSpec] = {}
        for spec in specs or []:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        self._tools[spec.name] = spec

    def get(self, tool_name: str) -> ToolSpec:
        return self._tools.get(tool_name) or ToolSpec(name=tool_name)

    def __contains__(self, tool_name: str) -> bool:
        return tool_name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def timeouts(self) -> dict[str, int]:
        """Per-tool timeout overrides in milliseconds."""
        return {name: spec.timeout_ms for name, spec in self._tools.items() if spec.timeout_ms is not None}


def default_tool_registry() -> ToolRegistry:
    """Registry covering the agent's built-in file and shell tools."""
    file_fields = ("file_path", "filePath")
    return ToolRegistry(
        [
            ToolSpec("Bash", required_params=("command",), path_fields=()),
            ToolSpec("Read", required_params=("file_path",), path_fields=file_fields),
            ToolSpec("Write", required_params=("file_path",), path_fields=file_fields),
            ToolSpec("Edit", required_params=("file_path",), path_fields=file_fields),
            ToolSpec("MultiEdit", required_params=("file_path",), path_fields=file_fields),
            ToolSpec("NotebookEdit", required_params=("notebook_path",), path_fields=("notebook_path",)),
            ToolSpec("Glob", required_params=("pattern",), path_fields=("path",)),
            ToolSpec("Grep", required_params=("pattern",), path_fields=("path",)),
        ]
    )


def _copy(value: Any) -> Any:
    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError):
        return copy.deepcopy(value)


def _parse_timestamp(raw: Any) -> datetime:
    if raw is None:
        return datetime.now(UTC)
    if not isinstance(raw, str):
        raise MissingRequiredField("timestamp must be an ISO-8601 string", field="timestamp")
    try:
        ts = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise MissingRequiredField(f"timestamp is not ISO-8601: {raw!r}", field="timestamp") from exc
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def _optional_int(data: dict, key: str, default: int | None) -> int | None:
    raw = data.get(key)
    if raw is None:
        return default
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        raise MissingRequiredField(f"{key} must be a non-negative integer", field=key)
    return raw


def parse_event_kind(raw: Any) -> EventKind:
    """Resolve a wire value to an EventKind or raise UnknownEventKind."""
    if raw is None:
        raise UnknownEventKind("event_kind is missing")
    try:
        return EventKind(raw)
    except ValueError:
        raise UnknownEventKind(f"event_kind {raw!r} is not a known lifecycle event") from None


def create_event(payload: Any) -> Event:
    """Validate a parsed wire payload and build an Event.

    Deep-copies params/result/context. Enforces the per-kind
    field-presence rules; this is the ONLY sanctioned way to create
    Event instances.

    Raises:
        UnknownEventKind: event_kind absent or outside the closed set.
        MissingRequiredField: a field the kind requires is absent or malformed.
    """
    if not isinstance(payload, dict):
        raise UnknownEventKind("event payload must be a JSON object")

    data = dict(payload)
    for alias, canonical in _ALIASES.items():
        if alias in data:
            value = data.pop(alias)
            data.setdefault(canonical, value)

    kind = parse_event_kind(data.get("event_kind"))

    session_id = data.get("session_id", "")
    if "session_id" in data and (not isinstance(session_id, str) or not session_id):
        raise MissingRequiredField("session_id must be a non-empty string", field="session_id")

    tool_name = data.get("tool_name")
    if kind in TOOL_EVENTS:
        if not isinstance(tool_name, str) or not tool_name:
            raise MissingRequiredField(f"{kind.value} event requires tool_name", field="tool_name")
    else:
        tool_name = None

    params = data.get("params")
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise MissingRequiredField("params must be an object", field="params")

    prompt = data.get("prompt")
    if prompt is None and isinstance(params.get("prompt"), str):
        prompt = params["prompt"]
    if kind == EventKind.USER_PROMPT_SUBMIT:
        if not isinstance(prompt, str):
            raise MissingRequiredField("UserPromptSubmit event requires a prompt string", field="prompt")
    elif prompt is not None and not isinstance(prompt, str):
        prompt = None

    context = data.get("context") or {}
    if not isinstance(context, dict):
        raise MissingRequiredField("context must be an object", field="context")

    cwd = data.get("cwd")
    if cwd is not None and not isinstance(cwd, str):
        raise MissingRequiredField("cwd must be a string", field="cwd")

    return Event(
        event_kind=kind,
        session_id=session_id,
        tool_name=tool_name,
        params=_copy(params),
        result=_copy(data.get("result")) if kind == EventKind.POST_TOOL_USE else None,
        timestamp=_parse_timestamp(data.get("timestamp")),
        prompt=prompt,
        context=_copy(context),
        cwd=cwd,
        retry_attempt=_optional_int(data, "retry_attempt", 0),
        retry_budget=_optional_int(data, "retry_budget", None),
        metadata=_copy({k: v for k, v in data.items() if k not in _KNOWN_KEYS}),
    )

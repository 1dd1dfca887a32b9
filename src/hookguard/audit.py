"""Audit events, redaction, and the local audit sinks."""

from __future__ import annotations

import json
import re
import sys
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from hookguard.builtins import (
    COMMAND_SECRET_PATTERNS,
    DEFAULT_RESULT_MARKERS,
    DEFAULT_SENSITIVE_KEYS,
    SECRET_VALUE_PATTERN,
    SENSITIVE_KEY_FRAGMENTS,
)

REDACTED = "[REDACTED]"


@runtime_checkable
class AuditSink(Protocol):
    """Protocol for audit event consumers."""

    async def emit(self, event: Any) -> None: ...


class AuditAction(StrEnum):
    EVENT_ALLOWED = "event_allowed"
    EVENT_BLOCKED = "event_blocked"
    EVENT_MODIFIED = "event_modified"
    EVENT_RETRY = "event_retry"
    EVENT_CONTINUED = "event_continued"
    DISPATCH_FAILED = "dispatch_failed"
    LIFECYCLE_VIOLATION = "lifecycle_violation"


@dataclass
class AuditEvent:
    schema_version: str = "1"

    # Identity
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    session_id: str = ""
    event_kind: str = ""

    # Tool
    tool_name: str | None = None
    params: dict[str, Any] = field(default_factory=dict)

    # Decision
    action: AuditAction = AuditAction.EVENT_BLOCKED
    decision: str = ""
    rule_id: str | None = None
    error: str | None = None
    message: str | None = None
    redacted_result: bool = False
    cached: bool = False

    duration_ms: int = 0
    policy_version: str | None = None
    fail_mode: str = "closed"


class RedactionPolicy:
    """Strip secrets from audit params and PostToolUse results.

    Keys are compared case-insensitively. String values are checked
    against well-known credential prefixes and, for results, against
    the configured sensitive-content markers.
    """

    MAX_PAYLOAD_SIZE = 32_768
    MAX_STRING_LENGTH = 1000

    def __init__(
        self,
        sensitive_keys: set[str] | None = None,
        detect_secret_values: bool = True,
        markers: tuple[str, ...] | list[str] | None = None,
    ):
        self._keys = frozenset(k.lower() for k in DEFAULT_SENSITIVE_KEYS.union(sensitive_keys or ()))
        self._detect_values = detect_secret_values
        self._markers = tuple(m.lower() for m in (DEFAULT_RESULT_MARKERS if markers is None else markers))
        self._secret_value = re.compile(SECRET_VALUE_PATTERN)
        self._command_patterns = [(re.compile(p), repl) for p, repl in COMMAND_SECRET_PATTERNS]

    def is_sensitive_key(self, key: str) -> bool:
        lowered = key.lower()
        return lowered in self._keys or any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS)

    def looks_like_secret(self, value: str) -> bool:
        return self._detect_values and self._secret_value.match(value) is not None

    def contains_sensitive(self, value: str) -> bool:
        """True when *value* carries a marker or starts like a credential."""
        if value == REDACTED:
            return False
        lowered = value.lower()
        return any(m in lowered for m in self._markers) or self.looks_like_secret(value.strip())

    def redact_args(self, args: Any) -> Any:
        """Copy of event params safe to log. Long strings are shortened."""
        if isinstance(args, dict):
            return {k: REDACTED if self.is_sensitive_key(str(k)) else self.redact_args(v) for k, v in args.items()}
        if isinstance(args, (list, tuple)):
            return [self.redact_args(item) for item in args]
        if isinstance(args, str):
            if self.looks_like_secret(args):
                return REDACTED
            if len(args) > self.MAX_STRING_LENGTH:
                return args[: self.MAX_STRING_LENGTH - 3] + "..."
        return args

    def redact_result(self, result: Any) -> tuple[Any, bool]:
        """Return (copy of *result* with sensitive strings replaced, whether any were)."""
        if isinstance(result, dict):
            out: dict[str, Any] = {}
            changed = False
            for key, value in result.items():
                if isinstance(value, str) and value not in ("", REDACTED) and self.is_sensitive_key(str(key)):
                    out[key], hit = REDACTED, True
                else:
                    out[key], hit = self.redact_result(value)
                changed |= hit
            return out, changed
        if isinstance(result, (list, tuple)):
            pairs = [self.redact_result(item) for item in result]
            return [value for value, _ in pairs], any(hit for _, hit in pairs)
        if isinstance(result, str) and self.contains_sensitive(result):
            return REDACTED, True
        return result, False

    def redact_bash_command(self, command: str) -> str:
        for pattern, replacement in self._command_patterns:
            command = pattern.sub(replacement, command)
        return command

    def cap_payload(self, data: dict) -> dict:
        """Drop params and message when the serialized event is too large."""
        if len(json.dumps(data, default=str)) > self.MAX_PAYLOAD_SIZE:
            data["_truncated"] = True
            data.pop("message", None)
            data["params"] = {"_redacted": f"payload exceeded {self.MAX_PAYLOAD_SIZE} bytes"}
        return data


def serialize_event(event: AuditEvent, redaction: RedactionPolicy | None) -> dict[str, Any]:
    """Convert an AuditEvent to a JSON-serializable dict."""
    data = asdict(event)
    data["timestamp"] = event.timestamp.isoformat()
    data["action"] = event.action.value
    if redaction is not None:
        data["params"] = redaction.redact_args(data.get("params", {}))
        command = data["params"].get("command") if isinstance(data["params"], dict) else None
        if isinstance(command, str):
            data["params"]["command"] = redaction.redact_bash_command(command)
        data = redaction.cap_payload(data)
    return data


class StderrAuditSink:
    """Emit audit events as JSON to stderr (stdout carries the decision)."""

    def __init__(self, redaction: RedactionPolicy | None = None):
        self._redaction = redaction or RedactionPolicy()

    async def emit(self, event: AuditEvent) -> None:
        data = serialize_event(event, self._redaction)
        print(json.dumps(data, default=str), file=sys.stderr)


class FileAuditSink:
    """Emit audit events as JSON lines to a file."""

    def __init__(self, path: str | Path, redaction: RedactionPolicy | None = None):
        self._path = Path(path)
        self._redaction = redaction or RedactionPolicy()

    async def emit(self, event: AuditEvent) -> None:
        data = serialize_event(event, self._redaction)
        line = json.dumps(data, default=str) + "\n"
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "a") as f:
            f.write(line)


class NullAuditSink:
    """Discard audit events."""

    async def emit(self, event: AuditEvent) -> None:
        pass

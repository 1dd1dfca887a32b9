"""Rules — named patterns that classify an event as disallowed."""

from __future__ import annotations

import logging
import re
import dataclasses
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from hookguard.errors import RuleEvaluationError
from hookguard.events import Event, EventKind

logger = logging.getLogger(__name__)

# Cap matcher input to prevent catastrophic backtracking DoS
MAX_MATCH_INPUT = 10_000

ANY_FIELD = "*"
ANY_TOOL = "*"


class Severity(StrEnum):
    BLOCK = "block"
    INFO = "info"


class MatchKind(StrEnum):
    REGEX = "regex"
    SUBSTRING = "substring"


@dataclass(frozen=True)
class Rule:
    """A pattern over one field of an event.

    ``field`` names a params key, ``prompt`` for the prompt text, or ``*``
    for every top-level string value. ``tools`` scopes PreToolUse and
    PostToolUse rules; prompt rules ignore it.
    """

    id: str
    pattern: str
    message: str
    field: str = ANY_FIELD
    tools: tuple[str, ...] = (ANY_TOOL,)
    severity: Severity = Severity.BLOCK
    match: MatchKind = MatchKind.REGEX
    events: tuple[EventKind, ...] = (EventKind.PRE_TOOL_USE,)
    ignore_case: bool = True
    _compiled: Any = dataclasses.field(default=None, init=False, repr=False, compare=False)
    _compile_error: str | None = dataclasses.field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.match == MatchKind.REGEX:
            flags = re.IGNORECASE if self.ignore_case else 0
            try:
                object.__setattr__(self, "_compiled", re.compile(self.pattern, flags))
            except re.error as exc:
                # Surfaced at evaluation time as RuleEvaluationError
                object.__setattr__(self, "_compile_error", str(exc))

    @property
    def blocking(self) -> bool:
        return self.severity == Severity.BLOCK

    def applies_to(self, event: Event) -> bool:
        if event.event_kind not in self.events:
            return False
        if event.tool_name is None or ANY_TOOL in self.tools:
            return True
        return event.tool_name in self.tools

    def search(self, text: str) -> str | None:
        """Return the matched text, or None when the rule does not match."""
        if self._compile_error is not None:
            raise RuleEvaluationError(
                f"Rule '{self.id}' has an unparseable pattern {self.pattern!r}: {self._compile_error}",
                rule_id=self.id,
            )
        text = text[:MAX_MATCH_INPUT]
        if self.match == MatchKind.SUBSTRING:
            haystack = text.lower() if self.ignore_case else text
            needle = self.pattern.lower() if self.ignore_case else self.pattern
            idx = haystack.find(needle)
            return text[idx : idx + len(needle)] if idx >= 0 else None
        m = self._compiled.search(text)
        return m.group(0) if m else None

    def select(self, event: Event) -> list[tuple[str, str]]:
        """Return the (field, text) pairs this rule inspects on *event*."""
        if self.field == "prompt":
            return [("prompt", event.prompt)] if event.prompt is not None else []

        if event.event_kind == EventKind.USER_PROMPT_SUBMIT and self.field == ANY_FIELD:
            return [("prompt", event.prompt)] if event.prompt is not None else []

        if self.field == ANY_FIELD:
            return [(k, v) for k, v in event.params.items() if isinstance(v, str)]

        if self.field not in event.params or event.params[self.field] is None:
            return []
        value = event.params[self.field]
        if not isinstance(value, str):
            raise RuleEvaluationError(
                f"Rule '{self.id}' expects a string in params.{self.field}, got {type(value).__name__}",
                rule_id=self.id,
            )
        return [(self.field, value)]


@dataclass(frozen=True)
class RuleMatch:
    rule: Rule
    field: str
    matched: str

    def describe(self) -> str:
        return f"Blocked by rule '{self.rule.id}': {self.rule.message} (matched {self.matched!r} in {self.field})"


@dataclass
class RuleEvaluation:
    """Outcome of walking a rule list for one event."""

    blocking: RuleMatch | None = None
    notices: list[RuleMatch] = dataclasses.field(default_factory=list)
    rules_evaluated: int = 0


def evaluate_rules(rules: list[Rule], event: Event) -> RuleEvaluation:
    """Walk *rules* in declaration order.

    Informational matches are collected and evaluation continues; the
    first blocking match short-circuits.

    Raises:
        RuleEvaluationError: a rule's matcher could not be evaluated.
    """
    evaluation = RuleEvaluation()
    for rule in rules:
        if not rule.applies_to(event):
            continue
        evaluation.rules_evaluated += 1
        for field_name, text in rule.select(event):
            matched = rule.search(text)
            if matched is None:
                continue
            found = RuleMatch(rule=rule, field=field_name, matched=matched)
            if rule.blocking:
                evaluation.blocking = found
                return evaluation
            logger.info("Rule %s matched %s (informational)", rule.id, field_name)
            evaluation.notices.append(found)
            break
    return evaluation

"""Result Validator — continue/retry after a tool runs, redacting sensitive output."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from hookguard.audit import RedactionPolicy
from hookguard.builtins import DEFAULT_RETRY_BUDGET
from hookguard.decisions import Decision
from hookguard.events import Event
from hookguard.rules import Rule, evaluate_rules

logger = logging.getLogger(__name__)

ERROR_INDICATORS = ("is_error", "error")


def _structural_problem(result: object, retry_on_error: bool) -> str | None:
    if result is None:
        return "tool returned no result"
    if not isinstance(result, dict):
        return f"tool result is a {type(result).__name__}, expected an object"
    if retry_on_error:
        for key in ERROR_INDICATORS:
            if result.get(key):
                return f"tool reported an error ({key}={result[key]!r})"
    return None


@dataclass
class ResultValidator:
    """PostToolUse validator.

    Order: policy rules over the tool params, result structure (retry or
    block), then redaction of the result.
    """

    rules: list[Rule] = field(default_factory=list)
    redaction: RedactionPolicy = field(default_factory=RedactionPolicy)
    retry_budget: int = DEFAULT_RETRY_BUDGET
    retry_on_error: bool = True

    def __call__(self, event: Event) -> Decision:
        evaluation = evaluate_rules(self.rules, event)
        if evaluation.blocking is not None:
            return Decision.block(evaluation.blocking.describe(), rule_id=evaluation.blocking.rule.id)

        problem = _structural_problem(event.result, self.retry_on_error)
        if problem is not None:
            budget = event.retry_budget if event.retry_budget is not None else self.retry_budget
            if event.retry_attempt < budget:
                logger.info(
                    "%s result invalid (%s); retry %d/%d", event.tool_name, problem, event.retry_attempt + 1, budget
                )
                return Decision.retry(f"Retry {event.tool_name} ({event.retry_attempt + 1}/{budget}): {problem}.")
            return Decision.block(
                f"{event.tool_name} result still invalid, retry budget exhausted ({budget}): {problem}."
            )

        redacted, changed = self.redaction.redact_result(event.result)
        if changed:
            logger.info("Redacted sensitive content from %s result", event.tool_name)
            return Decision.continue_(
                modified_payload={"result": redacted},
                message="Sensitive content was redacted from the tool result.",
            )
        if evaluation.notices:
            notes = ", ".join(n.rule.id for n in evaluation.notices)
            return Decision.continue_(message=f"Continued with notices: {notes}")
        return Decision.continue_()

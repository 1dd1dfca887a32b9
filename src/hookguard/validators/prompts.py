"""Prompt Transform — inspect and rewrite a submitted prompt."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from hookguard.builtins import DEFAULT_TEMPLATES
from hookguard.decisions import Decision
from hookguard.events import Event
from hookguard.rules import Rule, evaluate_rules

logger = logging.getLogger(__name__)


def build_token_pattern(templates: dict[str, str]) -> re.Pattern | None:
    """One alternation over all tokens, longest first so prefixes never shadow."""
    if not templates:
        return None
    alternation = "|".join(re.escape(t) for t in sorted(templates, key=len, reverse=True))
    return re.compile(rf"(?<![\w@-])(?:{alternation})(?![\w-])")


def expand_templates(prompt: str, templates: dict[str, str], pattern: re.Pattern | None = None) -> str:
    """Single left-to-right substitution pass.

    Expansion text is emitted as-is and never re-scanned for tokens.
    """
    pattern = pattern or build_token_pattern(templates)
    if pattern is None:
        return prompt
    return pattern.sub(lambda m: templates[m.group(0)], prompt)


def context_prefix(context: dict) -> str:
    pairs = ", ".join(f"{k}={context[k]}" for k in sorted(context))
    return f"[context: {pairs}]\n"


@dataclass
class PromptTransform:
    """UserPromptSubmit validator."""

    rules: list[Rule] = field(default_factory=list)
    templates: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TEMPLATES))
    context_prefix: bool = True

    def __post_init__(self):
        self._pattern = build_token_pattern(self.templates)

    def __call__(self, event: Event) -> Decision:
        evaluation = evaluate_rules(self.rules, event)
        if evaluation.blocking is not None:
            return Decision.block(evaluation.blocking.describe(), rule_id=evaluation.blocking.rule.id)

        original = event.prompt or ""
        prompt = expand_templates(original, self.templates, self._pattern)

        if self.context_prefix and event.context:
            prefix = context_prefix(event.context)
            if not prompt.startswith(prefix):
                prompt = prefix + prompt

        if prompt == original:
            return Decision.continue_()
        logger.debug("Prompt rewritten (%d -> %d chars)", len(original), len(prompt))
        return Decision.continue_(modified_payload={"prompt": prompt})

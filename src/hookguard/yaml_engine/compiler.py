"""Compiler — convert a parsed YAML policy into rules, validators and settings."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any

from hookguard.audit import RedactionPolicy
from hookguard.builtins import DEFAULT_PROTECTED_NAMES, DEFAULT_RETRY_BUDGET, DEFAULT_TEMPLATES, default_rules
from hookguard.decisions import FailMode
from hookguard.dispatcher import DEFAULT_TIMEOUT_MS
from hookguard.events import EventKind, ToolRegistry, default_tool_registry
from hookguard.rules import MatchKind, Rule, Severity
from hookguard.runner import HookCommand
from hookguard.types import ToolSpec
from hookguard.validators.security import PathScope

_TUPLE_FIELDS = ("required_params", "path_fields")


@dataclass(frozen=True)
class CompiledPolicy:
    """Result of compiling a YAML policy."""

    name: str = "default"
    fail_mode: FailMode = FailMode.CLOSED
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    tools: ToolRegistry = field(default_factory=default_tool_registry)
    rules: list[Rule] = field(default_factory=list)
    paths: PathScope = field(default_factory=PathScope)
    templates: dict[str, str] = field(default_factory=dict)
    context_prefix: bool = True
    redaction: RedactionPolicy = field(default_factory=RedactionPolicy)
    retry_budget: int = DEFAULT_RETRY_BUDGET
    retry_on_error: bool = True
    lifecycle_enabled: bool = False
    lifecycle_enforce: bool = False
    state_file: str | None = None
    cache_max_entries: int = 0
    hooks: dict[EventKind, HookCommand] = field(default_factory=dict)
    observability: dict[str, Any] = field(default_factory=dict)


def _compile_tools(section: dict[str, dict]) -> ToolRegistry:
    registry = default_tool_registry()
    for name, overrides in section.items():
        values = {k: tuple(v) if k in _TUPLE_FIELDS else v for k, v in overrides.items()}
        if name in registry:
            spec = dataclasses.replace(registry.get(name), **values)
        else:
            spec = ToolSpec(name=name, **values)
        registry.register(spec)
    return registry


def _compile_rule(raw: dict) -> Rule:
    return Rule(
        id=raw["id"],
        pattern=raw["pattern"],
        message=raw["message"],
        field=raw.get("field", "*"),
        tools=tuple(raw.get("tools", ["*"])),
        severity=Severity(raw.get("severity", "block")),
        match=MatchKind(raw.get("match", "regex")),
        events=tuple(EventKind(e) for e in raw.get("events", ["PreToolUse"])),
        ignore_case=raw.get("ignore_case", True),
    )


def compile_rules(policy: dict) -> list[Rule]:
    """Policy rules first (declaration order), then the built-in set if enabled.

    A policy rule whose id matches a built-in replaces it.
    """
    rules = [_compile_rule(r) for r in policy.get("rules", []) if r.get("enabled", True)]
    disabled = {r["id"] for r in policy.get("rules", []) if not r.get("enabled", True)}
    if policy["defaults"].get("builtin_rules", True):
        taken = {r.id for r in rules} | disabled
        rules.extend(r for r in default_rules() if r.id not in taken)
    return rules


def compile_policy(policy: dict) -> CompiledPolicy:
    """Compile a validated policy dict (output of load_policy)."""
    defaults = policy["defaults"]
    paths = policy.get("paths", {})
    prompts = policy.get("prompts", {})
    results = policy.get("results", {})
    lifecycle = policy.get("lifecycle", {})

    templates = dict(DEFAULT_TEMPLATES) if prompts.get("builtin_templates", True) else {}
    templates.update(prompts.get("templates", {}))

    redaction = RedactionPolicy(
        sensitive_keys=set(results.get("sensitive_keys", [])),
        detect_secret_values=results.get("detect_secret_values", True),
        markers=results.get("markers"),
    )

    hooks = {
        EventKind(kind): HookCommand(
            command=cfg["command"] if isinstance(cfg["command"], str) else tuple(cfg["command"]),
            timeout_ms=cfg.get("timeout_ms"),
        )
        for kind, cfg in policy.get("hooks", {}).items()
    }

    return CompiledPolicy(
        name=policy["metadata"]["name"],
        fail_mode=FailMode(defaults["fail_mode"]),
        timeout_ms=defaults.get("timeout_ms", DEFAULT_TIMEOUT_MS),
        tools=_compile_tools(policy.get("tools", {})),
        rules=compile_rules(policy),
        paths=PathScope(
            allowed_root=paths.get("allowed_root"),
            protected_names=tuple(paths.get("protected_names", DEFAULT_PROTECTED_NAMES)),
            use_event_cwd=paths.get("use_event_cwd", True),
        ),
        templates=templates,
        context_prefix=prompts.get("context_prefix", True),
        redaction=redaction,
        retry_budget=results.get("retry_budget", DEFAULT_RETRY_BUDGET),
        retry_on_error=results.get("retry_on_error", True),
        lifecycle_enabled=lifecycle.get("enabled", False),
        lifecycle_enforce=lifecycle.get("enforce", False),
        state_file=lifecycle.get("state_file"),
        cache_max_entries=policy.get("cache", {}).get("max_entries", 0),
        hooks=hooks,
        observability=policy.get("observability", {}),
    )

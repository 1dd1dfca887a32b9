"""Security Validator — allow/block a tool invocation before it runs."""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass, field

from hookguard.builtins import DEFAULT_PROTECTED_NAMES
from hookguard.decisions import Decision
from hookguard.events import Event, ToolRegistry, default_tool_registry
from hookguard.rules import Rule, evaluate_rules

logger = logging.getLogger(__name__)

PATH_TRAVERSAL_RULE = "path-traversal"
PATH_SCOPE_RULE = "path-outside-root"
PROTECTED_NAME_RULE = "protected-name"
REQUIRED_PARAMS_RULE = "missing-params"


@dataclass(frozen=True)
class PathScope:
    """Where file-path params may point."""

    allowed_root: str | None = None
    protected_names: tuple[str, ...] = DEFAULT_PROTECTED_NAMES
    # Fall back to the event's cwd when no explicit root is configured
    use_event_cwd: bool = True


# Drive-qualified Windows paths: C:\x, C:/x and drive-relative C:x
_DRIVE = re.compile(r"^[A-Za-z]:")


def _normalise(path: str) -> str:
    path = path.replace("\\", "/")
    if _DRIVE.match(path):
        path = path[0].upper() + path[1:]
    return path


def _segments(path: str) -> list[str]:
    return [s for s in _normalise(path).split("/") if s]


def has_traversal(path: str) -> bool:
    return ".." in _segments(path)


def is_absolute(path: str) -> bool:
    """True for POSIX, UNC (``\\\\host\\share``) and drive-qualified paths."""
    path = _normalise(path)
    return posixpath.isabs(path) or _DRIVE.match(path) is not None


def resolve_lexically(path: str, root: str) -> str:
    """Absolute, normalised form of *path* relative to *root* (no filesystem access)."""
    path = _normalise(path)
    if path.startswith("~"):
        return posixpath.normpath(path)
    if not is_absolute(path):
        path = posixpath.join(_normalise(root), path)
    return posixpath.normpath(path)


def is_within(path: str, root: str) -> bool:
    root = posixpath.normpath(_normalise(root))
    if root == "/":
        return path.startswith("/")
    return path == root or path.startswith(root + "/")


def protected_name_hit(path: str, names: tuple[str, ...]) -> str | None:
    segments = _segments(path)
    if not segments:
        return None
    last = segments[-1].lower()
    for name in names:
        if name.lower() in last:
            return name
    return None


@dataclass
class SecurityValidator:
    """PreToolUse validator.

    Order: required params, denylist rules, path traversal/scope,
    protected names. First match wins.
    """

    rules: list[Rule] = field(default_factory=list)
    paths: PathScope = field(default_factory=PathScope)
    tools: ToolRegistry = field(default_factory=default_tool_registry)

    def __call__(self, event: Event) -> Decision:
        spec = self.tools.get(event.tool_name)

        # 0. Required params
        for name in spec.required_params:
            value = event.params.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                return Decision.block(
                    f"Blocked: {event.tool_name} requires a non-empty '{name}' parameter.",
                    rule_id=REQUIRED_PARAMS_RULE,
                )

        # 1. Denylist rules
        evaluation = evaluate_rules(self.rules, event)
        if evaluation.blocking is not None:
            return Decision.block(evaluation.blocking.describe(), rule_id=evaluation.blocking.rule.id)

        # 2 + 3. Path scope and protected names
        root = self.paths.allowed_root
        if root is None and self.paths.use_event_cwd:
            root = event.cwd

        paths = [p for p in (event.params.get(key) for key in spec.path_fields) if isinstance(p, str) and p]

        for path in paths:
            if has_traversal(path):
                return Decision.block(
                    f"Path traversal blocked: '{path}' contains a parent-directory segment.",
                    rule_id=PATH_TRAVERSAL_RULE,
                )
            if root and not is_within(resolve_lexically(path, root), root):
                return Decision.block(
                    f"Path '{path}' resolves outside the allowed root '{root}'.",
                    rule_id=PATH_SCOPE_RULE,
                )

        for path in paths:
            hit = protected_name_hit(path, self.paths.protected_names)
            if hit is not None:
                return Decision.block(
                    f"Access to protected file blocked: '{path}' matches '{hit}'. "
                    "This file may contain secrets or credentials.",
                    rule_id=PROTECTED_NAME_RULE,
                )

        if evaluation.notices:
            notes = ", ".join(n.rule.id for n in evaluation.notices)
            return Decision.allow(f"Allowed with notices: {notes}")
        return Decision.allow()

"""YAML Policy Loader — parse, validate against JSON Schema, compute policy hash."""

from __future__ import annotations

import hashlib
import importlib.resources as _resources
import json
import re
import shlex
from dataclasses import dataclass
from pathlib import Path

import jsonschema
import yaml

from hookguard.errors import HookguardConfigError

MAX_POLICY_SIZE = 1_048_576  # 1 MB

# Lazy-loaded schema singleton
_schema_cache: dict | None = None


def _get_schema() -> dict:
    """Load and cache the JSON Schema for validation."""
    global _schema_cache  # noqa: PLW0603
    if _schema_cache is None:
        schema_text = (
            _resources.files("hookguard.yaml_engine").joinpath("hookguard-v1.schema.json").read_text(encoding="utf-8")
        )
        _schema_cache = json.loads(schema_text)
    return _schema_cache


@dataclass(frozen=True)
class PolicyHash:
    """SHA256 hash of raw YAML bytes, used as policy_version."""

    hex: str

    def __str__(self) -> str:
        return self.hex


def _compute_hash(raw_bytes: bytes) -> PolicyHash:
    return PolicyHash(hex=hashlib.sha256(raw_bytes).hexdigest())


def _validate_schema(data: dict) -> None:
    schema = _get_schema()
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path)
        where = f" at '{location}'" if location else ""
        raise HookguardConfigError(f"Schema validation failed{where}: {e.message}") from e


def _check_rules(data: dict) -> None:
    """Rule ids must be unique and regex patterns must compile."""
    seen: set[str] = set()
    for rule in data.get("rules", []):
        rule_id = rule["id"]
        if rule_id in seen:
            raise HookguardConfigError(f"Duplicate rule id: '{rule_id}'")
        seen.add(rule_id)
        if rule.get("match", "regex") == "regex":
            try:
                re.compile(rule["pattern"])
            except re.error as e:
                raise HookguardConfigError(
                    f"Rule '{rule_id}': invalid regex pattern '{rule['pattern']}': {e}"
                ) from e


def _check_hooks(data: dict) -> None:
    """Shell-string hook commands must split into at least one argument."""
    for kind, hook in data.get("hooks", {}).items():
        command = hook["command"]
        if not isinstance(command, str):
            continue
        try:
            argv = shlex.split(command)
        except ValueError as e:
            raise HookguardConfigError(f"Hook for {kind}: cannot parse command {command!r}: {e}") from e
        if not argv:
            raise HookguardConfigError(f"Hook for {kind}: command is empty")


def _parse(raw_bytes: bytes) -> tuple[dict, PolicyHash]:
    policy_hash = _compute_hash(raw_bytes)

    try:
        data = yaml.safe_load(raw_bytes)
    except yaml.YAMLError as e:
        raise HookguardConfigError(f"YAML parse error: {e}") from e

    if not isinstance(data, dict):
        raise HookguardConfigError("YAML document must be a mapping")

    _validate_schema(data)
    _check_rules(data)
    _check_hooks(data)

    return data, policy_hash


def load_policy(source: str | Path) -> tuple[dict, PolicyHash]:
    """Load and validate a YAML policy file.

    Args:
        source: Path to a YAML file.

    Returns:
        Tuple of (parsed policy dict, policy hash).

    Raises:
        HookguardConfigError: If the YAML is invalid, fails schema validation,
            has duplicate rule IDs, invalid regex patterns, or an unparseable
            hook command.
        FileNotFoundError: If the file does not exist.
    """
    path = Path(source)

    file_size = path.stat().st_size
    if file_size > MAX_POLICY_SIZE:
        raise HookguardConfigError(f"Policy file too large ({file_size} bytes, max {MAX_POLICY_SIZE})")

    return _parse(path.read_bytes())


def load_policy_string(content: str | bytes) -> tuple[dict, PolicyHash]:
    """Load and validate a YAML policy from a string or bytes.

    Like :func:`load_policy` but accepts YAML content directly instead of
    a file path.
    """
    raw_bytes = content.encode("utf-8") if isinstance(content, str) else content

    if len(raw_bytes) > MAX_POLICY_SIZE:
        raise HookguardConfigError(f"Policy content too large ({len(raw_bytes)} bytes, max {MAX_POLICY_SIZE})")

    return _parse(raw_bytes)

"""YAML Policy Pipeline — parse, validate, and compile hook policies."""

from __future__ import annotations

from hookguard.yaml_engine.compiler import CompiledPolicy, compile_policy, compile_rules
from hookguard.yaml_engine.loader import PolicyHash, load_policy, load_policy_string

__all__ = [
    "CompiledPolicy",
    "PolicyHash",
    "compile_policy",
    "compile_rules",
    "load_policy",
    "load_policy_string",
]

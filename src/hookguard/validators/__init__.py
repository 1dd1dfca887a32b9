"""Built-in validators, one per inspected lifecycle event."""

from __future__ import annotations

from hookguard.validators.passthrough import passthrough
from hookguard.validators.prompts import PromptTransform, expand_templates
from hookguard.validators.results import ResultValidator
from hookguard.validators.security import PathScope, SecurityValidator

__all__ = [
    "PathScope",
    "PromptTransform",
    "ResultValidator",
    "SecurityValidator",
    "expand_templates",
    "passthrough",
]

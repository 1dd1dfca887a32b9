"""Shared types for hookguard internals."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ToolSpec:
    """How a tool's params are inspected by the security validator."""

    name: str
    required_params: tuple[str, ...] = ()
    path_fields: tuple[str, ...] = ("file_path", "filePath", "path", "notebook_path")
    timeout_ms: int | None = None

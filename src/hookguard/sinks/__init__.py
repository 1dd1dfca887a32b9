"""HTTP audit sinks (require aiohttp)."""

from __future__ import annotations

from hookguard.sinks.webhook import WebhookAuditSink

__all__ = ["WebhookAuditSink"]

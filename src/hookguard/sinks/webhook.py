"""WebhookAuditSink — deliver audit events to an HTTP endpoint."""

from __future__ import annotations

import asyncio
import json
import logging

import aiohttp

from hookguard.audit import AuditEvent, RedactionPolicy, serialize_event

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=10)


class WebhookAuditSink:
    """POST each audit event as JSON, retrying with exponential backoff.

    The hook has already answered the host when events are emitted, so
    a slow endpoint costs process lifetime, never decision latency.
    Delivery failures are logged and counted in ``dropped``; they are
    not raised. The aiohttp session is opened on first use and kept
    until ``close()``.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        redaction_policy: RedactionPolicy | None = None,
        *,
        max_retries: int = 3,
        base_delay: float = 1.0,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.url = url
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.delivered = 0
        self.dropped = 0
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        self._redaction = redaction_policy or RedactionPolicy()
        self._timeout = timeout or DEFAULT_TIMEOUT
        self._session: aiohttp.ClientSession | None = None

    def _backoff(self, attempt: int) -> float:
        return self.base_delay * (2**attempt)

    def _session_for_send(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _post(self, body: str) -> None:
        async with self._session_for_send().post(self.url, data=body, headers=self._headers) as resp:
            resp.raise_for_status()

    async def emit(self, event: AuditEvent) -> None:
        body = json.dumps(serialize_event(event, self._redaction), default=str)
        error: Exception | None = None
        for attempt in range(self.max_retries):
            if attempt:
                await asyncio.sleep(self._backoff(attempt - 1))
            try:
                await self._post(body)
            except Exception as exc:
                error = exc
                logger.warning("Audit webhook attempt %d/%d failed: %s", attempt + 1, self.max_retries, exc)
                continue
            self.delivered += 1
            return
        self.dropped += 1
        logger.error("Dropping %s audit event for %s: %s", event.action.value, self.url, error)

    async def close(self) -> None:
        """Release the connection pool."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

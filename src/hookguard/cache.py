"""DecisionCache — bounded LRU of PreToolUse decisions keyed by content hash."""

from __future__ import annotations

import hashlib
import json
from collections import OrderedDict

from hookguard.decisions import Decision
from hookguard.events import Event, EventKind

CACHEABLE_KINDS = frozenset({EventKind.PRE_TOOL_USE})


def content_key(event: Event) -> str:
    """SHA-256 over the canonical JSON of (event_kind, tool_name, params).

    The event cwd joins the key when present because it can act as the
    allowed root for path checks.
    """
    parts = [event.event_kind.value, event.tool_name, event.params]
    if event.cwd is not None:
        parts.append(event.cwd)
    canonical = json.dumps(
        parts,
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class DecisionCache:
    """Least-recently-used store with an explicit entry cap.

    Only decisions a validator actually produced are stored; synthesized
    failure decisions never are. Pass an instance to the guard; there
    is no module-level cache.
    """

    def __init__(self, max_entries: int = 256):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, Decision] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, event: Event) -> Decision | None:
        if event.event_kind not in CACHEABLE_KINDS:
            return None
        key = content_key(event)
        decision = self._entries.get(key)
        if decision is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return decision

    def put(self, event: Event, decision: Decision) -> None:
        if event.event_kind not in CACHEABLE_KINDS or decision.is_synthesized:
            return
        key = content_key(event)
        self._entries[key] = decision
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

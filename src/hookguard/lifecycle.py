"""Session lifecycle — event ordering tracked in a StorageBackend."""

from __future__ import annotations

from hookguard.events import EventKind
from hookguard.storage import StorageBackend

_K = EventKind

# Allowed successors of each event kind. SessionStart only ever comes
# first; Stop is terminal.
TRANSITIONS: dict[EventKind | None, frozenset[EventKind]] = {
    None: frozenset({_K.SESSION_START}),
    _K.SESSION_START: frozenset({_K.USER_PROMPT_SUBMIT, _K.NOTIFICATION, _K.PRE_COMPACT, _K.STOP}),
    _K.USER_PROMPT_SUBMIT: frozenset(
        {
            _K.USER_PROMPT_SUBMIT,
            _K.PRE_TOOL_USE,
            _K.NOTIFICATION,
            _K.SUBAGENT_STOP,
            _K.PRE_COMPACT,
            _K.STOP,
        }
    ),
    # A blocked PreToolUse never gets a PostToolUse
    _K.PRE_TOOL_USE: frozenset(
        {_K.POST_TOOL_USE, _K.PRE_TOOL_USE, _K.NOTIFICATION, _K.SUBAGENT_STOP, _K.PRE_COMPACT, _K.STOP}
    ),
    _K.POST_TOOL_USE: frozenset(
        {
            _K.PRE_TOOL_USE,
            _K.USER_PROMPT_SUBMIT,
            _K.NOTIFICATION,
            _K.SUBAGENT_STOP,
            _K.PRE_COMPACT,
            _K.STOP,
        }
    ),
    _K.NOTIFICATION: frozenset(
        {
            _K.NOTIFICATION,
            _K.USER_PROMPT_SUBMIT,
            _K.PRE_TOOL_USE,
            _K.POST_TOOL_USE,
            _K.SUBAGENT_STOP,
            _K.PRE_COMPACT,
            _K.STOP,
        }
    ),
    _K.SUBAGENT_STOP: frozenset(set(EventKind) - {_K.SESSION_START}),
    _K.PRE_COMPACT: frozenset(set(EventKind) - {_K.SESSION_START}),
    _K.STOP: frozenset(),
}


def is_valid_transition(previous: EventKind | None, nxt: EventKind) -> bool:
    return nxt in TRANSITIONS[previous]


class SessionLifecycle:
    """Tracks the last event kind per session.

    All methods are ASYNC because StorageBackend is async.
    Events without a session id are never tracked.
    """

    def __init__(self, backend: StorageBackend):
        self._backend = backend

    @staticmethod
    def _key(session_id: str) -> str:
        return f"s:{session_id}:last_event"

    async def last_event(self, session_id: str) -> EventKind | None:
        raw = await self._backend.get(self._key(session_id))
        return EventKind(raw) if raw else None

    async def check(self, session_id: str, kind: EventKind) -> tuple[bool, EventKind | None]:
        """Return (valid, previous) for *kind* arriving next in *session_id*."""
        previous = await self.last_event(session_id)
        return is_valid_transition(previous, kind), previous

    async def record(self, session_id: str, kind: EventKind) -> None:
        await self._backend.set(self._key(session_id), kind.value)
        await self._backend.increment(f"s:{session_id}:events")

    async def event_count(self, session_id: str) -> int:
        return int(await self._backend.get(f"s:{session_id}:events") or 0)

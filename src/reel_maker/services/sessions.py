"""Per-user session store and workflow state machine."""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace

from reel_maker.domain.sessions import Session, WorkflowEvent, WorkflowState

_ANY_STATE_EVENTS = {WorkflowEvent.FIRST_CONTACT, WorkflowEvent.CANCEL}

TRANSITIONS: dict[tuple[WorkflowState, WorkflowEvent], WorkflowState] = {
    (WorkflowState.MENU_SHOWN, WorkflowEvent.CREATE_NEW): (
        WorkflowState.AUDIO_SELECTION
    ),
    (WorkflowState.MENU_SHOWN, WorkflowEvent.VIEW_MENU_PAGE): WorkflowState.MENU_SHOWN,
    (WorkflowState.AUDIO_SELECTION, WorkflowEvent.AUDIO_CHOSEN): (
        WorkflowState.AWAITING_PHOTO
    ),
    (WorkflowState.AWAITING_PHOTO, WorkflowEvent.PHOTO_ACCEPTED): (
        WorkflowState.PREVIEW_READY
    ),
    (WorkflowState.AWAITING_PHOTO, WorkflowEvent.PHOTO_REJECTED): (
        WorkflowState.AWAITING_PHOTO
    ),
    (WorkflowState.PREVIEW_READY, WorkflowEvent.CONFIRM): WorkflowState.ENCODING,
    (WorkflowState.ENCODING, WorkflowEvent.ENCODE_FINISHED): WorkflowState.MENU_SHOWN,
}


class IllegalTransitionError(Exception):
    """Raised when an event is not valid in the session's current state."""

    def __init__(self, state: WorkflowState, event: WorkflowEvent) -> None:
        super().__init__(f"Event {event.value} is not valid in state {state.value}")
        self.state = state
        self.event = event


def next_state(state: WorkflowState, event: WorkflowEvent) -> WorkflowState:
    """Return the state reached by applying ``event`` in ``state``."""
    if event in _ANY_STATE_EVENTS:
        return WorkflowState.MENU_SHOWN
    resolved = TRANSITIONS.get((state, event))
    if resolved is None:
        raise IllegalTransitionError(state, event)
    return resolved


def is_allowed(state: WorkflowState, event: WorkflowEvent) -> bool:
    """Return true when ``event`` has a defined transition from ``state``."""
    return event in _ANY_STATE_EVENTS or (state, event) in TRANSITIONS


@dataclass
class SessionStore:
    """In-memory sessions keyed by transport user id.

    Each key has its own ``asyncio.Lock``; handlers hold it for the whole
    event so two events from the same user never interleave.
    """

    _sessions: dict[int, Session] = field(default_factory=dict)
    _locks: dict[int, asyncio.Lock] = field(default_factory=dict)

    def get(self, user_id: int) -> Session | None:
        """Return the session for a user, if present."""
        return self._sessions.get(user_id)

    def get_or_create(self, user_id: int) -> Session:
        """Return the user's session, creating an idle one on first contact."""
        session = self._sessions.get(user_id)
        if session is None:
            session = Session(user_id=user_id)
            self._sessions[user_id] = session
        return session

    def update(self, user_id: int, fn: Callable[[Session], Session]) -> Session:
        """Replace the user's session with ``fn(current)`` and return it."""
        updated = fn(self.get_or_create(user_id))
        self._sessions[user_id] = updated
        return updated

    def reset(self, user_id: int) -> Session:
        """Drop audio choice and pending post, leaving the menu shown."""
        session = Session(user_id=user_id, state=WorkflowState.MENU_SHOWN)
        self._sessions[user_id] = session
        return session

    def transition(
        self, user_id: int, event: WorkflowEvent, **changes: object
    ) -> Session:
        """Apply ``event`` to the user's session along with field changes."""
        return self.update(
            user_id,
            lambda session: replace(
                session, state=next_state(session.state, event), **changes
            ),
        )

    @asynccontextmanager
    async def exclusive(self, user_id: int) -> AsyncIterator[Session]:
        """Hold the user's lock and yield the session current at entry."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            yield self.get_or_create(user_id)

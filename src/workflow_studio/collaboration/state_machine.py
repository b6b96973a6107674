from __future__ import annotations

from enum import Enum


class SessionState(str, Enum):
    READY = "ready"
    SAVING = "saving"
    SAVED = "saved"
    CONFLICT = "conflict"
    ERROR = "error"
    CLOSED = "closed"


ALLOWED_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.READY: {SessionState.SAVING, SessionState.ERROR, SessionState.CLOSED},
    SessionState.SAVING: {
        SessionState.SAVED,
        SessionState.CONFLICT,
        SessionState.ERROR,
        SessionState.CLOSED,
    },
    SessionState.SAVED: {SessionState.READY, SessionState.CLOSED},
    # Leaving CONFLICT requires refresh, force or dismiss.
    SessionState.CONFLICT: {SessionState.READY, SessionState.SAVING, SessionState.CLOSED},
    SessionState.ERROR: {SessionState.READY, SessionState.SAVING, SessionState.CLOSED},
    SessionState.CLOSED: set(),
}


class IllegalTransitionError(ValueError):
    pass


def transition(*, current: SessionState, to: SessionState) -> SessionState:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to

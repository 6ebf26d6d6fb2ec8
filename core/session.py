import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Protocol

from core.models import EmptyContext, Flow, Session

logger = logging.getLogger(__name__)

SESSION_TIMEOUT = timedelta(hours=2)


class SessionStore(Protocol):
    """Persistence boundary for sessions, one per identity."""

    def load(self, identity: str) -> Optional[Session]: ...

    def save(self, session: Session) -> None: ...

    def erase(self, identity: str) -> bool: ...


class InMemorySessionStore:
    """Process-local session store.

    Sessions are copied on the way in and out so a caller holding a Session
    cannot mutate stored state behind the engine's back.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def load(self, identity: str) -> Optional[Session]:
        """Get the stored session for an identity.

        Args:
            identity: External sender identity (anonymous id)

        Returns:
            Copy of the stored Session, or None on first contact
        """
        with self._lock:
            session = self._sessions.get(identity)
        return session.model_copy(deep=True) if session else None

    def save(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.anonymous_id] = session.model_copy(deep=True)
        logger.debug(f"Saved session for user {session.user_id}")

    def erase(self, identity: str) -> bool:
        """Remove a session on an explicit data-erasure request."""
        with self._lock:
            removed = self._sessions.pop(identity, None) is not None
        if removed:
            logger.info("Erased session on data-erasure request")
        return removed

    def get_session_stats(self) -> Dict:
        """Get session statistics.

        Returns:
            Dictionary with counts of stored sessions per flow
        """
        with self._lock:
            sessions = list(self._sessions.values())
        by_flow: Dict[str, int] = {}
        for session in sessions:
            by_flow[session.current_flow.value] = by_flow.get(session.current_flow.value, 0) + 1
        return {
            'total_sessions': len(sessions),
            'sessions_by_flow': by_flow,
        }


def is_expired(session: Session, received_at: datetime) -> bool:
    """Check whether an in-flow session has been silent longer than SESSION_TIMEOUT.

    Idle sessions never expire; there is nothing to abandon.
    """
    if session.current_flow == Flow.IDLE or session.last_activity is None:
        return False
    return as_utc(received_at) - as_utc(session.last_activity) > SESSION_TIMEOUT


def reset_session(session: Session) -> Session:
    """Return the session back at idle with its flow data cleared."""
    return session.model_copy(update={
        'current_flow': Flow.IDLE,
        'flow_step': 0,
        'context': EmptyContext(),
    })


def touch_session(session: Session, received_at: datetime) -> Session:
    """Record activity; an out-of-order older message never moves the clock back."""
    received_at = as_utc(received_at)
    last = session.last_activity
    if last is not None and received_at < as_utc(last):
        return session
    return session.model_copy(update={"last_activity": received_at})


def as_utc(moment: datetime) -> datetime:
    """Treat naive timestamps as UTC so they compare with aware ones."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment

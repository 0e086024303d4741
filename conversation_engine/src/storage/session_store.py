"""
Session Store for dialogue state

Single-process, in-memory. Sessions live until cleared or swept as idle.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Mapping, Optional, Protocol
import structlog

from shared.exceptions import ProgrammingInvariantError
from shared.models.session import FieldValue, FlowState, Session

logger = structlog.get_logger(__name__)


class SessionStore(Protocol):
    """Interface the orchestrator relies on"""

    def get(self, user_id: str) -> Session: ...

    def put(self, user_id: str, session: Session) -> None: ...

    def clear(self, user_id: str) -> None: ...

    def merge_fields(self, user_id: str, partial: Mapping[str, FieldValue]) -> Session: ...

    def sweep_expired(self, max_idle_seconds: float, now: Optional[datetime] = None) -> int: ...


class InMemorySessionStore:
    """
    Dict-backed session store

    All access goes through one lock, so concurrent turns from different
    users never corrupt each other's entries. Callers always receive copies.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Session:
        """Current session, or a fresh NONE session for unknown users"""
        with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                return Session(user_id=user_id)
            return session.model_copy(deep=True)

    def put(self, user_id: str, session: Session) -> None:
        if session.state == FlowState.NONE:
            self.clear(user_id)
            return

        stored = session.model_copy(deep=True, update={"user_id": user_id})
        stored.touch()
        with self._lock:
            self._sessions[user_id] = stored

        logger.debug("session_saved", user_id=user_id, state=stored.state.value)

    def clear(self, user_id: str) -> None:
        with self._lock:
            removed = self._sessions.pop(user_id, None)

        if removed is not None:
            logger.debug("session_cleared", user_id=user_id, state=removed.state.value)

    def merge_fields(self, user_id: str, partial: Mapping[str, FieldValue]) -> Session:
        """
        Shallow-merge new field values over the stored ones

        Args:
            user_id: Chat participant ID
            partial: Field values to set; existing keys not in `partial` are kept

        Returns:
            Copy of the updated session

        Raises:
            ProgrammingInvariantError: the user has no active flow
        """
        with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                raise ProgrammingInvariantError(f"no active session for user {user_id}")
            session.fields.update(partial)
            session.touch()
            return session.model_copy(deep=True)

    def sweep_expired(self, max_idle_seconds: float, now: Optional[datetime] = None) -> int:
        """
        Drop sessions idle for longer than `max_idle_seconds`

        Returns:
            Number of sessions removed
        """
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=max_idle_seconds)
        with self._lock:
            expired = [
                user_id for user_id, session in self._sessions.items()
                if session.last_activity_at < cutoff
            ]
            for user_id in expired:
                del self._sessions[user_id]

        if expired:
            logger.info("sessions_expired", count=len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

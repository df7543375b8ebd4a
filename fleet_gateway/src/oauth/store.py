"""Session and login-state storage.

The coordinator and the authentication gate only see the abstract stores, so
the in-memory implementations can be swapped for a shared backend.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from fleet_gateway.src.logger import log
from fleet_gateway.src.oauth.models import OAuthCorrelation, Session


class SessionStore(ABC):
    """Abstract store for authenticated sessions.

    get() must treat an expired session exactly like an absent one and evict
    it as a side effect.
    """

    @abstractmethod
    def create(self, session: Session) -> str:
        """Store a session under its pre-generated id.

        Args:
            session: Session to store

        Returns:
            The session id
        """

    @abstractmethod
    def get(self, session_id: str) -> Optional[Session]:
        """Get a live session by id.

        Args:
            session_id: Session identifier

        Returns:
            Session if found and not expired, None otherwise
        """

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Delete a session.

        Args:
            session_id: Session identifier
        """

    @abstractmethod
    def cleanup_expired(self) -> int:
        """Remove expired sessions.

        Returns:
            Number of sessions removed
        """

    @abstractmethod
    def count(self) -> int:
        """Get number of stored sessions."""


class CorrelationStore(ABC):
    """Abstract store for pending login attempts.

    Entries are short-lived and consumed at most once.
    """

    @abstractmethod
    def put(self, correlation: OAuthCorrelation) -> None:
        """Save a pending login attempt.

        Args:
            correlation: Correlation to save
        """

    @abstractmethod
    def consume(self, state: str) -> Optional[OAuthCorrelation]:
        """Remove and return the correlation for a state.

        Args:
            state: State echoed by the identity provider

        Returns:
            Correlation if found and not expired, None otherwise
        """

    @abstractmethod
    def cleanup_expired(self) -> int:
        """Remove expired correlations.

        Returns:
            Number of correlations removed
        """

    @abstractmethod
    def count(self) -> int:
        """Get number of pending correlations."""


class InMemorySessionStore(SessionStore):
    """Session storage in process memory.

    Thread-safe: all operations are protected by a re-entrant lock to handle
    concurrent access from async handlers and threadpool workers. The lock is
    held only around the dictionary operations.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize session store.

        Args:
            clock: Source of the current epoch time
        """
        self._lock = threading.RLock()
        self._sessions: Dict[str, Session] = {}
        self._clock = clock

    def create(self, session: Session) -> str:
        with self._lock:
            if session.session_id in self._sessions:
                raise ValueError("Session id already in use")
            self._sessions[session.session_id] = session
        log.debug(
            "Stored session for user %s (expires at %s)",
            session.user_id,
            session.expires_at,
        )
        return session.session_id

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            if not session:
                return None

            if session.is_expired(self._clock()):
                del self._sessions[session_id]
                log.debug("Session for user %s expired, evicted", session.user_id)
                return None

            return session

    def delete(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session:
            log.debug("Removed session for user %s", session.user_id)

    def cleanup_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired_ids = [
                session_id
                for session_id, session in self._sessions.items()
                if session.is_expired(now)
            ]
            for session_id in expired_ids:
                del self._sessions[session_id]

        if expired_ids:
            log.info("Cleaned up %d expired sessions", len(expired_ids))
        return len(expired_ids)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)


class InMemoryCorrelationStore(CorrelationStore):
    """Pending login attempts in process memory.

    consume() pops under the lock, so of two concurrent callbacks carrying the
    same state only one can obtain the correlation.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize correlation store.

        Args:
            clock: Source of the current epoch time
        """
        self._lock = threading.RLock()
        self._correlations: Dict[str, OAuthCorrelation] = {}
        self._clock = clock

    def put(self, correlation: OAuthCorrelation) -> None:
        with self._lock:
            self._correlations[correlation.state] = correlation

    def consume(self, state: str) -> Optional[OAuthCorrelation]:
        with self._lock:
            correlation = self._correlations.pop(state, None)
        if correlation is None:
            return None
        if correlation.is_expired(self._clock()):
            log.debug("Login state expired before callback")
            return None
        return correlation

    def cleanup_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired_states = [
                state
                for state, correlation in self._correlations.items()
                if correlation.is_expired(now)
            ]
            for state in expired_states:
                del self._correlations[state]

        if expired_states:
            log.info("Cleaned up %d expired login states", len(expired_states))
        return len(expired_states)

    def count(self) -> int:
        with self._lock:
            return len(self._correlations)

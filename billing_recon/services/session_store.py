from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import OrderedDict
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from ..models.session import AnalysisSession
from ..models.workbook import ParsedWorkbook

"""In-memory analysis session store.

Bounded LRU with an idle TTL: reading a session refreshes it, the least
recently used session is evicted once ``max_sessions`` is reached, and a
session not touched for ``ttl_seconds`` is dropped (``ttl_seconds=0``
disables expiry). Insert and lookup are atomic under one lock.
"""

__all__ = [
    "SessionNotFoundError",
    "AnalysisSessionStore",
]

logger = logging.getLogger(__name__)


class SessionNotFoundError(Exception):
    """Unknown or expired session id; the caller has to upload again."""

    def __init__(self, session_id: str):
        super().__init__(f"Analysis session not found or expired: {session_id}")
        self.session_id = session_id


class AnalysisSessionStore:
    def __init__(
        self,
        max_sessions: int = 64,
        ttl_seconds: float = 12 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")
        self._max_sessions = max_sessions
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # session id -> (session, last access time)
        self._sessions: OrderedDict[str, tuple[AnalysisSession, float]] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._sessions)

    def _is_expired(self, last_access: float, now: float) -> bool:
        return self._ttl_seconds > 0 and now - last_access > self._ttl_seconds

    def _purge_expired(self, now: float) -> None:
        expired = [sid for sid, (_, seen) in self._sessions.items() if self._is_expired(seen, now)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug("expired sessions=%d", len(expired))

    def create(self, workbook: ParsedWorkbook, source_files: Sequence[str], user_id: str) -> str:
        session_id = str(uuid.uuid4())
        session = AnalysisSession(
            session_id=session_id,
            workbook=workbook,
            source_files=tuple(source_files),
            requested_by_user_id=user_id,
            created_at=datetime.now(UTC),
        )
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            while len(self._sessions) >= self._max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info(f"Evicted least recently used session {evicted[:8]}")
            self._sessions[session_id] = (session, now)
        return session_id

    def get(self, session_id: str) -> AnalysisSession | None:
        with self._lock:
            now = self._clock()
            entry = self._sessions.get(session_id)
            if entry is None:
                return None
            session, last_access = entry
            if self._is_expired(last_access, now):
                del self._sessions[session_id]
                return None
            self._sessions[session_id] = (session, now)
            self._sessions.move_to_end(session_id)
            return session

    def require(self, session_id: str) -> AnalysisSession:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

"""
sessions.py

Caller sessions with sliding expiry. A session lives as long as it keeps
being used: each successful validation pushes expiry another hour out.
Expiry is checked lazily on access; there is no background sweep.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Dict, Optional

from .keyed import Clock, KeyedLocks, monotonic_ms

logger = logging.getLogger("phishsentry.sessions")

SESSION_IDLE_TIMEOUT_MS = 3_600_000
TOKEN_BYTES = 16  # 128-bit tokens


@dataclass
class Session:
    token: str
    caller_id: str
    created_at: float
    last_accessed_at: float


class SessionStore:

    def __init__(self, idle_timeout_ms: float = SESSION_IDLE_TIMEOUT_MS,
                 clock: Optional[Clock] = None):
        self.idle_timeout_ms = idle_timeout_ms
        self.clock = clock or monotonic_ms
        self._sessions: Dict[str, Session] = {}
        self._locks = KeyedLocks()

    def create(self, caller_id: str) -> str:
        if not caller_id:
            raise ValueError("caller_id is required")
        token = secrets.token_hex(TOKEN_BYTES)
        now = self.clock()
        self._sessions[token] = Session(token, caller_id, now, now)
        logger.debug("session created for caller %s", caller_id)
        return token

    def _touch(self, token: str) -> Optional[Session]:
        # unknown tokens never get a lock
        if token not in self._sessions:
            return None
        with self._locks(token):
            session = self._sessions.get(token)
            if session is None:
                # revoked or expired while we waited
                self._locks.discard(token)
                return None
            now = self.clock()
            if now - session.last_accessed_at > self.idle_timeout_ms:
                del self._sessions[token]
                self._locks.discard(token)
                logger.info("session for caller %s expired", session.caller_id)
                return None
            session.last_accessed_at = now
            return session

    def validate(self, token: Optional[str]) -> bool:
        if not token:
            return False
        return self._touch(token) is not None

    def resolve(self, token: Optional[str]) -> Optional[str]:
        """Validate ``token`` and return its caller id (None when invalid)."""
        if not token:
            return None
        session = self._touch(token)
        return session.caller_id if session else None

    def revoke(self, token: str) -> bool:
        if token not in self._sessions:
            return False
        with self._locks(token):
            session = self._sessions.pop(token, None)
        self._locks.discard(token)
        return session is not None

    def __len__(self):
        return len(self._sessions)

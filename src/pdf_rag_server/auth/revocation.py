"""
Token Revocation

In-memory list of bearer tokens revoked by logout. Entries are only kept
until the token would have expired anyway; expired entries are dropped
lazily whenever the list is touched.

One instance lives on ``app.state`` for the lifetime of the process. Sync
auth dependencies read it from threadpool workers while logout writes to it
from the event loop, so every access holds the instance lock.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Dict

logger = logging.getLogger("rag.auth")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenRevocationList:
    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._entries: Dict[str, datetime] = {}
        self._lock = RLock()

    def revoke(self, token: str, expires_at: datetime) -> None:
        with self._lock:
            self._entries[token] = expires_at
            self.sweep()

    def is_revoked(self, token: str) -> bool:
        with self._lock:
            expires_at = self._entries.get(token)
            if expires_at is None:
                return False

            if self._clock() > expires_at:
                self._entries.pop(token, None)
                return False

            return True

    def sweep(self) -> int:
        """Drop expired entries and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [
                token for token, expires_at in list(self._entries.items())
                if now > expires_at
            ]
            for token in expired:
                self._entries.pop(token, None)

        if expired:
            logger.debug("Dropped %d expired revoked tokens", len(expired))
        return len(expired)

    def size(self) -> int:
        with self._lock:
            self.sweep()
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

"""
foundling bearer sessions.

Sessions live in the multi-value "sessions" collection keyed by userId,
so one user can hold several live tokens at once and a new login never
revokes an older one.

Lifecycle:

    absent ──create()──▶ active ──(now ≥ expiresAt)──▶ expired ──▶ absent
                                                         │
                          resolve() / sweep_expired() ───┘

An expired session is inert: resolve() refuses it (and deletes it on
the way), sweep_expired() deletes the rest. Nothing here schedules a
sweep. Operators call it, typically through the cleanupExpiredSessions
operation.

Configuration:

    FOUNDLING_SESSION_TTL=86400      default session lifetime in seconds
"""

from __future__ import annotations

import logging
import os
from datetime import timedelta
from typing import Optional

from foundling.core.entities import Session
from foundling.core.errors import RecordValidationError
from foundling.store.kv import KVStore

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(hours=24)


def get_session_ttl() -> timedelta:
    """Return the default session lifetime from env, or 24 hours."""
    raw = os.environ.get("FOUNDLING_SESSION_TTL")
    if not raw:
        return DEFAULT_SESSION_TTL
    return timedelta(seconds=float(raw))


def _as_ttl(ttl: timedelta | int | float) -> timedelta:
    if not isinstance(ttl, timedelta):
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
            raise RecordValidationError(Session.RECORD, "ttl must be a duration")
        ttl = timedelta(seconds=ttl)
    if ttl < timedelta(0):
        raise RecordValidationError(Session.RECORD, "ttl must not be negative")
    return ttl


class SessionManager:
    """Create, resolve and expire bearer tokens."""

    COLLECTION = "sessions"

    def __init__(self, store: KVStore, default_ttl: timedelta | None = None):
        self.store       = store
        self.default_ttl = default_ttl or DEFAULT_SESSION_TTL
        self._c          = store.collection(self.COLLECTION)

    async def create(
        self,
        user_id: str,
        token: str,
        ttl: timedelta | int | float | None = None,
    ) -> Session:
        """Store a session expiring at now + ttl. ttl=0 is born expired."""
        ttl = _as_ttl(self.default_ttl if ttl is None else ttl)
        now = self.store.now()
        session = Session(user_id=user_id, token=token, created_at=now, expires_at=now + ttl)
        await self._c.put(user_id, session.to_dict())
        return session

    async def _find(self, token: str) -> Optional[tuple[str, dict, Session]]:
        async for user_id, raw in self._c.scan():
            try:
                session = Session.from_dict(raw)
            except RecordValidationError as e:
                logger.warning(f"Skipping unreadable session under {user_id!r}: {e}")
                continue
            if session.token == token:
                return user_id, raw, session
        return None

    async def resolve(self, token) -> Optional[str]:
        """Return the userId owning ``token`` while it is live, else None.

        Never raises for a missing, empty or malformed token.
        """
        if not isinstance(token, str) or not token:
            return None
        found = await self._find(token)
        if found is None:
            return None
        user_id, raw, session = found
        if session.is_live(self.store.now()):
            return session.user_id
        await self._c.remove(user_id, raw)
        logger.debug(f"Expired session for {session.user_id} removed on resolve")
        return None

    async def invalidate(self, token: str) -> bool:
        if not isinstance(token, str) or not token:
            return False
        found = await self._find(token)
        if found is None:
            return False
        user_id, raw, _ = found
        return await self._c.remove(user_id, raw)

    async def invalidate_all(self, user_id: str) -> int:
        """Remove every session of ``user_id``. Returns how many went."""
        async with self.store.atomic():
            n = len(await self._c.get_values(user_id))
            await self._c.remove(user_id)
        return n

    async def for_user(self, user_id: str) -> list[Session]:
        sessions = []
        for raw in await self._c.get_values(user_id):
            try:
                sessions.append(Session.from_dict(raw))
            except RecordValidationError as e:
                logger.warning(f"Skipping unreadable session under {user_id!r}: {e}")
        return sessions

    async def sweep_expired(self) -> int:
        """Delete every session with expiresAt <= now. Returns the count."""
        now = self.store.now()
        expired = []
        async for user_id, raw in self._c.scan():
            try:
                session = Session.from_dict(raw)
            except RecordValidationError:
                continue
            if not session.is_live(now):
                expired.append((user_id, raw))

        if expired:
            async with self.store.atomic():
                for user_id, raw in expired:
                    await self._c.remove(user_id, raw)
            logger.info(f"Swept {len(expired)} expired session(s)")
        return len(expired)

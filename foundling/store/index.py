"""
foundling email index.

email → userId, multi-value. The index never decides which user owns an
email: lookup() yields every candidate and the caller keeps the first
one whose user record exists and still carries that email. Stale
entries (orphans) are therefore harmless. They are skipped on read. An entry
is removed only when its own (email, userId) pair is unindexed by that
user's email change or delete.
"""

from __future__ import annotations

from typing import AsyncIterator

from foundling.store.kv import KVStore


def normalize_email(email: str) -> str:
    return email.strip().lower()


class EmailIndex:

    COLLECTION = "email_index"

    def __init__(self, store: KVStore):
        self.store = store
        self._c    = store.collection(self.COLLECTION)

    async def put(self, email: str, user_id: str) -> None:
        await self._c.put(normalize_email(email), user_id)

    async def lookup(self, email: str) -> AsyncIterator[str]:
        for user_id in await self._c.get_values(normalize_email(email)):
            if isinstance(user_id, str):
                yield user_id

    async def remove(self, email: str, user_id: str) -> bool:
        """Drop exactly the (email, user_id) association."""
        return await self._c.remove(normalize_email(email), user_id)

"""
foundling repository layer.

All record reads and writes go through Repository classes. Nothing
outside the store package touches a Collection directly.

Every repository takes the KVStore it works against and operates within
whatever atomic unit the caller has open (store.atomic()); outside one,
each write is its own unit.

Repositories translate between:
  - stored dicts (camelCase, what the codec persists)
  - core objects (core/entities.py, what the rest of the system uses)

A stored record that no longer parses is skipped with a warning rather
than failing the whole scan.

Repositories do no cross-entity validation: a Project may name an
ideaId that does not exist. Handlers decide what to check.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, ClassVar, Generic, Mapping, Optional, TypeVar

from foundling.core.entities import (
    DataRecord, Funding, Idea, Project, User, new_id, to_timestamp,
)
from foundling.core.errors import EmailTakenError, RecordValidationError
from foundling.store.index import EmailIndex, normalize_email
from foundling.store.kv import KVStore

logger = logging.getLogger(__name__)

E = TypeVar("E")


def _newest_first(records: list) -> list:
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


# ─────────────────────────────────────────────────────────────
# Generic record repository
# ─────────────────────────────────────────────────────────────

class RecordRepo(Generic[E]):
    """CRUD for one entity type stored in one collection.

    Subclasses set:
        collection  — collection name
        entity      — entity class (from_dict / to_dict / merge)
        prefix      — id prefix
        owner_attr  — attribute holding the owner id
    """

    collection: ClassVar[str]
    entity:     ClassVar[type]
    prefix:     ClassVar[str]
    owner_attr: ClassVar[str]

    def __init__(self, store: KVStore):
        self.store = store
        self._c    = store.collection(self.collection)

    def _parse(self, key: str, raw: Any) -> Optional[E]:
        try:
            return self.entity.from_dict(raw)
        except RecordValidationError as e:
            logger.warning(f"Skipping unreadable {self.collection} entry {key!r}: {e}")
            return None

    def _key_for(self, record: E) -> str:
        return record.id

    async def _records(self) -> AsyncIterator[tuple[str, Any, E]]:
        async for key, raw in self._c.scan():
            record = self._parse(key, raw)
            if record is not None:
                yield key, raw, record

    async def _locate(self, record_id: str) -> Optional[tuple[str, Any, E]]:
        raw = await self._c.get(record_id)
        if raw is None:
            return None
        record = self._parse(record_id, raw)
        return None if record is None else (record_id, raw, record)

    # ── Create ────────────────────────────────────────────────

    async def create(self, data: Mapping) -> str:
        """Validate, stamp and store a new record. Returns its id."""
        now = self.store.now()
        stamp = to_timestamp(now)
        record = self.entity.from_dict({
            **data,
            "id":        new_id(self.prefix, now),
            "createdAt": stamp,
            "updatedAt": stamp,
        })
        await self._c.put(self._key_for(record), record.to_dict())
        logger.debug(f"Created {self.prefix} {record.id}")
        return record.id

    # ── Read ──────────────────────────────────────────────────

    async def get_by_id(self, record_id: str) -> Optional[E]:
        if not isinstance(record_id, str) or not record_id:
            return None
        found = await self._locate(record_id)
        return None if found is None else found[2]

    async def get_all(self) -> list[E]:
        """Every record, newest first."""
        return _newest_first([record async for _, _, record in self._records()])

    async def get_all_by_owner(self, owner_id: str) -> list[E]:
        """Records whose owner field equals ``owner_id``, newest first."""
        return await self._filter(self.owner_attr, owner_id)

    async def _filter(self, attr: str, value: str) -> list[E]:
        return _newest_first([
            record async for _, _, record in self._records()
            if getattr(record, attr) == value
        ])

    # ── Update / delete ───────────────────────────────────────

    async def update(self, record_id: str, changes: Mapping) -> bool:
        """Merge ``changes`` into the record. False if the id is unknown."""
        async with self.store.atomic():
            found = await self._locate(record_id)
            if found is None:
                return False
            key, raw, current = found
            merged = current.merge(changes, self.store.now())
            if self._c.multi_value:
                await self._c.remove(key, raw)
            await self._c.put(self._key_for(merged), merged.to_dict())
        return True

    async def delete(self, record_id: str) -> bool:
        async with self.store.atomic():
            found = await self._locate(record_id)
            if found is None:
                return False
            key, raw, _ = found
            if self._c.multi_value:
                return await self._c.remove(key, raw)
            return await self._c.remove(key)


# ─────────────────────────────────────────────────────────────
# Domain repositories
# ─────────────────────────────────────────────────────────────

class IdeaRepo(RecordRepo[Idea]):
    collection = "ideas"
    entity     = Idea
    prefix     = "idea"
    owner_attr = "creator_id"

    async def get_by_creator(self, creator_id: str) -> list[Idea]:
        return await self.get_all_by_owner(creator_id)


class ProjectRepo(RecordRepo[Project]):
    collection = "projects"
    entity     = Project
    prefix     = "project"
    owner_attr = "executor_id"

    async def get_by_executor(self, executor_id: str) -> list[Project]:
        return await self.get_all_by_owner(executor_id)

    async def get_by_idea(self, idea_id: str) -> list[Project]:
        return await self._filter("idea_id", idea_id)


class FundingRepo(RecordRepo[Funding]):
    collection = "funding"
    entity     = Funding
    prefix     = "funding"
    owner_attr = "project_id"

    async def get_by_project(self, project_id: str) -> list[Funding]:
        return await self.get_all_by_owner(project_id)

    async def get_by_funder(self, funder_id: str) -> list[Funding]:
        return await self._filter("funder_id", funder_id)


class DataRecordRepo(RecordRepo[DataRecord]):
    """Per-user records, stored multi-value under the owning userId.

    Lookup by id is a scan; listing a user's records is a key read.
    """

    collection = "data"
    entity     = DataRecord
    prefix     = "data"
    owner_attr = "user_id"

    def _key_for(self, record: DataRecord) -> str:
        return record.user_id

    async def _locate(self, record_id: str):
        async for key, raw, record in self._records():
            if record.id == record_id:
                return key, raw, record
        return None

    async def get_all_by_owner(self, owner_id: str) -> list[DataRecord]:
        records = []
        for raw in await self._c.get_values(owner_id):
            record = self._parse(owner_id, raw)
            if record is not None:
                records.append(record)
        return _newest_first(records)

    async def get_by_user(self, user_id: str) -> list[DataRecord]:
        return await self.get_all_by_owner(user_id)


# ─────────────────────────────────────────────────────────────
# Users
# ─────────────────────────────────────────────────────────────

class UserRepo:
    """Users plus the email index that keeps them unique.

    Every write that touches a user's email updates the index in the same
    atomic unit. Deleting a user also purges the collections listed in
    ``dependents``, all keyed by userId.
    """

    collection = "users"
    prefix     = "user"
    dependents: tuple[str, ...] = ("sessions", "data")

    def __init__(self, store: KVStore):
        self.store = store
        self.index = EmailIndex(store)
        self._c    = store.collection(self.collection)

    def _parse(self, user_id: str, raw: Any) -> Optional[User]:
        try:
            return User.from_dict(raw)
        except RecordValidationError as e:
            logger.warning(f"Skipping unreadable user {user_id!r}: {e}")
            return None

    @staticmethod
    def _clean_email(email: Any) -> str:
        if not isinstance(email, str) or not normalize_email(email):
            raise RecordValidationError(User.RECORD, "'email' is required")
        return normalize_email(email)

    # ── Read ──────────────────────────────────────────────────

    async def get_by_id(self, user_id: str) -> Optional[User]:
        if not isinstance(user_id, str) or not user_id:
            return None
        raw = await self._c.get(user_id)
        return None if raw is None else self._parse(user_id, raw)

    async def get_by_email(self, email: str) -> Optional[User]:
        """First indexed user that exists and still carries ``email``."""
        if not isinstance(email, str) or not email.strip():
            return None
        email = normalize_email(email)
        async for user_id in self.index.lookup(email):
            user = await self.get_by_id(user_id)
            if user is not None and user.email == email:
                return user
        return None

    # ── Write ─────────────────────────────────────────────────

    async def create(
        self,
        email: str,
        password_hash: str,
        profile: Mapping | None = None,
    ) -> User:
        """Create a user and index its email in one atomic unit.

        Raises EmailTakenError if a live user already has the email.
        """
        email = self._clean_email(email)

        async def body() -> User:
            if await self.get_by_email(email) is not None:
                raise EmailTakenError(email)
            now = self.store.now()
            stamp = to_timestamp(now)
            user = User.from_dict({
                **(profile or {}),
                "id":           new_id(self.prefix, now),
                "email":        email,
                "passwordHash": password_hash,
                "createdAt":    stamp,
                "updatedAt":    stamp,
            })
            await self._c.put(user.id, user.to_dict())
            await self.index.put(email, user.id)
            return user

        user = await self.store.run_atomic(body)
        logger.info(f"User created: {user.id}")
        return user

    async def update_profile(self, user_id: str, changes: Mapping) -> Optional[User]:
        """Merge profile ``changes``. None if the user is unknown.

        An email change re-indexes in the same unit and must not collide
        with another live user.
        """
        changes = dict(changes)
        if "email" in changes and changes["email"] is not None:
            changes["email"] = self._clean_email(changes["email"])

        async with self.store.atomic():
            current = await self.get_by_id(user_id)
            if current is None:
                return None
            merged = current.merge(changes, self.store.now())
            if merged.email != current.email:
                holder = await self.get_by_email(merged.email)
                if holder is not None and holder.id != user_id:
                    raise EmailTakenError(merged.email)
                await self.index.remove(current.email, user_id)
                await self.index.put(merged.email, user_id)
            await self._c.put(user_id, merged.to_dict())
        return merged

    async def set_password(self, user_id: str, password_hash: str) -> bool:
        async with self.store.atomic():
            current = await self.get_by_id(user_id)
            if current is None:
                return False
            updated = current.with_password(password_hash, self.store.now())
            await self._c.put(user_id, updated.to_dict())
        return True

    async def delete(self, user_id: str) -> bool:
        """Remove the user, its index entry, and everything in ``dependents``."""
        async def body() -> bool:
            user = await self.get_by_id(user_id)
            if user is None:
                return False
            await self._c.remove(user_id)
            await self.index.remove(user.email, user_id)
            for name in self.dependents:
                await self.store.collection(name).remove(user_id)
            return True

        deleted = await self.store.run_atomic(body)
        if deleted:
            logger.info(f"User deleted with dependents {list(self.dependents)}: {user_id}")
        return deleted

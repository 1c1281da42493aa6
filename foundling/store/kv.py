"""
foundling key-value store.

A KVStore is one storage environment: an async engine plus a fixed set
of named collections. It is constructed explicitly, opened once, closed
once, and injected wherever it is needed.

    async with KVStore("sqlite+aiosqlite:///data/foundling.db") as store:
        users = store.collection("users")
        await users.put("user_1", {...})

Collections come in two shapes:

    single-value   one value per key, put() is an upsert
    multi-value    many values per key (LMDB "dupsort"); put() adds an
                   association, remove(key, value) drops exactly one,
                   remove(key) drops them all

Atomicity
---------
All writes are serialized by one asyncio.Lock held per atomic unit.
A write issued outside atomic() is its own unit. Inside atomic(),
every put/remove joins the open unit and commits with it, or not at
all if the body raises. Nested atomic() calls join the outer unit.

    async with store.atomic():
        await users.put(uid, user)
        await index.put(email, uid)

Reads inside a unit see that unit's uncommitted writes. Reads outside
a unit see the last committed state.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional, TypeVar

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from foundling.core.entities import utc_now
from foundling.core.errors import EncodingError, StorageError
from foundling.store.codec import decode, decode_key, encode, encode_key, fingerprint
from foundling.store.engine import create_tables, make_async_engine, make_session_factory
from foundling.store.models import kv_entries

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ALL: Any = object()


# ─────────────────────────────────────────────────────────────
# Persisted layout
# ─────────────────────────────────────────────────────────────

# name → multi-value?
COLLECTIONS: dict[str, bool] = {
    "users":       False,
    "sessions":    True,    # userId → Session
    "data":        True,    # userId → DataRecord
    "email_index": True,    # email → userId
    "ideas":       False,
    "projects":    False,
    "funding":     False,
}


class Transaction:
    """The open atomic unit. Holds the session every joined write uses."""

    def __init__(self, store: "KVStore", session: AsyncSession):
        self.store   = store
        self.session = session

    def __repr__(self) -> str:
        return f"<Transaction store={self.store!r}>"


# ─────────────────────────────────────────────────────────────
# Collection
# ─────────────────────────────────────────────────────────────

class Collection:
    """A named keyspace inside a KVStore."""

    def __init__(self, store: "KVStore", name: str, multi_value: bool):
        self._store      = store
        self.name        = name
        self.multi_value = multi_value

    def __repr__(self) -> str:
        shape = "multi" if self.multi_value else "single"
        return f"<Collection {self.name!r} ({shape}-value)>"

    def _where(self, key: bytes | None = None):
        clauses = [kv_entries.c.collection == self.name]
        if key is not None:
            clauses.append(kv_entries.c.key == key)
        return clauses

    # ── Writes ──────────────────────────────────────────────

    async def put(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``.

        Single-value: replaces whatever was there (last write wins).
        Multi-value: adds the association; an identical value already
        under the key is not duplicated.
        """
        k = encode_key(key)
        payload = encode(value)
        dup = fingerprint(value) if self.multi_value else b""

        async with self._store._writer() as session:
            await self._store._execute(
                session,
                delete(kv_entries).where(*self._where(k), kv_entries.c.dup == dup),
            )
            await self._store._execute(
                session,
                insert(kv_entries).values(
                    collection=self.name, key=k, dup=dup, value=payload,
                ),
            )

    async def remove(self, key: str, value: Any = _ALL) -> bool:
        """Remove ``key`` (or one exact key/value association).

        Returns False when nothing matched. Never raises for a missing key.
        """
        k = encode_key(key)

        if value is _ALL or not self.multi_value:
            async with self._store._writer() as session:
                result = await self._store._execute(
                    session, delete(kv_entries).where(*self._where(k)),
                )
            return bool(result.rowcount)

        target = decode(encode(value))
        fp = fingerprint(value)
        async with self._store._writer() as session:
            rows = (await self._store._execute(
                session,
                select(kv_entries.c.dup, kv_entries.c.value).where(*self._where(k)),
            )).all()
            dups = [row.dup for row in rows if row.dup == fp or _equals(row.value, target)]
            if not dups:
                return False
            await self._store._execute(
                session,
                delete(kv_entries).where(*self._where(k), kv_entries.c.dup.in_(dups)),
            )
        return True

    # ── Reads ───────────────────────────────────────────────

    async def get(self, key: str) -> Optional[Any]:
        """First value under ``key`` in native order, or None."""
        k = encode_key(key)
        async with self._store._reader() as session:
            row = (await self._store._execute(
                session,
                select(kv_entries.c.value)
                .where(*self._where(k))
                .order_by(kv_entries.c.dup)
                .limit(1),
            )).first()
        return None if row is None else decode(row.value)

    async def get_values(self, key: str) -> list[Any]:
        """Every value under ``key``. Empty list when absent."""
        k = encode_key(key)
        async with self._store._reader() as session:
            rows = (await self._store._execute(
                session,
                select(kv_entries.c.value).where(*self._where(k)).order_by(kv_entries.c.dup),
            )).all()
        return [decode(row.value) for row in rows]

    async def scan(self) -> AsyncIterator[tuple[str, Any]]:
        """Yield (key, value) pairs in key order.

        Each call reads a fresh snapshot, so a scan is finite even if
        writes land while it is being consumed. Values are decoded as
        they are yielded.
        """
        async with self._store._reader() as session:
            rows = (await self._store._execute(
                session,
                select(kv_entries.c.key, kv_entries.c.value)
                .where(*self._where())
                .order_by(kv_entries.c.key, kv_entries.c.dup),
            )).all()
        for row in rows:
            yield decode_key(row.key), decode(row.value)

    async def count(self) -> int:
        async with self._store._reader() as session:
            result = await self._store._execute(
                session,
                select(func.count()).select_from(kv_entries).where(*self._where()),
            )
        return int(result.scalar_one())


def _equals(payload: bytes, target: Any) -> bool:
    try:
        return decode(payload) == target
    except EncodingError:
        return False


# ─────────────────────────────────────────────────────────────
# Store
# ─────────────────────────────────────────────────────────────

class KVStore:
    """One storage environment.

    Args:
        db_url:        async SQLAlchemy URL. Defaults to FOUNDLING_DB_URL.
        clock:         zero-arg callable returning an aware UTC datetime.
                       Everything time-dependent above the store reads
                       the time through store.now().
        collections:   name → multi-value flag. Defaults to COLLECTIONS.
        create_schema: create the table on open (development and tests).
                       Production runs Alembic instead.
    """

    def __init__(
        self,
        db_url: str | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        collections: Mapping[str, bool] | None = None,
        create_schema: bool = True,
        echo: bool = False,
    ):
        self._db_url        = db_url
        self._clock         = clock or utc_now
        self._create_schema = create_schema
        self._echo          = echo

        self._engine:  AsyncEngine | None        = None
        self._factory: async_sessionmaker | None = None
        self._lock = asyncio.Lock()
        self._txn: ContextVar[Transaction | None] = ContextVar(
            f"foundling_txn_{id(self):x}", default=None,
        )
        self._collections = {
            name: Collection(self, name, multi)
            for name, multi in (collections or COLLECTIONS).items()
        }

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<KVStore {state} collections={sorted(self._collections)}>"

    # ── Lifecycle ───────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        return self._factory is not None

    async def open(self) -> "KVStore":
        if self.is_open:
            raise StorageError("KVStore is already open")
        try:
            engine = make_async_engine(self._db_url, echo=self._echo)
            if self._create_schema:
                await create_tables(engine)
        except SQLAlchemyError as e:
            logger.exception("Failed to open the store")
            raise StorageError(f"Cannot open store: {e}") from e
        self._engine  = engine
        self._factory = make_session_factory(engine)
        logger.info(f"Store opened ({len(self._collections)} collections)")
        return self

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine  = None
        self._factory = None
        logger.info("Store closed")

    async def __aenter__(self) -> "KVStore":
        return await self.open()

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ── Access ──────────────────────────────────────────────

    def collection(self, name: str) -> Collection:
        try:
            return self._collections[name]
        except KeyError:
            raise ValueError(
                f"Unknown collection '{name}'. Known: {sorted(self._collections)}"
            ) from None

    __getitem__ = collection

    @property
    def collections(self) -> list[str]:
        return list(self._collections)

    def now(self) -> datetime:
        return self._clock()

    async def stats(self) -> dict[str, int]:
        """Entry count per collection (every known collection is listed)."""
        counts = {name: 0 for name in self._collections}
        async with self._reader() as session:
            rows = (await self._execute(
                session,
                select(kv_entries.c.collection, func.count())
                .group_by(kv_entries.c.collection),
            )).all()
        for name, n in rows:
            if name in counts:
                counts[name] = int(n)
        return counts

    # ── Transactions ────────────────────────────────────────

    @property
    def in_transaction(self) -> bool:
        return self._txn.get() is not None

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[Transaction]:
        """One atomic unit. Commits on clean exit, rolls back on exception.

        Exceptions raised by the body propagate unchanged. Engine
        failures while committing surface as StorageError.
        """
        current = self._txn.get()
        if current is not None:
            yield current
            return

        factory = self._require_open()
        async with self._lock:
            async with factory() as session:
                txn = Transaction(self, session)
                token = self._txn.set(txn)
                try:
                    try:
                        async with session.begin():
                            yield txn
                    except SQLAlchemyError as e:
                        logger.exception("Atomic unit failed to commit")
                        raise StorageError(f"Commit failed: {e}") from e
                finally:
                    self._txn.reset(token)

    async def run_atomic(self, body: Callable[[], Awaitable[T]]) -> T:
        """Await ``body()`` inside one atomic unit and return its result."""
        async with self.atomic():
            return await body()

    # ── Internals ───────────────────────────────────────────

    def _require_open(self) -> async_sessionmaker:
        if self._factory is None:
            raise StorageError("KVStore is not open")
        return self._factory

    @asynccontextmanager
    async def _writer(self) -> AsyncIterator[AsyncSession]:
        async with self.atomic() as txn:
            yield txn.session

    @asynccontextmanager
    async def _reader(self) -> AsyncIterator[AsyncSession]:
        txn = self._txn.get()
        if txn is not None:
            yield txn.session
            return
        factory = self._require_open()
        async with factory() as session:
            yield session

    @staticmethod
    async def _execute(session: AsyncSession, statement):
        try:
            return await session.execute(statement)
        except SQLAlchemyError as e:
            logger.exception(f"Statement failed: {statement}")
            raise StorageError(f"Storage engine failure: {e}") from e

"""
foundling database schema.

The store is an ordered key-value environment, so there is exactly one
table. Collections are a namespace column, not separate tables:

  kv_entries
    collection  — named collection ("users", "sessions", ...)
    key         — UTF-8 key bytes
    dup         — duplicate discriminator. b"" in single-value
                  collections; a fingerprint of the value in
                  multi-value collections
    value       — codec-encoded payload (see store/codec.py)
    written_at  — last write time, for operators only

Primary key is (collection, key, dup). Scans order by (key, dup), which
is the engine's binary ordering: the same order an ordered byte-keyed
store would iterate in.

All times in UTC, stored as TIMESTAMP WITH TIME ZONE.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, LargeBinary, String
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.sql import func


# ─────────────────────────────────────────────────────────────
# Base
# ─────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# ─────────────────────────────────────────────────────────────
# Entries
# ─────────────────────────────────────────────────────────────

class DBEntry(Base):
    """One (key, value) association inside a named collection."""
    __tablename__ = "kv_entries"

    collection = Column(String(64), primary_key=True)
    key        = Column(LargeBinary, primary_key=True)
    dup        = Column(LargeBinary, primary_key=True, default=b"")
    value      = Column(LargeBinary, nullable=False)

    written_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<DBEntry {self.collection}:{self.key!r} ({len(self.value or b'')} bytes)>"


kv_entries = DBEntry.__table__

"""
foundling persistence layer.

The store package manages all database access. Nothing outside this
package writes SQL directly.

    from foundling.store import KVStore, SessionManager
    from foundling.store.repo import (
        UserRepo, IdeaRepo, ProjectRepo, FundingRepo, DataRecordRepo,
    )

The server holds one KVStore, opened at startup and closed at shutdown,
and hands it to every repository. Clients never access the store
directly; they talk to the server over HTTP.
"""

from foundling.store.engine import create_tables, get_db_url, make_async_engine
from foundling.store.index import EmailIndex, normalize_email
from foundling.store.kv import COLLECTIONS, Collection, KVStore, Transaction
from foundling.store.repo import (
    DataRecordRepo,
    FundingRepo,
    IdeaRepo,
    ProjectRepo,
    RecordRepo,
    UserRepo,
)
from foundling.store.sessions import DEFAULT_SESSION_TTL, SessionManager, get_session_ttl

__all__ = [
    "KVStore", "Collection", "Transaction", "COLLECTIONS",
    "EmailIndex", "normalize_email",
    "SessionManager", "DEFAULT_SESSION_TTL", "get_session_ttl",
    "RecordRepo", "UserRepo", "IdeaRepo", "ProjectRepo",
    "FundingRepo", "DataRecordRepo",
    "get_db_url", "make_async_engine", "create_tables",
]

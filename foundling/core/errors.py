"""
foundling exception hierarchy.

Expected misses (unknown id, unknown token, unknown email) are not
errors: store primitives return None/False for those. Exceptions here
are for genuine faults and for rejected input.

    FoundlingError
    ├── StorageError          engine unavailable, I/O failure, store not open
    │   └── EncodingError     a value could not be encoded or decoded
    ├── RecordValidationError a record is missing or has malformed fields
    └── EmailTakenError       a live user already owns the email
"""

from __future__ import annotations


class FoundlingError(Exception):
    """Base error for everything raised by foundling."""


class StorageError(FoundlingError):
    """The underlying storage engine failed or is not available."""


class EncodingError(StorageError):
    """A value could not be serialized to, or parsed from, stored bytes."""


class RecordValidationError(FoundlingError, ValueError):
    """A record is missing required fields or carries malformed values."""

    def __init__(self, record_type: str, message: str):
        self.record_type = record_type
        super().__init__(f"Invalid {record_type}: {message}")


class EmailTakenError(FoundlingError):
    """Raised when creating or re-addressing a user onto an email in use."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"A user with email '{email}' already exists.")

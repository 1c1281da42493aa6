"""
foundling password hashing and bearer tokens.

Password hashes come from werkzeug.security. They are salted scrypt in
werkzeug's self-describing form, so the parameters can change without
invalidating stored users:

    scrypt:<n>:<r>:<p>$<salt>$<digest hex>
"""

from __future__ import annotations

import secrets

from werkzeug.security import check_password_hash, generate_password_hash

HASH_METHOD  = "scrypt"
SALT_LENGTH  = 16
TOKEN_BYTES  = 32


def hash_password(password: str) -> str:
    """Return a salted scrypt hash of ``password``."""
    return generate_password_hash(password, method=HASH_METHOD, salt_length=SALT_LENGTH)


def verify_password(password: str, encoded: str) -> bool:
    """Constant-time check of ``password`` against a stored hash.

    A malformed stored hash verifies as False rather than raising.
    """
    try:
        return check_password_hash(encoded, password)
    except (AttributeError, TypeError, ValueError):
        return False


def new_token() -> str:
    """Opaque URL-safe bearer token."""
    return secrets.token_urlsafe(TOKEN_BYTES)

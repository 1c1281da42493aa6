"""
foundling wire protocol.

Every request and reply that crosses HTTP is defined here. The server
and the client both import from this module. If it isn't here it
doesn't exist on the wire.

Requests are a POST to a resource path with a JSON object body:

    POST /api/ideas
    Authorization: Bearer <token>          (optional)

    {
        "operation": "create",
        ...operation fields...
    }

"type" is accepted in place of "operation" for older clients.

Replies are always JSON objects:

    {"success": true,  ...payload fields...}
    {"success": false, "error": "Idea not found"}

Every reply carries an ErrorCode internally (never on the wire). The
HTTP status is derived from it:

    ok              → 200
    NOT_FOUND       → 404
    INTERNAL        → 500
    everything else → 400
"""

from __future__ import annotations

from typing import Any, Optional


# ─────────────────────────────────────────────────────────────
# Resources and operations
# ─────────────────────────────────────────────────────────────

class Resource:
    AUTH     = "/auth"
    DB       = "/db"
    IDEAS    = "/api/ideas"
    PROJECTS = "/api/projects"
    FUNDING  = "/api/funding"
    PROFILES = "/api/profiles"

    ALL = (AUTH, DB, IDEAS, PROJECTS, FUNDING, PROFILES)


class Op:
    # /auth
    SIGNUP   = "signup"
    LOGIN    = "login"
    LOGOUT   = "logout"
    DELETE   = "delete"
    VALIDATE = "validate"

    # /db
    GET_USER_BY_ID           = "getUserById"
    GET_USER_BY_EMAIL        = "getUserByEmail"
    UPDATE_USER              = "updateUser"
    CREATE_DATA_RECORD       = "createDataRecord"
    GET_DATA_RECORD          = "getDataRecord"
    GET_DATA_RECORDS_BY_USER = "getDataRecordsByUser"
    UPDATE_DATA_RECORD       = "updateDataRecord"
    DELETE_DATA_RECORD       = "deleteDataRecord"
    GET_DB_STATS             = "getDBStats"
    CLEANUP_SESSIONS         = "cleanupExpiredSessions"

    # /api/*
    CREATE          = "create"
    GET_BY_ID       = "getById"
    GET_ALL         = "getAll"
    UPDATE          = "update"
    GET_BY_CREATOR  = "getByCreator"
    GET_BY_EXECUTOR = "getByExecutor"
    GET_BY_IDEA     = "getByIdea"
    GET_BY_PROJECT  = "getByProject"
    GET_BY_FUNDER   = "getByFunder"
    GET_STATS       = "getStats"


# ─────────────────────────────────────────────────────────────
# Error codes
# ─────────────────────────────────────────────────────────────

class ErrorCode:
    NOT_FOUND      = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    INVALID        = "INVALID"
    UNAUTHORIZED   = "UNAUTHORIZED"
    INTERNAL       = "INTERNAL"


HTTP_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INTERNAL:  500,
}


# Messages surfaced verbatim to callers
AUTH_REQUIRED   = "Authentication required"
ACCESS_DENIED   = "Access denied"
INVALID_OP      = "Invalid operation type"
INTERNAL_ERROR  = "Internal server error"
INVALID_BODY    = "Invalid request body"
NOT_FOUND_PATH  = "Endpoint not found"
BAD_METHOD      = "Method not allowed"


# ─────────────────────────────────────────────────────────────
# Request
# ─────────────────────────────────────────────────────────────

class Request:
    """One parsed operation call: resource, operation, fields, bearer token."""

    def __init__(
        self,
        resource: str,
        operation: Optional[str],
        fields: dict | None = None,
        token: Optional[str] = None,
    ):
        self.resource  = resource
        self.operation = operation
        self.fields    = fields or {}
        self.token     = token

    @classmethod
    def from_body(cls, resource: str, body: Any, token: Optional[str] = None) -> "Request":
        """Split a JSON body into the operation name and its fields."""
        if not isinstance(body, dict):
            raise ValueError(f"Expected JSON object, got {type(body).__name__}")
        fields = dict(body)
        operation = fields.pop("operation", None)
        legacy = fields.pop("type", None)
        if operation is None:
            operation = legacy
        elif legacy is not None:
            # "type" is also a User field; keep it when "operation" is present
            fields["type"] = legacy
        if operation is not None and not isinstance(operation, str):
            operation = None
        return cls(resource, operation, fields, token)

    def __repr__(self) -> str:
        return f"Request({self.resource} {self.operation!r})"


def bearer_token(header: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# ─────────────────────────────────────────────────────────────
# Reply
# ─────────────────────────────────────────────────────────────

class Reply(dict):
    """A wire reply. A dict so it serializes as-is; ``code`` stays off the wire."""

    def __init__(self, payload: dict, code: Optional[str] = None):
        super().__init__(payload)
        self.code = code

    @property
    def success(self) -> bool:
        return bool(self.get("success"))

    @property
    def status(self) -> int:
        if self.code is None:
            return 200
        return HTTP_STATUS.get(self.code, 400)

    def __repr__(self) -> str:
        return f"Reply(success={self.success}, code={self.code!r})"


def ok(**payload) -> Reply:
    return Reply({"success": True, **payload})


def error(code: str, message: str) -> Reply:
    return Reply({"success": False, "error": message}, code=code)

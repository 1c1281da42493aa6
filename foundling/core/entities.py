"""
foundling canonical entities.

These are the nouns of the platform. Everything the store persists is
one of these records (or a list of them).

    User ──┬── Session        (bearer tokens, many per user)
           ├── DataRecord     (free-form per-user key/value)
           ├── Idea           (creatorId)
           │    └── Project   (ideaId, executorId)
           │         ├── Milestone (embedded)
           │         └── Funding   (projectId, funderId)

Relationships are by opaque id only. No record holds a live reference
to another; lookups resolve ids through the repositories.

Records are immutable. An update builds a replacement with merge(),
which copies every field explicitly: provided keys overwrite, missing
keys keep the current value. Identity and ownership fields (id,
createdAt, the owner id) are never taken from the changes.

Wire and storage form is a camelCase dict produced by to_dict() and
parsed by from_dict(). from_dict() validates; anything it rejects
raises RecordValidationError before the store is touched.
"""

from __future__ import annotations

import math
import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, ClassVar, Mapping, Optional

import msgpack

from foundling.core.errors import RecordValidationError
from foundling.core.vocabulary import (
    FundingStatus, IdeaStatus, MilestoneStatus, ProjectStatus, UserType,
)


# ─────────────────────────────────────────────────────────────
# Time and identity helpers
# ─────────────────────────────────────────────────────────────

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC, microsecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 string. Naive values are taken to be UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def new_id(prefix: str, now: Optional[datetime] = None) -> str:
    """Opaque unique id: ``<prefix>_<epoch ms>_<12 random hex>``."""
    now = now or utc_now()
    suffix = secrets.token_hex(6)
    return f"{prefix}_{int(now.timestamp() * 1000)}_{suffix}"


# ─────────────────────────────────────────────────────────────
# Field readers
# ─────────────────────────────────────────────────────────────

_MISSING: Any = object()

# msgpack integer range
_INT_MIN = -(2 ** 63)
_INT_MAX = 2 ** 64 - 1


def _present(data: Mapping, key: str) -> bool:
    return key in data and data[key] is not None


def _text(record: str, data: Mapping, key: str, default: Any = _MISSING) -> str:
    if not _present(data, key):
        if default is _MISSING:
            raise RecordValidationError(record, f"'{key}' is required")
        return default
    value = data[key]
    if not isinstance(value, str):
        raise RecordValidationError(record, f"'{key}' must be a string")
    return value


def _number(
    record: str,
    data: Mapping,
    key: str,
    default: Any = _MISSING,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
    integer: bool = False,
) -> int | float:
    if not _present(data, key):
        if default is _MISSING:
            raise RecordValidationError(record, f"'{key}' is required")
        return default
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RecordValidationError(record, f"'{key}' must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise RecordValidationError(record, f"'{key}' must be finite")
    if isinstance(value, int) and not _INT_MIN <= value <= _INT_MAX:
        raise RecordValidationError(record, f"'{key}' is out of range")
    if integer and isinstance(value, float):
        if not value.is_integer():
            raise RecordValidationError(record, f"'{key}' must be an integer")
        value = int(value)
    if minimum is not None and value < minimum:
        raise RecordValidationError(record, f"'{key}' must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise RecordValidationError(record, f"'{key}' must be <= {maximum}")
    return value


def _payload(record: str, data: Mapping, key: str) -> Any:
    """A free-form value, checked to be storable as msgpack."""
    value = data[key]
    try:
        msgpack.packb(value, use_bin_type=True)
    except (TypeError, ValueError, OverflowError) as e:
        raise RecordValidationError(record, f"'{key}' cannot be stored: {e}") from e
    return value


def _strings(record: str, data: Mapping, key: str, default: Any = _MISSING,
             *, unique: bool = False) -> list[str]:
    if not _present(data, key):
        if default is _MISSING:
            raise RecordValidationError(record, f"'{key}' is required")
        return list(default)
    value = data[key]
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise RecordValidationError(record, f"'{key}' must be a list of strings")
    if unique:
        return list(dict.fromkeys(value))
    return list(value)


def _choice(record: str, data: Mapping, key: str, enum_cls, default: Any = _MISSING):
    if not _present(data, key):
        if default is _MISSING:
            raise RecordValidationError(record, f"'{key}' is required")
        return default
    try:
        return enum_cls.from_string(data[key])
    except ValueError as e:
        raise RecordValidationError(record, str(e)) from e


def _moment(record: str, data: Mapping, key: str, default: Any = _MISSING) -> datetime:
    if not _present(data, key):
        if default is _MISSING:
            raise RecordValidationError(record, f"'{key}' is required")
        return default
    try:
        return parse_timestamp(data[key])
    except (TypeError, ValueError) as e:
        raise RecordValidationError(record, f"'{key}' is not an ISO-8601 timestamp") from e


def _ensure_mapping(record: str, data: Any) -> Mapping:
    if not isinstance(data, Mapping):
        raise RecordValidationError(record, f"expected an object, got {type(data).__name__}")
    return data


# ─────────────────────────────────────────────────────────────
# User
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class User:
    """A platform member. ``email`` is the unique business key."""

    RECORD: ClassVar[str] = "user"

    id:            str
    email:         str
    password_hash: str
    created_at:    datetime
    updated_at:    datetime
    name:          str       = "Anonymous User"
    bio:           str       = ""
    type:          UserType  = UserType.HYBRID
    address:       str       = ""
    skills:        list[str] = field(default_factory=list)
    reputation:    int       = 0

    def to_dict(self) -> dict:
        return {
            "id":           self.id,
            "email":        self.email,
            "passwordHash": self.password_hash,
            "name":         self.name,
            "bio":          self.bio,
            "type":         self.type.value,
            "address":      self.address,
            "skills":       list(self.skills),
            "reputation":   self.reputation,
            "createdAt":    to_timestamp(self.created_at),
            "updatedAt":    to_timestamp(self.updated_at),
        }

    def to_public_dict(self) -> dict:
        """Everything except the password hash."""
        d = self.to_dict()
        del d["passwordHash"]
        return d

    @classmethod
    def from_dict(cls, data: Mapping) -> "User":
        r = cls.RECORD
        data = _ensure_mapping(r, data)
        return cls(
            id=_text(r, data, "id"),
            email=_text(r, data, "email"),
            password_hash=_text(r, data, "passwordHash"),
            name=_text(r, data, "name", "Anonymous User"),
            bio=_text(r, data, "bio", ""),
            type=_choice(r, data, "type", UserType, UserType.HYBRID),
            address=_text(r, data, "address", ""),
            skills=_strings(r, data, "skills", []),
            reputation=_number(r, data, "reputation", 0, minimum=0, integer=True),
            created_at=_moment(r, data, "createdAt"),
            updated_at=_moment(r, data, "updatedAt"),
        )

    def merge(self, changes: Mapping, updated_at: datetime) -> "User":
        """Profile update. The password hash and id are not mergeable."""
        r = self.RECORD
        changes = _ensure_mapping(r, changes)
        return replace(
            self,
            email=_text(r, changes, "email", self.email),
            name=_text(r, changes, "name", self.name),
            bio=_text(r, changes, "bio", self.bio),
            type=_choice(r, changes, "type", UserType, self.type),
            address=_text(r, changes, "address", self.address),
            skills=_strings(r, changes, "skills", self.skills),
            reputation=_number(r, changes, "reputation", self.reputation,
                               minimum=0, integer=True),
            updated_at=updated_at,
        )

    def with_password(self, password_hash: str, updated_at: datetime) -> "User":
        return replace(self, password_hash=password_hash, updated_at=updated_at)


# ─────────────────────────────────────────────────────────────
# Session
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Session:
    """A bearer token bound to one user until ``expires_at``."""

    RECORD: ClassVar[str] = "session"

    user_id:    str
    token:      str
    created_at: datetime
    expires_at: datetime

    def is_live(self, now: datetime) -> bool:
        return now < self.expires_at

    def to_dict(self) -> dict:
        return {
            "userId":    self.user_id,
            "token":     self.token,
            "createdAt": to_timestamp(self.created_at),
            "expiresAt": to_timestamp(self.expires_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "Session":
        r = cls.RECORD
        data = _ensure_mapping(r, data)
        return cls(
            user_id=_text(r, data, "userId"),
            token=_text(r, data, "token"),
            created_at=_moment(r, data, "createdAt"),
            expires_at=_moment(r, data, "expiresAt"),
        )


# ─────────────────────────────────────────────────────────────
# Idea
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Idea:
    RECORD: ClassVar[str] = "idea"

    id:                     str
    creator_id:             str
    title:                  str
    description:            str
    category:               str
    created_at:             datetime
    updated_at:             datetime
    tags:                   list[str]    = field(default_factory=list)
    feasibility_score:      int | float  = 0
    market_size:            str          = "Unknown"
    competition_level:      str          = "Unknown"
    development_complexity: str          = "Unknown"
    funding_required:       int | float  = 0
    equity_offered:         int | float  = 0
    status:                 IdeaStatus   = IdeaStatus.DRAFT
    nft_token_id:           str          = ""

    def to_dict(self) -> dict:
        return {
            "id":                    self.id,
            "creatorId":             self.creator_id,
            "title":                 self.title,
            "description":           self.description,
            "category":              self.category,
            "tags":                  list(self.tags),
            "feasibilityScore":      self.feasibility_score,
            "marketSize":            self.market_size,
            "competitionLevel":      self.competition_level,
            "developmentComplexity": self.development_complexity,
            "fundingRequired":       self.funding_required,
            "equityOffered":         self.equity_offered,
            "status":                self.status.value,
            "nftTokenId":            self.nft_token_id,
            "createdAt":             to_timestamp(self.created_at),
            "updatedAt":             to_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "Idea":
        r = cls.RECORD
        data = _ensure_mapping(r, data)
        return cls(
            id=_text(r, data, "id"),
            creator_id=_text(r, data, "creatorId"),
            title=_text(r, data, "title"),
            description=_text(r, data, "description"),
            category=_text(r, data, "category"),
            tags=_strings(r, data, "tags", [], unique=True),
            feasibility_score=_number(r, data, "feasibilityScore", 0, minimum=0, maximum=100),
            market_size=_text(r, data, "marketSize", "Unknown"),
            competition_level=_text(r, data, "competitionLevel", "Unknown"),
            development_complexity=_text(r, data, "developmentComplexity", "Unknown"),
            funding_required=_number(r, data, "fundingRequired", 0, minimum=0),
            equity_offered=_number(r, data, "equityOffered", 0),
            status=_choice(r, data, "status", IdeaStatus, IdeaStatus.DRAFT),
            nft_token_id=_text(r, data, "nftTokenId", ""),
            created_at=_moment(r, data, "createdAt"),
            updated_at=_moment(r, data, "updatedAt"),
        )

    def merge(self, changes: Mapping, updated_at: datetime) -> "Idea":
        r = self.RECORD
        changes = _ensure_mapping(r, changes)
        return replace(
            self,
            title=_text(r, changes, "title", self.title),
            description=_text(r, changes, "description", self.description),
            category=_text(r, changes, "category", self.category),
            tags=_strings(r, changes, "tags", self.tags, unique=True),
            feasibility_score=_number(r, changes, "feasibilityScore", self.feasibility_score,
                                      minimum=0, maximum=100),
            market_size=_text(r, changes, "marketSize", self.market_size),
            competition_level=_text(r, changes, "competitionLevel", self.competition_level),
            development_complexity=_text(r, changes, "developmentComplexity",
                                         self.development_complexity),
            funding_required=_number(r, changes, "fundingRequired", self.funding_required,
                                     minimum=0),
            equity_offered=_number(r, changes, "equityOffered", self.equity_offered),
            status=_choice(r, changes, "status", IdeaStatus, self.status),
            nft_token_id=_text(r, changes, "nftTokenId", self.nft_token_id),
            updated_at=updated_at,
        )


# ─────────────────────────────────────────────────────────────
# Project + Milestone
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Milestone:
    """A funded step of a Project. Embedded, never stored on its own."""

    RECORD: ClassVar[str] = "milestone"

    id:             str
    title:          str
    description:    str             = ""
    funding_amount: int | float     = 0
    status:         MilestoneStatus = MilestoneStatus.PENDING
    due_date:       str             = ""
    completed_date: Optional[str]   = None

    def to_dict(self) -> dict:
        d = {
            "id":            self.id,
            "title":         self.title,
            "description":   self.description,
            "fundingAmount": self.funding_amount,
            "status":        self.status.value,
            "dueDate":       self.due_date,
        }
        if self.completed_date is not None:
            d["completedDate"] = self.completed_date
        return d

    @classmethod
    def from_dict(cls, data: Mapping) -> "Milestone":
        """Milestones sent by clients may omit the id; one is minted then."""
        r = cls.RECORD
        data = _ensure_mapping(r, data)
        return cls(
            id=_text(r, data, "id", None) or new_id("milestone"),
            title=_text(r, data, "title"),
            description=_text(r, data, "description", ""),
            funding_amount=_number(r, data, "fundingAmount", 0, minimum=0),
            status=_choice(r, data, "status", MilestoneStatus, MilestoneStatus.PENDING),
            due_date=_text(r, data, "dueDate", ""),
            completed_date=_text(r, data, "completedDate", None),
        )


def _milestones(record: str, data: Mapping, key: str, default: Any) -> list[Milestone]:
    if not _present(data, key):
        return list(default)
    value = data[key]
    if not isinstance(value, (list, tuple)):
        raise RecordValidationError(record, f"'{key}' must be a list")
    return [m if isinstance(m, Milestone) else Milestone.from_dict(m) for m in value]


@dataclass(frozen=True)
class Project:
    RECORD: ClassVar[str] = "project"

    id:                   str
    idea_id:              str
    executor_id:          str
    title:                str
    description:          str
    created_at:           datetime
    updated_at:           datetime
    milestones:           list[Milestone] = field(default_factory=list)
    total_funding:        int | float     = 0
    current_funding:      int | float     = 0
    status:               ProjectStatus   = ProjectStatus.FUNDING
    start_date:           str             = ""
    estimated_completion: str             = ""
    actual_completion:    Optional[str]   = None

    def to_dict(self) -> dict:
        d = {
            "id":                  self.id,
            "ideaId":              self.idea_id,
            "executorId":          self.executor_id,
            "title":               self.title,
            "description":         self.description,
            "milestones":          [m.to_dict() for m in self.milestones],
            "totalFunding":        self.total_funding,
            "currentFunding":      self.current_funding,
            "status":              self.status.value,
            "startDate":           self.start_date,
            "estimatedCompletion": self.estimated_completion,
            "createdAt":           to_timestamp(self.created_at),
            "updatedAt":           to_timestamp(self.updated_at),
        }
        if self.actual_completion is not None:
            d["actualCompletion"] = self.actual_completion
        return d

    @classmethod
    def from_dict(cls, data: Mapping) -> "Project":
        r = cls.RECORD
        data = _ensure_mapping(r, data)
        return cls(
            id=_text(r, data, "id"),
            idea_id=_text(r, data, "ideaId"),
            executor_id=_text(r, data, "executorId"),
            title=_text(r, data, "title"),
            description=_text(r, data, "description"),
            milestones=_milestones(r, data, "milestones", []),
            total_funding=_number(r, data, "totalFunding", 0, minimum=0),
            current_funding=_number(r, data, "currentFunding", 0, minimum=0),
            status=_choice(r, data, "status", ProjectStatus, ProjectStatus.FUNDING),
            start_date=_text(r, data, "startDate", ""),
            estimated_completion=_text(r, data, "estimatedCompletion", ""),
            actual_completion=_text(r, data, "actualCompletion", None),
            created_at=_moment(r, data, "createdAt"),
            updated_at=_moment(r, data, "updatedAt"),
        )

    def merge(self, changes: Mapping, updated_at: datetime) -> "Project":
        r = self.RECORD
        changes = _ensure_mapping(r, changes)
        return replace(
            self,
            idea_id=_text(r, changes, "ideaId", self.idea_id),
            title=_text(r, changes, "title", self.title),
            description=_text(r, changes, "description", self.description),
            milestones=_milestones(r, changes, "milestones", self.milestones),
            total_funding=_number(r, changes, "totalFunding", self.total_funding, minimum=0),
            current_funding=_number(r, changes, "currentFunding", self.current_funding,
                                    minimum=0),
            status=_choice(r, changes, "status", ProjectStatus, self.status),
            start_date=_text(r, changes, "startDate", self.start_date),
            estimated_completion=_text(r, changes, "estimatedCompletion",
                                       self.estimated_completion),
            actual_completion=_text(r, changes, "actualCompletion", self.actual_completion),
            updated_at=updated_at,
        )


# ─────────────────────────────────────────────────────────────
# Funding
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Funding:
    RECORD: ClassVar[str] = "funding"

    id:                str
    project_id:        str
    funder_id:         str
    amount:            int | float
    equity_percentage: int | float
    created_at:        datetime
    updated_at:        datetime
    terms:             str           = ""
    status:            FundingStatus = FundingStatus.PENDING

    def to_dict(self) -> dict:
        return {
            "id":               self.id,
            "projectId":        self.project_id,
            "funderId":         self.funder_id,
            "amount":           self.amount,
            "equityPercentage": self.equity_percentage,
            "terms":            self.terms,
            "status":           self.status.value,
            "createdAt":        to_timestamp(self.created_at),
            "updatedAt":        to_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "Funding":
        r = cls.RECORD
        data = _ensure_mapping(r, data)
        return cls(
            id=_text(r, data, "id"),
            project_id=_text(r, data, "projectId"),
            funder_id=_text(r, data, "funderId"),
            amount=_number(r, data, "amount", minimum=0),
            equity_percentage=_number(r, data, "equityPercentage", minimum=0, maximum=100),
            terms=_text(r, data, "terms", ""),
            status=_choice(r, data, "status", FundingStatus, FundingStatus.PENDING),
            created_at=_moment(r, data, "createdAt"),
            updated_at=_moment(r, data, "updatedAt"),
        )

    def merge(self, changes: Mapping, updated_at: datetime) -> "Funding":
        r = self.RECORD
        changes = _ensure_mapping(r, changes)
        return replace(
            self,
            amount=_number(r, changes, "amount", self.amount, minimum=0),
            equity_percentage=_number(r, changes, "equityPercentage", self.equity_percentage,
                                      minimum=0, maximum=100),
            terms=_text(r, changes, "terms", self.terms),
            status=_choice(r, changes, "status", FundingStatus, self.status),
            updated_at=updated_at,
        )


# ─────────────────────────────────────────────────────────────
# DataRecord
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DataRecord:
    """Free-form per-user storage. ``value`` is any msgpack/JSON-able payload."""

    RECORD: ClassVar[str] = "data record"

    id:         str
    user_id:    str
    key:        str
    value:      Any
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict:
        return {
            "id":        self.id,
            "userId":    self.user_id,
            "key":       self.key,
            "value":     self.value,
            "createdAt": to_timestamp(self.created_at),
            "updatedAt": to_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "DataRecord":
        r = cls.RECORD
        data = _ensure_mapping(r, data)
        if "value" not in data:
            raise RecordValidationError(r, "'value' is required")
        return cls(
            id=_text(r, data, "id"),
            user_id=_text(r, data, "userId"),
            key=_text(r, data, "key"),
            value=_payload(r, data, "value"),
            created_at=_moment(r, data, "createdAt"),
            updated_at=_moment(r, data, "updatedAt"),
        )

    def merge(self, changes: Mapping, updated_at: datetime) -> "DataRecord":
        r = self.RECORD
        changes = _ensure_mapping(r, changes)
        return replace(
            self,
            key=_text(r, changes, "key", self.key),
            value=_payload(r, changes, "value") if "value" in changes else self.value,
            updated_at=updated_at,
        )

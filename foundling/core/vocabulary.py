"""
foundling vocabulary types.

UserType and the lifecycle statuses that entities reference
throughout the platform. Stored and sent on the wire as their
string values.
"""

from __future__ import annotations

from enum import Enum


class _Vocabulary(str, Enum):
    """Shared parsing for the string enums below."""

    @classmethod
    def from_string(cls, value: str):
        """Parse a value, accepting underscores for hyphens and any case."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Expected a string for {cls.__name__}, got {type(value).__name__}")
        normalized = value.lower().strip().replace("_", "-")
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(
                f"Unknown {cls.__name__} '{value}'. Valid values: "
                f"{[s.value for s in cls]}"
            )


# ─────────────────────────────────────────────────────────────
# Users
# ─────────────────────────────────────────────────────────────

class UserType(_Vocabulary):
    """What a member does on the platform. ``hybrid`` is the default."""
    INNOVATOR = "innovator"
    EXECUTOR  = "executor"
    FUNDER    = "funder"
    HYBRID    = "hybrid"


# ─────────────────────────────────────────────────────────────
# Lifecycle statuses
# ─────────────────────────────────────────────────────────────

class IdeaStatus(_Vocabulary):
    DRAFT       = "draft"
    ACTIVE      = "active"
    FUNDED      = "funded"
    IN_PROGRESS = "in-progress"
    COMPLETED   = "completed"


class ProjectStatus(_Vocabulary):
    FUNDING     = "funding"
    IN_PROGRESS = "in-progress"
    COMPLETED   = "completed"
    CANCELLED   = "cancelled"


class MilestoneStatus(_Vocabulary):
    PENDING     = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED   = "completed"
    PAID        = "paid"


class FundingStatus(_Vocabulary):
    PENDING   = "pending"
    APPROVED  = "approved"
    REJECTED  = "rejected"
    COMPLETED = "completed"

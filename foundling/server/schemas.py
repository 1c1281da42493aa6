"""
Operation input models.

Each operation validates its fields with one of these before touching
the store. Field names are camelCase on the wire (aliases) and
snake_case in Python. Unknown fields are ignored.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

Number = Union[int, float]


class OperationInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ─────────────────────────────────────────────────────────────
# Auth
# ─────────────────────────────────────────────────────────────

class SignupInput(OperationInput):
    email: str = Field(..., min_length=1, description="Unique login email")
    password: str = Field(..., min_length=1)
    name: Optional[str] = None
    bio: Optional[str] = None
    type: Optional[str] = Field(default=None, description="innovator | executor | funder | hybrid")
    address: Optional[str] = None
    skills: Optional[list[str]] = None

    def profile(self) -> dict:
        """The optional profile fields that were actually supplied."""
        return self.model_dump(
            exclude={"email", "password"}, exclude_none=True,
        )


class LoginInput(OperationInput):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


# ─────────────────────────────────────────────────────────────
# /db
# ─────────────────────────────────────────────────────────────

class UserIdInput(OperationInput):
    user_id: str = Field(..., alias="userId", min_length=1)


class EmailInput(OperationInput):
    email: str = Field(..., min_length=1)


class UpdatesInput(OperationInput):
    updates: dict[str, Any]


class DataRecordCreateInput(OperationInput):
    key: str = Field(..., min_length=1)
    value: Any = Field(..., description="Any JSON value, null included")


class RecordIdInput(OperationInput):
    record_id: str = Field(..., alias="recordId", min_length=1)


class DataRecordUpdateInput(RecordIdInput):
    updates: dict[str, Any]


# ─────────────────────────────────────────────────────────────
# Ideas
# ─────────────────────────────────────────────────────────────

class IdeaCreateInput(OperationInput):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    tags: list[str] = Field(default_factory=list)
    feasibility_score: Optional[Number] = Field(default=None, alias="feasibilityScore")
    market_size: Optional[str] = Field(default=None, alias="marketSize")
    competition_level: Optional[str] = Field(default=None, alias="competitionLevel")
    development_complexity: Optional[str] = Field(default=None, alias="developmentComplexity")
    funding_required: Number = Field(default=0, alias="fundingRequired", ge=0)
    equity_offered: Number = Field(default=0, alias="equityOffered")
    nft_token_id: str = Field(default="", alias="nftTokenId")

    def needs_assessment(self) -> bool:
        return any(v is None for v in (
            self.feasibility_score, self.market_size,
            self.competition_level, self.development_complexity,
        ))


class IdeaIdInput(OperationInput):
    idea_id: str = Field(..., alias="ideaId", min_length=1)


class IdeaUpdateInput(IdeaIdInput):
    updates: dict[str, Any] = Field(default_factory=dict)


class CreatorInput(OperationInput):
    creator_id: Optional[str] = Field(default=None, alias="creatorId")


# ─────────────────────────────────────────────────────────────
# Projects
# ─────────────────────────────────────────────────────────────

class ProjectCreateInput(OperationInput):
    idea_id: str = Field(..., alias="ideaId", min_length=1)
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    milestones: list[dict[str, Any]] = Field(default_factory=list)
    total_funding: Number = Field(default=0, alias="totalFunding", ge=0)
    start_date: Optional[str] = Field(default=None, alias="startDate")
    estimated_completion: str = Field(default="", alias="estimatedCompletion")


class ProjectIdInput(OperationInput):
    project_id: str = Field(..., alias="projectId", min_length=1)


class ProjectUpdateInput(ProjectIdInput):
    updates: dict[str, Any] = Field(default_factory=dict)


class ExecutorInput(OperationInput):
    executor_id: Optional[str] = Field(default=None, alias="executorId")


# ─────────────────────────────────────────────────────────────
# Funding
# ─────────────────────────────────────────────────────────────

class FundingCreateInput(OperationInput):
    project_id: str = Field(..., alias="projectId", min_length=1)
    amount: Number = Field(..., gt=0)
    equity_percentage: Number = Field(..., alias="equityPercentage", gt=0, le=100)
    terms: str = ""


class FundingIdInput(OperationInput):
    funding_id: str = Field(..., alias="fundingId", min_length=1)


class FundingUpdateInput(FundingIdInput):
    updates: dict[str, Any] = Field(default_factory=dict)


class FunderInput(OperationInput):
    funder_id: Optional[str] = Field(default=None, alias="funderId")

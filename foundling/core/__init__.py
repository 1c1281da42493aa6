"""
foundling core vocabulary.

    from foundling.core import (
        # Entities
        User, Session, Idea, Project, Milestone, Funding, DataRecord,
        # Vocabulary
        UserType, IdeaStatus, ProjectStatus, MilestoneStatus, FundingStatus,
        # Errors
        FoundlingError, StorageError, EncodingError,
        RecordValidationError, EmailTakenError,
    )
"""

from foundling.core.entities import (
    DataRecord,
    Funding,
    Idea,
    Milestone,
    Project,
    Session,
    User,
    new_id,
    parse_timestamp,
    to_timestamp,
    utc_now,
)
from foundling.core.errors import (
    EmailTakenError,
    EncodingError,
    FoundlingError,
    RecordValidationError,
    StorageError,
)
from foundling.core.vocabulary import (
    FundingStatus,
    IdeaStatus,
    MilestoneStatus,
    ProjectStatus,
    UserType,
)

__all__ = [
    # Entities
    "User", "Session", "Idea", "Project", "Milestone", "Funding", "DataRecord",
    "new_id", "utc_now", "to_timestamp", "parse_timestamp",
    # Vocabulary
    "UserType", "IdeaStatus", "ProjectStatus", "MilestoneStatus", "FundingStatus",
    # Errors
    "FoundlingError", "StorageError", "EncodingError",
    "RecordValidationError", "EmailTakenError",
]

"""Models package."""

from backend.app.models.user_orm import AppUserORM
from backend.app.models.record_orm import RecordORM
from backend.app.models.finding_orm import (
    FollowupQuestionORM,
    RootCauseCandidateORM,
    ActionItemCandidateORM,
    RootCauseFinalORM,
    ActionItemORM,
)
from backend.app.models.audit_orm import AuditEventORM

__all__ = [
    "AppUserORM",
    "RecordORM",
    "FollowupQuestionORM",
    "RootCauseCandidateORM",
    "ActionItemCandidateORM",
    "RootCauseFinalORM",
    "ActionItemORM",
    "AuditEventORM",
]

"""Services package."""

from backend.app.services.promotion import CandidatePromotionManager
from backend.app.services.record_service import RecordService
from backend.app.services.workflow import WorkflowController

__all__ = [
    "CandidatePromotionManager",
    "RecordService",
    "WorkflowController",
]

"""FastAPI providers for the lifecycle services. Tests override these."""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.database import get_session_factory
from backend.app.services.analysis_service import AnalysisService, get_analysis_service
from backend.app.services.promotion import CandidatePromotionManager
from backend.app.services.record_service import RecordService
from backend.app.services.workflow import WorkflowController


def get_record_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> RecordService:
    return RecordService(session_factory)


def get_workflow(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    analysis: AnalysisService = Depends(get_analysis_service),
) -> WorkflowController:
    return WorkflowController(session_factory, analysis_service=analysis)


def get_promotion_manager(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> CandidatePromotionManager:
    return CandidatePromotionManager(session_factory)

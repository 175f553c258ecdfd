"""
Shared test data for RCFA tests: intake payloads, actors, auth headers and a
canned analysis collaborator that never reaches a real LLM provider.
"""
import asyncio
from typing import Dict, List, Optional

from sqlalchemy import func, select

from backend.app.core.security import User, create_access_token
from backend.app.models.audit_orm import AuditEventORM
from backend.app.models.user_orm import AppUserORM
from backend.app.schemas.analysis import (
    AnalysisResult,
    ReanalysisResult,
    SuggestedActionItem,
    SuggestedQuestion,
    SuggestedRootCause,
)
from backend.app.schemas.records import RecordCreate
from backend.app.services.analysis_service import AnalysisContext, AnalysisService

INTAKE = {
    "title": "Cooling water pump P-101 bearing failure",
    "equipment_description": "Centrifugal pump, 75 kW",
    "failure_description": "Drive-end bearing seized during normal operation",
    "equipment_make": "Flowserve",
    "operating_context": "running",
    "downtime_minutes": 240,
}


class FakeAnalysisService(AnalysisService):
    """Analysis collaborator that returns canned results and records what it was asked."""

    def __init__(self):
        super().__init__(adapter=None)
        self.initial_result = AnalysisResult(
            followup_questions=[
                SuggestedQuestion(question_text="Was the bearing temperature trending before the trip?", question_category="evidence"),
                SuggestedQuestion(question_text="When was the last lubrication PM completed?", question_category="maintenance_history"),
            ],
            root_cause_candidates=[
                SuggestedRootCause(cause_text="Lubrication starvation of drive-end bearing", rationale_text="Heat discoloration", confidence_label="high"),
                SuggestedRootCause(cause_text="Shaft misalignment after motor swap", confidence_label="medium"),
            ],
            action_item_candidates=[
                SuggestedActionItem(action_text="Add vibration route for pump P-101", rationale_text="No condition monitoring", priority="high", timeframe_text="2 weeks", success_criteria="Route live in CMMS"),
                SuggestedActionItem(action_text="Laser-align motor and pump", priority="medium"),
            ],
        )
        self.reanalysis_result: Optional[ReanalysisResult] = None
        self.error: Optional[Exception] = None
        self.delay = 0.0
        self.contexts: List[AnalysisContext] = []

    async def analyze(self, context: AnalysisContext) -> AnalysisResult:
        self.contexts.append(context)
        if self.error:
            raise self.error
        return self.initial_result

    async def reanalyze(self, context: AnalysisContext) -> ReanalysisResult:
        self.contexts.append(context)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        if self.reanalysis_result is None:
            return ReanalysisResult(no_material_change=True, materiality_reasoning="Same evidence as before.")
        return self.reanalysis_result


def actor_for(user: AppUserORM) -> User:
    return User(id=user.id, role=user.role, display_name=user.display_name)


def auth_headers(user: AppUserORM) -> Dict[str, str]:
    token = create_access_token({"sub": user.id, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


def sample_intake(**overrides) -> RecordCreate:
    return RecordCreate(**{**INTAKE, **overrides})


async def count_events(session_factory, record_id: str, event_type: Optional[str] = None) -> int:
    async with session_factory() as session:
        stmt = select(func.count()).select_from(AuditEventORM).where(AuditEventORM.record_id == record_id)
        if event_type:
            stmt = stmt.where(AuditEventORM.event_type == event_type)
        return (await session.execute(stmt)).scalar_one()

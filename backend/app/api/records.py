"""
RCFA Records API Router.

Intake, stage transitions and record-level edits. Routers only translate
HTTP to service calls; typed lifecycle failures propagate to the exception
handler registered in main.py.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, Security, status

from backend.app.api.dependencies import get_record_service, get_workflow
from backend.app.core.security import get_current_user, User, RECORD_READ, RECORD_WRITE, RECORD_ADMIN
from backend.app.schemas.audit import AuditEventResponse, dump_payload
from backend.app.schemas.records import (
    AnswerRequest,
    CloseRequest,
    FollowupQuestionResponse,
    InvestigationNotesUpdate,
    OwnerChangeRequest,
    ProgressSummary,
    ReanalysisOutcome,
    RecordCreate,
    RecordDetailResponse,
    RecordResponse,
    RecordStatus,
    RecordUpdate,
)
from backend.app.services import audit_ledger, completion_gate
from backend.app.services.record_service import RecordService
from backend.app.services.workflow import WorkflowController

logger = logging.getLogger(__name__)
router = APIRouter()


def _to_response(record) -> RecordResponse:
    return RecordResponse.model_validate(record)


# ---------------------------------------------------------------------------
# Intake and reads
# ---------------------------------------------------------------------------

@router.post("", response_model=RecordResponse, status_code=status.HTTP_201_CREATED)
async def create_record(
    body: RecordCreate,
    records: RecordService = Depends(get_record_service),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    """Create a new record in draft; the creator becomes its owner."""
    record = await records.create_record(body, current_user)
    return _to_response(record)


@router.get("", response_model=List[RecordResponse])
async def list_records(
    status_filter: Optional[RecordStatus] = Query(None, alias="status"),
    mine: bool = Query(False, description="Only records owned by the caller"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    records: RecordService = Depends(get_record_service),
    current_user: User = Security(get_current_user, scopes=[RECORD_READ]),
):
    rows = await records.list_records(
        status=status_filter,
        owner_user_id=current_user.id if mine else None,
        limit=limit,
        offset=offset,
    )
    return [_to_response(r) for r in rows]


@router.get("/{record_id}", response_model=RecordDetailResponse)
async def get_record(
    record_id: str,
    records: RecordService = Depends(get_record_service),
    current_user: User = Security(get_current_user, scopes=[RECORD_READ]),
):
    detail = await records.get_record_detail(record_id)
    return RecordDetailResponse(
        record=_to_response(detail["record"]),
        followup_questions=detail["followup_questions"],
        root_cause_candidates=detail["root_cause_candidates"],
        action_item_candidates=detail["action_item_candidates"],
        root_cause_finals=detail["root_cause_finals"],
        action_items=detail["action_items"],
        progress=ProgressSummary(**completion_gate.summarize_progress(detail["action_items"])),
    )


@router.patch("/{record_id}", response_model=RecordResponse)
async def update_record_intake(
    record_id: str,
    body: RecordUpdate,
    records: RecordService = Depends(get_record_service),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    record = await records.update_intake(record_id, body, current_user)
    return _to_response(record)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record(
    record_id: str,
    workflow: WorkflowController = Depends(get_workflow),
    current_user: User = Security(get_current_user, scopes=[RECORD_ADMIN]),
):
    await workflow.delete_record(record_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{record_id}/audit-trail", response_model=List[AuditEventResponse])
async def get_audit_trail(
    record_id: str,
    records: RecordService = Depends(get_record_service),
    current_user: User = Security(get_current_user, scopes=[RECORD_READ]),
):
    """Full audit trail for a record, oldest first."""
    events = await records.get_audit_trail(record_id)
    return [
        AuditEventResponse(
            id=e.id,
            record_id=e.record_id,
            actor_user_id=e.actor_user_id,
            event_type=e.event_type,
            event_payload=dump_payload(audit_ledger.parse_payload(e)),
            trace_id=e.trace_id,
            created_at=e.created_at,
        )
        for e in events
    ]


# ---------------------------------------------------------------------------
# Stage transitions
# ---------------------------------------------------------------------------

@router.post("/{record_id}/start-investigation", response_model=RecordResponse)
async def start_investigation(
    record_id: str,
    workflow: WorkflowController = Depends(get_workflow),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    return _to_response(await workflow.start_investigation(record_id, current_user))


@router.post("/{record_id}/start-with-ai", response_model=RecordResponse)
async def start_with_ai(
    record_id: str,
    workflow: WorkflowController = Depends(get_workflow),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    """Run the initial AI analysis and move the record to investigation."""
    return _to_response(await workflow.start_with_ai(record_id, current_user))


@router.post("/{record_id}/reanalyze", response_model=ReanalysisOutcome)
async def reanalyze(
    record_id: str,
    workflow: WorkflowController = Depends(get_workflow),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    report = await workflow.reanalyze(record_id, current_user)
    return ReanalysisOutcome(
        record=_to_response(report.record),
        no_material_change=report.no_material_change,
        materiality_reasoning=report.materiality_reasoning,
        new_root_cause_candidates=report.new_root_cause_candidates,
        new_action_item_candidates=report.new_action_item_candidates,
        relabeled_candidates=len(report.relabels),
    )


@router.post("/{record_id}/finalize", response_model=RecordResponse)
async def finalize_investigation(
    record_id: str,
    workflow: WorkflowController = Depends(get_workflow),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    return _to_response(await workflow.finalize(record_id, current_user))


@router.post("/{record_id}/close", response_model=RecordResponse)
async def close_record(
    record_id: str,
    body: Optional[CloseRequest] = None,
    workflow: WorkflowController = Depends(get_workflow),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    closing_notes = body.closing_notes if body else None
    return _to_response(await workflow.close(record_id, current_user, closing_notes))


@router.post("/{record_id}/reopen", response_model=RecordResponse)
async def reopen_record(
    record_id: str,
    workflow: WorkflowController = Depends(get_workflow),
    current_user: User = Security(get_current_user, scopes=[RECORD_ADMIN]),
):
    return _to_response(await workflow.reopen(record_id, current_user))


@router.post("/{record_id}/return-to-investigation", response_model=RecordResponse)
async def return_to_investigation(
    record_id: str,
    workflow: WorkflowController = Depends(get_workflow),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    return _to_response(await workflow.return_to_investigation(record_id, current_user))


# ---------------------------------------------------------------------------
# Record-level edits
# ---------------------------------------------------------------------------

@router.patch("/{record_id}/owner", response_model=RecordResponse)
async def reassign_owner(
    record_id: str,
    body: OwnerChangeRequest,
    workflow: WorkflowController = Depends(get_workflow),
    current_user: User = Security(get_current_user, scopes=[RECORD_ADMIN]),
):
    return _to_response(await workflow.reassign_owner(record_id, current_user, body.owner_user_id))


@router.patch("/{record_id}/investigation-notes", response_model=RecordResponse)
async def update_investigation_notes(
    record_id: str,
    body: InvestigationNotesUpdate,
    workflow: WorkflowController = Depends(get_workflow),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    record = await workflow.update_investigation_notes(record_id, current_user, body.investigation_notes)
    return _to_response(record)


@router.patch("/{record_id}/questions/{question_id}", response_model=FollowupQuestionResponse)
async def answer_question(
    record_id: str,
    question_id: str,
    body: AnswerRequest,
    workflow: WorkflowController = Depends(get_workflow),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    question = await workflow.answer_question(record_id, question_id, current_user, body.answer_text)
    return FollowupQuestionResponse.model_validate(question)

"""
Audit event payloads.

Each event type has its own payload model; ``AuditPayload`` is the tagged
union over all of them, keyed by ``event_type``. Payloads are stored as JSON
(``by_alias`` so diffs read ``{"from": ..., "to": ...}``) and parsed back
through the same union when the trail is read.
"""
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class AuditEventType(str, Enum):
    STATUS_CHANGED = "status_changed"
    CANDIDATE_GENERATED = "candidate_generated"
    CANDIDATE_UPDATED = "candidate_updated"
    PROMOTED_TO_FINAL = "promoted_to_final"
    FINAL_CREATED = "final_created"
    FINAL_UPDATED = "final_updated"
    FINAL_DELETED = "final_deleted"
    ACTION_ITEM_PROMOTED = "action_item_promoted"
    ACTION_ITEM_CREATED = "action_item_created"
    ACTION_ITEM_UPDATED = "action_item_updated"
    ACTION_ITEM_DELETED = "action_item_deleted"
    ACTION_COMPLETED = "action_completed"
    OWNER_CHANGED = "owner_changed"
    ANSWER_SUBMITTED = "answer_submitted"
    ANSWER_UPDATED = "answer_updated"
    INVESTIGATION_NOTES_UPDATED = "investigation_notes_updated"
    RECORD_DELETED = "record_deleted"


class AuditSource(str, Enum):
    AI_INITIAL_ANALYSIS = "ai_initial_analysis"
    AI_REANALYSIS = "ai_reanalysis"
    AI_REANALYSIS_NO_CHANGE = "ai_reanalysis_no_change"


class FieldChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: Any = Field(None, alias="from")
    to: Any = None


Changes = Dict[str, FieldChange]


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StatusChangedPayload(_Payload):
    event_type: Literal["status_changed"] = "status_changed"
    from_: str = Field(..., alias="from")
    to: str
    source: Optional[AuditSource] = None
    counts: Optional[Dict[str, int]] = None
    activated_action_item_ids: Optional[List[str]] = None
    closing_notes: Optional[str] = None
    reason: Optional[str] = None


class CandidateRelabel(BaseModel):
    candidate_id: str
    candidate_type: Literal["root_cause", "action_item"]
    from_: str = Field(..., alias="from")
    to: str
    reason: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class AnswerSnapshot(BaseModel):
    question_id: str
    question_text: str
    answer_text: Optional[str] = None
    answered_at: Optional[datetime] = None


class CandidateGeneratedPayload(_Payload):
    event_type: Literal["candidate_generated"] = "candidate_generated"
    source: AuditSource
    counts: Dict[str, int] = {}
    relabels: List[CandidateRelabel] = []
    materiality_reasoning: Optional[str] = None
    answer_snapshot: List[AnswerSnapshot] = []
    investigation_notes_snapshot: Optional[str] = None


class CandidateUpdatedPayload(_Payload):
    event_type: Literal["candidate_updated"] = "candidate_updated"
    candidate_id: str
    candidate_type: Literal["root_cause", "action_item"]
    changes: Changes


class PromotedToFinalPayload(_Payload):
    event_type: Literal["promoted_to_final"] = "promoted_to_final"
    candidate_id: str
    final_id: str
    cause_text: str


class FinalCreatedPayload(_Payload):
    event_type: Literal["final_created"] = "final_created"
    final_id: str
    cause_text: str


class FinalUpdatedPayload(_Payload):
    event_type: Literal["final_updated"] = "final_updated"
    final_id: str
    changes: Changes


class FinalDeletedPayload(_Payload):
    event_type: Literal["final_deleted"] = "final_deleted"
    final_id: str
    cause_text: str


class ActionItemPromotedPayload(_Payload):
    event_type: Literal["action_item_promoted"] = "action_item_promoted"
    candidate_id: str
    action_item_id: str
    action_item_number: int
    action_text: str


class ActionItemCreatedPayload(_Payload):
    event_type: Literal["action_item_created"] = "action_item_created"
    action_item_id: str
    action_item_number: int
    action_text: Optional[str] = None
    status: str


class ActionItemUpdatedPayload(_Payload):
    event_type: Literal["action_item_updated"] = "action_item_updated"
    action_item_id: str
    changes: Changes


class ActionCompletedPayload(_Payload):
    event_type: Literal["action_completed"] = "action_completed"
    action_item_id: str
    changes: Changes
    completion_notes: Optional[str] = None


class ActionItemDeletedPayload(_Payload):
    event_type: Literal["action_item_deleted"] = "action_item_deleted"
    action_item_id: str
    action_item_number: int
    action_text: Optional[str] = None


class OwnerChangedPayload(_Payload):
    event_type: Literal["owner_changed"] = "owner_changed"
    previous_owner_id: str
    previous_owner_name: Optional[str] = None
    new_owner_id: str
    new_owner_name: str


class AnswerSubmittedPayload(_Payload):
    event_type: Literal["answer_submitted"] = "answer_submitted"
    question_id: str
    question_text: str
    answer_text: str


class AnswerUpdatedPayload(_Payload):
    event_type: Literal["answer_updated"] = "answer_updated"
    question_id: str
    question_text: str
    previous_answer: Optional[str] = None
    answer_text: str


class InvestigationNotesUpdatedPayload(_Payload):
    event_type: Literal["investigation_notes_updated"] = "investigation_notes_updated"
    changes: Changes


class RecordDeletedPayload(_Payload):
    event_type: Literal["record_deleted"] = "record_deleted"
    status_at_deletion: str


AuditPayload = Annotated[
    Union[
        StatusChangedPayload,
        CandidateGeneratedPayload,
        CandidateUpdatedPayload,
        PromotedToFinalPayload,
        FinalCreatedPayload,
        FinalUpdatedPayload,
        FinalDeletedPayload,
        ActionItemPromotedPayload,
        ActionItemCreatedPayload,
        ActionItemUpdatedPayload,
        ActionCompletedPayload,
        ActionItemDeletedPayload,
        OwnerChangedPayload,
        AnswerSubmittedPayload,
        AnswerUpdatedPayload,
        InvestigationNotesUpdatedPayload,
        RecordDeletedPayload,
    ],
    Field(discriminator="event_type"),
]

audit_payload_adapter = TypeAdapter(AuditPayload)


def dump_payload(payload: AuditPayload) -> Dict[str, Any]:
    """
    JSON form of a payload as stored in the ledger.

    Unset top-level fields are dropped. Nested values are kept whole, so a
    change that sets or clears a field still records both sides.
    """
    data = payload.model_dump(mode="json", by_alias=True)
    return {key: value for key, value in data.items() if value is not None}


class AuditEventResponse(BaseModel):
    id: str
    record_id: str
    actor_user_id: str
    event_type: AuditEventType
    event_payload: Dict[str, Any]
    trace_id: Optional[str] = None
    created_at: datetime


def diff_fields(row: Any, updates: Dict[str, Any]) -> Changes:
    """Field-level diff of ``updates`` against the current attribute values of ``row``."""
    changes: Changes = {}
    for field, new_value in updates.items():
        if isinstance(new_value, Enum):
            new_value = new_value.value
        old_value = getattr(row, field)
        if old_value != new_value:
            changes[field] = FieldChange(from_=old_value, to=new_value)
    return changes

"""
RCFA Record Schemas and Enums.

Shared contract between the lifecycle services and the HTTP layer.
"""
from enum import Enum
from typing import Optional, List
from datetime import date, datetime
from pydantic import BaseModel, Field


class RecordStatus(str, Enum):
    """Record lifecycle stages."""
    DRAFT = "draft"
    INVESTIGATION = "investigation"
    ACTIONS_OPEN = "actions_open"
    CLOSED = "closed"


class ActionItemStatus(str, Enum):
    DRAFT = "draft"            # created during investigation, activated by finalize
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"
    CANCELED = "canceled"


RESOLVED_ACTION_STATUSES = frozenset({ActionItemStatus.DONE.value, ActionItemStatus.CANCELED.value})
# Must be set on every item before finalize, and stay set afterwards
ACTION_ITEM_REQUIRED_FIELDS = ("action_text", "owner_user_id", "due_date", "priority")


class ConfidenceLabel(str, Enum):
    DEPRIORITIZED = "deprioritized"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Priority(str, Enum):
    DEPRIORITIZED = "deprioritized"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class OperatingContext(str, Enum):
    RUNNING = "running"
    STARTUP = "startup"
    SHUTDOWN = "shutdown"
    MAINTENANCE = "maintenance"
    UNKNOWN = "unknown"


class QuestionCategory(str, Enum):
    FAILURE_MODE = "failure_mode"
    EVIDENCE = "evidence"
    OPERATING_CONTEXT = "operating_context"
    MAINTENANCE_HISTORY = "maintenance_history"
    SAFETY = "safety"
    OTHER = "other"


class GeneratedBy(str, Enum):
    AI = "ai"
    HUMAN = "human"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class UserStatus(str, Enum):
    ACTIVE = "active"
    PENDING_APPROVAL = "pending_approval"
    INACTIVE = "inactive"


# --- Record intake ---

class RecordCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    equipment_description: str = Field(..., min_length=1)
    failure_description: str = Field(..., min_length=1)
    equipment_make: Optional[str] = None
    equipment_model: Optional[str] = None
    equipment_serial_number: Optional[str] = None
    equipment_age_years: Optional[float] = Field(None, ge=0)
    operating_context: OperatingContext = OperatingContext.UNKNOWN
    pre_failure_conditions: Optional[str] = None
    work_history_summary: Optional[str] = None
    active_pms_summary: Optional[str] = None
    additional_notes: Optional[str] = None
    downtime_minutes: Optional[int] = Field(None, ge=0)
    production_cost_usd: Optional[float] = Field(None, ge=0)
    maintenance_cost_usd: Optional[float] = Field(None, ge=0)


class RecordUpdate(BaseModel):
    """Intake edit; only fields present in the request body are applied."""
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    equipment_description: Optional[str] = Field(None, min_length=1)
    failure_description: Optional[str] = Field(None, min_length=1)
    equipment_make: Optional[str] = None
    equipment_model: Optional[str] = None
    equipment_serial_number: Optional[str] = None
    equipment_age_years: Optional[float] = Field(None, ge=0)
    operating_context: Optional[OperatingContext] = None
    pre_failure_conditions: Optional[str] = None
    work_history_summary: Optional[str] = None
    active_pms_summary: Optional[str] = None
    additional_notes: Optional[str] = None
    downtime_minutes: Optional[int] = Field(None, ge=0)
    production_cost_usd: Optional[float] = Field(None, ge=0)
    maintenance_cost_usd: Optional[float] = Field(None, ge=0)


class RecordResponse(BaseModel):
    id: str
    record_number: int
    display_number: str
    title: str
    status: RecordStatus
    equipment_description: str
    equipment_make: Optional[str] = None
    equipment_model: Optional[str] = None
    equipment_serial_number: Optional[str] = None
    equipment_age_years: Optional[float] = None
    operating_context: OperatingContext
    pre_failure_conditions: Optional[str] = None
    failure_description: str
    work_history_summary: Optional[str] = None
    active_pms_summary: Optional[str] = None
    additional_notes: Optional[str] = None
    downtime_minutes: Optional[int] = None
    production_cost_usd: Optional[float] = None
    maintenance_cost_usd: Optional[float] = None
    owner_user_id: str
    created_by_user_id: str
    investigation_notes: Optional[str] = None
    investigation_notes_updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    closed_by_user_id: Optional[str] = None
    closing_notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# --- Findings ---

class FollowupQuestionResponse(BaseModel):
    id: str
    record_id: str
    question_text: str
    question_category: QuestionCategory
    generated_by: GeneratedBy
    generated_at: datetime
    answer_text: Optional[str] = None
    answered_at: Optional[datetime] = None
    answered_by_user_id: Optional[str] = None

    class Config:
        from_attributes = True


class RootCauseCandidateResponse(BaseModel):
    id: str
    record_id: str
    cause_text: str
    rationale_text: Optional[str] = None
    confidence_label: ConfidenceLabel
    generated_by: GeneratedBy
    generated_at: datetime

    class Config:
        from_attributes = True


class ActionItemCandidateResponse(BaseModel):
    id: str
    record_id: str
    action_text: str
    rationale_text: Optional[str] = None
    priority: Priority
    timeframe_text: Optional[str] = None
    success_criteria: Optional[str] = None
    generated_by: GeneratedBy
    generated_at: datetime

    class Config:
        from_attributes = True


class RootCauseFinalResponse(BaseModel):
    id: str
    record_id: str
    cause_text: str
    evidence_summary: Optional[str] = None
    selected_from_candidate_id: Optional[str] = None
    selected_by_user_id: str
    selected_at: datetime
    updated_by_user_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActionItemResponse(BaseModel):
    id: str
    record_id: str
    action_item_number: int
    display_number: str
    action_text: Optional[str] = None
    action_description: Optional[str] = None
    success_criteria: Optional[str] = None
    owner_user_id: Optional[str] = None
    priority: Optional[Priority] = None
    due_date: Optional[date] = None
    status: ActionItemStatus
    completion_notes: Optional[str] = None
    work_completed_date: Optional[date] = None
    completed_at: Optional[datetime] = None
    completed_by_user_id: Optional[str] = None
    selected_from_candidate_id: Optional[str] = None
    created_by_user_id: str
    updated_by_user_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProgressSummary(BaseModel):
    total: int
    resolved: int
    outstanding: int
    all_complete: bool


class RecordDetailResponse(BaseModel):
    record: RecordResponse
    followup_questions: List[FollowupQuestionResponse] = []
    root_cause_candidates: List[RootCauseCandidateResponse] = []
    action_item_candidates: List[ActionItemCandidateResponse] = []
    root_cause_finals: List[RootCauseFinalResponse] = []
    action_items: List[ActionItemResponse] = []
    progress: ProgressSummary


# --- Workflow requests ---

class CloseRequest(BaseModel):
    closing_notes: Optional[str] = None


class OwnerChangeRequest(BaseModel):
    owner_user_id: str


class InvestigationNotesUpdate(BaseModel):
    investigation_notes: Optional[str] = None


class AnswerRequest(BaseModel):
    answer_text: str


class RelabelRequest(BaseModel):
    """New confidence label (root causes) or priority (action items)."""
    label: ConfidenceLabel


class FinalCreate(BaseModel):
    cause_text: str = Field(..., min_length=1)
    evidence_summary: Optional[str] = None


class FinalUpdate(BaseModel):
    cause_text: Optional[str] = Field(None, min_length=1)
    evidence_summary: Optional[str] = None


class ActionItemCreate(BaseModel):
    action_text: str = Field(..., min_length=1)
    action_description: Optional[str] = None
    success_criteria: Optional[str] = None
    owner_user_id: Optional[str] = None
    priority: Optional[Priority] = None
    due_date: Optional[date] = None


class ActionItemUpdate(BaseModel):
    action_text: Optional[str] = None
    action_description: Optional[str] = None
    success_criteria: Optional[str] = None
    owner_user_id: Optional[str] = None
    priority: Optional[Priority] = None
    due_date: Optional[date] = None
    status: Optional[ActionItemStatus] = None
    completion_notes: Optional[str] = None
    work_completed_date: Optional[date] = None


class ActionItemProgressUpdate(BaseModel):
    """The only fields an action item's assigned owner may change."""
    status: Optional[ActionItemStatus] = None
    completion_notes: Optional[str] = None
    work_completed_date: Optional[date] = None


class ReanalysisOutcome(BaseModel):
    record: RecordResponse
    no_material_change: bool
    materiality_reasoning: Optional[str] = None
    new_root_cause_candidates: int = 0
    new_action_item_candidates: int = 0
    relabeled_candidates: int = 0


class UserResponse(BaseModel):
    id: str
    email: str
    display_name: str
    role: UserRole
    status: UserStatus

    class Config:
        from_attributes = True

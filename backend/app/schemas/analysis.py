"""
Structured output expected from the analysis LLM.

The models double as the validation layer: a response that does not parse
into them is treated as an unavailable analysis, never half-applied.
"""
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from backend.app.schemas.records import ConfidenceLabel, Priority, QuestionCategory


class SuggestedQuestion(BaseModel):
    question_text: str = Field(..., min_length=1)
    question_category: QuestionCategory = QuestionCategory.OTHER


class SuggestedRootCause(BaseModel):
    cause_text: str = Field(..., min_length=1)
    rationale_text: Optional[str] = None
    confidence_label: ConfidenceLabel = ConfidenceLabel.MEDIUM


class SuggestedActionItem(BaseModel):
    action_text: str = Field(..., min_length=1)
    rationale_text: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    timeframe_text: Optional[str] = None
    success_criteria: Optional[str] = None


class AnalysisResult(BaseModel):
    followup_questions: List[SuggestedQuestion] = []
    root_cause_candidates: List[SuggestedRootCause] = []
    action_item_candidates: List[SuggestedActionItem] = []

    @property
    def counts(self) -> dict:
        return {
            "followup_questions": len(self.followup_questions),
            "root_cause_candidates": len(self.root_cause_candidates),
            "action_item_candidates": len(self.action_item_candidates),
        }


class RootCauseRelabel(BaseModel):
    id: str
    confidence_label: ConfidenceLabel
    update_reason: str = Field(..., min_length=1)


class ActionItemRelabel(BaseModel):
    id: str
    priority: Priority
    update_reason: str = Field(..., min_length=1)


class ExistingCandidateUpdates(BaseModel):
    root_causes: List[RootCauseRelabel] = []
    action_items: List[ActionItemRelabel] = []


class ReanalysisResult(BaseModel):
    materiality_reasoning: Optional[str] = None
    no_material_change: bool = False
    existing_candidate_updates: ExistingCandidateUpdates = ExistingCandidateUpdates()
    root_cause_candidates: List[SuggestedRootCause] = []
    action_item_candidates: List[SuggestedActionItem] = []

    @model_validator(mode="after")
    def _check_materiality(self):
        if self.no_material_change:
            # Anything returned alongside "no change" is discarded
            self.existing_candidate_updates = ExistingCandidateUpdates()
            self.root_cause_candidates = []
            self.action_item_candidates = []
            return self

        has_updates = bool(self.existing_candidate_updates.root_causes or self.existing_candidate_updates.action_items)
        has_new = bool(self.root_cause_candidates or self.action_item_candidates)
        if not (has_updates or has_new):
            raise ValueError("material change reported without new candidates or relabels")
        return self

"""
ORM Models for everything an investigation produces.

Follow-up questions and candidates are machine (or human) suggestions;
finals and action items are the curated findings. A candidate can be promoted
at most once: ``selected_from_candidate_id`` is unique on both curated tables.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, DateTime, Date, Integer, Sequence

from backend.app.core.database import Base


def _now():
    return datetime.now(timezone.utc)


ACTION_ITEM_NUMBER_SEQ = Sequence("rcfa_action_item_number_seq")


class FollowupQuestionORM(Base):
    __tablename__ = "rcfa_followup_questions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    record_id = Column(String(36), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    question_category = Column(String(30), nullable=False, default="other")
    generated_by = Column(String(10), nullable=False, default="ai")  # ai | human
    generated_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    answer_text = Column(Text, nullable=True)
    answered_at = Column(DateTime(timezone=True), nullable=True)
    answered_by_user_id = Column(String(36), nullable=True)


class RootCauseCandidateORM(Base):
    __tablename__ = "rcfa_root_cause_candidates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    record_id = Column(String(36), nullable=False, index=True)
    cause_text = Column(Text, nullable=False)
    rationale_text = Column(Text, nullable=True)
    confidence_label = Column(String(20), nullable=False, default="medium")
    generated_by = Column(String(10), nullable=False, default="ai")
    generated_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class ActionItemCandidateORM(Base):
    __tablename__ = "rcfa_action_item_candidates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    record_id = Column(String(36), nullable=False, index=True)
    action_text = Column(Text, nullable=False)
    rationale_text = Column(Text, nullable=True)
    priority = Column(String(20), nullable=False, default="medium")
    timeframe_text = Column(String(255), nullable=True)
    success_criteria = Column(Text, nullable=True)
    generated_by = Column(String(10), nullable=False, default="ai")
    generated_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class RootCauseFinalORM(Base):
    __tablename__ = "rcfa_root_cause_finals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    record_id = Column(String(36), nullable=False, index=True)
    cause_text = Column(Text, nullable=False)
    evidence_summary = Column(Text, nullable=True)
    selected_from_candidate_id = Column(String(36), nullable=True, unique=True)
    selected_by_user_id = Column(String(36), nullable=False)
    selected_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_by_user_id = Column(String(36), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_now)


class ActionItemORM(Base):
    __tablename__ = "rcfa_action_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    record_id = Column(String(36), nullable=False, index=True)
    action_item_number = Column(Integer, ACTION_ITEM_NUMBER_SEQ, nullable=False, unique=True)
    action_text = Column(Text, nullable=True)
    action_description = Column(Text, nullable=True)
    success_criteria = Column(Text, nullable=True)
    owner_user_id = Column(String(36), nullable=True, index=True)
    priority = Column(String(20), nullable=True)
    due_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default="open", index=True)  # ActionItemStatus values

    completion_notes = Column(Text, nullable=True)
    work_completed_date = Column(Date, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    completed_by_user_id = Column(String(36), nullable=True)

    selected_from_candidate_id = Column(String(36), nullable=True, unique=True)
    created_by_user_id = Column(String(36), nullable=False)
    updated_by_user_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_now)

    @property
    def display_number(self) -> str:
        return f"AI-{self.action_item_number:04d}"

    def __repr__(self):
        return f"<ActionItem {self.display_number} status={self.status}>"

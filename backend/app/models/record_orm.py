"""
ORM Model for the failure investigation record (RCFA).

One row per investigation; status drives which edits are allowed.
SQLite-compatible: UUIDs stored as String, no FK constraints.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, DateTime, Integer, Float, Sequence

from backend.app.core.database import Base


# Used on PostgreSQL; SQLite numbers with max+1 under its writer lock
RECORD_NUMBER_SEQ = Sequence("rcfa_record_number_seq")


class RecordORM(Base):
    __tablename__ = "rcfa_records"

    # Primary key — stored as String for SQLite compatibility
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    record_number = Column(Integer, RECORD_NUMBER_SEQ, nullable=False, unique=True)

    # Intake
    title = Column(String(500), nullable=False)
    equipment_description = Column(Text, nullable=False)
    equipment_make = Column(String(255), nullable=True)
    equipment_model = Column(String(255), nullable=True)
    equipment_serial_number = Column(String(255), nullable=True)
    equipment_age_years = Column(Float, nullable=True)
    operating_context = Column(String(20), nullable=False, default="unknown")  # OperatingContext values
    pre_failure_conditions = Column(Text, nullable=True)
    failure_description = Column(Text, nullable=False)
    work_history_summary = Column(Text, nullable=True)
    active_pms_summary = Column(Text, nullable=True)
    additional_notes = Column(Text, nullable=True)
    downtime_minutes = Column(Integer, nullable=True)
    production_cost_usd = Column(Float, nullable=True)
    maintenance_cost_usd = Column(Float, nullable=True)

    status = Column(String(20), nullable=False, default="draft", index=True)  # RecordStatus values

    # Ownership (no FK constraint for SQLite compatibility)
    owner_user_id = Column(String(36), nullable=False, index=True)
    created_by_user_id = Column(String(36), nullable=False)

    investigation_notes = Column(Text, nullable=True)
    investigation_notes_updated_at = Column(DateTime(timezone=True), nullable=True)

    # Closure
    closed_at = Column(DateTime(timezone=True), nullable=True)
    closed_by_user_id = Column(String(36), nullable=True)
    closing_notes = Column(Text, nullable=True)

    # Soft delete
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    deleted_by_user_id = Column(String(36), nullable=True)

    # Standard timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=lambda: datetime.now(timezone.utc))

    @property
    def display_number(self) -> str:
        return f"RCFA-{self.record_number:03d}"

    def __repr__(self):
        return f"<Record {self.display_number} status={self.status}>"

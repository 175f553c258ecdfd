"""
Audit Ledger ORM Model.

Append-only: rows are inserted as the last statement of the transaction
they describe and never updated or deleted.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, JSON
from backend.app.core.database import Base


class AuditEventORM(Base):
    __tablename__ = "rcfa_audit_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    record_id = Column(String(36), index=True, nullable=False)
    actor_user_id = Column(String(36), nullable=False)
    event_type = Column(String(50), nullable=False, index=True)
    event_payload = Column(JSON, nullable=False)

    # Request correlation id from TracingMiddleware
    trace_id = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditEvent {self.event_type} by {self.actor_user_id} for {self.record_id}>"

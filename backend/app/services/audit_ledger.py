"""
Audit Ledger.

Append-only event log for record lifecycle changes. ``append`` must be the
last statement of the transaction it describes, so an event exists if and only
if the change it records was committed.
"""
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.logging import correlation_id_ctx
from backend.app.models.audit_orm import AuditEventORM
from backend.app.schemas.audit import AuditEventType, AuditPayload, audit_payload_adapter, dump_payload

logger = logging.getLogger(__name__)


async def append(session: AsyncSession, record_id: str, actor_id: str, payload: AuditPayload) -> AuditEventORM:
    """Insert one audit event inside the caller's transaction and flush it."""
    entry = AuditEventORM(
        record_id=record_id,
        actor_user_id=actor_id,
        event_type=payload.event_type,
        event_payload=dump_payload(payload),
        trace_id=correlation_id_ctx.get(),
    )
    session.add(entry)
    await session.flush()
    logger.info(
        f"Audit event {payload.event_type} for record {record_id}",
        extra={"extra_data": {"record_id": record_id, "event_type": payload.event_type, "actor_id": actor_id}},
    )
    return entry


async def latest_event(
    session: AsyncSession, record_id: str, event_type: AuditEventType
) -> Optional[AuditEventORM]:
    result = await session.execute(
        select(AuditEventORM)
        .where(AuditEventORM.record_id == record_id, AuditEventORM.event_type == event_type.value)
        .order_by(AuditEventORM.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_events(session: AsyncSession, record_id: str) -> List[AuditEventORM]:
    """All events for a record, oldest first."""
    result = await session.execute(
        select(AuditEventORM)
        .where(AuditEventORM.record_id == record_id)
        .order_by(AuditEventORM.created_at.asc())
    )
    return list(result.scalars().all())


def parse_payload(entry: AuditEventORM) -> AuditPayload:
    """Parse a stored payload back into its typed model."""
    data = dict(entry.event_payload or {})
    data.setdefault("event_type", entry.event_type)
    return audit_payload_adapter.validate_python(data)

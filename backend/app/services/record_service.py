"""
Record Service - intake and read access for RCFA records.

Also owns the row-locked record read every mutating operation starts with.
Soft-deleted records are invisible here and therefore NotFound everywhere.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, Sequence, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.errors import NotFound, PreconditionFailed, ValidationFailed
from backend.app.core.security import User
from backend.app.models.finding_orm import (
    ActionItemCandidateORM,
    ActionItemORM,
    FollowupQuestionORM,
    RootCauseCandidateORM,
    RootCauseFinalORM,
)
from backend.app.models.audit_orm import AuditEventORM
from backend.app.models.record_orm import RECORD_NUMBER_SEQ, RecordORM
from backend.app.schemas.records import RecordCreate, RecordStatus, RecordUpdate
from backend.app.services import access_policy, audit_ledger

logger = logging.getLogger(__name__)


async def get_record(session: AsyncSession, record_id: str, for_update: bool = False) -> RecordORM:
    """Load a live record, optionally under a row lock, or raise NotFound."""
    stmt = select(RecordORM).where(RecordORM.id == record_id, RecordORM.deleted_at.is_(None))
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    record = result.scalar_one_or_none()
    if record is None:
        raise NotFound(f"Record {record_id} not found")
    return record


async def lock_record(session: AsyncSession, record_id: str) -> RecordORM:
    return await get_record(session, record_id, for_update=True)


def require_status(record: RecordORM, allowed, operation: str) -> None:
    allowed_values = {getattr(s, "value", s) for s in allowed}
    if record.status not in allowed_values:
        logger.warning(f"Rejected {operation} on record {record.id}: status is {record.status}")
        raise PreconditionFailed(
            f"Cannot {operation} while record is {record.status}",
            detail={"status": record.status, "allowed": sorted(allowed_values)},
        )


async def next_number(session: AsyncSession, column: Column, sequence: Sequence) -> int:
    """
    Next display number for ``column``.

    Backends with sequences draw from ``sequence``, so records locked
    independently never compute the same number. SQLite has none; there
    max+1 is safe because BEGIN IMMEDIATE serializes every writer.
    """
    if session.get_bind().dialect.supports_sequences:
        return await session.scalar(select(sequence.next_value()))
    current = await session.scalar(select(func.max(column)))
    return (current or 0) + 1


async def list_children(session: AsyncSession, model, record_id: str, order_by=None) -> List[Any]:
    stmt = select(model).where(model.record_id == record_id)
    if order_by is not None:
        stmt = stmt.order_by(order_by)
    result = await session.execute(stmt)
    return list(result.scalars().all())


class RecordService:
    """Create, list, read and edit the intake of records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_record(self, data: RecordCreate, actor: User) -> RecordORM:
        async with self.session_factory() as session, session.begin():
            record = RecordORM(
                record_number=await next_number(session, RecordORM.record_number, RECORD_NUMBER_SEQ),
                status=RecordStatus.DRAFT.value,
                owner_user_id=actor.id,
                created_by_user_id=actor.id,
                **data.model_dump(mode="json"),
            )
            session.add(record)
            await session.flush()
        logger.info(f"Created record {record.display_number} ({record.id}) by {actor.id}")
        return record

    async def list_records(
        self,
        status: Optional[RecordStatus] = None,
        owner_user_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[RecordORM]:
        async with self.session_factory() as session:
            stmt = select(RecordORM).where(RecordORM.deleted_at.is_(None))
            if status:
                stmt = stmt.where(RecordORM.status == status.value)
            if owner_user_id:
                stmt = stmt.where(RecordORM.owner_user_id == owner_user_id)
            stmt = stmt.order_by(RecordORM.record_number.desc()).offset(offset).limit(limit)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_record_detail(self, record_id: str) -> Dict[str, Any]:
        async with self.session_factory() as session:
            record = await get_record(session, record_id)
            return {
                "record": record,
                "followup_questions": await list_children(
                    session, FollowupQuestionORM, record_id, FollowupQuestionORM.generated_at
                ),
                "root_cause_candidates": await list_children(
                    session, RootCauseCandidateORM, record_id, RootCauseCandidateORM.generated_at
                ),
                "action_item_candidates": await list_children(
                    session, ActionItemCandidateORM, record_id, ActionItemCandidateORM.generated_at
                ),
                "root_cause_finals": await list_children(
                    session, RootCauseFinalORM, record_id, RootCauseFinalORM.selected_at
                ),
                "action_items": await list_children(
                    session, ActionItemORM, record_id, ActionItemORM.action_item_number
                ),
            }

    async def update_intake(self, record_id: str, data: RecordUpdate, actor: User) -> RecordORM:
        """Edit intake fields while the record is still a draft. Draft edits are not audited."""
        updates = data.model_dump(mode="json", exclude_unset=True)
        for required in ("title", "equipment_description", "failure_description"):
            if required in updates and not (updates[required] or "").strip():
                raise ValidationFailed(f"{required} cannot be empty")

        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, {RecordStatus.DRAFT}, "edit intake")
            for field, value in updates.items():
                setattr(record, field, value)
        logger.info(f"Updated intake of record {record_id}: {sorted(updates)}")
        return record

    async def get_audit_trail(self, record_id: str) -> List[AuditEventORM]:
        async with self.session_factory() as session:
            await get_record(session, record_id)
            return await audit_ledger.list_events(session, record_id)

"""
Candidate Promotion Manager.

Turns AI (or human) candidates into curated findings and owns every edit to
those findings: root cause finals, action items and candidate relabeling.

A candidate is promoted at most once. The in-transaction check gives a clean
DuplicatePromotion; the unique constraint on ``selected_from_candidate_id``
catches the race where two promotions pass the check at the same time.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.errors import DuplicatePromotion, NotFound, ValidationFailed
from backend.app.core.logging import get_logger
from backend.app.core.security import User
from backend.app.models.finding_orm import (
    ACTION_ITEM_NUMBER_SEQ,
    ActionItemCandidateORM,
    ActionItemORM,
    RootCauseCandidateORM,
    RootCauseFinalORM,
)
from backend.app.models.record_orm import RecordORM
from backend.app.models.user_orm import AppUserORM
from backend.app.schemas.audit import (
    ActionCompletedPayload,
    ActionItemCreatedPayload,
    ActionItemDeletedPayload,
    ActionItemPromotedPayload,
    ActionItemUpdatedPayload,
    CandidateUpdatedPayload,
    FinalCreatedPayload,
    FinalDeletedPayload,
    FinalUpdatedPayload,
    PromotedToFinalPayload,
    diff_fields,
)
from backend.app.schemas.records import (
    ACTION_ITEM_REQUIRED_FIELDS,
    ActionItemCreate,
    ActionItemProgressUpdate,
    ActionItemStatus,
    ActionItemUpdate,
    ConfidenceLabel,
    FinalCreate,
    FinalUpdate,
    RecordStatus,
    UserStatus,
)
from backend.app.services import access_policy, audit_ledger
from backend.app.services.record_service import lock_record, next_number, require_status

logger = get_logger(__name__)

WORKING_STATUSES = {RecordStatus.INVESTIGATION, RecordStatus.ACTIONS_OPEN}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _reject_cleared(updates: Dict[str, Any], fields) -> None:
    cleared = sorted(name for name in fields if name in updates and updates[name] is None)
    if cleared:
        raise ValidationFailed(f"Cannot clear {', '.join(cleared)}", detail={"fields": cleared})


async def _require_active_owner(session: AsyncSession, user_id: Optional[str]) -> None:
    if user_id is None:
        return
    user = await session.get(AppUserORM, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    if user.status != UserStatus.ACTIVE.value:
        raise ValidationFailed("Action items can only be assigned to active users", detail={"user_id": user_id})


async def _get_child(session: AsyncSession, model, child_id: str, record: RecordORM, label: str):
    row = await session.get(model, child_id)
    if row is None or row.record_id != record.id:
        raise NotFound(f"{label} {child_id} not found")
    return row


class CandidatePromotionManager:
    """Promotion of candidates and edits of curated findings."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Promotion
    # ------------------------------------------------------------------

    async def promote_root_cause(self, record_id: str, candidate_id: str, actor: User) -> RootCauseFinalORM:
        try:
            async with self.session_factory() as session, session.begin():
                record = await lock_record(session, record_id)
                access_policy.require_edit(actor, record)
                require_status(record, {RecordStatus.INVESTIGATION}, "promote root cause")

                candidate = await _get_child(session, RootCauseCandidateORM, candidate_id, record, "Root cause candidate")
                existing = await session.execute(
                    select(RootCauseFinalORM.id).where(RootCauseFinalORM.selected_from_candidate_id == candidate.id)
                )
                if existing.scalar_one_or_none() is not None:
                    raise DuplicatePromotion("Root cause candidate has already been promoted")

                final = RootCauseFinalORM(
                    record_id=record.id,
                    cause_text=candidate.cause_text,
                    evidence_summary=candidate.rationale_text,
                    selected_from_candidate_id=candidate.id,
                    selected_by_user_id=actor.id,
                    selected_at=_now(),
                )
                session.add(final)
                await session.flush()
                await audit_ledger.append(
                    session, record.id, actor.id,
                    PromotedToFinalPayload(candidate_id=candidate.id, final_id=final.id, cause_text=final.cause_text),
                )
        except IntegrityError as e:
            if not await self._already_promoted(RootCauseFinalORM, candidate_id):
                raise
            logger.warning(f"Concurrent promotion of root cause candidate {candidate_id} rejected")
            raise DuplicatePromotion("Root cause candidate has already been promoted") from e
        logger.info(f"Promoted root cause candidate {candidate_id} to final {final.id}")
        return final

    async def promote_action_item(self, record_id: str, candidate_id: str, actor: User) -> ActionItemORM:
        try:
            async with self.session_factory() as session, session.begin():
                record = await lock_record(session, record_id)
                access_policy.require_edit(actor, record)
                require_status(record, {RecordStatus.INVESTIGATION}, "promote action item")

                candidate = await _get_child(session, ActionItemCandidateORM, candidate_id, record, "Action item candidate")
                existing = await session.execute(
                    select(ActionItemORM.id).where(ActionItemORM.selected_from_candidate_id == candidate.id)
                )
                if existing.scalar_one_or_none() is not None:
                    raise DuplicatePromotion("Action item candidate has already been promoted")

                description = "\n\n".join(
                    part for part in (candidate.rationale_text, candidate.timeframe_text and f"Timeframe: {candidate.timeframe_text}") if part
                ) or None
                item = ActionItemORM(
                    record_id=record.id,
                    action_item_number=await next_number(session, ActionItemORM.action_item_number, ACTION_ITEM_NUMBER_SEQ),
                    action_text=candidate.action_text,
                    action_description=description,
                    success_criteria=candidate.success_criteria,
                    priority=candidate.priority,
                    status=ActionItemStatus.DRAFT.value,
                    selected_from_candidate_id=candidate.id,
                    created_by_user_id=actor.id,
                )
                session.add(item)
                await session.flush()
                await audit_ledger.append(
                    session, record.id, actor.id,
                    ActionItemPromotedPayload(
                        candidate_id=candidate.id, action_item_id=item.id,
                        action_item_number=item.action_item_number, action_text=item.action_text,
                    ),
                )
        except IntegrityError as e:
            if not await self._already_promoted(ActionItemORM, candidate_id):
                raise
            logger.warning(f"Concurrent promotion of action item candidate {candidate_id} rejected")
            raise DuplicatePromotion("Action item candidate has already been promoted") from e
        logger.info(f"Promoted action item candidate {candidate_id} to {item.display_number}")
        return item

    async def _already_promoted(self, model, candidate_id: str) -> bool:
        """After a failed insert: did a concurrent promotion of this candidate commit?"""
        async with self.session_factory() as session:
            existing = await session.scalar(
                select(model.id).where(model.selected_from_candidate_id == candidate_id)
            )
        return existing is not None

    async def relabel_candidate(
        self, record_id: str, candidate_type: str, candidate_id: str, actor: User, label: ConfidenceLabel
    ):
        if candidate_type == "root_cause":
            model, column, name = RootCauseCandidateORM, "confidence_label", "Root cause candidate"
        elif candidate_type == "action_item":
            model, column, name = ActionItemCandidateORM, "priority", "Action item candidate"
        else:
            raise ValidationFailed(f"Unknown candidate type: {candidate_type}")

        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, WORKING_STATUSES, "relabel candidate")

            candidate = await _get_child(session, model, candidate_id, record, name)
            changes = diff_fields(candidate, {column: label})
            if not changes:
                return candidate
            setattr(candidate, column, label.value)
            await audit_ledger.append(
                session, record.id, actor.id,
                CandidateUpdatedPayload(candidate_id=candidate.id, candidate_type=candidate_type, changes=changes),
            )
        logger.info(f"Relabeled {candidate_type} candidate {candidate_id} to {label.value}")
        return candidate

    # ------------------------------------------------------------------
    # Root cause finals (editable during investigation only)
    # ------------------------------------------------------------------

    async def create_final(self, record_id: str, actor: User, data: FinalCreate) -> RootCauseFinalORM:
        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, {RecordStatus.INVESTIGATION}, "add root cause")

            final = RootCauseFinalORM(
                record_id=record.id,
                cause_text=data.cause_text.strip(),
                evidence_summary=data.evidence_summary,
                selected_by_user_id=actor.id,
                selected_at=_now(),
            )
            session.add(final)
            await session.flush()
            await audit_ledger.append(
                session, record.id, actor.id, FinalCreatedPayload(final_id=final.id, cause_text=final.cause_text),
            )
        logger.info(f"Created root cause final {final.id} on record {record_id}")
        return final

    async def update_final(self, record_id: str, final_id: str, actor: User, data: FinalUpdate) -> RootCauseFinalORM:
        updates = data.model_dump(mode="json", exclude_unset=True)
        if "cause_text" in updates and not (updates["cause_text"] or "").strip():
            raise ValidationFailed("cause_text cannot be empty")

        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, {RecordStatus.INVESTIGATION}, "edit root cause")

            final = await _get_child(session, RootCauseFinalORM, final_id, record, "Root cause final")
            changes = diff_fields(final, updates)
            if not changes:
                return final
            for name in changes:
                setattr(final, name, updates[name])
            final.updated_by_user_id = actor.id
            await audit_ledger.append(
                session, record.id, actor.id, FinalUpdatedPayload(final_id=final.id, changes=changes),
            )
        logger.info(f"Updated root cause final {final_id}: {sorted(changes)}")
        return final

    async def delete_final(self, record_id: str, final_id: str, actor: User) -> None:
        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, {RecordStatus.INVESTIGATION}, "delete root cause")

            final = await _get_child(session, RootCauseFinalORM, final_id, record, "Root cause final")
            cause_text = final.cause_text
            await session.delete(final)
            await session.flush()
            await audit_ledger.append(
                session, record.id, actor.id, FinalDeletedPayload(final_id=final_id, cause_text=cause_text),
            )
        logger.info(f"Deleted root cause final {final_id} from record {record_id}")

    # ------------------------------------------------------------------
    # Action items
    # ------------------------------------------------------------------

    async def create_action_item(self, record_id: str, actor: User, data: ActionItemCreate) -> ActionItemORM:
        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, WORKING_STATUSES, "add action item")
            await _require_active_owner(session, data.owner_user_id)

            status = ActionItemStatus.DRAFT if record.status == RecordStatus.INVESTIGATION.value else ActionItemStatus.OPEN
            item = ActionItemORM(
                record_id=record.id,
                action_item_number=await next_number(session, ActionItemORM.action_item_number, ACTION_ITEM_NUMBER_SEQ),
                status=status.value,
                created_by_user_id=actor.id,
                **data.model_dump(),
            )
            if item.priority is not None:
                item.priority = data.priority.value
            session.add(item)
            await session.flush()
            await audit_ledger.append(
                session, record.id, actor.id,
                ActionItemCreatedPayload(
                    action_item_id=item.id, action_item_number=item.action_item_number,
                    action_text=item.action_text, status=item.status,
                ),
            )
        logger.info(f"Created action item {item.display_number} on record {record_id}")
        return item

    async def update_action_item(
        self, record_id: str, item_id: str, actor: User, data: ActionItemUpdate
    ) -> ActionItemORM:
        updates = data.model_dump(exclude_unset=True)
        _reject_cleared(updates, ("status",))
        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, WORKING_STATUSES, "edit action item")
            if record.status != RecordStatus.INVESTIGATION.value:
                _reject_cleared(updates, ACTION_ITEM_REQUIRED_FIELDS)

            item = await _get_child(session, ActionItemORM, item_id, record, "Action item")
            if "owner_user_id" in updates and updates["owner_user_id"] != item.owner_user_id:
                await _require_active_owner(session, updates["owner_user_id"])
            await self._apply_item_changes(session, record, item, updates, actor)
        return item

    async def update_action_item_progress(
        self, item_id: str, actor: User, data: ActionItemProgressUpdate
    ) -> ActionItemORM:
        """Status and completion fields only; open to the item's assigned owner."""
        updates = data.model_dump(exclude_unset=True)
        _reject_cleared(updates, ("status",))
        async with self.session_factory() as session, session.begin():
            item = await session.get(ActionItemORM, item_id)
            if item is None:
                raise NotFound(f"Action item {item_id} not found")
            record = await lock_record(session, item.record_id)
            await session.refresh(item)

            require_status(record, WORKING_STATUSES, "update action item progress")
            access_policy.require_action_item_progress(actor, item, record, updates.keys())
            await self._apply_item_changes(session, record, item, updates, actor)
        return item

    async def _apply_item_changes(
        self, session: AsyncSession, record: RecordORM, item: ActionItemORM, updates: Dict[str, Any], actor: User
    ) -> None:
        if updates.get("status") == ActionItemStatus.DRAFT and record.status != RecordStatus.INVESTIGATION.value:
            raise ValidationFailed("Action items can only be in draft during investigation")

        changes = diff_fields(item, updates)
        if not changes:
            return

        previous_status = item.status
        for name in changes:
            value = updates[name]
            setattr(item, name, getattr(value, "value", value))
        item.updated_by_user_id = actor.id

        completed = "status" in changes and item.status == ActionItemStatus.DONE.value
        if completed:
            item.completed_at = _now()
            item.completed_by_user_id = actor.id
        elif "status" in changes and previous_status == ActionItemStatus.DONE.value:
            item.completed_at = None
            item.completed_by_user_id = None

        if completed:
            payload = ActionCompletedPayload(
                action_item_id=item.id, changes=changes, completion_notes=item.completion_notes,
            )
        else:
            payload = ActionItemUpdatedPayload(action_item_id=item.id, changes=changes)
        await audit_ledger.append(session, record.id, actor.id, payload)
        logger.info(f"Updated action item {item.display_number}: {sorted(changes)}")

    async def delete_action_item(self, record_id: str, item_id: str, actor: User) -> None:
        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, WORKING_STATUSES, "delete action item")

            item = await _get_child(session, ActionItemORM, item_id, record, "Action item")
            number, text = item.action_item_number, item.action_text
            await session.delete(item)
            await session.flush()
            await audit_ledger.append(
                session, record.id, actor.id,
                ActionItemDeletedPayload(action_item_id=item_id, action_item_number=number, action_text=text),
            )
        logger.info(f"Deleted action item {item_id} from record {record_id}")

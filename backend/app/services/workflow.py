"""
Workflow Controller for the RCFA record lifecycle.

Stage transitions and the record-level edits around them:

    draft --start--> investigation --finalize--> actions_open --close--> closed
                     investigation <------------------------------ actions_open
                                                          closed --reopen--> actions_open

Every operation runs in its own transaction: the record is re-read under a
row lock, preconditions are re-checked against that copy, the mutation is
written and one audit event is appended as the last statement. Calls to the
analysis service happen before the transaction opens.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.errors import IncompleteDependents, NotFound, PreconditionFailed, ValidationFailed
from backend.app.core.logging import get_logger
from backend.app.core.security import User
from backend.app.models.finding_orm import (
    ActionItemCandidateORM,
    ActionItemORM,
    FollowupQuestionORM,
    RootCauseCandidateORM,
    RootCauseFinalORM,
)
from backend.app.models.record_orm import RecordORM
from backend.app.models.user_orm import AppUserORM
from backend.app.schemas.analysis import AnalysisResult, ReanalysisResult
from backend.app.schemas.audit import (
    AnswerSnapshot,
    AnswerSubmittedPayload,
    AnswerUpdatedPayload,
    AuditEventType,
    AuditSource,
    CandidateGeneratedPayload,
    CandidateRelabel,
    InvestigationNotesUpdatedPayload,
    OwnerChangedPayload,
    RecordDeletedPayload,
    StatusChangedPayload,
    diff_fields,
)
from backend.app.schemas.records import ACTION_ITEM_REQUIRED_FIELDS, ActionItemStatus, RecordStatus, UserStatus
from backend.app.services import access_policy, audit_ledger, completion_gate
from backend.app.services.analysis_service import (
    AnalysisContext,
    AnalysisService,
    CandidateContext,
    QuestionContext,
    get_analysis_service,
)
from backend.app.services.record_service import get_record, list_children, lock_record, require_status

logger = get_logger(__name__)

INTAKE_FIELDS = (
    "equipment_description", "equipment_make", "equipment_model", "equipment_serial_number",
    "equipment_age_years", "operating_context", "pre_failure_conditions", "failure_description",
    "work_history_summary", "active_pms_summary", "additional_notes",
)
WORKING_STATUSES = {RecordStatus.INVESTIGATION, RecordStatus.ACTIONS_OPEN}


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise timestamps read back from backends that drop tzinfo."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass
class ReanalysisReport:
    record: RecordORM
    no_material_change: bool
    materiality_reasoning: Optional[str] = None
    new_root_cause_candidates: int = 0
    new_action_item_candidates: int = 0
    relabels: List[CandidateRelabel] = field(default_factory=list)


def build_analysis_context(
    record: RecordORM,
    questions: List[FollowupQuestionORM],
    root_causes: List[RootCauseCandidateORM],
    action_candidates: List[ActionItemCandidateORM],
) -> AnalysisContext:
    return AnalysisContext(
        intake={name: getattr(record, name) for name in INTAKE_FIELDS},
        investigation_notes=record.investigation_notes,
        questions=[
            QuestionContext(id=q.id, question_text=q.question_text, answer_text=q.answer_text)
            for q in questions
        ],
        root_cause_candidates=[
            CandidateContext(
                id=c.id, text=c.cause_text, label=c.confidence_label,
                generated_by=c.generated_by, rationale_text=c.rationale_text,
            )
            for c in root_causes
        ],
        action_item_candidates=[
            CandidateContext(
                id=c.id, text=c.action_text, label=c.priority, generated_by=c.generated_by,
                rationale_text=c.rationale_text, timeframe_text=c.timeframe_text,
                success_criteria=c.success_criteria,
            )
            for c in action_candidates
        ],
    )


class WorkflowController:
    """Guarded stage transitions and record-level edits."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        analysis_service: Optional[AnalysisService] = None,
    ):
        self.session_factory = session_factory
        self._analysis_service = analysis_service

    @property
    def analysis(self) -> AnalysisService:
        if self._analysis_service is None:
            self._analysis_service = get_analysis_service()
        return self._analysis_service

    # ------------------------------------------------------------------
    # Stage transitions
    # ------------------------------------------------------------------

    async def start_investigation(self, record_id: str, actor: User) -> RecordORM:
        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, {RecordStatus.DRAFT}, "start investigation")

            record.status = RecordStatus.INVESTIGATION.value
            await audit_ledger.append(
                session, record.id, actor.id,
                StatusChangedPayload(from_=RecordStatus.DRAFT.value, to=RecordStatus.INVESTIGATION.value),
            )
        logger.info(f"Record {record_id} moved to investigation by {actor.id}")
        return record

    async def start_with_ai(self, record_id: str, actor: User) -> RecordORM:
        """Run the initial analysis, then move to investigation with its output in one transaction."""
        async with self.session_factory() as session:
            record = await get_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, {RecordStatus.DRAFT}, "start investigation")
            context = build_analysis_context(record, [], [], [])

        result: AnalysisResult = await self.analysis.analyze(context)

        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, {RecordStatus.DRAFT}, "start investigation")

            now = _now()
            session.add_all([
                FollowupQuestionORM(
                    record_id=record.id, question_text=q.question_text,
                    question_category=q.question_category.value, generated_by="ai", generated_at=now,
                )
                for q in result.followup_questions
            ])
            session.add_all(self._root_cause_rows(record.id, result.root_cause_candidates, now))
            session.add_all(self._action_candidate_rows(record.id, result.action_item_candidates, now))
            record.status = RecordStatus.INVESTIGATION.value

            await audit_ledger.append(
                session, record.id, actor.id,
                StatusChangedPayload(
                    from_=RecordStatus.DRAFT.value,
                    to=RecordStatus.INVESTIGATION.value,
                    source=AuditSource.AI_INITIAL_ANALYSIS,
                    counts=result.counts,
                ),
            )
        logger.info(f"Record {record_id} moved to investigation with AI analysis {result.counts}")
        return record

    async def finalize(self, record_id: str, actor: User) -> RecordORM:
        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, {RecordStatus.INVESTIGATION}, "finalize investigation")

            items = await list_children(session, ActionItemORM, record.id, ActionItemORM.action_item_number)
            if not items:
                raise IncompleteDependents(
                    "At least one action item required",
                    detail={"reason": "at least one action item required"},
                )

            missing = []
            for item in items:
                absent = [name for name in ACTION_ITEM_REQUIRED_FIELDS if _is_blank(getattr(item, name))]
                if absent:
                    missing.append({
                        "action_item_id": item.id,
                        "action_item_number": item.display_number,
                        "missing_fields": absent,
                    })
            if missing:
                raise IncompleteDependents("Action items are missing required fields", detail={"items": missing})

            owner_ids = {item.owner_user_id for item in items}
            owners = (await session.execute(select(AppUserORM).where(AppUserORM.id.in_(owner_ids)))).scalars().all()
            active_ids = {u.id for u in owners if u.status == UserStatus.ACTIVE.value}
            inactive = [
                {"action_item_id": item.id, "action_item_number": item.display_number, "owner_user_id": item.owner_user_id}
                for item in items if item.owner_user_id not in active_ids
            ]
            if inactive:
                raise IncompleteDependents("Action items are assigned to inactive users", detail={"items": inactive})

            activated = []
            for item in items:
                if item.status == ActionItemStatus.DRAFT.value:
                    item.status = ActionItemStatus.OPEN.value
                    item.updated_by_user_id = actor.id
                    activated.append(item.id)
            record.status = RecordStatus.ACTIONS_OPEN.value

            await audit_ledger.append(
                session, record.id, actor.id,
                StatusChangedPayload(
                    from_=RecordStatus.INVESTIGATION.value,
                    to=RecordStatus.ACTIONS_OPEN.value,
                    activated_action_item_ids=activated,
                ),
            )
        logger.info(f"Record {record_id} finalized, {len(activated)} action items activated")
        return record

    async def close(self, record_id: str, actor: User, closing_notes: Optional[str] = None) -> RecordORM:
        closing_notes = (closing_notes or "").strip() or None
        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, {RecordStatus.ACTIONS_OPEN}, "close record")

            finals = await list_children(session, RootCauseFinalORM, record.id)
            if not finals:
                raise IncompleteDependents(
                    "At least one final root cause required",
                    detail={"reason": "at least one final root cause required"},
                )

            items = await list_children(session, ActionItemORM, record.id, ActionItemORM.action_item_number)
            if not completion_gate.all_complete(items):
                outstanding = completion_gate.incomplete_items(items)
                if not items:
                    message = "At least one action item required"
                else:
                    message = "All action items must be done or canceled before closing"
                raise IncompleteDependents(
                    message,
                    detail={"items": [
                        {"action_item_id": i.id, "action_item_number": i.display_number, "status": i.status}
                        for i in outstanding
                    ]},
                )

            record.status = RecordStatus.CLOSED.value
            record.closed_at = _now()
            record.closed_by_user_id = actor.id
            record.closing_notes = closing_notes

            await audit_ledger.append(
                session, record.id, actor.id,
                StatusChangedPayload(
                    from_=RecordStatus.ACTIONS_OPEN.value,
                    to=RecordStatus.CLOSED.value,
                    closing_notes=closing_notes,
                ),
            )
        logger.info(f"Record {record_id} closed by {actor.id}")
        return record

    async def reopen(self, record_id: str, actor: User) -> RecordORM:
        access_policy.require_admin(actor)
        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            require_status(record, {RecordStatus.CLOSED}, "reopen record")

            # closed_at / closed_by_user_id / closing_notes stay as history
            record.status = RecordStatus.ACTIONS_OPEN.value
            await audit_ledger.append(
                session, record.id, actor.id,
                StatusChangedPayload(
                    from_=RecordStatus.CLOSED.value, to=RecordStatus.ACTIONS_OPEN.value, reason="reopened",
                ),
            )
        logger.info(f"Record {record_id} reopened by {actor.id}")
        return record

    async def return_to_investigation(self, record_id: str, actor: User) -> RecordORM:
        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, {RecordStatus.ACTIONS_OPEN}, "return to investigation")

            record.status = RecordStatus.INVESTIGATION.value
            await audit_ledger.append(
                session, record.id, actor.id,
                StatusChangedPayload(from_=RecordStatus.ACTIONS_OPEN.value, to=RecordStatus.INVESTIGATION.value),
            )
        logger.info(f"Record {record_id} returned to investigation by {actor.id}")
        return record

    # ------------------------------------------------------------------
    # Re-analysis
    # ------------------------------------------------------------------

    async def _require_new_evidence(self, session: AsyncSession, record: RecordORM):
        """
        Check that there is something new to analyze.

        Returns the record's questions and the id of the last
        ``candidate_generated`` event (None before the first re-analysis).
        """
        questions = await list_children(session, FollowupQuestionORM, record.id, FollowupQuestionORM.generated_at)
        answered = [q for q in questions if q.answer_text and q.answer_text.strip()]
        has_notes = bool(record.investigation_notes and record.investigation_notes.strip())
        if not answered and not has_notes:
            raise ValidationFailed("Answer at least one follow-up question or add investigation notes first")

        last_run = await audit_ledger.latest_event(session, record.id, AuditEventType.CANDIDATE_GENERATED)
        if last_run is None:
            return questions, None

        last_run_at = _utc(last_run.created_at)
        newest = [_utc(q.answered_at) for q in answered if q.answered_at]
        if record.investigation_notes_updated_at:
            newest.append(_utc(record.investigation_notes_updated_at))
        if not newest or max(newest) <= last_run_at:
            logger.warning(f"Rejected re-analyze on record {record.id}: nothing new since event {last_run.id}")
            raise PreconditionFailed("No new answers or notes since the last analysis")
        return questions, last_run.id

    async def reanalyze(self, record_id: str, actor: User) -> ReanalysisReport:
        async with self.session_factory() as session:
            record = await get_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, WORKING_STATUSES, "re-analyze")

            questions, baseline_run_id = await self._require_new_evidence(session, record)
            context = build_analysis_context(
                record,
                questions,
                await list_children(session, RootCauseCandidateORM, record.id, RootCauseCandidateORM.generated_at),
                await list_children(session, ActionItemCandidateORM, record.id, ActionItemCandidateORM.generated_at),
            )

        result: ReanalysisResult = await self.analysis.reanalyze(context)

        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, WORKING_STATUSES, "re-analyze")

            # Another run may have committed while the analysis was in flight
            questions, latest_run_id = await self._require_new_evidence(session, record)
            if latest_run_id != baseline_run_id:
                logger.warning(f"Rejected re-analyze on record {record.id}: superseded by event {latest_run_id}")
                raise PreconditionFailed("Record was re-analyzed while this analysis was running")

            relabels = await self._apply_relabels(session, record.id, result)
            now = _now()
            new_root_causes = self._root_cause_rows(record.id, result.root_cause_candidates, now)
            new_actions = self._action_candidate_rows(record.id, result.action_item_candidates, now)
            session.add_all(new_root_causes)
            session.add_all(new_actions)

            source = AuditSource.AI_REANALYSIS_NO_CHANGE if result.no_material_change else AuditSource.AI_REANALYSIS
            await audit_ledger.append(
                session, record.id, actor.id,
                CandidateGeneratedPayload(
                    source=source,
                    counts={
                        "root_cause_candidates": len(new_root_causes),
                        "action_item_candidates": len(new_actions),
                        "relabeled_candidates": len(relabels),
                    },
                    relabels=relabels,
                    materiality_reasoning=result.materiality_reasoning,
                    answer_snapshot=[
                        AnswerSnapshot(
                            question_id=q.id, question_text=q.question_text,
                            answer_text=q.answer_text, answered_at=q.answered_at,
                        )
                        for q in questions if q.answer_text
                    ],
                    investigation_notes_snapshot=record.investigation_notes,
                ),
            )
        logger.info(
            f"Re-analysis of record {record_id}: source={source.value} "
            f"new_root_causes={len(new_root_causes)} new_actions={len(new_actions)} relabels={len(relabels)}"
        )
        return ReanalysisReport(
            record=record,
            no_material_change=result.no_material_change,
            materiality_reasoning=result.materiality_reasoning,
            new_root_cause_candidates=len(new_root_causes),
            new_action_item_candidates=len(new_actions),
            relabels=relabels,
        )

    async def _apply_relabels(self, session: AsyncSession, record_id: str, result: ReanalysisResult) -> List[CandidateRelabel]:
        """Apply confidence/priority changes to this record's AI candidates; anything else is ignored."""
        relabels: List[CandidateRelabel] = []
        updates = result.existing_candidate_updates

        root_causes = {c.id: c for c in await list_children(session, RootCauseCandidateORM, record_id)}
        for update in updates.root_causes:
            candidate = root_causes.get(update.id)
            if candidate is None or candidate.generated_by != "ai":
                logger.warning(f"Ignoring relabel of unknown or human root cause candidate {update.id}")
                continue
            if candidate.confidence_label == update.confidence_label.value:
                continue
            relabels.append(CandidateRelabel(
                candidate_id=candidate.id, candidate_type="root_cause",
                from_=candidate.confidence_label, to=update.confidence_label.value, reason=update.update_reason,
            ))
            candidate.confidence_label = update.confidence_label.value

        action_candidates = {c.id: c for c in await list_children(session, ActionItemCandidateORM, record_id)}
        for update in updates.action_items:
            candidate = action_candidates.get(update.id)
            if candidate is None or candidate.generated_by != "ai":
                logger.warning(f"Ignoring relabel of unknown or human action item candidate {update.id}")
                continue
            if candidate.priority == update.priority.value:
                continue
            relabels.append(CandidateRelabel(
                candidate_id=candidate.id, candidate_type="action_item",
                from_=candidate.priority, to=update.priority.value, reason=update.update_reason,
            ))
            candidate.priority = update.priority.value
        return relabels

    @staticmethod
    def _root_cause_rows(record_id: str, suggestions, now: datetime) -> List[RootCauseCandidateORM]:
        return [
            RootCauseCandidateORM(
                record_id=record_id, cause_text=s.cause_text, rationale_text=s.rationale_text,
                confidence_label=s.confidence_label.value, generated_by="ai", generated_at=now,
            )
            for s in suggestions
        ]

    @staticmethod
    def _action_candidate_rows(record_id: str, suggestions, now: datetime) -> List[ActionItemCandidateORM]:
        return [
            ActionItemCandidateORM(
                record_id=record_id, action_text=s.action_text, rationale_text=s.rationale_text,
                priority=s.priority.value, timeframe_text=s.timeframe_text,
                success_criteria=s.success_criteria, generated_by="ai", generated_at=now,
            )
            for s in suggestions
        ]

    # ------------------------------------------------------------------
    # Record-level edits
    # ------------------------------------------------------------------

    async def reassign_owner(self, record_id: str, actor: User, new_owner_id: str) -> RecordORM:
        access_policy.require_admin(actor)

        async with self.session_factory() as session:
            target = await session.get(AppUserORM, new_owner_id)
            if target is None:
                raise NotFound(f"User {new_owner_id} not found")
            if target.status != UserStatus.ACTIVE.value:
                raise ValidationFailed(
                    "Only active users can own a record",
                    detail={"user_id": new_owner_id, "status": target.status},
                )

        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            previous_owner_id = record.owner_user_id
            if previous_owner_id == new_owner_id:
                logger.info(f"Record {record_id} already owned by {new_owner_id}, nothing to do")
                return record

            target = await session.get(AppUserORM, new_owner_id)
            if target is None or target.status != UserStatus.ACTIVE.value:
                raise ValidationFailed("Only active users can own a record", detail={"user_id": new_owner_id})
            previous_owner = await session.get(AppUserORM, previous_owner_id)

            record.owner_user_id = new_owner_id
            await audit_ledger.append(
                session, record.id, actor.id,
                OwnerChangedPayload(
                    previous_owner_id=previous_owner_id,
                    previous_owner_name=previous_owner.display_name if previous_owner else None,
                    new_owner_id=new_owner_id,
                    new_owner_name=target.display_name,
                ),
            )
        logger.info(f"Record {record_id} reassigned from {previous_owner_id} to {new_owner_id}")
        return record

    async def update_investigation_notes(self, record_id: str, actor: User, notes: Optional[str]) -> RecordORM:
        notes = notes if notes is None else (notes.strip() or None)
        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, WORKING_STATUSES, "edit investigation notes")

            changes = diff_fields(record, {"investigation_notes": notes})
            if not changes:
                return record

            record.investigation_notes = notes
            record.investigation_notes_updated_at = _now()
            await audit_ledger.append(
                session, record.id, actor.id, InvestigationNotesUpdatedPayload(changes=changes),
            )
        logger.info(f"Investigation notes updated on record {record_id}")
        return record

    async def answer_question(self, record_id: str, question_id: str, actor: User, answer_text: str) -> FollowupQuestionORM:
        answer_text = (answer_text or "").strip()
        if not answer_text:
            raise ValidationFailed("answer_text is required")

        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            access_policy.require_edit(actor, record)
            require_status(record, WORKING_STATUSES, "answer follow-up questions")

            question = await session.get(FollowupQuestionORM, question_id)
            if question is None or question.record_id != record.id:
                raise NotFound(f"Question {question_id} not found")
            if question.answer_text == answer_text:
                return question

            previous = question.answer_text
            question.answer_text = answer_text
            question.answered_at = _now()
            question.answered_by_user_id = actor.id

            if previous is None:
                payload = AnswerSubmittedPayload(
                    question_id=question.id, question_text=question.question_text, answer_text=answer_text,
                )
            else:
                payload = AnswerUpdatedPayload(
                    question_id=question.id, question_text=question.question_text,
                    previous_answer=previous, answer_text=answer_text,
                )
            await audit_ledger.append(session, record.id, actor.id, payload)
        logger.info(f"Question {question_id} answered on record {record_id}")
        return question

    async def delete_record(self, record_id: str, actor: User) -> RecordORM:
        access_policy.require_admin(actor)
        async with self.session_factory() as session, session.begin():
            record = await lock_record(session, record_id)
            record.deleted_at = _now()
            record.deleted_by_user_id = actor.id
            await audit_ledger.append(
                session, record.id, actor.id, RecordDeletedPayload(status_at_deletion=record.status),
            )
        logger.info(f"Record {record_id} soft-deleted by {actor.id}")
        return record

"""
Integration tests for the record lifecycle: stage transitions, their
preconditions and the audit event each one leaves behind.

Runs the real services against a per-test SQLite database.
"""
from datetime import date

import pytest

from backend.app.core.errors import (
    AnalysisUnavailable,
    Forbidden,
    IncompleteDependents,
    NotFound,
    PreconditionFailed,
    ValidationFailed,
)
from backend.app.models.user_orm import AppUserORM
from backend.app.schemas.audit import AuditEventType
from backend.app.schemas.records import ActionItemCreate, ActionItemUpdate, FinalCreate, RecordUpdate
from backend.app.services import audit_ledger
from tests.data.rcfa_test_data import actor_for, count_events, sample_intake


def _complete_item(owner_id, **overrides):
    data = {
        "action_text": "Replace drive-end bearing",
        "owner_user_id": owner_id,
        "priority": "high",
        "due_date": date(2026, 12, 1),
    }
    data.update(overrides)
    return ActionItemCreate(**data)


async def _ready_to_finalize(workflow, promotion, record_id, owner):
    await workflow.start_investigation(record_id, owner)
    await promotion.create_final(record_id, owner, FinalCreate(cause_text="Lubrication starvation"))
    return await promotion.create_action_item(record_id, owner, _complete_item(owner.id))


@pytest.mark.asyncio
async def test_create_record_is_draft_and_unaudited(records, users, session_factory):
    owner = actor_for(users["owner"])
    first = await records.create_record(sample_intake(), owner)
    second = await records.create_record(sample_intake(title="Compressor trip"), owner)

    assert first.status == "draft"
    assert first.owner_user_id == owner.id
    assert second.record_number == first.record_number + 1
    assert second.display_number == f"RCFA-{second.record_number:03d}"
    assert await count_events(session_factory, first.id) == 0


@pytest.mark.asyncio
async def test_intake_editable_only_in_draft(records, workflow, draft_record, users):
    owner = actor_for(users["owner"])
    updated = await records.update_intake(draft_record.id, RecordUpdate(equipment_model="Mark 3"), owner)
    assert updated.equipment_model == "Mark 3"

    with pytest.raises(Forbidden):
        await records.update_intake(draft_record.id, RecordUpdate(equipment_model="X"), actor_for(users["other"]))

    await workflow.start_investigation(draft_record.id, owner)
    with pytest.raises(PreconditionFailed):
        await records.update_intake(draft_record.id, RecordUpdate(equipment_model="Mark 4"), owner)


@pytest.mark.asyncio
async def test_start_investigation(workflow, draft_record, users, session_factory):
    owner = actor_for(users["owner"])
    record = await workflow.start_investigation(draft_record.id, owner)
    assert record.status == "investigation"

    async with session_factory() as session:
        events = await audit_ledger.list_events(session, draft_record.id)
    assert [e.event_type for e in events] == ["status_changed"]
    assert events[0].event_payload == {"event_type": "status_changed", "from": "draft", "to": "investigation"}

    with pytest.raises(PreconditionFailed):
        await workflow.start_investigation(draft_record.id, owner)


@pytest.mark.asyncio
async def test_non_owner_cannot_start(workflow, draft_record, users, session_factory):
    with pytest.raises(Forbidden):
        await workflow.start_investigation(draft_record.id, actor_for(users["other"]))
    assert await count_events(session_factory, draft_record.id) == 0

    # Admins may act on any record
    record = await workflow.start_investigation(draft_record.id, actor_for(users["admin"]))
    assert record.status == "investigation"


@pytest.mark.asyncio
async def test_start_with_ai_persists_candidates_in_one_event(workflow, records, draft_record, users, session_factory):
    await workflow.start_with_ai(draft_record.id, actor_for(users["owner"]))

    detail = await records.get_record_detail(draft_record.id)
    assert detail["record"].status == "investigation"
    assert len(detail["followup_questions"]) == 2
    assert len(detail["root_cause_candidates"]) == 2
    assert len(detail["action_item_candidates"]) == 2
    assert all(c.generated_by == "ai" for c in detail["root_cause_candidates"])

    async with session_factory() as session:
        events = await audit_ledger.list_events(session, draft_record.id)
    assert len(events) == 1
    payload = events[0].event_payload
    assert payload["source"] == "ai_initial_analysis"
    assert payload["counts"] == {"followup_questions": 2, "root_cause_candidates": 2, "action_item_candidates": 2}


@pytest.mark.asyncio
async def test_start_with_ai_failure_writes_nothing(workflow, records, fake_analysis, draft_record, users, session_factory):
    fake_analysis.error = AnalysisUnavailable("provider down")
    with pytest.raises(AnalysisUnavailable):
        await workflow.start_with_ai(draft_record.id, actor_for(users["owner"]))

    detail = await records.get_record_detail(draft_record.id)
    assert detail["record"].status == "draft"
    assert detail["followup_questions"] == []
    assert await count_events(session_factory, draft_record.id) == 0


@pytest.mark.asyncio
async def test_finalize_requires_an_action_item(workflow, draft_record, users, session_factory):
    owner = actor_for(users["owner"])
    await workflow.start_investigation(draft_record.id, owner)

    with pytest.raises(IncompleteDependents) as exc:
        await workflow.finalize(draft_record.id, owner)
    assert exc.value.message == "At least one action item required"
    assert await count_events(session_factory, draft_record.id, "status_changed") == 1


@pytest.mark.asyncio
async def test_finalize_lists_every_item_missing_fields(workflow, promotion, draft_record, users):
    owner = actor_for(users["owner"])
    await workflow.start_investigation(draft_record.id, owner)
    await promotion.create_action_item(draft_record.id, owner, ActionItemCreate(action_text="Inspect coupling"))
    await promotion.create_action_item(
        draft_record.id, owner, ActionItemCreate(action_text="Check oil level", owner_user_id=owner.id, priority="low"),
    )

    with pytest.raises(IncompleteDependents) as exc:
        await workflow.finalize(draft_record.id, owner)
    items = exc.value.detail["items"]
    assert len(items) == 2
    assert set(items[0]["missing_fields"]) == {"owner_user_id", "due_date", "priority"}
    assert items[1]["missing_fields"] == ["due_date"]


@pytest.mark.asyncio
async def test_finalize_rejects_inactive_owner(workflow, promotion, draft_record, users, session_factory):
    owner = actor_for(users["owner"])
    item = await _ready_to_finalize(workflow, promotion, draft_record.id, owner)

    await promotion.update_action_item(
        draft_record.id, item.id, owner, ActionItemUpdate(owner_user_id=users["other"].id),
    )
    async with session_factory() as session, session.begin():
        other = await session.get(AppUserORM, users["other"].id)
        other.status = "inactive"

    with pytest.raises(IncompleteDependents) as exc:
        await workflow.finalize(draft_record.id, owner)
    assert exc.value.detail["items"][0]["owner_user_id"] == users["other"].id


@pytest.mark.asyncio
async def test_finalize_activates_draft_items(workflow, promotion, records, draft_record, users, session_factory):
    owner = actor_for(users["owner"])
    item = await _ready_to_finalize(workflow, promotion, draft_record.id, owner)
    assert item.status == "draft"

    record = await workflow.finalize(draft_record.id, owner)
    assert record.status == "actions_open"

    detail = await records.get_record_detail(draft_record.id)
    assert [i.status for i in detail["action_items"]] == ["open"]

    async with session_factory() as session:
        last = await audit_ledger.latest_event(session, draft_record.id, AuditEventType.STATUS_CHANGED)
    assert last.event_payload["to"] == "actions_open"
    assert last.event_payload["activated_action_item_ids"] == [item.id]


@pytest.mark.asyncio
async def test_close_blocked_until_items_resolved(workflow, promotion, draft_record, users, session_factory):
    owner = actor_for(users["owner"])
    item = await _ready_to_finalize(workflow, promotion, draft_record.id, owner)
    await workflow.finalize(draft_record.id, owner)
    await promotion.update_action_item(draft_record.id, item.id, owner, ActionItemUpdate(status="blocked"))

    events_before = await count_events(session_factory, draft_record.id)
    with pytest.raises(IncompleteDependents) as exc:
        await workflow.close(draft_record.id, owner)
    assert exc.value.detail["items"][0]["status"] == "blocked"
    assert await count_events(session_factory, draft_record.id) == events_before

    await promotion.update_action_item(draft_record.id, item.id, owner, ActionItemUpdate(status="canceled"))
    record = await workflow.close(draft_record.id, owner, closing_notes="  Bearing replaced, lube route added ")
    assert record.status == "closed"
    assert record.closed_by_user_id == owner.id
    assert record.closing_notes == "Bearing replaced, lube route added"


@pytest.mark.asyncio
async def test_close_requires_root_cause(workflow, promotion, draft_record, users):
    owner = actor_for(users["owner"])
    await workflow.start_investigation(draft_record.id, owner)
    item = await promotion.create_action_item(draft_record.id, owner, _complete_item(owner.id))
    await workflow.finalize(draft_record.id, owner)
    await promotion.update_action_item(draft_record.id, item.id, owner, ActionItemUpdate(status="done"))

    with pytest.raises(IncompleteDependents) as exc:
        await workflow.close(draft_record.id, owner)
    assert exc.value.message == "At least one final root cause required"


@pytest.mark.asyncio
async def test_reopen_is_admin_only_and_keeps_close_history(workflow, promotion, draft_record, users):
    owner, admin = actor_for(users["owner"]), actor_for(users["admin"])
    item = await _ready_to_finalize(workflow, promotion, draft_record.id, owner)
    await workflow.finalize(draft_record.id, owner)
    await promotion.update_action_item(draft_record.id, item.id, owner, ActionItemUpdate(status="done"))
    await workflow.close(draft_record.id, owner, "Done")

    with pytest.raises(Forbidden):
        await workflow.reopen(draft_record.id, owner)

    record = await workflow.reopen(draft_record.id, admin)
    assert record.status == "actions_open"
    assert record.closed_at is not None
    assert record.closing_notes == "Done"

    with pytest.raises(PreconditionFailed):
        await workflow.reopen(draft_record.id, admin)


@pytest.mark.asyncio
async def test_return_to_investigation(workflow, promotion, draft_record, users):
    owner = actor_for(users["owner"])
    await _ready_to_finalize(workflow, promotion, draft_record.id, owner)

    with pytest.raises(PreconditionFailed):
        await workflow.return_to_investigation(draft_record.id, owner)

    await workflow.finalize(draft_record.id, owner)
    record = await workflow.return_to_investigation(draft_record.id, owner)
    assert record.status == "investigation"


@pytest.mark.asyncio
async def test_reassign_owner(workflow, draft_record, users, session_factory):
    admin = actor_for(users["admin"])

    with pytest.raises(Forbidden):
        await workflow.reassign_owner(draft_record.id, actor_for(users["owner"]), users["other"].id)
    with pytest.raises(ValidationFailed):
        await workflow.reassign_owner(draft_record.id, admin, users["pending"].id)
    with pytest.raises(NotFound):
        await workflow.reassign_owner(draft_record.id, admin, "no-such-user")

    # Reassigning to the current owner changes nothing
    await workflow.reassign_owner(draft_record.id, admin, users["owner"].id)
    assert await count_events(session_factory, draft_record.id) == 0

    record = await workflow.reassign_owner(draft_record.id, admin, users["other"].id)
    assert record.owner_user_id == users["other"].id

    async with session_factory() as session:
        events = await audit_ledger.list_events(session, draft_record.id)
    assert events[-1].event_payload == {
        "event_type": "owner_changed",
        "previous_owner_id": users["owner"].id,
        "previous_owner_name": "Olivia Owner",
        "new_owner_id": users["other"].id,
        "new_owner_name": "Oscar Other",
    }

    # The previous owner loses edit rights
    with pytest.raises(Forbidden):
        await workflow.start_investigation(draft_record.id, actor_for(users["owner"]))


@pytest.mark.asyncio
async def test_investigation_notes(workflow, draft_record, users, session_factory):
    owner = actor_for(users["owner"])
    with pytest.raises(PreconditionFailed):
        await workflow.update_investigation_notes(draft_record.id, owner, "too early")

    await workflow.start_investigation(draft_record.id, owner)
    record = await workflow.update_investigation_notes(draft_record.id, owner, "Metal flakes in sump")
    assert record.investigation_notes == "Metal flakes in sump"
    assert record.investigation_notes_updated_at is not None
    assert await count_events(session_factory, draft_record.id, "investigation_notes_updated") == 1

    # Same text again is not a change
    await workflow.update_investigation_notes(draft_record.id, owner, "Metal flakes in sump")
    assert await count_events(session_factory, draft_record.id, "investigation_notes_updated") == 1


@pytest.mark.asyncio
async def test_answer_question(workflow, records, investigating_record, users, session_factory):
    owner = actor_for(users["owner"])
    question = (await records.get_record_detail(investigating_record.id))["followup_questions"][0]

    with pytest.raises(ValidationFailed):
        await workflow.answer_question(investigating_record.id, question.id, owner, "   ")

    answered = await workflow.answer_question(investigating_record.id, question.id, owner, "Yes, rising for 3 days")
    assert answered.answered_by_user_id == owner.id
    await workflow.answer_question(investigating_record.id, question.id, owner, "Yes, rising for 3 days")
    await workflow.answer_question(investigating_record.id, question.id, owner, "Rising for 5 days")

    async with session_factory() as session:
        events = await audit_ledger.list_events(session, investigating_record.id)
    assert [e.event_type for e in events] == ["status_changed", "answer_submitted", "answer_updated"]
    assert events[-1].event_payload["previous_answer"] == "Yes, rising for 3 days"

    with pytest.raises(NotFound):
        await workflow.answer_question(investigating_record.id, "missing", owner, "x")


@pytest.mark.asyncio
async def test_delete_record_hides_it(workflow, records, draft_record, users, session_factory):
    with pytest.raises(Forbidden):
        await workflow.delete_record(draft_record.id, actor_for(users["owner"]))

    await workflow.delete_record(draft_record.id, actor_for(users["admin"]))
    with pytest.raises(NotFound):
        await records.get_record_detail(draft_record.id)
    assert await records.list_records() == []
    assert await count_events(session_factory, draft_record.id, "record_deleted") == 1


@pytest.mark.asyncio
async def test_rejected_operation_writes_no_event(workflow, draft_record, users, session_factory):
    owner = actor_for(users["owner"])
    for call in (workflow.finalize, workflow.close, workflow.return_to_investigation):
        with pytest.raises(PreconditionFailed):
            await call(draft_record.id, owner)
    assert await count_events(session_factory, draft_record.id) == 0

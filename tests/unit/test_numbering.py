"""
Unit tests for record and action item numbering.
"""
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql

from backend.app.models.finding_orm import ACTION_ITEM_NUMBER_SEQ, ActionItemORM
from backend.app.models.record_orm import RECORD_NUMBER_SEQ, RecordORM
from backend.app.services.record_service import next_number


class StubSession:
    def __init__(self, supports_sequences: bool, value):
        self.dialect = SimpleNamespace(supports_sequences=supports_sequences)
        self.value = value
        self.statements = []

    def get_bind(self):
        return SimpleNamespace(dialect=self.dialect)

    async def scalar(self, stmt):
        self.statements.append(stmt)
        return self.value


def test_number_columns_carry_their_sequences():
    assert RecordORM.__table__.c.record_number.default is RECORD_NUMBER_SEQ
    assert ActionItemORM.__table__.c.action_item_number.default is ACTION_ITEM_NUMBER_SEQ


@pytest.mark.asyncio
async def test_sequence_backends_draw_from_the_sequence():
    session = StubSession(supports_sequences=True, value=42)
    number = await next_number(session, ActionItemORM.action_item_number, ACTION_ITEM_NUMBER_SEQ)
    assert number == 42
    sql = str(session.statements[0].compile(dialect=postgresql.dialect()))
    assert "nextval('rcfa_action_item_number_seq')" in sql


@pytest.mark.asyncio
async def test_sqlite_uses_max_plus_one():
    session = StubSession(supports_sequences=False, value=7)
    assert await next_number(session, RecordORM.record_number, RECORD_NUMBER_SEQ) == 8
    assert "max(" in str(session.statements[0]).lower()

    empty = StubSession(supports_sequences=False, value=None)
    assert await next_number(empty, RecordORM.record_number, RECORD_NUMBER_SEQ) == 1

"""
Unit tests for the close-time completion gate.
"""
from types import SimpleNamespace

from backend.app.schemas.records import ActionItemStatus
from backend.app.services import completion_gate


def _items(*statuses):
    return [SimpleNamespace(id=str(i), status=s) for i, s in enumerate(statuses)]


def test_empty_list_is_not_complete():
    assert completion_gate.all_complete([]) is False


def test_done_and_canceled_are_resolved():
    assert completion_gate.all_complete(_items("done", "canceled", "done")) is True


def test_any_open_item_blocks():
    for status in ("draft", "open", "in_progress", "blocked"):
        assert completion_gate.all_complete(_items("done", status)) is False


def test_enum_statuses_accepted():
    assert completion_gate.all_complete(_items(ActionItemStatus.DONE, ActionItemStatus.CANCELED)) is True


def test_incomplete_items_lists_offenders_in_order():
    items = _items("done", "blocked", "canceled", "open")
    assert [i.status for i in completion_gate.incomplete_items(items)] == ["blocked", "open"]


def test_summarize_progress():
    summary = completion_gate.summarize_progress(_items("done", "blocked", "canceled"))
    assert summary == {"total": 3, "resolved": 2, "outstanding": 1, "all_complete": False}

    assert completion_gate.summarize_progress([]) == {
        "total": 0, "resolved": 0, "outstanding": 0, "all_complete": False,
    }

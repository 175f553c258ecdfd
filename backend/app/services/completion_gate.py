"""Completion gate for closing a record: pure functions over action item statuses."""
from typing import Iterable, List, Sequence

from backend.app.schemas.records import RESOLVED_ACTION_STATUSES


def _status(item) -> str:
    status = item.status
    return getattr(status, "value", status)


def all_complete(items: Sequence) -> bool:
    """True iff there is at least one item and every item is done or canceled."""
    return len(items) > 0 and all(_status(item) in RESOLVED_ACTION_STATUSES for item in items)


def incomplete_items(items: Iterable) -> List:
    return [item for item in items if _status(item) not in RESOLVED_ACTION_STATUSES]


def summarize_progress(items: Sequence) -> dict:
    outstanding = len(incomplete_items(items))
    return {
        "total": len(items),
        "resolved": len(items) - outstanding,
        "outstanding": outstanding,
        "all_complete": all_complete(items),
    }

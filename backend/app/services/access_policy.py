"""
Ownership and role checks shared by every lifecycle operation.

``can_edit`` is the general capability (record owner or admin). Updating an
action item's progress is a narrower, separate capability that also admits the
item's assigned owner, and only for the progress fields.
"""
import logging
from typing import Optional

from backend.app.core.errors import Forbidden, Unauthorized
from backend.app.core.security import Role, User

logger = logging.getLogger(__name__)

PROGRESS_EDITABLE_STATUSES = frozenset({"investigation", "actions_open"})
PROGRESS_FIELDS = frozenset({"status", "completion_notes", "work_completed_date"})


def _require_actor(actor: Optional[User]) -> User:
    if actor is None:
        raise Unauthorized("Authentication required")
    return actor


def can_edit(actor: Optional[User], record) -> bool:
    if actor is None:
        return False
    return actor.id == record.owner_user_id or actor.role == Role.ADMIN


def require_edit(actor: Optional[User], record) -> User:
    actor = _require_actor(actor)
    if not can_edit(actor, record):
        logger.warning(f"User {actor.id} denied edit on record {record.id}")
        raise Forbidden("Only the record owner or an admin can modify this record")
    return actor


def require_admin(actor: Optional[User]) -> User:
    actor = _require_actor(actor)
    if actor.role != Role.ADMIN:
        logger.warning(f"User {actor.id} denied admin operation")
        raise Forbidden("Admin role required")
    return actor


def can_update_action_item_progress(actor: Optional[User], item, record) -> bool:
    if actor is None or record.status not in PROGRESS_EDITABLE_STATUSES:
        return False
    return can_edit(actor, record) or actor.id == item.owner_user_id


def require_action_item_progress(actor: Optional[User], item, record, fields) -> User:
    """Check the progress capability and that only progress fields are being changed."""
    actor = _require_actor(actor)
    if not can_update_action_item_progress(actor, item, record):
        logger.warning(f"User {actor.id} denied progress update on action item {item.id}")
        raise Forbidden("Only the action item owner, record owner or an admin can update progress")
    extra = set(fields) - PROGRESS_FIELDS
    if extra:
        raise Forbidden(f"Progress updates may not change: {', '.join(sorted(extra))}")
    return actor

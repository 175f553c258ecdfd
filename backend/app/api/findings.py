"""
Findings API Router.

Candidate promotion and relabeling, root cause finals and action items.
``action_items_router`` carries the narrow progress endpoint that the
assigned owner of an action item may use without owning the record.
"""
from fastapi import APIRouter, Depends, Response, Security, status

from backend.app.api.dependencies import get_promotion_manager
from backend.app.core.security import get_current_user, User, RECORD_WRITE
from backend.app.schemas.records import (
    ActionItemCandidateResponse,
    ActionItemCreate,
    ActionItemProgressUpdate,
    ActionItemResponse,
    ActionItemUpdate,
    FinalCreate,
    FinalUpdate,
    RelabelRequest,
    RootCauseCandidateResponse,
    RootCauseFinalResponse,
)
from backend.app.services.promotion import CandidatePromotionManager

router = APIRouter()
action_items_router = APIRouter()


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------

@router.post(
    "/{record_id}/root-cause-candidates/{candidate_id}/promote",
    response_model=RootCauseFinalResponse,
    status_code=status.HTTP_201_CREATED,
)
async def promote_root_cause(
    record_id: str,
    candidate_id: str,
    manager: CandidatePromotionManager = Depends(get_promotion_manager),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    return await manager.promote_root_cause(record_id, candidate_id, current_user)


@router.patch("/{record_id}/root-cause-candidates/{candidate_id}", response_model=RootCauseCandidateResponse)
async def relabel_root_cause_candidate(
    record_id: str,
    candidate_id: str,
    body: RelabelRequest,
    manager: CandidatePromotionManager = Depends(get_promotion_manager),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    return await manager.relabel_candidate(record_id, "root_cause", candidate_id, current_user, body.label)


@router.post(
    "/{record_id}/action-item-candidates/{candidate_id}/promote",
    response_model=ActionItemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def promote_action_item(
    record_id: str,
    candidate_id: str,
    manager: CandidatePromotionManager = Depends(get_promotion_manager),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    return await manager.promote_action_item(record_id, candidate_id, current_user)


@router.patch("/{record_id}/action-item-candidates/{candidate_id}", response_model=ActionItemCandidateResponse)
async def relabel_action_item_candidate(
    record_id: str,
    candidate_id: str,
    body: RelabelRequest,
    manager: CandidatePromotionManager = Depends(get_promotion_manager),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    return await manager.relabel_candidate(record_id, "action_item", candidate_id, current_user, body.label)


# ---------------------------------------------------------------------------
# Root cause finals
# ---------------------------------------------------------------------------

@router.post("/{record_id}/root-cause-finals", response_model=RootCauseFinalResponse, status_code=status.HTTP_201_CREATED)
async def create_final(
    record_id: str,
    body: FinalCreate,
    manager: CandidatePromotionManager = Depends(get_promotion_manager),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    return await manager.create_final(record_id, current_user, body)


@router.patch("/{record_id}/root-cause-finals/{final_id}", response_model=RootCauseFinalResponse)
async def update_final(
    record_id: str,
    final_id: str,
    body: FinalUpdate,
    manager: CandidatePromotionManager = Depends(get_promotion_manager),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    return await manager.update_final(record_id, final_id, current_user, body)


@router.delete("/{record_id}/root-cause-finals/{final_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_final(
    record_id: str,
    final_id: str,
    manager: CandidatePromotionManager = Depends(get_promotion_manager),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    await manager.delete_final(record_id, final_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Action items
# ---------------------------------------------------------------------------

@router.post("/{record_id}/action-items", response_model=ActionItemResponse, status_code=status.HTTP_201_CREATED)
async def create_action_item(
    record_id: str,
    body: ActionItemCreate,
    manager: CandidatePromotionManager = Depends(get_promotion_manager),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    return await manager.create_action_item(record_id, current_user, body)


@router.patch("/{record_id}/action-items/{item_id}", response_model=ActionItemResponse)
async def update_action_item(
    record_id: str,
    item_id: str,
    body: ActionItemUpdate,
    manager: CandidatePromotionManager = Depends(get_promotion_manager),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    return await manager.update_action_item(record_id, item_id, current_user, body)


@router.delete("/{record_id}/action-items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_action_item(
    record_id: str,
    item_id: str,
    manager: CandidatePromotionManager = Depends(get_promotion_manager),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    await manager.delete_action_item(record_id, item_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@action_items_router.patch("/{item_id}/progress", response_model=ActionItemResponse)
async def update_action_item_progress(
    item_id: str,
    body: ActionItemProgressUpdate,
    manager: CandidatePromotionManager = Depends(get_promotion_manager),
    current_user: User = Security(get_current_user, scopes=[RECORD_WRITE]),
):
    """Status, completion notes and work completed date, for the item's assigned owner."""
    return await manager.update_action_item_progress(item_id, current_user, body)

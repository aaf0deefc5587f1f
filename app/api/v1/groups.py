"""Group endpoints"""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_engine
from app.engine import AggregationEngine
from app.schemas.expense import GroupExpenseListResponse
from app.schemas.group import GroupCreate, GroupMemberAdd, GroupResponse

router = APIRouter(prefix="/groups", tags=["Groups"])


@router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(group_data: GroupCreate, engine: AggregationEngine = Depends(get_engine)):
    """
    Create a group; the creator is always a member.

    Raises:
        404: If the creator or a member doesn't exist
    """
    return await engine.create_group(group_data)


@router.get("/{group_id}", response_model=GroupResponse)
async def get_group(group_id: UUID, engine: AggregationEngine = Depends(get_engine)):
    """Get a group with its current members"""
    return await engine.get_group(group_id)


@router.post("/{group_id}/members", response_model=GroupResponse)
async def add_member(
    group_id: UUID,
    member_data: GroupMemberAdd,
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Add a member to a group.

    Raises:
        400: If the actor is not a current member
        404: If the group or user doesn't exist
        409: If the user is already a member
    """
    return await engine.add_group_member(group_id, member_data.user_id, member_data.actor_id)


@router.delete("/{group_id}/members/{user_id}", response_model=GroupResponse)
async def remove_member(
    group_id: UUID,
    user_id: UUID,
    actor_id: UUID = Query(..., description="Member performing the removal"),
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Remove a member from a group.

    The user stays a historical member, so earlier expenses remain valid.
    """
    return await engine.remove_group_member(group_id, user_id, actor_id)


@router.get("/{group_id}/expenses", response_model=GroupExpenseListResponse)
async def list_group_expenses(
    group_id: UUID,
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    engine: AggregationEngine = Depends(get_engine),
):
    """Get a group's expenses, most recent first"""
    return await engine.group_expenses(group_id, page, page_size)

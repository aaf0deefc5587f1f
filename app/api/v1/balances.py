"""Balance endpoints"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_engine
from app.engine import AggregationEngine
from app.schemas.balance import (BalanceListResponse, BalanceSummary,
                                 GroupBalance, GroupBalancesResponse,
                                 PairBalanceResponse,
                                 UserGroupBalancesResponse)

router = APIRouter(tags=["Balances"])


@router.get("/users/{user_id}/balance", response_model=BalanceSummary)
async def get_balance(
    user_id: UUID,
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Get a user's outstanding totals.

    - lent: unpaid shares others hold on expenses the user paid
    - owed: unpaid shares the user holds on expenses others paid
    - net_balance: lent - owed

    Raises:
        404: If the user doesn't exist
        500: If stored balances fail their consistency checks
    """
    return await engine.net_balance(user_id, currency)


@router.get("/users/{user_id}/balances", response_model=BalanceListResponse)
async def get_balances(
    user_id: UUID,
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Get the net balance with every counterparty.

    Balances are sorted by amount (descending); settled counterparties are
    left out.
    """
    balances = await engine.counterparty_balances(user_id, currency)
    return BalanceListResponse(balances=balances)


@router.get("/users/{user_id}/balances/{other_user_id}", response_model=PairBalanceResponse)
async def get_pair_balance(
    user_id: UUID,
    other_user_id: UUID,
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Get the signed balance between two users.

    Positive when the other user owes user_id.
    """
    return await engine.pair_balance(user_id, other_user_id, currency)


@router.get("/groups/{group_id}/balances/{user_id}", response_model=GroupBalance)
async def get_group_balance(
    group_id: UUID,
    user_id: UUID,
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    engine: AggregationEngine = Depends(get_engine),
):
    """Get a user's balance restricted to one group's expenses"""
    return await engine.group_balance(group_id, user_id, currency)


@router.get("/groups/{group_id}/balances", response_model=GroupBalancesResponse)
async def get_group_balances(
    group_id: UUID,
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Get every member's balance within one group.

    Former members with outstanding amounts are listed after current ones.
    """
    return await engine.group_balances(group_id, currency)


@router.get("/users/{user_id}/group-balances", response_model=UserGroupBalancesResponse)
async def get_user_group_balances(
    user_id: UUID,
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    engine: AggregationEngine = Depends(get_engine),
):
    """Get a user's balance in each of their groups"""
    return await engine.user_group_balances(user_id, currency)

"""Balance recovery endpoints"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_engine
from app.engine import AggregationEngine
from app.schemas.balance import BalanceVerification, RebuildResponse

router = APIRouter(prefix="/admin/balances", tags=["Admin"])


@router.post("/rebuild", response_model=RebuildResponse)
async def rebuild_balances(engine: AggregationEngine = Depends(get_engine)):
    """Recompute every stored balance from the expense ledger"""
    return await engine.rebuild_balances()


@router.get("/verify", response_model=BalanceVerification)
async def verify_balances(
    user_id: Optional[UUID] = Query(None, description="Check a single user"),
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Compare stored balances with a recompute from the ledger.

    Raises:
        500: ConsistencyError listing the mismatching pairs
    """
    if user_id:
        return await engine.verify_user_balance(user_id, currency)
    return await engine.verify_balances()

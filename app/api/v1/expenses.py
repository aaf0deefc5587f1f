"""Expense endpoints"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, status

from app.api.deps import get_engine
from app.engine import AggregationEngine
from app.schemas.expense import (CorrectionCreate, CorrectionResponse,
                                 ExpenseCreate, ExpenseResponse,
                                 PaymentResponse, VoidRequest)

router = APIRouter(prefix="/expenses", tags=["Expenses"])


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    expense_data: ExpenseCreate,
    engine: AggregationEngine = Depends(get_engine),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    """
    Record a new expense.

    Supports idempotency via the `Idempotency-Key` header: repeating a
    request with the same key returns the original response instead of
    recording the expense twice.

    Args:
        expense_data: Expense with its shares
        engine: Aggregation engine
        idempotency_key: Optional idempotency key for preventing duplicates

    Returns:
        Created expense with all details

    Raises:
        400: If validation fails (share sum, membership, duplicates, amount)
        404: If the group doesn't exist
        409: If the key was already used for a different expense
    """
    return await engine.record_expense(expense_data, request_id=idempotency_key)


@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_expense(expense_id: UUID, engine: AggregationEngine = Depends(get_engine)):
    """Get an expense with the shares of its effective revision"""
    return await engine.get_expense(expense_id)


@router.get("/{expense_id}/corrections", response_model=List[CorrectionResponse])
async def list_corrections(expense_id: UUID, engine: AggregationEngine = Depends(get_engine)):
    """Get the correction history of an expense, oldest first"""
    return await engine.expense_corrections(expense_id)


@router.post("/{expense_id}/corrections", response_model=ExpenseResponse)
async def correct_expense(
    expense_id: UUID,
    correction_data: CorrectionCreate,
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Replace an expense's shares with a new revision.

    Earlier revisions are kept; balances move to the new shares.

    Raises:
        400: If the expense is void or the new shares are invalid
        404: If the expense doesn't exist
    """
    return await engine.record_correction(expense_id, correction_data)


@router.post("/{expense_id}/void", response_model=ExpenseResponse)
async def void_expense(
    expense_id: UUID,
    void_data: VoidRequest,
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Void an expense.

    There is no delete: voiding appends an empty share revision, which
    removes the expense from balances and statistics.

    Raises:
        404: If the expense doesn't exist
        409: If the expense is already void
    """
    return await engine.void_expense(expense_id, void_data)


@router.post(
    "/{expense_id}/shares/{share_id}/settle",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def settle_share(
    expense_id: UUID,
    share_id: UUID,
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Mark a share paid, recording a payment to the expense's payer.

    Raises:
        404: If the expense or share doesn't exist
        409: If the share is already paid
    """
    return await engine.settle_share(expense_id, share_id)

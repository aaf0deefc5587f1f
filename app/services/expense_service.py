"""Expense ledger business logic"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.activity import ActivityKind
from app.models.expense import (CorrectionKind, Expense, ExpenseCorrection,
                                ExpenseShare)
from app.models.group import Group
from app.models.payment import Payment
from app.repositories.expense_repository import ExpenseRepository
from app.repositories.group_repository import GroupRepository
from app.repositories.payment_repository import PaymentRepository
from app.repositories.user_repository import UserRepository
from app.schemas.common import PaginationMeta
from app.schemas.expense import (CorrectionCreate, ExpenseCreate,
                                 ExpenseListItem, ExpenseListResponse,
                                 ExpenseResponse, GroupExpenseListResponse,
                                 ShareInput, VoidRequest)
from app.schemas.user import UserSummary
from app.services.activity_service import ActivityService
from app.services.balance_service import BalanceService
from app.services.split_strategies import ShareSplit, get_split_strategy
from app.utils.decimal_utils import sum_decimals, to_minor_units
from app.utils.time_utils import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


class ExpenseService:
    """Service for expense ledger operations"""

    @staticmethod
    def validate_amount(amount: Decimal, currency: str) -> None:
        """
        Validate an expense amount.

        Raises:
            ValidationError: If amount is not positive or too precise
        """
        if amount <= 0:
            raise ValidationError(f"Expense amount must be positive, got {amount}")
        try:
            to_minor_units(amount, currency)
        except ValueError as e:
            raise ValidationError(str(e))

    @staticmethod
    async def validate_users_exist(db: AsyncSession, user_ids: List[UUID]) -> dict:
        """
        Validate that all user IDs exist.

        Returns:
            Mapping of user ID to user

        Raises:
            ValidationError: If any user ID doesn't exist
        """
        users = await UserRepository.get_many(db, user_ids)
        for user_id in user_ids:
            if user_id not in users:
                raise ValidationError(f"User with ID {user_id} not found")
        return users

    @staticmethod
    async def validate_group_members(
        db: AsyncSession, group_id: UUID, user_ids: List[UUID], expense_date: datetime
    ) -> Group:
        """
        Validate that every user was a member of the group on the expense date.

        A user removed since then still qualifies; a user who had left
        before the date, or joined after it, does not.

        Args:
            db: Database session
            group_id: Group UUID
            user_ids: Payer and shareholders
            expense_date: Naive UTC date of the expense

        Raises:
            NotFoundError: If group not found
            ValidationError: If a user was not a member on expense_date
        """
        group = await GroupRepository.get_by_id(db, group_id)
        if not group:
            raise NotFoundError(f"Group with ID {group_id} not found")

        memberships = await GroupRepository.list_memberships(db, group_id, user_ids)
        for user_id in user_ids:
            if not any(
                m.user_id == user_id and m.covers(expense_date) for m in memberships
            ):
                raise ValidationError(
                    f"User {user_id} is not a member of group {group.name} on {expense_date.date()}"
                )
        return group

    @staticmethod
    def calculate_shares(
        amount: Decimal,
        currency: str,
        payer_id: UUID,
        split_equally: bool,
        shares: List[ShareInput],
        previous_shares: Iterable[ExpenseShare] = (),
    ) -> List[ShareSplit]:
        """
        Compute share amounts, enforcing the per-expense share invariants.

        The payer's own share is always recorded as paid. Any other share
        becomes paid only through settle_share, which records the payment;
        a correction may keep a share paid when previous_shares hold it
        settled for the same amount.

        Raises:
            ValidationError: If shares are empty, duplicated, don't sum up,
                or mark an unsettled share paid
        """
        if not shares:
            raise ValidationError("An expense needs at least one share")

        user_ids = [share.user_id for share in shares]
        if len(set(user_ids)) != len(user_ids):
            raise ValidationError("Each user can hold only one share of an expense")

        strategy = get_split_strategy(split_equally)
        splits = strategy.calculate_splits(
            amount, currency, payer_id, [share.model_dump() for share in shares]
        )

        settled = {
            share.user_id: share.amount
            for share in previous_shares
            if share.paid and share.user_id != payer_id
        }
        for split in splits:
            if split.user_id == payer_id:
                split.paid = True
            elif split.paid and settled.get(split.user_id) != split.amount:
                raise ValidationError(
                    f"Share of user {split.user_id} can only become paid by settling it"
                )
        return splits

    @staticmethod
    def _share_rows(
        splits: List[ShareSplit], revision: int, previous_shares: Iterable[ExpenseShare] = ()
    ) -> List[ExpenseShare]:
        now = utcnow()
        paid_at: Dict[UUID, datetime] = {
            share.user_id: share.paid_at for share in previous_shares if share.paid
        }
        return [
            ExpenseShare(
                revision=revision,
                user_id=split.user_id,
                amount=split.amount,
                paid=split.paid,
                paid_at=(paid_at.get(split.user_id) or now) if split.paid else None,
            )
            for split in splits
        ]

    @staticmethod
    async def _get_expense(db: AsyncSession, expense_id: UUID, for_update: bool = False) -> Expense:
        expense = await ExpenseRepository.get_by_id(db, expense_id, for_update=for_update)
        if not expense:
            raise NotFoundError(f"Expense with ID {expense_id} not found")
        return expense

    @staticmethod
    def _involved_user_ids(expense: Expense, *share_sets) -> List[UUID]:
        user_ids = [expense.paid_by_user_id]
        for shares in share_sets:
            user_ids.extend(share.user_id for share in shares)
        return list(dict.fromkeys(user_ids))

    @staticmethod
    async def record_expense(
        db: AsyncSession, expense_data: ExpenseCreate, default_currency: str
    ) -> Expense:
        """
        Record a new expense.

        The ledger rows, the balance deltas and one feed entry per involved
        user are written in the caller's transaction, so they become
        visible together or not at all.

        Args:
            db: Database session
            expense_data: Expense creation data
            default_currency: Currency used when the payload names none

        Returns:
            Created expense with shares loaded

        Raises:
            ValidationError: If validation fails
            NotFoundError: If the group doesn't exist
        """
        currency = expense_data.currency or default_currency
        ExpenseService.validate_amount(expense_data.amount, currency)

        splits = ExpenseService.calculate_shares(
            expense_data.amount,
            currency,
            expense_data.paid_by,
            expense_data.split_equally,
            expense_data.shares,
        )

        user_ids = list(dict.fromkeys([expense_data.paid_by, *(s.user_id for s in splits)]))
        users = await ExpenseService.validate_users_exist(db, user_ids)

        expense_date = to_naive_utc(expense_data.date) if expense_data.date else utcnow()
        group = None
        if expense_data.group_id:
            group = await ExpenseService.validate_group_members(
                db, expense_data.group_id, user_ids, expense_date
            )

        expense = Expense(
            description=expense_data.description,
            amount=expense_data.amount,
            currency=currency,
            expense_date=expense_date,
            paid_by_user_id=expense_data.paid_by,
            group_id=expense_data.group_id,
            split_equally=expense_data.split_equally,
            category=expense_data.category,
            revision=1,
            shares=ExpenseService._share_rows(splits, revision=1),
        )
        expense = await ExpenseRepository.create(db, expense)

        await BalanceService.apply_expense(db, expense, expense.current_shares)

        payer = users[expense_data.paid_by]
        description = f"{payer.name} added \"{expense.description}\" ({currency} {expense.amount})"
        if group:
            description += f" in {group.name}"
        await ActivityService.record_activity(
            db,
            ActivityKind.EXPENSE,
            description,
            involved_user_ids=user_ids,
            actor_id=payer.id,
            amount=expense.amount,
            currency=currency,
            group_id=expense.group_id,
            expense_id=expense.id,
        )

        logger.info(f"Recorded expense {expense.id} of {currency} {expense.amount}")
        return await ExpenseService._get_expense(db, expense.id)

    @staticmethod
    async def get_expense(db: AsyncSession, expense_id: UUID) -> Expense:
        """
        Get an expense with its effective shares.

        Raises:
            NotFoundError: If expense not found
        """
        return await ExpenseService._get_expense(db, expense_id)

    @staticmethod
    async def get_corrections(db: AsyncSession, expense_id: UUID) -> List[ExpenseCorrection]:
        """
        Get the correction history of an expense.

        Raises:
            NotFoundError: If expense not found
        """
        await ExpenseService._get_expense(db, expense_id)
        return await ExpenseRepository.get_corrections(db, expense_id)

    @staticmethod
    def own_share(expense: Expense, user_id: UUID) -> Decimal:
        """The user's share of the effective revision, zero when they hold none"""
        return sum_decimals(
            share.amount for share in expense.current_shares if share.user_id == user_id
        )

    @staticmethod
    def list_item(
        expense: Expense, user_id: UUID, group_names: Dict[UUID, str]
    ) -> ExpenseListItem:
        """
        Describe an expense from one user's side.

        The payer is credited with the portion others hold; anyone else is
        debited their own share.
        """
        own = ExpenseService.own_share(expense, user_id)
        if expense.paid_by_user_id == user_id:
            your_share, share_type = expense.amount - own, "credit"
        else:
            your_share, share_type = own, "debit"

        return ExpenseListItem(
            id=expense.id,
            date=expense.expense_date,
            description=expense.description,
            total_amount=expense.amount,
            currency=expense.currency,
            category=expense.category,
            group_id=expense.group_id,
            group_name=group_names.get(expense.group_id) if expense.group_id else None,
            paid_by=UserSummary.model_validate(expense.payer),
            your_share=your_share,
            share_type=share_type,
            is_void=expense.is_void,
        )

    @staticmethod
    async def get_user_expenses(
        db: AsyncSession, user_id: UUID, page: int = 1, page_size: int = 20
    ) -> ExpenseListResponse:
        """
        Get expenses involving a user with pagination, most recent first.

        Args:
            db: Database session
            user_id: User ID
            page: Page number (1-indexed)
            page_size: Items per page

        Returns:
            ExpenseListResponse

        Raises:
            NotFoundError: If user not found
        """
        if not await UserRepository.get_by_id(db, user_id):
            raise NotFoundError(f"User with ID {user_id} not found")

        skip = (page - 1) * page_size
        expenses = await ExpenseRepository.list_involving(db, user_id, skip=skip, limit=page_size)
        total_count = await ExpenseRepository.count_involving(db, user_id)

        group_names = await GroupRepository.get_names(
            db, [expense.group_id for expense in expenses if expense.group_id]
        )
        return ExpenseListResponse(
            items=[ExpenseService.list_item(e, user_id, group_names) for e in expenses],
            pagination=PaginationMeta.build(page, page_size, total_count),
        )

    @staticmethod
    async def get_group_expenses(
        db: AsyncSession, group_id: UUID, page: int = 1, page_size: int = 20
    ) -> GroupExpenseListResponse:
        """
        Get a group's expenses with pagination, most recent first.

        Raises:
            NotFoundError: If group not found
        """
        if not await GroupRepository.get_by_id(db, group_id):
            raise NotFoundError(f"Group with ID {group_id} not found")

        skip = (page - 1) * page_size
        expenses = await ExpenseRepository.list_in_group(db, group_id, skip=skip, limit=page_size)
        total_count = await ExpenseRepository.count_in_group(db, group_id)

        return GroupExpenseListResponse(
            group_id=group_id,
            items=[ExpenseResponse.from_expense(expense) for expense in expenses],
            pagination=PaginationMeta.build(page, page_size, total_count),
        )

    @staticmethod
    async def _append_revision(
        db: AsyncSession,
        expense: Expense,
        new_shares: List[ExpenseShare],
        kind: CorrectionKind,
        actor_id: UUID,
        reason: Optional[str],
    ) -> ExpenseCorrection:
        """Move balances to a new share revision and log the correction event"""
        old_shares = expense.current_shares
        revision = expense.revision + 1

        await BalanceService.apply_revision(db, expense, old_shares, new_shares)

        for share in new_shares:
            share.revision = revision
            expense.shares.append(share)
        expense.revision = revision
        if kind == CorrectionKind.VOID:
            expense.is_void = True
        expense.updated_at = utcnow()

        correction = await ExpenseRepository.add_correction(
            db,
            ExpenseCorrection(
                expense_id=expense.id,
                revision=revision,
                kind=kind,
                reason=reason,
                created_by_user_id=actor_id,
            ),
        )
        return correction

    @staticmethod
    async def record_correction(
        db: AsyncSession, expense_id: UUID, correction_data: CorrectionCreate
    ) -> Expense:
        """
        Replace the shares of an expense through an appended revision.

        Earlier revisions stay in the ledger; balances move from the old
        effective shares to the new ones in one step. A share may go from
        paid back to unpaid only here; a settled share stays paid only if
        it is resubmitted paid with the same amount.

        Raises:
            NotFoundError: If expense not found
            ValidationError: If the expense is void or the shares are invalid
        """
        expense = await ExpenseService._get_expense(db, expense_id, for_update=True)
        if expense.is_void:
            raise ValidationError("A void expense cannot be corrected")

        old_shares = expense.current_shares
        splits = ExpenseService.calculate_shares(
            expense.amount,
            expense.currency,
            expense.paid_by_user_id,
            correction_data.split_equally,
            correction_data.shares,
            previous_shares=old_shares,
        )

        user_ids = list(dict.fromkeys(
            [expense.paid_by_user_id, correction_data.actor_id, *(s.user_id for s in splits)]
        ))
        users = await ExpenseService.validate_users_exist(db, user_ids)
        if expense.group_id:
            await ExpenseService.validate_group_members(
                db, expense.group_id, [s.user_id for s in splits], expense.expense_date
            )

        new_shares = ExpenseService._share_rows(
            splits, revision=expense.revision + 1, previous_shares=old_shares
        )
        await ExpenseService._append_revision(
            db, expense, new_shares, CorrectionKind.ADJUST,
            correction_data.actor_id, correction_data.reason,
        )

        actor = users[correction_data.actor_id]
        await ActivityService.record_activity(
            db,
            ActivityKind.EXPENSE,
            f"{actor.name} updated \"{expense.description}\"",
            involved_user_ids=ExpenseService._involved_user_ids(expense, old_shares, new_shares),
            actor_id=actor.id,
            amount=expense.amount,
            currency=expense.currency,
            group_id=expense.group_id,
            expense_id=expense.id,
        )

        logger.info(f"Corrected expense {expense.id} to revision {expense.revision}")
        return await ExpenseService._get_expense(db, expense.id)

    @staticmethod
    async def void_expense(
        db: AsyncSession, expense_id: UUID, void_data: VoidRequest
    ) -> Expense:
        """
        Void an expense: a new revision with no shares.

        Raises:
            NotFoundError: If expense or actor not found
            ConflictError: If the expense is already void
        """
        expense = await ExpenseService._get_expense(db, expense_id, for_update=True)
        if expense.is_void:
            raise ConflictError("Expense is already void")

        actor = await UserRepository.get_by_id(db, void_data.actor_id)
        if not actor:
            raise NotFoundError(f"User with ID {void_data.actor_id} not found")

        old_shares = expense.current_shares
        await ExpenseService._append_revision(
            db, expense, [], CorrectionKind.VOID, actor.id, void_data.reason,
        )

        await ActivityService.record_activity(
            db,
            ActivityKind.EXPENSE,
            f"{actor.name} deleted \"{expense.description}\"",
            involved_user_ids=ExpenseService._involved_user_ids(expense, old_shares),
            actor_id=actor.id,
            amount=expense.amount,
            currency=expense.currency,
            group_id=expense.group_id,
            expense_id=expense.id,
        )

        logger.info(f"Voided expense {expense.id}")
        return await ExpenseService._get_expense(db, expense.id)

    @staticmethod
    async def settle_share(db: AsyncSession, expense_id: UUID, share_id: UUID) -> Payment:
        """
        Mark a share paid, recording the payment to the expense's payer.

        Raises:
            NotFoundError: If expense or share not found
            ValidationError: If the expense is void
            ConflictError: If the share is already paid
        """
        expense = await ExpenseService._get_expense(db, expense_id, for_update=True)
        if expense.is_void:
            raise ValidationError("Shares of a void expense cannot be settled")

        share = next((s for s in expense.current_shares if s.id == share_id), None)
        if share is None:
            raise NotFoundError(f"Share with ID {share_id} not found on this expense")
        if share.paid:
            raise ConflictError("Share is already paid")

        await BalanceService.apply_expense(db, expense, [share], sign=-1)

        share.paid = True
        share.paid_at = utcnow()
        payment = await PaymentRepository.create(
            db,
            Payment(
                share_id=share.id,
                expense_id=expense.id,
                from_user_id=share.user_id,
                to_user_id=expense.paid_by_user_id,
                amount=share.amount,
                currency=expense.currency,
                paid_at=share.paid_at,
            ),
        )

        users = await UserRepository.get_many(db, [share.user_id, expense.paid_by_user_id])
        debtor = users[share.user_id]
        creditor = users[expense.paid_by_user_id]
        await ActivityService.record_activity(
            db,
            ActivityKind.PAYMENT,
            f"{debtor.name} paid {creditor.name} {expense.currency} {share.amount} for \"{expense.description}\"",
            involved_user_ids=[debtor.id, creditor.id],
            actor_id=debtor.id,
            amount=share.amount,
            currency=expense.currency,
            group_id=expense.group_id,
            expense_id=expense.id,
        )

        logger.info(f"Settled share {share.id} of expense {expense.id}")
        return payment

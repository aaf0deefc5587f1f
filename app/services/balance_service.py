"""Balance aggregation: incremental pair totals and full ledger recompute"""

import logging
from collections import defaultdict
from decimal import Decimal
from typing import AsyncIterator, Dict, Iterable, List, Tuple
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConsistencyError, NotFoundError
from app.models.balance import DIRECT_SCOPE, PairBalance
from app.models.expense import Expense, ExpenseShare
from app.repositories.balance_repository import BalanceRepository
from app.repositories.expense_repository import ExpenseRepository
from app.repositories.group_repository import GroupRepository
from app.repositories.user_repository import UserRepository
from app.schemas.balance import (BalanceMismatch, BalanceSummary,
                                 BalanceVerification, GroupBalance,
                                 GroupBalancesResponse, PairBalanceResponse,
                                 RebuildResponse, UserBalance,
                                 UserGroupBalance, UserGroupBalancesResponse)
from app.schemas.user import UserSummary
from app.utils.decimal_utils import sum_decimals

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# (user_low_id, user_high_id, scope, currency)
PairKey = Tuple[UUID, UUID, str, str]
# (low_credit delta, high_credit delta)
PairDelta = Tuple[Decimal, Decimal]


def scope_for(expense: Expense) -> str:
    """Balance scope of an expense: its group id, or the direct scope"""
    return str(expense.group_id) if expense.group_id else DIRECT_SCOPE


def share_deltas(
    expense: Expense, shares: Iterable[ExpenseShare]
) -> Dict[PairKey, PairDelta]:
    """
    Outstanding amounts created by shares of an expense, per pair.

    Only unpaid shares held by someone other than the payer count: each
    one is owed by its holder to the payer.

    Args:
        expense: Expense the shares belong to
        shares: Shares to account for

    Returns:
        Mapping of pair key to credit deltas
    """
    deltas: Dict[PairKey, List[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
    payer_id = expense.paid_by_user_id
    scope = scope_for(expense)

    for share in shares:
        if share.user_id == payer_id or share.paid or share.amount == 0:
            continue
        low, high = sorted((payer_id, share.user_id))
        entry = deltas[(low, high, scope, expense.currency)]
        if payer_id == low:
            entry[0] += share.amount
        else:
            entry[1] += share.amount

    return {key: (low_credit, high_credit) for key, (low_credit, high_credit) in deltas.items()}


def merge_deltas(
    target: Dict[PairKey, List[Decimal]], deltas: Dict[PairKey, PairDelta]
) -> None:
    """Accumulate deltas into target in place"""
    for key, (low_credit, high_credit) in deltas.items():
        entry = target.setdefault(key, [ZERO, ZERO])
        entry[0] += low_credit
        entry[1] += high_credit


class BalanceService:
    """Service for balance aggregation operations"""

    @staticmethod
    async def apply_deltas(
        db: AsyncSession, deltas: Dict[PairKey, PairDelta], sign: int = 1
    ) -> None:
        """
        Apply credit deltas to the stored pair rows.

        Rows are locked in sorted key order so concurrent writers touching
        overlapping pairs cannot deadlock.

        Raises:
            ConsistencyError: If a credit would become negative
        """
        for key in sorted(deltas):
            low_delta, high_delta = deltas[key]
            user_low_id, user_high_id, scope, currency = key
            row = await BalanceRepository.lock_pair(
                db, user_low_id, user_high_id, scope, currency
            )
            row.low_credit = row.low_credit + sign * low_delta
            row.high_credit = row.high_credit + sign * high_delta

            if row.low_credit < 0 or row.high_credit < 0:
                logger.error(f"Negative pair credit after update: {row!r}")
                raise ConsistencyError(
                    "Balance update would make an outstanding amount negative",
                    details={"pair": [str(user_low_id), str(user_high_id)], "scope": scope},
                )

        await db.flush()

    @staticmethod
    async def apply_expense(
        db: AsyncSession, expense: Expense, shares: Iterable[ExpenseShare], sign: int = 1
    ) -> None:
        """Add (sign=1) or remove (sign=-1) the outstanding amounts of shares"""
        await BalanceService.apply_deltas(db, share_deltas(expense, shares), sign)

    @staticmethod
    async def apply_revision(
        db: AsyncSession,
        expense: Expense,
        old_shares: Iterable[ExpenseShare],
        new_shares: Iterable[ExpenseShare],
    ) -> None:
        """
        Replace the outstanding amounts of one share revision with another.

        The inverse of the old revision and the new revision are merged into
        one delta set so every touched pair is locked once, in key order.
        """
        deltas: Dict[PairKey, List[Decimal]] = {}
        inverse = {
            key: (-low_credit, -high_credit)
            for key, (low_credit, high_credit) in share_deltas(expense, old_shares).items()
        }
        merge_deltas(deltas, inverse)
        merge_deltas(deltas, share_deltas(expense, new_shares))
        await BalanceService.apply_deltas(
            db, {key: (low, high) for key, (low, high) in deltas.items()}
        )

    @staticmethod
    def _summarize(user_id: UUID, rows: Iterable[PairBalance]) -> Tuple[Decimal, Decimal]:
        """
        Sum lent and owed for a user over pair rows.

        Raises:
            ConsistencyError: If a stored credit is negative
        """
        lent = ZERO
        owed = ZERO
        for row in rows:
            if row.low_credit < 0 or row.high_credit < 0:
                logger.error(f"Negative stored pair credit: {row!r}")
                raise ConsistencyError(
                    "Stored balance is negative; verify and rebuild balances",
                    details={"pair": [str(row.user_low_id), str(row.user_high_id)]},
                )
            lent += row.credit_of(user_id)
            owed += row.debt_of(user_id)
        return lent, owed

    @staticmethod
    async def _require_user(db: AsyncSession, user_id: UUID):
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise NotFoundError(f"User with ID {user_id} not found")
        return user

    @staticmethod
    async def get_balance(
        db: AsyncSession, user_id: UUID, currency: str
    ) -> BalanceSummary:
        """
        Get a user's lent, owed and net balance.

        Args:
            db: Database session
            user_id: User ID
            currency: Currency of the balances

        Returns:
            BalanceSummary

        Raises:
            NotFoundError: If user not found
            ConsistencyError: If stored balances are corrupt
        """
        await BalanceService._require_user(db, user_id)

        rows = await BalanceRepository.list_for_user(db, user_id, currency=currency)
        lent, owed = BalanceService._summarize(user_id, rows)

        return BalanceSummary(
            user_id=user_id,
            lent=lent,
            owed=owed,
            net_balance=lent - owed,
            currency=currency,
        )

    @staticmethod
    async def get_pair_balance(
        db: AsyncSession, user_id: UUID, other_user_id: UUID, currency: str
    ) -> PairBalanceResponse:
        """
        Get the signed balance between two users across every scope.

        Positive means other_user_id owes user_id.

        Raises:
            NotFoundError: If either user not found
        """
        await BalanceService._require_user(db, user_id)
        await BalanceService._require_user(db, other_user_id)

        amount = ZERO
        if user_id != other_user_id:
            low, high = sorted((user_id, other_user_id))
            rows = await BalanceRepository.list_for_pair(db, low, high, currency)
            lent, owed = BalanceService._summarize(user_id, rows)
            amount = lent - owed

        return PairBalanceResponse(
            user_id=user_id,
            other_user_id=other_user_id,
            amount=amount,
            currency=currency,
        )

    @staticmethod
    async def get_group_balance(
        db: AsyncSession, group_id: UUID, user_id: UUID, currency: str
    ) -> GroupBalance:
        """
        Get a user's balance restricted to one group's expenses.

        Raises:
            NotFoundError: If group or user not found
        """
        group = await GroupRepository.get_by_id(db, group_id)
        if not group:
            raise NotFoundError(f"Group with ID {group_id} not found")
        await BalanceService._require_user(db, user_id)

        rows = await BalanceRepository.list_for_user(
            db, user_id, currency=currency, scope=str(group_id)
        )
        lent, owed = BalanceService._summarize(user_id, rows)

        return GroupBalance(
            group_id=group_id,
            user_id=user_id,
            lent=lent,
            owed=owed,
            net_balance=lent - owed,
            currency=currency,
        )

    @staticmethod
    def _rows_by_user(rows: Iterable[PairBalance]) -> Dict[UUID, List[PairBalance]]:
        by_user: Dict[UUID, List[PairBalance]] = defaultdict(list)
        for row in rows:
            by_user[row.user_low_id].append(row)
            by_user[row.user_high_id].append(row)
        return by_user

    @staticmethod
    async def get_group_balances(
        db: AsyncSession, group_id: UUID, currency: str
    ) -> GroupBalancesResponse:
        """
        Get every member's balance within one group.

        Current members come first in joining order, followed by former
        members who still have outstanding amounts in the group.

        Raises:
            NotFoundError: If group not found
            ConsistencyError: If stored balances are corrupt
        """
        group = await GroupRepository.get_by_id(db, group_id)
        if not group:
            raise NotFoundError(f"Group with ID {group_id} not found")

        rows = await BalanceRepository.list_for_scope(db, str(group_id), currency)
        by_user = BalanceService._rows_by_user(rows)

        user_ids = [user.id for user in group.active_members]
        user_ids.extend(sorted(set(by_user) - set(user_ids)))

        balances: List[GroupBalance] = []
        for user_id in user_ids:
            lent, owed = BalanceService._summarize(user_id, by_user.get(user_id, []))
            balances.append(
                GroupBalance(
                    group_id=group_id,
                    user_id=user_id,
                    lent=lent,
                    owed=owed,
                    net_balance=lent - owed,
                    currency=currency,
                )
            )

        return GroupBalancesResponse(group_id=group_id, currency=currency, balances=balances)

    @staticmethod
    async def get_user_group_balances(
        db: AsyncSession, user_id: UUID, currency: str
    ) -> UserGroupBalancesResponse:
        """
        Get a user's balance in each group.

        Lists the user's current groups, then groups they have left but
        still have outstanding amounts in.

        Raises:
            NotFoundError: If user not found
            ConsistencyError: If stored balances are corrupt
        """
        await BalanceService._require_user(db, user_id)

        groups = await GroupRepository.list_for_user(db, user_id)
        rows = await BalanceRepository.list_for_user(db, user_id, currency=currency)

        by_scope: Dict[str, List[PairBalance]] = defaultdict(list)
        for row in rows:
            if row.scope != DIRECT_SCOPE:
                by_scope[row.scope].append(row)

        group_ids = [group.id for group in groups]
        former = sorted(
            UUID(scope) for scope, scope_rows in by_scope.items()
            if UUID(scope) not in group_ids
            and any(row.low_credit or row.high_credit for row in scope_rows)
        )
        group_ids.extend(former)
        names = await GroupRepository.get_names(db, group_ids)

        group_balances: List[UserGroupBalance] = []
        for group_id in group_ids:
            lent, owed = BalanceService._summarize(user_id, by_scope.get(str(group_id), []))
            group_balances.append(
                UserGroupBalance(
                    group_id=group_id,
                    group_name=names.get(group_id, ""),
                    user_id=user_id,
                    lent=lent,
                    owed=owed,
                    net_balance=lent - owed,
                    currency=currency,
                )
            )

        return UserGroupBalancesResponse(user_id=user_id, currency=currency, groups=group_balances)

    @staticmethod
    async def get_user_balances(
        db: AsyncSession, user_id: UUID, currency: str
    ) -> List[UserBalance]:
        """
        Get the net balance with every counterparty.

        Args:
            db: Database session
            user_id: User ID
            currency: Currency of the balances

        Returns:
            List of UserBalance sorted by amount descending
        """
        await BalanceService._require_user(db, user_id)

        rows = await BalanceRepository.list_for_user(db, user_id, currency=currency)
        BalanceService._summarize(user_id, rows)

        per_counterparty: Dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for row in rows:
            per_counterparty[row.counterparty_of(user_id)] += (
                row.credit_of(user_id) - row.debt_of(user_id)
            )

        users = await UserRepository.get_many(db, per_counterparty.keys())

        user_balances: List[UserBalance] = []
        for other_user_id, amount in per_counterparty.items():
            other_user = users.get(other_user_id)
            if amount == 0 or not other_user:
                continue

            user_balances.append(
                UserBalance(
                    user=UserSummary.model_validate(other_user),
                    amount=abs(amount),
                    type="owes_you" if amount > 0 else "you_owe",
                )
            )

        # Sort by amount descending
        user_balances.sort(key=lambda b: b.amount, reverse=True)

        return user_balances

    @staticmethod
    async def compute_from_ledger(
        expenses: AsyncIterator[Expense],
    ) -> Tuple[Dict[PairKey, List[Decimal]], int]:
        """
        Recompute pair totals from scratch.

        Args:
            expenses: Ledger sequence to scan

        Returns:
            Tuple of (pair totals, number of expenses scanned)
        """
        totals: Dict[PairKey, List[Decimal]] = {}
        scanned = 0
        async for expense in expenses:
            scanned += 1
            merge_deltas(totals, share_deltas(expense, expense.current_shares))
        return totals, scanned

    @staticmethod
    async def rebuild(db: AsyncSession, batch_size: int = 200) -> RebuildResponse:
        """
        Replace every stored pair row with a full recompute from the ledger.

        Recovery path for when incremental state is suspect.
        """
        if db.bind.dialect.name == "postgresql":
            await db.execute(text("LOCK TABLE pair_balances IN EXCLUSIVE MODE"))

        totals, scanned = await BalanceService.compute_from_ledger(
            ExpenseRepository.iter_all(db, batch_size)
        )
        rows = [
            PairBalance(
                user_low_id=low,
                user_high_id=high,
                scope=scope,
                currency=currency,
                low_credit=low_credit,
                high_credit=high_credit,
            )
            for (low, high, scope, currency), (low_credit, high_credit) in sorted(totals.items())
            if low_credit != 0 or high_credit != 0
        ]
        written = await BalanceRepository.replace_all(db, rows)
        logger.info(f"Rebuilt balances: {written} pairs from {scanned} expenses")

        return RebuildResponse(pairs_written=written, expenses_scanned=scanned)

    @staticmethod
    async def verify(db: AsyncSession, batch_size: int = 200) -> BalanceVerification:
        """
        Compare stored pair rows with a full recompute.

        Raises:
            ConsistencyError: On any mismatch or zero-sum breach
        """
        expected, _ = await BalanceService.compute_from_ledger(
            ExpenseRepository.iter_all(db, batch_size)
        )
        stored = {
            (row.user_low_id, row.user_high_id, row.scope, row.currency): row
            for row in await BalanceRepository.list_all(db)
        }

        mismatches: List[BalanceMismatch] = []
        for key in sorted(set(expected) | set(stored)):
            expected_low, expected_high = expected.get(key, (ZERO, ZERO))
            row = stored.get(key)
            stored_low = row.low_credit if row else ZERO
            stored_high = row.high_credit if row else ZERO
            if stored_low != expected_low or stored_high != expected_high:
                low, high, scope, currency = key
                mismatches.append(
                    BalanceMismatch(
                        user_low_id=low,
                        user_high_id=high,
                        scope=scope,
                        currency=currency,
                        stored_low_credit=stored_low,
                        stored_high_credit=stored_high,
                        expected_low_credit=expected_low,
                        expected_high_credit=expected_high,
                    )
                )

        net_by_user: Dict[Tuple[UUID, str], Decimal] = defaultdict(lambda: ZERO)
        for (low, high, _, currency), row in stored.items():
            net_by_user[(low, currency)] += row.low_credit - row.high_credit
            net_by_user[(high, currency)] += row.high_credit - row.low_credit
        currencies = {currency for (_, currency) in net_by_user}
        zero_sum_ok = all(
            sum_decimals(v for (_, c), v in net_by_user.items() if c == currency) == 0
            for currency in currencies
        )

        verification = BalanceVerification(pairs_checked=len(stored), mismatches=mismatches)
        if mismatches or not zero_sum_ok:
            logger.error(
                f"Balance verification failed: {len(mismatches)} mismatches, zero_sum_ok={zero_sum_ok}"
            )
            raise ConsistencyError(
                "Stored balances do not match the ledger",
                details=verification.model_dump(mode="json"),
            )
        return verification

    @staticmethod
    async def verify_user(
        db: AsyncSession, user_id: UUID, currency: str, batch_size: int = 200
    ) -> BalanceVerification:
        """
        Recompute one user's lent/owed from the expenses involving them and
        compare with the stored figures.

        Raises:
            NotFoundError: If user not found
            ConsistencyError: If the figures differ
        """
        stored = await BalanceService.get_balance(db, user_id, currency)

        totals, _ = await BalanceService.compute_from_ledger(
            ExpenseRepository.iter_involving(db, user_id, batch_size)
        )
        lent = ZERO
        owed = ZERO
        pairs = 0
        for (low, high, _, key_currency), (low_credit, high_credit) in totals.items():
            if key_currency != currency or user_id not in (low, high):
                continue
            pairs += 1
            lent += low_credit if user_id == low else high_credit
            owed += high_credit if user_id == low else low_credit

        if lent != stored.lent or owed != stored.owed:
            logger.error(
                f"Balance of user {user_id} differs from ledger: stored=({stored.lent}, {stored.owed}) "
                f"expected=({lent}, {owed})"
            )
            raise ConsistencyError(
                f"Stored balance of user {user_id} does not match the ledger",
                details={
                    "stored": {"lent": str(stored.lent), "owed": str(stored.owed)},
                    "expected": {"lent": str(lent), "owed": str(owed)},
                },
            )
        return BalanceVerification(pairs_checked=pairs, user_id=user_id)

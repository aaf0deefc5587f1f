"""
Aggregation engine facade.

Every operation runs in its own database transaction and is retried with
backoff on transient storage failures. The FastAPI application owns one
engine on ``app.state``; tests and scripts build their own.
"""
import logging
from datetime import date
from typing import (AsyncIterator, Awaitable, Callable, Iterable, List,
                    Optional, Set, Type, TypeVar)
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import (AsyncEngine, AsyncSession,
                                    async_sessionmaker)

from app.config import Settings
from app.core.exceptions import AppException, NotFoundError, TransientError
from app.database import create_engine_from_settings, create_session_factory
from app.repositories.expense_repository import (ExpenseRepository,
                                                 LedgerPosition)
from app.repositories.group_repository import GroupRepository
from app.repositories.user_repository import UserRepository
from app.schemas.activity import (FeedPage, MarkReadResponse, MessageCreate,
                                  MessageReceipt, UnreadCount)
from app.schemas.balance import (BalanceSummary, BalanceVerification,
                                 GroupBalance, GroupBalancesResponse,
                                 PairBalanceResponse, RebuildResponse,
                                 UserBalance, UserGroupBalancesResponse)
from app.schemas.dashboard import ExpenseSummary, RecentTransactions
from app.schemas.expense import (CorrectionCreate, CorrectionResponse,
                                 ExpenseCreate, ExpenseListResponse,
                                 ExpenseResponse, GroupExpenseListResponse,
                                 PaymentResponse, VoidRequest)
from app.schemas.group import GroupCreate, GroupListResponse, GroupResponse
from app.schemas.statistics import StatisticsResponse
from app.schemas.user import UserCreate, UserResponse
from app.services.activity_service import ActivityService
from app.services.balance_service import BalanceService
from app.services.cache_service import CacheService
from app.services.dashboard_service import DashboardService
from app.services.expense_service import ExpenseService
from app.services.group_service import GroupService
from app.services.idempotency_service import IdempotencyService, fingerprint
from app.services.notification_service import NotificationService
from app.services.statistics_service import StatisticsService
from app.services.user_service import UserService
from app.utils.retry import retry_async

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

# PostgreSQL serialization_failure and deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_transient(exc: BaseException) -> bool:
    """Whether a database failure is worth retrying"""
    if isinstance(exc, (IntegrityError, OperationalError)):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        orig = exc.orig
        code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        return code in RETRYABLE_SQLSTATES
    return isinstance(exc, (ConnectionError, TimeoutError))


class AggregationEngine:
    """Request-scoped entry point for every ledger, balance and feed operation"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        cache: Optional[CacheService] = None,
        db_engine: Optional[AsyncEngine] = None,
    ):
        self._session_factory = session_factory
        self._settings = settings
        self._cache = cache or CacheService(settings.redis_url, enabled=False)
        self._db_engine = db_engine

    @classmethod
    def from_settings(cls, settings: Settings) -> "AggregationEngine":
        """Build an engine owning its database pool and cache client"""
        db_engine = create_engine_from_settings(settings)
        return cls(
            create_session_factory(db_engine),
            settings,
            cache=CacheService(settings.redis_url, enabled=settings.cache_enabled),
            db_engine=db_engine,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def cache(self) -> CacheService:
        return self._cache

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    @property
    def db_engine(self) -> Optional[AsyncEngine]:
        return self._db_engine

    async def close(self) -> None:
        """Release the cache client and the owned connection pool"""
        await self._cache.close()
        if self._db_engine is not None:
            await self._db_engine.dispose()

    async def _run(
        self,
        name: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        touched: Optional[Set[UUID]] = None,
    ) -> T:
        """
        Run work in one transaction with bounded retry.

        Application errors propagate unchanged. Transient database failures
        are retried and surface as TransientError once attempts run out.
        Cached statistics of touched users are dropped after commit.
        """
        async def attempt() -> T:
            try:
                async with self._session_factory() as db:
                    async with db.begin():
                        return await work(db)
            except AppException:
                raise
            except (DBAPIError, ConnectionError, TimeoutError) as e:
                if not is_transient(e):
                    raise
                raise TransientError(f"{name} could not complete: {type(e).__name__}") from e

        result = await retry_async(
            attempt,
            attempts=self._settings.retry_attempts,
            base_delay=self._settings.retry_base_delay,
            max_delay=self._settings.retry_max_delay,
            name=name,
        )

        if touched:
            await self._invalidate_statistics(touched)
        return result

    async def _invalidate_statistics(self, user_ids: Iterable[UUID]) -> None:
        for user_id in set(user_ids):
            await self._cache.delete_pattern(StatisticsService.cache_pattern(user_id))

    async def _idempotent(
        self,
        db: AsyncSession,
        operation: str,
        actor_id: UUID,
        request_id: Optional[str],
        payload,
        response_model: Type[M],
        work: Callable[[], Awaitable[M]],
    ) -> M:
        """Run work once per request id, replaying the stored response afterwards"""
        if not request_id:
            return await work()

        request_fingerprint = fingerprint(payload)
        stored = await IdempotencyService.lookup(
            db, operation, actor_id, request_id, request_fingerprint
        )
        if stored is not None:
            return response_model.model_validate(stored)

        record = await IdempotencyService.claim(
            db, operation, actor_id, request_id, request_fingerprint
        )
        result = await work()
        await IdempotencyService.complete(db, record, result.model_dump(mode="json"))
        return result

    def _currency(self, currency: Optional[str]) -> str:
        return (currency or self._settings.default_currency).upper()

    # Directory

    async def create_user(self, user_data: UserCreate) -> UserResponse:
        async def work(db: AsyncSession) -> UserResponse:
            user = await UserService.create_user(db, user_data)
            return UserResponse.model_validate(user)

        return await self._run("create_user", work)

    async def get_user(self, user_id: UUID) -> UserResponse:
        async def work(db: AsyncSession) -> UserResponse:
            user = await UserService.get_user_by_id(db, user_id)
            return UserResponse.model_validate(user)

        return await self._run("get_user", work)

    async def create_group(self, group_data: GroupCreate) -> GroupResponse:
        async def work(db: AsyncSession) -> GroupResponse:
            group = await GroupService.create_group(db, group_data)
            return GroupResponse.from_group(group)

        return await self._run("create_group", work)

    async def get_group(self, group_id: UUID) -> GroupResponse:
        async def work(db: AsyncSession) -> GroupResponse:
            return GroupResponse.from_group(await GroupService.get_group(db, group_id))

        return await self._run("get_group", work)

    async def add_group_member(self, group_id: UUID, user_id: UUID, actor_id: UUID) -> GroupResponse:
        async def work(db: AsyncSession) -> GroupResponse:
            group = await GroupService.add_member(db, group_id, user_id, actor_id)
            return GroupResponse.from_group(group)

        return await self._run("add_group_member", work)

    async def remove_group_member(self, group_id: UUID, user_id: UUID, actor_id: UUID) -> GroupResponse:
        async def work(db: AsyncSession) -> GroupResponse:
            group = await GroupService.remove_member(db, group_id, user_id, actor_id)
            return GroupResponse.from_group(group)

        return await self._run("remove_group_member", work)

    async def user_groups(self, user_id: UUID) -> GroupListResponse:
        async def work(db: AsyncSession) -> GroupListResponse:
            groups = await GroupService.list_user_groups(db, user_id)
            return GroupListResponse(groups=[GroupResponse.from_group(g) for g in groups])

        return await self._run("user_groups", work)

    # Expense ledger

    async def record_expense(
        self, expense_data: ExpenseCreate, request_id: Optional[str] = None
    ) -> ExpenseResponse:
        """
        Record an expense; a repeated request_id returns the first result.

        Raises:
            ValidationError: If the expense breaks a share invariant
            ConflictError: If request_id was used for a different expense
        """
        touched: Set[UUID] = set()

        async def work(db: AsyncSession) -> ExpenseResponse:
            async def record() -> ExpenseResponse:
                expense = await ExpenseService.record_expense(
                    db, expense_data, self._settings.default_currency
                )
                return ExpenseResponse.from_expense(expense)

            result = await self._idempotent(
                db,
                "record_expense",
                expense_data.paid_by,
                request_id,
                expense_data.model_dump(mode="json"),
                ExpenseResponse,
                record,
            )
            touched.add(result.paid_by.id)
            touched.update(share.user.id for share in result.shares)
            return result

        return await self._run("record_expense", work, touched)

    async def get_expense(self, expense_id: UUID) -> ExpenseResponse:
        async def work(db: AsyncSession) -> ExpenseResponse:
            return ExpenseResponse.from_expense(await ExpenseService.get_expense(db, expense_id))

        return await self._run("get_expense", work)

    async def expense_corrections(self, expense_id: UUID) -> List[CorrectionResponse]:
        async def work(db: AsyncSession) -> List[CorrectionResponse]:
            corrections = await ExpenseService.get_corrections(db, expense_id)
            return [CorrectionResponse.model_validate(c) for c in corrections]

        return await self._run("expense_corrections", work)

    async def record_correction(
        self, expense_id: UUID, correction_data: CorrectionCreate
    ) -> ExpenseResponse:
        touched: Set[UUID] = set()

        async def work(db: AsyncSession) -> ExpenseResponse:
            expense = await ExpenseService.record_correction(db, expense_id, correction_data)
            touched.add(expense.paid_by_user_id)
            touched.update(share.user_id for share in expense.shares)
            return ExpenseResponse.from_expense(expense)

        return await self._run("record_correction", work, touched)

    async def void_expense(self, expense_id: UUID, void_data: VoidRequest) -> ExpenseResponse:
        touched: Set[UUID] = set()

        async def work(db: AsyncSession) -> ExpenseResponse:
            expense = await ExpenseService.void_expense(db, expense_id, void_data)
            touched.add(expense.paid_by_user_id)
            touched.update(share.user_id for share in expense.shares)
            return ExpenseResponse.from_expense(expense)

        return await self._run("void_expense", work, touched)

    async def settle_share(self, expense_id: UUID, share_id: UUID) -> PaymentResponse:
        touched: Set[UUID] = set()

        async def work(db: AsyncSession) -> PaymentResponse:
            payment = await ExpenseService.settle_share(db, expense_id, share_id)
            touched.update((payment.from_user_id, payment.to_user_id))
            return PaymentResponse.model_validate(payment)

        return await self._run("settle_share", work, touched)

    async def user_expenses(
        self, user_id: UUID, page: int = 1, page_size: int = 20
    ) -> ExpenseListResponse:
        async def work(db: AsyncSession) -> ExpenseListResponse:
            return await ExpenseService.get_user_expenses(db, user_id, page, page_size)

        return await self._run("user_expenses", work)

    async def group_expenses(
        self, group_id: UUID, page: int = 1, page_size: int = 20
    ) -> GroupExpenseListResponse:
        async def work(db: AsyncSession) -> GroupExpenseListResponse:
            return await ExpenseService.get_group_expenses(db, group_id, page, page_size)

        return await self._run("group_expenses", work)

    async def expenses_involving(
        self, user_id: UUID, after: Optional[LedgerPosition] = None
    ) -> AsyncIterator[ExpenseResponse]:
        """
        Lazily yield expenses where the user is payer or shareholder.

        Ordered by (date, id) ascending; pass the (date, id) of the last
        item received as after to resume.

        Raises:
            NotFoundError: If user not found
        """
        async with self._session_factory() as db:
            async with db.begin():
                if not await UserRepository.get_by_id(db, user_id):
                    raise NotFoundError(f"User with ID {user_id} not found")
                async for expense in ExpenseRepository.iter_involving(
                    db, user_id, self._settings.ledger_batch_size, after
                ):
                    yield ExpenseResponse.from_expense(expense)

    async def expenses_in_group(
        self, group_id: UUID, after: Optional[LedgerPosition] = None
    ) -> AsyncIterator[ExpenseResponse]:
        """
        Lazily yield a group's expenses, (date, id) ascending.

        Raises:
            NotFoundError: If group not found
        """
        async with self._session_factory() as db:
            async with db.begin():
                if not await GroupRepository.get_by_id(db, group_id):
                    raise NotFoundError(f"Group with ID {group_id} not found")
                async for expense in ExpenseRepository.iter_in_group(
                    db, group_id, self._settings.ledger_batch_size, after
                ):
                    yield ExpenseResponse.from_expense(expense)

    # Balances

    async def net_balance(self, user_id: UUID, currency: Optional[str] = None) -> BalanceSummary:
        async def work(db: AsyncSession) -> BalanceSummary:
            return await BalanceService.get_balance(db, user_id, self._currency(currency))

        return await self._run("net_balance", work)

    async def pair_balance(
        self, user_id: UUID, other_user_id: UUID, currency: Optional[str] = None
    ) -> PairBalanceResponse:
        async def work(db: AsyncSession) -> PairBalanceResponse:
            return await BalanceService.get_pair_balance(
                db, user_id, other_user_id, self._currency(currency)
            )

        return await self._run("pair_balance", work)

    async def group_balance(
        self, group_id: UUID, user_id: UUID, currency: Optional[str] = None
    ) -> GroupBalance:
        async def work(db: AsyncSession) -> GroupBalance:
            return await BalanceService.get_group_balance(
                db, group_id, user_id, self._currency(currency)
            )

        return await self._run("group_balance", work)

    async def group_balances(
        self, group_id: UUID, currency: Optional[str] = None
    ) -> GroupBalancesResponse:
        async def work(db: AsyncSession) -> GroupBalancesResponse:
            return await BalanceService.get_group_balances(db, group_id, self._currency(currency))

        return await self._run("group_balances", work)

    async def user_group_balances(
        self, user_id: UUID, currency: Optional[str] = None
    ) -> UserGroupBalancesResponse:
        async def work(db: AsyncSession) -> UserGroupBalancesResponse:
            return await BalanceService.get_user_group_balances(
                db, user_id, self._currency(currency)
            )

        return await self._run("user_group_balances", work)

    async def counterparty_balances(
        self, user_id: UUID, currency: Optional[str] = None
    ) -> List[UserBalance]:
        async def work(db: AsyncSession) -> List[UserBalance]:
            return await BalanceService.get_user_balances(db, user_id, self._currency(currency))

        return await self._run("counterparty_balances", work)

    async def rebuild_balances(self) -> RebuildResponse:
        async def work(db: AsyncSession) -> RebuildResponse:
            return await BalanceService.rebuild(db, self._settings.ledger_batch_size)

        return await self._run("rebuild_balances", work)

    async def verify_balances(self) -> BalanceVerification:
        async def work(db: AsyncSession) -> BalanceVerification:
            return await BalanceService.verify(db, self._settings.ledger_batch_size)

        return await self._run("verify_balances", work)

    async def verify_user_balance(
        self, user_id: UUID, currency: Optional[str] = None
    ) -> BalanceVerification:
        async def work(db: AsyncSession) -> BalanceVerification:
            return await BalanceService.verify_user(
                db, user_id, self._currency(currency), self._settings.ledger_batch_size
            )

        return await self._run("verify_user_balance", work)

    # Statistics

    async def statistics(
        self, user_id: UUID, start: Optional[date] = None, end: Optional[date] = None
    ) -> StatisticsResponse:
        async def work(db: AsyncSession) -> StatisticsResponse:
            return await StatisticsService.get_statistics(
                db, user_id, start, end,
                cache=self._cache, ttl=self._settings.statistics_cache_ttl,
            )

        return await self._run("statistics", work)

    async def expense_summary(
        self, user_id: UUID, currency: Optional[str] = None, today: Optional[date] = None
    ) -> ExpenseSummary:
        """This month's own spending against last month's"""
        async def work(db: AsyncSession) -> ExpenseSummary:
            return await DashboardService.get_expense_summary(
                db, user_id, self._currency(currency), today
            )

        return await self._run("expense_summary", work)

    async def recent_transactions(self, user_id: UUID, limit: int = 5) -> RecentTransactions:
        async def work(db: AsyncSession) -> RecentTransactions:
            return await DashboardService.get_recent_transactions(db, user_id, limit)

        return await self._run("recent_transactions", work)

    # Feed and notifications

    async def feed(
        self, user_id: UUID, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> FeedPage:
        page_size = min(limit or self._settings.feed_default_limit, self._settings.feed_max_limit)

        async def work(db: AsyncSession) -> FeedPage:
            return await ActivityService.get_feed(db, user_id, cursor, page_size)

        return await self._run("feed", work)

    async def record_message(self, message: MessageCreate) -> MessageReceipt:
        async def work(db: AsyncSession) -> MessageReceipt:
            activities = await ActivityService.record_message(db, message)
            return MessageReceipt(recipient_count=len(activities))

        return await self._run("record_message", work)

    async def unread_count(self, user_id: UUID) -> UnreadCount:
        async def work(db: AsyncSession) -> UnreadCount:
            return await NotificationService.get_unread_count(db, user_id)

        return await self._run("unread_count", work)

    async def mark_read(self, user_id: UUID, request_id: Optional[str] = None) -> MarkReadResponse:
        """
        Move the user's watermark to their newest feed entry.

        A replayed request returns the stored watermark with the unread
        count as of now.

        Raises:
            NotFoundError: If user not found
        """
        async def work(db: AsyncSession) -> MarkReadResponse:
            result = await self._idempotent(
                db,
                "mark_read",
                user_id,
                request_id,
                {"user_id": str(user_id)},
                MarkReadResponse,
                lambda: NotificationService.mark_read(db, user_id),
            )
            unread = await NotificationService.get_unread_count(db, user_id)
            return result.model_copy(update={"unread_count": unread.unread_count})

        return await self._run("mark_read", work)

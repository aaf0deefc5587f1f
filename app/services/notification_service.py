"""Per-user read watermark and unread counts"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.repositories.activity_repository import ActivityRepository
from app.repositories.user_repository import UserRepository
from app.schemas.activity import MarkReadResponse, UnreadCount, Watermark
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for notification watermark operations"""

    @staticmethod
    async def _require_user(db: AsyncSession, user_id: UUID) -> None:
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise NotFoundError(f"User with ID {user_id} not found")

    @staticmethod
    async def get_unread_count(db: AsyncSession, user_id: UUID) -> UnreadCount:
        """
        Count feed entries after the user's watermark.

        Read-only and lock-free; safe to poll.

        Raises:
            NotFoundError: If user not found
        """
        await NotificationService._require_user(db, user_id)

        state = await ActivityRepository.get_state(db, user_id)
        position = None
        if state is not None and state.watermark_id is not None:
            position = (state.watermark_at, state.watermark_id)

        count = await ActivityRepository.count_after(db, user_id, position)
        return UnreadCount(user_id=user_id, unread_count=count)

    @staticmethod
    async def mark_read(db: AsyncSession, user_id: UUID) -> MarkReadResponse:
        """
        Move the watermark to the newest feed entry.

        The newest entry is read from the same locked state row that
        activity appends update, so an entry committed after this point is
        never covered by the new watermark. Calling it again without new
        activity leaves the watermark unchanged.

        Raises:
            NotFoundError: If user not found
        """
        await NotificationService._require_user(db, user_id)

        state = await ActivityRepository.lock_state(db, user_id)
        if (state.watermark_at, state.watermark_id) != (state.last_activity_at, state.last_activity_id):
            state.watermark_at = state.last_activity_at
            state.watermark_id = state.last_activity_id
            state.updated_at = utcnow()
            await db.flush()
            logger.info(f"Moved read watermark of user {user_id} to activity {state.watermark_id}")

        return MarkReadResponse(
            user_id=user_id,
            watermark=Watermark(date=state.watermark_at, id=state.watermark_id),
            unread_count=0,
        )

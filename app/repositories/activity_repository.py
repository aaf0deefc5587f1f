"""Activity feed and notification state data access"""
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity import Activity, NotificationState

# Feed position: (occurred_at, activity id)
FeedPosition = Tuple[datetime, int]


def _after(position: FeedPosition):
    at, activity_id = position
    return or_(
        Activity.occurred_at > at,
        and_(Activity.occurred_at == at, Activity.id > activity_id),
    )


def _before(position: FeedPosition):
    at, activity_id = position
    return or_(
        Activity.occurred_at < at,
        and_(Activity.occurred_at == at, Activity.id < activity_id),
    )


class ActivityRepository:
    """Repository for Activity and NotificationState database operations"""

    @staticmethod
    async def create(db: AsyncSession, activity: Activity) -> Activity:
        """
        Append an activity; the flush assigns its id.

        Args:
            db: Database session
            activity: Activity to insert

        Returns:
            Created activity
        """
        db.add(activity)
        await db.flush()
        return activity

    @staticmethod
    async def get_page(
        db: AsyncSession,
        owner_id: UUID,
        limit: int,
        before: Optional[FeedPosition] = None,
    ) -> List[Activity]:
        """
        Get a feed page ordered by (occurred_at desc, id desc).

        Args:
            db: Database session
            owner_id: Feed owner UUID
            limit: Maximum number of entries
            before: Exclusive cursor, entries strictly older are returned

        Returns:
            List of activities
        """
        query = select(Activity).where(Activity.owner_id == owner_id)
        if before is not None:
            query = query.where(_before(before))
        query = query.order_by(Activity.occurred_at.desc(), Activity.id.desc()).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def count_after(
        db: AsyncSession, owner_id: UUID, position: Optional[FeedPosition] = None
    ) -> int:
        """
        Count feed entries strictly newer than position (all when None).

        Args:
            db: Database session
            owner_id: Feed owner UUID
            position: Watermark

        Returns:
            Number of entries
        """
        query = select(func.count(Activity.id)).where(Activity.owner_id == owner_id)
        if position is not None:
            query = query.where(_after(position))
        result = await db.execute(query)
        return result.scalar_one()

    @staticmethod
    async def get_state(db: AsyncSession, user_id: UUID) -> Optional[NotificationState]:
        """Get notification state without locking"""
        result = await db.execute(
            select(NotificationState).where(NotificationState.user_id == user_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def lock_state(db: AsyncSession, user_id: UUID) -> NotificationState:
        """
        Get the user's notification state locked FOR UPDATE, creating it
        when missing.

        Args:
            db: Database session
            user_id: User UUID

        Returns:
            Locked NotificationState
        """
        query = (
            select(NotificationState)
            .where(NotificationState.user_id == user_id)
            .with_for_update()
        )
        result = await db.execute(query)
        state = result.scalar_one_or_none()
        if state is not None:
            return state

        try:
            async with db.begin_nested():
                state = NotificationState(user_id=user_id)
                db.add(state)
                await db.flush()
        except IntegrityError:
            result = await db.execute(query)
            state = result.scalar_one()
        return state

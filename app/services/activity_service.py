"""Activity feed: per-user immutable entries with cursor pagination"""

import base64
import binascii
import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ValidationError
from app.models.activity import Activity, ActivityKind
from app.repositories.activity_repository import (ActivityRepository,
                                                  FeedPosition)
from app.repositories.group_repository import GroupRepository
from app.repositories.user_repository import UserRepository
from app.schemas.activity import FeedPage, MessageCreate, activity_entry_adapter
from app.schemas.user import UserSummary
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

MESSAGE_SNIPPET_LENGTH = 50


def encode_cursor(position: FeedPosition) -> str:
    """Opaque cursor for a feed position"""
    at, activity_id = position
    raw = json.dumps({"at": at.isoformat(), "id": activity_id})
    return base64.urlsafe_b64encode(raw.encode()).decode()


def decode_cursor(cursor: str) -> FeedPosition:
    """
    Decode a cursor produced by encode_cursor.

    Raises:
        ValidationError: If the cursor is malformed
    """
    try:
        data = json.loads(base64.urlsafe_b64decode(cursor.encode()))
        return datetime.fromisoformat(data["at"]), int(data["id"])
    except (binascii.Error, ValueError, KeyError, TypeError):
        raise ValidationError("Invalid feed cursor")


def message_snippet(content: str) -> str:
    """Shorten message text for a feed entry"""
    if len(content) > MESSAGE_SNIPPET_LENGTH:
        return content[:MESSAGE_SNIPPET_LENGTH - 3] + "..."
    return content


class ActivityService:
    """Service for activity feed operations"""

    @staticmethod
    async def record_activity(
        db: AsyncSession,
        kind: ActivityKind,
        description: str,
        involved_user_ids: Iterable[UUID],
        recipient_ids: Optional[Iterable[UUID]] = None,
        actor_id: Optional[UUID] = None,
        amount: Optional[Decimal] = None,
        currency: Optional[str] = None,
        group_id: Optional[UUID] = None,
        expense_id: Optional[UUID] = None,
        message: Optional[str] = None,
    ) -> List[Activity]:
        """
        Append one immutable entry to each recipient's feed.

        Runs inside the caller's transaction. Each recipient's notification
        state row is locked (in sorted order) while the entry is appended, so
        the entry's position is strictly after anything a concurrent
        mark-read could have copied into the watermark.

        Args:
            db: Database session
            kind: Activity kind
            description: Human readable description
            involved_user_ids: Users listed on every entry
            recipient_ids: Feeds to append to (defaults to involved users)
            actor_id: User who caused the event
            amount: Optional amount
            currency: Optional currency of amount
            group_id: Optional related group
            expense_id: Optional related expense

        Returns:
            Created activities, one per recipient
        """
        involved = list(dict.fromkeys(involved_user_ids))
        recipients = sorted(set(recipient_ids if recipient_ids is not None else involved))

        activities = []
        for owner_id in recipients:
            state = await ActivityRepository.lock_state(db, owner_id)

            # Never place a new entry before the newest existing one
            occurred_at = utcnow()
            if state.last_activity_at is not None and state.last_activity_at > occurred_at:
                occurred_at = state.last_activity_at

            activity = await ActivityRepository.create(
                db,
                Activity(
                    owner_id=owner_id,
                    actor_id=actor_id,
                    kind=kind,
                    description=description,
                    occurred_at=occurred_at,
                    amount=amount,
                    currency=currency,
                    involved_user_ids=[str(user_id) for user_id in involved],
                    group_id=group_id,
                    expense_id=expense_id,
                    message=message,
                ),
            )

            state.last_activity_at = activity.occurred_at
            state.last_activity_id = activity.id
            activities.append(activity)

        await db.flush()
        logger.info(f"Recorded {kind.value} activity for {len(activities)} feeds")
        return activities

    @staticmethod
    async def get_feed(
        db: AsyncSession,
        user_id: UUID,
        cursor: Optional[str] = None,
        limit: int = 20,
    ) -> FeedPage:
        """
        Get one page of a user's feed, newest first.

        Args:
            db: Database session
            user_id: Feed owner
            cursor: Opaque cursor from the previous page (exclusive)
            limit: Page size

        Returns:
            FeedPage with next_cursor, None once the feed is exhausted

        Raises:
            NotFoundError: If user not found
            ValidationError: If cursor or limit is invalid
        """
        if limit < 1:
            raise ValidationError("Feed limit must be positive")
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise NotFoundError(f"User with ID {user_id} not found")

        before = decode_cursor(cursor) if cursor else None

        # One extra row tells whether another page exists
        rows = await ActivityRepository.get_page(db, user_id, limit + 1, before)
        has_more = len(rows) > limit
        rows = rows[:limit]

        involved_ids = {UUID(raw) for row in rows for raw in row.involved_user_ids}
        users = await UserRepository.get_many(db, involved_ids)

        items = [ActivityService._to_entry(row, users) for row in rows]
        next_cursor = encode_cursor((rows[-1].occurred_at, rows[-1].id)) if has_more else None

        return FeedPage(items=items, next_cursor=next_cursor)

    @staticmethod
    def _to_entry(activity: Activity, users: dict):
        involved = []
        for raw in activity.involved_user_ids:
            user = users.get(UUID(raw))
            if user:
                involved.append(UserSummary.model_validate(user))

        return activity_entry_adapter.validate_python(
            {
                "type": activity.kind.value,
                "id": activity.id,
                "description": activity.description,
                "date": activity.occurred_at,
                "actor_id": activity.actor_id,
                "involved_users": involved,
                "amount": activity.amount,
                "currency": activity.currency,
                "group_id": activity.group_id,
                "expense_id": activity.expense_id,
                "message": activity.message,
            }
        )

    @staticmethod
    async def record_message(db: AsyncSession, data: MessageCreate) -> List[Activity]:
        """
        Record a chat message event.

        Group messages reach every current member except the sender; direct
        messages reach the listed recipients.

        Raises:
            NotFoundError: If sender, group or a recipient not found
            ValidationError: If there is nobody to notify
        """
        sender = await UserRepository.get_by_id(db, data.sender_id)
        if not sender:
            raise NotFoundError(f"User with ID {data.sender_id} not found")

        if data.group_id:
            group = await GroupRepository.get_by_id(db, data.group_id)
            if not group:
                raise NotFoundError(f"Group with ID {data.group_id} not found")
            recipients = [user.id for user in group.active_members if user.id != sender.id]
            description = f"{sender.name} sent a message in {group.name}"
        else:
            found = await UserRepository.get_many(db, data.recipient_ids)
            missing = [str(uid) for uid in data.recipient_ids if uid not in found]
            if missing:
                raise NotFoundError(f"Users not found: {', '.join(missing)}")
            recipients = [uid for uid in data.recipient_ids if uid != sender.id]
            description = f"{sender.name} sent you a message"

        if not recipients:
            raise ValidationError("Message has no recipients")

        return await ActivityService.record_activity(
            db,
            ActivityKind.MESSAGE,
            description,
            involved_user_ids=[sender.id, *recipients],
            recipient_ids=recipients,
            actor_id=sender.id,
            group_id=data.group_id,
            message=message_snippet(data.content),
        )

"""Group directory business logic"""
import logging
from typing import List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.activity import ActivityKind
from app.models.group import Group, GroupMembership
from app.repositories.group_repository import GroupRepository
from app.repositories.user_repository import UserRepository
from app.schemas.group import GroupCreate
from app.services.activity_service import ActivityService
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class GroupService:
    """Service for group and membership operations"""

    @staticmethod
    async def _get_group(db: AsyncSession, group_id: UUID, for_update: bool = False) -> Group:
        group = await GroupRepository.get_by_id(db, group_id, for_update=for_update)
        if not group:
            raise NotFoundError(f"Group with ID {group_id} not found")
        return group

    @staticmethod
    async def create_group(db: AsyncSession, group_data: GroupCreate) -> Group:
        """
        Create a group; the creator becomes its first member.

        Args:
            db: Database session
            group_data: Group creation data

        Returns:
            Created group with members loaded

        Raises:
            NotFoundError: If the creator or a member does not exist
        """
        member_ids: List[UUID] = list(dict.fromkeys([group_data.created_by, *group_data.member_ids]))
        users = await UserRepository.get_many(db, member_ids)
        missing = [str(user_id) for user_id in member_ids if user_id not in users]
        if missing:
            raise NotFoundError(f"Users not found: {', '.join(missing)}")

        group = Group(
            name=group_data.name,
            description=group_data.description,
            created_by_user_id=group_data.created_by,
            memberships=[GroupMembership(user_id=user_id) for user_id in member_ids],
        )
        group = await GroupRepository.create(db, group)

        creator = users[group_data.created_by]
        await ActivityService.record_activity(
            db,
            ActivityKind.GROUP,
            f"{creator.name} created the group {group.name}",
            involved_user_ids=member_ids,
            actor_id=creator.id,
            group_id=group.id,
        )

        logger.info(f"Created group {group.id} with {len(member_ids)} members")
        return await GroupService._get_group(db, group.id)

    @staticmethod
    async def get_group(db: AsyncSession, group_id: UUID) -> Group:
        """
        Get group by ID.

        Raises:
            NotFoundError: If group not found
        """
        return await GroupService._get_group(db, group_id)

    @staticmethod
    async def list_user_groups(db: AsyncSession, user_id: UUID) -> List[Group]:
        """
        Get the groups a user currently belongs to.

        Raises:
            NotFoundError: If user not found
        """
        if not await UserRepository.get_by_id(db, user_id):
            raise NotFoundError(f"User with ID {user_id} not found")
        return await GroupRepository.list_for_user(db, user_id)

    @staticmethod
    async def add_member(
        db: AsyncSession, group_id: UUID, user_id: UUID, actor_id: UUID
    ) -> Group:
        """
        Add a user to a group.

        A former member gets a new membership interval; the closed one is
        kept as history.

        Raises:
            NotFoundError: If group or user not found
            ValidationError: If the actor is not a current member
            ConflictError: If the user is already a current member
        """
        group = await GroupService._get_group(db, group_id, for_update=True)
        users = await UserRepository.get_many(db, [user_id, actor_id])
        if user_id not in users:
            raise NotFoundError(f"User with ID {user_id} not found")

        if await GroupRepository.get_active_membership(db, group_id, actor_id) is None:
            raise ValidationError("Only current members can add members to a group")

        if await GroupRepository.get_active_membership(db, group_id, user_id) is not None:
            raise ConflictError(f"User {user_id} is already a member of this group")

        await GroupRepository.add_membership(
            db, GroupMembership(group_id=group_id, user_id=user_id, joined_at=utcnow())
        )

        group = await GroupService._get_group(db, group_id)
        await ActivityService.record_activity(
            db,
            ActivityKind.GROUP,
            f"{users[actor_id].name} added {users[user_id].name} to the group {group.name}",
            involved_user_ids=[user.id for user in group.active_members],
            actor_id=actor_id,
            group_id=group_id,
        )

        logger.info(f"Added user {user_id} to group {group_id}")
        return group

    @staticmethod
    async def remove_member(
        db: AsyncSession, group_id: UUID, user_id: UUID, actor_id: UUID
    ) -> Group:
        """
        Remove a user from a group.

        The membership interval is closed rather than deleted, so expenses
        dated while the user was a member stay valid.

        Raises:
            NotFoundError: If group not found or the user is not a current member
            ValidationError: If the actor is not a current member
        """
        group = await GroupService._get_group(db, group_id, for_update=True)

        if await GroupRepository.get_active_membership(db, group_id, actor_id) is None:
            raise ValidationError("Only current members can remove members from a group")

        membership = await GroupRepository.get_active_membership(db, group_id, user_id)
        if membership is None:
            raise NotFoundError(f"User {user_id} is not a member of this group")

        involved = [user.id for user in group.active_members]
        membership.left_at = utcnow()
        await db.flush()

        users = await UserRepository.get_many(db, [user_id, actor_id])
        if user_id == actor_id:
            description = f"{users[user_id].name} left the group {group.name}"
        else:
            description = f"{users[actor_id].name} removed {users[user_id].name} from the group {group.name}"

        await ActivityService.record_activity(
            db,
            ActivityKind.GROUP,
            description,
            involved_user_ids=involved,
            actor_id=actor_id,
            group_id=group_id,
        )

        logger.info(f"Removed user {user_id} from group {group_id}")
        return await GroupService._get_group(db, group_id)

"""Group data access"""
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.group import Group, GroupMembership


class GroupRepository:
    """Repository for Group and GroupMembership database operations"""

    @staticmethod
    async def create(db: AsyncSession, group: Group) -> Group:
        """Create a new group (memberships attached to it are flushed too)"""
        db.add(group)
        await db.flush()
        return group

    @staticmethod
    async def get_by_id(
        db: AsyncSession, group_id: UUID, for_update: bool = False
    ) -> Optional[Group]:
        """
        Get group by ID with memberships loaded.

        Args:
            db: Database session
            group_id: Group UUID
            for_update: Lock the group row until the transaction ends

        Returns:
            Group if found, None otherwise
        """
        # Reload memberships so rows added in this session have their user loaded
        query = (
            select(Group)
            .where(Group.id == group_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_active_membership(
        db: AsyncSession, group_id: UUID, user_id: UUID
    ) -> Optional[GroupMembership]:
        """
        Get the open membership interval of a user.

        Returns:
            GroupMembership if the user is a current member, None otherwise
        """
        result = await db.execute(
            select(GroupMembership).where(
                and_(
                    GroupMembership.group_id == group_id,
                    GroupMembership.user_id == user_id,
                    GroupMembership.left_at.is_(None),
                )
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_memberships(
        db: AsyncSession, group_id: UUID, user_ids: List[UUID]
    ) -> List[GroupMembership]:
        """Every membership interval, current or closed, of the given users"""
        result = await db.execute(
            select(GroupMembership)
            .where(
                and_(
                    GroupMembership.group_id == group_id,
                    GroupMembership.user_id.in_(user_ids),
                )
            )
            .order_by(GroupMembership.joined_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: UUID) -> List[Group]:
        """Groups the user currently belongs to, oldest membership first"""
        result = await db.execute(
            select(Group)
            .join(GroupMembership, GroupMembership.group_id == Group.id)
            .where(
                and_(
                    GroupMembership.user_id == user_id,
                    GroupMembership.left_at.is_(None),
                )
            )
            .order_by(GroupMembership.joined_at, Group.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def add_membership(
        db: AsyncSession, membership: GroupMembership
    ) -> GroupMembership:
        """Insert a membership row"""
        db.add(membership)
        await db.flush()
        return membership

    @staticmethod
    async def get_names(db: AsyncSession, group_ids: Iterable[UUID]) -> Dict[UUID, str]:
        """Map group ids to names; unknown ids are left out"""
        ids = list(set(group_ids))
        if not ids:
            return {}
        result = await db.execute(select(Group.id, Group.name).where(Group.id.in_(ids)))
        return {group_id: name for group_id, name in result.all()}

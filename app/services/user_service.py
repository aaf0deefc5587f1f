"""User business logic"""
import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError
from app.models.user import User
from app.repositories.activity_repository import ActivityRepository
from app.repositories.user_repository import UserRepository
from app.schemas.user import UserCreate

logger = logging.getLogger(__name__)


class UserService:
    """Service for user operations"""

    @staticmethod
    async def create_user(db: AsyncSession, user_data: UserCreate) -> User:
        """
        Create a user together with their notification state.

        Args:
            db: Database session
            user_data: User creation data

        Returns:
            Created user

        Raises:
            ConflictError: If email already exists
        """
        existing = await UserRepository.get_by_email(db, user_data.email)
        if existing:
            raise ConflictError(f"Email '{user_data.email}' is already registered")

        user = await UserRepository.create(
            db,
            User(
                name=user_data.name,
                email=user_data.email,
                image=user_data.image,
                timezone=user_data.timezone,
            ),
        )
        await ActivityRepository.lock_state(db, user.id)

        logger.info(f"Created user {user.id}")
        return user

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: UUID) -> User:
        """
        Get user by ID.

        Args:
            db: Database session
            user_id: User UUID

        Returns:
            User object

        Raises:
            NotFoundError: If user not found
        """
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise NotFoundError(f"User with ID {user_id} not found")
        return user

"""
CRUD operations for User model.
"""

import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from binary_ledger.models.user import User
from binary_ledger.core.exceptions import ValidationError


class UserCRUD:
    """
    Database operations for User model.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        username: str,
        email: str,
        user_id: uuid.UUID | None = None
    ) -> User:
        """
        Registers a user mirrored from the identity provider.

        Args:
            db: Database session
            username: Unique username
            email: User email address
            user_id: Provider subject id; generated when omitted

        Raises:
            ValidationError: If username or email already exists
        """
        existing = await db.execute(
            select(User).where((User.username == username) | (User.email == email))
        )
        if existing.scalar_one_or_none():
            raise ValidationError("Username or email already registered")

        user = User(id=user_id or uuid.uuid4(), username=username, email=email)
        db.add(user)
        await db.flush()
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_username(db: AsyncSession, username: str) -> User | None:
        result = await db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

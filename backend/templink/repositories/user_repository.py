"""Repository for User lookups and activation state.

Provides database access for the users table.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from templink.models.user import User


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static, no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: int) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: Integer primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_login_key(db: AsyncSession, login_key: str) -> User | None:
        """Fetch a user by login key (case-insensitive).

        Args:
            db: Async database session.
            login_key: Email address used to sign in.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.login_key == login_key.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        login_key: str,
        name: str | None = None,
        user_active: bool = False,
        last_login: datetime | None = None,
    ) -> User:
        """Create a new user.

        Login key is normalized to lowercase before storage.

        Args:
            db: Async database session.
            login_key: Email address used to sign in.
            name: Display name.
            user_active: Initial activation state.
            last_login: Most recent sign-in, if any.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If the login key already exists.
        """
        user = User(
            login_key=login_key.strip().lower(),
            name=name,
            user_active=user_active,
            last_login=last_login,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def activate(db: AsyncSession, user_id: int) -> User | None:
        """Mark a user account as active.

        Args:
            db: Async database session.
            user_id: Integer primary key.

        Returns:
            Updated User if found, None if user does not exist.
        """
        user = await db.get(User, user_id)
        if user is None:
            return None
        user.user_active = True
        await db.flush()
        return user

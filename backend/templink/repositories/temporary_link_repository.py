"""Repository for TemporaryLink CRUD operations.

Links are keyed by the subject user's id, looked up by url when redeemed,
and deleted on redemption or once expired.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from templink.models.temporary_link import TemporaryLink


class TemporaryLinkRepository:
    """Stateless repository for TemporaryLink table operations.

    All methods are static, no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: int,
        url: str,
        purpose: str,
        expiration_time: datetime,
        email_info: dict[str, Any],
    ) -> TemporaryLink:
        """Store a new temporary link.

        Args:
            db: Async database session.
            user_id: Subject user id (primary key of the link).
            url: Opaque link path embedded in the email.
            purpose: ``"activate"`` or ``"reset"``.
            expiration_time: Absolute expiry timestamp.
            email_info: Snapshot of the composed message.

        Returns:
            Created TemporaryLink.

        Raises:
            sqlalchemy.exc.IntegrityError: If the user already holds a link
                or the url is already in use.
        """
        link = TemporaryLink(
            id=user_id,
            url=url,
            purpose=purpose,
            expiration_time=expiration_time,
            email_info=email_info,
        )
        db.add(link)
        await db.flush()
        await db.refresh(link)
        return link

    @staticmethod
    async def get_by_user_id(db: AsyncSession, user_id: int) -> TemporaryLink | None:
        """Fetch the outstanding link for a user.

        Args:
            db: Async database session.
            user_id: Subject user id.

        Returns:
            TemporaryLink if the user holds one, None otherwise.
        """
        return await db.get(TemporaryLink, user_id)

    @staticmethod
    async def get_by_url(db: AsyncSession, url: str) -> TemporaryLink | None:
        """Look up a link by the url embedded in the email.

        Args:
            db: Async database session.
            url: Link path.

        Returns:
            TemporaryLink if found, None otherwise.
        """
        stmt = select(TemporaryLink).where(TemporaryLink.url == url)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def delete(
        db: AsyncSession, user_id: int, *, url: str | None = None
    ) -> bool:
        """Delete a user's link (single-use cleanup).

        Args:
            db: Async database session.
            user_id: Subject user id.
            url: If given, only delete the link carrying this url.

        Returns:
            True if a row was deleted, False if it was already gone.
        """
        stmt = delete(TemporaryLink).where(TemporaryLink.id == user_id)
        if url is not None:
            stmt = stmt.where(TemporaryLink.url == url)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count > 0

    @staticmethod
    async def delete_expired(db: AsyncSession, now: datetime) -> int:
        """Delete all links whose expiry has passed (periodic cleanup).

        Args:
            db: Async database session.
            now: Current timestamp.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(TemporaryLink).where(TemporaryLink.expiration_time <= now)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

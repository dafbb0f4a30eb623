"""Redeem temporary links.

A link is valid while the current time is before its expiration_time and
it has not been redeemed. Redemption deletes the row, so each link works
once. Activation links also mark the account active.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from templink.core.errors import ValidationError
from templink.repositories.temporary_link_repository import TemporaryLinkRepository
from templink.repositories.user_repository import UserRepository
from templink.services.temporary_link_issuer import ACTIVATE_TEMPLATE

logger = logging.getLogger(__name__)

INVALID_LINK_MSG = "Invalid or expired link"


@dataclass(frozen=True)
class RedeemedLink:
    """A link that was just consumed.

    Attributes:
        user_id: Subject user id.
        purpose: ``"activate"`` or ``"reset"``.
    """

    user_id: int
    purpose: str


async def redeem_temporary_link(
    db: AsyncSession, url: str, *, now: datetime | None = None
) -> RedeemedLink:
    """Consume a link by its url.

    Unknown links are rejected. Expired links are deleted (committed) and
    rejected. On success the caller commits.

    Args:
        db: Async database session.
        url: Link path from the email.
        now: Current time. Defaults to datetime.now(UTC).

    Returns:
        RedeemedLink describing what was consumed.

    Raises:
        ValidationError: If the link is unknown or expired.
    """
    now = now or datetime.now(UTC)

    link = await TemporaryLinkRepository.get_by_url(db, url)
    if link is None:
        raise ValidationError(INVALID_LINK_MSG)

    user_id = link.id
    purpose = link.purpose

    if link.is_expired(now):
        # Commit before raising so the cleanup survives the request rollback
        await TemporaryLinkRepository.delete(db, user_id)
        await db.commit()
        logger.info("Discarded expired %s link for user %s", purpose, user_id)
        raise ValidationError(INVALID_LINK_MSG)

    # A concurrent redemption may have consumed the row since it was read
    if not await TemporaryLinkRepository.delete(db, user_id, url=url):
        raise ValidationError(INVALID_LINK_MSG)

    if purpose == ACTIVATE_TEMPLATE:
        await UserRepository.activate(db, user_id)

    return RedeemedLink(user_id=user_id, purpose=purpose)

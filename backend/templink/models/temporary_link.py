"""Temporary link model - time-bounded, single-use action links.

The primary key is the subject user's id, so a user can hold at most one
outstanding link at a time. Issuing a second link while the first is still
stored fails on the primary key.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from templink.models.base import Base

if TYPE_CHECKING:
    from templink.models.user import User


class TemporaryLink(Base):
    """One issued action link and the email that carried it.

    Attributes:
        id: Subject user id (also the primary key).
        url: Opaque link path embedded in the email. Unique.
        purpose: ``"activate"`` or ``"reset"``.
        expiration_time: Absolute expiry. The link is redeemable only
            while the current time is before this instant.
        email_info: Snapshot of the composed message (from, to, cc, bcc,
            subject, html, text).
        created_at: Issuance timestamp.
    """

    __tablename__ = "temporary_links"
    __table_args__ = (
        CheckConstraint(
            "purpose IN ('activate', 'reset')",
            name="ck_temporary_links_purpose",
        ),
        Index("ix_temporary_links_expiration_time", "expiration_time"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    url: Mapped[str] = mapped_column(
        String(2048),
        unique=True,
        nullable=False,
    )
    purpose: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    expiration_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    email_info: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="temporary_link",
    )

    def is_expired(self, now: datetime) -> bool:
        """Check whether the link has passed its expiry.

        Args:
            now: Current timestamp (timezone-aware).

        Returns:
            True once now is at or after expiration_time.
        """
        return now >= self.expiration_time

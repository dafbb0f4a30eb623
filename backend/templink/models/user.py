"""User model - accounts that receive activation and reset links."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Identity, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from templink.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from templink.models.temporary_link import TemporaryLink


class User(Base, TimestampMixin):
    """User account.

    Attributes:
        id: Integer primary key.
        login_key: Unique login name (the user's email address, lowercase).
        name: Display name used in email greetings.
        user_active: Whether the account has been activated.
        last_login: Timestamp of the most recent sign-in. NULL = never.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(
        Integer,
        Identity(always=False),
        primary_key=True,
    )
    login_key: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    user_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    last_login: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    temporary_link: Mapped["TemporaryLink | None"] = relationship(
        "TemporaryLink",
        back_populates="user",
        cascade="all, delete-orphan",
        uselist=False,
    )

    @property
    def can_receive_reset_link(self) -> bool:
        """Whether a password reset may be issued for this account.

        An account qualifies once it has been activated or has signed in
        at least once.
        """
        return self.user_active or self.last_login is not None

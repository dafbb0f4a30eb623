"""SQLAlchemy ORM models.

All models are exported from this module for convenient imports:
    from templink.models import User, TemporaryLink

Models:
- user.py: User
- temporary_link.py: TemporaryLink (PK shared with users.id)
"""

from templink.models.base import Base, TimestampMixin
from templink.models.temporary_link import TemporaryLink
from templink.models.user import User

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Tables
    "User",
    "TemporaryLink",
]

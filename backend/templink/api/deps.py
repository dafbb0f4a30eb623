"""Shared dependencies for API endpoints.

- DbSession: one database session per request
- LinkIssuer: the process-wide TemporaryLinkIssuer (overridable via
  app.dependency_overrides)
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from templink.core.database import get_db
from templink.services.temporary_link_issuer import (
    TemporaryLinkIssuer,
    get_link_issuer,
)

DbSession = Annotated[AsyncSession, Depends(get_db)]
LinkIssuer = Annotated[TemporaryLinkIssuer, Depends(get_link_issuer)]

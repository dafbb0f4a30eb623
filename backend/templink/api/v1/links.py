"""Temporary link endpoints.

Endpoints:
- POST /links/activation: (re)send an account activation email
- POST /links/password-reset: send a password reset email
- POST /links/{token}/redeem: consume a link from an email
"""

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, Path, Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from templink.api.deps import DbSession, LinkIssuer
from templink.core.config import settings
from templink.core.errors import (
    APIError,
    ConflictError,
    InternalError,
    InvalidStateError,
    NotFoundError,
)
from templink.core.rate_limiting import limiter
from templink.core.responses import DataResponse
from templink.repositories.user_repository import UserRepository
from templink.schemas.temporary_link import ActivationLinkRequest, ResetLinkRequest
from templink.services.link_redemption import redeem_temporary_link
from templink.services.temporary_link_issuer import IssueFailure, IssueResult

logger = logging.getLogger(__name__)

router = APIRouter()

LINKS_PATH = "/api/v1/links"


# ===================================================================
# Request models
# ===================================================================


class ActivationEmailRequest(BaseModel):
    """Request body for POST /links/activation."""

    model_config = ConfigDict(extra="forbid")

    user_id: int = Field(gt=0)


class PasswordResetRequest(BaseModel):
    """Request body for POST /links/password-reset."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


# ===================================================================
# Helpers
# ===================================================================


def link_path(token: str) -> str:
    """Path stored as the link url and embedded in the email."""
    return f"{LINKS_PATH}/{token}/redeem"


def _generate_link_path() -> str:
    return link_path(secrets.token_urlsafe(32))


def _raise_for_failure(result: IssueResult) -> None:
    """Map a failed issuance onto an API error."""
    if result.success:
        return
    if result.reason is IssueFailure.ACCOUNT_NOT_FOUND:
        raise APIError(
            code="NOT_FOUND",
            message=result.message or "Account not found",
            status_code=404,
        )
    if result.reason is IssueFailure.ACCOUNT_NOT_ACTIVATED:
        raise InvalidStateError(result.message or "Account is not active")
    if result.reason is IssueFailure.PERSISTENCE_FAILED:
        # Store error text stays in the logs
        raise ConflictError(
            code="LINK_NOT_SAVED",
            message="A link could not be issued; one may already be outstanding",
        )
    raise InternalError("Email could not be composed")


def _issued(result: IssueResult) -> dict:
    if result.link is None:
        raise InternalError("Issued link is missing")
    return {
        "message": "Email sent",
        "expires_at": result.link.expiration_time.isoformat(),
    }


# ===================================================================
# POST /links/activation
# ===================================================================


@router.post("/activation", status_code=202)
@limiter.limit(lambda: settings.rate_limit_link_requests)
async def request_activation_email(
    request: Request,  # noqa: ARG001
    body: ActivationEmailRequest,
    db: DbSession,
    issuer: LinkIssuer,
) -> DataResponse[dict]:
    """Send an activation email to a registered, inactive user.

    Rate limit: per IP, RATE_LIMIT_LINK_REQUESTS.
    """
    user = await UserRepository.get_by_id(db, body.user_id)
    if user is None:
        raise NotFoundError("User", str(body.user_id))
    if user.user_active:
        raise InvalidStateError("Account is already active")

    result = await issuer.issue_activation_link(
        db,
        ActivationLinkRequest(
            recipient_address=user.login_key,
            user_name=user.name or user.login_key,
            user_id=user.id,
            url=_generate_link_path(),
        ),
    )
    _raise_for_failure(result)
    return DataResponse(data=_issued(result))


# ===================================================================
# POST /links/password-reset
# ===================================================================


@router.post("/password-reset", status_code=202)
@limiter.limit(lambda: settings.rate_limit_link_requests)
async def request_password_reset(
    request: Request,  # noqa: ARG001
    body: PasswordResetRequest,
    db: DbSession,
    issuer: LinkIssuer,
) -> DataResponse[dict]:
    """Send a password reset email.

    Rate limit: per IP, RATE_LIMIT_LINK_REQUESTS.
    """
    result = await issuer.issue_reset_link(
        db,
        ResetLinkRequest(recipient_address=body.email, url=_generate_link_path()),
    )
    _raise_for_failure(result)
    return DataResponse(data=_issued(result))


# ===================================================================
# POST /links/{token}/redeem
# ===================================================================


@router.post("/{token}/redeem")
async def redeem_link(
    token: Annotated[str, Path(min_length=1, max_length=256)],
    db: DbSession,
) -> DataResponse[dict]:
    """Consume a link. Activation links also activate the account."""
    redeemed = await redeem_temporary_link(db, link_path(token))
    await db.commit()
    logger.info("Redeemed %s link for user %s", redeemed.purpose, redeemed.user_id)
    return DataResponse(
        data={"user_id": redeemed.user_id, "purpose": redeemed.purpose}
    )

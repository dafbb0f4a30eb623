"""Pydantic schemas shared by services and API endpoints."""

from templink.schemas.temporary_link import (
    ActivationLinkRequest,
    EmailInfo,
    ResetLinkRequest,
)

__all__ = [
    "ActivationLinkRequest",
    "EmailInfo",
    "ResetLinkRequest",
]

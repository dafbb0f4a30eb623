"""Temporary link email schemas.

Inputs accepted by the link issuer and the message snapshot stored with
every issued link.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class EmailInfo(BaseModel):
    """Composed message, as persisted in ``temporary_links.email_info``.

    Serialized with ``model_dump(by_alias=True)`` so the sender lands under
    the ``"from"`` key. Absent cc/bcc are stored as null.

    Attributes:
        from_address: Sender address.
        to: Recipient address.
        cc: Carbon-copy recipients, if any.
        bcc: Blind carbon-copy recipients, if any.
        subject: Subject line.
        html: Rendered HTML body.
        text: Plain-text fallback body.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    from_address: str = Field(alias="from")
    to: str
    cc: str | None = None
    bcc: str | None = None
    subject: str
    html: str
    text: str | None = None


class ActivationLinkRequest(BaseModel):
    """Issue an account activation link.

    Attributes:
        recipient_address: Where to send the email.
        user_name: Display name used in the subject and greeting.
        user_id: Subject user id.
        url: Pre-generated link path.
    """

    model_config = ConfigDict(extra="forbid")

    recipient_address: EmailStr
    user_name: str = Field(min_length=1, max_length=255)
    user_id: int
    url: str = Field(min_length=1, max_length=2048)


class ResetLinkRequest(BaseModel):
    """Issue a password reset link.

    The subject user is resolved from the recipient address.

    Attributes:
        recipient_address: Login key of the account to reset.
        url: Pre-generated link path.
    """

    model_config = ConfigDict(extra="forbid")

    recipient_address: EmailStr
    url: str = Field(min_length=1, max_length=2048)

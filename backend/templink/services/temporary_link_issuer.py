"""Temporary link issuer - activation and password reset emails.

Composes the email, stores the link with its validity window, then hands
the message to the mail transport without waiting for delivery.

Per invocation:
    render -> (error | empty | rendered) -> persist -> (failed | persisted)
    -> dispatch (detached) -> done

No step is retried; every failure ends the invocation. The send is only
attempted after the link row has been committed.

Delivery is best-effort and at-most-once. The send runs as a detached
asyncio task: its outcome is logged and never reaches the caller, so a
caller may see success before (or regardless of) actual delivery.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from templink.core.config import settings
from templink.models.temporary_link import TemporaryLink
from templink.repositories.temporary_link_repository import TemporaryLinkRepository
from templink.repositories.user_repository import UserRepository
from templink.schemas.temporary_link import (
    ActivationLinkRequest,
    EmailInfo,
    ResetLinkRequest,
)
from templink.services.mail_transport import MailTransport, get_mail_transport
from templink.services.template_renderer import (
    JinjaTemplateRenderer,
    TemplateRenderer,
)

logger = logging.getLogger(__name__)

ACTIVATE_TEMPLATE = "activate"
RESET_TEMPLATE = "reset"

NOT_ACTIVATED_MESSAGE = "You must activate your account first."


class IssueFailure(str, Enum):
    """Why an issuance did not produce a link."""

    EMPTY_RENDER = "empty_render"
    ACCOUNT_NOT_FOUND = "account_not_found"
    ACCOUNT_NOT_ACTIVATED = "account_not_activated"
    PERSISTENCE_FAILED = "persistence_failed"


@dataclass(frozen=True)
class IssueResult:
    """Outcome of one issuance.

    Attributes:
        success: True when a link was stored and dispatch was started.
        link: The stored link (success only).
        reason: Failure category (failure only).
        message: Human-readable detail. None for an empty render.
    """

    success: bool
    link: TemporaryLink | None = None
    reason: IssueFailure | None = None
    message: str | None = None


@dataclass(frozen=True)
class RenderSpec:
    """Template inputs. Every field is passed to the template as context.

    Attributes:
        template: Template key (``"activate"`` or ``"reset"``), also used as
            the link purpose.
        timespan: Link validity in hours.
        page_title: Title shown in the email.
        url: Link path embedded in the email.
        user_id: Subject user id.
        user_name: Display name, if known.
        site_name: Site name for greetings.
        base_url: Prefix that makes ``url`` absolute.
        layout: Whether a surrounding page layout is applied.
    """

    template: str
    timespan: int
    page_title: str
    url: str
    user_id: int
    user_name: str | None = None
    site_name: str = ""
    base_url: str = ""
    layout: bool = False

    def context(self) -> dict[str, Any]:
        """Template context built from all fields."""
        return asdict(self)


@dataclass(frozen=True)
class EmailSpec:
    """Envelope fields supplied by the caller.

    Attributes:
        to: Recipient address.
        subject: Subject line.
        text: Plain-text fallback body.
        from_address: Sender. Defaults to the administrative address.
        cc: Carbon-copy recipient.
        bcc: Blind carbon-copy recipient.
    """

    to: str
    subject: str
    text: str | None = None
    from_address: str | None = None
    cc: str | None = None
    bcc: str | None = None


def _utc_now() -> datetime:
    return datetime.now(UTC)


class TemporaryLinkIssuer:
    """Compose, persist, and dispatch temporary-link emails.

    All collaborators are injected so tests can substitute doubles. The
    database session is passed per call; the issuer commits the new link
    before dispatching.

    Args:
        renderer: Email body renderer.
        transport: Mail transport used for detached delivery.
        users: User lookup (defaults to UserRepository).
        links: Link store (defaults to TemporaryLinkRepository).
        clock: Returns the current timezone-aware time.
        admin_address: Sender used when none is given.
        site_name: Site name used in subjects and templates.
        base_url: Prefix that makes link paths absolute.
        activation_ttl_hours: Validity of activation links.
        reset_ttl_hours: Validity of password reset links.
    """

    def __init__(
        self,
        *,
        renderer: TemplateRenderer,
        transport: MailTransport,
        users: Any = UserRepository,
        links: Any = TemporaryLinkRepository,
        clock: Callable[[], datetime] = _utc_now,
        admin_address: str = settings.admin_email_address,
        site_name: str = settings.site_name,
        base_url: str = settings.backend_url,
        activation_ttl_hours: int = settings.activation_link_ttl_hours,
        reset_ttl_hours: int = settings.reset_link_ttl_hours,
    ) -> None:
        self._renderer = renderer
        self._transport = transport
        self._users = users
        self._links = links
        self._clock = clock
        self._admin_address = admin_address
        self._site_name = site_name
        self._base_url = base_url.rstrip("/")
        self._activation_ttl_hours = activation_ttl_hours
        self._reset_ttl_hours = reset_ttl_hours
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending_dispatches(self) -> int:
        """Number of sends still in flight."""
        return len(self._pending)

    async def issue_activation_link(
        self, db: AsyncSession, info: ActivationLinkRequest
    ) -> IssueResult:
        """Send an account activation email.

        Args:
            db: Async database session.
            info: Recipient, display name, subject user id, and link path.

        Returns:
            IssueResult with the stored link on success.

        Raises:
            TemplateRenderError: If the template fails to render.
        """
        render_spec = RenderSpec(
            template=ACTIVATE_TEMPLATE,
            timespan=self._activation_ttl_hours,
            page_title=f"Please confirm your account, {info.user_name}",
            url=info.url,
            user_id=info.user_id,
            user_name=info.user_name,
            site_name=self._site_name,
            base_url=self._base_url,
        )
        email_spec = EmailSpec(
            to=info.recipient_address,
            subject=f"Welcome to {self._site_name} {info.user_name}!",
            text=(
                f"Welcome to {self._site_name}, {info.user_name}!\n\n"
                "Open this link to activate your account:\n\n"
                f"{self._base_url}{info.url}\n\n"
                f"This link expires in {self._activation_ttl_hours} hours."
            ),
        )
        return await self.compose(db, render_spec, email_spec)

    async def issue_reset_link(
        self, db: AsyncSession, info: ResetLinkRequest
    ) -> IssueResult:
        """Send a password reset email to an existing, activated account.

        The link belongs to the user found by recipient address. Nothing is
        rendered, stored, or sent when the account is unknown or has never
        been activated nor signed in.

        Args:
            db: Async database session.
            info: Recipient address (login key) and link path.

        Returns:
            IssueResult with the stored link on success.

        Raises:
            TemplateRenderError: If the template fails to render.
        """
        user = await self._users.get_by_login_key(db, info.recipient_address)
        if user is None:
            return IssueResult(
                success=False,
                reason=IssueFailure.ACCOUNT_NOT_FOUND,
                message=(
                    "Invalid login: could not find username "
                    f"'{info.recipient_address}'."
                ),
            )

        if not user.can_receive_reset_link:
            return IssueResult(
                success=False,
                reason=IssueFailure.ACCOUNT_NOT_ACTIVATED,
                message=NOT_ACTIVATED_MESSAGE,
            )

        render_spec = RenderSpec(
            template=RESET_TEMPLATE,
            timespan=self._reset_ttl_hours,
            page_title="How to Reset Your Password",
            url=info.url,
            user_id=user.id,
            user_name=user.name,
            site_name=self._site_name,
            base_url=self._base_url,
        )
        email_spec = EmailSpec(
            to=info.recipient_address,
            subject=f"{self._site_name} -- Reset your Password",
            text=(
                "Open this link to reset your password:\n\n"
                f"{self._base_url}{info.url}\n\n"
                f"This link expires in {self._reset_ttl_hours} hours. "
                "If you didn't request this, you can safely ignore this email."
            ),
        )
        return await self.compose(db, render_spec, email_spec)

    async def compose(
        self, db: AsyncSession, render_spec: RenderSpec, email_spec: EmailSpec
    ) -> IssueResult:
        """Render, persist, and dispatch one link email.

        Args:
            db: Async database session.
            render_spec: Template inputs.
            email_spec: Envelope fields.

        Returns:
            IssueResult. EMPTY_RENDER and PERSISTENCE_FAILED are reported
            here; no link is stored and no email is sent in either case.

        Raises:
            TemplateRenderError: If the template fails to render.
        """
        html = await self._renderer.render(
            f"emails/{render_spec.template}_email", render_spec.context()
        )
        if not html or not html.strip():
            logger.warning(
                "Template %r rendered no content; link not issued",
                render_spec.template,
            )
            return IssueResult(success=False, reason=IssueFailure.EMPTY_RENDER)

        email = EmailInfo(
            from_address=email_spec.from_address or self._admin_address,
            to=email_spec.to,
            cc=email_spec.cc,
            bcc=email_spec.bcc,
            subject=email_spec.subject,
            html=html,
            text=email_spec.text,
        )
        expiration_time = self._clock() + timedelta(hours=render_spec.timespan)

        try:
            link = await self._links.create(
                db,
                user_id=render_spec.user_id,
                url=render_spec.url,
                purpose=render_spec.template,
                expiration_time=expiration_time,
                email_info=email.model_dump(by_alias=True),
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.warning(
                "Could not save %s link for user %s: %s",
                render_spec.template,
                render_spec.user_id,
                exc,
            )
            return IssueResult(
                success=False,
                reason=IssueFailure.PERSISTENCE_FAILED,
                message=str(exc),
            )

        self._dispatch(email)
        return IssueResult(success=True, link=link)

    def _dispatch(self, email: EmailInfo) -> None:
        """Start delivery without waiting for it."""
        task = asyncio.create_task(self._deliver(email))
        # Strong reference until done; the event loop keeps only weak ones
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, email: EmailInfo) -> None:
        try:
            info = await self._transport.send(email)
        except Exception:
            logger.warning("Failed to send email to %s", email.to, exc_info=True)
            return
        logger.info("Email sent to %s: %s", email.to, info.response)

    async def wait_for_dispatches(self) -> None:
        """Wait until every detached send has finished.

        Used on shutdown and in tests. Delivery failures are already logged
        and are not raised here.
        """
        if self._pending:
            await asyncio.gather(*list(self._pending))


_link_issuer: TemporaryLinkIssuer | None = None


async def get_link_issuer() -> TemporaryLinkIssuer:
    """Get or create the process-wide issuer.

    Runs on the event loop (not the threadpool), so the check-then-set
    below is never interleaved.

    Returns:
        TemporaryLinkIssuer wired to the Jinja renderer and the configured
        mail transport.
    """
    global _link_issuer

    if _link_issuer is None:
        _link_issuer = TemporaryLinkIssuer(
            renderer=JinjaTemplateRenderer(),
            transport=get_mail_transport(),
        )
    return _link_issuer


def reset_link_issuer() -> None:
    """Drop the cached issuer (used by tests)."""
    global _link_issuer
    _link_issuer = None

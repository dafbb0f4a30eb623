"""Test doubles for the link issuer's collaborators.

In-memory renderer, transport, user store, and link store. Each is
mutable so a test can switch behaviour (e.g. renderer.output = "") after
the issuer fixture has been built.
"""

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from templink.models.temporary_link import TemporaryLink
from templink.models.user import User
from templink.schemas.temporary_link import EmailInfo
from templink.services.mail_transport import DeliveryInfo, MailTransport
from templink.services.temporary_link_issuer import TemporaryLinkIssuer
from templink.services.template_renderer import TemplateRenderer

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)
ADMIN_ADDRESS = "no-reply@nealblim.com"
SITE_NAME = "nealblim.com"
BASE_URL = "https://nealblim.com"
RENDERED_HTML = "<html><body>Activate</body></html>"


class FakeRenderer(TemplateRenderer):
    """Returns a fixed output (or raises) and records every call."""

    def __init__(self, output: str = RENDERED_HTML) -> None:
        self.output = output
        self.error: Exception | None = None
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def render(self, template_name: str, context: Mapping[str, Any]) -> str:
        self.calls.append((template_name, dict(context)))
        if self.error is not None:
            raise self.error
        return self.output


class RecordingTransport(MailTransport):
    """Records sent messages; optionally fails or waits for a gate."""

    def __init__(self) -> None:
        self.sent: list[EmailInfo] = []
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.on_send: Any = None

    async def send(self, email: EmailInfo) -> DeliveryInfo:
        if self.on_send is not None:
            self.on_send(email)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        self.sent.append(email)
        return DeliveryInfo(response="250 2.0.0 OK", message_id="<test@localhost>")


class InMemoryUserStore:
    """User lookup keyed by login key."""

    def __init__(self) -> None:
        self.users: dict[str, User] = {}
        self.lookups: list[str] = []

    def add(self, user: User) -> User:
        self.users[user.login_key] = user
        return user

    async def get_by_login_key(self, _db: Any, login_key: str) -> User | None:
        self.lookups.append(login_key)
        return self.users.get(login_key.strip().lower())


class InMemoryLinkStore:
    """Link store keyed by user id, enforcing one link per user."""

    def __init__(self) -> None:
        self.links: dict[int, TemporaryLink] = {}
        self.error: Exception | None = None

    async def create(
        self,
        _db: Any,
        *,
        user_id: int,
        url: str,
        purpose: str,
        expiration_time: datetime,
        email_info: dict[str, Any],
    ) -> TemporaryLink:
        if self.error is not None:
            raise self.error
        if user_id in self.links:
            raise IntegrityError(
                "INSERT INTO temporary_links",
                {},
                Exception('duplicate key value violates "temporary_links_pkey"'),
            )
        link = TemporaryLink(
            id=user_id,
            url=url,
            purpose=purpose,
            expiration_time=expiration_time,
            email_info=email_info,
        )
        self.links[user_id] = link
        return link


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def user_store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def link_store() -> InMemoryLinkStore:
    return InMemoryLinkStore()


@pytest.fixture
def db() -> AsyncMock:
    """Stand-in AsyncSession; commit/rollback are awaitable mocks."""
    return AsyncMock()


@pytest.fixture
def issuer(
    renderer: FakeRenderer,
    transport: RecordingTransport,
    user_store: InMemoryUserStore,
    link_store: InMemoryLinkStore,
) -> TemporaryLinkIssuer:
    """Issuer wired to in-memory doubles and a frozen clock."""
    return TemporaryLinkIssuer(
        renderer=renderer,
        transport=transport,
        users=user_store,
        links=link_store,
        clock=lambda: NOW,
        admin_address=ADMIN_ADDRESS,
        site_name=SITE_NAME,
        base_url=BASE_URL,
        activation_ttl_hours=24,
        reset_ttl_hours=2,
    )

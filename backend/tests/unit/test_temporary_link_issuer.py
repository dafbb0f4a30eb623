"""Tests for the temporary link issuer.

Covers activation and reset issuance, the empty-render and persistence
failure paths, account eligibility checks, and detached delivery.
"""

import asyncio
import logging
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from templink.models.user import User
from templink.schemas.temporary_link import ActivationLinkRequest, ResetLinkRequest
from templink.services.errors import MailDeliveryError, TemplateRenderError
from templink.services.temporary_link_issuer import (
    NOT_ACTIVATED_MESSAGE,
    EmailSpec,
    IssueFailure,
    RenderSpec,
    TemporaryLinkIssuer,
    get_link_issuer,
    reset_link_issuer,
)
from tests.unit.conftest import (
    ADMIN_ADDRESS,
    BASE_URL,
    NOW,
    RENDERED_HTML,
    FakeRenderer,
    RecordingTransport,
)

_ISSUER_LOGGER = "templink.services.temporary_link_issuer"


def _activation(**overrides) -> ActivationLinkRequest:
    values = {
        "recipient_address": "a@x.com",
        "user_name": "Ann",
        "user_id": 7,
        "url": "/act/abc",
    }
    values.update(overrides)
    return ActivationLinkRequest(**values)


def _user(
    user_id: int = 42,
    login_key: str = "bob@x.com",
    *,
    user_active: bool = True,
    last_login: datetime | None = None,
) -> User:
    return User(
        id=user_id,
        login_key=login_key,
        name="Bob",
        user_active=user_active,
        last_login=last_login,
    )


# =============================================================================
# Activation
# =============================================================================


class TestIssueActivationLink:
    """Activation emails store a 24-hour link and are then sent."""

    async def test_stores_link_with_24_hour_expiry(self, issuer, db, link_store):
        result = await issuer.issue_activation_link(db, _activation())

        assert result.success is True
        assert result.reason is None
        assert result.link is link_store.links[7]
        assert result.link.expiration_time - NOW == timedelta(hours=24)
        assert (result.link.expiration_time - NOW).total_seconds() * 1000 == 86_400_000

    async def test_link_keeps_user_id_url_and_purpose(self, issuer, db):
        result = await issuer.issue_activation_link(db, _activation())

        assert result.link.id == 7
        assert result.link.url == "/act/abc"
        assert result.link.purpose == "activate"

    async def test_email_info_snapshot(self, issuer, db):
        result = await issuer.issue_activation_link(db, _activation())

        info = result.link.email_info
        assert info["from"] == ADMIN_ADDRESS
        assert info["to"] == "a@x.com"
        assert info["subject"] == "Welcome to nealblim.com Ann!"
        assert info["html"] == RENDERED_HTML
        assert info["cc"] is None
        assert info["bcc"] is None
        assert f"{BASE_URL}/act/abc" in info["text"]

    async def test_renders_activation_template_with_context(
        self, issuer, db, renderer
    ):
        await issuer.issue_activation_link(db, _activation())

        assert len(renderer.calls) == 1
        name, context = renderer.calls[0]
        assert name == "emails/activate_email"
        assert context["template"] == "activate"
        assert context["timespan"] == 24
        assert context["page_title"] == "Please confirm your account, Ann"
        assert context["url"] == "/act/abc"
        assert context["user_id"] == 7
        assert context["user_name"] == "Ann"
        assert context["base_url"] == BASE_URL
        assert context["layout"] is False

    async def test_sends_one_email_after_commit(self, issuer, db, transport):
        await issuer.issue_activation_link(db, _activation())
        await issuer.wait_for_dispatches()

        assert len(transport.sent) == 1
        assert transport.sent[0].to == "a@x.com"
        db.commit.assert_awaited_once()

    async def test_link_is_stored_before_send_starts(
        self, issuer, db, transport, link_store
    ):
        seen_at_send: list[bool] = []
        transport.on_send = lambda _email: seen_at_send.append(
            7 in link_store.links and db.commit.await_count == 1
        )

        await issuer.issue_activation_link(db, _activation())
        await issuer.wait_for_dispatches()

        assert seen_at_send == [True]

    async def test_expiry_tracks_real_clock(self, renderer, transport, link_store, db):
        issuer = TemporaryLinkIssuer(
            renderer=renderer,
            transport=transport,
            links=link_store,
            activation_ttl_hours=24,
        )

        before = datetime.now(UTC)
        result = await issuer.issue_activation_link(db, _activation())
        after = datetime.now(UTC)
        await issuer.wait_for_dispatches()

        window = timedelta(hours=24)
        assert before + window <= result.link.expiration_time <= after + window


# =============================================================================
# Password reset
# =============================================================================


class TestIssueResetLink:
    """Reset emails go only to known accounts that were activated or used."""

    async def test_stores_link_with_2_hour_expiry_for_found_user(
        self, issuer, db, user_store, link_store
    ):
        user_store.add(_user(user_id=42))

        result = await issuer.issue_reset_link(
            db, ResetLinkRequest(recipient_address="bob@x.com", url="/reset/xyz")
        )

        assert result.success is True
        assert result.link is link_store.links[42]
        assert result.link.purpose == "reset"
        assert result.link.expiration_time - NOW == timedelta(hours=2)

    async def test_renders_reset_template(self, issuer, db, user_store, renderer):
        user_store.add(_user())

        await issuer.issue_reset_link(
            db, ResetLinkRequest(recipient_address="bob@x.com", url="/reset/xyz")
        )

        name, context = renderer.calls[0]
        assert name == "emails/reset_email"
        assert context["page_title"] == "How to Reset Your Password"
        assert context["timespan"] == 2
        assert context["user_id"] == 42

    async def test_subject_and_recipient(self, issuer, db, user_store, transport):
        user_store.add(_user())

        await issuer.issue_reset_link(
            db, ResetLinkRequest(recipient_address="bob@x.com", url="/reset/xyz")
        )
        await issuer.wait_for_dispatches()

        assert transport.sent[0].subject == "nealblim.com -- Reset your Password"
        assert transport.sent[0].to == "bob@x.com"
        assert transport.sent[0].from_address == ADMIN_ADDRESS

    async def test_unknown_account_does_nothing(
        self, issuer, db, renderer, transport, link_store
    ):
        result = await issuer.issue_reset_link(
            db, ResetLinkRequest(recipient_address="nobody@x.com", url="/reset/xyz")
        )
        await issuer.wait_for_dispatches()

        assert result.success is False
        assert result.reason == IssueFailure.ACCOUNT_NOT_FOUND
        assert result.message == (
            "Invalid login: could not find username 'nobody@x.com'."
        )
        assert renderer.calls == []
        assert link_store.links == {}
        assert transport.sent == []
        db.commit.assert_not_awaited()

    async def test_never_activated_account_does_nothing(
        self, issuer, db, user_store, renderer, transport, link_store
    ):
        user_store.add(_user(user_active=False, last_login=None))

        result = await issuer.issue_reset_link(
            db, ResetLinkRequest(recipient_address="bob@x.com", url="/reset/xyz")
        )
        await issuer.wait_for_dispatches()

        assert result.success is False
        assert result.reason == IssueFailure.ACCOUNT_NOT_ACTIVATED
        assert result.message == NOT_ACTIVATED_MESSAGE
        assert renderer.calls == []
        assert link_store.links == {}
        assert transport.sent == []

    async def test_inactive_account_with_prior_login_qualifies(
        self, issuer, db, user_store
    ):
        user_store.add(_user(user_active=False, last_login=NOW - timedelta(days=3)))

        result = await issuer.issue_reset_link(
            db, ResetLinkRequest(recipient_address="bob@x.com", url="/reset/xyz")
        )

        assert result.success is True

    async def test_active_account_without_login_qualifies(
        self, issuer, db, user_store
    ):
        user_store.add(_user(user_active=True, last_login=None))

        result = await issuer.issue_reset_link(
            db, ResetLinkRequest(recipient_address="bob@x.com", url="/reset/xyz")
        )

        assert result.success is True


# =============================================================================
# Compose failure paths
# =============================================================================


class TestEmptyRender:
    """Empty template output stops the invocation before persistence."""

    @pytest.mark.parametrize("output", ["", "   \n\t "])
    async def test_reports_empty_render_without_message(
        self, issuer, db, renderer, transport, link_store, output
    ):
        renderer.output = output

        result = await issuer.issue_activation_link(db, _activation())
        await issuer.wait_for_dispatches()

        assert result.success is False
        assert result.reason == IssueFailure.EMPTY_RENDER
        assert result.message is None
        assert result.link is None
        assert link_store.links == {}
        assert transport.sent == []
        db.commit.assert_not_awaited()

    async def test_whitespace_only_render_counts_as_empty(
        self, issuer, db, renderer, transport, link_store
    ):
        """A body with no visible content is never stored or sent."""
        renderer.output = "\n   \n"

        result = await issuer.issue_activation_link(db, _activation())
        await issuer.wait_for_dispatches()

        assert result.reason == IssueFailure.EMPTY_RENDER
        assert link_store.links == {}
        assert transport.sent == []


class TestRenderError:
    """Template errors propagate to the caller untouched."""

    async def test_render_error_is_raised(self, issuer, db, renderer, link_store):
        renderer.error = TemplateRenderError("emails/activate_email", "boom")

        with pytest.raises(TemplateRenderError, match="boom") as exc_info:
            await issuer.issue_activation_link(db, _activation())

        assert exc_info.value.template_name == "emails/activate_email"
        assert link_store.links == {}
        db.commit.assert_not_awaited()


class TestPersistenceFailure:
    """A failed insert is reported with the store's message and nothing is sent."""

    async def test_carries_store_message(
        self, issuer, db, transport, link_store
    ):
        link_store.error = SQLAlchemyError("connection lost")

        result = await issuer.issue_activation_link(db, _activation())
        await issuer.wait_for_dispatches()

        assert result.success is False
        assert result.reason == IssueFailure.PERSISTENCE_FAILED
        assert "connection lost" in result.message
        assert transport.sent == []
        assert issuer.pending_dispatches == 0
        db.rollback.assert_awaited_once()

    async def test_commit_failure_is_a_persistence_failure(
        self, issuer, db, transport
    ):
        db.commit.side_effect = OperationalError("COMMIT", {}, Exception("gone"))

        result = await issuer.issue_activation_link(db, _activation())
        await issuer.wait_for_dispatches()

        assert result.reason == IssueFailure.PERSISTENCE_FAILED
        assert transport.sent == []
        db.rollback.assert_awaited_once()

    async def test_second_outstanding_link_is_rejected(
        self, issuer, db, transport, link_store
    ):
        first = await issuer.issue_activation_link(db, _activation())
        second = await issuer.issue_activation_link(db, _activation(url="/act/def"))
        await issuer.wait_for_dispatches()

        assert first.success is True
        assert second.success is False
        assert second.reason == IssueFailure.PERSISTENCE_FAILED
        assert "temporary_links_pkey" in second.message
        assert link_store.links[7].url == "/act/abc"
        assert len(transport.sent) == 1


# =============================================================================
# Compose envelope
# =============================================================================


class TestCompose:
    """Envelope defaults and overrides."""

    def _render_spec(self) -> RenderSpec:
        return RenderSpec(
            template="activate",
            timespan=24,
            page_title="Please confirm your account, Ann",
            url="/act/abc",
            user_id=7,
        )

    async def test_sender_defaults_to_admin_address(self, issuer, db):
        result = await issuer.compose(
            db, self._render_spec(), EmailSpec(to="a@x.com", subject="Hi")
        )

        assert result.link.email_info["from"] == ADMIN_ADDRESS

    async def test_explicit_sender_and_copies_are_kept(self, issuer, db, transport):
        result = await issuer.compose(
            db,
            self._render_spec(),
            EmailSpec(
                to="a@x.com",
                subject="Hi",
                from_address="support@nealblim.com",
                cc="audit@nealblim.com",
                bcc="archive@nealblim.com",
            ),
        )
        await issuer.wait_for_dispatches()

        info = result.link.email_info
        assert info["from"] == "support@nealblim.com"
        assert info["cc"] == "audit@nealblim.com"
        assert info["bcc"] == "archive@nealblim.com"
        assert transport.sent[0].from_address == "support@nealblim.com"


# =============================================================================
# Detached delivery
# =============================================================================


class TestDispatch:
    """Send outcomes are logged and never change the returned result."""

    async def test_returns_before_delivery_completes(self, issuer, db, transport):
        transport.gate = asyncio.Event()

        result = await issuer.issue_activation_link(db, _activation())

        assert result.success is True
        assert issuer.pending_dispatches == 1
        assert transport.sent == []

        transport.gate.set()
        await issuer.wait_for_dispatches()

        assert issuer.pending_dispatches == 0
        assert len(transport.sent) == 1

    async def test_delivery_failure_is_logged_not_raised(
        self, issuer, db, transport, caplog
    ):
        transport.error = MailDeliveryError("smtp refused")

        with caplog.at_level(logging.WARNING, logger=_ISSUER_LOGGER):
            result = await issuer.issue_activation_link(db, _activation())
            await issuer.wait_for_dispatches()

        assert result.success is True
        assert result.link is not None
        assert "Failed to send email to a@x.com" in caplog.text

    async def test_delivery_success_is_logged(self, issuer, db, caplog):
        with caplog.at_level(logging.INFO, logger=_ISSUER_LOGGER):
            await issuer.issue_activation_link(db, _activation())
            await issuer.wait_for_dispatches()

        assert "Email sent to a@x.com: 250 2.0.0 OK" in caplog.text

    async def test_wait_without_pending_sends_returns(self):
        issuer = TemporaryLinkIssuer(
            renderer=FakeRenderer(), transport=RecordingTransport()
        )

        await issuer.wait_for_dispatches()

        assert issuer.pending_dispatches == 0


class TestGetLinkIssuer:
    """Process-wide issuer used as the FastAPI dependency."""

    async def test_concurrent_first_calls_share_one_issuer(self):
        issuers = await asyncio.gather(*(get_link_issuer() for _ in range(10)))

        assert all(issuer is issuers[0] for issuer in issuers)

    async def test_reset_builds_a_new_issuer(self):
        first = await get_link_issuer()
        reset_link_issuer()

        assert await get_link_issuer() is not first

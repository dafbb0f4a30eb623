"""Mail transports for outbound link emails.

Three transports share one interface:
- SendmailTransport: pipes the message to the local sendmail binary.
- ResendTransport: HTTP POST to the Resend API.
- LoggingTransport: development transport that only logs the message.

get_mail_transport() builds the transport selected by MAIL_TRANSPORT once
and reuses it for the life of the process.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid

import httpx

from templink.core.config import Settings, settings
from templink.schemas.temporary_link import EmailInfo
from templink.services.errors import MailDeliveryError

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


@dataclass(frozen=True)
class DeliveryInfo:
    """Outcome of a successful hand-off to the transport.

    Attributes:
        response: Transport-specific status line.
        message_id: Identifier assigned to the message, if known.
    """

    response: str
    message_id: str | None = None


class MailTransport(ABC):
    """Abstract interface for sending one composed email."""

    @abstractmethod
    async def send(self, email: EmailInfo) -> DeliveryInfo:
        """Send a message.

        Args:
            email: Composed message.

        Returns:
            DeliveryInfo describing the hand-off.

        Raises:
            MailDeliveryError: If the transport rejects the message.
        """
        ...


def build_mime_message(email: EmailInfo) -> EmailMessage:
    """Build a multipart/alternative message (text + HTML).

    Args:
        email: Composed message.

    Returns:
        EmailMessage with From/To/Cc/Bcc/Subject/Message-ID headers.
    """
    message = EmailMessage()
    message["From"] = email.from_address
    message["To"] = email.to
    if email.cc:
        message["Cc"] = email.cc
    if email.bcc:
        message["Bcc"] = email.bcc
    message["Subject"] = email.subject
    message["Message-ID"] = make_msgid()
    message.set_content(email.text or "")
    message.add_alternative(email.html, subtype="html")
    return message


class SendmailTransport(MailTransport):
    """Deliver through the local sendmail binary.

    Recipients are read from the headers (``-t``); a line holding a single
    dot does not end the message (``-i``). Bcc headers are stripped by
    sendmail itself.
    """

    def __init__(self, path: str = "/usr/sbin/sendmail") -> None:
        self._path = path

    async def send(self, email: EmailInfo) -> DeliveryInfo:
        message = build_mime_message(email)
        try:
            proc = await asyncio.create_subprocess_exec(
                self._path,
                "-i",
                "-t",
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise MailDeliveryError(f"Cannot run {self._path}: {exc}") from exc

        # EmailMessage uses the default policy: unix newlines
        _stdout, stderr = await proc.communicate(message.as_bytes())
        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            raise MailDeliveryError(
                f"sendmail exited with status {proc.returncode}: {detail}"
            )

        return DeliveryInfo(
            response=f"sendmail exited with status {proc.returncode}",
            message_id=message["Message-ID"],
        )


class ResendTransport(MailTransport):
    """Deliver through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize ResendTransport.

        Args:
            api_key: Resend API key.
            http_transport: Optional httpx transport (tests use MockTransport).
        """
        self._api_key = api_key
        self._http_transport = http_transport

    async def send(self, email: EmailInfo) -> DeliveryInfo:
        payload: dict[str, object] = {
            "from": email.from_address,
            "to": [email.to],
            "subject": email.subject,
            "html": email.html,
        }
        if email.text:
            payload["text"] = email.text
        if email.cc:
            payload["cc"] = [email.cc]
        if email.bcc:
            payload["bcc"] = [email.bcc]

        try:
            async with httpx.AsyncClient(transport=self._http_transport) as client:
                resp = await client.post(
                    _RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json=payload,
                    timeout=_RESEND_TIMEOUT,
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise MailDeliveryError(f"Resend request failed: {exc}") from exc

        return DeliveryInfo(
            response=f"{resp.status_code} {resp.reason_phrase}",
            message_id=resp.json().get("id"),
        )


class LoggingTransport(MailTransport):
    """Development transport: logs the message instead of sending it."""

    async def send(self, email: EmailInfo) -> DeliveryInfo:
        logger.info(
            "Email (not sent) from=%s to=%s subject=%r",
            email.from_address,
            email.to,
            email.subject,
        )
        return DeliveryInfo(response="logged")


_mail_transport: MailTransport | None = None


def create_mail_transport(config: Settings) -> MailTransport:
    """Build the transport selected by configuration.

    Args:
        config: Application settings.

    Returns:
        MailTransport instance.

    Raises:
        ValueError: If the configured transport is unknown.
    """
    if config.mail_transport == "sendmail":
        return SendmailTransport(config.sendmail_path)
    if config.mail_transport == "resend":
        return ResendTransport(config.resend_api_key.get_secret_value())
    if config.mail_transport == "log":
        return LoggingTransport()
    raise ValueError(f"Unknown mail transport: {config.mail_transport}")


def get_mail_transport() -> MailTransport:
    """Get or create the mail transport singleton."""
    global _mail_transport

    if _mail_transport is None:
        _mail_transport = create_mail_transport(settings)
    return _mail_transport


def reset_mail_transport() -> None:
    """Drop the cached transport (used by tests)."""
    global _mail_transport
    _mail_transport = None

"""
Email service for sending notification emails.

WHAT: A unified interface for sending emails through a provider (Resend)
with a mock fallback for development and tests.

WHY: Ticket lifecycle events notify platform staff, property managers and
residents by email. Delivery is best effort: a failed send is logged and
reported in the result, never raised into ticket operations.

HOW: Uses the Resend HTTP API via httpx:
- Single messages go to POST /emails
- Several personalized messages go to POST /emails/batch, in chunks of 100
- Tags ride along for provider-side analytics
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, List

import httpx

from workorders.core.config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com"

# Resend accepts at most 100 messages per batch request
RESEND_BATCH_LIMIT = 100


@dataclass
class EmailMessage:
    """One outbound email, addressed to one or more recipients."""

    to: List[str]
    """Recipient email addresses."""

    subject: str
    """Email subject line."""

    html_content: str
    """HTML email body."""

    text_content: Optional[str] = None
    """Plain text fallback."""

    from_email: Optional[str] = None
    """Sender (defaults to settings.EMAIL_FROM)."""

    reply_to: Optional[str] = None
    """Reply-to address."""

    tags: Dict[str, str] = field(default_factory=dict)
    """Provider tags, e.g. {"type": "status_change"}."""

    def to_payload(self, default_from: str) -> Dict:
        """Resend JSON body for this message."""
        payload = {
            "from": self.from_email or default_from,
            "to": list(self.to),
            "subject": self.subject,
            "html": self.html_content,
        }
        if self.text_content:
            payload["text"] = self.text_content
        if self.reply_to:
            payload["reply_to"] = self.reply_to
        if self.tags:
            payload["tags"] = [{"name": k, "value": v} for k, v in self.tags.items()]
        return payload


@dataclass
class EmailResult:
    """
    Result of an email send operation.

    WHY: Notification code needs to log outcomes without catching
    provider-specific exceptions.
    """

    success: bool
    """Whether the provider accepted the message(s)."""

    message_ids: List[str] = field(default_factory=list)
    """Provider message IDs for tracking."""

    error: Optional[str] = None
    """Provider or transport error text, when success is False."""

    provider: Optional[str] = None
    """Which provider was used."""


# ============================================================================
# Email Provider Interface
# ============================================================================


class EmailProvider(ABC):
    """
    Delivery backend used by EmailService.

    WHY: Notification routing is tested against the mock backend; only
    this seam knows about Resend.
    """

    @abstractmethod
    async def send(self, message: EmailMessage) -> EmailResult:
        """Send a single email message."""
        pass

    @abstractmethod
    async def send_batch(self, messages: List[EmailMessage]) -> EmailResult:
        """Send several independent messages in as few requests as possible."""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """True if API keys/credentials are present."""
        pass


class ResendProvider(EmailProvider):
    """
    Delivery through the Resend HTTP API.

    WHY: Resend has a batch endpoint, which lets one status change send a
    personalized email to every property manager in a single request.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_from: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: Defaults to RESEND_API_KEY
            default_from: Sender used when a message has none
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._api_key = api_key or settings.RESEND_API_KEY
        self._default_from = default_from or settings.EMAIL_FROM
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=RESEND_API_URL,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=30.0,
            transport=self._transport,
        )

    async def send(self, message: EmailMessage) -> EmailResult:
        """POST /emails. Transport and API errors come back in the result."""
        if not self.is_configured():
            return EmailResult(success=False, error="Resend API key not configured", provider="resend")

        try:
            async with self._client() as client:
                response = await client.post("/emails", json=message.to_payload(self._default_from))
        except httpx.HTTPError as e:
            logger.error(f"Resend unreachable sending '{message.subject}': {e}")
            return EmailResult(success=False, error=str(e), provider="resend")

        if response.status_code in (200, 201):
            data = response.json()
            return EmailResult(success=True, message_ids=[data.get("id")], provider="resend")
        return EmailResult(
            success=False,
            error=f"Resend API error: {response.status_code} - {response.text}",
            provider="resend",
        )

    async def send_batch(self, messages: List[EmailMessage]) -> EmailResult:
        """
        Send messages via the Resend batch endpoint.

        WHAT: Splits into chunks of RESEND_BATCH_LIMIT and posts each chunk.

        WHY: A failed chunk does not stop later chunks; the result reports
        success only if every chunk was accepted.

        Args:
            messages: Independent messages (one recipient each, typically)

        Returns:
            EmailResult aggregating all chunks
        """
        if not self.is_configured():
            return EmailResult(success=False, error="Resend API key not configured", provider="resend")
        if not messages:
            return EmailResult(success=True, provider="resend")

        message_ids: List[str] = []
        errors: List[str] = []
        async with self._client() as client:
            for start in range(0, len(messages), RESEND_BATCH_LIMIT):
                chunk = messages[start:start + RESEND_BATCH_LIMIT]
                payload = [m.to_payload(self._default_from) for m in chunk]
                try:
                    response = await client.post("/emails/batch", json=payload)
                except httpx.HTTPError as e:
                    logger.error(f"Resend batch error (chunk at {start}): {e}")
                    errors.append(str(e))
                    continue

                if response.status_code in (200, 201):
                    data = response.json().get("data") or []
                    message_ids.extend(item.get("id") for item in data if item.get("id"))
                else:
                    errors.append(f"Resend API error: {response.status_code} - {response.text}")

        return EmailResult(
            success=not errors,
            message_ids=message_ids,
            error="; ".join(errors) or None,
            provider="resend",
        )


class MockEmailProvider(EmailProvider):
    """
    Records messages in memory instead of delivering them.

    Used whenever RESEND_API_KEY is unset, which includes the test suite.
    """

    sent_emails: List[EmailMessage] = []
    """Every message, in send order (batches included)."""

    sent_batches: List[List[EmailMessage]] = []
    """Each batch call, as sent."""

    def is_configured(self) -> bool:
        return True

    async def send(self, message: EmailMessage) -> EmailResult:
        """Record and report success."""
        logger.info(f"[MOCK EMAIL] To: {', '.join(message.to)}, Subject: {message.subject}")
        MockEmailProvider.sent_emails.append(message)
        return EmailResult(
            success=True,
            message_ids=[f"mock-{datetime.now().timestamp()}"],
            provider="mock",
        )

    async def send_batch(self, messages: List[EmailMessage]) -> EmailResult:
        MockEmailProvider.sent_batches.append(list(messages))
        ids = []
        for message in messages:
            result = await self.send(message)
            ids.extend(result.message_ids)
        return EmailResult(success=True, message_ids=ids, provider="mock")

    @classmethod
    def clear_sent_emails(cls):
        """Clear tracked emails (for test cleanup)."""
        cls.sent_emails = []
        cls.sent_batches = []


# ============================================================================
# Email Service
# ============================================================================


class EmailService:
    """
    High-level email service.

    WHAT: Picks a provider and logs every send.

    HOW: Uses Resend when RESEND_API_KEY is set, otherwise the mock
    provider with a warning.
    """

    def __init__(self, provider: Optional[EmailProvider] = None):
        """
        Args:
            provider: Explicit backend; otherwise chosen from settings
        """
        if provider:
            self._provider = provider
        elif settings.RESEND_API_KEY:
            self._provider = ResendProvider()
        else:
            logger.warning("RESEND_API_KEY not set; notification emails are recorded, not sent")
            self._provider = MockEmailProvider()

    @property
    def provider(self) -> EmailProvider:
        return self._provider

    async def send_email(self, message: EmailMessage) -> EmailResult:
        """
        Send one email message.

        Args:
            message: Email message to send

        Returns:
            EmailResult with send status
        """
        logger.info(f"Sending email '{message.subject}' to {len(message.to)} recipient(s)")

        result = await self._provider.send(message)

        if result.success:
            logger.info(f"Email sent successfully: {result.message_ids}")
        else:
            logger.error(f"Email send failed: {result.error}")

        return result

    async def send_many(self, messages: List[EmailMessage]) -> EmailResult:
        """
        Send several personalized messages.

        WHY: One message goes through the single-send endpoint; more than
        one goes through the batch endpoint.

        Returns:
            EmailResult aggregating all messages
        """
        if not messages:
            return EmailResult(success=True, provider=None)
        if len(messages) == 1:
            return await self.send_email(messages[0])

        logger.info(f"Sending batch of {len(messages)} emails ('{messages[0].subject}')")
        result = await self._provider.send_batch(messages)
        if result.success:
            logger.info(f"Batch sent successfully: {len(result.message_ids)} accepted")
        else:
            logger.error(f"Batch send failed: {result.error}")
        return result


# Module-level singleton
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Process-wide EmailService, created on first use."""
    global _email_service

    if _email_service is None:
        _email_service = EmailService()

    return _email_service

"""
SMS service for high-urgency notifications.

WHAT: Sends text messages through the Twilio REST API and records every
attempt in the sms_log table.

WHY: Emergencies and technician dispatch need attention faster than
email gets it. SMS is opt-in per user and limited to those events.

HOW: Uses httpx against Twilio's Messages endpoint with basic auth.
- Phone numbers are normalized to E.164 before sending
- Message fields are truncated individually, then the body is capped
- Sandbox mode logs instead of sending
"""

import logging
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

import httpx

from workorders.core.config import settings
from workorders.dao.sms_log import SmsLogDAO
from workorders.models.sms_log import SmsStatus

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01"

# Twilio rejects bodies longer than this
TWILIO_MAX_BODY = 1600

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


# ============================================================================
# Phone numbers and message bodies
# ============================================================================


def is_valid_e164(phone: Optional[str]) -> bool:
    return bool(phone) and bool(E164_PATTERN.match(phone))


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a user-entered phone number to E.164.

    - Already-valid E.164 passes through
    - 10 digits are treated as a US number: "+1" + digits
    - 11 digits starting with 1 become "+" + digits
    - Anything else is rejected (None)
    """
    if not phone:
        return None
    stripped = phone.strip()
    if is_valid_e164(stripped):
        return stripped
    digits = re.sub(r"\D", "", stripped)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return None


def mask_phone(phone: Optional[str]) -> str:
    """Last four digits only, for logs."""
    if not phone:
        return "<none>"
    return f"***{phone[-4:]}"


def truncate_field(value: Optional[str], limit: int) -> str:
    """Truncate one field to at most limit characters, ending in "…" when cut."""
    if not value:
        return ""
    value = " ".join(value.split())
    if len(value) <= limit:
        return value
    return value[: max(limit - 1, 0)].rstrip() + "…"


def compose_sms(
    headline: str,
    fields: Iterable[Tuple[Optional[str], int]],
    max_length: Optional[int] = None,
) -> str:
    """
    Compose an SMS body from a headline and individually capped fields.

    WHAT: Each (value, cap) is truncated to its cap before joining, so one
    long field (a description) cannot push the others out of the message.

    Args:
        headline: Leading text, e.g. "EMERGENCY #1042"
        fields: (value, cap) pairs; empty values are skipped
        max_length: Overall cap (defaults to settings.SMS_MAX_LENGTH)

    Returns:
        Body no longer than max_length (and never above Twilio's limit)
    """
    limit = min(max_length or settings.SMS_MAX_LENGTH, TWILIO_MAX_BODY)
    parts = [headline] + [truncate_field(value, cap) for value, cap in fields]
    body = " | ".join(part for part in parts if part)
    return truncate_field(body, limit)


# ============================================================================
# Twilio client
# ============================================================================


@dataclass
class SmsResult:
    """Outcome of one send attempt."""

    success: bool
    status: SmsStatus
    sid: Optional[str] = None
    error: Optional[str] = None


class SmsClient(ABC):
    """Abstract SMS transport."""

    @abstractmethod
    async def send(self, to: str, body: str) -> SmsResult:
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        pass


class TwilioSmsClient(SmsClient):
    """
    Twilio SMS transport.

    WHY: Sandbox mode lets staging exercise the full notification path
    (including sms_log rows) without texting real people.
    """

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        sandbox: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._account_sid = account_sid or settings.TWILIO_ACCOUNT_SID
        self._auth_token = auth_token or settings.TWILIO_AUTH_TOKEN
        self._from_number = from_number or settings.TWILIO_FROM_NUMBER
        self._sandbox = settings.TWILIO_SANDBOX if sandbox is None else sandbox
        self._transport = transport

    def is_configured(self) -> bool:
        return all([self._account_sid, self._auth_token, self._from_number])

    async def send(self, to: str, body: str) -> SmsResult:
        """
        Send one SMS.

        Args:
            to: E.164 destination
            body: Message text (≤ 1600 characters)

        Returns:
            SmsResult; failures are reported, not raised
        """
        if not is_valid_e164(to):
            return SmsResult(success=False, status=SmsStatus.FAILED, error=f"Invalid phone number: {mask_phone(to)}")
        if len(body) > TWILIO_MAX_BODY:
            return SmsResult(success=False, status=SmsStatus.FAILED, error="Message body exceeds 1600 characters")

        if self._sandbox:
            sid = f"SANDBOX_{int(datetime.now().timestamp() * 1000)}"
            logger.info(f"[SANDBOX SMS] To: {mask_phone(to)}, Body: {body}")
            return SmsResult(success=True, status=SmsStatus.SANDBOX, sid=sid)

        if not self.is_configured():
            return SmsResult(success=False, status=SmsStatus.FAILED, error="Twilio is not configured")

        url = f"{TWILIO_API_URL}/Accounts/{self._account_sid}/Messages.json"
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                response = await client.post(
                    url,
                    auth=(self._account_sid, self._auth_token),
                    data={"To": to, "From": self._from_number, "Body": body},
                )
        except httpx.HTTPError as e:
            logger.error(f"Twilio send error: {e}")
            return SmsResult(success=False, status=SmsStatus.FAILED, error=str(e))

        if response.status_code in (200, 201):
            return SmsResult(success=True, status=SmsStatus.SENT, sid=response.json().get("sid"))

        try:
            error = response.json().get("message") or response.text
        except ValueError:
            error = response.text
        return SmsResult(
            success=False,
            status=SmsStatus.FAILED,
            error=f"Twilio API error: {response.status_code} - {error}",
        )


# ============================================================================
# SMS service (send + log)
# ============================================================================


@dataclass(frozen=True)
class SmsTarget:
    """Who to text: raw phone as stored plus the owning user."""

    phone: Optional[str]
    user_id: Optional[int] = None


class SmsService:
    """
    Sends SMS and writes one sms_log row per attempt.

    HOW: The log is written in its own session (session_factory) because
    SMS is sent from detached notification tasks that have no request
    session.
    """

    def __init__(self, client: SmsClient, session_factory: Callable):
        self._client = client
        self._session_factory = session_factory

    async def send_to_many(
        self,
        targets: List[SmsTarget],
        body: str,
        ticket_id: Optional[uuid.UUID] = None,
    ) -> int:
        """
        Text every target whose phone normalizes to E.164.

        Returns:
            Number of messages accepted (sent or sandbox)
        """
        accepted = 0
        for target in targets:
            phone = normalize_phone(target.phone)
            if phone is None:
                logger.warning(f"Skipping SMS to user {target.user_id}: unusable phone {mask_phone(target.phone)}")
                continue

            result = await self._client.send(phone, body)
            if result.success:
                accepted += 1
                logger.info(f"SMS {result.status.value} to {mask_phone(phone)} (sid {result.sid})")
            else:
                logger.error(f"SMS to {mask_phone(phone)} failed: {result.error}")

            try:
                await self._record(phone, body, result, target.user_id, ticket_id)
            except Exception as e:
                # A lost log row must not stop the remaining texts
                logger.error(f"Failed to write sms_log for {mask_phone(phone)}: {e}")
        return accepted

    async def _record(
        self,
        phone: str,
        body: str,
        result: SmsResult,
        user_id: Optional[int],
        ticket_id: Optional[uuid.UUID],
    ) -> None:
        async with self._session_factory() as session:
            await SmsLogDAO(session).record(
                phone_number=phone,
                message_body=body,
                status=result.status,
                user_id=user_id,
                ticket_id=ticket_id,
                provider_sid=result.sid,
                error_message=result.error,
            )
            await session.commit()

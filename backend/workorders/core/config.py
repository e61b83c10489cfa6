"""Application configuration"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "Work Orders API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440  # 24 hours

    # Database
    DATABASE_URL: str

    # URLs
    # WHY: Email bodies link back to the ticket page in the web app
    FRONTEND_URL: str = "http://localhost:3000"

    # S3 / attachment storage
    S3_ENDPOINT: Optional[str] = None
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "us-east-1"
    ATTACHMENT_BUCKET: str = "ticket-attachments"
    ATTACHMENT_MAX_BYTES: int = 10 * 1024 * 1024  # 10 MiB
    SIGNED_URL_TTL_SECONDS: int = 3600

    # Redis
    # WHY: Revoked tokens live in Redis so every request can check them cheaply
    REDIS_URL: str = "redis://localhost:6379/0"

    # Email (Resend)
    RESEND_API_KEY: Optional[str] = None
    EMAIL_FROM: str = "Work Orders <notifications@workorders.example>"

    # Notification recipients (comma-separated lists)
    NOTIFY_EMAILS: str = "dispatch@workorders.example"
    EMERGENCY_NOTIFY_EMAILS: Optional[str] = None

    # Detached notification tasks; 0 means unbounded
    NOTIFY_MAX_CONCURRENCY: int = 0

    # SMS (Twilio)
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_FROM_NUMBER: Optional[str] = None
    TWILIO_SANDBOX: bool = False
    SMS_MAX_LENGTH: int = 320

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()


# ============================================================================
# Notification Recipients
# ============================================================================


def _split_addresses(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class NotificationRecipients:
    """
    Platform distribution lists, resolved once.

    WHY: Recipient lists come from the environment. Parsing them once into
    an immutable value means every dispatch sees the same lists and a bad
    configuration fails at startup instead of inside a detached task.
    """

    notify: Tuple[str, ...]
    emergency: Tuple[str, ...]

    def for_severity(self, is_emergency: bool) -> Tuple[str, ...]:
        return self.emergency if is_emergency else self.notify

    @classmethod
    def from_settings(cls, source: Settings) -> "NotificationRecipients":
        notify = _split_addresses(source.NOTIFY_EMAILS)
        if not notify:
            raise ValueError("NOTIFY_EMAILS must contain at least one address")
        # Emergency list falls back to the normal list when unset
        emergency = _split_addresses(source.EMERGENCY_NOTIFY_EMAILS) or notify
        return cls(notify=notify, emergency=emergency)


@lru_cache(maxsize=1)
def get_notification_recipients() -> NotificationRecipients:
    """Return the process-wide recipient lists (parsed on first call)."""
    return NotificationRecipients.from_settings(settings)

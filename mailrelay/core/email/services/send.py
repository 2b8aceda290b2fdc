"""Email send service - maps tenant settings and a send request onto one delivery."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, SecretStr

from mailrelay.core.email.smtp.client import deliver
from mailrelay.core.email.smtp.constants import SMTPPorts
from mailrelay.core.email.smtp.models import ConnectionConfig, DeliveryOutcome, Envelope
from mailrelay.utils.errors import InvalidConfigError, InvalidMessageError
from mailrelay.utils.logging import async_log_call, get_logger, log_event

logger = get_logger(__name__)


class EmailSettings(BaseModel):
    """Per-tenant SMTP settings row as stored by the calling application."""

    smtp_host: str = ""
    smtp_port: int = SMTPPorts.SUBMISSION
    smtp_user: str = ""
    smtp_password: SecretStr = SecretStr("")
    use_tls: bool = True
    from_email: str = ""
    from_name: str = ""
    is_active: bool = True
    institution_id: Optional[str] = None

    def to_connection_config(self) -> ConnectionConfig:
        """Map this settings row to connection parameters."""
        return ConnectionConfig(
            host=self.smtp_host,
            port=self.smtp_port,
            use_tls=self.use_tls,
            username=self.smtp_user,
            password=self.smtp_password,
            from_address=self.from_email,
            from_display_name=self.from_name,
        )


class DeliveryStatus(str, Enum):
    """Status recorded in the caller's delivery log."""

    SENT = "SENT"
    ERROR = "ERROR"


@dataclass
class DeliveryLogEntry:
    """Log record for one attempt, ready for the caller to persist."""

    recipient_email: str
    subject: str
    status: DeliveryStatus
    message_type: str = "GENERAL"
    recipient_name: Optional[str] = None
    error_message: Optional[str] = None
    institution_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "institution_id": self.institution_id,
            "recipient_email": self.recipient_email,
            "recipient_name": self.recipient_name,
            "subject": self.subject,
            "message_type": self.message_type,
            "status": self.status.value,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class SendResult:
    """Outcome of a send request plus the log entry describing it."""

    outcome: DeliveryOutcome
    log_entry: DeliveryLogEntry

    @property
    def success(self) -> bool:
        return self.outcome.success


class EmailSendService:
    """Single entry point for every caller that sends a message by SMTP."""

    def __init__(self, settings: EmailSettings, **deliver_options):
        """Initialise email send service.

        Args:
            settings: Tenant SMTP settings
            **deliver_options: Passed through to deliver() (timeout, strict,
                transport_factory, ...)
        """
        self.settings = settings
        self._deliver_options = deliver_options

    @async_log_call
    async def send_email(
        self,
        to: str,
        subject: str,
        body: Optional[str] = None,
        html: Optional[str] = None,
        to_name: Optional[str] = None,
        message_type: str = "GENERAL",
        cancel_token: Optional[asyncio.Event] = None,
    ) -> SendResult:
        """Send one message and describe the attempt for the delivery log.

        HTML wins when both ``body`` and ``html`` are given.

        Args:
            to: Recipient email address
            subject: Email subject
            body: Plain text body
            html: HTML body
            to_name: Recipient display name, logged only
            message_type: Caller-defined category for the log
            cancel_token: Optional event aborting the attempt

        Returns:
            SendResult with the DeliveryOutcome and its DeliveryLogEntry

        Raises:
            InvalidConfigError: If the settings are inactive or unusable
            InvalidMessageError: If to, subject or body/html is missing
        """
        if not self.settings.is_active:
            raise InvalidConfigError(
                "Email settings are inactive",
                details={"institution_id": self.settings.institution_id},
            )
        if not to or not subject or not (body or html):
            raise InvalidMessageError("Fields to, subject and body/html are required")

        envelope = Envelope(
            to_address=to,
            subject=subject,
            body=html or body,
            is_html=bool(html),
        )

        outcome = await deliver(
            self.settings.to_connection_config(),
            envelope,
            cancel_token=cancel_token,
            **self._deliver_options,
        )

        entry = DeliveryLogEntry(
            recipient_email=to,
            recipient_name=to_name,
            subject=subject,
            message_type=message_type,
            status=DeliveryStatus.SENT if outcome.success else DeliveryStatus.ERROR,
            error_message=outcome.error_detail,
            institution_id=self.settings.institution_id,
            created_at=datetime.now(timezone.utc),
        )

        log_event(
            "email_delivery",
            f"Email {entry.status.value.lower()} to {to}",
            status=entry.status.value,
            message_type=message_type,
        )

        return SendResult(outcome=outcome, log_entry=entry)

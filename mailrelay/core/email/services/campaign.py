"""Campaign sender - one delivery per recipient, paced to avoid provider throttling."""

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from mailrelay.utils.config_manager import get_config_manager
from mailrelay.utils.errors import ErrorHandler, InvalidConfigError
from mailrelay.utils.logging import async_log_call, get_logger

from .send import DeliveryLogEntry, DeliveryStatus, EmailSendService, SendResult

logger = get_logger(__name__)


@dataclass
class CampaignRecipient:
    """A recipient with the message already rendered for them."""

    email: str
    subject: str
    body: Optional[str] = None
    html: Optional[str] = None
    name: Optional[str] = None


@dataclass
class CampaignStats:
    """Totals for a campaign run."""

    sent: int = 0
    failed: int = 0
    total: int = 0
    results: List[SendResult] = field(default_factory=list)
    rejected: List[DeliveryLogEntry] = field(default_factory=list)


class CampaignSender:
    """Sends to recipients one at a time with a fixed pause between them."""

    def __init__(
        self,
        service: EmailSendService,
        pause_seconds: Optional[float] = None,
        message_type: str = "CAMPAIGN",
    ):
        self.service = service
        self.pause_seconds = (
            get_config_manager().config.campaign.pause_seconds
            if pause_seconds is None
            else pause_seconds
        )
        self.message_type = message_type

    @async_log_call
    async def send(
        self,
        recipients: Iterable[CampaignRecipient],
        cancel_token: Optional[asyncio.Event] = None,
    ) -> CampaignStats:
        """Send the campaign.

        A recipient whose message cannot be built is counted as failed and
        recorded in ``rejected``; it does not stop the run. Setting
        ``cancel_token`` stops the run before the next recipient.
        """
        if not self.service.settings.is_active:
            raise InvalidConfigError(
                "Email settings are inactive",
                details={"institution_id": self.service.settings.institution_id},
            )

        recipients = list(recipients)
        stats = CampaignStats(total=len(recipients))

        logger.info("Starting campaign", extra={"recipients": stats.total})

        for index, recipient in enumerate(recipients):
            if cancel_token is not None and cancel_token.is_set():
                logger.info("Campaign cancelled", extra={"processed": index})
                break

            if index:
                await asyncio.sleep(self.pause_seconds)

            try:
                result = await self.service.send_email(
                    to=recipient.email,
                    subject=recipient.subject,
                    body=recipient.body,
                    html=recipient.html,
                    to_name=recipient.name,
                    message_type=self.message_type,
                    cancel_token=cancel_token,
                )
            except InvalidConfigError as e:
                ErrorHandler.handle(e, "Campaign recipient rejected", log_traceback=False)
                stats.failed += 1
                stats.rejected.append(
                    DeliveryLogEntry(
                        recipient_email=recipient.email,
                        recipient_name=recipient.name,
                        subject=recipient.subject,
                        message_type=self.message_type,
                        status=DeliveryStatus.ERROR,
                        error_message=e.message,
                        institution_id=self.service.settings.institution_id,
                    )
                )
                continue

            stats.results.append(result)
            if result.success:
                stats.sent += 1
            else:
                stats.failed += 1

        logger.info(
            "Campaign finished",
            extra={"sent": stats.sent, "failed": stats.failed, "total": stats.total},
        )
        return stats

"""Caller-side services built on the SMTP session."""

from .campaign import CampaignRecipient, CampaignSender, CampaignStats
from .send import (
    DeliveryLogEntry,
    DeliveryStatus,
    EmailSendService,
    EmailSettings,
    SendResult,
)

__all__ = [
    "CampaignRecipient",
    "CampaignSender",
    "CampaignStats",
    "DeliveryLogEntry",
    "DeliveryStatus",
    "EmailSendService",
    "EmailSettings",
    "SendResult",
]

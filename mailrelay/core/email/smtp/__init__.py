"""SMTP delivery client.

Low-level components for one SMTP delivery attempt:
- SMTPSession / deliver: The protocol state machine
- SMTPTransport: Socket capability set (connect, TLS upgrade, read, write, close)
- protocol: Reply parsing, command framing and DATA preparation

Usage
-----
    >>> from mailrelay.core.email.smtp import ConnectionConfig, Envelope, deliver
    >>>
    >>> config = ConnectionConfig(
    ...     host="smtp.example.com", port=587, use_tls=True,
    ...     username="user", password="secret", from_address="school@example.com",
    ... )
    >>> envelope = Envelope(to_address="parent@example.com", subject="Olá", body="Hello")
    >>> outcome = await deliver(config, envelope)
    >>> outcome.success
    True

Notes
-----
- One session per attempt; sessions are never reused
- Protocol failures come back as DeliveryOutcome, never as exceptions
- Only InvalidConfigError is raised, and always before any network I/O
"""

from .client import SMTPSession, deliver
from .connection import SMTPTransport, StreamTransport
from .models import ConnectionConfig, DeliveryOutcome, Envelope
from .protocol import SessionState, SMTPReply

__all__ = [
    "ConnectionConfig",
    "DeliveryOutcome",
    "Envelope",
    "SessionState",
    "SMTPReply",
    "SMTPSession",
    "SMTPTransport",
    "StreamTransport",
    "deliver",
]

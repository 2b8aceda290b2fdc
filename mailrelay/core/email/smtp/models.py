"""Delivery domain models.

Every model here is transient: built per call, handed to the SMTP session,
and never persisted by mailrelay itself.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, SecretStr, ValidationError

from mailrelay.utils.errors import ErrorKind, InvalidConfigError, InvalidMessageError

from .constants import SMTPPorts
from .protocol import SessionState

_LINE_BREAKS = ("\r", "\n")


def _has_line_break(value: Optional[str]) -> bool:
    return bool(value) and any(ch in value for ch in _LINE_BREAKS)


class ConnectionConfig(BaseModel):
    """Fully resolved connection parameters for one delivery attempt.

    ``use_tls`` means "require encryption for this attempt". Port 465 (or
    ``implicit_tls=True``) negotiates TLS on connect; any other port with
    ``use_tls`` upgrades via STARTTLS after EHLO; ``use_tls=False`` stays in
    plaintext for legacy relays.
    """

    model_config = ConfigDict(frozen=True)

    host: str = ""
    port: Optional[int] = None
    use_tls: bool = True
    username: str = ""
    password: SecretStr = SecretStr("")
    from_address: str = ""
    from_display_name: str = ""
    implicit_tls: Optional[bool] = None

    @property
    def uses_implicit_tls(self) -> bool:
        if self.implicit_tls is not None:
            return self.implicit_tls
        return self.port is not None and SMTPPorts.is_implicit_ssl(self.port)

    @property
    def uses_starttls(self) -> bool:
        return self.use_tls and not self.uses_implicit_tls

    @property
    def tls_mode(self) -> str:
        if self.uses_implicit_tls:
            return "implicit"
        return "starttls" if self.use_tls else "plaintext"

    def validate_for_delivery(self) -> None:
        """Reject a config that cannot be used for a delivery attempt.

        Raises:
            InvalidConfigError: Listing every problem found
        """
        problems = []

        if not self.host or not self.host.strip():
            problems.append("host is required")
        if self.port is None:
            problems.append("port is required")
        elif not 0 < self.port < 65536:
            problems.append(f"port {self.port} is out of range")
        if not self.username:
            problems.append("username is required")
        if not self.password.get_secret_value():
            problems.append("password is required")
        if not self.from_address:
            problems.append("from address is required")
        elif not self.from_address.isascii():
            # No SMTPUTF8: MAIL FROM and the From header need an ASCII mailbox
            problems.append("from address must be ASCII")

        for field_name in ("host", "username", "from_address", "from_display_name"):
            if _has_line_break(getattr(self, field_name)):
                problems.append(f"{field_name} must not contain line breaks")

        if problems:
            raise InvalidConfigError(
                "Invalid SMTP configuration: " + "; ".join(problems),
                details={"host": self.host, "port": self.port},
            )

    @classmethod
    def from_settings(cls, record: Mapping[str, Any]) -> "ConnectionConfig":
        """Build a config from a per-tenant email settings record.

        Args:
            record: Mapping with smtp_host, smtp_port, smtp_user,
                smtp_password, use_tls, from_email and from_name keys

        Returns:
            ConnectionConfig instance

        Raises:
            InvalidConfigError: If a value has the wrong type
        """
        try:
            return cls(
                host=record.get("smtp_host") or "",
                port=record.get("smtp_port"),
                use_tls=bool(record.get("use_tls", True)),
                username=record.get("smtp_user") or "",
                password=SecretStr(record.get("smtp_password") or ""),
                from_address=record.get("from_email") or "",
                from_display_name=record.get("from_name") or "",
                implicit_tls=record.get("implicit_tls"),
            )
        except ValidationError as e:
            raise InvalidConfigError(
                f"Email settings record is malformed: {e.error_count()} invalid field(s)",
                details={"fields": [".".join(map(str, err["loc"])) for err in e.errors()]},
            ) from e


class Envelope(BaseModel):
    """Recipient and rendered content for one delivery attempt."""

    model_config = ConfigDict(frozen=True)

    to_address: str = ""
    subject: str = ""
    body: Optional[str] = None
    is_html: bool = False

    def validate_for_delivery(self) -> None:
        """Reject an envelope the protocol cannot carry.

        Raises:
            InvalidMessageError: If the recipient or body is unusable
        """
        if not self.to_address or not self.to_address.strip():
            raise InvalidMessageError("Recipient address is required")
        if _has_line_break(self.to_address):
            raise InvalidMessageError("Recipient address must not contain line breaks")
        if not self.body:
            raise InvalidMessageError("Message body is required")


@dataclass
class DeliveryOutcome:
    """Result of one delivery attempt, owned by the caller after return."""

    success: bool
    error_detail: Optional[str] = None
    failed_stage: Optional[ErrorKind] = None
    failed_state: Optional[SessionState] = None
    external_message_id: Optional[str] = None  # SMTP never provides one
    duration: float = 0.0

    @classmethod
    def ok(cls, duration: float = 0.0) -> "DeliveryOutcome":
        return cls(success=True, duration=duration)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        detail: str,
        state: Optional[SessionState] = None,
        duration: float = 0.0,
    ) -> "DeliveryOutcome":
        return cls(
            success=False,
            error_detail=detail,
            failed_stage=kind,
            failed_state=state,
            duration=duration,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "external_message_id": self.external_message_id,
            "error_detail": self.error_detail,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "failed_state": self.failed_state.value if self.failed_state else None,
            "duration": round(self.duration, 3),
        }

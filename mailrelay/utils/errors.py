"""Centralized error handling module."""

from enum import Enum
from typing import Any, Dict, Optional

from mailrelay.utils.logging import get_logger

_logger = None


def _get_logger():
    """Get logger with lazy initialisation."""
    global _logger
    if _logger is None:
        _logger = get_logger(__name__)
    return _logger


## Error Categories


class ErrorCategory(Enum):
    """Categories of errors for better handling."""

    NETWORK = "network"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    FILE_SYSTEM = "file_system"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class ErrorKind(Enum):
    """Failure classification reported for a single delivery attempt."""

    INVALID_CONFIG = "invalid_config"
    CONNECT_FAILED = "connect_failed"
    TLS_FAILED = "tls_failed"
    AUTH_FAILED = "auth_failed"
    PROTOCOL_ERROR = "protocol_error"


## Custom Exceptions


class MailRelayError(Exception):
    """Base exception for all mailrelay errors."""

    category = ErrorCategory.UNKNOWN
    kind: Optional[ErrorKind] = None
    user_message = "An error occurred"

    def __init__(
        self, message: str | None = None, details: Dict[str, Any] | None = None
    ):
        """Initialise MailRelayError with optional message and details."""
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error details to a dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "category": self.category.value,
            "kind": self.kind.value if self.kind else None,
            "message": self.message,
            "details": self.details,
        }


## Configuration Errors


class ConfigurationError(MailRelayError):
    """Base exception for configuration-related errors."""

    category = ErrorCategory.CONFIGURATION
    user_message = "A configuration error occurred"


class InvalidConfigError(ConfigurationError):
    """Exception for invalid configuration settings.

    Raised before any network I/O when a delivery cannot even be attempted.
    """

    kind = ErrorKind.INVALID_CONFIG
    user_message = "Invalid configuration settings"


class InvalidMessageError(InvalidConfigError):
    """Exception for a message that cannot be put on the wire."""

    category = ErrorCategory.VALIDATION
    user_message = "Invalid message"


## Network Errors


class NetworkError(MailRelayError):
    """Base exception for network-related errors."""

    category = ErrorCategory.NETWORK
    kind = ErrorKind.PROTOCOL_ERROR
    user_message = "A network error occurred"


class SMTPError(NetworkError):
    """Base exception for SMTP session failures."""

    user_message = "Failed to send email"


class SMTPConnectError(SMTPError):
    """Exception for DNS, refused or timed out connections."""

    kind = ErrorKind.CONNECT_FAILED
    user_message = "Failed to connect to email server"


class SMTPTLSError(SMTPError):
    """Exception for failed TLS handshakes, implicit or via STARTTLS."""

    kind = ErrorKind.TLS_FAILED
    user_message = "Failed to establish a TLS session"


class SMTPProtocolError(SMTPError):
    """Exception for transport failures or unexpected replies mid-session."""

    kind = ErrorKind.PROTOCOL_ERROR
    user_message = "SMTP protocol error"


class SMTPReplyError(SMTPProtocolError):
    """Exception for a reply code rejected under strict reply checking."""

    def __init__(
        self,
        code: Optional[int],
        reply_text: str,
        command: str,
        details: Dict[str, Any] | None = None,
    ):
        self.code = code
        self.reply_text = reply_text
        self.command = command
        super().__init__(
            f"Unexpected reply to {command}: {reply_text}",
            details={"code": code, "command": command, **(details or {})},
        )


class NetworkTimeoutError(SMTPProtocolError):
    """Exception for network timeout errors."""

    user_message = "The connection timed out"


class DeliveryCancelledError(SMTPError):
    """Exception raised when the caller's cancel token fires mid-session."""

    user_message = "Delivery cancelled"


## Authentication Errors


class AuthenticationError(MailRelayError):
    """Base exception for authentication-related errors."""

    category = ErrorCategory.AUTHENTICATION
    kind = ErrorKind.AUTH_FAILED
    user_message = "An authentication error occurred"


class SMTPAuthenticationError(AuthenticationError):
    """Exception for credentials rejected by the server's AUTH LOGIN."""

    user_message = "SMTP authentication failed"

    def __init__(self, reply_text: str, details: Dict[str, Any] | None = None):
        self.reply_text = reply_text
        super().__init__(f"SMTP authentication failed: {reply_text}", details)


## File System Errors


class FileSystemError(MailRelayError):
    """Base exception for file system-related errors."""

    category = ErrorCategory.FILE_SYSTEM
    user_message = "A file system error occurred"


## Error Handler


class ErrorHandler:
    """Centralized error handling and logging."""

    @staticmethod
    def handle(
        error: Exception, context: str = "", log_traceback: bool = True
    ) -> Dict[str, Any]:
        """Handle errors with logging and user-friendly message."""
        if isinstance(error, MailRelayError):
            _get_logger().error(f"{context}: {error.message}", extra=error.details)
            if log_traceback:
                _get_logger().exception(error)
            return error.to_dict()
        else:
            _get_logger().error(f"{context}: {str(error)}")
            if log_traceback:
                _get_logger().exception(error)
            return {
                "error_type": "UnknownError",
                "category": ErrorCategory.UNKNOWN.value,
                "kind": None,
                "message": str(error),
                "details": {"context": context},
            }


## Utility Functions


def format_error_message(error: Exception) -> str:
    """Format an error message for display."""
    if isinstance(error, MailRelayError):
        return error.message
    else:
        return "An unexpected error occurred - check logs for details."

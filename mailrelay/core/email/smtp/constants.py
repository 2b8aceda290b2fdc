"""SMTP constants and configuration values."""


class SMTPResponse:
    """Standard SMTP response codes."""

    # 2xx Success
    SERVICE_READY = 220  # <domain> Service ready
    SERVICE_CLOSING = 221  # Service closing transmission channel
    AUTH_SUCCESSFUL = 235  # Authentication successful
    OK = 250  # Requested mail action okay, completed
    USER_NOT_LOCAL = 251  # User not local; will forward

    # 3xx Intermediate
    AUTH_CONTINUE = 334  # Server challenge (AUTH LOGIN prompts)
    START_MAIL = 354  # Start mail input; end with <CRLF>.<CRLF>

    # 4xx Transient Failure
    SERVICE_NOT_AVAILABLE = 421  # Service not available, closing channel
    TLS_NOT_AVAILABLE = 454  # TLS not available due to temporary reason

    # 5xx Permanent Failure
    SYNTAX_ERROR = 500  # Syntax error, command unrecognized
    BAD_SEQUENCE = 503  # Bad sequence of commands
    AUTH_CREDENTIALS_INVALID = 535  # Authentication credentials invalid
    MAILBOX_UNAVAILABLE = 550  # Mailbox unavailable


class Timeouts:
    """Timeout values for SMTP operations (in seconds)."""

    SMTP_DEFAULT = 30.0  # Any single read, write, connect or handshake
    SMTP_QUIT = 5.0  # QUIT after the message was accepted


class SMTPPorts:
    """Standard SMTP port numbers."""

    # Submission ports (client to server)
    SUBMISSION = 587  # STARTTLS (recommended)
    SUBMISSION_SSL = 465  # Implicit TLS/SSL

    # Legacy/relay ports
    SMTP = 25  # Plain SMTP (server-to-server)

    @classmethod
    def is_implicit_ssl(cls, port: int) -> bool:
        """Check if port uses implicit SSL.

        Args:
            port: SMTP port number

        Returns:
            True if implicit SSL, False otherwise
        """
        return port == cls.SUBMISSION_SSL


class ConnectionLimits:
    """Connection and message limits."""

    MAX_REPLY_LINES = 100  # Guard against a relay that never ends its reply


CRLF = "\r\n"

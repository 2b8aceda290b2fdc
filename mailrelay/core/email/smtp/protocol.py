"""Low-level SMTP command and reply handling.

Pure helpers shared by the session and the transports: the session states,
reply parsing, command framing and DATA payload preparation. Nothing here
touches a socket.
"""

import base64
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .constants import CRLF, SMTPResponse

_REPLY_LINE = re.compile(r"^(\d{3})([ -]?)(.*)$")


class SessionState(str, Enum):
    """Stages of one SMTP delivery attempt, in the order they run."""

    CONNECT = "connect"
    GREETING = "greeting"
    EHLO = "ehlo"
    STARTTLS = "starttls"
    AUTHENTICATE = "authenticate"
    ENVELOPE = "envelope"
    DATA = "data"
    CLOSE = "close"


@dataclass
class SMTPReply:
    """A complete (possibly multiline) server reply."""

    code: Optional[int] = None
    lines: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def raw(self) -> str:
        """Reply as the server sent it, minus trailing whitespace."""
        return self.text.strip()

    @property
    def is_positive(self) -> bool:
        return self.code is not None and 200 <= self.code < 400

    def starts_with(self, code: int) -> bool:
        return self.raw.startswith(str(code))

    def __str__(self) -> str:
        return self.raw


def is_final_line(line: str) -> bool:
    """Tell whether a reply line ends the reply.

    ``250-...`` continues a multiline reply; anything else (``250 ok``, a
    bare ``250`` or a malformed line) ends it.
    """
    match = _REPLY_LINE.match(line)
    if match is None:
        return True
    return match.group(2) != "-"


def parse_reply(lines: List[str]) -> SMTPReply:
    """Build an SMTPReply from decoded lines, tolerating malformed input.

    The code is taken from the final line; a reply without a numeric code
    gets ``code=None``.
    """
    cleaned = [line.rstrip("\r\n") for line in lines]
    code = None
    if cleaned:
        match = _REPLY_LINE.match(cleaned[-1])
        if match:
            code = int(match.group(1))
    return SMTPReply(code=code, lines=cleaned)


def format_command(command: str) -> bytes:
    """Frame a command line for the wire."""
    return (command + CRLF).encode("utf-8")


def ehlo_command(client_hostname: str) -> str:
    return f"EHLO {client_hostname}"


def mail_from_command(address: str) -> str:
    return f"MAIL FROM:<{address}>"


def rcpt_to_command(address: str) -> str:
    return f"RCPT TO:<{address}>"


def auth_login_token(value: str) -> str:
    """Base64 encode one AUTH LOGIN turn (username or password)."""
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def dot_stuff(message: bytes) -> bytes:
    """Prepare an encoded message for DATA.

    Normalises line endings to CRLF, doubles any leading dot and appends the
    ``CRLF.CRLF`` terminator.
    """
    text = message.replace(b"\r\n", b"\n").replace(b"\r", b"\n")
    if text.endswith(b"\n"):
        text = text[:-1]

    lines = [b"." + line if line.startswith(b".") else line for line in text.split(b"\n")]
    return b"\r\n".join(lines) + b"\r\n.\r\n"


def expected_codes(state: SessionState, command: str) -> tuple:
    """Reply codes accepted for a command under strict reply checking."""
    if state is SessionState.GREETING:
        return (SMTPResponse.SERVICE_READY,)
    if state is SessionState.STARTTLS:
        return (SMTPResponse.SERVICE_READY,)
    if command == "DATA":
        return (SMTPResponse.START_MAIL,)
    if command.startswith("RCPT"):
        return (SMTPResponse.OK, SMTPResponse.USER_NOT_LOCAL)
    return (SMTPResponse.OK,)

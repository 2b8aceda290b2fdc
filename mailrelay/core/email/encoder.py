"""MIME message encoder for single-part text and HTML messages.

Builds the exact byte sequence sent after the DATA command: RFC 2822
headers followed by a base64 body, every line terminated by CRLF. The
encoder is pure; it performs no I/O and accepts any string input.
"""

import base64
from email.header import decode_header, make_header
from email.utils import formataddr

CRLF = "\r\n"
BASE64_LINE_LENGTH = 76

# RFC 2047 caps an encoded-word at 75 characters; "=?UTF-8?B?" and "?="
# leave 63, so each word carries at most 45 bytes (60 base64 characters).
ENCODED_WORD_BYTES = 45


def encode_word(text: str) -> str:
    """Encode a header value as a single UTF-8 base64 encoded-word."""
    payload = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return f"=?UTF-8?B?{payload}?="


def encode_header(text: str) -> str:
    """Encode a header value as folded encoded-words.

    Characters are never split across words, so each word decodes on its
    own. Words after the first go on CRLF-space continuation lines.
    """
    chunks = []
    current = ""
    for char in text:
        if len((current + char).encode("utf-8")) > ENCODED_WORD_BYTES:
            chunks.append(current)
            current = ""
        current += char
    chunks.append(current)

    return (CRLF + " ").join(encode_word(chunk) for chunk in chunks)


def decode_subject(value: str) -> str:
    """Decode a header value that may contain encoded-words."""
    return str(make_header(decode_header(value)))


def format_address(address: str, display_name: str = "") -> str:
    """Render a mailbox for a From/To header.

    Display names with specials are quoted; non-ASCII ones are carried as an
    encoded-word.
    """
    return formataddr((display_name, address), charset="utf-8")


def encode_body(body: str, wrap: bool = True) -> str:
    """UTF-8 then base64 encode a body, wrapped at 76 columns by default."""
    encoded = base64.b64encode(body.encode("utf-8")).decode("ascii")
    if not wrap:
        return encoded

    return CRLF.join(
        encoded[i : i + BASE64_LINE_LENGTH]
        for i in range(0, len(encoded), BASE64_LINE_LENGTH)
    )


def encode_message(
    from_address: str,
    from_display_name: str,
    to_address: str,
    subject: str,
    body: str,
    is_html: bool,
    wrap: bool = True,
) -> bytes:
    """Build the MIME message for one recipient.

    Args:
        from_address: Sender mailbox
        from_display_name: Sender display name, may be empty
        to_address: Recipient mailbox
        subject: Subject text, any characters
        body: Rendered body, plain text or HTML
        is_html: Selects text/html over text/plain
        wrap: Wrap the base64 body at 76 columns

    Returns:
        Headers and body joined with CRLF, without the DATA terminator
    """
    content_type = "text/html" if is_html else "text/plain"

    headers = [
        f"From: {format_address(from_address, from_display_name)}",
        f"To: {to_address}",
        f"Subject: {encode_header(subject)}",
        "MIME-Version: 1.0",
        f"Content-Type: {content_type}; charset=UTF-8",
        "Content-Transfer-Encoding: base64",
    ]

    message = CRLF.join(headers) + CRLF + CRLF + encode_body(body, wrap=wrap) + CRLF
    return message.encode("utf-8")

"""SMTP transport - the socket capability set the session runs over.

A transport can connect, upgrade to TLS, read a reply, write bytes and
close. The session owns exactly one live transport at a time and applies
timeouts and cancellation around every call; transports themselves never
retry, log or swallow errors.
"""

import asyncio
import ssl
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional

from mailrelay.utils.errors import SMTPProtocolError

from .constants import ConnectionLimits
from .protocol import SMTPReply, is_final_line, parse_reply


class SMTPTransport(ABC):
    """Capability set {upgrade-tls, read, write, close} over one socket."""

    @property
    @abstractmethod
    def is_tls(self) -> bool:
        """Whether the channel is currently encrypted."""

    @abstractmethod
    async def read_reply(self) -> SMTPReply:
        """Read one complete server reply.

        Raises:
            ConnectionError: If the server closes the connection
        """

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Write bytes and wait until they are flushed to the socket."""

    @abstractmethod
    async def start_tls(self, server_hostname: str) -> "SMTPTransport":
        """Upgrade to TLS in place of this handle.

        Returns:
            A new transport handle for the encrypted channel. The handle this
            was called on is retired and must not be used again.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying socket."""


TransportFactory = Callable[..., Awaitable[SMTPTransport]]


def create_ssl_context() -> ssl.SSLContext:
    """Default client context: certificate and hostname verification on."""
    return ssl.create_default_context()


class StreamTransport(SMTPTransport):
    """SMTPTransport over asyncio streams."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        tls: bool = False,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        self._reader = reader
        self._writer = writer
        self._tls = tls
        self._ssl_context = ssl_context
        self._retired = False

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        *,
        tls: bool = False,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> "StreamTransport":
        """Open a TCP connection, negotiating TLS immediately when asked.

        Args:
            host: Server hostname
            port: Server port
            tls: Implicit TLS (handshake happens as part of connecting)
            ssl_context: Context for implicit TLS and later STARTTLS

        Returns:
            Connected StreamTransport
        """
        context = ssl_context or create_ssl_context()
        reader, writer = await asyncio.open_connection(
            host,
            port,
            ssl=context if tls else None,
            server_hostname=host if tls else None,
        )
        return cls(reader, writer, tls=tls, ssl_context=context)

    @property
    def is_tls(self) -> bool:
        return self._tls

    def _check_usable(self) -> None:
        if self._retired:
            raise RuntimeError("Transport handle was retired by a TLS upgrade")

    async def read_reply(self) -> SMTPReply:
        self._check_usable()
        lines: List[str] = []

        while True:
            try:
                raw = await self._reader.readline()
            except (asyncio.LimitOverrunError, ValueError) as e:
                raise SMTPProtocolError(f"Server reply line too long: {e}") from e

            if not raw:
                raise ConnectionResetError("Connection closed by server")

            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            lines.append(line)

            if is_final_line(line):
                return parse_reply(lines)

            if len(lines) >= ConnectionLimits.MAX_REPLY_LINES:
                raise SMTPProtocolError(
                    f"Server reply exceeded {ConnectionLimits.MAX_REPLY_LINES} lines"
                )

    async def write(self, data: bytes) -> None:
        self._check_usable()
        self._writer.write(data)
        await self._writer.drain()

    async def start_tls(self, server_hostname: str) -> "StreamTransport":
        self._check_usable()
        context = self._ssl_context or create_ssl_context()
        await self._writer.start_tls(context, server_hostname=server_hostname)

        self._retired = True
        return StreamTransport(self._reader, self._writer, tls=True, ssl_context=context)

    async def close(self) -> None:
        if self._retired:
            return
        self._retired = True
        self._writer.close()
        await self._writer.wait_closed()


async def open_stream_transport(
    host: str,
    port: int,
    *,
    tls: bool = False,
    ssl_context: Optional[ssl.SSLContext] = None,
) -> SMTPTransport:
    """Default TransportFactory used by SMTPSession."""
    return await StreamTransport.open(host, port, tls=tls, ssl_context=ssl_context)

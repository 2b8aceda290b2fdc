"""SMTP session - one synchronous, single-recipient delivery attempt.

The session walks a strictly linear sequence of states::

    CONNECT -> GREETING -> EHLO -> [STARTTLS -> EHLO] -> AUTHENTICATE
            -> ENVELOPE -> DATA -> CLOSE

Any failure ends the attempt with a DeliveryOutcome tagged with the state it
happened in. The transport is closed on every path. Only a config or
envelope that can never be delivered raises (InvalidConfigError), and it does
so before any network I/O.
"""

import asyncio
import ssl
import time
from typing import Optional

from mailrelay.core.email.encoder import encode_message
from mailrelay.utils.config_manager import get_config_manager
from mailrelay.utils.errors import (
    DeliveryCancelledError,
    ErrorKind,
    MailRelayError,
    NetworkTimeoutError,
    SMTPAuthenticationError,
    SMTPConnectError,
    SMTPProtocolError,
    SMTPReplyError,
    SMTPTLSError,
)
from mailrelay.utils.logging import get_logger

from .connection import SMTPTransport, TransportFactory, open_stream_transport
from .constants import SMTPResponse, Timeouts
from .models import ConnectionConfig, DeliveryOutcome, Envelope
from .protocol import (
    SessionState,
    SMTPReply,
    auth_login_token,
    dot_stuff,
    ehlo_command,
    expected_codes,
    format_command,
    mail_from_command,
    rcpt_to_command,
)

logger = get_logger(__name__)

# Error kind for transport failures, by the state they happen in.
_STATE_KINDS = {
    SessionState.CONNECT: ErrorKind.CONNECT_FAILED,
    SessionState.STARTTLS: ErrorKind.TLS_FAILED,
}


class SMTPSession:
    """Drives the SMTP exchange for exactly one delivery attempt.

    A session must not be reused: protocol state is never reset, so a second
    call to run() or verify() raises RuntimeError.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        envelope: Optional[Envelope] = None,
        *,
        timeout: Optional[float] = Timeouts.SMTP_DEFAULT,
        deadline: Optional[float] = None,
        cancel_token: Optional[asyncio.Event] = None,
        strict: bool = False,
        client_hostname: str = "localhost",
        wrap_body: bool = True,
        transport_factory: Optional[TransportFactory] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        """Initialise a session.

        Args:
            config: Connection parameters
            envelope: Recipient and message (required for run())
            timeout: Bound on each connect, handshake, read and write
            deadline: Absolute event loop time after which nothing new starts
            cancel_token: Event that aborts the in-flight operation when set
            strict: Require 2xx/3xx codes where the lax default only reads
            client_hostname: Identity sent with EHLO
            wrap_body: Wrap the base64 body at 76 columns
            transport_factory: Coroutine function opening an SMTPTransport
            ssl_context: TLS context for implicit TLS and STARTTLS
        """
        self.config = config
        self.envelope = envelope
        self.timeout = timeout
        self.deadline = deadline
        self.cancel_token = cancel_token
        self.strict = strict
        self.client_hostname = client_hostname
        self.wrap_body = wrap_body
        self._transport_factory = transport_factory or open_stream_transport
        self._ssl_context = ssl_context
        self._transport: Optional[SMTPTransport] = None
        self._state = SessionState.CONNECT
        self._used = False

    @property
    def state(self) -> SessionState:
        return self._state

    async def run(self) -> DeliveryOutcome:
        """Deliver the envelope.

        Returns:
            DeliveryOutcome describing success or the failing stage

        Raises:
            InvalidConfigError: If config or envelope is unusable (no I/O done)
            RuntimeError: If the session was already used
        """
        if self.envelope is None:
            raise RuntimeError("SMTPSession.run() requires an envelope")
        return await self._execute(send_message=True)

    async def verify(self) -> DeliveryOutcome:
        """Connect, negotiate TLS and authenticate, then QUIT without sending."""
        return await self._execute(send_message=False)

    ## State machine

    async def _execute(self, send_message: bool) -> DeliveryOutcome:
        if self._used:
            raise RuntimeError("SMTPSession objects serve a single delivery attempt")
        self._used = True

        self.config.validate_for_delivery()
        if send_message:
            self.envelope.validate_for_delivery()

        start_time = time.monotonic()

        try:
            await self._connect()
            await self._greeting()
            await self._ehlo()

            if self.config.uses_starttls:
                await self._starttls()

            await self._authenticate()

            if send_message:
                await self._send_envelope()
                await self._data()
            else:
                await self._quit()

            return DeliveryOutcome.ok(duration=time.monotonic() - start_time)

        except MailRelayError as e:
            return DeliveryOutcome.failure(
                e.kind or ErrorKind.PROTOCOL_ERROR,
                e.message,
                state=self._state,
                duration=time.monotonic() - start_time,
            )

        finally:
            await self._close()

    async def _connect(self) -> None:
        self._state = SessionState.CONNECT
        implicit = self.config.uses_implicit_tls

        kwargs = {"tls": implicit}
        if self._ssl_context is not None:
            kwargs["ssl_context"] = self._ssl_context

        self._transport = await self._io(
            lambda: self._transport_factory(self.config.host, self.config.port, **kwargs)
        )

    async def _greeting(self) -> None:
        self._state = SessionState.GREETING
        reply = await self._read()
        self._check(reply, "greeting")

    async def _ehlo(self) -> None:
        self._state = SessionState.EHLO
        await self._command(ehlo_command(self.client_hostname))

    async def _starttls(self) -> None:
        self._state = SessionState.STARTTLS
        reply = await self._command("STARTTLS", check=False)
        if reply.code != SMTPResponse.SERVICE_READY:
            raise SMTPTLSError(
                f"Server refused STARTTLS: {reply.raw or '<no reply>'}",
                details={"code": reply.code},
            )

        current = self._transport
        self._transport = await self._io(lambda: current.start_tls(self.config.host))

        await self._ehlo()

    async def _authenticate(self) -> None:
        self._state = SessionState.AUTHENTICATE

        reply = await self._command("AUTH LOGIN", check=False)
        self._check_auth_prompt(reply)

        reply = await self._command(
            auth_login_token(self.config.username), check=False
        )
        self._check_auth_prompt(reply)

        reply = await self._command(
            auth_login_token(self.config.password.get_secret_value()), check=False
        )
        if not reply.starts_with(SMTPResponse.AUTH_SUCCESSFUL):
            raise SMTPAuthenticationError(
                reply.raw or "<no reply>",
                details={"code": reply.code, "host": self.config.host},
            )

    async def _send_envelope(self) -> None:
        self._state = SessionState.ENVELOPE
        await self._command(mail_from_command(self.config.from_address))
        await self._command(rcpt_to_command(self.envelope.to_address))

    async def _data(self) -> None:
        self._state = SessionState.DATA
        await self._command("DATA")

        message = encode_message(
            self.config.from_address,
            self.config.from_display_name,
            self.envelope.to_address,
            self.envelope.subject,
            self.envelope.body,
            self.envelope.is_html,
            wrap=self.wrap_body,
        )
        payload = dot_stuff(message)
        await self._io(lambda: self._transport.write(payload))

        # Lax mode: a drained terminator is delivery; the final reply is
        # read only to keep the exchange in step before QUIT.
        try:
            reply = await self._read()
        except MailRelayError:
            if self.strict:
                raise
            return

        if self.strict:
            self._check(reply, "end of data", codes=(SMTPResponse.OK,))

        await self._quit()

    async def _quit(self) -> None:
        try:
            await self._io(
                lambda: self._transport.write(format_command("QUIT")),
                timeout=Timeouts.SMTP_QUIT,
            )
            await self._io(self._transport.read_reply, timeout=Timeouts.SMTP_QUIT)
        except MailRelayError:
            pass

    async def _close(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return

        try:
            await asyncio.wait_for(transport.close(), timeout=Timeouts.SMTP_QUIT)
        except Exception:
            pass  # Close is best-effort

    ## Command helpers

    async def _command(self, command: str, check: bool = True) -> SMTPReply:
        await self._io(lambda: self._transport.write(format_command(command)))
        reply = await self._read()
        if check:
            self._check(reply, command)
        return reply

    async def _read(self) -> SMTPReply:
        return await self._io(lambda: self._transport.read_reply())

    def _check(self, reply: SMTPReply, command: str, codes: tuple = ()) -> None:
        """Validate a reply code when strict reply checking is on."""
        if not self.strict:
            return

        allowed = codes or expected_codes(self._state, command)
        if reply.code not in allowed:
            raise SMTPReplyError(reply.code, reply.raw or "<no reply>", command)

    def _check_auth_prompt(self, reply: SMTPReply) -> None:
        if self.strict and reply.code != SMTPResponse.AUTH_CONTINUE:
            raise SMTPAuthenticationError(
                reply.raw or "<no reply>",
                details={"code": reply.code, "host": self.config.host},
            )

    ## I/O guard

    def _operation_timeout(self, timeout: Optional[float]) -> Optional[float]:
        if self.deadline is None:
            return timeout

        remaining = self.deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise TimeoutError("Delivery deadline exceeded")
        return remaining if timeout is None else min(timeout, remaining)

    async def _io(self, operation, timeout: Optional[float] = None):
        """Run one transport operation under timeout, deadline and cancel token.

        Builtin socket, TLS and timeout errors are translated into the
        MailRelayError matching the current state.
        """
        try:
            bound = self._operation_timeout(
                self.timeout if timeout is None else min(timeout, self.timeout or timeout)
            )
            if self.cancel_token is None:
                return await asyncio.wait_for(operation(), timeout=bound)
            return await self._until_cancelled(operation, bound)

        except MailRelayError:
            raise

        except ssl.SSLError as e:
            if self._state in (SessionState.CONNECT, SessionState.STARTTLS):
                raise SMTPTLSError(
                    f"TLS handshake with {self.config.host} failed: {e}",
                    details={"host": self.config.host, "state": self._state.value},
                ) from e
            raise SMTPProtocolError(
                f"TLS error during {self._state.value}: {e}",
                details={"state": self._state.value},
            ) from e

        except TimeoutError as e:
            detail = str(e) or f"Timed out during {self._state.value}"
            raise self._state_error(detail, NetworkTimeoutError) from e

        except (OSError, EOFError) as e:
            detail = f"Connection failure during {self._state.value}: {e}"
            raise self._state_error(detail, SMTPProtocolError) from e

    def _state_error(self, detail: str, default: type) -> MailRelayError:
        kind = _STATE_KINDS.get(self._state)
        details = {
            "host": self.config.host,
            "port": self.config.port,
            "state": self._state.value,
        }
        if kind is ErrorKind.CONNECT_FAILED:
            return SMTPConnectError(detail, details=details)
        if kind is ErrorKind.TLS_FAILED:
            return SMTPTLSError(detail, details=details)
        return default(detail, details=details)

    async def _until_cancelled(self, operation, bound: Optional[float]):
        if self.cancel_token.is_set():
            raise self._cancelled()

        op = asyncio.ensure_future(asyncio.wait_for(operation(), timeout=bound))
        waiter = asyncio.ensure_future(self.cancel_token.wait())

        try:
            done, _ = await asyncio.wait(
                {op, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            op.cancel()
            waiter.cancel()
            raise

        waiter.cancel()
        if op in done:
            return op.result()

        op.cancel()
        try:
            await op
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
        except Exception:
            pass  # Outcome reports the cancellation, not the aborted operation

        raise self._cancelled()

    def _cancelled(self) -> DeliveryCancelledError:
        error = DeliveryCancelledError(
            "Delivery cancelled", details={"state": self._state.value}
        )
        error.kind = _STATE_KINDS.get(self._state, ErrorKind.PROTOCOL_ERROR)
        return error


async def deliver(
    config: ConnectionConfig,
    envelope: Envelope,
    *,
    timeout: Optional[float] = None,
    deadline: Optional[float] = None,
    cancel_token: Optional[asyncio.Event] = None,
    strict: Optional[bool] = None,
    client_hostname: Optional[str] = None,
    wrap_body: Optional[bool] = None,
    transport_factory: Optional[TransportFactory] = None,
    ssl_context: Optional[ssl.SSLContext] = None,
) -> DeliveryOutcome:
    """Deliver one message to one recipient in a fresh SMTPSession.

    Defaults for timeout, strict, client_hostname and wrap_body come from
    the ``smtp`` section of the application configuration.

    Returns:
        DeliveryOutcome; protocol-level failures never raise

    Raises:
        InvalidConfigError: If config or envelope is unusable (no I/O done)
    """
    settings = None
    if None in (timeout, strict, client_hostname, wrap_body):
        settings = get_config_manager().config.smtp

    session = SMTPSession(
        config,
        envelope,
        timeout=settings.timeout if timeout is None else timeout,
        deadline=deadline,
        cancel_token=cancel_token,
        strict=settings.strict_replies if strict is None else strict,
        client_hostname=(
            settings.client_hostname if client_hostname is None else client_hostname
        ),
        wrap_body=settings.wrap_body if wrap_body is None else wrap_body,
        transport_factory=transport_factory,
        ssl_context=ssl_context,
    )

    try:
        outcome = await session.run()
    except MailRelayError as e:
        logger.warning(
            "Email delivery rejected before connecting",
            extra={"recipient": envelope.to_address, "error": e.message},
        )
        raise

    if outcome.success:
        logger.info(
            "Email delivered",
            extra={
                "recipient": envelope.to_address,
                "server": config.host,
                "tls_mode": config.tls_mode,
                "duration_seconds": round(outcome.duration, 2),
            },
        )
    else:
        logger.warning(
            "Email delivery failed",
            extra={
                "recipient": envelope.to_address,
                "server": config.host,
                "failed_stage": outcome.failed_stage.value,
                "failed_state": outcome.failed_state.value,
                "error": outcome.error_detail,
            },
        )

    return outcome

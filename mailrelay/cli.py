"""mailrelay command line - send a message or check an SMTP account."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mailrelay.core.email.services.send import EmailSendService, EmailSettings
from mailrelay.core.email.smtp.client import SMTPSession
from mailrelay.core.email.smtp.models import DeliveryOutcome
from mailrelay.utils.config_manager import get_config_manager
from mailrelay.utils.errors import (
    ErrorHandler,
    InvalidConfigError,
    MailRelayError,
    format_error_message,
)
from mailrelay.utils.logging import get_logger, init_logging

logger = get_logger(__name__)


def load_settings(path: Path) -> EmailSettings:
    """Load a tenant settings record from a JSON file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return EmailSettings(**data)
    except OSError as e:
        raise InvalidConfigError(f"Cannot read settings file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise InvalidConfigError(f"Settings file is not valid JSON: {e}") from e
    except (TypeError, ValidationError) as e:
        raise InvalidConfigError(f"Settings file does not match schema: {e}") from e


def render_outcome(console: Console, outcome: DeliveryOutcome, title: str) -> None:
    table = Table(title=title, show_header=False)
    table.add_column("field", style="bold")
    table.add_column("value")

    status = "[green]success[/green]" if outcome.success else "[red]failed[/red]"
    table.add_row("status", status)
    if not outcome.success:
        table.add_row("stage", outcome.failed_stage.value)
        table.add_row("state", outcome.failed_state.value)
        table.add_row("error", escape(outcome.error_detail or ""))
    table.add_row("duration", f"{outcome.duration:.2f}s")

    console.print(table)


async def cmd_send(args, console: Console) -> int:
    settings = load_settings(args.settings)
    options = {}
    if args.strict:
        options["strict"] = True
    if args.timeout is not None:
        options["timeout"] = args.timeout

    service = EmailSendService(settings, **options)
    result = await service.send_email(
        to=args.to,
        subject=args.subject,
        body=args.body,
        html=args.html,
        to_name=args.to_name,
        message_type=args.message_type,
    )

    render_outcome(console, result.outcome, f"Delivery to {args.to}")
    if args.log_json:
        console.print_json(json.dumps(result.log_entry.to_dict()))

    return 0 if result.success else 1


async def cmd_check(args, console: Console) -> int:
    settings = load_settings(args.settings)
    smtp = get_config_manager().config.smtp

    session = SMTPSession(
        settings.to_connection_config(),
        timeout=smtp.timeout if args.timeout is None else args.timeout,
        strict=True if args.strict else smtp.strict_replies,
        client_hostname=smtp.client_hostname,
    )
    outcome = await session.verify()

    render_outcome(console, outcome, f"Account check for {settings.smtp_host}")
    return 0 if outcome.success else 1


def cmd_config(args, console: Console) -> int:
    manager = get_config_manager()

    if args.config_action == "set":
        value = args.value
        if args.json:
            try:
                value = json.loads(args.value)
            except json.JSONDecodeError as e:
                raise InvalidConfigError(f"Value is not valid JSON: {e}") from e

        manager.set_config(args.key, value)
        console.print(f"[green]Updated {args.key}[/green]")
        return 0

    console.print_json(manager.config.model_dump_json())
    return 0


def positive_float(value: str) -> float:
    """argparse type for timeouts."""
    try:
        number = float(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"{value!r} is not a number") from e
    if number <= 0:
        raise argparse.ArgumentTypeError("timeout must be greater than 0")
    return number


def setup_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mailrelay",
        description="Deliver email through a tenant's SMTP relay",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    send_parser = subparsers.add_parser("send", help="Send one message")
    send_parser.add_argument("--settings", type=Path, required=True, help="Settings JSON file")
    send_parser.add_argument("--to", required=True, help="Recipient address")
    send_parser.add_argument("--to-name", help="Recipient name (logged only)")
    send_parser.add_argument("--subject", required=True, help="Subject line")
    body_group = send_parser.add_mutually_exclusive_group(required=True)
    body_group.add_argument("--body", help="Plain text body")
    body_group.add_argument("--html", help="HTML body")
    send_parser.add_argument("--message-type", default="GENERAL", help="Log category")
    send_parser.add_argument("--strict", action="store_true", help="Validate every reply code")
    send_parser.add_argument("--timeout", type=positive_float, help="Per-operation timeout in seconds")
    send_parser.add_argument("--log-json", action="store_true", help="Print the delivery log entry")

    check_parser = subparsers.add_parser("check", help="Connect and authenticate only")
    check_parser.add_argument("--settings", type=Path, required=True, help="Settings JSON file")
    check_parser.add_argument("--strict", action="store_true", help="Validate every reply code")
    check_parser.add_argument("--timeout", type=positive_float, help="Per-operation timeout in seconds")

    config_parser = subparsers.add_parser("config", help="Show or change configuration")
    config_sub = config_parser.add_subparsers(dest="config_action")
    config_sub.add_parser("show", help="Print the configuration")
    set_parser = config_sub.add_parser("set", help="Set a dotted configuration key")
    set_parser.add_argument("key", help="e.g. smtp.timeout")
    set_parser.add_argument("value")
    set_parser.add_argument("--json", action="store_true", help="Parse value as JSON")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 = success, 1 = error)
    """
    args = setup_argument_parser().parse_args(argv)
    console = Console()
    init_logging().set_level(args.log_level)

    try:
        if args.command == "config":
            return cmd_config(args, console)
        if args.command == "send":
            return asyncio.run(cmd_send(args, console))
        return asyncio.run(cmd_check(args, console))

    except MailRelayError as e:
        ErrorHandler.handle(e, f"mailrelay {args.command}", log_traceback=False)
        console.print(f"[red]Error: {escape(format_error_message(e))}[/red]")
        return 1

    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())

"""chatsync main entry point — CLI interface to the live chat feed.

Commands:
  chatsync watch              Follow the feed live
  chatsync send "message"     Send a message (optionally --attach a file)
  chatsync delete MESSAGE_ID  Soft-delete one of your messages
  chatsync probe              Check whether attachments are supported
  chatsync status             Show configuration
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

from chatsync import __version__
from chatsync.client import ChatSyncClient
from chatsync.config import ChatSyncConfig, load_config
from chatsync.errors import ChatSyncError
from chatsync.feed.message import FeedSnapshot, Message, OutgoingAttachment
from chatsync.transport.negotiator import TransportState

console = Console()

_TRANSPORT_BADGES = {
    TransportState.DETECTING: "[yellow]⏳ Detecting[/]",
    TransportState.REACTIVE: "[green]🚀 Live (WebSocket)[/]",
    TransportState.POLLING: "[cyan]🔄 Polling[/]",
}


# ─── Rendering ───────────────────────────────────────────────────


def _format_message(msg: Message, own_id: str) -> Text:
    stamp = datetime.fromtimestamp(msg.created_at / 1000).strftime("%H:%M")
    style = "bold green" if msg.sender_id == own_id else "bold blue"
    line = Text()
    line.append(f"{stamp} ", style="dim")
    line.append(msg.sender_name or msg.sender_id, style=style)
    line.append(f": {msg.content}")
    if msg.attachment is not None:
        line.append(f"  📎 {msg.attachment.file_name or msg.kind.value}", style="magenta")
    line.append(f"  [{msg.id}]", style="dim")
    return line


def _render_snapshot(snapshot: FeedSnapshot, own_id: str, limit: int) -> None:
    console.clear()
    messages = list(snapshot)[-limit:]
    body = Text("\n").join(_format_message(m, own_id) for m in messages)
    console.print(
        Panel(
            body if messages else Text("No messages yet.", style="dim"),
            title=f"[bold cyan]💬 chatsync[/] ({len(snapshot)} messages)",
            border_style="blue",
        )
    )


# ─── CLI Commands ────────────────────────────────────────────────


def _setup_logging(verbose: bool = False) -> None:
    """Configure structured logging with Rich."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _report_error(error: ChatSyncError) -> None:
    console.print(f"[bold red]❌ {error.user_message}[/]")
    if error.retryable:
        console.print("[dim]This is usually temporary - please try again.[/]")


@click.group()
@click.version_option(__version__, prog_name="chatsync")
def cli() -> None:
    """💬 chatsync — live chat feed with automatic WebSocket/polling failover."""
    pass


@cli.command()
@click.option("--limit", default=30, show_default=True, help="Messages to show.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def watch(limit: int, verbose: bool) -> None:
    """Follow the feed live until Ctrl+C."""
    _setup_logging(verbose)
    try:
        asyncio.run(_run_watch(load_config(), limit))
    except KeyboardInterrupt:
        console.print("\n[dim]Goodbye! 👋[/]")


@cli.command()
@click.argument("message", default="")
@click.option(
    "--attach",
    "attach",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File to attach (live connection only).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def send(message: str, attach: Path | None, verbose: bool) -> None:
    """Send a message to the feed."""
    _setup_logging(verbose)
    if not message and attach is None:
        raise click.UsageError("Nothing to send: give a MESSAGE or --attach a file.")
    attachment = OutgoingAttachment.from_path(attach) if attach else None
    if not asyncio.run(_run_send(load_config(), message, attachment)):
        raise SystemExit(1)


@cli.command()
@click.argument("message_id")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def delete(message_id: str, verbose: bool) -> None:
    """Soft-delete one of your own messages."""
    _setup_logging(verbose)
    if not asyncio.run(_run_delete(load_config(), message_id)):
        raise SystemExit(1)


@cli.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def probe(verbose: bool) -> None:
    """Check whether the backend accepts attachments."""
    _setup_logging(verbose)
    if not asyncio.run(_run_probe(load_config())):
        raise SystemExit(1)


@cli.command()
def status() -> None:
    """Show the active configuration."""
    config = load_config()
    t = config.transport
    console.print("[bold cyan]💬 chatsync Status[/]\n")
    console.print(f"  Version: {__version__}")
    console.print(f"  Config: {config.config_dir}")
    console.print(f"  Backend: {config.backend.url}")
    console.print(f"  Live endpoint: {config.backend.ws_url}")
    console.print(f"  Topic: {config.backend.topic}")
    console.print(f"  Sender: {config.identity.sender_name} ({config.identity.sender_id})")
    console.print(
        f"  Timing: detect {t.detection_timeout}s, poll every {t.poll_interval}s, "
        f"stale after {t.staleness_threshold}s"
    )


# ─── Async Runners ───────────────────────────────────────────────


async def _run_watch(config: ChatSyncConfig, limit: int) -> None:
    """Render every canonical snapshot until interrupted."""
    client = ChatSyncClient.from_config(config)
    own_id = config.identity.sender_id

    client.on_feed(lambda snapshot: _render_snapshot(snapshot, own_id, limit))
    client.on_transport(
        lambda old, new: console.print(f"Transport: {_TRANSPORT_BADGES[new]}")
    )

    async with client:
        console.print(f"Transport: {_TRANSPORT_BADGES[client.transport]}")
        await asyncio.Event().wait()


async def _run_send(
    config: ChatSyncConfig,
    message: str,
    attachment: OutgoingAttachment | None,
) -> bool:
    async with ChatSyncClient.from_config(config) as client:
        try:
            with console.status("Detecting best backend..."):
                transport = await client.wait_for_transport(
                    timeout=config.transport.detection_timeout * 3
                )
            await client.send(message, attachment)
        except ChatSyncError as e:
            _report_error(e)
            return False
    console.print(f"[green]✅ Sent via {_TRANSPORT_BADGES[client.transport]}[/]")
    if client.transport is not transport:
        console.print("[yellow]Live connection dropped; switched to polling.[/]")
    return True


async def _run_delete(config: ChatSyncConfig, message_id: str) -> bool:
    async with ChatSyncClient.from_config(config) as client:
        try:
            await client.wait_for_transport(timeout=config.transport.detection_timeout * 3)
            await client.delete(message_id)
        except ChatSyncError as e:
            _report_error(e)
            return False
    console.print(f"[green]🗑️  Deleted {message_id}[/]")
    return True


async def _run_probe(config: ChatSyncConfig) -> bool:
    client = ChatSyncClient.from_config(config)
    try:
        await client.probe.ensure_supported()
    except ChatSyncError as e:
        _report_error(e)
        return False
    finally:
        await client.stop()
    console.print("[green]✅ Attachments are supported on this deployment.[/]")
    return True


# ─── Direct execution ───────────────────────────────────────────

if __name__ == "__main__":
    cli()

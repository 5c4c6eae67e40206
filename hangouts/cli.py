#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from hangouts.channel import WebSocketChannel
from hangouts.client import ProtocolClient
from hangouts.core.MessageTypes import BatchUpdate, Event, StateUpdate
from shared import pblite
from shared.config import load_config
from shared.envelope import DecodeError, Frame, FrameKind, parse_frame
from shared.log import configure_root_logging, get_logger

app = typer.Typer(help="Hangouts protocol client tools")
console = Console()
logger = get_logger(__name__)


def _describe(frame: Frame) -> str:
    if frame.kind is FrameKind.NOOP:
        return "heartbeat"
    if frame.payload is None:
        return ""
    if not frame.is_batch_update:
        return "ignored payload"
    try:
        batch = pblite.decode(BatchUpdate, frame.payload, ignore_first_item=True)
    except DecodeError as e:
        return f"[red]malformed batch update[/]: {e}"
    parts: List[str] = []
    for update in batch.state_update:
        header = update.state_update_header
        state = header.active_client_state.name if header.active_client_state is not None else "-"
        parts.append(f"t={header.current_server_time} active={state}")
    return "; ".join(parts) or "empty batch update"


@app.command()
def decode(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File with one raw frame (JSON) per line"),
):
    """Decode captured channel frames and show what the client would do with them."""
    table = Table(title=str(path))
    table.add_column("#", justify="right")
    table.add_column("Kind")
    table.add_column("Client id")
    table.add_column("Tag")
    table.add_column("Details")

    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            frame = parse_frame(line)
        except DecodeError as e:
            table.add_row(str(lineno), "[red]error[/]", "", "", str(e))
            continue
        table.add_row(str(lineno), frame.kind.value, frame.client_id or "", frame.tag or "", _describe(frame))

    console.print(table)


@app.command()
def listen(
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML config file"),
    url: Optional[str] = typer.Option(None, help="Channel URL (overrides config)"),
):
    """Connect, synchronize and print updates until interrupted."""
    config = load_config(config_path)
    configure_root_logging(config.log_level or "INFO")
    channel = WebSocketChannel(url or config.channel_url, request_timeout=config.request_timeout_secs)
    client = ProtocolClient(channel, config=config)

    def on_connect() -> None:
        console.print(f"[bold green]Connected[/] to {channel.url}")

    def on_disconnect(error: Optional[Exception]) -> None:
        if error is not None:
            console.print(f"[red]Disconnected[/]: {error}")
        else:
            console.print("[yellow]Disconnected[/]")

    def on_state_update(update: StateUpdate) -> None:
        header = update.state_update_header
        console.print(f"[dim]state update t={header.current_server_time}[/]")

    def on_event(conversation_id: str, event: Event) -> None:
        text = event.chat_message.text if event.chat_message is not None else (
            event.event_type.name if event.event_type is not None else "event")
        console.print(f"[bold cyan]{conversation_id[:12]}[/] {text}")

    client.on_connect.subscribe(on_connect)
    client.on_disconnect.subscribe(on_disconnect)
    client.on_state_update.subscribe(on_state_update)
    client.on_event.subscribe(on_event)

    async def main_loop() -> None:
        disconnected = asyncio.Event()
        client.on_disconnect.subscribe(lambda _error: disconnected.set())
        await client.connect()
        try:
            await disconnected.wait()
        finally:
            await client.close()

    try:
        asyncio.run(main_loop())
    except KeyboardInterrupt:
        console.print("Interrupted")


@app.command()
def upload(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image to upload"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML config file"),
):
    """Upload an image and print the photo id to attach to a message."""
    config = load_config(config_path)
    channel = WebSocketChannel(config.channel_url, request_timeout=config.request_timeout_secs)
    client = ProtocolClient(channel, config=config)
    photo_id = asyncio.run(client.upload_image(path.read_bytes(), path.name))
    console.print(json.dumps({"filename": path.name, "photoid": photo_id}, indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()

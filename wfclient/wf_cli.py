#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import Optional

import typer
from aioconsole import ainput
from rich.console import Console
from rich.table import Table

from shared.log import configure_root_logging, get_logger
from shared.utils import is_channel_name
from .config import ChannelDirectory, ClientConfig
from .join_channel import ChannelJoiner, JoinOutcome
from .join_response import describe_join_error
from .state import Session
from .ws_client import ClientSession

app = typer.Typer(help="Channel join client CLI")
console = Console()
logger = get_logger(__name__)


def _profile_table(session: Session) -> Table:
    profile = session.profile
    table = Table(title=f"Profile {profile.id or '?'}")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Status", str(int(session.status)))
    table.add_row("Channel", f"{session.channel} ({session.channel_type})")
    table.add_row("Experience", str(profile.experience))
    table.add_row("PvP rating", str(profile.stats.pvp.rating_points))
    table.add_row("Money", f"{profile.money.game} / {profile.money.crown} / {profile.money.cry}")
    table.add_row("Banner", f"{profile.banner.badge} / {profile.banner.mark} / {profile.banner.stripe}")
    table.add_row("Primary weapon", profile.primary_weapon or "-")
    table.add_row("Unlocked items", str(profile.stats.items_unlocked))
    return table


def _channels_table(directory: ChannelDirectory) -> Table:
    table = Table(title="Channels")
    table.add_column("Resource")
    table.add_column("Type")
    table.add_column("Online")
    for info in directory.all():
        table.add_row(info.resource, info.channel_type, str(info.online))
    return table


async def _join(joiner: ChannelJoiner, channel: str) -> None:
    if not is_channel_name(channel):
        console.print(f"[red]Invalid channel name[/] {channel!r}")
        return
    request = await joiner.join_channel(channel)
    if request is None:
        return
    outcome = await request.wait()
    if outcome is JoinOutcome.JOINED:
        console.print(f"[bold green]Joined[/] {joiner.session.channel}")
    elif outcome is JoinOutcome.FAILED:
        console.print(f"[red]Failed to join {channel}[/]: {request.error_reason}")
    else:
        console.print(f"[yellow]No answer for {channel}[/]")


def _build(server: Optional[str], config_path: Optional[Path], directory_path: Optional[Path],
           token: Optional[str], profile_id: Optional[str], user_id: Optional[str]):
    config = ClientConfig.load(config_path)
    if server:
        config.server = server
    session = Session(id=user_id, active_token=token)
    session.profile.id = profile_id
    transport = ClientSession(config.server, request_timeout=config.request_timeout)
    joiner = ChannelJoiner(session, transport, config, ChannelDirectory(directory_path))
    return transport, joiner


@app.command()
def classify(
    code: int = typer.Argument(..., help="Error code of the join answer"),
    custom_code: int = typer.Argument(0, help="custom_code of the join answer"),
):
    """Print the reason for a join/switch error code."""
    console.print(describe_join_error(code, custom_code))


@app.command()
def join(
    channel: str = typer.Argument(..., help="Channel resource, e.g. pve_12"),
    server: Optional[str] = typer.Option(None, help="XMPP websocket URL (default from config / WFC_SERVER)"),
    config: Optional[Path] = typer.Option(None, help="Path to config.yaml"),
    directory: Optional[Path] = typer.Option(None, help="Path to channels.yaml"),
    token: Optional[str] = typer.Option(None, envvar="WFC_TOKEN", help="Active session token"),
    profile_id: Optional[str] = typer.Option(None, envvar="WFC_PROFILE_ID", help="Profile id"),
    user_id: Optional[str] = typer.Option(None, envvar="WFC_USER_ID", help="Connection user id"),
):
    """Join CHANNEL, wait for the answer and print the profile."""
    configure_root_logging()
    transport, joiner = _build(server, config, directory, token, profile_id, user_id)

    async def main() -> None:
        await transport.connect()
        recv_task = asyncio.create_task(transport.recv_loop())
        try:
            await _join(joiner, channel)
            console.print(_profile_table(joiner.session))
        finally:
            recv_task.cancel()
            await transport.close()

    asyncio.run(main())


@app.command()
def run(
    server: Optional[str] = typer.Option(None, help="XMPP websocket URL (default from config / WFC_SERVER)"),
    config: Optional[Path] = typer.Option(None, help="Path to config.yaml"),
    directory: Optional[Path] = typer.Option(None, help="Path to channels.yaml"),
    token: Optional[str] = typer.Option(None, envvar="WFC_TOKEN", help="Active session token"),
    profile_id: Optional[str] = typer.Option(None, envvar="WFC_PROFILE_ID", help="Profile id"),
    user_id: Optional[str] = typer.Option(None, envvar="WFC_USER_ID", help="Connection user id"),
):
    """Start interactive client loop."""
    configure_root_logging()
    transport, joiner = _build(server, config, directory, token, profile_id, user_id)
    console.print(f"[bold green]Client starting[/] on {transport.server_ws_url}")

    async def main_loop() -> None:
        await transport.connect()
        recv_task = asyncio.create_task(transport.recv_loop())
        try:
            while True:
                line = (await ainput(": ")).strip()
                if not line:
                    continue
                if line in {"/quit", "/exit"}:
                    break
                if line == "/help":
                    console.print("/join <channel>, /status, /channels, /quit")
                    continue
                if line == "/status":
                    console.print(_profile_table(joiner.session))
                    continue
                if line == "/channels":
                    console.print(_channels_table(joiner.directory))
                    continue
                if line.startswith("/join"):
                    parts = line.split()
                    if len(parts) != 2:
                        console.print("Usage: /join <channel>")
                        continue
                    await _join(joiner, parts[1])
                    continue
                console.print("Unknown command. /help")
        finally:
            recv_task.cancel()
            await transport.close()

    asyncio.run(main_loop())


def main() -> None:
    app()


if __name__ == "__main__":
    main()

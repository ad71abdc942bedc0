"""Offline queue commands: queue list, queue add-message, queue add-audio, queue sync, queue clear."""

from __future__ import annotations

import click
from rich.panel import Panel
from rich.table import Table

from ._common import console, home_option, open_app, run
from ..models import SendAudioPayload, SendMessagePayload


def register_queue_commands(main: click.Group) -> None:
    """Register the queue command group."""

    @main.group()
    def queue():
        """Pending actions waiting for a connection."""

    @queue.command("list")
    @home_option
    def queue_list(home):
        """Show queued actions in replay order."""
        app = open_app(home)
        items = run(app, app.queue.items())

        if not items:
            console.print("\n  [dim]Offline queue is empty.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("#", style="dim")
        table.add_column("ID", style="cyan")
        table.add_column("Action", style="bold")
        table.add_column("User")
        table.add_column("Queued at", style="dim")
        table.add_column("Attempts")
        for n, item in enumerate(items, 1):
            table.add_row(
                str(n),
                item.item_id,
                item.action,
                str(item.data.get("user_id", "")),
                item.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                str(item.attempts),
            )
        console.print()
        console.print(table)
        console.print()

    @queue.command("add-message")
    @home_option
    @click.argument("user_id")
    @click.argument("text")
    def queue_add_message(home, user_id, text):
        """Queue a chat message for USER_ID."""
        try:
            payload = SendMessagePayload(user_id=user_id, text=text)
        except ValueError as exc:
            console.print(f"[bold red]Invalid message:[/] {exc}")
            raise SystemExit(1)

        app = open_app(home)
        item = run(app, app.queue.enqueue("SendMessage", payload))
        console.print(f"\n  [green]Queued:[/] {item.action} {item.item_id}\n")

    @queue.command("add-audio")
    @home_option
    @click.argument("user_id")
    @click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
    def queue_add_audio(home, user_id, file_path):
        """Queue a recorded voice message for USER_ID."""
        app = open_app(home)
        item = run(app, app.queue.enqueue(
            "SendAudio", SendAudioPayload(user_id=user_id, file_path=file_path),
        ))
        console.print(f"\n  [green]Queued:[/] {item.action} {item.item_id}\n")

    @queue.command("sync")
    @home_option
    def queue_sync(home):
        """Replay queued actions against the API now."""
        app = open_app(home)
        console.print("\n  Syncing offline queue...", end=" ")
        report = run(app, app.sync_now())
        console.print("[green]done[/]")
        console.print(
            Panel(
                f"Sent: [green]{report.sent}[/]\n"
                f"Failed: [yellow]{report.failed}[/]\n"
                f"Dropped: [red]{report.dropped}[/]\n"
                f"Remaining: [bold]{report.remaining}[/]",
                title="Offline Sync",
                border_style="magenta",
            )
        )

    @queue.command("clear")
    @home_option
    @click.confirmation_option(prompt="Discard every pending action?")
    def queue_clear(home):
        """Discard every pending action."""
        app = open_app(home)
        removed = run(app, app.queue.clear())
        console.print(f"\n  [green]Discarded[/] {removed} action(s).\n")

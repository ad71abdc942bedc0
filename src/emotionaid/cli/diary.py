"""Diary commands: diary list, diary add, diary tags, diary archive."""

from __future__ import annotations

import click
from rich.table import Table

from ._common import console, home_option, open_app, run
from ..models import DiaryEntry


def register_diary_commands(main: click.Group) -> None:
    """Register the diary command group."""

    @main.group()
    def diary():
        """Local diary entries."""

    @diary.command("list")
    @home_option
    @click.argument("user_id")
    @click.option("--page", default=1, type=int, help="Page number (from 1).")
    @click.option("--page-size", default=50, type=int, help="Entries per page.")
    def diary_list(home, user_id, page, page_size):
        """List diary entries for USER_ID."""
        app = open_app(home)
        entries = run(app, app.diary.get_diary_entries(user_id, page=page, page_size=page_size))

        if not entries:
            console.print(f"\n  [dim]No diary entries on page {page}.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Date", style="dim")
        table.add_column("Title", style="bold")
        table.add_column("Tags", style="cyan")
        table.add_column("Content")
        for e in entries:
            preview = e.content if len(e.content) <= 60 else e.content[:57] + "..."
            table.add_row(
                e.date.strftime("%Y-%m-%d"),
                f"{e.emoji + ' ' if e.emoji else ''}{e.title}",
                ", ".join(e.tags),
                preview,
            )
        console.print()
        console.print(table)
        console.print()

    @diary.command("add")
    @home_option
    @click.argument("user_id")
    @click.argument("title")
    @click.argument("content")
    @click.option("--tag", "-t", multiple=True, help="Tags for the entry.")
    @click.option("--emoji", default=None, help="Mood emoji.")
    @click.option("--sync", "queue_sync", is_flag=True, help="Also queue the entry for the server.")
    def diary_add(home, user_id, title, content, tag, emoji, queue_sync):
        """Write a diary entry for USER_ID."""
        try:
            entry = DiaryEntry(title=title, content=content, tags=list(tag), emoji=emoji)
        except ValueError as exc:
            console.print(f"[bold red]Invalid entry:[/] {exc}")
            raise SystemExit(1)

        app = open_app(home)

        async def _add():
            page = await app.diary.add_diary_entry(user_id, entry)
            if queue_sync:
                await app.queue.enqueue("CreateDiaryEntry", {"user_id": user_id, "entry": entry})
            return page

        page = run(app, _add())
        console.print(f"\n  [green]Saved:[/] {entry.title} [dim](page {page})[/]\n")

    @diary.command("tags")
    @home_option
    @click.argument("user_id")
    def diary_tags(home, user_id):
        """Show the tags used in USER_ID's diary."""
        app = open_app(home)
        tags = run(app, app.diary.get_diary_tags(user_id))
        console.print(f"\n  {', '.join(tags) if tags else '[dim]no tags[/]'}\n")

    @diary.command("archive")
    @home_option
    @click.argument("user_id")
    def diary_archive(home, user_id):
        """Move all of USER_ID's entries into the archive."""
        app = open_app(home)
        moved = run(app, app.diary.archive_diary_entries(user_id))
        console.print(f"\n  [green]Archived[/] {moved} entr{'y' if moved == 1 else 'ies'}.\n")

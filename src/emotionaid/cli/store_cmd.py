"""Store and cache commands: store keys, store show, store rm, store wipe, cache clear."""

from __future__ import annotations

import click
from rich.table import Table

from ._common import console, home_option, open_app, run


def register_store_commands(main: click.Group) -> None:
    """Register the store and cache command groups."""

    @main.group()
    def store():
        """Encrypted local records."""

    @store.command("keys")
    @home_option
    @click.option("--prefix", "-p", default="", help="Only keys starting with this.")
    def store_keys(home, prefix):
        """List stored record keys."""
        app = open_app(home)
        keys = run(app, app.store.keys(prefix))

        if not keys:
            console.print("\n  [dim]No records.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Key", style="cyan")
        table.add_column("File", style="dim")
        for key in keys:
            table.add_row(key, app.store.path_for(key).name)
        console.print()
        console.print(table)
        console.print()

    @store.command("show")
    @home_option
    @click.argument("key")
    def store_show(home, key):
        """Decrypt and print one record."""
        app = open_app(home)
        value = run(app, app.store.load(key))
        if value is None:
            console.print(f"\n  [yellow]No record for[/] {key}\n")
            raise SystemExit(1)
        console.print_json(data=value)

    @store.command("rm")
    @home_option
    @click.argument("key")
    def store_rm(home, key):
        """Delete one record."""
        app = open_app(home)
        if run(app, app.store.remove(key)):
            console.print(f"\n  [green]Removed:[/] {key}\n")
        else:
            console.print(f"\n  [dim]No record for {key}[/]\n")

    @store.command("wipe")
    @home_option
    @click.confirmation_option(prompt="Delete ALL local records and pending actions?")
    def store_wipe(home):
        """Delete every record and every queued action."""
        app = open_app(home)
        removed = run(app, app.wipe_all_data())
        console.print(f"\n  [green]Wiped[/] {removed} item(s).\n")

    @main.group()
    def cache():
        """Expiring cache entries."""

    @cache.command("clear")
    @home_option
    @click.argument("prefix", default="")
    def cache_clear(home, prefix):
        """Remove cache entries whose key starts with PREFIX."""
        app = open_app(home)
        removed = run(app, app.cache.clear(prefix))
        console.print(f"\n  [green]Cleared[/] {removed} cache entr{'y' if removed == 1 else 'ies'}.\n")

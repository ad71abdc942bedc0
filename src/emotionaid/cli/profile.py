"""Profile commands: profile list, profile create."""

from __future__ import annotations

import click
from rich.table import Table

from ._common import console, home_option, open_app, run


def register_profile_commands(main: click.Group) -> None:
    """Register the profile command group."""

    @main.group()
    def profile():
        """Local user profiles."""

    @profile.command("list")
    @home_option
    def profile_list(home):
        """List known user ids and names."""
        app = open_app(home)

        async def _collect():
            rows = []
            for user_id in await app.profiles.get_user_ids():
                rows.append((user_id, await app.profiles.load_profile(user_id)))
            return rows

        rows = run(app, _collect())
        if not rows:
            console.print("\n  [dim]No profiles.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("User ID", style="cyan")
        table.add_column("Name", style="bold")
        table.add_column("Created", style="dim")
        for user_id, prof in rows:
            table.add_row(
                user_id,
                prof.name if prof else "[yellow]missing[/]",
                prof.created_at.strftime("%Y-%m-%d") if prof else "",
            )
        console.print()
        console.print(table)
        console.print()

    @profile.command("create")
    @home_option
    @click.argument("name")
    def profile_create(home, name):
        """Create a profile and print its user id."""
        app = open_app(home)
        prof = run(app, app.profiles.create_profile(name))
        console.print(f"\n  [green]Created:[/] {prof.name} [cyan]{prof.user_id}[/]\n")

"""Status and configuration commands: status, config show, config set-url, config set-token."""

from __future__ import annotations

import click
from rich.panel import Panel

from ._common import close, console, home_option, open_app, run
from ..app import store_api_token
from ..config import save_config


def register_status_commands(main: click.Group) -> None:
    """Register status and config commands on the main CLI group."""

    @main.command()
    @home_option
    @click.option("--ping", is_flag=True, help="Also check the API connection.")
    def status(home, ping):
        """Show local storage, queue and API settings."""
        app = open_app(home)

        async def _collect():
            keys = await app.store.keys()
            pending = await app.queue.count()
            connected = await app.monitor.check_connection() if ping else None
            return keys, pending, connected

        keys, pending, connected = run(app, _collect())

        if connected is None:
            link = "[dim]not checked[/]"
        elif connected:
            link = "[bold green]ONLINE[/]"
        else:
            link = "[bold red]OFFLINE[/]"

        console.print()
        console.print(
            Panel(
                f"Home: [cyan]{app.home}[/]\n"
                f"Records: [bold]{len(keys)}[/]\n"
                f"Pending actions: [bold]{pending}[/]\n"
                f"API: [cyan]{app.config.api.base_url}[/] {link}\n"
                f"Model: {app.config.api.selected_model}",
                title="EmotionAid",
                border_style="bright_blue",
            )
        )
        console.print()

    @main.group()
    def config():
        """Show or change API settings."""

    @config.command("show")
    @home_option
    def config_show(home):
        """Print the effective configuration."""
        app = open_app(home)
        data = app.config.model_dump(mode="json")
        if data["api"].get("api_token"):
            data["api"]["api_token"] = data["api"]["api_token"][:10] + "..."
        console.print_json(data=data)
        close(app)

    @config.command("set-url")
    @home_option
    @click.argument("base_url")
    def config_set_url(home, base_url):
        """Set the API base URL."""
        app = open_app(home)
        app.config.api.base_url = base_url
        path = save_config(app.home, app.config)
        console.print(f"\n  [green]Base URL set:[/] {base_url}  [dim]({path})[/]\n")
        close(app)

    @config.command("set-token")
    @click.option("--token", prompt=True, hide_input=True, help="Bearer token for the API.")
    def config_set_token(token):
        """Store the API token in the OS keyring."""
        store_api_token(token.strip())
        console.print("\n  [green]API token updated.[/]\n")

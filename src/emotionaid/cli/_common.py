"""Shared utilities for all CLI command modules.

Provides the Rich console instance, the --home option, and helpers
to build the Application and run its coroutines.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Awaitable, Optional, TypeVar

import click
from rich.console import Console

from ..app import Application
from ..errors import CorruptDataError, EncryptionError, GatewayError, LocalIOError

console = Console()
logger = logging.getLogger("emotionaid.cli")

T = TypeVar("T")

home_option = click.option(
    "--home",
    default=None,
    type=click.Path(),
    envvar="EMOTIONAID_HOME",
    help="Application data directory.",
)


def open_app(home: Optional[str]) -> Application:
    """Build the Application for a --home value (None = default)."""
    return Application.create(Path(home) if home else None)


def run(app: Application, coro: Awaitable[T]) -> T:
    """Run a coroutine against app, then close it.

    Core errors become a red message and exit code 1.
    """
    try:
        return asyncio.run(_closing(app, coro))
    except CorruptDataError as exc:
        console.print(f"[bold red]Corrupt data:[/] {exc}")
    except EncryptionError as exc:
        console.print(f"[bold red]Encryption unavailable:[/] {exc}")
    except LocalIOError as exc:
        console.print(f"[bold red]Disk error:[/] {exc}")
    except GatewayError as exc:
        console.print(f"[bold red]Remote error:[/] {exc}")
    sys.exit(1)


async def _closing(app: Application, coro: Awaitable[T]) -> T:
    try:
        return await coro
    finally:
        await app.aclose()


def close(app: Application) -> None:
    """Release the application's network resources."""
    asyncio.run(app.aclose())

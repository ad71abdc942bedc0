"""
EmotionAid CLI — inspect and operate the client's local state.

Each command group lives in its own module and is registered on the
main Click group here.

Entry point: emotionaid.cli:main
"""

from __future__ import annotations

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="emotionaid")
def main():
    """EmotionAid — local storage and offline sync for the chat client."""


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .status import register_status_commands
from .store_cmd import register_store_commands
from .queue_cmd import register_queue_commands
from .diary import register_diary_commands
from .profile import register_profile_commands
from .mood import register_mood_commands

register_status_commands(main)
register_store_commands(main)
register_queue_commands(main)
register_diary_commands(main)
register_profile_commands(main)
register_mood_commands(main)

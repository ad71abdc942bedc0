"""Mood tracking commands: mood rate, mood week, mood points, mood analyze, mood log."""

from __future__ import annotations

import click
from rich.panel import Panel
from rich.table import Table

from ._common import console, home_option, open_app, run


def register_mood_commands(main: click.Group) -> None:
    """Register the mood command group."""

    @main.group()
    def mood():
        """Session ratings, points and detected emotions."""

    @mood.command("rate")
    @home_option
    @click.argument("user_id")
    @click.argument("score", type=click.IntRange(1, 10))
    def mood_rate(home, user_id, score):
        """Rate today's session for USER_ID (1-10)."""
        app = open_app(home)
        rating = run(app, app.analytics.save_session_rating(user_id, score))
        console.print(f"\n  [green]Rated:[/] {rating.score} [dim]({rating.day})[/]\n")

    @mood.command("week")
    @home_option
    @click.argument("user_id")
    def mood_week(home, user_id):
        """Show USER_ID's session ratings from the last seven days."""
        app = open_app(home)
        ratings = run(app, app.analytics.get_weekly_ratings(user_id))

        if not ratings:
            console.print("\n  [dim]No ratings this week.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Day", style="dim")
        table.add_column("Score", style="bold")
        for r in ratings:
            table.add_row(r.day.isoformat(), str(r.score))
        average = sum(r.score for r in ratings) / len(ratings)
        console.print()
        console.print(table)
        console.print(f"\n  Average: [bold]{average:.1f}[/]\n")

    @mood.command("points")
    @home_option
    @click.argument("user_id")
    @click.option("--add", "amount", type=int, default=None, help="Points to credit first.")
    @click.option("--source", default="manual", help="Where the points came from.")
    def mood_points(home, user_id, amount, source):
        """Show (and optionally add to) USER_ID's total points."""
        app = open_app(home)

        async def _points():
            if amount is not None:
                await app.analytics.add_points(user_id, amount, source)
            return await app.analytics.get_total_points(user_id)

        total = run(app, _points())
        console.print(f"\n  Total points: [bold]{total}[/]\n")

    @mood.command("analyze")
    @home_option
    @click.argument("text")
    @click.option("--user", "user_id", default=None, help="Store the result for this user.")
    def mood_analyze(home, text, user_id):
        """Detect the dominant emotion in TEXT."""
        app = open_app(home)

        async def _analyze():
            if user_id:
                return await app.track_emotion(user_id, text)
            return app.emotion_analyzer.analyze(text)

        result = run(app, _analyze())
        console.print(
            Panel(
                f"Emotion: [bold]{result.emotion}[/]\n"
                f"Confidence: {result.confidence:.2f}\n"
                f"Sarcasm: {'[yellow]yes[/]' if result.is_sarcasm else 'no'}"
                + (f"\n[dim]Saved for {user_id}[/]" if user_id else ""),
                title="Emotion",
                border_style="magenta",
            )
        )

    @mood.command("log")
    @home_option
    @click.argument("user_id")
    @click.option("--limit", default=20, type=int, help="Entries to show.")
    def mood_log(home, user_id, limit):
        """Show USER_ID's most recent detected emotions."""
        app = open_app(home)
        logs = run(app, app.analytics.get_emotion_logs(user_id, limit=limit))

        if not logs:
            console.print("\n  [dim]No emotions logged.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("When", style="dim")
        table.add_column("Emotion", style="bold")
        table.add_column("Confidence")
        table.add_column("Sarcasm")
        for log in logs:
            table.add_row(
                log.logged_at.strftime("%Y-%m-%d %H:%M"),
                log.emotion,
                f"{log.confidence:.2f}",
                "yes" if log.is_sarcasm else "",
            )
        console.print()
        console.print(table)
        console.print()

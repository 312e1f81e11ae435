"""
Memoria: Main CLI for spaced-repetition review.

A Rich terminal interface over the scheduling core.

Commands:
- memoria study      - Review due cards (updates the schedule)
- memoria practice   - Walk through a whole deck (no schedule changes)
- memoria upcoming   - List cards scheduled for later
- memoria stats      - Show review statistics
- memoria reset      - Return cards to never-studied
- memoria override   - Reschedule cards from graded test results (AI)
- memoria settings   - Show or change review intervals
"""
from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from memoria.config import configure_logging, get_settings
from memoria.db.database import init_db
from memoria.db.repository import CardRepository
from memoria.errors import MemoriaError
from memoria.override.adapter import (
    AIOverrideAdapter,
    FailurePolicy,
    GradedResult,
    OverrideReport,
)
from memoria.override.oracle import GeminiOracle
from memoria.scheduling.engine import describe_interval
from memoria.scheduling.models import CardState, Rating, utc_now
from memoria.scheduling.modes import ReviewMode, ReviewModeRouter
from memoria.scheduling.reset import ResetOperation
from memoria.stats import compute_review_stats

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="memoria",
    help="Memoria: spaced-repetition review CLI",
    no_args_is_help=True,
)
console = Console()


# =============================================================================
# Styling
# =============================================================================

RATING_STYLES = {
    Rating.AGAIN: "red",
    Rating.HARD: "yellow",
    Rating.GOOD: "green",
    Rating.EASY: "cyan",
}


def style_rating(rating: Rating) -> str:
    color = RATING_STYLES[rating]
    return f"[{color}]{rating.value} {rating.label}[/{color}]"


# =============================================================================
# Helpers
# =============================================================================


@contextmanager
def handle_errors() -> Iterator[None]:
    """Report domain errors as a red message and exit code 1."""
    try:
        yield
    except MemoriaError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e


def get_repository() -> CardRepository:
    init_db()
    return CardRepository()


def display_front(card: CardState, index: int, total: int) -> None:
    header = f"Card {index}/{total}"
    if card.is_new:
        header += "  |  [green]new[/green]"
    console.print(
        Panel(card.front, title=header, title_align="left", border_style="cyan", padding=(1, 2))
    )


def display_back(card: CardState) -> None:
    console.print(Panel(card.back or "[dim](no answer)[/dim]", border_style="green", padding=(1, 2)))


# =============================================================================
# Commands
# =============================================================================


@app.callback()
def main_callback(
    ctx: typer.Context,
    user: Optional[str] = typer.Option(
        None,
        "--user", "-u",
        help="User whose cards to work on (default: DEFAULT_USER)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Memoria review commands."""
    configure_logging(level="DEBUG" if verbose else None)
    ctx.obj = {"user": user or get_settings().default_user}


@app.command()
def study(
    ctx: typer.Context,
    deck: str = typer.Argument(..., help="Deck ID"),
) -> None:
    """Review the cards of a deck that are due now."""
    user = ctx.obj["user"]

    with handle_errors():
        session = ReviewModeRouter(get_repository()).start(deck, user, ReviewMode.STUDY)

        if session.is_complete:
            console.print("[green]All caught up![/green] No cards are due in this deck.")
            return

        while not session.is_complete:
            card = session.current
            queue = session.queue
            display_front(card, queue.reviewed + 1, queue.reviewed + queue.remaining)
            Prompt.ask("[dim]Press Enter to show the answer[/dim]", default="", show_default=False)
            display_back(card)

            now = utc_now()
            preview = session.preview(now)
            console.print(
                "  ".join(
                    f"{style_rating(r)} [dim]({describe_interval(preview[r] - now)})[/dim]"
                    for r in Rating
                )
            )
            rating = IntPrompt.ask("Rating", choices=["1", "2", "3", "4"])
            outcome = session.rate(rating, now)
            if outcome.requeued:
                console.print("[dim]This card will come back later in the session.[/dim]")

        console.print(
            f"\n[bold green]Session complete:[/bold green] {session.queue.reviewed} ratings, "
            f"{session.queue.requeued} repeated."
        )


@app.command()
def practice(
    ctx: typer.Context,
    deck: str = typer.Argument(..., help="Deck ID"),
    shuffle: bool = typer.Option(False, "--shuffle", "-s", help="Shuffle the deck once"),
) -> None:
    """Walk through every card of a deck without touching the schedule."""
    user = ctx.obj["user"]

    with handle_errors():
        session = ReviewModeRouter(get_repository()).start(
            deck, user, ReviewMode.PRACTICE, shuffle=shuffle
        )

    if not len(session):
        console.print("[yellow]This deck is empty.[/yellow]")
        return

    while True:
        display_front(session.current, session.index + 1, len(session))
        Prompt.ask("[dim]Press Enter to show the answer[/dim]", default="", show_default=False)
        display_back(session.current)

        action = Prompt.ask(
            "[n]ext, [p]revious, [q]uit",
            choices=["n", "p", "q"],
            default="n" if session.has_next else "q",
        )
        if action == "q" or (action == "n" and not session.has_next):
            break
        if action == "n":
            session.next()
        else:
            session.previous()

    console.print("[dim]Practice finished. Schedule unchanged.[/dim]")


@app.command()
def upcoming(
    ctx: typer.Context,
    limit: int = typer.Option(100, "--limit", "-l", help="Maximum cards to list"),
) -> None:
    """List cards scheduled for later, soonest first."""
    user = ctx.obj["user"]
    now = utc_now()

    with handle_errors():
        cards = get_repository().find_upcoming(user, now, limit=limit)

    if not cards:
        console.print("[dim]Nothing scheduled.[/dim]")
        return

    table = Table()
    table.add_column("Due")
    table.add_column("In", justify="right")
    table.add_column("Card")
    table.add_column("Note", style="magenta")

    for card in cards:
        note = ""
        if card.override is not None:
            note = (
                f"{card.override.reason} "
                f"(was {card.override.previous_review_at:%b %d, %Y})"
            )
        table.add_row(
            f"{card.next_review_at:%b %d, %Y %H:%M}",
            describe_interval(card.next_review_at - now),
            card.front,
            note,
        )

    console.print(table)


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show review statistics."""
    user = ctx.obj["user"]

    with handle_errors():
        summary = compute_review_stats(get_repository().reviews_for_user(user))

    console.print("\n[bold cyan]Review Statistics[/bold cyan]")
    console.print("=" * 40)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Current streak", f"{summary.current_streak} day(s)")
    table.add_row("Reviews today", str(summary.reviews_today))
    table.add_row("Total reviews", str(summary.total_reviews))
    table.add_row("Retention", f"{summary.retention_rate}%")
    console.print(table)

    activity = Table(title="Last 14 days")
    activity.add_column("Day")
    activity.add_column("Reviews", justify="right")
    activity.add_column("Correct", justify="right")
    for day in summary.daily:
        activity.add_row(f"{day.day:%b %d}", str(day.reviews), str(day.correct))
    console.print(activity)


@app.command()
def reset(
    ctx: typer.Context,
    card_ids: List[str] = typer.Argument(..., help="Card IDs to reset"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Return cards to never-studied and clear AI overrides."""
    user = ctx.obj["user"]

    if not yes and not Confirm.ask(f"Reset {len(card_ids)} card(s) to new?"):
        console.print("Reset cancelled.")
        raise typer.Exit()

    with handle_errors():
        reset_ids = ResetOperation(get_repository()).reset(card_ids, user)

    console.print(f"[green]Reset {len(reset_ids)} card(s).[/green]")
    missing = [c for c in card_ids if c not in reset_ids]
    if missing:
        console.print(f"[yellow]Not found: {', '.join(missing)}[/yellow]")


async def _run_override(
    repository: CardRepository,
    oracle: GeminiOracle,
    results: list[GradedResult],
    user: str,
    language: str,
    policy: FailurePolicy | str,
) -> OverrideReport:
    async with oracle:
        adapter = AIOverrideAdapter(repository, oracle, policy)
        return await adapter.process(results, user, language)


@app.command()
def override(
    ctx: typer.Context,
    results_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="JSON file with graded test results"
    ),
    language: Optional[str] = typer.Option(
        None, "--language", "-l", help="Language of the explanation text"
    ),
    policy: Optional[FailurePolicy] = typer.Option(
        None, "--policy", help="Failure handling (default: OVERRIDE_FAILURE_POLICY)"
    ),
) -> None:
    """Let the AI reschedule the cards behind a graded test."""
    user = ctx.obj["user"]
    settings = get_settings()

    try:
        data = json.loads(results_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[bold red]Error:[/bold red] invalid JSON in {results_file.name}: {e}")
        raise typer.Exit(code=1) from e
    if isinstance(data, dict):
        data = data.get("results", [])
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        console.print(
            f"[bold red]Error:[/bold red] {results_file.name} must hold a list of result objects"
        )
        raise typer.Exit(code=1)
    results = [GradedResult.from_dict(item) for item in data]

    with handle_errors():
        oracle = GeminiOracle.from_settings(settings)
        report = asyncio.run(
            _run_override(
                get_repository(),
                oracle,
                results,
                user,
                language or settings.default_language,
                policy or settings.override_failure_policy,
            )
        )

    console.print(
        f"[green]{len(report.updated)} rescheduled[/green], "
        f"{len(report.skipped)} not found, {report.unanswered} unanswered"
    )
    for source, error in report.failed:
        console.print(f"[red]Failed:[/red] {source}: {error}")
    if not report.ok:
        raise typer.Exit(code=1)


@app.command("settings")
def settings_command(
    ctx: typer.Context,
    again: Optional[int] = typer.Option(None, "--again", min=1, help="Again interval (minutes)"),
    hard: Optional[int] = typer.Option(None, "--hard", min=1, help="Hard interval (days)"),
    good: Optional[int] = typer.Option(None, "--good", min=1, help="Good interval (days)"),
    easy: Optional[int] = typer.Option(None, "--easy", min=1, help="Easy interval (days)"),
    max_interval: Optional[int] = typer.Option(
        None, "--max-interval", min=0, help="Cap intervals at N days (0 turns the cap off)"
    ),
) -> None:
    """Show or change review intervals."""
    user = ctx.obj["user"]

    with handle_errors():
        repository = get_repository()
        current = repository.get_settings(user)

        changes: dict[str, object] = {}
        for name, value in (
            ("again_minutes", again),
            ("hard_days", hard),
            ("good_days", good),
            ("easy_days", easy),
        ):
            if value is not None:
                changes[name] = value
        if max_interval is not None:
            changes["enable_max_interval"] = max_interval > 0
            if max_interval > 0:
                changes["max_interval_days"] = max_interval

        if changes:
            current = replace(current, **changes)
            repository.save_settings(user, current)
            console.print("[green]Settings saved.[/green]")

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Again", f"{current.again_minutes} min")
    table.add_row("Hard", f"{current.hard_days} d")
    table.add_row("Good", f"{current.good_days} d")
    table.add_row("Easy", f"{current.easy_days} d")
    table.add_row(
        "Max interval",
        f"{current.max_interval_days} d" if current.enable_max_interval else "off",
    )
    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

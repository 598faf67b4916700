"""
Operator CLI for the adaptive practice core.

Commands:
    practice stats                  - Headline mastery numbers and per-formula table
    practice monthly                - 12-month attempt rollup
    practice reconcile [--apply]    - Compare live stats with a ledger replay
    practice import-summary FILE    - Import attempts from a session summary (JSON)
    practice next [--topic AR]      - Pick (or generate) the next practice item

State location and backend come from config.Settings (environment / .env).
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from config import get_settings
from practice_core.content.pool import PracticeItem
from practice_core.core.engine import AdaptiveEngine
from practice_core.core.tiers import DifficultyTier
from practice_core.learning.difficulty_adjuster import ratio_to_difficulty

app = typer.Typer(
    help="Adaptive practice core: mastery, scheduling and attempt ledger tools",
    no_args_is_help=True,
)

console = Console()


def build_engine() -> AdaptiveEngine:
    """Engine wired from settings, with persisted state loaded."""
    return AdaptiveEngine.from_settings(get_settings())


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Configure logging for every command."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else get_settings().log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )


# ========================================
# Stats
# ========================================


@app.command("stats")
def show_stats(
    category: str = typer.Option(None, "--category", "-c", help="Only formulas seen in this category"),
):
    """Show mastery statistics."""
    engine = build_engine()
    summary = engine.stats()
    model = engine.state.model

    accuracy = summary["correct"] / summary["attempts"] if summary["attempts"] else 0.0
    console.print("\n[bold cyan]Practice Statistics[/bold cyan]")
    console.print(f"  Attempts: {summary['attempts']} ({accuracy:.0%} correct)")
    console.print(f"  Ledger entries: {summary['ledger_entries']}")
    console.print(f"  Pool size: {summary['pool_size']}")
    console.print(f"  Pending reviews: {summary['pending_reviews']}")
    console.print(f"  Mastered formulas: {summary['mastered_formulas']}")
    console.print(f"  Known item templates: {summary['canonical_signatures']}")
    console.print(f"  Level: {summary['user_difficulty']}")

    formulas = sorted(model.formulas)
    if category:
        seen = {e.formula_id for e in engine.state.ledger.entries if e.category == category}
        formulas = [f for f in formulas if f in seen]

    if not formulas:
        console.print("\n[yellow]No formulas attempted yet[/yellow]")
        return

    table = Table(title="Formulas")
    table.add_column("Formula", style="cyan")
    table.add_column("Attempts", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("EWMA", justify="right")
    table.add_column("Streak", justify="right")
    table.add_column("Weight", justify="right")
    table.add_column("Mastered", justify="center")

    for formula_id in formulas:
        stat = model.formulas[formula_id]
        table.add_row(
            formula_id,
            str(stat.attempts),
            f"{stat.accuracy:.0%}",
            f"{stat.ewma:.2f}",
            str(stat.streak),
            f"{model.weight(formula_id):.2f}",
            "[green]yes[/green]" if model.is_mastered(formula_id) else "-",
        )

    console.print(table)

    if model.categories:
        console.print("\n[bold]Recommended difficulty[/bold]")
        for name in sorted(model.categories):
            console.print(f"  {name}: {model.recommended_difficulty(name).value}")


@app.command("monthly")
def show_monthly():
    """Show attempts per month for the last 12 months."""
    engine = build_engine()

    table = Table(title="Monthly Summary")
    table.add_column("Month", style="cyan")
    table.add_column("Attempts", justify="right")
    table.add_column("Correct", justify="right")
    table.add_column("Accuracy", justify="right")

    for summary in engine.state.ledger.monthly_rollup():
        table.add_row(
            summary.month_key,
            str(summary.attempts),
            str(summary.correct),
            f"{summary.accuracy:.0%}" if summary.attempts else "-",
        )

    console.print(table)


# ========================================
# Ledger Maintenance
# ========================================


@app.command("reconcile")
def reconcile(
    apply: bool = typer.Option(False, "--apply", help="Replace live stats with the rebuilt ones"),
):
    """Compare live mastery statistics with a replay of the attempt ledger."""
    engine = build_engine()
    report = engine.reconcile(apply=apply)

    if report.is_consistent:
        console.print("[green]Live statistics match the attempt ledger[/green]")
        return

    table = Table(title="Divergence")
    table.add_column("Kind")
    table.add_column("Key", style="cyan")
    table.add_column("Live", justify="right")
    table.add_column("Rebuilt", justify="right")

    for d in report.divergences:
        table.add_row(
            d.kind,
            d.key,
            f"{d.live_correct}/{d.live_attempts}",
            f"{d.rebuilt_correct}/{d.rebuilt_attempts}",
        )
    console.print(table)

    if apply:
        engine.save()
        console.print("[green]Rebuilt statistics applied[/green]")
    else:
        console.print("[yellow]Run with --apply to adopt the rebuilt statistics[/yellow]")


ITEM_KEYS = ("item_id", "itemId", "qId")
TIER_KEYS = ("difficulty_tier", "difficultyTier", "difficulty")


def _summary_row(raw: Any, summary_tier: DifficultyTier | None) -> Any:
    """
    Fill in what an imported row leaves implicit.

    Rows without a source are backfills when they name an item and synthetic
    otherwise. Rows without a tier take the tier of the session accuracy, if
    the summary carries one.
    """
    if not isinstance(raw, dict):
        return raw
    row = dict(raw)
    if "source" not in row:
        has_item = any(row.get(k) is not None for k in ITEM_KEYS)
        row["source"] = "backfill" if has_item else "synthetic"
    if summary_tier is not None and all(row.get(k) is None for k in TIER_KEYS):
        row["difficulty_tier"] = summary_tier.value
    return row


@app.command("import-summary")
def import_summary(
    source: Path = typer.Argument(..., help="JSON list of attempts, or an object with an 'attempts' list"),
):
    """Import attempts from a session summary or backfill file."""
    if not source.exists():
        console.print(f"[red]Error: File not found: {source}[/red]")
        raise typer.Exit(1)

    try:
        data: Any = json.loads(source.read_text(encoding="utf-8"))
    except ValueError as e:
        console.print(f"[red]Error: Invalid JSON in {source}: {e}[/red]")
        raise typer.Exit(1) from e

    attempts = data.get("attempts", []) if isinstance(data, dict) else data
    if not isinstance(attempts, list):
        console.print("[red]Error: Expected a list of attempts[/red]")
        raise typer.Exit(1)

    accuracy = data.get("accuracy") if isinstance(data, dict) else None
    summary_tier = ratio_to_difficulty(float(accuracy)) if isinstance(accuracy, (int, float)) else None
    events = [_summary_row(raw, summary_tier) for raw in attempts]

    engine = build_engine()
    outcomes = engine.import_attempts(events)
    engine.save()

    console.print(f"\n[bold]Imported {source.name}[/bold]")
    for key in ("added", "replaced", "skipped", "invalid"):
        console.print(f"  {key}: {outcomes.get(key, 0)}")


# ========================================
# Selection
# ========================================


async def _pick_next(engine: AdaptiveEngine, topic: str, exclude: list[int]) -> PracticeItem:
    try:
        return await engine.next_item(topic, exclude_ids=exclude)
    finally:
        await engine.close()


@app.command("next")
def next_item(
    topic: str = typer.Option("AR", "--topic", "-t", help="Subject to practice"),
    exclude: list[int] = typer.Option(None, "--exclude", "-x", help="Item ids to skip"),
):
    """Pick the next practice item, generating one if the pool is empty."""
    engine = build_engine()
    item = asyncio.run(_pick_next(engine, topic, exclude or []))
    engine.save()

    console.print(f"\n[bold cyan]Item {item.item_id}[/bold cyan] ({item.formula_id}, {item.difficulty_tier.value})")
    if item.text:
        console.print(f"  {item.text}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

"""Rich terminal formatting for docpatch output."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from docpatch.core.models import FixList, FixOutcome, MatchStrategy, PatchResponse

console = Console()
error_console = Console(stderr=True)


STRATEGY_LABELS = {
    MatchStrategy.EXACT: "[green]exact[/green]",
    MatchStrategy.WHITESPACE_TOLERANT: "[yellow]whitespace[/yellow]",
    MatchStrategy.FUZZY_TOKEN: "[magenta]fuzzy[/magenta]",
}


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )


def confidence_color(confidence: float) -> str:
    """Return color name based on a 0.0 - 1.0 confidence."""
    if confidence >= 0.8:
        return "green"
    elif confidence >= 0.5:
        return "yellow"
    return "red"


def _snippet(text: str, width: int = 60) -> str:
    flat = " ".join(text.split())
    if len(flat) > width:
        flat = flat[: width - 3] + "..."
    return escape(flat)


def print_fix_table(fix_list: FixList) -> None:
    """Print the fixes proposed for a session."""
    table = Table(title=f"Fixes for {escape(fix_list.document_url)}", show_lines=False)
    table.add_column("ID", style="bold")
    table.add_column("Category")
    table.add_column("Confidence", justify="right")
    table.add_column("Original")
    table.add_column("Rationale")

    for fix in fix_list.fixes:
        color = confidence_color(fix.confidence)
        table.add_row(
            escape(fix.id),
            fix.category.value,
            f"[{color}]{fix.confidence:.2f}[/{color}]",
            _snippet(fix.original_content),
            _snippet(fix.rationale, 40),
        )

    console.print(table)
    summary = fix_list.summary()
    console.print(
        f"  {summary['totalFixes']} fixes | "
        f"average confidence {summary['averageConfidence']:.2f}"
    )


def print_fix_outcome(outcome: FixOutcome) -> None:
    """Print a single fix outcome."""
    if outcome.applied:
        label = STRATEGY_LABELS.get(outcome.strategy, "")
        console.print(f"  [green]✅ {escape(outcome.fix_id)}[/green]  {label}  {escape(outcome.message)}")
    else:
        console.print(f"  [red]❌ {escape(outcome.fix_id)}[/red]  {escape(outcome.message)}")


def print_patch_response(response: PatchResponse, title: str = "Patch Session") -> None:
    """Print the result of a patch session or preview."""
    if not response.success:
        error_console.print(f"\n  [red]❌ {escape(response.error or 'Failed to apply fixes')}[/red]\n")
        return

    for outcome in response.outcomes:
        print_fix_outcome(outcome)

    lines = ["", f"  {escape(response.message)}"]
    if response.invalidation_id:
        lines.append(f"  Invalidation: [bold]{escape(response.invalidation_id)}[/bold]")
    for warning in response.warnings:
        lines.append(f"  [yellow]⚠️  {escape(warning)}[/yellow]")
    lines.append("")

    border = "yellow" if response.warnings else "green"
    console.print(Panel(
        "\n".join(lines),
        title=f"[bold]{escape(title)}: {escape(response.filename)}[/bold]",
        border_style=border,
        padding=(0, 1),
    ))

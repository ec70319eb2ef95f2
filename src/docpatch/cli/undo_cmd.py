"""docpatch undo command."""

from __future__ import annotations

from pathlib import Path

import click
from rich.markup import escape

from docpatch.core.output import console
from docpatch.patch.undo import RestoreResult, UndoManager


def _print_restore(result: RestoreResult) -> None:
    if result.success:
        console.print(f"  [green]✅ {escape(result.key)}[/green]  {escape(result.message)}")
    else:
        console.print(f"  [red]❌ {escape(result.key)}[/red]  {escape(result.message)}")


@click.command()
@click.argument("filename", required=False)
@click.option("--last", is_flag=True, help="Restore every document from the last patch run")
@click.option("--list", "list_all", is_flag=True, help="List all restorable versions")
@click.option("--target", "-t", "target", default=".", help="Project directory holding docpatch.toml (default: current dir)")
def undo(filename: str | None, last: bool, list_all: bool, target: str):
    """Restore documents to the version before a patch.

    Pass a FILENAME to restore its latest backup, or use --last to undo
    every document of the last patch run.
    """
    manager = UndoManager.from_config(Path(target))

    if list_all:
        entries = manager.list_undoable()
        if not entries:
            console.print("\n  No restorable versions found.\n")
            return

        console.print("\n  [bold]Restorable Versions[/bold]\n")
        for entry in entries:
            session = f"  session {escape(entry.session_id)}" if entry.session_id else ""
            console.print(f"  {escape(entry.key)}  \\[{entry.timestamp}]{session}")
        console.print()
        return

    if last:
        results = manager.undo_last_session()
        if not results:
            console.print("\n  No recent patch run to undo.\n")
            return

        console.print("\n  [bold]Undoing last patch run:[/bold]\n")
        for result in results:
            _print_restore(result)
        console.print()
        return

    if filename:
        _print_restore(manager.undo(filename))
        return

    console.print("\n  Usage: docpatch undo <FILENAME> or docpatch undo --last")
    console.print("  Run `docpatch undo --list` to see available versions.\n")

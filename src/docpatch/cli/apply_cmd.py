"""docpatch apply command."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.prompt import Confirm

from docpatch.core.errors import PatchError
from docpatch.core.output import console, error_console, print_patch_response
from docpatch.patch.engine import PatchEngine


@click.command()
@click.argument("session_id")
@click.option("--fix", "-f", "fix_ids", multiple=True, help="Fix ID to apply (repeatable)")
@click.option("--all", "apply_all", is_flag=True, help="Apply every fix proposed for the session")
@click.option("--preview", is_flag=True, help="Show which fixes would apply without writing")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.option("--target", "-t", "target", default=".", help="Project directory holding docpatch.toml (default: current dir)")
def apply(
    session_id: str,
    fix_ids: tuple[str, ...],
    apply_all: bool,
    preview: bool,
    yes: bool,
    target: str,
):
    """Apply selected fixes of SESSION_ID to its document.

    Pass one or more --fix IDs, or --all for every proposed fix.
    """
    project_path = Path(target).resolve()
    engine = PatchEngine.from_config(project_path)

    selected = list(fix_ids)
    if apply_all:
        try:
            fix_list = engine.store.read_fix_list(session_id)
        except PatchError as e:
            error_console.print(f"\n  [red]❌ {e}[/red]\n")
            sys.exit(1)
        selected = [f.id for f in fix_list.fixes]

    if not selected:
        console.print("\n  Usage: docpatch apply <SESSION_ID> --fix <ID> [--fix <ID> ...] or --all")
        console.print(f"  Run `docpatch fixes {session_id}` to see proposed fixes.\n")
        return

    preview_response = engine.preview_session(session_id, selected)
    print_patch_response(preview_response, title="Patch Preview")
    if not preview_response.success:
        sys.exit(1)

    if preview:
        return

    if not yes:
        if not Confirm.ask(f"  Apply {preview_response.applied_count} matching fixes?", default=True):
            console.print("  [dim]Cancelled.[/dim]")
            return

    response = engine.apply_session(session_id, selected)
    print_patch_response(response)
    if not response.success:
        sys.exit(1)

    console.print(f"  [dim]Run `docpatch undo {response.filename}` to restore the previous version.[/dim]\n")

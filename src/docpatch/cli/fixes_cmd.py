"""docpatch fixes command."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from docpatch.core.config import load_config
from docpatch.core.errors import PatchError
from docpatch.core.output import console, error_console, print_fix_table
from docpatch.storage.store import FileSystemStore


@click.command()
@click.argument("session_id")
@click.option("--json", "as_json", is_flag=True, help="Print the raw fix list as JSON")
@click.option("--target", "-t", "target", default=".", help="Project directory holding docpatch.toml (default: current dir)")
def fixes(session_id: str, as_json: bool, target: str):
    """List the fixes proposed for SESSION_ID."""
    project_path = Path(target).resolve()
    store = FileSystemStore.from_config(load_config(project_path), project_path)

    try:
        fix_list = store.read_fix_list(session_id)
    except PatchError as e:
        error_console.print(f"\n  [red]❌ {e}[/red]\n")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(fix_list.to_dict(), indent=2))
        return

    if not fix_list.fixes:
        console.print(f"\n  No fixes proposed for session {session_id}.\n")
        return

    console.print()
    print_fix_table(fix_list)
    console.print()

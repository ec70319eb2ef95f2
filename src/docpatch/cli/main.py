"""Click CLI entry point for docpatch."""

from __future__ import annotations

import click

from docpatch._version import __version__
from docpatch.core.output import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="docpatch")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """docpatch - apply AI-proposed fixes to markdown documents.

    Locate each fix's original text, patch it, record a changelog entry,
    and publish the result.
    """
    configure_logging(verbose)


# Import and register subcommands
from docpatch.cli.apply_cmd import apply  # noqa: E402
from docpatch.cli.fixes_cmd import fixes  # noqa: E402
from docpatch.cli.undo_cmd import undo  # noqa: E402

cli.add_command(apply)
cli.add_command(fixes)
cli.add_command(undo)


if __name__ == "__main__":
    cli()

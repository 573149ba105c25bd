"""CLI command handler for writing a starter configuration file."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from chat_reconciler.cli.common import cli
from chat_reconciler.core.config import create_default_config
from chat_reconciler.utils.logging import setup_logger

# ---------------------------------------------------------------------------
# init-config subcommand
# ---------------------------------------------------------------------------


@cli.command("init-config")
@click.option(
    "--output",
    default="config.yaml",
    show_default=True,
    help="Where to write the configuration file",
)
def init_config(output: str) -> None:
    """Write a configuration file with placeholder credentials.

    An existing file is left untouched.

    Args:
        output: Destination path of the configuration file.
    """
    setup_logger()
    if not create_default_config(Path(output)):
        sys.exit(1)
    click.echo(f"Configuration written to {output}. Fill in the credentials before running.")

"""
Command-line entry point for the chat reconciler.

Importing the subcommand modules registers them on the shared ``cli`` group.
"""

from chat_reconciler.cli import config_cmd, run_cmd  # noqa: F401
from chat_reconciler.cli.common import cli


def main() -> None:
    """Run the CLI."""
    cli()


if __name__ == "__main__":
    main()

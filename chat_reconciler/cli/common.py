"""Shared CLI infrastructure: option decorators, error handlers, and the CLI group."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

import click

import chat_reconciler
from chat_reconciler.constants import DEFAULT_PAGE_SIZE, DEFAULT_RESULT_LIMIT, MAX_PAGE_SIZE
from chat_reconciler.exceptions import ReconcilerError
from chat_reconciler.utils.logging import log_with_context

# Create logger instance
logger = logging.getLogger("chat_reconciler")

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]


# ---------------------------------------------------------------------------
# Shared option decorators
# ---------------------------------------------------------------------------


def scope_options(f: Callable[..., None]) -> Callable[..., None]:
    """Decorator that adds the mutually exclusive scope options.

    Args:
        f: The Click command function to decorate.

    Returns:
        The decorated function with scope options attached.
    """
    f = click.option(
        "--all",
        "all_scope",
        type=click.Choice(["users", "channels"]),
        default=None,
        help="Process every user or every channel",
    )(f)
    f = click.option(
        "--channel",
        default=None,
        help="Unique name of a single channel, e.g. 100-200",
    )(f)
    f = click.option(
        "--user",
        default=None,
        help="Id of a single user (account mode: the user and all their channels)",
    )(f)
    return f


def common_options(f: Callable[..., None]) -> Callable[..., None]:
    """Decorator that adds options shared across the run subcommands.

    Args:
        f: The Click command function to decorate.

    Returns:
        The decorated function with common options attached.
    """
    f = click.option(
        "--config",
        default="config.yaml",
        show_default=True,
        help="Path to config YAML",
    )(f)
    f = click.option(
        "--before",
        type=click.DateTime(formats=DATE_FORMATS),
        default=None,
        help="Upper bound of the last-updated date window (inclusive)",
    )(f)
    f = click.option(
        "--after",
        type=click.DateTime(formats=DATE_FORMATS),
        default=None,
        help="Lower bound of the last-updated date window (inclusive). "
        "When later than --before, everything outside the window is processed",
    )(f)
    f = click.option(
        "--page_size",
        type=click.IntRange(1, MAX_PAGE_SIZE),
        default=None,
        help=f"Entities per page when listing [default: config or {DEFAULT_PAGE_SIZE}]",
    )(f)
    f = click.option(
        "--limit",
        type=click.IntRange(min=0),
        default=None,
        help=f"Maximum number of entities to fetch, 0 for no limit "
        f"[default: config or {DEFAULT_RESULT_LIMIT}]",
    )(f)
    f = click.option(
        "--no_limit",
        is_flag=True,
        default=False,
        help="Fetch every entity (same as --limit 0)",
    )(f)
    f = click.option(
        "--log_to_file",
        is_flag=True,
        default=False,
        help="Write logs, entity lists and a YAML report to a timestamped directory",
    )(f)
    f = click.option(
        "--verbose",
        "-v",
        is_flag=True,
        default=False,
        help="Enable verbose console logging (shows DEBUG level messages)",
    )(f)
    f = click.option(
        "--debug_api",
        is_flag=True,
        default=False,
        help="Enable detailed API request/response logging (creates very large log files)",
    )(f)
    return f


def validate_date_bounds(before: datetime | None, after: datetime | None) -> None:
    """Reject identical bounds, which describe neither a window nor its complement.

    Raises:
        click.UsageError: If both bounds are set and equal.
    """
    if before is not None and after is not None and before == after:
        raise click.UsageError("--before and --after must not be equal")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(version=chat_reconciler.__version__, prog_name="chat-reconciler")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Chat backend reconciliation tool.

    Migrates users and channels from the source chat service to the target,
    or enforces blocked state on source channels.

    Args:
        ctx: The Click context (injected by ``@click.pass_context``).
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


def handle_exception(e: BaseException) -> None:
    """Handle different types of exceptions.

    Args:
        e: The exception to handle.
    """
    if isinstance(e, ReconcilerError):
        log_with_context(logging.ERROR, str(e))
    elif isinstance(e, FileNotFoundError):
        log_with_context(logging.ERROR, f"File not found: {e}")
        log_with_context(
            logging.INFO,
            "Please check that all required files exist and paths are correct.",
        )
    elif isinstance(e, KeyboardInterrupt):
        log_with_context(logging.WARNING, "Run interrupted by user.")
        log_with_context(
            logging.INFO,
            "Check the partial report in the output directory, if one was requested.",
        )
        log_with_context(
            logging.INFO,
            "Runs skip entities already in the desired state, so it is safe to start again.",
        )
    else:
        log_with_context(logging.ERROR, f"Run failed: {e}", exc_info=True)

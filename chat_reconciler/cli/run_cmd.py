"""CLI command handlers for the migrate, block and unblock workflows."""

from __future__ import annotations

import logging
import sys
import time
from datetime import datetime
from pathlib import Path

import click

from chat_reconciler.cli.common import (
    cli,
    common_options,
    handle_exception,
    scope_options,
    validate_date_bounds,
)
from chat_reconciler.cli.report import (
    create_output_directory,
    generate_report,
    write_entity_logs,
)
from chat_reconciler.core.config import ReconcilerConfig, load_config
from chat_reconciler.core.context import RunRequest, Scope
from chat_reconciler.core.engine import run
from chat_reconciler.core.executor import read_blocked_listing_ids
from chat_reconciler.core.result import RunResult
from chat_reconciler.core.run_logging import log_run_failure, log_run_summary
from chat_reconciler.services.source_client import SourceClient
from chat_reconciler.services.target_client import TargetClient
from chat_reconciler.types import Action
from chat_reconciler.utils.logging import log_with_context, setup_logger

# Create logger instance
logger = logging.getLogger("chat_reconciler")


def resolve_scope(
    user: str | None, channel: str | None, all_scope: str | None
) -> Scope:
    """Turn the scope options into a Scope; exactly one must be given.

    Raises:
        click.UsageError: If none or several scope options are given.
    """
    given = [name for name, value in (("--user", user), ("--channel", channel), ("--all", all_scope)) if value]
    if len(given) != 1:
        raise click.UsageError("Specify exactly one of --user, --channel or --all")
    if user:
        return Scope.user(user)
    if channel:
        return Scope.channel(channel)
    if all_scope == "users":
        return Scope.all_users()
    return Scope.all_channels()


def build_request(
    action: Action,
    scope: Scope,
    config: ReconcilerConfig,
    before: datetime | None,
    after: datetime | None,
    page_size: int | None,
    limit: int | None,
    no_limit: bool,
    blocked_listings: str | None = None,
) -> RunRequest:
    """Combine CLI options and configuration into a RunRequest.

    Command-line values win over the configuration file.
    """
    if no_limit:
        result_limit = 0
    elif limit is not None:
        result_limit = limit
    else:
        result_limit = config.result_limit

    blocked_listing_ids: frozenset[int] = frozenset()
    if blocked_listings:
        blocked_listing_ids = read_blocked_listing_ids(blocked_listings)
        log_with_context(
            logging.INFO,
            f"Loaded {len(blocked_listing_ids)} blocked listing id(s) from {blocked_listings}",
        )

    return RunRequest(
        action=action,
        scope=scope,
        date_before=before,
        date_after=after,
        page_size=page_size or config.page_size,
        result_limit=result_limit,
        blocked_listing_ids=blocked_listing_ids,
    )


def log_startup_info(request: RunRequest, config_path: str, verbose: bool, debug_api: bool) -> None:
    """Log startup information."""
    log_with_context(logging.INFO, "Starting run with the following parameters:")
    log_with_context(logging.INFO, f"- Action: {request.action.value}")
    log_with_context(logging.INFO, f"- Scope: {request.scope}")
    log_with_context(logging.INFO, f"- Date window: {request.window.describe()}")
    log_with_context(logging.INFO, f"- Page size: {request.page_size}")
    log_with_context(logging.INFO, f"- Result limit: {request.result_limit or 'none'}")
    log_with_context(logging.INFO, f"- Config: {config_path}")
    log_with_context(logging.INFO, f"- Verbose logging: {verbose}")
    log_with_context(logging.INFO, f"- Debug API calls: {debug_api}")


def execute_run(
    action: Action,
    user: str | None,
    channel: str | None,
    all_scope: str | None,
    config: str,
    before: datetime | None,
    after: datetime | None,
    page_size: int | None,
    limit: int | None,
    no_limit: bool,
    log_to_file: bool,
    verbose: bool,
    debug_api: bool,
    blocked_listings: str | None = None,
) -> RunResult:
    """Shared body of the run subcommands.

    Returns:
        The top-level RunResult.

    Raises:
        click.UsageError: On invalid option combinations.
        ReconcilerError: On configuration problems.
    """
    validate_date_bounds(before, after)
    scope = resolve_scope(user, channel, all_scope)

    output_dir = create_output_directory() if log_to_file else None
    setup_logger(verbose, debug_api, output_dir)
    if output_dir:
        log_with_context(logging.INFO, f"Output directory: {output_dir}")

    reconciler_config = load_config(Path(config))
    reconciler_config.validate(require_target=action is Action.MIGRATE)

    request = build_request(
        action,
        scope,
        reconciler_config,
        before,
        after,
        page_size,
        limit,
        no_limit,
        blocked_listings,
    )
    log_startup_info(request, config, verbose, debug_api)

    source = SourceClient.from_config(reconciler_config)
    target = (
        TargetClient.from_config(reconciler_config)
        if action is Action.MIGRATE
        else None
    )

    start_time = time.time()
    try:
        result = run(request, source, target)
    except BaseException as e:
        log_run_failure(request, e, time.time() - start_time)
        raise
    duration = time.time() - start_time

    log_run_summary(request, result, duration)
    if output_dir:
        write_entity_logs(result, output_dir)
        generate_report(request, result, output_dir, duration)
    return result


def _invoke(action: Action, **options: object) -> None:
    try:
        result = execute_run(action, **options)  # type: ignore[arg-type]
    except click.UsageError:
        raise
    except (Exception, KeyboardInterrupt) as e:
        handle_exception(e)
        sys.exit(1)
    if result.has_failures:
        sys.exit(1)


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


@cli.command()
@scope_options
@common_options
def migrate(**options: object) -> None:
    """Migrate users and channels from the source to the target.

    --user migrates the account and every channel it belongs to, --channel a
    single channel, --all users or --all channels a full sweep.
    """
    _invoke(Action.MIGRATE, **options)


@cli.command()
@scope_options
@common_options
def block(**options: object) -> None:
    """Mark source channels as blocked.

    Supports --user (all of the user's channels), --channel and --all channels.
    """
    _invoke(Action.BLOCK, **options)


@cli.command()
@scope_options
@common_options
@click.option(
    "--blocked_listings",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="File with one listing id per line; channels of these listings stay blocked",
)
def unblock(**options: object) -> None:
    """Mark source channels as unblocked.

    Channels whose members blocked each other, and channels of listings named
    in --blocked_listings, are left blocked.
    """
    _invoke(Action.UNBLOCK, **options)

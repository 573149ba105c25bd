"""
Dispatch of a run request to the migration or blocking engine.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chat_reconciler.core.executor import Executor
from chat_reconciler.core.migrator import Migrator
from chat_reconciler.core.result import RunResult
from chat_reconciler.types import Action, ScopeKind
from chat_reconciler.utils.logging import log_with_context

if TYPE_CHECKING:
    from chat_reconciler.core.context import RunRequest
    from chat_reconciler.services.source_client import SourceClient
    from chat_reconciler.services.target_client import TargetClient


def _migrate(
    request: RunRequest, source: SourceClient, target: TargetClient | None
) -> RunResult:
    if target is None:
        return RunResult.error(
            "Migration failed. See errors for details.",
            "A target client is required for migration.",
        )
    migrator = Migrator(source, target)
    kind = request.scope.kind
    window = request.window

    if kind is ScopeKind.USER:
        return migrator.migrate_account(
            request.scope.identifier or "",
            window,
            request.page_size,
            request.result_limit,
        )
    if kind is ScopeKind.CHANNEL:
        return migrator.migrate_channel(request.scope.identifier or "", window)
    if kind is ScopeKind.ALL_USERS:
        return migrator.migrate_users(window, request.page_size, request.result_limit)
    return migrator.migrate_channels(window, request.page_size, request.result_limit)


def _enforce(request: RunRequest, source: SourceClient) -> RunResult:
    executor = Executor(source)
    kind = request.scope.kind
    to_block = bool(request.to_block)
    window = request.window

    if kind is ScopeKind.USER:
        return executor.set_user_channels_blocked(
            request.scope.identifier or "",
            to_block,
            window,
            request.page_size,
            request.result_limit,
            request.blocked_listing_ids,
        )
    if kind is ScopeKind.CHANNEL:
        return executor.set_channel_blocked(
            request.scope.identifier or "",
            to_block,
            window,
            request.blocked_listing_ids,
        )
    if kind is ScopeKind.ALL_CHANNELS:
        return executor.set_all_channels_blocked(
            to_block,
            window,
            request.page_size,
            request.result_limit,
            request.blocked_listing_ids,
        )
    return RunResult.error(
        f"Cannot {request.action.value} {request.scope}. See errors for details.",
        f"Action {request.action.value} is not supported for scope {request.scope.kind.value}.",
    )


def final_message(request: RunRequest, result: RunResult) -> str:
    """Run-level message built from the final counts."""
    if result.fetched_count == 0 and result.errors:
        outcome = "failed"
    elif result.has_failures:
        outcome = "finished with failures"
    else:
        outcome = "finished"
    return f"{request.action.value.capitalize()} of {request.scope} {outcome}. {result.summary()}"


def run(
    request: RunRequest,
    source: SourceClient,
    target: TargetClient | None = None,
) -> RunResult:
    """Execute a run request.

    Args:
        request: What to reconcile.
        source: Source backend client.
        target: Target backend client; required for migration only.

    Returns:
        The top-level RunResult, with its message regenerated from the final
        counts.
    """
    log_with_context(logging.INFO, f"Starting run: {request.describe()}")

    if request.action is Action.MIGRATE:
        result = _migrate(request, source, target)
    else:
        result = _enforce(request, source)

    if result.message:
        log_with_context(logging.INFO, result.message)
    result = result.with_message(final_message(request, result))
    log_with_context(logging.INFO, result.message or "")
    return result

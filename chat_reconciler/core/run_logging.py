"""
Run success/failure logging for the chat reconciler.

Kept apart from the engines so they stay focused on control flow. Records
carry the statistics as structured kwargs as well as in the message text.
"""

from __future__ import annotations

import logging
import traceback
from typing import TYPE_CHECKING

from chat_reconciler.utils.logging import log_with_context

if TYPE_CHECKING:
    from chat_reconciler.core.context import RunRequest
    from chat_reconciler.core.result import RunResult


def log_run_summary(request: RunRequest, result: RunResult, duration: float) -> None:
    """Log the final counts of a run and every recorded error message.

    Args:
        request: The request that was executed.
        result: The top-level result of the run.
        duration: Run duration in seconds.
    """
    duration_minutes = duration / 60

    # --- Outcome header ---------------------------------------------------
    if result.fetched_count == 0 and result.errors:
        log_with_context(
            logging.ERROR,
            f"{request.action.value.upper()} RUN FAILED",
            outcome="failed",
        )
    elif result.has_failures:
        log_with_context(
            logging.WARNING,
            f"{request.action.value.upper()} RUN COMPLETED WITH ISSUES",
            outcome="partial",
        )
    else:
        log_with_context(
            logging.INFO,
            f"{request.action.value.upper()} RUN COMPLETED SUCCESSFULLY",
            outcome="success",
        )

    # --- Statistics --------------------------------------------------------
    log_with_context(
        logging.INFO,
        f"Duration: {duration_minutes:.1f} minutes ({duration:.1f} seconds)",
        duration_seconds=duration,
    )
    for stat, count in (
        ("fetched", result.fetched_count),
        ("succeeded", result.succeeded_count),
        ("skipped", result.skipped_count),
        ("failed", result.failed_count),
    ):
        log_with_context(
            logging.INFO,
            f"Entities {stat}: {count}",
            stat=stat,
            count=count,
        )

    # --- Errors -----------------------------------------------------------
    if not result.errors:
        log_with_context(logging.INFO, "No errors recorded")
        return

    log_with_context(
        logging.WARNING,
        f"{len(result.errors)} error(s) recorded:",
        count=len(result.errors),
    )
    for error in result.errors:
        log_with_context(logging.WARNING, f"  {error.strip()}")


def log_run_failure(request: RunRequest, exception: BaseException, duration: float) -> None:
    """Log a run that was aborted by an exception or by the user."""
    if isinstance(exception, KeyboardInterrupt):
        log_with_context(
            logging.WARNING,
            f"{request.action.value.upper()} RUN INTERRUPTED BY USER after "
            f"{duration:.1f} seconds",
            outcome="interrupted",
            exception_type="KeyboardInterrupt",
        )
        log_with_context(
            logging.WARNING,
            "Entities already written stay written; the run can be repeated safely.",
        )
        return

    log_with_context(
        logging.ERROR,
        f"{request.action.value.upper()} RUN FAILED: "
        f"{type(exception).__name__}: {exception!s}",
        outcome="failed",
        exception_type=type(exception).__name__,
        exception_message=str(exception),
        duration_seconds=duration,
    )
    tb = traceback.format_exc()
    if tb and tb.strip() != "NoneType: None":
        log_with_context(logging.ERROR, f"Traceback:\n{tb}")

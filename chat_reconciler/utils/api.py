"""
HTTP transport utilities for the chat reconciler

Every backend call goes through :func:`request_with_retry`, which retries
rate-limited and server-side failures with exponential backoff and converts
the final outcome into a :class:`~chat_reconciler.types.ClientResult`. The
reconciliation engine never sees a ``requests`` exception.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import requests

from chat_reconciler.constants import (
    HTTP_BAD_REQUEST,
    HTTP_RATE_LIMIT,
    HTTP_SERVER_ERROR_MIN,
    HTTP_SERVICE_UNAVAILABLE,
)
from chat_reconciler.types import ClientResult
from chat_reconciler.utils.logging import (
    log_api_request,
    log_api_response,
    log_with_context,
)

MAX_RETRY_DELAY = 60
BACKOFF_FACTOR = 2.0


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for one backend client."""

    max_retries: int = 3
    retry_delay: float = 2
    timeout: float = 30


def _is_retryable(status_code: int) -> bool:
    """Rate limits and server errors are retried, other client errors are not."""
    return status_code == HTTP_RATE_LIMIT or status_code >= HTTP_SERVER_ERROR_MIN


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_text(body: Any) -> str:
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body)
    return str(body)


def request_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    retry_config: RetryConfig | None = None,
    component: str = "http",
    sleep: Callable[[float], None] = time.sleep,
    status_mapper: Callable[[int, Any], int] | None = None,
    **kwargs: Any,
) -> ClientResult[Any]:
    """Send an HTTP request, retrying transient failures.

    Args:
        session: The requests session carrying authentication.
        method: HTTP method.
        url: Absolute URL.
        retry_config: Retry policy; defaults to :class:`RetryConfig`.
        component: Name of the calling client, used as log context.
        sleep: Sleep function (injectable for tests).
        status_mapper: Optional hook translating a backend-specific error
            body into a standard HTTP status code.
        **kwargs: Passed through to ``session.request``.

    Returns:
        A ClientResult with the decoded JSON body as payload on success, or
        the status code and error text on failure.
    """
    config = retry_config or RetryConfig()
    kwargs.setdefault("timeout", config.timeout)

    log_api_request(
        method, url, kwargs.get("json") or kwargs.get("data") or None, component=component
    )

    last_result: ClientResult[Any] | None = None

    for attempt in range(config.max_retries + 1):
        try:
            response = session.request(method, url, **kwargs)
        except requests.RequestException as e:
            last_result = ClientResult.error(
                HTTP_SERVICE_UNAVAILABLE,
                f"[{component}] Connection to {url} could not be established: {e}",
                str(e),
            )
            log_with_context(
                logging.WARNING,
                f"Request to {url} failed: {e}",
                component=component,
            )
        else:
            body = _response_body(response)
            log_api_response(response.status_code, url, body, component=component)

            status_code = response.status_code
            if status_code < HTTP_BAD_REQUEST:
                return ClientResult.ok(body, status_code)
            if status_mapper is not None:
                status_code = status_mapper(status_code, body)

            error_text = _error_text(body)
            last_result = ClientResult.error(
                status_code,
                f"[{component}] {method} {url} returned {response.status_code}: {error_text}",
                error_text,
            )
            if not _is_retryable(status_code):
                log_with_context(
                    logging.DEBUG,
                    f"Client error ({status_code}) not retried",
                    component=component,
                    status_code=status_code,
                )
                return last_result

            log_with_context(
                logging.WARNING,
                f"Encountered {status_code} from {url}",
                component=component,
                status_code=status_code,
            )

        if attempt < config.max_retries:
            sleep_time = min(
                config.retry_delay * (BACKOFF_FACTOR**attempt), MAX_RETRY_DELAY
            )
            log_with_context(
                logging.INFO,
                f"Retrying in {sleep_time:.1f} seconds...",
                component=component,
            )
            sleep(sleep_time)
        else:
            log_with_context(
                logging.ERROR,
                f"Max retries reached. Last error: {last_result.message if last_result else ''}",
                component=component,
            )

    if last_result is None:
        raise RuntimeError("Exited retry loop unexpectedly.")
    return last_result

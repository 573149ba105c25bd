"""Typed client for the target backend (Sendbird Platform API v3).

The target reports "already exists" and "not found" as HTTP 400 with a
backend-specific error code. Those are normalised to 409 and 404 here so the
reconciliation engine only ever reasons about standard status codes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import requests

from chat_reconciler.constants import (
    HTTP_BAD_REQUEST,
    HTTP_CONFLICT,
    HTTP_NOT_FOUND,
    TARGET_RESOURCE_ALREADY_EXISTS,
    TARGET_RESOURCE_NOT_FOUND,
)
from chat_reconciler.types import ClientResult
from chat_reconciler.utils.api import RetryConfig, request_with_retry
from chat_reconciler.utils.logging import log_with_context

if TYPE_CHECKING:
    from chat_reconciler.core.config import ReconcilerConfig

# Upper bound of ids per presence query accepted by the target
PRESENCE_BATCH_SIZE = 100


def normalize_status(status_code: int, body: Any) -> int:
    """Map target-specific error codes onto standard HTTP status codes."""
    if status_code != HTTP_BAD_REQUEST or not isinstance(body, dict):
        return status_code
    code = body.get("code")
    if code == TARGET_RESOURCE_ALREADY_EXISTS:
        return HTTP_CONFLICT
    if code == TARGET_RESOURCE_NOT_FOUND:
        return HTTP_NOT_FOUND
    return status_code


class TargetClient:
    """Thin typed wrapper around the Sendbird Platform REST API."""

    component = "target"

    def __init__(
        self,
        app_id: str,
        api_token: str,
        base_url: str | None = None,
        retry_config: RetryConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = (base_url or f"https://api-{app_id}.sendbird.com/v3").rstrip(
            "/"
        )
        self._retry_config = retry_config or RetryConfig()
        self._session = session or requests.Session()
        self._session.headers.update(
            {"Api-Token": api_token, "Content-Type": "application/json; charset=utf8"}
        )

    @classmethod
    def from_config(cls, config: ReconcilerConfig) -> TargetClient:
        return cls(
            app_id=config.target.app_id,
            api_token=config.target.api_token,
            base_url=config.target.base_url,
            retry_config=config.retry_config,
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> ClientResult[Any]:
        return request_with_retry(
            self._session,
            method,
            f"{self._base_url}/{path.lstrip('/')}",
            retry_config=self._retry_config,
            component=self.component,
            status_mapper=normalize_status,
            **kwargs,
        )

    @staticmethod
    def _channel_path(channel_url: str) -> str:
        return f"group_channels/{quote(channel_url, safe='')}"

    # -- Users ---------------------------------------------------------------

    def create_user(self, payload: dict[str, Any]) -> ClientResult[dict[str, Any]]:
        return self._request("POST", "users", json=payload)

    def update_user(
        self, user_id: str, payload: dict[str, Any]
    ) -> ClientResult[dict[str, Any]]:
        body = {k: v for k, v in payload.items() if k != "user_id"}
        return self._request("PUT", f"users/{quote(str(user_id), safe='')}", json=body)

    def find_absent_users(self, user_ids: list[str]) -> ClientResult[list[str]]:
        """Return the subset of ``user_ids`` that does not exist on the target.

        Order of the input is preserved in the returned list.
        """
        wanted = [str(u) for u in dict.fromkeys(user_ids)]
        present: set[str] = set()

        for start in range(0, len(wanted), PRESENCE_BATCH_SIZE):
            batch = wanted[start : start + PRESENCE_BATCH_SIZE]
            result = self._request(
                "GET",
                "users",
                params={"user_ids": ",".join(batch), "limit": PRESENCE_BATCH_SIZE},
            )
            if not result.is_success:
                return ClientResult.error(
                    result.status_code,
                    result.message or "Presence query failed",
                    result.original_message,
                )
            for user in (result.payload or {}).get("users", []):
                present.add(str(user.get("user_id")))

        absent = [u for u in wanted if u not in present]
        if absent:
            log_with_context(
                logging.DEBUG,
                f"Users absent on target: {', '.join(absent)}",
                component=self.component,
            )
        return ClientResult.ok(absent)

    def block_users(
        self, user_id: str, target_ids: list[str]
    ) -> ClientResult[dict[str, Any]]:
        """Add ``target_ids`` to the block-list of ``user_id`` in one call."""
        return self._request(
            "POST",
            f"users/{quote(str(user_id), safe='')}/block",
            json={"target_ids": [str(t) for t in target_ids]},
        )

    # -- Group channels ------------------------------------------------------

    def create_channel(self, payload: dict[str, Any]) -> ClientResult[dict[str, Any]]:
        return self._request("POST", "group_channels", json=payload)

    def update_channel(
        self, channel_url: str, payload: dict[str, Any]
    ) -> ClientResult[dict[str, Any]]:
        body = {k: v for k, v in payload.items() if k not in ("channel_url", "user_ids")}
        return self._request("PUT", self._channel_path(channel_url), json=body)

    def set_frozen(
        self, channel_url: str, freeze: bool
    ) -> ClientResult[dict[str, Any]]:
        return self._request(
            "PUT", f"{self._channel_path(channel_url)}/freeze", json={"freeze": freeze}
        )

    def create_channel_metadata(
        self, channel_url: str, metadata: dict[str, str]
    ) -> ClientResult[dict[str, Any]]:
        return self._request(
            "POST",
            f"{self._channel_path(channel_url)}/metadata",
            json={"metadata": metadata},
        )

    def update_channel_metadata(
        self, channel_url: str, metadata: dict[str, str]
    ) -> ClientResult[dict[str, Any]]:
        return self._request(
            "PUT",
            f"{self._channel_path(channel_url)}/metadata",
            json={"metadata": metadata, "upsert": False},
        )

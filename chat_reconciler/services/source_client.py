"""Typed client for the source backend (Twilio Programmable Chat v2).

Replaces raw REST calls with explicit methods that are easy to mock and
test. Every method returns a :class:`ClientResult`; failures are reported
through the status code and message, never raised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, TypeVar

import requests

from chat_reconciler.constants import DEFAULT_PAGE_SIZE, HTTP_BAD_REQUEST, HTTP_OK
from chat_reconciler.types import (
    ClientResult,
    Member,
    SourceChannel,
    SourceUser,
    UserChannel,
)
from chat_reconciler.utils.api import RetryConfig, request_with_retry
from chat_reconciler.utils.logging import log_with_context

if TYPE_CHECKING:
    from chat_reconciler.core.config import ReconcilerConfig

T = TypeVar("T")

DEFAULT_BASE_URL = "https://chat.twilio.com/v2"


def _is_valid_user_id(user_id: str | int | None) -> bool:
    try:
        return int(str(user_id)) > 0
    except (TypeError, ValueError):
        return False


class SourceClient:
    """Thin typed wrapper around the Twilio Programmable Chat REST API."""

    component = "source"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        service_sid: str,
        base_url: str = DEFAULT_BASE_URL,
        retry_config: RetryConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._service_url = f"{base_url.rstrip('/')}/Services/{service_sid}"
        self._retry_config = retry_config or RetryConfig()
        self._session = session or requests.Session()
        self._session.auth = (account_sid, auth_token)

    @classmethod
    def from_config(cls, config: ReconcilerConfig) -> SourceClient:
        return cls(
            account_sid=config.source.account_sid,
            auth_token=config.source.auth_token,
            service_sid=config.source.service_sid,
            base_url=config.source.base_url,
            retry_config=config.retry_config,
        )

    # -- Transport -----------------------------------------------------------

    def _request(self, method: str, url: str, **kwargs: Any) -> ClientResult[Any]:
        if not url.startswith("http"):
            url = f"{self._service_url}/{url.lstrip('/')}"
        return request_with_retry(
            self._session,
            method,
            url,
            retry_config=self._retry_config,
            component=self.component,
            **kwargs,
        )

    def _read_pages(
        self,
        path: str,
        key: str,
        converter: Callable[[dict[str, Any]], T],
        page_size: int,
        limit: int | None,
        params: dict[str, Any] | None = None,
    ) -> ClientResult[list[T]]:
        """Follow ``meta.next_page_url`` until exhausted or ``limit`` is reached."""
        page_params: dict[str, Any] = dict(params or {})
        page_params["PageSize"] = page_size if page_size > 0 else DEFAULT_PAGE_SIZE
        items: list[T] = []
        next_url: str | None = path

        while next_url:
            result = self._request(
                "GET", next_url, params=page_params if next_url == path else None
            )
            if not result.is_success:
                return ClientResult.error(
                    result.status_code,
                    result.message or f"Failed to read {path}",
                    result.original_message,
                )
            body = result.payload or {}
            for resource in body.get(key, []):
                items.append(converter(resource))
                if limit and len(items) >= limit:
                    return ClientResult.ok(items)
            next_url = (body.get("meta") or {}).get("next_page_url")

        return ClientResult.ok(items)

    # -- Users ---------------------------------------------------------------

    def fetch_user(self, user_id: str) -> ClientResult[SourceUser]:
        """Fetch a single user by identity."""
        if not _is_valid_user_id(user_id):
            return ClientResult.error(
                HTTP_BAD_REQUEST, f"Invalid user_id value: [{user_id}]"
            )
        result = self._request("GET", f"Users/{user_id}")
        if not result.is_success:
            return ClientResult.error(
                result.status_code, result.message or "", result.original_message
            )
        return ClientResult.ok(SourceUser.from_resource(result.payload), HTTP_OK)

    def list_users(
        self, page_size: int, limit: int | None = None
    ) -> ClientResult[list[SourceUser]]:
        """Read all users, page by page, up to ``limit``."""
        return self._read_pages(
            "Users", "users", SourceUser.from_resource, page_size, limit
        )

    def list_user_channels(
        self, user_id: str, page_size: int, limit: int | None = None
    ) -> ClientResult[list[UserChannel]]:
        """Read the channel links of one user."""
        if not _is_valid_user_id(user_id):
            return ClientResult.error(
                HTTP_BAD_REQUEST, f"Invalid user_id value: [{user_id}]"
            )
        return self._read_pages(
            f"Users/{user_id}/Channels",
            "channels",
            lambda r: UserChannel(channel_sid=str(r.get("channel_sid", ""))),
            page_size,
            limit,
        )

    # -- Channels ------------------------------------------------------------

    def fetch_channel(self, unique_name: str) -> ClientResult[SourceChannel]:
        """Fetch a single channel by unique name or SID."""
        if not unique_name or not unique_name.strip():
            return ClientResult.error(
                HTTP_BAD_REQUEST, f"Invalid unique_name value: [{unique_name}]"
            )
        result = self._request("GET", f"Channels/{unique_name}")
        if not result.is_success:
            return ClientResult.error(
                result.status_code, result.message or "", result.original_message
            )
        return ClientResult.ok(SourceChannel.from_resource(result.payload), HTTP_OK)

    def list_channels(
        self, page_size: int, limit: int | None = None
    ) -> ClientResult[list[SourceChannel]]:
        """Read all private channels, page by page, up to ``limit``."""
        return self._read_pages(
            "Channels",
            "channels",
            SourceChannel.from_resource,
            page_size,
            limit,
            params={"Type": "private"},
        )

    def list_channel_members(self, unique_name: str) -> ClientResult[list[Member]]:
        """Read the members of a channel."""
        if not unique_name or not unique_name.strip():
            return ClientResult.error(
                HTTP_BAD_REQUEST, f"Invalid unique_name value: [{unique_name}]"
            )
        return self._read_pages(
            f"Channels/{unique_name}/Members",
            "members",
            lambda r: Member(id=str(r.get("identity", ""))),
            DEFAULT_PAGE_SIZE,
            None,
        )

    def update_channel_attributes(
        self, unique_name: str, attributes: str
    ) -> ClientResult[SourceChannel]:
        """Replace the attribute blob of a channel."""
        log_with_context(
            logging.DEBUG,
            f"Updating attributes of channel {unique_name}",
            channel=unique_name,
        )
        result = self._request(
            "POST", f"Channels/{unique_name}", data={"Attributes": attributes}
        )
        if not result.is_success:
            return ClientResult.error(
                result.status_code, result.message or "", result.original_message
            )
        return ClientResult.ok(SourceChannel.from_resource(result.payload), HTTP_OK)

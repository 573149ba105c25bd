"""Unit test configuration and shared fixtures.

Provides in-memory stand-ins for both chat backends. They implement the same
methods as ``SourceClient`` and ``TargetClient``, return ``ClientResult``
values and record every call, so engine tests can assert on what was written.
"""

from __future__ import annotations

import json
from typing import Any

import pytest

from chat_reconciler.types import (
    ClientResult,
    Member,
    SourceChannel,
    SourceUser,
    UserChannel,
)

# ---------------------------------------------------------------------------
# Data builders
# ---------------------------------------------------------------------------


def build_user(
    user_id: str | int,
    blocked: list[int] | None = None,
    date_updated: str | None = "2021-06-01T00:00:00Z",
    attributes: dict[str, Any] | None = None,
    friendly_name: str = "User",
) -> SourceUser:
    """Build a SourceUser through the same parser the client uses."""
    attrs = dict(attributes or {})
    if blocked is not None:
        attrs["blockedUsers"] = blocked
    return SourceUser.from_resource(
        {
            "identity": str(user_id),
            "friendly_name": f"{friendly_name} {user_id}",
            "date_updated": date_updated,
            "attributes": json.dumps(attrs),
        }
    )


def build_channel(
    unique_name: str,
    members_count: int = 2,
    date_updated: str | None = "2021-05-01T00:00:00Z",
    attributes: dict[str, Any] | None = None,
    raw_attributes: str | None = None,
    **attribute_overrides: Any,
) -> SourceChannel:
    """Build a SourceChannel with sensible, certain attributes.

    Keyword overrides are merged into the attribute blob, e.g.
    ``build_channel("1-2", isBlocked=True)``.
    """
    if raw_attributes is None:
        if attributes is None:
            ids = [s for s in unique_name.split("-") if s.isdigit()]
            seller, buyer = (ids + ["0", "0"])[:2]
            attributes = {
                "listingId": 5,
                "sellerId": int(seller),
                "buyerId": int(buyer),
                "isBlocked": False,
                "isListingBlocked": False,
                "listing": {"id": 5, "title": "Bike", "state": 1},
            }
        attributes = {**attributes, **attribute_overrides}
        raw_attributes = json.dumps(attributes)
    return SourceChannel.from_resource(
        {
            "unique_name": unique_name,
            "friendly_name": f"Channel {unique_name}",
            "members_count": members_count,
            "date_updated": date_updated,
            "attributes": raw_attributes,
        }
    )


def _not_found(what: str) -> ClientResult[Any]:
    return ClientResult.error(404, f"{what} not found")


# ---------------------------------------------------------------------------
# Fake backends
# ---------------------------------------------------------------------------


class FakeSource:
    """In-memory source backend."""

    def __init__(self) -> None:
        self.users: dict[str, SourceUser] = {}
        self.channels: dict[str, SourceChannel] = {}
        self.user_channels: dict[str, list[str]] = {}
        self.members: dict[str, list[str]] = {}
        # method name -> forced result, optionally keyed by first argument
        self.failures: dict[str, ClientResult[Any]] = {}
        self.keyed_failures: dict[tuple[str, str], ClientResult[Any]] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def add_user(self, user: SourceUser) -> SourceUser:
        self.users[user.id] = user
        return user

    def add_channel(self, channel: SourceChannel, *member_of: str) -> SourceChannel:
        self.channels[channel.unique_name] = channel
        for user_id in member_of:
            self.user_channels.setdefault(str(user_id), []).append(channel.unique_name)
        return channel

    def fail(self, method: str, status_code: int = 500, key: str | None = None) -> None:
        result = ClientResult.error(status_code, f"{method} failed")
        if key is None:
            self.failures[method] = result
        else:
            self.keyed_failures[(method, str(key))] = result

    def _forced(self, method: str, *args: Any) -> ClientResult[Any] | None:
        self.calls.append((method, args))
        if args and (method, str(args[0])) in self.keyed_failures:
            return self.keyed_failures[(method, str(args[0]))]
        return self.failures.get(method)

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]

    @staticmethod
    def _limited(items: list[Any], limit: int | None) -> list[Any]:
        return items[:limit] if limit else items

    def fetch_user(self, user_id: str) -> ClientResult[SourceUser]:
        forced = self._forced("fetch_user", user_id)
        if forced:
            return forced
        if str(user_id) not in self.users:
            return _not_found(f"User {user_id}")
        return ClientResult.ok(self.users[str(user_id)])

    def list_users(self, page_size: int, limit: int | None = None):
        forced = self._forced("list_users", page_size, limit)
        if forced:
            return forced
        return ClientResult.ok(self._limited(list(self.users.values()), limit))

    def list_user_channels(self, user_id: str, page_size: int, limit: int | None = None):
        forced = self._forced("list_user_channels", user_id, page_size, limit)
        if forced:
            return forced
        links = [UserChannel(name) for name in self.user_channels.get(str(user_id), [])]
        return ClientResult.ok(self._limited(links, limit))

    def fetch_channel(self, unique_name: str) -> ClientResult[SourceChannel]:
        forced = self._forced("fetch_channel", unique_name)
        if forced:
            return forced
        if unique_name not in self.channels:
            return _not_found(f"Channel {unique_name}")
        return ClientResult.ok(self.channels[unique_name])

    def list_channels(self, page_size: int, limit: int | None = None):
        forced = self._forced("list_channels", page_size, limit)
        if forced:
            return forced
        return ClientResult.ok(self._limited(list(self.channels.values()), limit))

    def list_channel_members(self, unique_name: str) -> ClientResult[list[Member]]:
        forced = self._forced("list_channel_members", unique_name)
        if forced:
            return forced
        return ClientResult.ok([Member(m) for m in self.members.get(unique_name, [])])

    def update_channel_attributes(self, unique_name: str, attributes: str):
        forced = self._forced("update_channel_attributes", unique_name, attributes)
        if forced:
            return forced
        current = self.channels[unique_name]
        updated = SourceChannel.from_resource(
            {
                "unique_name": unique_name,
                "friendly_name": current.friendly_name,
                "members_count": current.members_count,
                "date_updated": current.date_updated,
                "attributes": attributes,
            }
        )
        self.channels[unique_name] = updated
        return ClientResult.ok(updated)


class FakeTarget:
    """In-memory target backend."""

    def __init__(self, users: list[str] | None = None) -> None:
        self.users: dict[str, dict[str, Any]] = {
            u: {"user_id": u} for u in (users or [])
        }
        self.blocks: dict[str, list[str]] = {}
        self.channels: dict[str, dict[str, Any]] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.failures: dict[str, ClientResult[Any]] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def fail(self, method: str, status_code: int = 500) -> None:
        self.failures[method] = ClientResult.error(status_code, f"{method} failed")

    def _forced(self, method: str, *args: Any) -> ClientResult[Any] | None:
        self.calls.append((method, args))
        return self.failures.get(method)

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]

    def add_channel(self, channel_url: str, freeze: bool = False) -> None:
        self.channels[channel_url] = {"channel_url": channel_url, "freeze": freeze}

    # -- Users ---------------------------------------------------------------

    def create_user(self, payload: dict[str, Any]):
        forced = self._forced("create_user", payload)
        if forced:
            return forced
        user_id = payload["user_id"]
        if user_id in self.users:
            return ClientResult.error(409, "User already exists")
        self.users[user_id] = dict(payload)
        return ClientResult.ok(self.users[user_id])

    def update_user(self, user_id: str, payload: dict[str, Any]):
        forced = self._forced("update_user", user_id, payload)
        if forced:
            return forced
        if user_id not in self.users:
            return _not_found(f"User {user_id}")
        self.users[user_id].update(payload)
        return ClientResult.ok(self.users[user_id])

    def find_absent_users(self, user_ids: list[str]):
        forced = self._forced("find_absent_users", list(user_ids))
        if forced:
            return forced
        return ClientResult.ok([u for u in user_ids if u not in self.users])

    def block_users(self, user_id: str, target_ids: list[str]):
        forced = self._forced("block_users", user_id, list(target_ids))
        if forced:
            return forced
        self.blocks.setdefault(user_id, []).extend(target_ids)
        return ClientResult.ok({"users": [{"user_id": t} for t in target_ids]})

    # -- Channels ------------------------------------------------------------

    def create_channel(self, payload: dict[str, Any]):
        forced = self._forced("create_channel", payload)
        if forced:
            return forced
        url = payload["channel_url"]
        if url in self.channels:
            return ClientResult.error(409, "Channel already exists")
        self.channels[url] = {**payload, "freeze": False}
        return ClientResult.ok(self.channels[url])

    def update_channel(self, channel_url: str, payload: dict[str, Any]):
        forced = self._forced("update_channel", channel_url, payload)
        if forced:
            return forced
        if channel_url not in self.channels:
            return _not_found(f"Channel {channel_url}")
        self.channels[channel_url].update(
            {k: v for k, v in payload.items() if k not in ("channel_url", "user_ids")}
        )
        return ClientResult.ok(self.channels[channel_url])

    def set_frozen(self, channel_url: str, freeze: bool):
        forced = self._forced("set_frozen", channel_url, freeze)
        if forced:
            return forced
        self.channels[channel_url]["freeze"] = freeze
        return ClientResult.ok(self.channels[channel_url])

    def create_channel_metadata(self, channel_url: str, metadata: dict[str, str]):
        forced = self._forced("create_channel_metadata", channel_url, metadata)
        if forced:
            return forced
        if channel_url in self.metadata:
            return ClientResult.error(409, "Metadata already exists")
        self.metadata[channel_url] = dict(metadata)
        return ClientResult.ok(self.metadata[channel_url])

    def update_channel_metadata(self, channel_url: str, metadata: dict[str, str]):
        forced = self._forced("update_channel_metadata", channel_url, metadata)
        if forced:
            return forced
        if channel_url not in self.metadata:
            return _not_found(f"Metadata of {channel_url}")
        self.metadata[channel_url].update(metadata)
        return ClientResult.ok(self.metadata[channel_url])


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def source() -> FakeSource:
    """An empty in-memory source backend."""
    return FakeSource()


@pytest.fixture()
def target() -> FakeTarget:
    """An empty in-memory target backend."""
    return FakeTarget()


@pytest.fixture()
def make_user():
    """Factory fixture wrapping :func:`build_user`."""
    return build_user


@pytest.fixture()
def make_channel():
    """Factory fixture wrapping :func:`build_channel`.

    Usage in tests::

        def test_something(make_channel):
            ch = make_channel("100-200", isBlocked=True)
    """
    return build_channel

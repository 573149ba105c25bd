"""Shared type definitions for the chat reconciler.

Provides dataclasses for the entities flowing through the reconciliation
engine: source (Twilio Programmable Chat) users and channels with their
parsed attribute blobs, the transport-level ``ClientResult`` returned by
every backend call, and the enums used to describe a run.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from chat_reconciler.constants import (
    HTTP_MULTIPLE_CHOICES,
    HTTP_OK,
    LISTING_LOCALES,
)
from chat_reconciler.utils.logging import log_with_context

T = TypeVar("T")

_NUMERIC_SEGMENT = re.compile(r"^\d+$")


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _ci_get(data: dict[str, Any] | None, key: str, default: Any = None) -> Any:
    """Case-insensitive dict lookup (attribute blobs are camelCase on the wire)."""
    if not data:
        return default
    if key in data:
        return data[key]
    lowered = key.lower()
    for k, v in data.items():
        if isinstance(k, str) and k.lower() == lowered:
            return v
    return default


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp as returned by both backends.

    Args:
        value: A string such as ``2021-03-04T10:00:00Z``, a datetime, or None.

    Returns:
        The parsed datetime, or None when the value is missing or malformed.
    """
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        log_with_context(logging.WARNING, f"Unparseable timestamp: {value!r}")
        return None


def load_attributes_json(raw: str | None, owner: str) -> dict[str, Any] | None:
    """Decode a raw attribute string; malformed JSON yields None, never raises."""
    if raw is None or not str(raw).strip():
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        log_with_context(
            logging.WARNING,
            f"Could not parse attributes of {owner}: {e}",
            entity=owner,
        )
        return None
    if not isinstance(data, dict):
        log_with_context(
            logging.WARNING,
            f"Attributes of {owner} are not a JSON object, ignoring",
            entity=owner,
        )
        return None
    return data


def parse_member_ids(unique_name: str | None) -> list[int]:
    """Extract member ids from a 1:1 channel unique name.

    Unique names are two member ids joined by a dash (``100-200``), optionally
    prefixed by further segments. The last two numeric segments are the
    members.
    """
    if not unique_name:
        return []
    numeric = [int(s) for s in unique_name.split("-") if _NUMERIC_SEGMENT.match(s)]
    return numeric[-2:]


def channel_url_for(unique_name: str | None) -> str | None:
    """Target channel address: the unique name with dashes as underscores."""
    if unique_name is None or not unique_name.strip():
        return None
    return unique_name.replace("-", "_")


# ---------------------------------------------------------------------------
# Source attribute models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UserAttributes:
    """Attribute blob stored on a source user."""

    blocked_users: tuple[int, ...] = ()
    blocked_by_admin_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserAttributes:
        blocked = _ci_get(data, "blockedUsers") or []
        return cls(
            blocked_users=tuple(_to_int(b) for b in blocked if _to_int(b) > 0),
            blocked_by_admin_at=parse_timestamp(_ci_get(data, "blockedByAdminAt")),
        )

    def __str__(self) -> str:
        blocked = ", ".join(str(b) for b in self.blocked_users)
        return f"BlockedByAdminAt: {self.blocked_by_admin_at}; BlockedUsers: [{blocked}]"


@dataclass(frozen=True)
class Listing:
    """Snapshot of the commerce listing a channel was opened for."""

    id: int = 0
    title: str | None = None
    formatted_price: dict[str, str] = field(default_factory=dict)
    location: dict[str, str] = field(default_factory=dict)
    main_picture: str | None = None
    state: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Listing:
        return cls(
            id=_to_int(_ci_get(data, "id")),
            title=_ci_get(data, "title"),
            formatted_price=dict(_ci_get(data, "formattedPrice") or {}),
            location=dict(_ci_get(data, "location") or {}),
            main_picture=_ci_get(data, "mainPicture"),
            state=_to_int(_ci_get(data, "state")),
        )


@dataclass(frozen=True)
class DeletedBy:
    """One entry of a channel's deletion history."""

    date: datetime | None = None
    user_id: int = 0


@dataclass(frozen=True)
class ChannelAttributes:
    """Parsed attribute blob stored on a source channel."""

    listing_id: int = 0
    seller_id: int = 0
    buyer_id: int = 0
    is_blocked: bool = False
    is_listing_blocked: bool = False
    channel_deleted_by: tuple[DeletedBy, ...] = ()
    listing: Listing | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChannelAttributes:
        listing_data = _ci_get(data, "listing")
        deleted_by = _ci_get(data, "channelDeletedBy") or []
        return cls(
            listing_id=_to_int(_ci_get(data, "listingId")),
            seller_id=_to_int(_ci_get(data, "sellerId")),
            buyer_id=_to_int(_ci_get(data, "buyerId")),
            is_blocked=_ci_get(data, "isBlocked") is True,
            is_listing_blocked=_ci_get(data, "isListingBlocked") is True,
            channel_deleted_by=tuple(
                DeletedBy(
                    date=parse_timestamp(_ci_get(d, "date")),
                    user_id=_to_int(_ci_get(d, "userId")),
                )
                for d in deleted_by
                if isinstance(d, dict)
            ),
            listing=Listing.from_dict(listing_data)
            if isinstance(listing_data, dict)
            else None,
        )

    @property
    def should_be_frozen(self) -> bool:
        """True when the channel or its listing is marked blocked."""
        return self.is_blocked or self.is_listing_blocked


# ---------------------------------------------------------------------------
# Source entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceUser:
    """A user record from the source backend."""

    id: str
    friendly_name: str | None = None
    profile_image_url: str | None = None
    date_created: datetime | None = None
    date_updated: datetime | None = None
    attributes: UserAttributes | None = None

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> SourceUser:
        """Build a user from a Twilio Chat ``Users`` resource."""
        identity = str(resource.get("identity") or "")
        raw = load_attributes_json(resource.get("attributes"), f"user {identity}")
        return cls(
            id=identity,
            friendly_name=resource.get("friendly_name"),
            profile_image_url=_ci_get(raw, "profileImageUrl"),
            date_created=parse_timestamp(resource.get("date_created")),
            date_updated=parse_timestamp(resource.get("date_updated")),
            attributes=UserAttributes.from_dict(raw) if raw is not None else None,
        )

    @property
    def blocked_users(self) -> tuple[int, ...]:
        return self.attributes.blocked_users if self.attributes else ()

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True)
class SourceChannel:
    """A channel record from the source backend."""

    unique_name: str
    friendly_name: str | None = None
    members_count: int = 0
    date_created: datetime | None = None
    date_updated: datetime | None = None
    attributes_raw: str | None = None
    attributes: ChannelAttributes | None = None

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> SourceChannel:
        """Build a channel from a Twilio Chat ``Channels`` resource."""
        unique_name = str(resource.get("unique_name") or resource.get("sid") or "")
        raw_text = resource.get("attributes")
        raw = load_attributes_json(raw_text, f"channel {unique_name}")
        return cls(
            unique_name=unique_name,
            friendly_name=resource.get("friendly_name"),
            members_count=_to_int(resource.get("members_count")),
            date_created=parse_timestamp(resource.get("date_created")),
            date_updated=parse_timestamp(resource.get("date_updated")),
            attributes_raw=raw_text,
            attributes=ChannelAttributes.from_dict(raw) if raw is not None else None,
        )

    @property
    def channel_url(self) -> str | None:
        return channel_url_for(self.unique_name)

    @property
    def member_ids(self) -> list[int]:
        return parse_member_ids(self.unique_name)

    def __str__(self) -> str:
        return self.unique_name


@dataclass(frozen=True)
class Member:
    """A channel membership record from the source backend."""

    id: str

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True)
class UserChannel:
    """A user-to-channel link from the source backend."""

    channel_sid: str

    def __str__(self) -> str:
        return self.channel_sid


# ---------------------------------------------------------------------------
# Target payload builders
# ---------------------------------------------------------------------------


def _localized(values: dict[str, str]) -> dict[str, str | None]:
    return {locale: values.get(locale) for locale in LISTING_LOCALES}


def build_channel_data(attributes: ChannelAttributes) -> dict[str, Any]:
    """Build the ``data`` blob stored on the target channel."""
    data: dict[str, Any] = {"is_listing_blocked": attributes.is_listing_blocked}
    if attributes.channel_deleted_by:
        data["channel_deleted_by"] = [
            {
                "date": d.date.isoformat() if d.date else None,
                "user_id": d.user_id,
            }
            for d in attributes.channel_deleted_by
        ]
    listing = attributes.listing
    if listing is None:
        return data
    listing_data: dict[str, Any] = {
        "id": listing.id,
        "title": listing.title,
        "state": listing.state,
    }
    if listing.formatted_price:
        listing_data["formatted_price"] = _localized(listing.formatted_price)
    if listing.location:
        listing_data["location"] = _localized(listing.location)
    data["listing"] = listing_data
    return data


def build_channel_payload(
    channel: SourceChannel, member_ids: list[int]
) -> dict[str, Any]:
    """Build the target group-channel create/update body."""
    attributes = channel.attributes or ChannelAttributes()
    listing = attributes.listing
    return {
        "channel_url": channel.channel_url,
        "name": channel.friendly_name or "",
        "cover_url": (listing.main_picture if listing else None) or "",
        "created_by": str(attributes.buyer_id) if attributes.buyer_id else None,
        "user_ids": [str(m) for m in member_ids],
        "is_distinct": False,
        "data": json.dumps(build_channel_data(attributes)),
    }


def build_channel_metadata(channel: SourceChannel) -> dict[str, str]:
    """Build the metadata stored alongside the target channel."""
    listing_id = channel.attributes.listing_id if channel.attributes else 0
    return {"listing_id": str(listing_id)}


def build_user_payload(user: SourceUser) -> dict[str, Any]:
    """Build the target user create/update body."""
    metadata: dict[str, str] = {}
    if user.attributes and user.attributes.blocked_by_admin_at is not None:
        metadata["blocked_by_admin_at"] = user.attributes.blocked_by_admin_at.isoformat()
    return {
        "user_id": user.id,
        "nickname": user.friendly_name or "",
        "profile_url": user.profile_image_url or "",
        "issue_access_token": True,
        "metadata": metadata,
    }


# ---------------------------------------------------------------------------
# Transport result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClientResult(Generic[T]):
    """Outcome of a single backend call.

    Carries the status code, a human-readable message, the original error
    text and the payload. The engine never looks past these fields.
    """

    status_code: int
    message: str | None = None
    original_message: str | None = None
    payload: T | None = None

    @property
    def is_success(self) -> bool:
        return HTTP_OK <= self.status_code < HTTP_MULTIPLE_CHOICES

    @classmethod
    def ok(cls, payload: T, status_code: int = HTTP_OK) -> ClientResult[T]:
        return cls(status_code=status_code, payload=payload)

    @classmethod
    def error(
        cls,
        status_code: int,
        message: str,
        original_message: str | None = None,
    ) -> ClientResult[T]:
        return cls(
            status_code=status_code,
            message=message,
            original_message=original_message,
        )

    def describe(self) -> str:
        """Short description for error messages."""
        return f"Message: [{self.message}]; HTTP status code: [{self.status_code}]"


# ---------------------------------------------------------------------------
# Run description enums
# ---------------------------------------------------------------------------


class Action(str, Enum):
    """What a run does."""

    MIGRATE = "migrate"
    BLOCK = "block"
    UNBLOCK = "unblock"


class ScopeKind(str, Enum):
    """Which entities a run covers."""

    USER = "user"
    CHANNEL = "channel"
    ALL_USERS = "all_users"
    ALL_CHANNELS = "all_channels"


class OperationResult(str, Enum):
    """Outcome of one step of the channel upsert sequence."""

    SUCCESS = "success"
    FAILURE = "failure"
    CONTINUATION = "continuation"

"""
Blocking enforcement within the source backend.

Sets or clears the blocked flags stored in channel attributes. Repeated runs
are idempotent: channels already in the desired state are skipped without a
write.
"""

from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING, Any

from tqdm import tqdm

from chat_reconciler.constants import DEFAULT_PAGE_SIZE, ListingState
from chat_reconciler.core.dependencies import DependencyResolver, find_counterpart
from chat_reconciler.core.filters import (
    DateWindow,
    has_uncertain_data,
    is_state_achieved,
)
from chat_reconciler.core.result import RunResult
from chat_reconciler.exceptions import ValidationError
from chat_reconciler.types import SourceChannel, parse_member_ids
from chat_reconciler.utils.logging import log_with_context

if TYPE_CHECKING:
    from chat_reconciler.services.source_client import SourceClient


# ---------------------------------------------------------------------------
# Attribute patching
# ---------------------------------------------------------------------------


def _find_key(data: dict[str, Any], key: str) -> str | None:
    """Return the key as spelled in ``data``, matching case-insensitively."""
    if key in data:
        return key
    lowered = key.lower()
    for existing in data:
        if isinstance(existing, str) and existing.lower() == lowered:
            return existing
    return None


def apply_blockage_fields(attributes_raw: str | None, to_block: bool) -> str | None:
    """Return the attribute blob with its blockage fields set to ``to_block``.

    Only three fields are touched: ``isBlocked`` and ``isListingBlocked`` when
    present, and ``listing.state`` when it holds the opposite listing state.
    Every other key keeps its value and spelling. Blobs that are not a JSON
    object are returned unchanged.
    """
    if attributes_raw is None:
        return None
    try:
        data = json.loads(attributes_raw)
    except ValueError:
        return attributes_raw
    if not isinstance(data, dict):
        return attributes_raw

    for field_name in ("isBlocked", "isListingBlocked"):
        key = _find_key(data, field_name)
        if key is not None and isinstance(data[key], bool):
            data[key] = to_block

    listing_key = _find_key(data, "listing")
    listing = data.get(listing_key) if listing_key else None
    if isinstance(listing, dict):
        state_key = _find_key(listing, "state")
        current = ListingState.ACTIVE if to_block else ListingState.BLOCKED
        desired = ListingState.BLOCKED if to_block else ListingState.ACTIVE
        if state_key is not None and listing[state_key] == current:
            listing[state_key] = int(desired)

    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def is_patch_empty(attributes_raw: str | None, patched: str | None) -> bool:
    """True when the patch leaves the parsed attributes as they were."""
    if attributes_raw == patched:
        return True
    try:
        return json.loads(attributes_raw or "null") == json.loads(patched or "null")
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Blocked listing override
# ---------------------------------------------------------------------------


def read_blocked_listing_ids(path: str) -> frozenset[int]:
    """Read listing ids, one per line; invalid or non-positive lines are ignored.

    Raises:
        ValidationError: If the file does not exist.
    """
    if not os.path.exists(path):
        raise ValidationError(f"Blocked listings file not found: {path}")

    ids = set()
    with open(path, encoding="utf-8") as f:
        for line in f:
            try:
                listing_id = int(line.strip())
            except ValueError:
                continue
            if listing_id > 0:
                ids.add(listing_id)
    return frozenset(ids)


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class Executor:
    """Enforces blocked/unblocked state on source channel attributes."""

    def __init__(self, source: SourceClient) -> None:
        self.source = source
        self.resolver = DependencyResolver(source)

    def set_user_channels_blocked(
        self,
        user_id: str | int,
        to_block: bool,
        window: DateWindow,
        page_size: int,
        limit: int,
        blocked_listing_ids: frozenset[int] = frozenset(),
    ) -> RunResult:
        """Set the blocked state of every channel a user belongs to."""
        verb = "blocked" if to_block else "unblocked"
        try:
            account_id = int(str(user_id).strip())
        except ValueError:
            account_id = 0
        if account_id <= 0:
            return RunResult.error(
                f"Setting {verb} the user failed. See errors for details.",
                f"{user_id} is invalid.",
            )

        links = self.source.list_user_channels(
            str(account_id),
            page_size if page_size > 0 else DEFAULT_PAGE_SIZE,
            limit if limit > 0 else None,
        )
        if not links.is_success:
            return RunResult.error(
                f"Fetching channels for the user {account_id} failed. "
                "See errors for details.",
                links.describe(),
            )
        if not links.payload:
            return RunResult(
                message=f"No channels attributes for the account ID {account_id} to update."
            )

        result = RunResult()
        for link in tqdm(links.payload, desc=f"Updating channels of {account_id}"):
            result = result.merge(
                self._update_channel(
                    link.channel_sid,
                    to_block,
                    window,
                    blocked_listing_ids,
                    known_id=account_id,
                )
            )

        if result.fetched_count == 0:
            return result.with_message(
                f"Updating the channels' attributes for the user {account_id} failed. "
                "See errors for details."
            )
        return result.with_message(
            f"Update finished. Totally updated {result.succeeded_count} channels' attributes."
            if result.failed_count == 0
            else f"Some issues occurred while updating the channels' attributes "
            f"for the user {account_id}. See errors for details."
        )

    def set_channel_blocked(
        self,
        unique_name: str,
        to_block: bool,
        window: DateWindow,
        blocked_listing_ids: frozenset[int] = frozenset(),
    ) -> RunResult:
        """Set the blocked state of a single channel."""
        verb = "blocked" if to_block else "unblocked"
        if not unique_name or not unique_name.strip():
            return RunResult.error(
                f"Setting {verb} the channel's attributes failed. See errors for details.",
                f"{unique_name} is invalid.",
            )

        result = self._update_channel(unique_name, to_block, window, blocked_listing_ids)
        if result.fetched_count == 0:
            return result.with_message(
                f"Updating the attributes of the channel {unique_name} failed. "
                "See errors for details."
            )
        if result.failed_count > 0:
            return result.with_message(
                f"Some issues occurred while updating the attributes of the channel "
                f"{unique_name}. See errors for details."
            )
        return result

    def set_all_channels_blocked(
        self,
        to_block: bool,
        window: DateWindow,
        page_size: int,
        limit: int,
        blocked_listing_ids: frozenset[int] = frozenset(),
    ) -> RunResult:
        """Set the blocked state of every private channel, up to ``limit``."""
        fetched = self.source.list_channels(
            page_size if page_size > 0 else DEFAULT_PAGE_SIZE,
            limit if limit > 0 else None,
        )
        if not fetched.is_success:
            return RunResult.error(
                "Fetching channels failed. See errors for details.", fetched.describe()
            )

        result = RunResult()
        for channel in tqdm(
            fetched.payload or [], desc="Updating channels", unit="channel"
        ):
            result = result.merge(RunResult.fetched_entity(channel))
            result = result.merge(
                self._update_fetched_channel(channel, to_block, window, blocked_listing_ids)
            )

        return result.with_message(
            f"Update finished. Totally updated {result.succeeded_count} channels' attributes."
            if result.failed_count == 0
            else f"Not all channels' attributes updated successfully. "
            f"{result.failed_count} failed, {result.succeeded_count} succeeded."
        )

    # ------------------------------------------------------------------
    # Per-channel state machine
    # ------------------------------------------------------------------

    def _update_channel(
        self,
        unique_name: str,
        to_block: bool,
        window: DateWindow,
        blocked_listing_ids: frozenset[int],
        known_id: int | None = None,
    ) -> RunResult:
        fetched = self.source.fetch_channel(unique_name)
        if not fetched.is_success or fetched.payload is None:
            error = (
                f"Failed to retrieve channel {unique_name}; "
                f"reason: {fetched.describe()}."
            )
            log_with_context(logging.ERROR, error, channel=unique_name)
            return RunResult.failure(SourceChannel(unique_name=unique_name), error)

        channel = fetched.payload
        updated = self._update_fetched_channel(
            channel, to_block, window, blocked_listing_ids, known_id
        )
        return RunResult.fetched_entity(channel).merge(updated, message=updated.message)

    def _is_deliberately_blocked(
        self, channel: SourceChannel, known_id: int | None
    ) -> bool:
        if known_id is not None:
            counterpart = find_counterpart(channel.unique_name, [known_id])
            if counterpart is None:
                return False
            return self.resolver.is_deliberately_blocked(known_id, counterpart)

        members = parse_member_ids(channel.unique_name)
        if len(members) < 2:
            return False
        return self.resolver.is_deliberately_blocked(members[0], members[1])

    def _update_fetched_channel(
        self,
        channel: SourceChannel,
        to_block: bool,
        window: DateWindow,
        blocked_listing_ids: frozenset[int],
        known_id: int | None = None,
    ) -> RunResult:
        name = channel.unique_name

        if not window.includes(channel.date_updated):
            message = (
                f"Channel {name} skipped. Last updated on {channel.date_updated}. "
                f"Requested time period: {window.describe()}."
            )
            log_with_context(logging.INFO, message, channel=name)
            return RunResult.skip(channel, message)

        if has_uncertain_data(channel):
            message = f"Channel {name} contained uncertain data. Skipped."
            log_with_context(logging.INFO, message, channel=name)
            return RunResult.skip(channel, message)

        if not to_block and self._is_deliberately_blocked(channel, known_id):
            message = (
                f"Channel {name} skipped. One of the members deliberately "
                "blocked the other."
            )
            log_with_context(logging.INFO, message, channel=name)
            return RunResult.skip(channel, message)

        if is_state_achieved(channel.attributes, to_block):
            message = (
                f"Channel {name} skipped. Required state [Blocked: {to_block}] "
                "acquired, or no attributes."
            )
            log_with_context(logging.DEBUG, message, channel=name)
            return RunResult.skip(channel, message)

        listing_id = channel.attributes.listing_id if channel.attributes else 0
        if not to_block and listing_id in blocked_listing_ids:
            message = f"Channel {name} skipped. Listing {listing_id} stays blocked."
            log_with_context(logging.INFO, message, channel=name)
            return RunResult.skip(channel, message)

        patched = apply_blockage_fields(channel.attributes_raw, to_block)
        if is_patch_empty(channel.attributes_raw, patched):
            message = (
                f"Channel {name} skipped. No blockage fields to set to {str(to_block).lower()}."
            )
            log_with_context(logging.DEBUG, message, channel=name)
            return RunResult.skip(channel, message)

        written = self.source.update_channel_attributes(name, patched or "")
        if not written.is_success:
            error = (
                f"Failed to update channel {name}; reason: {written.describe()}."
            )
            log_with_context(logging.ERROR, error, channel=name)
            return RunResult.failure(channel, error)

        message = (
            f"Attributes of the channel {name} updated successfully. "
            f"Status \"Blocked\" changed to {str(to_block).lower()}."
        )
        log_with_context(logging.INFO, message, channel=name)
        return RunResult.success(channel, message)

"""
Channel upsert sequence for migration to the target backend.

The sequence is optimistic: it tries to create the channel first and falls
back to an update when the target reports a conflict. Freeze calls are best
effort; a failed freeze is recorded but does not fail the channel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from chat_reconciler.constants import HTTP_CONFLICT, HTTP_NOT_FOUND
from chat_reconciler.core.result import RunResult
from chat_reconciler.types import (
    ChannelAttributes,
    OperationResult,
    SourceChannel,
    build_channel_metadata,
    build_channel_payload,
)
from chat_reconciler.utils.logging import log_with_context

if TYPE_CHECKING:
    from chat_reconciler.services.target_client import TargetClient


@dataclass(frozen=True)
class StepOutcome:
    """Outcome of one step of the upsert sequence plus the errors it produced."""

    result: OperationResult
    errors: tuple[str, ...] = ()


def _desired_freeze(channel: SourceChannel) -> bool:
    return (channel.attributes or ChannelAttributes()).should_be_frozen


def create_or_update_channel(
    target: TargetClient, channel: SourceChannel, member_ids: list[int]
) -> StepOutcome:
    """Create the channel, or update it if it already exists.

    Returns:
        ``SUCCESS`` when the channel was created and its metadata written,
        ``CONTINUATION`` when it was updated and metadata still needs an
        update-else-create, ``FAILURE`` otherwise.
    """
    payload = build_channel_payload(channel, member_ids)
    channel_url = payload["channel_url"]
    freeze = _desired_freeze(channel)
    errors: list[str] = []

    created = target.create_channel(payload)

    if not created.is_success and created.status_code != HTTP_CONFLICT:
        return StepOutcome(
            OperationResult.FAILURE,
            (
                f"Failed to create channel {channel_url} on target. "
                f"Reason: {created.describe()}.",
            ),
        )

    if created.is_success:
        if freeze:
            frozen = target.set_frozen(channel_url, True)
            if not frozen.is_success:
                errors.append(
                    f"Failed to freeze the channel {channel_url} on target. "
                    f"Reason: {frozen.describe()}. Proceeding..."
                )
                log_with_context(logging.WARNING, errors[-1], channel=channel_url)

        metadata = target.create_channel_metadata(
            channel_url, build_channel_metadata(channel)
        )
        if metadata.is_success:
            return StepOutcome(OperationResult.SUCCESS, tuple(errors))
        errors.append(
            f"Failed to create metadata for channel {channel_url} on target. "
            f"Reason: {metadata.describe()}."
        )
        return StepOutcome(OperationResult.FAILURE, tuple(errors))

    log_with_context(
        logging.DEBUG,
        f"Channel {channel_url} already exists on target. Updating...",
        channel=channel_url,
    )
    updated = target.update_channel(channel_url, payload)
    if not updated.is_success:
        return StepOutcome(
            OperationResult.FAILURE,
            (
                f"Failed to update channel {channel_url} on target. "
                f"Reason: {updated.describe()}.",
            ),
        )

    current_freeze = bool((updated.payload or {}).get("freeze", False))
    if current_freeze != freeze:
        altered = target.set_frozen(channel_url, freeze)
        if not altered.is_success:
            action = "freeze" if freeze else "unfreeze"
            errors.append(
                f"Failed to {action} the channel {channel_url} on target. "
                f"Reason: {altered.describe()}. Proceeding..."
            )
            log_with_context(logging.WARNING, errors[-1], channel=channel_url)

    return StepOutcome(OperationResult.CONTINUATION, tuple(errors))


def update_or_create_metadata(
    target: TargetClient, channel: SourceChannel
) -> StepOutcome:
    """Update channel metadata, creating it when the target has none."""
    channel_url = channel.channel_url or ""
    metadata = build_channel_metadata(channel)

    updated = target.update_channel_metadata(channel_url, metadata)
    if updated.is_success:
        return StepOutcome(OperationResult.SUCCESS)
    if updated.status_code != HTTP_NOT_FOUND:
        return StepOutcome(
            OperationResult.FAILURE,
            (
                f"Failed to update metadata for channel {channel_url} on target. "
                f"Reason: {updated.describe()}.",
            ),
        )

    log_with_context(
        logging.DEBUG,
        f"Metadata for channel {channel_url} does not exist on target. Creating...",
        channel=channel_url,
    )
    created = target.create_channel_metadata(channel_url, metadata)
    if created.is_success:
        return StepOutcome(OperationResult.SUCCESS)
    return StepOutcome(
        OperationResult.FAILURE,
        (
            f"Failed to create metadata for channel {channel_url} on target. "
            f"Reason: {created.describe()}.",
        ),
    )


def upsert_channel(
    target: TargetClient, channel: SourceChannel, member_ids: list[int]
) -> RunResult:
    """Run the full upsert sequence and classify the channel.

    The returned result does not list the channel as fetched; the caller has
    already recorded that.
    """
    log_with_context(
        logging.INFO,
        f"Migrating channel {channel.unique_name}...",
        channel=channel.unique_name,
    )
    outcome = create_or_update_channel(target, channel, member_ids)
    errors = outcome.errors

    if outcome.result is OperationResult.CONTINUATION:
        metadata_outcome = update_or_create_metadata(target, channel)
        errors += metadata_outcome.errors
        outcome = StepOutcome(metadata_outcome.result, errors)

    if outcome.result is OperationResult.SUCCESS:
        message = f"Channel {channel.unique_name} migrated successfully."
        log_with_context(logging.INFO, message, channel=channel.unique_name)
        return RunResult(succeeded=(channel,), errors=errors, message=message)

    message = f"Channel {channel.unique_name} failed to migrate."
    for error in errors:
        log_with_context(logging.ERROR, error, channel=channel.unique_name)
    return RunResult(failed=(channel,), errors=errors, message=message)

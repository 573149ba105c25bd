"""Tests for chat_reconciler.core.channel_upsert module."""

from __future__ import annotations

import json

from chat_reconciler.core.channel_upsert import (
    create_or_update_channel,
    update_or_create_metadata,
    upsert_channel,
)
from chat_reconciler.types import OperationResult
from tests.unit.conftest import build_channel


class TestCreateOrUpdateChannel:
    """Tests for create_or_update_channel()."""

    def test_create_writes_metadata(self, target):
        channel = build_channel("100-200")
        outcome = create_or_update_channel(target, channel, [100, 200])

        assert outcome.result is OperationResult.SUCCESS
        assert outcome.errors == ()
        assert target.channels["100_200"]["user_ids"] == ["100", "200"]
        assert target.metadata["100_200"] == {"listing_id": "5"}
        assert target.calls_to("set_frozen") == []

    def test_create_blocked_channel_freezes(self, target):
        channel = build_channel("100-200", isBlocked=True)
        create_or_update_channel(target, channel, [100, 200])
        assert target.calls_to("set_frozen") == [("100_200", True)]
        assert target.channels["100_200"]["freeze"] is True

    def test_listing_blocked_also_freezes(self, target):
        channel = build_channel("100-200", isListingBlocked=True)
        create_or_update_channel(target, channel, [100, 200])
        assert target.calls_to("set_frozen") == [("100_200", True)]

    def test_freeze_failure_does_not_fail(self, target):
        target.fail("set_frozen")
        channel = build_channel("100-200", isBlocked=True)
        outcome = create_or_update_channel(target, channel, [100, 200])
        assert outcome.result is OperationResult.SUCCESS
        assert len(outcome.errors) == 1
        assert "Proceeding" in outcome.errors[0]

    def test_create_failure(self, target):
        target.fail("create_channel", 400)
        outcome = create_or_update_channel(target, build_channel("100-200"), [100, 200])
        assert outcome.result is OperationResult.FAILURE
        assert "Failed to create channel 100_200" in outcome.errors[0]
        assert target.calls_to("update_channel") == []

    def test_metadata_failure_after_create(self, target):
        target.fail("create_channel_metadata")
        outcome = create_or_update_channel(target, build_channel("100-200"), [100, 200])
        assert outcome.result is OperationResult.FAILURE

    def test_conflict_updates_without_freeze_when_unchanged(self, target):
        target.add_channel("100_200", freeze=False)
        outcome = create_or_update_channel(target, build_channel("100-200"), [100, 200])

        assert outcome.result is OperationResult.CONTINUATION
        assert len(target.calls_to("update_channel")) == 1
        assert target.calls_to("set_frozen") == []
        assert target.calls_to("create_channel_metadata") == []

    def test_conflict_unfreezes_when_state_differs(self, target):
        target.add_channel("100_200", freeze=True)
        create_or_update_channel(target, build_channel("100-200"), [100, 200])
        assert target.calls_to("set_frozen") == [("100_200", False)]

    def test_update_failure(self, target):
        target.add_channel("100_200")
        target.fail("update_channel")
        outcome = create_or_update_channel(target, build_channel("100-200"), [100, 200])
        assert outcome.result is OperationResult.FAILURE
        assert "Failed to update channel" in outcome.errors[0]

    def test_payload_carries_listing_snapshot(self, target):
        channel = build_channel(
            "100-200",
            listing={
                "id": 5,
                "title": "Bike",
                "state": 1,
                "mainPicture": "https://example.com/bike.png",
                "formattedPrice": {"fr": "10 CHF", "de": "CHF 10"},
            },
        )
        create_or_update_channel(target, channel, [100, 200])
        payload = target.calls_to("create_channel")[0][0]
        data = json.loads(payload["data"])

        assert payload["cover_url"] == "https://example.com/bike.png"
        assert payload["created_by"] == "200"
        assert payload["is_distinct"] is False
        assert data["listing"]["formatted_price"] == {"fr": "10 CHF", "de": "CHF 10", "it": None}


class TestUpdateOrCreateMetadata:
    """Tests for update_or_create_metadata()."""

    def test_updates_existing(self, target):
        target.metadata["100_200"] = {"listing_id": "1"}
        outcome = update_or_create_metadata(target, build_channel("100-200"))
        assert outcome.result is OperationResult.SUCCESS
        assert target.metadata["100_200"] == {"listing_id": "5"}
        assert target.calls_to("create_channel_metadata") == []

    def test_creates_when_missing(self, target):
        outcome = update_or_create_metadata(target, build_channel("100-200"))
        assert outcome.result is OperationResult.SUCCESS
        assert len(target.calls_to("create_channel_metadata")) == 1

    def test_other_update_error_fails(self, target):
        target.fail("update_channel_metadata", 500)
        outcome = update_or_create_metadata(target, build_channel("100-200"))
        assert outcome.result is OperationResult.FAILURE
        assert target.calls_to("create_channel_metadata") == []

    def test_create_error_fails(self, target):
        target.fail("create_channel_metadata")
        outcome = update_or_create_metadata(target, build_channel("100-200"))
        assert outcome.result is OperationResult.FAILURE


class TestUpsertChannel:
    """Tests for upsert_channel()."""

    def test_new_channel_succeeds(self, target):
        channel = build_channel("100-200")
        result = upsert_channel(target, channel, [100, 200])
        assert result.succeeded == (channel,)
        assert result.fetched == ()
        assert result.message == "Channel 100-200 migrated successfully."

    def test_conflict_then_metadata_upsert_succeeds(self, target):
        target.add_channel("100_200")
        target.metadata["100_200"] = {"listing_id": "5"}
        channel = build_channel("100-200")

        result = upsert_channel(target, channel, [100, 200])

        assert result.succeeded == (channel,)
        assert target.calls_to("set_frozen") == []
        assert len(target.calls_to("update_channel_metadata")) == 1

    def test_freeze_failure_keeps_success_with_error(self, target):
        target.add_channel("100_200", freeze=False)
        target.fail("set_frozen")
        channel = build_channel("100-200", isBlocked=True)

        result = upsert_channel(target, channel, [100, 200])

        assert result.succeeded == (channel,)
        assert result.failed == ()
        assert len(result.errors) == 1

    def test_failure_is_classified(self, target):
        target.fail("create_channel")
        channel = build_channel("100-200")
        result = upsert_channel(target, channel, [100, 200])
        assert result.failed == (channel,)
        assert result.succeeded == ()
        assert result.message == "Channel 100-200 failed to migrate."

"""Shared test fixtures for the chat_reconciler test suite."""

import json

import pytest


@pytest.fixture()
def sample_user_resources():
    """Return a list of source user resources as the REST API returns them."""
    return [
        {
            "identity": "42",
            "friendly_name": "Alice",
            "date_created": "2020-01-01T00:00:00Z",
            "date_updated": "2021-06-01T12:00:00Z",
            "attributes": json.dumps(
                {
                    "blockedUsers": [7, 8],
                    "profileImageUrl": "https://example.com/alice.png",
                }
            ),
        },
        {
            "identity": "7",
            "friendly_name": "Bob",
            "date_created": "2020-01-02T00:00:00Z",
            "date_updated": "2021-07-01T12:00:00Z",
            "attributes": "{}",
        },
    ]


@pytest.fixture()
def sample_channel_resources():
    """Return a list of source channel resources as the REST API returns them."""
    return [
        {
            "sid": "CH001",
            "unique_name": "100-200",
            "friendly_name": "Bike for sale",
            "members_count": 2,
            "date_created": "2021-01-01T00:00:00Z",
            "date_updated": "2021-05-01T00:00:00Z",
            "attributes": json.dumps(
                {
                    "listingId": 5,
                    "sellerId": 100,
                    "buyerId": 200,
                    "isBlocked": False,
                    "isListingBlocked": False,
                    "listing": {"id": 5, "title": "Bike", "state": 1},
                }
            ),
        },
        {
            "sid": "CH002",
            "unique_name": "10-20",
            "friendly_name": "Unknown listing",
            "members_count": 2,
            "date_created": "2021-01-01T00:00:00Z",
            "date_updated": "2021-05-01T00:00:00Z",
            "attributes": json.dumps({"listingId": 0}),
        },
    ]


@pytest.fixture()
def config_data():
    """Return a complete configuration mapping."""
    return {
        "source": {
            "account_sid": "AC123",
            "auth_token": "secret",
            "service_sid": "IS123",
        },
        "target": {"app_id": "APP1", "api_token": "token"},
        "page_size": 50,
        "result_limit": 10,
        "max_retries": 1,
        "retry_delay": 0,
        "request_timeout": 5,
    }

"""Tests for chat_reconciler.services.target_client module."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from chat_reconciler.core.config import ReconcilerConfig
from chat_reconciler.services.target_client import (
    PRESENCE_BATCH_SIZE,
    TargetClient,
    normalize_status,
)
from chat_reconciler.utils.api import RetryConfig

BASE = "https://api-APP1.sendbird.com/v3"


def _response(status: int, body) -> MagicMock:
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.json.return_value = body
    return resp


def _client(*responses):
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    session.request.side_effect = list(responses)
    client = TargetClient(
        "APP1", "token", retry_config=RetryConfig(max_retries=0), session=session
    )
    return client, session


class TestNormalizeStatus:
    """Tests for normalize_status()."""

    @pytest.mark.parametrize(
        "status,body,expected",
        [
            (400, {"code": 400202}, 409),
            (400, {"code": 400201}, 404),
            (400, {"code": 400100}, 400),
            (400, "plain text", 400),
            (500, {"code": 400202}, 500),
        ],
    )
    def test_mapping(self, status, body, expected):
        assert normalize_status(status, body) == expected


class TestConstruction:
    """Tests for client construction."""

    def test_headers_and_base_url(self):
        client, session = _client()
        assert session.headers["Api-Token"] == "token"
        assert client._base_url == BASE

    def test_from_config_with_explicit_base_url(self, config_data):
        config_data["target"]["base_url"] = "https://proxy.example.com/v3/"
        client = TargetClient.from_config(ReconcilerConfig.from_dict(config_data))
        assert client._base_url == "https://proxy.example.com/v3"


class TestUsers:
    """Tests for the user endpoints."""

    def test_update_user_drops_user_id(self):
        client, session = _client(_response(200, {"user_id": "7"}))
        client.update_user("7", {"user_id": "7", "nickname": "Bob"})
        call = session.request.call_args
        assert call.args == ("PUT", f"{BASE}/users/7")
        assert call.kwargs["json"] == {"nickname": "Bob"}

    def test_update_missing_user_reports_404(self):
        client, _ = _client(_response(400, {"code": 400201, "message": "not found"}))
        assert client.update_user("7", {}).status_code == 404

    def test_create_existing_user_reports_409(self):
        client, _ = _client(_response(400, {"code": 400202, "message": "exists"}))
        assert client.create_user({"user_id": "7"}).status_code == 409

    def test_find_absent_users_keeps_order(self):
        client, session = _client(
            _response(200, {"users": [{"user_id": "7"}], "next": ""})
        )
        result = client.find_absent_users(["9", "7", "8", "9"])
        assert result.payload == ["9", "8"]
        assert session.request.call_args.kwargs["params"]["user_ids"] == "9,7,8"

    def test_find_absent_users_batches(self):
        ids = [str(i) for i in range(PRESENCE_BATCH_SIZE + 1)]
        client, session = _client(
            _response(200, {"users": [{"user_id": i} for i in ids[:-1]]}),
            _response(200, {"users": []}),
        )
        result = client.find_absent_users(ids)
        assert result.payload == [ids[-1]]
        assert session.request.call_count == 2

    def test_find_absent_users_failure(self):
        client, _ = _client(_response(403, {"message": "forbidden"}))
        result = client.find_absent_users(["1"])
        assert result.status_code == 403

    def test_block_users_single_call(self):
        client, session = _client(_response(200, {"users": []}))
        client.block_users("42", ["7", "8"])
        call = session.request.call_args
        assert call.args == ("POST", f"{BASE}/users/42/block")
        assert call.kwargs["json"] == {"target_ids": ["7", "8"]}


class TestChannels:
    """Tests for the group channel endpoints."""

    def test_update_channel_drops_identity_fields(self):
        client, session = _client(_response(200, {"freeze": False}))
        client.update_channel("1_2", {"channel_url": "1_2", "user_ids": ["1"], "name": "x"})
        call = session.request.call_args
        assert call.args == ("PUT", f"{BASE}/group_channels/1_2")
        assert call.kwargs["json"] == {"name": "x"}

    def test_set_frozen(self):
        client, session = _client(_response(200, {"freeze": True}))
        client.set_frozen("1_2", True)
        call = session.request.call_args
        assert call.args == ("PUT", f"{BASE}/group_channels/1_2/freeze")
        assert call.kwargs["json"] == {"freeze": True}

    def test_metadata_calls(self):
        client, session = _client(_response(200, {}), _response(200, {}))
        client.create_channel_metadata("1_2", {"listing_id": "5"})
        client.update_channel_metadata("1_2", {"listing_id": "5"})
        create, update = session.request.call_args_list
        assert create.args == ("POST", f"{BASE}/group_channels/1_2/metadata")
        assert create.kwargs["json"] == {"metadata": {"listing_id": "5"}}
        assert update.kwargs["json"] == {"metadata": {"listing_id": "5"}, "upsert": False}

    def test_create_existing_channel_reports_conflict(self):
        client, _ = _client(_response(400, {"code": 400202, "message": "exists"}))
        assert client.create_channel({"channel_url": "1_2"}).status_code == 409

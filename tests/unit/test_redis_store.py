"""Tests for the Redis migration store."""

import json
from unittest.mock import MagicMock, patch

import pytest
import redis

from basketmigrator.models import MigrationRequest, ValidationReport
from basketmigrator.state.redis_backend import MigrationStore


def _request(proposed_at=1_615_000_000, executed=False) -> MigrationRequest:
    return MigrationRequest(
        proxy_id="token-proxy",
        implementation_id="basket-v3",
        payload=b'{"forge_validator": "fv"}',
        proposed_at=proposed_at,
        delay=604800,
        executed=executed,
    )


class TestMigrationStore:
    @patch("basketmigrator.state.redis_backend.redis.Redis")
    def test_namespaced_keys(self, mock_redis_cls):
        store = MigrationStore(namespace="rehearsal")
        assert store.requests_key("token-proxy") == "rehearsal:migrations:token-proxy"
        assert store.OUTCOMES_KEY == "rehearsal:outcomes"

    @patch("basketmigrator.state.redis_backend.redis.Redis")
    def test_save_request_has_no_expiry(self, mock_redis_cls):
        mock_client = MagicMock()
        mock_redis_cls.return_value = mock_client

        store = MigrationStore()
        store.save_request(_request())

        mock_client.hset.assert_called_once()
        key, field, value = mock_client.hset.call_args[0]
        assert key == "basketmigrator:migrations:token-proxy"
        assert field == "1615000000"
        assert json.loads(value)["implementation_id"] == "basket-v3"
        mock_client.setex.assert_not_called()
        mock_client.expire.assert_not_called()
        mock_client.delete.assert_not_called()

    @patch("basketmigrator.state.redis_backend.redis.Redis")
    def test_load_latest_request(self, mock_redis_cls):
        mock_client = MagicMock()
        mock_redis_cls.return_value = mock_client
        mock_client.hgetall.return_value = {
            "900": _request(900, executed=True).model_dump_json(),
            "1000": _request(1000).model_dump_json(),
        }

        request = MigrationStore().load_latest_request("token-proxy")

        assert request.proposed_at == 1000
        assert request.payload == b'{"forge_validator": "fv"}'
        assert not request.executed

    @patch("basketmigrator.state.redis_backend.redis.Redis")
    def test_load_missing_request(self, mock_redis_cls):
        mock_client = MagicMock()
        mock_redis_cls.return_value = mock_client
        mock_client.hgetall.return_value = {}

        assert MigrationStore().load_latest_request("token-proxy") is None

    @patch("basketmigrator.state.redis_backend.redis.Redis")
    def test_save_failure_propagates(self, mock_redis_cls):
        mock_client = MagicMock()
        mock_redis_cls.return_value = mock_client
        mock_client.hset.side_effect = redis.ConnectionError("refused")

        with pytest.raises(redis.ConnectionError):
            MigrationStore().save_request(_request())


class TestOutcomes:
    @patch("basketmigrator.state.redis_backend.redis.Redis")
    def test_append_outcome(self, mock_redis_cls):
        mock_client = MagicMock()
        mock_redis_cls.return_value = mock_client

        MigrationStore(namespace="ns").append_outcome("validation", ValidationReport())

        key, raw = mock_client.rpush.call_args[0]
        assert key == "ns:outcomes"
        entry = json.loads(raw)
        assert entry["kind"] == "validation"
        assert entry["result"] == {"checks": []}

    @patch("basketmigrator.state.redis_backend.redis.Redis")
    def test_list_outcomes_skips_corrupt_entries(self, mock_redis_cls):
        mock_client = MagicMock()
        mock_redis_cls.return_value = mock_client
        mock_client.lrange.return_value = ['{"kind": "migration"}', "not-json"]

        outcomes = MigrationStore().list_outcomes(limit=10)

        mock_client.lrange.assert_called_once_with("basketmigrator:outcomes", -10, -1)
        assert outcomes == [{"kind": "migration"}]

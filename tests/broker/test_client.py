"""Tests for the RabbitMQ management API client."""

from __future__ import annotations

import base64
import json

import httpx
import pytest

from masstransit_mcp.broker.client import BrokerApiError, ManagementClient
from masstransit_mcp.config import RabbitMQConfig

pytestmark = pytest.mark.unit


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, responses: dict[tuple[str, str], httpx.Response] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.responses = responses or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.raw_path.decode())
        return self.responses.get(key, httpx.Response(200, json=[]))

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> dict:
        return json.loads(self.last.content)


def _client(config: RabbitMQConfig, recorder: Recorder) -> ManagementClient:
    http = httpx.AsyncClient(
        base_url=config.base_url,
        transport=httpx.MockTransport(recorder),
        auth=httpx.BasicAuth(config.username, config.password),
    )
    return ManagementClient(config, http_client=http)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def client(rabbit_config: RabbitMQConfig, recorder: Recorder) -> ManagementClient:
    return _client(rabbit_config, recorder)


# ---------------------------------------------------------------------------
# URL building
# ---------------------------------------------------------------------------


class TestPaths:
    async def test_default_vhost_encoded(self, client, recorder):
        recorder.responses[("GET", "/api/queues/%2F/orders_error")] = httpx.Response(
            200, json={"name": "orders_error", "messages": 3}
        )
        queue = await client.get_queue("orders_error")
        assert queue.name == "orders_error"
        assert queue.messages == 3
        assert recorder.last.url.raw_path == b"/api/queues/%2F/orders_error"

    async def test_names_are_percent_encoded(self, client, recorder):
        await client.list_bindings_for_exchange("App:Order Placed", "source", vhost="prod/eu")
        assert recorder.last.url.raw_path == (
            b"/api/exchanges/prod%2Feu/App%3AOrder%20Placed/bindings/source"
        )

    async def test_list_queues_all_vhosts(self, client, recorder):
        await client.list_queues()
        assert recorder.last.url.raw_path == b"/api/queues"

    async def test_list_queues_one_vhost(self, client, recorder):
        await client.list_queues("prod")
        assert recorder.last.url.raw_path == b"/api/queues/prod"

    async def test_config_vhost_used_by_default(self, rabbit_config, recorder):
        rabbit_config.vhost = "staging"
        client = _client(rabbit_config, recorder)
        await client.list_bindings_for_queue("orders")
        assert recorder.last.url.raw_path == b"/api/queues/staging/orders/bindings"

    async def test_basic_auth(self, client, recorder):
        await client.list_connections()
        token = base64.b64encode(b"ops:s3cret").decode()
        assert recorder.last.headers["authorization"] == f"Basic {token}"

    def test_base_url(self):
        config = RabbitMQConfig(host="mq", username="u", password="p", port=443, ssl=True)
        assert config.base_url == "https://mq:443/api"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class TestMessages:
    async def test_peek_requeues(self, client, recorder):
        recorder.responses[("POST", "/api/queues/%2F/orders_error/get")] = httpx.Response(
            200,
            json=[
                {
                    "payload": '{"message": {}}',
                    "payload_bytes": 15,
                    "payload_encoding": "string",
                    "redelivered": True,
                    "exchange": "",
                    "routing_key": "orders_error",
                    "message_count": 4,
                    "properties": {"headers": {"MT-Reason": "fault"}, "message_id": "m-1"},
                }
            ],
        )
        messages = await client.peek_messages("orders_error", count=3)
        assert recorder.last_json() == {
            "count": 3,
            "ackmode": "ack_requeue_true",
            "encoding": "auto",
            "truncate": 50000,
        }
        assert messages[0].headers == {"MT-Reason": "fault"}
        assert messages[0].properties.message_id == "m-1"
        assert messages[0].message_count == 4

    async def test_consume_removes_untruncated(self, client, recorder):
        await client.consume_messages("orders_error", count=2)
        assert recorder.last_json() == {
            "count": 2,
            "ackmode": "ack_requeue_false",
            "encoding": "auto",
        }

    async def test_empty_properties_list(self, client, recorder):
        recorder.responses[("POST", "/api/queues/%2F/q/get")] = httpx.Response(
            200, json=[{"payload": "x", "properties": []}]
        )
        [message] = await client.peek_messages("q")
        assert message.headers == {}

    async def test_publish_defaults_and_overrides(self, client, recorder):
        recorder.responses[("POST", "/api/exchanges/%2F/orders/publish")] = httpx.Response(
            200, json={"routed": True}
        )
        result = await client.publish_message(
            "orders",
            "orders",
            "{}",
            {"content_type": "application/json", "message_id": None, "headers": {"a": 1}},
        )
        assert result.routed is True
        assert recorder.last_json() == {
            "routing_key": "orders",
            "payload": "{}",
            "payload_encoding": "string",
            "properties": {
                "delivery_mode": 2,
                "content_type": "application/json",
                "headers": {"a": 1},
            },
        }

    async def test_publish_base64_payload(self, client, recorder):
        await client.publish_message("orders", "rk", "3q2+7w==", payload_encoding="base64")
        assert recorder.last_json()["payload"] == "3q2+7w=="
        assert recorder.last_json()["payload_encoding"] == "base64"

    async def test_publish_default_content_type(self, client, recorder):
        await client.publish_message("orders", "rk", "{}")
        assert recorder.last_json()["properties"] == {
            "delivery_mode": 2,
            "content_type": "application/vnd.masstransit+json",
        }


# ---------------------------------------------------------------------------
# Errors and lifecycle
# ---------------------------------------------------------------------------


class TestErrors:
    async def test_non_2xx_raises(self, client, recorder):
        recorder.responses[("GET", "/api/queues/%2F/missing")] = httpx.Response(
            404, text='{"error":"Object Not Found","reason":"Not Found"}'
        )
        with pytest.raises(BrokerApiError) as exc_info:
            await client.get_queue("missing")
        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == (
            'RabbitMQ API error: 404 Not Found - {"error":"Object Not Found","reason":"Not Found"}'
        )

    async def test_purge_no_content(self, client, recorder):
        recorder.responses[("DELETE", "/api/queues/%2F/orders/contents")] = httpx.Response(204)
        assert await client.purge_queue("orders") is None

    async def test_transport_errors_propagate(self, rabbit_config):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        http = httpx.AsyncClient(
            base_url=rabbit_config.base_url, transport=httpx.MockTransport(refuse)
        )
        client = ManagementClient(rabbit_config, http_client=http)
        with pytest.raises(httpx.ConnectError):
            await client.get_overview()

    async def test_aclose_leaves_injected_client_open(self, client, recorder):
        await client.aclose()
        await client.list_connections()
        assert len(recorder.requests) == 1

    async def test_aclose_owned_client(self, rabbit_config):
        client = ManagementClient(rabbit_config)
        await client.aclose()
        assert client._client.is_closed

"""Shared fixtures for the masstransit-mcp test suite."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from masstransit_mcp.broker.client import BrokerApiError
from masstransit_mcp.broker.models import PeekedMessage, PublishResult, QueueInfo
from masstransit_mcp.config import AppConfig, RabbitMQConfig, ServerConfig


def make_message(
    payload: Any = "",
    *,
    headers: dict[str, Any] | None = None,
    exchange: str = "",
    routing_key: str = "",
    **properties: Any,
) -> PeekedMessage:
    """Build a management API message; dict/list payloads are JSON-encoded."""
    if not isinstance(payload, str):
        payload = json.dumps(payload)
    return PeekedMessage.model_validate(
        {
            "payload": payload,
            "payload_bytes": len(payload),
            "exchange": exchange,
            "routing_key": routing_key,
            "properties": {"headers": headers or {}, **properties},
        }
    )


class FakeBroker:
    """In-memory broker with management-client semantics for messages.

    ``peek_messages`` leaves messages queued, ``consume_messages`` removes
    them. Publishes are recorded in ``published``; the 1-based publish
    attempts listed in ``fail_publishes`` raise ``BrokerApiError``.
    """

    def __init__(self) -> None:
        self.queues: dict[str, list[PeekedMessage]] = {}
        self.queue_infos: list[QueueInfo] = []
        self.published: list[dict[str, Any]] = []
        self.fail_publishes: set[int] = set()
        self.unrouted_exchanges: set[str] = set()
        self._publish_attempts = 0

    def enqueue(self, queue: str, *messages: PeekedMessage) -> None:
        self.queues.setdefault(queue, []).extend(messages)

    def depth(self, queue: str) -> int:
        return len(self.queues.get(queue, []))

    async def peek_messages(
        self, queue: str, count: int = 5, vhost: str | None = None
    ) -> list[PeekedMessage]:
        return list(self.queues.get(queue, [])[:count])

    async def consume_messages(
        self, queue: str, count: int = 1, vhost: str | None = None
    ) -> list[PeekedMessage]:
        messages = self.queues.get(queue, [])
        taken, self.queues[queue] = messages[:count], messages[count:]
        return taken

    async def publish_message(
        self,
        exchange: str,
        routing_key: str,
        payload: str,
        properties: dict[str, Any] | None = None,
        vhost: str | None = None,
        payload_encoding: str = "string",
    ) -> PublishResult:
        self._publish_attempts += 1
        if self._publish_attempts in self.fail_publishes:
            raise BrokerApiError(404, "Not Found", f"no exchange '{exchange}'")
        self.published.append(
            {
                "exchange": exchange,
                "routing_key": routing_key,
                "payload": payload,
                "payload_encoding": payload_encoding,
                "properties": properties or {},
                "vhost": vhost,
            }
        )
        return PublishResult(routed=exchange not in self.unrouted_exchanges)

    async def list_queues(self, vhost: str | None = None) -> list[QueueInfo]:
        return list(self.queue_infos)


@pytest.fixture
def message_factory() -> Callable[..., PeekedMessage]:
    return make_message


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def rabbit_config() -> RabbitMQConfig:
    return RabbitMQConfig(host="rabbit.test", username="ops", password="s3cret")


@pytest.fixture
def app_config(rabbit_config: RabbitMQConfig) -> AppConfig:
    """Config with mutative tools enabled."""
    return AppConfig(rabbitmq=rabbit_config, server=ServerConfig(allow_mutative_tools=True))


@pytest.fixture
def readonly_config(rabbit_config: RabbitMQConfig) -> AppConfig:
    return AppConfig(rabbitmq=rabbit_config)


@pytest.fixture
def mock_mcp() -> MagicMock:
    """Create a mock MCP server that captures registered tools."""
    mcp = MagicMock()
    tools: dict[str, Any] = {}

    def tool_decorator(*args, **kwargs):
        def decorator(fn):
            tools[kwargs.get("name") or fn.__name__] = fn
            return fn

        return decorator

    mcp.tool = tool_decorator
    mcp._registered_tools = tools
    return mcp

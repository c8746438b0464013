"""Tests for the exchanges module."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from masstransit_mcp.broker.models import BindingInfo, ExchangeInfo
from masstransit_mcp.modules.exchanges import ExchangesModule, select_exchanges

pytestmark = pytest.mark.unit

EXCHANGES = [
    ExchangeInfo(name="", type="direct"),
    ExchangeInfo(name="App:OrderPlaced", type="fanout", durable=True),
    ExchangeInfo(name="amq.topic", type="topic"),
    ExchangeInfo(name="orders", type="fanout"),
]


def _binding(source: str, destination: str, kind: str = "queue", key: str = "") -> BindingInfo:
    return BindingInfo(
        source=source, destination=destination, destination_type=kind, routing_key=key
    )


@pytest.fixture
async def tools(mock_mcp, readonly_config):
    client = AsyncMock()
    client.list_exchanges.return_value = EXCHANGES
    await ExchangesModule().register_tools(mock_mcp, client, readonly_config)
    return mock_mcp._registered_tools, client


class TestSelectExchanges:
    def test_default_exchange_hidden_without_pattern(self):
        assert [e.name for e in select_exchanges(EXCHANGES)] == [
            "App:OrderPlaced",
            "amq.topic",
            "orders",
        ]

    def test_pattern_matches_case_insensitively(self):
        assert [e.name for e in select_exchanges(EXCHANGES, "ORDER")] == [
            "App:OrderPlaced",
            "orders",
        ]

    def test_type_filter(self):
        assert [e.name for e in select_exchanges(EXCHANGES, exchange_type="fanout")] == [
            "App:OrderPlaced",
            "orders",
        ]


class TestTools:
    async def test_list_exchanges(self, tools):
        registered, client = tools
        assert set(registered) == {"list_exchanges", "get_exchange", "list_bindings"}
        text = await registered["list_exchanges"](type="topic")
        assert text.split("\n") == [
            "Found 1 exchange(s):",
            "",
            "amq.topic",
            "  Type: topic | Durable: False | Auto-delete: False | Internal: False",
            "",
        ]

    async def test_list_exchanges_empty(self, tools):
        registered, _client = tools
        assert await registered["list_exchanges"](name_pattern="zzz") == (
            "No exchanges found matching criteria."
        )

    async def test_get_exchange_with_bindings(self, tools):
        registered, client = tools
        client.get_exchange.return_value = EXCHANGES[1]
        client.list_bindings_for_exchange.side_effect = [
            [_binding("App:OrderPlaced", "orders", key="")],
            [_binding("App:IOrderEvent", "App:OrderPlaced", kind="exchange")],
        ]
        text = await registered["get_exchange"]("App:OrderPlaced", vhost="prod")
        assert "Type: fanout" in text
        assert 'Bindings (source -> destination): 1\n  -> queue "orders" (routing_key: "")' in text
        assert 'Bindings (incoming from): 1\n  <- exchange "App:IOrderEvent"' in text
        assert [c.args for c in client.list_bindings_for_exchange.await_args_list] == [
            ("App:OrderPlaced", "source", "prod"),
            ("App:OrderPlaced", "destination", "prod"),
        ]

    async def test_list_bindings_for_queue(self, tools):
        registered, client = tools
        client.list_bindings_for_queue.return_value = [
            _binding("", "orders", key="orders"),
            _binding("orders", "orders"),
        ]
        text = await registered["list_bindings"]("orders", "queue")
        assert text.startswith('Bindings for queue "orders": 2\n')
        assert "Source: (default) -> Destination: orders (queue)" in text
        assert '  Routing Key: "orders"' in text

    async def test_list_bindings_for_exchange_merges_directions(self, tools):
        registered, client = tools
        client.list_bindings_for_exchange.side_effect = [[_binding("a", "b")], []]
        text = await registered["list_bindings"]("a", "exchange")
        assert text.startswith('Bindings for exchange "a": 1\n')

    async def test_list_bindings_none(self, tools):
        registered, client = tools
        client.list_bindings_for_queue.return_value = []
        assert await registered["list_bindings"]("q", "queue") == 'No bindings found for queue "q".'

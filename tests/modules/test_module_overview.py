"""Tests for the overview module."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from masstransit_mcp.broker.models import OverviewInfo
from masstransit_mcp.modules.base import Module
from masstransit_mcp.modules.overview import OverviewModule

pytestmark = pytest.mark.unit


async def test_registers_get_overview(mock_mcp, readonly_config):
    module = OverviewModule()
    assert isinstance(module, Module)
    assert module.name == "overview"
    await module.register_tools(mock_mcp, AsyncMock(), readonly_config)
    assert set(mock_mcp._registered_tools) == {"get_overview"}


async def test_renders_totals_and_rates(mock_mcp, readonly_config):
    client = AsyncMock()
    client.get_overview.return_value = OverviewInfo.model_validate(
        {
            "cluster_name": "rabbit@prod",
            "rabbitmq_version": "3.13.1",
            "erlang_version": "26.2",
            "node": "rabbit@node-1",
            "queue_totals": {"messages": 12, "messages_ready": 10, "messages_unacknowledged": 2},
            "object_totals": {
                "queues": 40,
                "exchanges": 55,
                "connections": 6,
                "channels": 9,
                "consumers": 31,
            },
            "message_stats": {"publish_details": {"rate": 1.5}, "ack_details": {"rate": 1.0}},
        }
    )
    await OverviewModule().register_tools(mock_mcp, client, readonly_config)

    text = await mock_mcp._registered_tools["get_overview"]()

    assert text.split("\n") == [
        "Cluster: rabbit@prod",
        "RabbitMQ: 3.13.1 | Erlang: 26.2",
        "Node: rabbit@node-1",
        "",
        "Queue Totals:",
        "  Messages: 12",
        "  Ready: 10",
        "  Unacknowledged: 2",
        "",
        "Object Totals:",
        "  Queues: 40",
        "  Exchanges: 55",
        "  Connections: 6",
        "  Channels: 9",
        "  Consumers: 31",
        "",
        "Message Rates:",
        "  Publish: 1.5/s",
        "  Deliver: 0/s",
        "  Ack: 1.0/s",
    ]


async def test_no_rates_without_stats(mock_mcp, readonly_config):
    client = AsyncMock()
    client.get_overview.return_value = OverviewInfo()
    await OverviewModule().register_tools(mock_mcp, client, readonly_config)
    assert "Message Rates" not in await mock_mcp._registered_tools["get_overview"]()

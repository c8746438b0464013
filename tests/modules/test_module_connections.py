"""Tests for the connections module."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from masstransit_mcp.broker.models import ConnectionInfo, ConsumerInfo
from masstransit_mcp.modules.connections import ConnectionsModule

pytestmark = pytest.mark.unit


@pytest.fixture
async def setup(mock_mcp, readonly_config):
    client = AsyncMock()
    await ConnectionsModule().register_tools(mock_mcp, client, readonly_config)
    return mock_mcp._registered_tools, client


async def test_list_connections(setup):
    tools, client = setup
    client.list_connections.return_value = [
        ConnectionInfo(
            name="10.0.0.5:50000 -> 10.0.0.2:5672",
            user="svc",
            vhost="/",
            state="running",
            channels=3,
            connected_at=1714557600000,
            host="10.0.0.2",
            port=5672,
            peer_host="10.0.0.5",
            peer_port=50000,
            client_properties={"connection_name": "Orders.Worker"},
        )
    ]
    text = await tools["list_connections"]()
    assert text.split("\n")[:6] == [
        "Active connections: 1",
        "",
        "10.0.0.5:50000 -> 10.0.0.2:5672",
        "  User: svc | Vhost: / | State: running",
        "  Channels: 3 | Client: Orders.Worker",
        "  From: 10.0.0.5:50000 -> 10.0.0.2:5672",
    ]
    assert "  Connected: 2024-05-01T10:00:00.000+00:00" in text


async def test_no_connections(setup):
    tools, client = setup
    client.list_connections.return_value = []
    assert await tools["list_connections"]() == "No active connections."


async def test_list_consumers(setup):
    tools, client = setup
    client.list_consumers.return_value = [
        ConsumerInfo.model_validate(
            {
                "consumer_tag": "amq.ctag-abc",
                "queue": {"name": "orders"},
                "channel_details": {"connection_name": "conn-1", "user": "svc"},
                "prefetch_count": 16,
                "ack_required": True,
            }
        )
    ]
    text = await tools["list_consumers"](vhost="prod")
    client.list_consumers.assert_awaited_once_with("prod")
    assert "Queue: orders\n  Tag: amq.ctag-abc\n  Connection: conn-1" in text
    assert "  User: svc | Prefetch: 16" in text
    assert "  Ack Required: True | Active: True" in text


async def test_no_consumers(setup):
    tools, client = setup
    client.list_consumers.return_value = []
    assert await tools["list_consumers"]() == "No active consumers."

"""Tests for management API payload models."""

from __future__ import annotations

import pytest

from masstransit_mcp.broker.models import (
    ConsumerInfo,
    MessageStats,
    OverviewInfo,
    PeekedMessage,
    QueueInfo,
)

pytestmark = pytest.mark.unit


def test_unknown_fields_ignored():
    queue = QueueInfo.model_validate(
        {"name": "orders", "messages": 4, "garbage_collection": {"minor_gcs": 1}}
    )
    assert queue.messages == 4
    assert not hasattr(queue, "garbage_collection")


def test_rate_of_missing_details():
    stats = MessageStats.model_validate({"publish": 10, "publish_details": {"rate": 2.5}})
    assert MessageStats.rate_of(stats.publish_details) == 2.5
    assert MessageStats.rate_of(stats.ack_details) == 0


def test_overview_defaults():
    overview = OverviewInfo.model_validate({})
    assert overview.cluster_name == "unknown"
    assert overview.queue_totals.messages == 0
    assert overview.message_stats is None


def test_consumer_nested_models():
    consumer = ConsumerInfo.model_validate(
        {
            "consumer_tag": "amq.ctag-1",
            "queue": {"name": "orders", "vhost": "/"},
            "channel_details": {"connection_name": "10.0.0.1:5000 -> 10.0.0.2:5672", "user": "svc"},
            "prefetch_count": 16,
        }
    )
    assert consumer.queue.name == "orders"
    assert consumer.channel_details.user == "svc"


@pytest.mark.parametrize(
    ("payload", "payload_bytes", "encoding", "truncated"),
    [
        ("abc", 3, "string", False),
        ("héllo", 6, "string", False),
        ("x" * 50000, 60025, "string", True),
        ("3q2+7w==", 4, "base64", False),
        ("3q2+", 4, "base64", True),
        ("3q2+7w", 4, "base64", True),
    ],
)
def test_truncated(payload: str, payload_bytes: int, encoding: str, truncated: bool):
    message = PeekedMessage(
        payload=payload, payload_bytes=payload_bytes, payload_encoding=encoding
    )
    assert message.truncated is truncated

"""Pydantic models for RabbitMQ management API payloads.

Only the fields the tools read are declared. The management API adds fields
between releases, so every model ignores unknown keys.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CONTENT_TYPE = "application/vnd.masstransit+json"


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RateDetails(_ApiModel):
    rate: float = 0


class MessageStats(_ApiModel):
    publish: int | None = None
    publish_details: RateDetails | None = None
    deliver_get: int | None = None
    deliver_get_details: RateDetails | None = None
    deliver: int | None = None
    deliver_details: RateDetails | None = None
    ack: int | None = None
    ack_details: RateDetails | None = None
    redeliver: int | None = None
    redeliver_details: RateDetails | None = None

    @staticmethod
    def rate_of(details: RateDetails | None) -> float:
        return details.rate if details is not None else 0


class QueueInfo(_ApiModel):
    name: str
    vhost: str = "/"
    durable: bool = False
    auto_delete: bool = False
    exclusive: bool = False
    messages: int = 0
    messages_ready: int = 0
    messages_unacknowledged: int = 0
    consumers: int = 0
    state: str = "unknown"
    memory: int = 0
    message_stats: MessageStats | None = None
    arguments: dict[str, Any] = Field(default_factory=dict)
    policy: str | None = None
    node: str | None = None


class ExchangeInfo(_ApiModel):
    name: str
    vhost: str = "/"
    type: str = "direct"
    durable: bool = False
    auto_delete: bool = False
    internal: bool = False
    arguments: dict[str, Any] = Field(default_factory=dict)


class BindingInfo(_ApiModel):
    source: str
    vhost: str = "/"
    destination: str
    destination_type: str
    routing_key: str = ""
    arguments: dict[str, Any] = Field(default_factory=dict)
    properties_key: str | None = None


class ConnectionInfo(_ApiModel):
    name: str
    vhost: str = "/"
    user: str = ""
    state: str = "unknown"
    channels: int = 0
    connected_at: int | None = None
    host: str | None = None
    port: int | None = None
    peer_host: str | None = None
    peer_port: int | None = None
    client_properties: dict[str, Any] = Field(default_factory=dict)
    node: str | None = None


class ChannelDetails(_ApiModel):
    connection_name: str = ""
    name: str = ""
    node: str | None = None
    number: int | None = None
    peer_host: str | None = None
    peer_port: int | None = None
    user: str = ""


class QueueRef(_ApiModel):
    name: str
    vhost: str = "/"


class ConsumerInfo(_ApiModel):
    consumer_tag: str
    channel_details: ChannelDetails = Field(default_factory=ChannelDetails)
    queue: QueueRef
    ack_required: bool = False
    prefetch_count: int = 0
    active: bool = True


class QueueTotals(_ApiModel):
    messages: int = 0
    messages_ready: int = 0
    messages_unacknowledged: int = 0


class ObjectTotals(_ApiModel):
    connections: int = 0
    channels: int = 0
    exchanges: int = 0
    queues: int = 0
    consumers: int = 0


class Listener(_ApiModel):
    node: str
    protocol: str
    port: int


class OverviewInfo(_ApiModel):
    management_version: str | None = None
    cluster_name: str = "unknown"
    erlang_version: str = "unknown"
    rabbitmq_version: str = "unknown"
    node: str = "unknown"
    queue_totals: QueueTotals = Field(default_factory=QueueTotals)
    object_totals: ObjectTotals = Field(default_factory=ObjectTotals)
    message_stats: MessageStats | None = None
    listeners: list[Listener] = Field(default_factory=list)


class MessageProperties(_ApiModel):
    headers: dict[str, Any] = Field(default_factory=dict)
    content_type: str | None = None
    delivery_mode: int | None = None
    message_id: str | None = None
    correlation_id: str | None = None
    type: str | None = None
    app_id: str | None = None
    timestamp: int | None = None


class PeekedMessage(_ApiModel):
    """A message returned by the management API ``/get`` endpoint."""

    payload: str = ""
    payload_bytes: int = 0
    payload_encoding: str = "string"
    redelivered: bool = False
    exchange: str = ""
    routing_key: str = ""
    message_count: int = 0
    properties: MessageProperties = Field(default_factory=MessageProperties)

    @field_validator("properties", mode="before")
    @classmethod
    def _empty_properties(cls, value: Any) -> Any:
        # The management API renders a message without properties as ``[]``.
        if isinstance(value, list) and not value:
            return {}
        return value

    @property
    def headers(self) -> dict[str, Any]:
        return self.properties.headers

    @property
    def truncated(self) -> bool:
        """True when the broker returned fewer bytes than the message holds."""
        if self.payload_encoding == "base64":
            try:
                received = len(base64.b64decode(self.payload, validate=True))
            except binascii.Error:
                return True
        else:
            received = len(self.payload.encode("utf-8"))
        return self.payload_bytes > received


class PublishResult(_ApiModel):
    routed: bool = False

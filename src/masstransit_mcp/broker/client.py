"""Async client for the RabbitMQ management HTTP API.

Transport: ``httpx.AsyncClient`` with HTTP basic auth against
``{http|https}://{host}:{port}/api``. Every non-2xx response raises
:class:`BrokerApiError`; connection failures surface as ``httpx`` errors.
Neither is retried here.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, TypeAdapter

from masstransit_mcp.broker.models import (
    DEFAULT_CONTENT_TYPE,
    BindingInfo,
    ConnectionInfo,
    ConsumerInfo,
    ExchangeInfo,
    OverviewInfo,
    PeekedMessage,
    PublishResult,
    QueueInfo,
)
from masstransit_mcp.config import RabbitMQConfig

logger = logging.getLogger(__name__)

ACK_REQUEUE = "ack_requeue_true"
ACK_REMOVE = "ack_requeue_false"
GET_TRUNCATE_BYTES = 50000
PERSISTENT_DELIVERY_MODE = 2

_M = TypeVar("_M", bound=BaseModel)


class BrokerApiError(Exception):
    """Raised when the management API answers with a non-success status."""

    def __init__(self, status_code: int, reason: str, body: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        self.body = body
        detail = f" - {body}" if body else ""
        super().__init__(f"RabbitMQ API error: {status_code} {reason}{detail}")


def _quote(segment: str) -> str:
    return quote(segment, safe="")


class ManagementClient:
    """Thin typed wrapper over the management API endpoints the tools use.

    Parameters
    ----------
    config:
        Connection settings. ``config.vhost`` is used whenever a call does
        not name a vhost.
    http_client:
        Optional pre-built ``httpx.AsyncClient`` whose ``base_url`` already
        points at the API root. A client passed in is not closed by
        :meth:`aclose`.
    """

    def __init__(
        self,
        config: RabbitMQConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            auth=httpx.BasicAuth(config.username, config.password),
            headers={"Content-Type": "application/json"},
            timeout=config.timeout_s,
        )

    @property
    def config(self) -> RabbitMQConfig:
        return self._config

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _vhost(self, vhost: str | None) -> str:
        return _quote(vhost or self._config.vhost)

    async def _request(self, method: str, path: str, body: Any = None) -> Any:
        logger.debug("RabbitMQ API %s %s", method, path)
        response = await self._client.request(method, path, json=body)
        if response.is_error:
            raise BrokerApiError(response.status_code, response.reason_phrase, response.text)
        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None
        return response.json()

    async def _get_model(self, path: str, model: type[_M]) -> _M:
        return model.model_validate(await self._request("GET", path))

    async def _get_models(self, path: str, model: type[_M]) -> list[_M]:
        return TypeAdapter(list[model]).validate_python(await self._request("GET", path) or [])

    # ------------------------------------------------------------------
    # Overview
    # ------------------------------------------------------------------

    async def get_overview(self) -> OverviewInfo:
        return await self._get_model("/overview", OverviewInfo)

    # ------------------------------------------------------------------
    # Queues
    # ------------------------------------------------------------------

    async def list_queues(self, vhost: str | None = None) -> list[QueueInfo]:
        """List queues in *vhost*, or across every vhost when None."""
        path = f"/queues/{self._vhost(vhost)}" if vhost else "/queues"
        return await self._get_models(path, QueueInfo)

    async def get_queue(self, name: str, vhost: str | None = None) -> QueueInfo:
        return await self._get_model(f"/queues/{self._vhost(vhost)}/{_quote(name)}", QueueInfo)

    async def purge_queue(self, name: str, vhost: str | None = None) -> None:
        await self._request("DELETE", f"/queues/{self._vhost(vhost)}/{_quote(name)}/contents")

    # ------------------------------------------------------------------
    # Exchanges and bindings
    # ------------------------------------------------------------------

    async def list_exchanges(self, vhost: str | None = None) -> list[ExchangeInfo]:
        path = f"/exchanges/{self._vhost(vhost)}" if vhost else "/exchanges"
        return await self._get_models(path, ExchangeInfo)

    async def get_exchange(self, name: str, vhost: str | None = None) -> ExchangeInfo:
        return await self._get_model(
            f"/exchanges/{self._vhost(vhost)}/{_quote(name)}", ExchangeInfo
        )

    async def list_bindings_for_queue(
        self, queue: str, vhost: str | None = None
    ) -> list[BindingInfo]:
        return await self._get_models(
            f"/queues/{self._vhost(vhost)}/{_quote(queue)}/bindings", BindingInfo
        )

    async def list_bindings_for_exchange(
        self,
        exchange: str,
        direction: Literal["source", "destination"],
        vhost: str | None = None,
    ) -> list[BindingInfo]:
        return await self._get_models(
            f"/exchanges/{self._vhost(vhost)}/{_quote(exchange)}/bindings/{direction}",
            BindingInfo,
        )

    # ------------------------------------------------------------------
    # Connections and consumers
    # ------------------------------------------------------------------

    async def list_connections(self) -> list[ConnectionInfo]:
        return await self._get_models("/connections", ConnectionInfo)

    async def list_consumers(self, vhost: str | None = None) -> list[ConsumerInfo]:
        path = f"/consumers/{self._vhost(vhost)}" if vhost else "/consumers"
        return await self._get_models(path, ConsumerInfo)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def _get_messages(
        self,
        queue: str,
        count: int,
        vhost: str | None,
        ack_mode: str,
        *,
        truncate: bool,
    ) -> list[PeekedMessage]:
        body: dict[str, Any] = {"count": count, "ackmode": ack_mode, "encoding": "auto"}
        if truncate:
            body["truncate"] = GET_TRUNCATE_BYTES
        data = await self._request(
            "POST", f"/queues/{self._vhost(vhost)}/{_quote(queue)}/get", body
        )
        return TypeAdapter(list[PeekedMessage]).validate_python(data or [])

    async def peek_messages(
        self,
        queue: str,
        count: int = 5,
        vhost: str | None = None,
        ack_mode: str = ACK_REQUEUE,
    ) -> list[PeekedMessage]:
        """Fetch up to *count* messages; with the default ack mode they stay queued.

        Payloads longer than :data:`GET_TRUNCATE_BYTES` are cut by the broker.
        """
        return await self._get_messages(queue, count, vhost, ack_mode, truncate=True)

    async def consume_messages(
        self, queue: str, count: int = 1, vhost: str | None = None
    ) -> list[PeekedMessage]:
        """Fetch and remove up to *count* messages from *queue*.

        Payloads come back whole, so they can be published again unchanged.
        """
        logger.info("Consuming up to %d message(s) from %s", count, queue)
        return await self._get_messages(queue, count, vhost, ACK_REMOVE, truncate=False)

    async def publish_message(
        self,
        exchange: str,
        routing_key: str,
        payload: str,
        properties: dict[str, Any] | None = None,
        vhost: str | None = None,
        payload_encoding: str = "string",
    ) -> PublishResult:
        """Publish *payload* as a persistent message.

        *properties* override the defaults (persistent delivery mode and the
        MassTransit content type); keys whose value is None are dropped.
        *payload_encoding* is ``"string"`` or ``"base64"``, matching the
        ``payload_encoding`` of a message read back from a queue.
        """
        merged: dict[str, Any] = {
            "delivery_mode": PERSISTENT_DELIVERY_MODE,
            "content_type": DEFAULT_CONTENT_TYPE,
        }
        merged.update({k: v for k, v in (properties or {}).items() if v is not None})
        data = await self._request(
            "POST",
            f"/exchanges/{self._vhost(vhost)}/{_quote(exchange)}/publish",
            {
                "routing_key": routing_key,
                "payload": payload,
                "payload_encoding": payload_encoding,
                "properties": merged,
            },
        )
        return PublishResult.model_validate(data or {})

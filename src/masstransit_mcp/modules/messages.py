"""Message module: browse, publish and move messages between queues."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from pydantic import Field

from masstransit_mcp.broker.models import DEFAULT_CONTENT_TYPE, PeekedMessage
from masstransit_mcp.config import AppConfig
from masstransit_mcp.masstransit.formatting import format_peeked_message
from masstransit_mcp.masstransit.republish import Destination, RepublishOutcome, publish_each
from masstransit_mcp.modules.base import Module, ToolMeta

logger = logging.getLogger(__name__)

MAX_PEEK_COUNT = 50
MAX_MOVE_COUNT = 100


def render_peek(queue: str, messages: list[PeekedMessage]) -> str:
    if not messages:
        return f'Queue "{queue}" is empty.'
    lines = [f"Queue: {queue} ({len(messages)} message(s) peeked)\n"]
    for i, message in enumerate(messages):
        lines.extend([format_peeked_message(message, i), ""])
    return "\n".join(lines)


def forwarded_properties(message: PeekedMessage) -> dict[str, Any]:
    """Properties carried over when a consumed message is published again."""
    props = message.properties
    return {
        "content_type": props.content_type or DEFAULT_CONTENT_TYPE,
        "headers": props.headers,
        "message_id": props.message_id,
        "correlation_id": props.correlation_id,
    }


def render_move(outcome: RepublishOutcome, exchange: str) -> str:
    moved = (
        str(outcome.succeeded)
        if outcome.succeeded == outcome.attempted
        else f"{outcome.succeeded}/{outcome.attempted}"
    )
    lines = [
        f'Moved {moved} message(s) from "{outcome.error_queue}" '
        f'to exchange "{exchange}".'
    ]
    if outcome.unrouted:
        lines.append(
            f"Warning: {outcome.unrouted} message(s) were accepted by the exchange "
            "but not routed to any queue."
        )
    if outcome.per_message_errors:
        lines.extend(["", "Errors:", *outcome.per_message_errors])
    return "\n".join(lines)


class MessagesModule(Module):
    """Generic message tools.

    ``peek_messages`` is always available; ``publish_message`` and
    ``move_messages`` only when mutative tools are allowed.
    """

    @property
    def name(self) -> str:
        return "messages"

    def tool_metadata(self) -> dict[str, ToolMeta]:
        return {
            "peek_messages": ToolMeta(),
            "publish_message": ToolMeta(destructive=True),
            "move_messages": ToolMeta(destructive=True),
        }

    async def register_tools(self, mcp: Any, client: Any, config: AppConfig) -> None:
        @mcp.tool()
        async def peek_messages(
            queue: str,
            count: Annotated[int, Field(ge=1, le=MAX_PEEK_COUNT)] = 5,
            vhost: str | None = None,
        ) -> str:
            """Browse messages in a queue without consuming them.

            MassTransit envelopes are parsed when detected.
            """
            return render_peek(queue, await client.peek_messages(queue, count, vhost))

        if not config.server.allow_mutative_tools:
            return

        @mcp.tool()
        async def publish_message(
            exchange: str,
            routing_key: str,
            payload: str,
            content_type: str | None = None,
            vhost: str | None = None,
        ) -> str:
            """Publish a message to an exchange with a routing key.

            Sent as a persistent message with the MassTransit JSON content
            type unless ``content_type`` is given.
            """
            properties = {"content_type": content_type} if content_type else {}
            result = await client.publish_message(
                exchange, routing_key, payload, properties, vhost
            )
            prefix = f'Message published to exchange "{exchange}" with routing key "{routing_key}"'
            if result.routed:
                return f"{prefix}: routed successfully."
            logger.warning("Message published to %s was not routed", exchange)
            return f"{prefix}: WARNING: message was NOT routed to any queue."

        @mcp.tool()
        async def move_messages(
            source_queue: str,
            destination_exchange: str,
            routing_key: str | None = None,
            count: Annotated[int, Field(ge=1, le=MAX_MOVE_COUNT)] = 1,
            vhost: str | None = None,
        ) -> str:
            """Move messages by consuming from a queue and publishing to an exchange.

            DESTRUCTIVE: messages are removed from the source queue. The routing
            key defaults to the destination exchange name.
            """
            messages = await client.consume_messages(source_queue, count, vhost)
            if not messages:
                return f'Source queue "{source_queue}" is empty, nothing to move.'

            destination = Destination(
                exchange=destination_exchange, routing_key=routing_key or destination_exchange
            )
            outcome = await publish_each(
                client,
                source_queue,
                messages,
                route=lambda _message: destination,
                properties=forwarded_properties,
                vhost=vhost,
            )
            logger.info(
                "Moved %d/%d message(s) from %s to %s",
                outcome.succeeded,
                outcome.attempted,
                source_queue,
                destination_exchange,
            )
            return render_move(outcome, destination_exchange)

"""Two-phase republish of messages out of a MassTransit error queue.

The protocol is stateless. A call without ``confirm`` reads messages with
requeue-on-read and renders them; a second call with ``confirm=True``
consumes up to ``count`` messages and publishes each one back to the
exchange it was originally sent to.

The two phases perform independent reads. Nothing reserves the previewed
messages, so if consumers or new arrivals change the queue between the calls
the committed batch can differ from the preview.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from collections.abc import Callable
from typing import Any, Protocol
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, Field

from masstransit_mcp.broker.client import BrokerApiError
from masstransit_mcp.broker.models import DEFAULT_CONTENT_TYPE, PeekedMessage, PublishResult
from masstransit_mcp.masstransit.envelope import Envelope, parse_envelope
from masstransit_mcp.masstransit.formatting import format_message
from masstransit_mcp.masstransit.naming import source_queue_of

logger = logging.getLogger(__name__)

MAX_REPUBLISH_COUNT = 50


class BrokerPort(Protocol):
    """The broker operations the orchestrator needs."""

    async def peek_messages(
        self, queue: str, count: int = 5, vhost: str | None = None
    ) -> list[PeekedMessage]: ...

    async def consume_messages(
        self, queue: str, count: int = 1, vhost: str | None = None
    ) -> list[PeekedMessage]: ...

    async def publish_message(
        self,
        exchange: str,
        routing_key: str,
        payload: str,
        properties: dict[str, Any] | None = None,
        vhost: str | None = None,
        payload_encoding: str = "string",
    ) -> PublishResult: ...


class RepublishRequest(BaseModel):
    error_queue: str = Field(min_length=1)
    count: int = Field(default=1, ge=1, le=MAX_REPUBLISH_COUNT)
    confirm: bool = False
    vhost: str | None = None


@dataclass
class RepublishPreview:
    error_queue: str
    rendered: list[str]
    instruction: str


@dataclass
class RepublishOutcome:
    """Result of a commit.

    ``unrouted`` counts publishes the broker accepted but did not deliver to
    any queue. They are included in ``succeeded``.
    """

    error_queue: str
    attempted: int
    succeeded: int = 0
    per_message_errors: list[str] = field(default_factory=list)
    unrouted: int = 0


@dataclass(frozen=True)
class Destination:
    exchange: str
    routing_key: str


def resolve_destination(envelope: Envelope | None, error_queue: str) -> Destination:
    """Pick the exchange a faulted message should be republished to.

    MassTransit addresses look like ``rabbitmq://host/vhost/exchange``; the
    last path segment names the exchange and doubles as the routing key.
    Without a usable address the source queue derived from *error_queue* is
    used for both.
    """
    address = envelope.destination_address if envelope is not None else None
    if address:
        try:
            parts = urlsplit(address)
        except ValueError:
            parts = None
        if parts is not None and parts.scheme and parts.netloc:
            segments = [segment for segment in parts.path.split("/") if segment]
            if segments:
                return Destination(exchange=segments[-1], routing_key=segments[-1])
        logger.debug("Unusable destination address %r, falling back to source queue", address)

    source = source_queue_of(error_queue)
    return Destination(exchange=source, routing_key=source)


# A publish that fails for any of these is recorded against its message and the
# batch continues. ValueError covers an unreadable publish response body.
PUBLISH_ERRORS = (BrokerApiError, httpx.HTTPError, ValueError)


def _republish_properties(message: PeekedMessage) -> dict[str, Any]:
    props = message.properties
    return {
        "content_type": props.content_type or DEFAULT_CONTENT_TYPE,
        "headers": props.headers,
        "message_id": props.message_id,
    }


async def preview_republish(
    broker: BrokerPort, request: RepublishRequest
) -> RepublishPreview | None:
    """Render up to ``request.count`` messages without removing them."""
    messages = await broker.peek_messages(request.error_queue, request.count, request.vhost)
    if not messages:
        return None
    return RepublishPreview(
        error_queue=request.error_queue,
        rendered=[format_message(message, i) for i, message in enumerate(messages)],
        instruction=(
            "To republish these messages, call again with confirm=true "
            f"and count={len(messages)}."
        ),
    )


async def publish_each(
    broker: BrokerPort,
    source_queue: str,
    messages: list[PeekedMessage],
    *,
    route: Callable[[PeekedMessage], Destination],
    properties: Callable[[PeekedMessage], dict[str, Any]],
    vhost: str | None = None,
) -> RepublishOutcome:
    """Publish already-consumed *messages* one at a time, in order.

    Each payload is sent back with the encoding it was read with. A message
    whose payload the broker returned cut short, or whose publish fails, is
    recorded in ``per_message_errors`` by its 1-based position and the batch
    continues.
    """
    outcome = RepublishOutcome(error_queue=source_queue, attempted=len(messages))
    for position, message in enumerate(messages, start=1):
        if message.truncated:
            logger.error(
                "Message %d from %s arrived truncated (%d bytes), not republished",
                position,
                source_queue,
                message.payload_bytes,
            )
            outcome.per_message_errors.append(
                f"Message {position}: payload truncated by the broker "
                f"({message.payload_bytes} bytes), not republished"
            )
            continue
        destination = route(message)
        try:
            result = await broker.publish_message(
                destination.exchange,
                destination.routing_key,
                message.payload,
                properties(message),
                vhost,
                payload_encoding=message.payload_encoding,
            )
        except PUBLISH_ERRORS as exc:
            logger.warning(
                "Publish of message %d from %s to %s failed: %s",
                position,
                source_queue,
                destination.exchange,
                exc,
            )
            outcome.per_message_errors.append(f"Message {position}: {exc}")
            continue
        outcome.succeeded += 1
        if not result.routed:
            outcome.unrouted += 1
    return outcome


async def commit_republish(
    broker: BrokerPort, request: RepublishRequest
) -> RepublishOutcome | None:
    """Consume up to ``request.count`` messages and publish each one back.

    A failed publish is recorded and the batch continues; the consumed
    message is not requeued.
    """
    messages = await broker.consume_messages(request.error_queue, request.count, request.vhost)
    if not messages:
        return None

    outcome = await publish_each(
        broker,
        request.error_queue,
        messages,
        route=lambda m: resolve_destination(parse_envelope(m.payload), request.error_queue),
        properties=_republish_properties,
        vhost=request.vhost,
    )
    logger.info(
        "Republished %d/%d message(s) from %s",
        outcome.succeeded,
        outcome.attempted,
        request.error_queue,
    )
    return outcome


def render_preview(preview: RepublishPreview) -> str:
    lines = [
        f'Preview: {len(preview.rendered)} message(s) from "{preview.error_queue}" '
        "ready to republish:\n"
    ]
    for block in preview.rendered:
        lines.extend([block, ""])
    lines.extend(["---", preview.instruction])
    return "\n".join(lines)


def render_outcome(outcome: RepublishOutcome) -> str:
    lines = [
        f"Republished {outcome.succeeded}/{outcome.attempted} message(s) "
        f'from "{outcome.error_queue}".'
    ]
    if outcome.unrouted:
        lines.append(
            f"Warning: {outcome.unrouted} message(s) were accepted by the exchange "
            "but not routed to any queue."
        )
    if outcome.per_message_errors:
        lines.extend(["", "Errors:", *outcome.per_message_errors])
    return "\n".join(lines)


async def republish_from_error(broker: BrokerPort, request: RepublishRequest) -> str:
    """Run the preview or commit phase depending on ``request.confirm``."""
    if request.confirm:
        outcome = await commit_republish(broker, request)
        if outcome is not None:
            return render_outcome(outcome)
    else:
        preview = await preview_republish(broker, request)
        if preview is not None:
            return render_preview(preview)
    return f'Queue "{request.error_queue}" is empty, nothing to republish.'

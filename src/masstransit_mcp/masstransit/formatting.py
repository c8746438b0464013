"""Human-readable rendering of error-queue messages.

:func:`format_message` picks the richest view available for a message:

1. a fault found in the MassTransit headers,
2. a fault found in a ``Fault<T>`` body,
3. a plain MassTransit envelope,
4. the raw exchange, routing key and payload.

The truncation limits below are part of the output contract and are not
configurable.
"""

from __future__ import annotations

import json
from typing import Any

from masstransit_mcp.broker.models import PeekedMessage
from masstransit_mcp.masstransit.envelope import Envelope, HostInfo, parse_envelope
from masstransit_mcp.masstransit.faults import (
    EXCEPTION_CHAIN_DEPTH_LIMIT,
    ExceptionRecord,
    Fault,
    FaultSource,
    extract_fault,
)

PAYLOAD_PREVIEW_LIMIT = 500
STACK_TRACE_LINE_LIMIT = 8
PEEK_PAYLOAD_LIMIT = 1000

UNKNOWN = "unknown"
FAULT_TRUNCATION_MARKER = "\n    ... (truncated)"
PEEK_TRUNCATION_MARKER = "\n... (truncated)"


def pretty_json(value: Any) -> str:
    """Indent *value* as JSON the way the MassTransit tooling displays it."""
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def truncate(text: str, limit: int, marker: str = "") -> str:
    """Cut *text* to *limit* characters, appending *marker* when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def format_host(host: HostInfo | None) -> str:
    """Render ``machine / process (PID n)``, or ``unknown`` without a host."""
    if host is None:
        return UNKNOWN
    return (
        f"{host.machine_name or UNKNOWN} / {host.process_name or UNKNOWN} "
        f"(PID {host.process_id or '?'})"
    )


def format_assembly(host: HostInfo | None) -> str | None:
    """Render the assembly summary; None unless name and version are both known."""
    if host is None or not host.assembly or not host.assembly_version:
        return None
    runtime = [
        f"{label} {value}"
        for label, value in (
            ("Framework", host.framework_version),
            ("MassTransit", host.mass_transit_version),
            ("OS", host.operating_system_version),
        )
        if value
    ]
    line = f"{host.assembly} v{host.assembly_version}"
    if runtime:
        line += f" ({', '.join(runtime)})"
    return line


def format_exception(exception: ExceptionRecord | None) -> str:
    if exception is None:
        return f'{UNKNOWN} - "{UNKNOWN}"'
    return f'{exception.exception_type or UNKNOWN} - "{exception.message or UNKNOWN}"'


def format_exception_chain(exception: ExceptionRecord | None) -> list[str]:
    """One ``Caused by`` line per inner exception, capped at the chain limit."""
    if exception is None:
        return []
    return [
        f"  Caused by: {format_exception(inner)}"
        for inner in exception.chain(EXCEPTION_CHAIN_DEPTH_LIMIT)
    ]


def format_stack_trace(stack_trace: str | None) -> list[str]:
    if not stack_trace:
        return []
    frames = stack_trace.split("\n")[:STACK_TRACE_LINE_LIMIT]
    return ["  Stack Trace:", *(f"    {frame.strip()}" for frame in frames)]


def _format_fault(fault: Fault, index: int) -> str:
    exception = fault.primary_exception
    lines = [
        f"Message {index + 1}:",
        f"  Faulted: {fault.faulted_at or UNKNOWN}",
    ]

    if fault.source is FaultSource.HEADERS:
        lines.extend(
            [
                f"  Reason: {fault.reason or UNKNOWN}",
                f"  Message Type: {fault.message_type or UNKNOWN}",
            ]
        )
        if fault.consumer_type:
            lines.append(f"  Consumer: {fault.consumer_type}")
        if fault.input_address:
            lines.append(f"  Input Address: {fault.input_address}")
        lines.append(f"  Exception: {format_exception(exception)}")
        if fault.retry_count is not None:
            lines.append(f"  Retry Count: {fault.retry_count}")
    else:
        lines.extend(
            [
                f"  Original MessageId: {fault.original_message_id or UNKNOWN}",
                f"  Message Type: {fault.message_type or UNKNOWN}",
                f"  Exception: {format_exception(exception)}",
            ]
        )
        if len(fault.exceptions) > 1:
            lines.append(f"  Additional Exceptions: {len(fault.exceptions) - 1}")

    lines.extend(format_exception_chain(exception))
    if exception is not None:
        lines.extend(format_stack_trace(exception.stack_trace))

    if fault.original_payload is not None:
        payload = truncate(
            pretty_json(fault.original_payload), PAYLOAD_PREVIEW_LIMIT, FAULT_TRUNCATION_MARKER
        )
        lines.append(f"  Original Payload: {payload}")

    lines.append(f"  Source Host: {format_host(fault.host)}")
    assembly = format_assembly(fault.host)
    if assembly:
        lines.append(f"  Assembly: {assembly}")
    return "\n".join(lines)


def _format_envelope(envelope: Envelope, index: int) -> str:
    types = envelope.type_names
    body = envelope.message if envelope.message is not None else {}
    return "\n".join(
        [
            f"Message {index + 1}:",
            f"  MessageId: {envelope.message_id or UNKNOWN}",
            f"  Sent: {envelope.sent_time or UNKNOWN}",
            f"  Message Type: {', '.join(types) if types else UNKNOWN}",
            f"  Payload: {pretty_json(body)[:PAYLOAD_PREVIEW_LIMIT]}",
        ]
    )


def _format_raw(message: PeekedMessage, index: int) -> str:
    return "\n".join(
        [
            f"Message {index + 1}:",
            f"  Exchange: {message.exchange}",
            f"  Routing Key: {message.routing_key}",
            f"  Payload: {message.payload[:PAYLOAD_PREVIEW_LIMIT]}",
        ]
    )


def format_message(message: PeekedMessage, index: int) -> str:
    """Render one error-queue message as a text block headed ``Message {index+1}:``."""
    envelope = parse_envelope(message.payload)
    fault = extract_fault(message, envelope)
    if fault is not None:
        return _format_fault(fault, index)
    if envelope is not None:
        return _format_envelope(envelope, index)
    return _format_raw(message, index)


def format_peeked_message(message: PeekedMessage, index: int) -> str:
    """Render a message for a generic, non-fault queue browse."""
    lines = [f"--- Message {index + 1} ---"]
    envelope = parse_envelope(message.payload)
    if envelope is not None:
        types = envelope.type_names
        lines.extend(
            [
                f"MessageId: {envelope.message_id or UNKNOWN}",
                f"Sent: {envelope.sent_time or UNKNOWN}",
                f"Type: {', '.join(types) if types else UNKNOWN}",
            ]
        )
        if envelope.correlation_id:
            lines.append(f"CorrelationId: {envelope.correlation_id}")
        if envelope.conversation_id:
            lines.append(f"ConversationId: {envelope.conversation_id}")
        body = envelope.message if envelope.message is not None else {}
        lines.extend(
            [
                "Payload:",
                truncate(pretty_json(body), PEEK_PAYLOAD_LIMIT, PEEK_TRUNCATION_MARKER),
            ]
        )
    else:
        lines.extend(
            [
                f"Exchange: {message.exchange}",
                f"Routing Key: {message.routing_key}",
                f"Content Type: {message.properties.content_type or UNKNOWN}",
                "Payload:",
                truncate(message.payload, PEEK_PAYLOAD_LIMIT, PEEK_TRUNCATION_MARKER),
            ]
        )
    return "\n".join(lines)

"""Fault extraction from MassTransit error-queue messages.

Failure details reach an error queue in one of two shapes:

- **Headers**: MassTransit's error transport filter stamps ``MT-Reason``,
  ``MT-Fault-*`` and ``MT-Host-*`` headers on the original message when it
  moves it to ``<queue>_error``. This is authoritative and checked first.
- **Body**: a ``Fault<T>`` message whose envelope ``message`` carries an
  ``exceptions`` array next to the original ``message``.

Each shape has its own strategy function returning a :class:`Fault` or None.
:func:`extract_fault` runs them in order and returns the first hit; results
are never merged.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from masstransit_mcp.broker.models import PeekedMessage
from masstransit_mcp.masstransit.envelope import (
    Envelope,
    HostInfo,
    decode_type_name,
    scalar_text,
)

# Nesting levels of innerException projected from external JSON.
EXCEPTION_CHAIN_DEPTH_LIMIT = 10

HEADER_REASON = "MT-Reason"
HEADER_EXCEPTION_TYPE = "MT-Fault-ExceptionType"
HEADER_EXCEPTION_MESSAGE = "MT-Fault-Message"
HEADER_TIMESTAMP = "MT-Fault-Timestamp"
HEADER_CONSUMER_TYPE = "MT-Fault-ConsumerType"
HEADER_INPUT_ADDRESS = "MT-Fault-InputAddress"
HEADER_MESSAGE_TYPE = "MT-Fault-MessageType"
HEADER_RETRY_COUNT = "MT-Fault-RetryCount"
HEADER_STACK_TRACE = "MT-Fault-StackTrace"


class FaultSource(enum.StrEnum):
    """Where the fault details were found."""

    HEADERS = "headers"
    BODY = "body"


@dataclass
class ExceptionRecord:
    """One exception reported by a faulted consumer."""

    exception_type: str | None = None
    message: str | None = None
    stack_trace: str | None = None
    source: str | None = None
    inner_exception: ExceptionRecord | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, depth: int = 0) -> ExceptionRecord:
        """Project a MassTransit ``ExceptionInfo`` object.

        ``innerException`` is followed for at most
        :data:`EXCEPTION_CHAIN_DEPTH_LIMIT` levels.
        """
        inner = data.get("innerException")
        inner_record = None
        if isinstance(inner, Mapping) and depth + 1 < EXCEPTION_CHAIN_DEPTH_LIMIT:
            inner_record = cls.from_mapping(inner, depth=depth + 1)
        return cls(
            exception_type=scalar_text(data.get("exceptionType")),
            message=scalar_text(data.get("message")),
            stack_trace=scalar_text(data.get("stackTrace")),
            source=scalar_text(data.get("source")),
            inner_exception=inner_record,
        )

    def chain(self, limit: int = EXCEPTION_CHAIN_DEPTH_LIMIT) -> list[ExceptionRecord]:
        """Return the inner exceptions below this one, nearest first."""
        chain: list[ExceptionRecord] = []
        current = self.inner_exception
        while current is not None and len(chain) < limit:
            chain.append(current)
            current = current.inner_exception
        return chain


@dataclass(frozen=True)
class Fault:
    """Normalized failure record, independent of how it was encoded."""

    source: FaultSource
    faulted_at: str | None = None
    original_message_id: str | None = None
    fault_id: str | None = None
    reason: str | None = None
    consumer_type: str | None = None
    input_address: str | None = None
    retry_count: int | None = None
    message_type: str | None = None
    exceptions: list[ExceptionRecord] = field(default_factory=list)
    original_payload: Any = None
    host: HostInfo | None = None

    @property
    def primary_exception(self) -> ExceptionRecord | None:
        return self.exceptions[0] if self.exceptions else None


FaultStrategy = Callable[[PeekedMessage, Envelope | None], Fault | None]


def _parse_retry_count(value: Any) -> int | None:
    text = scalar_text(value)
    if text is None:
        return None
    try:
        return int(text.strip())
    except ValueError:
        return None


def extract_header_fault(message: PeekedMessage, envelope: Envelope | None) -> Fault | None:
    """Build a fault from the headers MassTransit adds when dead-lettering."""
    headers = message.headers
    if HEADER_REASON not in headers and HEADER_EXCEPTION_TYPE not in headers:
        return None

    message_type = scalar_text(headers.get(HEADER_MESSAGE_TYPE))
    if message_type is None and envelope is not None and envelope.message_types:
        message_type = decode_type_name(envelope.message_types[0])

    exception = ExceptionRecord(
        exception_type=scalar_text(headers.get(HEADER_EXCEPTION_TYPE)),
        message=scalar_text(headers.get(HEADER_EXCEPTION_MESSAGE)),
        stack_trace=scalar_text(headers.get(HEADER_STACK_TRACE)),
    )
    return Fault(
        source=FaultSource.HEADERS,
        faulted_at=scalar_text(headers.get(HEADER_TIMESTAMP)),
        reason=scalar_text(headers.get(HEADER_REASON)),
        consumer_type=scalar_text(headers.get(HEADER_CONSUMER_TYPE)),
        input_address=scalar_text(headers.get(HEADER_INPUT_ADDRESS)),
        retry_count=_parse_retry_count(headers.get(HEADER_RETRY_COUNT)),
        message_type=message_type,
        exceptions=[exception],
        original_payload=envelope.message if envelope is not None else None,
        host=HostInfo.from_headers(headers),
    )


def extract_body_fault(message: PeekedMessage, envelope: Envelope | None) -> Fault | None:
    """Build a fault from a ``Fault<T>`` message body."""
    if envelope is None or not isinstance(envelope.message, Mapping):
        return None
    body = envelope.message
    raw_exceptions = body.get("exceptions")
    if not isinstance(raw_exceptions, list) or not raw_exceptions:
        return None

    type_names = envelope.type_names
    return Fault(
        source=FaultSource.BODY,
        faulted_at=envelope.sent_time or scalar_text(body.get("timestamp")),
        original_message_id=scalar_text(body.get("faultedMessageId")),
        fault_id=scalar_text(body.get("faultId")),
        message_type=", ".join(type_names) if type_names else None,
        exceptions=[
            ExceptionRecord.from_mapping(item)
            for item in raw_exceptions
            if isinstance(item, Mapping)
        ],
        original_payload=body.get("message"),
        host=envelope.host,
    )


FAULT_STRATEGIES: tuple[FaultStrategy, ...] = (extract_header_fault, extract_body_fault)


def extract_fault(message: PeekedMessage, envelope: Envelope | None) -> Fault | None:
    """Return the first fault produced by :data:`FAULT_STRATEGIES`, or None."""
    for strategy in FAULT_STRATEGIES:
        fault = strategy(message, envelope)
        if fault is not None:
            return fault
    return None

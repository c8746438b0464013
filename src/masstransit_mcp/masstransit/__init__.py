"""MassTransit conventions: queue naming, envelopes, faults and republishing.

Everything in this package is a pure function of broker data except
:mod:`~masstransit_mcp.masstransit.republish`, which drives a broker through
the :class:`~masstransit_mcp.masstransit.republish.BrokerPort` protocol.
"""

from masstransit_mcp.masstransit.envelope import (
    Envelope,
    HostInfo,
    decode_type_name,
    parse_envelope,
)
from masstransit_mcp.masstransit.faults import ExceptionRecord, Fault, FaultSource, extract_fault
from masstransit_mcp.masstransit.formatting import format_message, format_peeked_message
from masstransit_mcp.masstransit.naming import is_error_queue, is_skipped_queue, source_queue_of
from masstransit_mcp.masstransit.republish import (
    RepublishOutcome,
    RepublishPreview,
    RepublishRequest,
    republish_from_error,
    resolve_destination,
)

__all__ = [
    "Envelope",
    "ExceptionRecord",
    "Fault",
    "FaultSource",
    "HostInfo",
    "RepublishOutcome",
    "RepublishPreview",
    "RepublishRequest",
    "decode_type_name",
    "extract_fault",
    "format_message",
    "format_peeked_message",
    "is_error_queue",
    "is_skipped_queue",
    "parse_envelope",
    "republish_from_error",
    "resolve_destination",
    "source_queue_of",
]

"""MassTransit envelope parsing.

A MassTransit JSON payload wraps the application message in an envelope that
carries ids, addresses, message type URNs and the sending host. Payloads are
untrusted input: only the keys below are projected into typed structures and
anything unexpected is dropped instead of raising.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

URN_PREFIX = "urn:message:"

# Any one of these keys marks a JSON object as a MassTransit envelope.
_ENVELOPE_MARKER_KEYS = ("messageType", "messageId", "message")

# HostInfo attribute -> envelope ``host`` key (lower camel case).  The header
# form is ``MT-Host-`` followed by the same key in upper camel case.
HOST_FIELDS: dict[str, str] = {
    "machine_name": "machineName",
    "process_name": "processName",
    "process_id": "processId",
    "assembly": "assembly",
    "assembly_version": "assemblyVersion",
    "framework_version": "frameworkVersion",
    "mass_transit_version": "massTransitVersion",
    "operating_system_version": "operatingSystemVersion",
}


def decode_type_name(urn: str) -> str:
    """Convert a MassTransit message type URN into a dotted type name.

    ``urn:message:MyApp.Messages:OrderSubmitted`` becomes
    ``MyApp.Messages.OrderSubmitted``. Anything else is returned unchanged.
    """
    if not urn.startswith(URN_PREFIX):
        return urn
    return urn[len(URN_PREFIX) :].replace(":", ".")


def scalar_text(value: Any) -> str | None:
    """Return *value* as text when it is a scalar, else None.

    Strings pass through, numbers and booleans are stringified, containers
    and None are treated as absent.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (bool, int, float)):
        return str(value)
    return None


@dataclass
class HostInfo:
    """Descriptive information about the process that sent or faulted a message."""

    machine_name: str | None = None
    process_name: str | None = None
    process_id: str | None = None
    assembly: str | None = None
    assembly_version: str | None = None
    framework_version: str | None = None
    mass_transit_version: str | None = None
    operating_system_version: str | None = None

    @classmethod
    def from_envelope(cls, data: Any) -> HostInfo | None:
        """Project an envelope ``host`` object; None unless it is a mapping."""
        if not isinstance(data, Mapping):
            return None
        return cls(**{attr: scalar_text(data.get(key)) for attr, key in HOST_FIELDS.items()})

    @classmethod
    def from_headers(cls, headers: Mapping[str, Any]) -> HostInfo | None:
        """Project ``MT-Host-*`` headers; None when no such header is present."""
        values: dict[str, str | None] = {}
        found = False
        for attr, key in HOST_FIELDS.items():
            header = f"MT-Host-{key[0].upper()}{key[1:]}"
            if header in headers:
                found = True
            values[attr] = scalar_text(headers.get(header))
        if not found:
            return None
        return cls(**values)


@dataclass
class Envelope:
    """Structured view of a MassTransit message payload."""

    message_id: str | None = None
    correlation_id: str | None = None
    conversation_id: str | None = None
    initiator_id: str | None = None
    source_address: str | None = None
    destination_address: str | None = None
    sent_time: str | None = None
    message_types: list[str] = field(default_factory=list)
    message: Any = None
    headers: dict[str, Any] = field(default_factory=dict)
    host: HostInfo | None = None

    @property
    def type_names(self) -> list[str]:
        """Decoded display names of every message type URN."""
        return [decode_type_name(urn) for urn in self.message_types]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Envelope:
        return cls(
            message_id=scalar_text(data.get("messageId")),
            correlation_id=scalar_text(data.get("correlationId")),
            conversation_id=scalar_text(data.get("conversationId")),
            initiator_id=scalar_text(data.get("initiatorId")),
            source_address=scalar_text(data.get("sourceAddress")),
            destination_address=scalar_text(data.get("destinationAddress")),
            sent_time=scalar_text(data.get("sentTime")),
            message_types=_message_types(data.get("messageType")),
            message=data.get("message"),
            headers=dict(data["headers"]) if isinstance(data.get("headers"), Mapping) else {},
            host=HostInfo.from_envelope(data.get("host")),
        )


def _message_types(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    return []


def parse_envelope(payload: str) -> Envelope | None:
    """Interpret *payload* as a MassTransit envelope.

    Returns None for non-JSON payloads, JSON that is not an object, and
    objects carrying none of ``messageType``, ``messageId`` or ``message``.
    The marker-key check is a heuristic: unrelated JSON that happens to use
    one of those keys is accepted.
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    if not any(key in data for key in _ENVELOPE_MARKER_KEYS):
        return None
    return Envelope.from_mapping(data)

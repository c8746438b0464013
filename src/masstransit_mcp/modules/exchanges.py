"""Exchange module: exchanges and the bindings between exchanges and queues."""

from __future__ import annotations

import logging
from typing import Any, Literal

from masstransit_mcp.broker.models import BindingInfo, ExchangeInfo
from masstransit_mcp.config import AppConfig
from masstransit_mcp.modules.base import Module, ToolMeta
from masstransit_mcp.modules.queues import filter_by_name

logger = logging.getLogger(__name__)

ExchangeType = Literal["direct", "fanout", "topic", "headers"]
DEFAULT_EXCHANGE_LABEL = "(default)"


def select_exchanges(
    exchanges: list[ExchangeInfo],
    name_pattern: str | None = None,
    exchange_type: str | None = None,
) -> list[ExchangeInfo]:
    """Filter and sort exchanges.

    The unnamed default exchange is only kept when a name pattern is given.
    """
    selected = filter_by_name(exchanges, name_pattern)
    if exchange_type:
        selected = [e for e in selected if e.type == exchange_type]
    if not name_pattern:
        selected = [e for e in selected if e.name]
    return sorted(selected, key=lambda e: e.name)


def render_exchange_list(exchanges: list[ExchangeInfo]) -> str:
    if not exchanges:
        return "No exchanges found matching criteria."
    lines = [f"Found {len(exchanges)} exchange(s):\n"]
    for e in exchanges:
        lines.extend(
            [
                e.name or DEFAULT_EXCHANGE_LABEL,
                f"  Type: {e.type} | Durable: {e.durable} | Auto-delete: {e.auto_delete} "
                f"| Internal: {e.internal}",
                "",
            ]
        )
    return "\n".join(lines)


def render_exchange(
    exchange: ExchangeInfo,
    outgoing: list[BindingInfo],
    incoming: list[BindingInfo],
) -> str:
    lines = [
        f"Exchange: {exchange.name}",
        f"Vhost: {exchange.vhost}",
        f"Type: {exchange.type}",
        f"Durable: {exchange.durable}",
        f"Auto-delete: {exchange.auto_delete}",
        f"Internal: {exchange.internal}",
    ]
    if outgoing:
        lines.extend(["", f"Bindings (source -> destination): {len(outgoing)}"])
        lines.extend(
            f'  -> {b.destination_type} "{b.destination}" (routing_key: "{b.routing_key}")'
            for b in outgoing
        )
    if incoming:
        lines.extend(["", f"Bindings (incoming from): {len(incoming)}"])
        lines.extend(
            f'  <- exchange "{b.source}" (routing_key: "{b.routing_key}")' for b in incoming
        )
    return "\n".join(lines)


def render_bindings(target: str, target_type: str, bindings: list[BindingInfo]) -> str:
    if not bindings:
        return f'No bindings found for {target_type} "{target}".'
    lines = [f'Bindings for {target_type} "{target}": {len(bindings)}\n']
    for b in bindings:
        lines.extend(
            [
                f"Source: {b.source or DEFAULT_EXCHANGE_LABEL} -> Destination: "
                f"{b.destination} ({b.destination_type})",
                f'  Routing Key: "{b.routing_key}"',
                "",
            ]
        )
    return "\n".join(lines)


class ExchangesModule(Module):
    """Read-only exchange and binding tools."""

    @property
    def name(self) -> str:
        return "exchanges"

    def tool_metadata(self) -> dict[str, ToolMeta]:
        return {
            "list_exchanges": ToolMeta(),
            "get_exchange": ToolMeta(),
            "list_bindings": ToolMeta(),
        }

    async def register_tools(self, mcp: Any, client: Any, config: AppConfig) -> None:
        @mcp.tool()
        async def list_exchanges(
            vhost: str | None = None,
            name_pattern: str | None = None,
            type: ExchangeType | None = None,  # noqa: A002
        ) -> str:
            """List exchanges with their type and flags.

            Filter by vhost, case-insensitive name substring, or exchange type.
            The default exchange is only shown when searching by name.
            """
            exchanges = await client.list_exchanges(vhost)
            return render_exchange_list(select_exchanges(exchanges, name_pattern, type))

        @mcp.tool()
        async def get_exchange(name: str, vhost: str | None = None) -> str:
            """Get exchange details and its bindings in both directions."""
            exchange = await client.get_exchange(name, vhost)
            outgoing = await client.list_bindings_for_exchange(name, "source", vhost)
            incoming = await client.list_bindings_for_exchange(name, "destination", vhost)
            return render_exchange(exchange, outgoing, incoming)

        @mcp.tool()
        async def list_bindings(
            target: str,
            target_type: Literal["queue", "exchange"],
            vhost: str | None = None,
        ) -> str:
            """List bindings for a specific queue or exchange."""
            if target_type == "queue":
                bindings = await client.list_bindings_for_queue(target, vhost)
            else:
                bindings = [
                    *await client.list_bindings_for_exchange(target, "source", vhost),
                    *await client.list_bindings_for_exchange(target, "destination", vhost),
                ]
            return render_bindings(target, target_type, bindings)

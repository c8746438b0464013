"""MassTransit module: error/skipped queue triage and republishing."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from pydantic import Field

from masstransit_mcp.broker.models import QueueInfo
from masstransit_mcp.config import AppConfig
from masstransit_mcp.masstransit import republish
from masstransit_mcp.masstransit.formatting import format_message
from masstransit_mcp.masstransit.naming import (
    ERROR_SUFFIX,
    SKIPPED_SUFFIX,
    is_error_queue,
    is_failure_queue,
    is_skipped_queue,
    source_queue_of,
)
from masstransit_mcp.modules.base import Module, ToolMeta

logger = logging.getLogger(__name__)

HIGH_DEPTH_THRESHOLD = 1000
MAX_PEEK_COUNT = 50


def _by_depth(queues: list[QueueInfo]) -> list[QueueInfo]:
    return sorted(queues, key=lambda q: q.messages, reverse=True)


def render_failure_queues(
    queues: list[QueueInfo], suffix: str, *, non_empty: bool = True
) -> str:
    """Render the ``_error`` or ``_skipped`` queues among *queues*.

    *suffix* selects the queue family. Empty queues are dropped when
    *non_empty* is set; the rest are ordered by depth, deepest first.
    """
    selected = [q for q in queues if q.name.endswith(suffix)]
    if non_empty:
        selected = [q for q in selected if q.messages > 0]
    if not selected:
        if non_empty:
            return f"No {suffix} queues with messages found."
        return f"No {suffix} queues found."

    total = sum(q.messages for q in selected)
    lines = [f"Found {len(selected)} {suffix} queue(s) with {total} total message(s):\n"]
    for q in _by_depth(selected):
        lines.extend(
            [
                q.name,
                f"  Messages: {q.messages} | Source queue: {source_queue_of(q.name)} "
                f"| Consumers: {q.consumers}",
                "",
            ]
        )
    return "\n".join(lines)


def render_fault_peek(queue: str, messages: list) -> str:
    if not messages:
        return f'Queue "{queue}" is empty.'
    lines = [f"Queue: {queue} ({len(messages)} message(s))\n"]
    for i, message in enumerate(messages):
        lines.extend([format_message(message, i), ""])
    return "\n".join(lines)


def render_queue_health(queues: list[QueueInfo], min_messages: int = 1) -> str:
    """Summarize queues that need attention.

    Four findings are reported: regular queues holding at least
    *min_messages* with no consumer, error queues and skipped queues holding
    at least *min_messages*, and regular queues at or above
    :data:`HIGH_DEPTH_THRESHOLD`.
    """
    no_consumers = [
        q
        for q in queues
        if q.consumers == 0 and q.messages >= min_messages and not is_failure_queue(q.name)
    ]
    error_queues = _by_depth(
        [q for q in queues if is_error_queue(q.name) and q.messages >= min_messages]
    )
    skipped_queues = _by_depth(
        [q for q in queues if is_skipped_queue(q.name) and q.messages >= min_messages]
    )
    high_depth = _by_depth(
        [
            q
            for q in queues
            if q.messages >= HIGH_DEPTH_THRESHOLD and not is_failure_queue(q.name)
        ]
    )

    if not (no_consumers or error_queues or skipped_queues or high_depth):
        return "All queues look healthy, no issues detected."

    lines: list[str] = []
    if no_consumers:
        lines.append(f"[!] Queues with NO consumers and messages ({len(no_consumers)}):")
        lines.extend(f"  {q.name}: {q.messages} message(s)" for q in no_consumers)
        lines.append("")
    if error_queues:
        total = sum(q.messages for q in error_queues)
        lines.append(
            f"[x] Error queues with messages ({len(error_queues)} queues, {total} total):"
        )
        lines.extend(f"  {q.name}: {q.messages} message(s)" for q in error_queues)
        lines.append("")
    if skipped_queues:
        total = sum(q.messages for q in skipped_queues)
        lines.append(
            f"[-] Skipped queues with messages ({len(skipped_queues)} queues, {total} total):"
        )
        lines.extend(f"  {q.name}: {q.messages} message(s)" for q in skipped_queues)
        lines.append("")
    if high_depth:
        lines.append(
            f"[^] High depth queues (>={HIGH_DEPTH_THRESHOLD} messages, {len(high_depth)}):"
        )
        lines.extend(
            f"  {q.name}: {q.messages} message(s), {q.consumers} consumer(s)"
            for q in high_depth
        )
        lines.append("")
    return "\n".join(lines)


class MassTransitModule(Module):
    """Tools that understand MassTransit's error and skipped queue conventions."""

    @property
    def name(self) -> str:
        return "masstransit"

    def tool_metadata(self) -> dict[str, ToolMeta]:
        return {
            "list_error_queues": ToolMeta(),
            "list_skipped_queues": ToolMeta(),
            "peek_errors": ToolMeta(),
            "get_queue_health": ToolMeta(),
            "republish_from_error": ToolMeta(destructive=True),
        }

    async def register_tools(self, mcp: Any, client: Any, config: AppConfig) -> None:
        @mcp.tool()
        async def list_error_queues(vhost: str | None = None, non_empty: bool = True) -> str:
            """Find MassTransit _error queues with message counts.

            Shows services with unprocessed failures, deepest first. Empty
            queues are hidden unless ``non_empty`` is false.
            """
            queues = await client.list_queues(vhost)
            return render_failure_queues(queues, ERROR_SUFFIX, non_empty=non_empty)

        @mcp.tool()
        async def list_skipped_queues(vhost: str | None = None, non_empty: bool = True) -> str:
            """Find MassTransit _skipped queues with message counts.

            Skipped messages indicate routing or deserialization problems.
            """
            queues = await client.list_queues(vhost)
            return render_failure_queues(queues, SKIPPED_SUFFIX, non_empty=non_empty)

        @mcp.tool()
        async def peek_errors(
            queue: str,
            count: Annotated[int, Field(ge=1, le=MAX_PEEK_COUNT)] = 5,
            vhost: str | None = None,
        ) -> str:
            """Browse error queue messages with parsed fault details.

            Shows exception type and message, stack trace, original payload
            and source host. Messages stay in the queue.
            """
            return render_fault_peek(queue, await client.peek_messages(queue, count, vhost))

        @mcp.tool()
        async def get_queue_health(vhost: str | None = None, min_messages: int = 1) -> str:
            """Quick health check: queues without consumers, deep queues, and
            error or skipped queues holding messages."""
            return render_queue_health(await client.list_queues(vhost), min_messages)

        if not config.server.allow_mutative_tools:
            return

        @mcp.tool()
        async def republish_from_error(
            error_queue: str,
            count: Annotated[int, Field(ge=1, le=republish.MAX_REPUBLISH_COUNT)] = 1,
            confirm: bool = False,
            vhost: str | None = None,
        ) -> str:
            """Republish messages from a MassTransit _error queue to their
            original exchange.

            Two steps: without ``confirm`` the messages are only previewed;
            call again with ``confirm=true`` and the same count to consume and
            republish them.
            """
            request = republish.RepublishRequest(
                error_queue=error_queue, count=count, confirm=confirm, vhost=vhost
            )
            return await republish.republish_from_error(client, request)

"""MassTransit queue naming conventions.

MassTransit moves messages that exhausted their retries to ``<queue>_error``
and messages it could not route or deserialize to ``<queue>_skipped``.
"""

from __future__ import annotations

ERROR_SUFFIX = "_error"
SKIPPED_SUFFIX = "_skipped"


def is_error_queue(name: str) -> bool:
    """Return True when *name* follows the ``_error`` queue convention."""
    return name.endswith(ERROR_SUFFIX)


def is_skipped_queue(name: str) -> bool:
    """Return True when *name* follows the ``_skipped`` queue convention."""
    return name.endswith(SKIPPED_SUFFIX)


def is_failure_queue(name: str) -> bool:
    return is_error_queue(name) or is_skipped_queue(name)


def source_queue_of(name: str) -> str:
    """Return the queue an error/skipped queue belongs to.

    Names without either suffix are returned unchanged. The derived queue is
    not checked for existence.
    """
    if name.endswith(ERROR_SUFFIX):
        return name[: -len(ERROR_SUFFIX)]
    if name.endswith(SKIPPED_SUFFIX):
        return name[: -len(SKIPPED_SUFFIX)]
    return name

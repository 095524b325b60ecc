"""Bounded polling for resources that provision asynchronously.

A single primitive serves every resource kind. Callers supply a status
fetch function plus two predicates (condition met / terminal failure) and
a :class:`WaitPolicy` giving the poll interval and attempt ceiling.

Rules:
- DELETED: a NotFoundError from the fetch means that member is gone (met).
- CREATED: a NotFoundError is an error and propagates.
- A terminal failure raises TerminalStateError at once, with the provider's
  diagnostic text.
- Every member of the collection must meet the condition.
- The fetch runs at most ``max_attempts`` times per member; then
  WaitTimeoutError is raised with the last observed detail.
"""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from eks_cluster.resource.errors import NotFoundError, TerminalStateError, WaitTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 15.0


class Condition(enum.StrEnum):
    CREATED = "created"
    DELETED = "deleted"


@dataclass(frozen=True)
class WaitPolicy:
    """Poll interval (seconds) and the maximum number of status checks."""

    max_attempts: int
    interval: float = DEFAULT_INTERVAL


@dataclass(frozen=True)
class Status:
    """A provider-reported state plus any health/diagnostic text."""

    state: str
    detail: str = ""


def _never(status: Status) -> bool:
    return False


def wait_for_all(
    keys: Sequence[str],
    fetch: Callable[[str], Status],
    condition: Condition,
    *,
    done: Callable[[Status], bool],
    policy: WaitPolicy,
    kind: str,
    failed: Callable[[Status], bool] = _never,
    sleep: Callable[[float], None] | None = None,
) -> dict[str, Status | None]:
    """Poll every key until all of them meet *condition*.

    Returns the last status seen per key (``None`` for keys found to be
    deleted). Raises TerminalStateError or WaitTimeoutError.
    """
    sleep = sleep or time.sleep
    last: dict[str, Status | None] = {}
    if not keys:
        return last

    pending = list(keys)
    for attempt in range(1, policy.max_attempts + 1):
        still_pending: list[str] = []
        for key in pending:
            try:
                status = fetch(key)
            except NotFoundError:
                if condition is Condition.DELETED:
                    last[key] = None
                    continue
                raise
            last[key] = status
            if failed(status):
                raise TerminalStateError(
                    f"{kind} {key} reached terminal state {status.state}"
                    + (f": {status.detail}" if status.detail else ""),
                    identifier=key,
                    detail=status.detail,
                )
            if not done(status):
                still_pending.append(key)
        pending = still_pending
        if not pending:
            logger.debug("%s condition %s met after %d attempt(s)", kind, condition, attempt)
            return last

        logger.debug(
            "Waiting for %s %s to be %s (attempt %d/%d)",
            kind, ", ".join(pending), condition, attempt, policy.max_attempts,
        )
        if attempt < policy.max_attempts:
            sleep(policy.interval)

    detail = "; ".join(
        f"{key}: {status.state}" + (f" ({status.detail})" if status.detail else "")
        for key in pending
        if (status := last.get(key)) is not None
    )
    raise WaitTimeoutError(
        f"{kind} {condition} check timed out after {policy.max_attempts} attempts"
        + (f" [{detail}]" if detail else ""),
        identifier=", ".join(pending),
        detail=detail,
    )


def wait_for(
    key: str,
    fetch: Callable[[str], Status],
    condition: Condition,
    **kwargs,
) -> Status | None:
    """Single-resource form of :func:`wait_for_all`."""
    return wait_for_all([key], fetch, condition, **kwargs)[key]

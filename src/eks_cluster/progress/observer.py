"""Progress observers for orchestration runs.

The orchestrator pushes two kinds of notification while it works:
human-readable progress messages and inventory snapshots. Delivery is
fire-and-forget. An observer that falls behind or raises is warned about
but never blocks or fails the run.

Built-in observers:
- QueueObserver: buffers notifications and hands them to callbacks on a
  background thread
- LoggingObserver: forwards messages to the ``logging`` module

Custom observers just need ``on_message(text)`` and
``on_inventory_changed(snapshot)`` methods.
"""

from __future__ import annotations

import logging
import queue
import threading
import warnings
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from eks_cluster.models import ResourceInventory

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000

_STOP = object()


class ObserverWarning(UserWarning):
    """Emitted when an observer fails or drops a notification (non-fatal)."""


@runtime_checkable
class ProgressObserver(Protocol):
    """Protocol for progress observers."""

    def on_message(self, text: str) -> None:
        """Receive a human-readable progress message."""
        ...

    def on_inventory_changed(self, snapshot: ResourceInventory) -> None:
        """Receive a copy of the inventory after a checkpoint."""
        ...


class LoggingObserver:
    """Send progress messages to a logger at INFO level."""

    def __init__(self, name: str = "eks_cluster.progress") -> None:
        self._logger = logging.getLogger(name)

    def on_message(self, text: str) -> None:
        self._logger.info("%s", text)

    def on_inventory_changed(self, snapshot: ResourceInventory) -> None:
        self._logger.debug("Inventory checkpoint: %s", snapshot.model_dump(mode="json"))


class QueueObserver:
    """Buffer notifications and deliver them from a daemon thread.

    Notifications are enqueued with ``put_nowait``; when the queue is full
    the notification is dropped with an :class:`ObserverWarning`. Callback
    exceptions are warned about and the consumer keeps going.

    Use as a context manager, or call :meth:`close` to drain and stop::

        with QueueObserver(on_message=click.echo) as observer:
            client = ResourceClient(session, observer=observer)
            ...
    """

    def __init__(
        self,
        on_message: Callable[[str], None] | None = None,
        on_inventory: Callable[[ResourceInventory], None] | None = None,
        maxsize: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._on_message = on_message
        self._on_inventory = on_inventory
        self._queue: queue.Queue[object] = queue.Queue(maxsize=maxsize)
        self._closed = False
        self._thread = threading.Thread(
            target=self._consume, name="eks-cluster-progress", daemon=True,
        )
        self._thread.start()

    def __enter__(self) -> QueueObserver:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def on_message(self, text: str) -> None:
        if self._on_message is not None:
            self._offer(("message", text))

    def on_inventory_changed(self, snapshot: ResourceInventory) -> None:
        if self._on_inventory is not None:
            self._offer(("inventory", snapshot))

    def close(self, timeout: float | None = 5.0) -> None:
        """Deliver everything still queued, then stop the consumer thread.

        If a stuck callback keeps the queue full for *timeout* seconds, the
        remaining notifications are abandoned with an :class:`ObserverWarning`.
        """
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            warnings.warn(
                "Progress queue still full on close, pending notifications dropped",
                ObserverWarning,
                stacklevel=2,
            )
            return
        self._thread.join(timeout)

    def _offer(self, item: tuple[str, object]) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(item)
        except queue.Full:
            warnings.warn(
                f"Progress queue full, dropped {item[0]} notification",
                ObserverWarning,
                stacklevel=3,
            )

    def _consume(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            kind, payload = item  # type: ignore[misc]
            try:
                if kind == "message":
                    self._on_message(payload)  # type: ignore[misc]
                else:
                    self._on_inventory(payload)  # type: ignore[misc]
            except Exception as exc:
                warnings.warn(
                    f"Progress callback failed: {exc}",
                    ObserverWarning,
                    stacklevel=2,
                )

"""ResourceClient: the context passed into every adapter call.

Holds the boto3 session, the target region, a cancellation flag, and the
progress observer. Adapters are stateless; they get their service clients
from here and return data for the orchestrator to fold into the inventory.
"""

from __future__ import annotations

import threading
import warnings
from typing import Any

from eks_cluster.models import ResourceInventory
from eks_cluster.progress.observer import ObserverWarning, ProgressObserver


class ResourceClient:
    """Session context for resource adapters.

    Service clients are created lazily and cached per (service, region);
    changing :attr:`region` makes later calls use fresh clients.
    """

    def __init__(
        self,
        session: Any,
        observer: ProgressObserver | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        self._session = session
        self._observer = observer
        self._region = region or getattr(session, "region_name", None) or ""
        self._endpoint_url = endpoint_url
        self._clients: dict[tuple[str, str], Any] = {}
        self._cancelled = threading.Event()

    @property
    def session(self) -> Any:
        return self._session

    @property
    def region(self) -> str:
        return self._region

    @region.setter
    def region(self, value: str) -> None:
        self._region = value

    def client(self, service: str) -> Any:
        """Get a (cached) boto3 client for *service* in the current region."""
        key = (service, self._region)
        if key not in self._clients:
            kwargs: dict[str, Any] = {}
            if self._region:
                kwargs["region_name"] = self._region
            if self._endpoint_url:
                kwargs["endpoint_url"] = self._endpoint_url
            self._clients[key] = self._session.client(service, **kwargs)
        return self._clients[key]

    # --- Cancellation ---

    def cancel(self) -> None:
        """Ask the running orchestration to stop before its next step."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # --- Notifications (best-effort) ---

    def message(self, text: str) -> None:
        if self._observer is None:
            return
        try:
            self._observer.on_message(text)
        except Exception as exc:
            warnings.warn(f"Progress observer failed: {exc}", ObserverWarning, stacklevel=2)

    def publish_inventory(self, inventory: ResourceInventory) -> None:
        if self._observer is None:
            return
        try:
            self._observer.on_inventory_changed(inventory.model_copy(deep=True))
        except Exception as exc:
            warnings.warn(f"Progress observer failed: {exc}", ObserverWarning, stacklevel=2)

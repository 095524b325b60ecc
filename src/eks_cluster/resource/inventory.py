"""Resource inventory persistence.

The inventory is written as indented JSON after every create/delete step,
so the file on disk is always a safe superset of what exists in AWS.
Writes are atomic (temp file + rename) so an interrupted write never leaves
a truncated inventory behind.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from eks_cluster.models import ResourceInventory

DEFAULT_INVENTORY_FILE = "eks-cluster-inventory.json"


class InventoryError(Exception):
    """Raised when the inventory file is invalid or cannot be loaded."""


def write_inventory(path: str | Path, inventory: ResourceInventory) -> None:
    """Serialize *inventory* to *path*, creating the file if absent."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    text = json.dumps(inventory.model_dump(mode="json"), indent=2) + "\n"
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        tmp_path.write_text(text, encoding="utf-8")
        tmp_path.replace(path)
    except OSError as e:
        raise InventoryError(f"Failed to write inventory file {path}: {e}") from e


def read_inventory(path: str | Path) -> ResourceInventory:
    """Load and validate an inventory file.

    Raises:
        InventoryError: If the file is missing or does not hold a valid inventory.
    """
    path = Path(path)
    if not path.exists():
        raise InventoryError(f"Inventory file not found: {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8") or "{}")
    except json.JSONDecodeError as e:
        raise InventoryError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(raw, dict):
        raise InventoryError(f"Inventory file must contain a JSON object: {path}")

    try:
        return ResourceInventory.model_validate(raw)
    except ValidationError as e:
        raise InventoryError(f"Invalid inventory in {path}: {e}") from e


def clear_inventory(path: str | Path) -> None:
    """Reset the inventory file to an empty inventory after a full delete."""
    write_inventory(path, ResourceInventory())

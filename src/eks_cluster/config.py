"""Cluster config file loading.

The config is a YAML mapping of :class:`ClusterConfig` fields. Keys may be
written in snake_case (``kubernetes_version``) or camelCase
(``kubernetesVersion``, ``awsAccountID``, ``privateSubnetCIDR``); both are
folded to the model's field names before validation. Without a file every
field takes its default.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from eks_cluster.models import ClusterConfig

_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")

# Values under these keys are user data and keep their keys as written.
_VERBATIM_KEYS = frozenset({"tags"})


class ConfigError(Exception):
    """Raised when a config file does not describe a valid cluster."""


def snake_case(key: str) -> str:
    """``awsAccountID`` -> ``aws_account_id``. snake_case keys are unchanged."""
    return _WORD_BOUNDARY.sub("_", key).lower()


def normalize_keys(data: Any, source: str = "config") -> Any:
    """Fold every mapping key in *data* to snake_case.

    Raises:
        ConfigError: If two keys in one mapping fold to the same name.
    """
    if isinstance(data, list):
        return [normalize_keys(item, source) for item in data]
    if not isinstance(data, dict):
        return data

    result: dict[str, Any] = {}
    for key, value in data.items():
        name = snake_case(str(key))
        if name in result:
            msg = f"Duplicate key {key!r} in {source} (already set as {name!r})"
            raise ConfigError(msg)
        result[name] = value if name in _VERBATIM_KEYS else normalize_keys(value, source)
    return result


def load_config(path: str | Path | None = None) -> ClusterConfig:
    """Load the cluster config at *path*.

    With no *path* the default ``ClusterConfig`` is returned. A missing file
    raises ``FileNotFoundError``, and YAML that is not a mapping raises
    ``ValueError``. Unparseable YAML, unknown keys and invalid values raise
    :class:`ConfigError` naming the file.
    """
    if path is None:
        return ClusterConfig()

    config_path = Path(path)
    if not config_path.is_file():
        msg = f"Config file not found: {config_path}"
        raise FileNotFoundError(msg)

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in {config_path}: {e}"
        raise ConfigError(msg) from e

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ValueError(msg)

    data = normalize_keys(data, str(config_path))
    unknown = sorted(set(data) - set(ClusterConfig.model_fields))
    if unknown:
        msg = f"Unknown keys in {config_path}: {', '.join(unknown)}"
        raise ConfigError(msg)

    try:
        return ClusterConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid cluster config in {config_path}: {e}"
        raise ConfigError(msg) from e

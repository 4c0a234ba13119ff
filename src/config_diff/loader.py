"""Snapshot file loading for the CLI and watch loop."""

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from . import ConfigDiffError

YAML_SUFFIXES = {".yaml", ".yml"}


class SnapshotError(ConfigDiffError):
    """Raised when a snapshot file cannot be read or parsed."""


class EmptySnapshotError(SnapshotError):
    """Raised for an empty snapshot file, e.g. one caught mid-write."""


def load_snapshot(path: Path) -> Any:
    """Read a JSON or YAML snapshot from *path*.

    YAML is used for ``.yaml``/``.yml`` files, JSON for everything else.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SnapshotError(f"Cannot read {path}: {e}") from e

    if not content.strip():
        raise EmptySnapshotError(f"Snapshot is empty: {path}")

    try:
        if path.suffix.lower() in YAML_SUFFIXES:
            return yaml.safe_load(content)
        return json.loads(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise SnapshotError(f"Cannot parse {path}: {e}") from e


def value_at_path(value: Any, path: str) -> Any:
    """Resolve a dotted change path against *value*.

    Array segments are indices. Returns None when the path does not exist,
    e.g. for a ``removed`` event checked against the new snapshot.
    """
    if path == "":
        return value

    current = value
    for segment in path.split("."):
        if isinstance(current, Mapping):
            if segment not in current:
                return None
            current = current[segment]
        elif isinstance(current, (list, tuple)):
            if not segment.isdigit() or int(segment) >= len(current):
                return None
            current = current[int(segment)]
        else:
            return None
    return current

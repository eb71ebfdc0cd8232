"""Load parsed node records from JSON or YAML files.

The input is produced by an external document parser and contains either a
``{"nodes": [...]}`` mapping or a bare list of node records.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .graph import VaultGraph
from .models import Node

log = logging.getLogger(__name__)


class LoaderError(Exception):
    """Raised when a node file cannot be read or holds invalid records."""

    pass


def _read(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise LoaderError(f"Could not read {path}: {e}") from e

    try:
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise LoaderError(f"Could not parse {path}: {e}") from e


def parse_nodes(data: Any, source: str = "<data>") -> list[Node]:
    """Validate raw records into nodes.

    Raises:
        LoaderError: If the structure is wrong, a record is invalid, or a path repeats.
    """
    if isinstance(data, dict):
        data = data.get("nodes")
    if not isinstance(data, list):
        raise LoaderError(f"{source}: expected a list of nodes or a mapping with a 'nodes' list")

    nodes: list[Node] = []
    seen: set[str] = set()
    for index, record in enumerate(data):
        try:
            node = Node.model_validate(record)
        except ValidationError as e:
            raise LoaderError(f"{source}: invalid node record #{index}: {e}") from e
        if node.path in seen:
            raise LoaderError(f"{source}: duplicate node path {node.path}")
        seen.add(node.path)
        nodes.append(node)
    return nodes


def load_nodes(path: Path) -> list[Node]:
    """Read node records from a .json, .yaml or .yml file."""
    path = Path(path)
    nodes = parse_nodes(_read(path), source=str(path))
    log.debug("Loaded %d node(s) from %s", len(nodes), path)
    return nodes


def load_graph(path: Path) -> VaultGraph:
    """Read node records and build a graph from them."""
    return VaultGraph(load_nodes(path)).build()

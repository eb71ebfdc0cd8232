"""Shared test fixtures for linkgraph test suite.

Design:
- make_node / build_graph: terse builders for Node records and built graphs
- canvas_item: JSON Canvas item records for spatial tests
- chain_graph: the A -> B -> C graph most analyzer tests start from
- runner: CliRunner for command tests
- Config discovery is isolated per test (no LINKGRAPH_CONFIG, cwd = tmp_path)
"""

import json
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from linkgraph.config import ValidationConfig
from linkgraph.graph import VaultGraph
from linkgraph.models import Node

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


# ─────────────────────────────────────────────────────────────────────────────
# Builders
# ─────────────────────────────────────────────────────────────────────────────


def make_node(
    path: str,
    tags: Iterable[str] = (),
    links: Iterable[str] = (),
    kind: str = "note",
    aliases: Iterable[str] = (),
    unresolved: Iterable[str] = (),
    canvas: Any = None,
    **properties: Any,
) -> Node:
    """Build a Node with direct links, tags and optional front-matter properties."""
    return Node(
        path=path,
        kind=kind,
        tags=set(tags),
        aliases=set(aliases),
        properties=properties,
        links={"direct": list(links), "unresolved": list(unresolved)},
        canvas=canvas,
    )


def build_graph(*nodes: Node) -> VaultGraph:
    """Build a graph from nodes with a fixed snapshot timestamp."""
    return VaultGraph(nodes).build(now=NOW)


def canvas_item(
    item_id: str,
    file: str | None,
    x: float,
    y: float,
    width: float = 20,
    height: float = 20,
) -> dict[str, Any]:
    item: dict[str, Any] = {"id": item_id, "type": "file" if file else "text", "x": x, "y": y}
    item["width"] = width
    item["height"] = height
    if file:
        item["file"] = file
    return item


def node_record(node: Node) -> dict[str, Any]:
    """Serialize a node the way an external parser would hand it over."""
    return node.model_dump(mode="json", exclude={"neighbors", "health"})


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep config discovery from picking up files outside the test."""
    monkeypatch.delenv("LINKGRAPH_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def basic_config() -> ValidationConfig:
    """Fixed-heuristic mode (no rule engine configuration)."""
    return ValidationConfig(enable_rules=False)


@pytest.fixture
def chain_nodes() -> list[Node]:
    """A(x,y) -> B(x) -> C(x,y); A does not link C."""
    return [
        make_node("a.md", tags=["x", "y"], links=["b.md"]),
        make_node("b.md", tags=["x"], links=["c.md"]),
        make_node("c.md", tags=["x", "y"]),
    ]


@pytest.fixture
def chain_graph(chain_nodes: list[Node]) -> VaultGraph:
    return build_graph(*chain_nodes)


@pytest.fixture
def write_nodes(tmp_path: Path) -> Callable[..., Path]:
    """Write node records to a JSON file and return its path."""

    def _write(nodes: Iterable[Node], name: str = "nodes.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps({"nodes": [node_record(n) for n in nodes]}, indent=2))
        return path

    return _write

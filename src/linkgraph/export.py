"""Graph export for external visualization tools."""

from __future__ import annotations

import json
from pathlib import Path

from .graph import VaultGraph
from .models import ExportEdge, ExportNode, GraphExport


def build_export(graph: VaultGraph) -> GraphExport:
    """Serialize a built graph into nodes, edges and snapshot metadata.

    Nodes are ordered by path and edges keep the graph's deterministic order,
    so exporting an unchanged graph twice gives identical output.
    """
    metadata = graph.metadata
    nodes = []
    for path in graph.paths:
        node = graph.get_node(path)
        nodes.append(
            ExportNode(
                id=node.path,
                label=node.label,
                kind=node.kind,
                tags=sorted(node.tags),
                health=node.health.score,
                neighbors=node.neighbors,
            )
        )

    return GraphExport(
        metadata={
            "last_updated": metadata.last_updated.isoformat() if metadata.last_updated else None,
            "version": metadata.version,
            "validation_count": metadata.validation_count,
            "metrics": graph.metrics().model_dump(),
        },
        nodes=nodes,
        edges=[ExportEdge(source=e.source, target=e.target, kind=e.kind) for e in graph.edges],
    )


def write_export(graph: VaultGraph, path: Path) -> Path:
    """Write the graph export as indented JSON.

    Args:
        graph: A built graph.
        path: Destination file; parent directories are created.

    Returns:
        The path written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = build_export(graph).model_dump(mode="json")
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return path

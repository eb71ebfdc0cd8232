"""Vault graph: nodes, typed edges, and derived neighbor taxonomies."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Iterator
from datetime import UTC, datetime
from typing import Any, Literal

from .models import Edge, GraphMetadata, GraphMetrics, Neighbors, Node

log = logging.getLogger(__name__)

NeighborKind = Literal["direct", "backlink", "tag_peers", "alias_peers", "canvas_peers"]

# Edge weights for inferred relations; explicit links weigh 1.0
TAG_PEER_WEIGHT = 0.8
CANVAS_PEER_WEIGHT = 0.6


class GraphNotBuiltError(RuntimeError):
    """Raised when a graph is queried for derived data before build()."""

    pass


def _dedupe(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def canvas_file_paths(raw: Any) -> list[str]:
    """Extract file-backed item paths from a raw canvas document.

    Malformed entries are skipped; full schema validation happens in the
    spatial analyzer so that a broken board never blocks a graph build.
    """
    if not isinstance(raw, dict):
        return []
    items = raw.get("nodes")
    if not isinstance(items, list):
        return []
    paths = []
    for item in items:
        if isinstance(item, dict) and item.get("type", "file") == "file":
            file_path = item.get("file")
            if isinstance(file_path, str) and file_path:
                paths.append(file_path)
    return _dedupe(paths)


class VaultGraph:
    """Map of path -> Node plus the edge set derived from their links.

    The graph is mutable while it is being assembled. Call ``build()`` to
    compute neighbor taxonomies and edges; after that it is treated as a
    read-only snapshot by the analyzers until the next ``build()`` or
    ``refresh()``.
    """

    def __init__(self, nodes: Iterable[Node] = ()):
        self._nodes: dict[str, Node] = {}
        self._edges: list[Edge] = []
        self._built = False
        self.metadata = GraphMetadata()

        # Inverted indices, rebuilt with the taxonomy
        self._linked_from: dict[str, set[str]] = {}
        self._by_tag: dict[str, set[str]] = {}
        self._by_alias: dict[str, set[str]] = {}  # casefolded alias -> paths
        self._by_stem: dict[str, set[str]] = {}  # casefolded file stem -> paths
        self._boards_of: dict[str, set[str]] = {}  # item path -> canvases placing it
        self._board_items: dict[str, list[str]] = {}  # canvas path -> resolved item paths

        for node in nodes:
            self.add_node(node)

    # ─────────────────────────────────────────────────────────────────────
    # Node access
    # ─────────────────────────────────────────────────────────────────────

    def add_node(self, node: Node) -> None:
        """Add or replace a node. Derived data is stale until the next build."""
        self._nodes[node.path] = node
        self._built = False

    def get_node(self, path: str) -> Node | None:
        """Return the node at path, or None if it is not in the graph."""
        return self._nodes.get(path)

    def remove_node(self, path: str) -> Node | None:
        """Remove and return the node at path (None if absent)."""
        node = self._nodes.pop(path, None)
        if node is not None:
            self._built = False
        return node

    def __contains__(self, path: object) -> bool:
        return path in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))

    @property
    def paths(self) -> list[str]:
        return sorted(self._nodes)

    @property
    def nodes(self) -> list[Node]:
        """All nodes, ordered by path."""
        return [self._nodes[path] for path in self.paths]

    @property
    def built(self) -> bool:
        return self._built

    @property
    def edges(self) -> list[Edge]:
        self._require_built()
        return list(self._edges)

    def _require_built(self) -> None:
        if not self._built:
            raise GraphNotBuiltError("Graph has pending changes; call build() first")

    # ─────────────────────────────────────────────────────────────────────
    # Build
    # ─────────────────────────────────────────────────────────────────────

    def build(self, now: datetime | None = None) -> "VaultGraph":
        """Compute neighbor taxonomies and edges for every node.

        Args:
            now: Snapshot timestamp (defaults to the current UTC time).

        Returns:
            self, for chaining.
        """
        self._rebuild_indices()
        for node in self._nodes.values():
            node.neighbors = self._compute_neighbors(node)
        self._rebuild_edges()

        self._built = True
        self.metadata.version += 1
        self.metadata.last_updated = now or datetime.now(UTC)
        log.debug(
            "Built graph v%d: %d nodes, %d edges",
            self.metadata.version,
            len(self._nodes),
            len(self._edges),
        )
        return self

    def refresh(
        self,
        changed: Iterable[Node] = (),
        removed: Iterable[str] = (),
        now: datetime | None = None,
    ) -> set[str]:
        """Apply node changes and recompute only their one-hop neighborhood.

        Args:
            changed: New or updated nodes.
            removed: Paths of deleted nodes.
            now: Snapshot timestamp.

        Returns:
            Paths (still present in the graph) whose neighbor taxonomy was recomputed.
        """
        if not self._built:
            # Nothing to be incremental against
            for node in changed:
                self.add_node(node)
            for path in removed:
                self.remove_node(path)
            self.build(now=now)
            return set(self._nodes)

        changed = list(changed)
        removed = list(removed)
        touched = {node.path for node in changed} | set(removed)

        # One-hop neighborhood before the change
        affected = set(touched)
        for path in touched:
            old = self._nodes.get(path)
            if old is not None:
                affected.update(self._one_hop(old.neighbors))

        for path in removed:
            self._nodes.pop(path, None)
        for node in changed:
            self._nodes[node.path] = node

        self._rebuild_indices()

        # One-hop neighborhood after the change
        for node in changed:
            node.neighbors = self._compute_neighbors(node)
            affected.update(self._one_hop(node.neighbors))

        affected &= set(self._nodes)
        for path in affected:
            node = self._nodes[path]
            node.neighbors = self._compute_neighbors(node)
        self._rebuild_edges()

        self._built = True
        self.metadata.version += 1
        self.metadata.last_updated = now or datetime.now(UTC)
        log.debug("Refreshed %d node(s) after %d change(s)", len(affected), len(touched))
        return affected

    @staticmethod
    def _one_hop(neighbors: Neighbors) -> set[str]:
        return set(
            neighbors.direct
            + neighbors.backlink
            + neighbors.tag_peers
            + neighbors.alias_peers
            + neighbors.canvas_peers
        )

    def _rebuild_indices(self) -> None:
        self._linked_from = {}
        self._by_tag = {}
        self._by_alias = {}
        self._by_stem = {}
        self._boards_of = {}
        self._board_items = {}

        for node in self._nodes.values():
            for target in node.links.direct:
                if target in self._nodes:
                    self._linked_from.setdefault(target, set()).add(node.path)
            for tag in node.tags:
                self._by_tag.setdefault(tag, set()).add(node.path)
            for alias in node.aliases:
                self._by_alias.setdefault(alias.casefold(), set()).add(node.path)
            self._by_stem.setdefault(node.stem.casefold(), set()).add(node.path)
            if node.kind == "canvas":
                items = [p for p in canvas_file_paths(node.canvas) if p in self._nodes and p != node.path]
                self._board_items[node.path] = items
                for item in items:
                    self._boards_of.setdefault(item, set()).add(node.path)

    def _compute_neighbors(self, node: Node) -> Neighbors:
        path = node.path

        direct = _dedupe(t for t in node.links.direct if t in self._nodes)
        backlink = sorted(self._linked_from.get(path, ()))

        tag_peers: set[str] = set()
        for tag in node.tags:
            tag_peers |= self._by_tag.get(tag, set())
        tag_peers.discard(path)

        alias_peers: set[str] = set()
        for alias in node.aliases:
            alias_peers |= self._by_alias.get(alias.casefold(), set())
        alias_peers.discard(path)

        canvas_peers: set[str] = set(self._board_items.get(path, ()))
        for board in self._boards_of.get(path, ()):
            canvas_peers.add(board)
            canvas_peers.update(self._board_items[board])
        canvas_peers.discard(path)

        return Neighbors(
            direct=direct,
            backlink=backlink,
            tag_peers=sorted(tag_peers),
            alias_peers=sorted(alias_peers),
            canvas_peers=sorted(canvas_peers),
        )

    def _rebuild_edges(self) -> None:
        edges: list[Edge] = []
        for path in sorted(self._nodes):
            neighbors = self._nodes[path].neighbors
            for target in neighbors.direct:
                edges.append(Edge(source=path, target=target, kind="wiki"))
            for source in neighbors.backlink:
                edges.append(Edge(source=path, target=source, kind="backlink"))
            # Symmetric relations are stored once per unordered pair
            for peer in neighbors.tag_peers:
                if path < peer:
                    edges.append(Edge(source=path, target=peer, kind="tag-peer", weight=TAG_PEER_WEIGHT))
            for peer in neighbors.canvas_peers:
                if path < peer:
                    edges.append(Edge(source=path, target=peer, kind="canvas-peer", weight=CANVAS_PEER_WEIGHT))
        self._edges = edges

    # ─────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────

    def direct_neighbors(self, path: str) -> list[Node]:
        """Resolve a node's direct neighbors to Node objects."""
        node = self._nodes.get(path)
        if node is None:
            return []
        return [self._nodes[p] for p in node.neighbors.direct if p in self._nodes]

    def neighbors(
        self,
        path: str,
        depth: int = 1,
        kinds: Iterable[NeighborKind] = ("direct",),
    ) -> dict[str, int]:
        """Breadth-first neighborhood of a node.

        Args:
            path: Root node path.
            depth: Maximum hops from the root (>= 1).
            kinds: Neighbor relations to follow.

        Returns:
            Mapping of reachable path -> hop distance, excluding the root.
            Empty if the root is not in the graph.
        """
        if depth < 1:
            raise ValueError(f"depth must be >= 1, got {depth}")
        self._require_built()
        if path not in self._nodes:
            return {}

        kinds = tuple(kinds)
        reached: dict[str, int] = {path: 0}
        queue: deque[tuple[str, int]] = deque([(path, 0)])

        while queue:
            current, current_depth = queue.popleft()
            if current_depth >= depth:
                continue

            neighbors = self._nodes[current].neighbors
            for kind in kinds:
                for neighbor in getattr(neighbors, kind):
                    if neighbor not in reached and neighbor in self._nodes:
                        reached[neighbor] = current_depth + 1
                        queue.append((neighbor, current_depth + 1))

        del reached[path]
        return reached

    def has_link(self, a: str, b: str) -> bool:
        """True if either node directly links to the other."""
        node_a = self._nodes.get(a)
        node_b = self._nodes.get(b)
        return bool(
            (node_a is not None and node_a.links_directly_to(b))
            or (node_b is not None and node_b.links_directly_to(a))
        )

    def paths_named(self, name: str) -> list[str]:
        """Paths whose file name, without extension, matches name (case-insensitive)."""
        self._require_built()
        return sorted(self._by_stem.get(name.casefold(), ()))

    def linked_pairs(self) -> set[frozenset[str]]:
        """Unordered node pairs joined by an explicit link in either direction."""
        self._require_built()
        return {
            frozenset((edge.source, edge.target))
            for edge in self._edges
            if edge.kind == "wiki" and edge.source != edge.target
        }

    def metrics(self) -> GraphMetrics:
        """Compute node/edge counts, orphan statistics, and average degree.

        An orphan is a node with no explicit link in either direction.
        Dashboards are never counted as orphans.
        """
        self._require_built()
        total_nodes = len(self._nodes)
        total_edges = len(self._edges)

        orphan_count = sum(
            1
            for node in self._nodes.values()
            if node.kind != "dashboard" and not node.neighbors.direct and not node.neighbors.backlink
        )

        if total_nodes == 0:
            return GraphMetrics(
                total_nodes=0, total_edges=0, orphan_count=0, orphan_rate=0.0, average_degree=0.0
            )

        return GraphMetrics(
            total_nodes=total_nodes,
            total_edges=total_edges,
            orphan_count=orphan_count,
            orphan_rate=orphan_count / total_nodes * 100,
            average_degree=total_edges * 2 / total_nodes,
        )

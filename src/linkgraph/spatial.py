"""Spatial proximity analysis for canvas boards.

Items placed close together on a board usually belong together. Every
unordered pair of file-backed items closer than the proximity threshold is
checked for a link; unlinked pairs become prioritized suggestions.
"""

from __future__ import annotations

import logging
import math
from itertools import combinations
from typing import Any

from pydantic import ValidationError

from .config import (
    CLOSE_PX,
    HIGH_PRIORITY_SCORE,
    LARGE_ITEM_FACTOR,
    LOW_SPATIAL_EFFICIENCY,
    MEDIUM_PRIORITY_SCORE,
    VERY_CLOSE_PX,
    ValidationConfig,
)
from .graph import VaultGraph
from .models import (
    CanvasAnalysis,
    CanvasBoard,
    CanvasItem,
    Node,
    Priority,
    SpatialSuggestion,
    ValidationIssue,
)

log = logging.getLogger(__name__)


class CanvasFormatError(ValueError):
    """Raised when a canvas node has missing or malformed board data."""

    pass


def parse_board(node: Node) -> CanvasBoard:
    """Parse a canvas node's raw JSON Canvas data.

    Raises:
        CanvasFormatError: If the node carries no board data or it fails validation.
    """
    if node.canvas is None:
        raise CanvasFormatError(f"{node.path}: no canvas data")
    if not isinstance(node.canvas, dict):
        raise CanvasFormatError(f"{node.path}: canvas data must be an object")
    try:
        return CanvasBoard.model_validate(node.canvas)
    except ValidationError as e:
        raise CanvasFormatError(f"{node.path}: {e.error_count()} invalid field(s) in canvas data") from e


def distance(a: CanvasItem, b: CanvasItem) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


class SpatialProximityAnalyzer:
    """Finds visually adjacent canvas items whose notes are not linked."""

    def __init__(self, config: ValidationConfig | None = None):
        self.config = config or ValidationConfig()

    def score(self, a: CanvasItem, b: CanvasItem, node_a: Node, node_b: Node, dist: float) -> int:
        """Point score for a close pair.

        Distance contributes 3/2/1 points, a large item 1, each shared tag 1,
        and the same node kind 1.
        """
        if dist < VERY_CLOSE_PX:
            points = 3
        elif dist < CLOSE_PX:
            points = 2
        else:
            points = 1

        if self._has_large_item(a, b):
            points += 1
        points += len(node_a.tags & node_b.tags)
        if node_a.kind == node_b.kind:
            points += 1
        return points

    @staticmethod
    def priority(points: int) -> Priority:
        if points >= HIGH_PRIORITY_SCORE:
            return "high"
        if points >= MEDIUM_PRIORITY_SCORE:
            return "medium"
        return "low"

    def _has_large_item(self, a: CanvasItem, b: CanvasItem) -> bool:
        limit = self.config.min_item_size * LARGE_ITEM_FACTOR
        return a.area > limit or b.area > limit

    def reason(self, a: CanvasItem, b: CanvasItem, node_a: Node, node_b: Node, dist: float) -> str:
        if dist < VERY_CLOSE_PX:
            reasons = ["very close proximity"]
        elif dist < CLOSE_PX:
            reasons = ["close proximity"]
        else:
            reasons = ["moderate proximity"]

        tags = sorted(node_a.tags & node_b.tags)
        if tags:
            reasons.append(f"shared tags: {', '.join(tags)}")
        if node_a.kind == node_b.kind:
            reasons.append(f"same type: {node_a.kind}")
        if self._has_large_item(a, b):
            reasons.append("large node size")
        return ", ".join(reasons)

    def analyze(self, node: Node, graph: VaultGraph) -> CanvasAnalysis:
        """Analyze one canvas board.

        Args:
            node: A node of kind ``canvas``.
            graph: Built graph used to resolve item paths and links.

        Returns:
            Close/linked pair counts, missing links sorted by distance, and the
            board's spatial efficiency (100 when nothing is close).

        Raises:
            CanvasFormatError: If the board data is missing or malformed.
        """
        board = parse_board(node)

        # Items whose file is unknown to the graph are skipped
        placed: list[tuple[CanvasItem, Node]] = []
        for item in board.file_items():
            resolved = graph.get_node(item.linked_node_path)
            if resolved is not None:
                placed.append((item, resolved))

        connected = {
            frozenset((edge.from_item, edge.to_item)) for edge in board.edges if edge.from_item != edge.to_item
        }

        close_pairs = 0
        linked_pairs = 0
        missing: list[SpatialSuggestion] = []

        for (item_a, node_a), (item_b, node_b) in combinations(placed, 2):
            if node_a.path == node_b.path:
                continue
            dist = distance(item_a, item_b)
            if dist >= self.config.proximity_threshold_px:
                continue

            close_pairs += 1
            if graph.has_link(node_a.path, node_b.path) or frozenset((item_a.item_id, item_b.item_id)) in connected:
                linked_pairs += 1
                continue

            points = self.score(item_a, item_b, node_a, node_b, dist)
            missing.append(
                SpatialSuggestion(
                    board=node.path,
                    source=node_a.path,
                    target=node_b.path,
                    distance=dist,
                    reason=self.reason(item_a, item_b, node_a, node_b, dist),
                    priority=self.priority(points),
                    score=points,
                )
            )

        missing.sort(key=lambda s: (s.distance, s.source, s.target))
        efficiency = linked_pairs / close_pairs * 100 if close_pairs else 100.0

        return CanvasAnalysis(
            board=node.path,
            total_items=len(placed),
            close_pairs=close_pairs,
            linked_pairs=linked_pairs,
            missing_links=missing,
            spatial_efficiency=efficiency,
        )

    def issues(self, analysis: CanvasAnalysis) -> tuple[list[ValidationIssue], list[str]]:
        """Turn a board analysis into issues and suggestion lines."""
        issues: list[ValidationIssue] = []
        lines: list[str] = []

        for s in analysis.missing_links:
            lines.append(
                f"Spatially close but not linked: [[{s.target}]] is {round(s.distance)}px from [[{s.source}]]"
            )
            if s.priority == "high":
                issues.append(
                    ValidationIssue(
                        type="spatial-link",
                        message=f"High-priority spatial link missing: [[{s.target}]] ({round(s.distance)}px)",
                        severity="warning",
                        target=s.target,
                    )
                )

        if analysis.spatial_efficiency < LOW_SPATIAL_EFFICIENCY:
            issues.append(
                ValidationIssue(
                    type="canvas-efficiency",
                    message=(
                        f"Low spatial efficiency: {analysis.spatial_efficiency:.1f}% of nearby nodes are linked"
                    ),
                    severity="warning",
                )
            )

        return issues, lines

    def analyze_all(self, graph: VaultGraph) -> dict[str, CanvasAnalysis | None]:
        """Analyze every canvas in the graph.

        Malformed boards map to None and are logged; they never abort the run.
        """
        results: dict[str, CanvasAnalysis | None] = {}
        for path in graph.paths:
            node = graph.get_node(path)
            if node.kind != "canvas":
                continue
            try:
                results[path] = self.analyze(node, graph)
            except CanvasFormatError as e:
                log.warning("Skipping malformed canvas: %s", e)
                results[path] = None
        return results


def board_summary(raw: Any) -> str:
    """One-line description of raw canvas data, for logs and CLI output."""
    if not isinstance(raw, dict):
        return "no board data"
    items = raw.get("nodes") if isinstance(raw.get("nodes"), list) else []
    edges = raw.get("edges") if isinstance(raw.get("edges"), list) else []
    return f"{len(items)} item(s), {len(edges)} edge(s)"

"""Health scoring and vault-wide report aggregation.

Every node starts at 100 and loses fixed penalties per finding:

- Broken transitive chain: 15
- Missing transitive link: 8 / 5 / 3 by confidence tier
- Missing spatial link: 8 / 4 / 2 by priority
- Low spatial efficiency: 30 / 20 / 10
- Property issues: the penalty attached by the check (10 for errors, 3 for warnings)
- Malformed canvas board: score forced to 0

A structural gap between a source and a target is charged once, at the
highest applicable penalty, even when it is reported both as a broken chain
and as a suggestion.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import datetime

from .config import (
    BROKEN_CHAIN_PENALTY,
    CONNECTIVITY_CONFIDENCE,
    HIGH_CONFIDENCE_LINK_PENALTY,
    LOW_CONFIDENCE_LINK_PENALTY,
    MAX_HEALTH,
    MEDIUM_CONFIDENCE,
    MEDIUM_CONFIDENCE_LINK_PENALTY,
    SPATIAL_EFFICIENCY_PENALTIES,
    SPATIAL_PENALTIES,
    ValidationConfig,
)
from .models import (
    CanvasAnalysis,
    Node,
    NodeHealth,
    Suggestion,
    TransitiveAnalysis,
    ValidationResult,
    VaultReport,
)
from .rules import RuleEngine
from .transitive import rule_effectiveness

# Issue type emitted for a board that could not be parsed
MALFORMED_BOARD = "canvas-parse"

TOP_SUGGESTIONS = 10


def clamp_score(score: float) -> float:
    return max(0.0, min(MAX_HEALTH, score))


class HealthAggregator:
    """Combines analyzer output and property issues into a health score."""

    def __init__(self, config: ValidationConfig | None = None):
        self.config = config or ValidationConfig()

    def suggestion_penalty(self, confidence: float) -> int:
        if confidence >= self.config.high_confidence:
            return HIGH_CONFIDENCE_LINK_PENALTY
        if confidence >= MEDIUM_CONFIDENCE:
            return MEDIUM_CONFIDENCE_LINK_PENALTY
        return LOW_CONFIDENCE_LINK_PENALTY

    def transitive_penalties(self, analysis: TransitiveAnalysis) -> dict[str, int]:
        """Penalty charged per target path, keeping the highest applicable one."""
        charged: dict[str, int] = {}
        for chain in analysis.broken_chains:
            charged[chain.target] = max(charged.get(chain.target, 0), BROKEN_CHAIN_PENALTY)
        for suggestion in analysis.suggestions:
            penalty = self.suggestion_penalty(suggestion.confidence)
            charged[suggestion.target] = max(charged.get(suggestion.target, 0), penalty)
        return charged

    def spatial_penalty(self, analysis: CanvasAnalysis) -> int:
        penalty = sum(SPATIAL_PENALTIES[link.priority] for link in analysis.missing_links)
        for below, cost in SPATIAL_EFFICIENCY_PENALTIES:
            if analysis.spatial_efficiency < below:
                penalty += cost
                break
        return penalty

    def score(self, result: ValidationResult) -> float:
        """Compute a node's health score from its validation result.

        Analyzer issues carry no penalty of their own; their cost is derived
        from the analyses attached to the result.
        """
        if any(issue.type == MALFORMED_BOARD for issue in result.errors):
            return 0.0

        penalty = sum(issue.penalty for issue in result.errors)
        if result.transitive is not None:
            penalty += sum(self.transitive_penalties(result.transitive).values())
        if result.canvas is not None:
            penalty += self.spatial_penalty(result.canvas)
        return clamp_score(MAX_HEALTH - penalty)

    def apply(self, node: Node, result: ValidationResult, validated_at: datetime | None) -> None:
        """Write a finished result into the node's health record."""
        node.health = NodeHealth(
            score=result.health_score,
            issues=[issue.message for issue in result.errors if issue.severity == "error"],
            warnings=[issue.message for issue in result.errors if issue.severity == "warning"],
            last_validated=validated_at,
        )


class ReportBuilder:
    """Reduces per-node results into a VaultReport.

    ``add`` and ``merge`` only sum counters and concatenate lists, so partial
    builders may be combined in any order and produce the same report.

    Args:
        node_count: Number of nodes in the graph (for the connectivity score).
        linked_pairs: Unordered node pairs joined by an explicit link.
        connectivity_confidence: Suggestions at or above this count as links.
    """

    def __init__(
        self,
        node_count: int = 0,
        linked_pairs: Iterable[frozenset[str]] = (),
        connectivity_confidence: float = CONNECTIVITY_CONFIDENCE,
    ):
        self.node_count = node_count
        self.linked_pairs = set(linked_pairs)
        self.connectivity_confidence = connectivity_confidence

        self.total_files = 0
        self.passed_files = 0
        self.total_errors = 0
        self.total_warnings = 0
        self.health_sum = 0.0
        self.issues_by_type: Counter[str] = Counter()
        self.warnings_by_type: Counter[str] = Counter()
        self.suggestions: list[Suggestion] = []

    def add(self, result: ValidationResult) -> "ReportBuilder":
        self.total_files += 1
        if result.passed:
            self.passed_files += 1
        self.total_errors += result.error_count
        self.total_warnings += result.warning_count
        self.health_sum += result.health_score

        for issue in result.errors:
            if issue.severity == "error":
                self.issues_by_type[issue.type] += 1
            elif issue.severity == "warning":
                self.warnings_by_type[issue.type] += 1

        if result.transitive is not None:
            self.suggestions.extend(result.transitive.suggestions)
        return self

    def merge(self, other: "ReportBuilder") -> "ReportBuilder":
        """Fold another partial builder into this one."""
        self.total_files += other.total_files
        self.passed_files += other.passed_files
        self.total_errors += other.total_errors
        self.total_warnings += other.total_warnings
        self.health_sum += other.health_sum
        self.issues_by_type.update(other.issues_by_type)
        self.warnings_by_type.update(other.warnings_by_type)
        self.suggestions.extend(other.suggestions)
        return self

    def connectivity_score(self) -> float:
        """Share of node pairs that are linked or have a high-confidence suggestion.

        A pair counts once however many links or suggestions join it.
        """
        n = self.node_count
        if n < 2:
            return MAX_HEALTH
        possible = n * (n - 1) / 2
        pairs = set(self.linked_pairs)
        pairs.update(
            frozenset((s.source, s.target))
            for s in self.suggestions
            if s.confidence >= self.connectivity_confidence and s.source != s.target
        )
        return min(MAX_HEALTH, len(pairs) / possible * 100)

    def build(self, engine: RuleEngine | None = None) -> VaultReport:
        """Produce the report.

        Args:
            engine: Rule engine whose rules are listed in rule effectiveness.
                Without one, only rules that actually fired are listed.
        """
        ranked = sorted(self.suggestions, key=lambda s: (-s.confidence, s.source, s.target))
        return VaultReport(
            total_files=self.total_files,
            passed_files=self.passed_files,
            total_errors=self.total_errors,
            total_warnings=self.total_warnings,
            average_health=self.health_sum / self.total_files if self.total_files else MAX_HEALTH,
            connectivity_score=self.connectivity_score(),
            issues_by_type=dict(sorted(self.issues_by_type.items())),
            warnings_by_type=dict(sorted(self.warnings_by_type.items())),
            rule_effectiveness=rule_effectiveness(ranked, engine or RuleEngine([])),
            top_suggestions=ranked[:TOP_SUGGESTIONS],
        )

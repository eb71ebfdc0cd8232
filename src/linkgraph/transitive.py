"""Transitive link analysis.

For a source node, walk outward over direct links and look at every
``current -> bridge -> target`` path. A target that shares enough tags with
the source but is not linked from it is a candidate link; the rule engine
turns the candidate into a confidence score.

Separately, every direct two-hop path ``source -> bridge -> target`` meeting
the shared-tag criterion without a direct link is reported as a broken chain.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field

from .config import (
    BASIC_BASE_CONFIDENCE,
    ENHANCED_BASE_CONFIDENCE,
    ValidationConfig,
)
from .graph import VaultGraph
from .models import (
    BrokenChain,
    Node,
    RuleEffectiveness,
    Suggestion,
    TransitiveAnalysis,
    ValidationIssue,
)
from .rules import RuleContext, RuleEngine

log = logging.getLogger(__name__)


@dataclass
class VaultTransitivity:
    """Vault-wide summary of transitive link suggestions."""

    total_missing_links: int = 0
    average_confidence: float = 0.0
    top_suggestions: list[Suggestion] = field(default_factory=list)
    rule_effectiveness: list[RuleEffectiveness] = field(default_factory=list)


def shared_tags(a: Node, b: Node) -> tuple[str, ...]:
    """Sorted intersection of two nodes' tags."""
    return tuple(sorted(a.tags & b.tags))


def format_confidence(confidence: float) -> str:
    return f"{confidence * 100:.0f}%"


class TransitiveLinkAnalyzer:
    """Proposes missing two-hop links and detects broken chains.

    The analyzer only reads the graph; it never mutates nodes.
    """

    def __init__(self, config: ValidationConfig | None = None, engine: RuleEngine | None = None):
        self.config = config or ValidationConfig()
        self.engine = engine or RuleEngine.from_config(self.config)

    @property
    def base_confidence(self) -> float:
        return ENHANCED_BASE_CONFIDENCE if self.config.enable_rules else BASIC_BASE_CONFIDENCE

    def walk(self, source: Node, graph: VaultGraph) -> list[tuple[str, int]]:
        """Breadth-first expansion order from source.

        Returns:
            (path, depth) for each node whose bridges are examined. Depth is
            always below ``max_depth``.
        """
        order: list[tuple[str, int]] = []
        visited: set[str] = set()
        queue: deque[tuple[str, int]] = deque([(source.path, 0)])

        while queue:
            current, depth = queue.popleft()
            if depth >= self.config.max_depth or current in visited:
                continue
            visited.add(current)
            if graph.get_node(current) is None:
                continue
            order.append((current, depth))

            for bridge in graph.direct_neighbors(current):
                queue.append((bridge.path, depth + 1))

        return order

    def find_suggestions(self, source: Node, graph: VaultGraph) -> tuple[list[Suggestion], list[str]]:
        """Find candidate links for a node.

        Returns:
            (suggestions, faulted rule ids). Suggestions are deduplicated by
            target, sorted by descending confidence then target path, and
            capped at the configured limit.
        """
        best: dict[str, Suggestion] = {}
        faults: list[str] = []
        floor = self.config.confidence_floor

        for current, _depth in self.walk(source, graph):
            for bridge in graph.direct_neighbors(current):
                for target in graph.direct_neighbors(bridge.path):
                    if target.path in (source.path, current, bridge.path):
                        continue
                    if source.links_directly_to(target.path):
                        continue

                    tags = shared_tags(source, target)
                    if len(tags) < self.config.min_shared_tags:
                        continue

                    suggestion, faulted = self._score(source, bridge, target, tags)
                    faults.extend(faulted)
                    if suggestion.confidence < floor:
                        continue

                    existing = best.get(target.path)
                    if existing is None or suggestion.confidence > existing.confidence:
                        best[target.path] = suggestion

        ranked = sorted(best.values(), key=lambda s: (-s.confidence, s.target))
        return ranked[: self.config.suggestion_limit], faults

    def _score(
        self, source: Node, via: Node, target: Node, tags: tuple[str, ...]
    ) -> tuple[Suggestion, list[str]]:
        contribution = self.engine.tag_contribution(tags)
        label = "weighted tags" if self.engine.weighted else "shared tags"

        ctx = RuleContext(source=source, target=target, via=via, shared_tags=tags)
        evaluation = self.engine.evaluate(ctx, self.base_confidence + contribution)

        reasons = [f"{label}: {', '.join(tags)}", *evaluation.reasons]
        suggestion = Suggestion(
            source=source.path,
            target=target.path,
            via=via.path,
            reason=", ".join(reasons),
            confidence=evaluation.confidence,
            matched_rule_ids=evaluation.matched_rule_ids,
            rule_deltas=evaluation.rule_deltas,
        )
        return suggestion, evaluation.faulted_rule_ids

    def find_broken_chains(self, source: Node, graph: VaultGraph) -> list[BrokenChain]:
        """Direct two-hop paths that satisfy the shared-tag criterion but lack a link."""
        chains: list[BrokenChain] = []
        seen: set[tuple[str, str]] = set()

        for bridge in graph.direct_neighbors(source.path):
            for target in graph.direct_neighbors(bridge.path):
                if target.path in (source.path, bridge.path):
                    continue
                if source.links_directly_to(target.path):
                    continue
                tags = shared_tags(source, target)
                if len(tags) < self.config.min_shared_tags:
                    continue
                key = (bridge.path, target.path)
                if key in seen:
                    continue
                seen.add(key)
                chains.append(
                    BrokenChain(source=source.path, via=bridge.path, target=target.path, shared_tags=list(tags))
                )

        return chains

    def analyze(self, source: Node, graph: VaultGraph) -> tuple[TransitiveAnalysis, list[str]]:
        """Run suggestion search and broken-chain detection for one node.

        Returns:
            (analysis, faulted rule ids)
        """
        suggestions, faults = self.find_suggestions(source, graph)
        analysis = TransitiveAnalysis(
            path=source.path,
            suggestions=suggestions,
            broken_chains=self.find_broken_chains(source, graph),
        )
        log.debug(
            "%s: %d suggestion(s), %d broken chain(s)",
            source.path,
            len(analysis.suggestions),
            len(analysis.broken_chains),
        )
        return analysis, faults

    def issues(self, analysis: TransitiveAnalysis) -> tuple[list[ValidationIssue], list[str]]:
        """Classify an analysis into issues and human-readable suggestion lines."""
        issues: list[ValidationIssue] = []
        lines: list[str] = []
        thresholds = self.config.thresholds

        for s in analysis.suggestions:
            lines.append(f"Consider linking to [[{s.target}]] via [[{s.via}]] ({s.reason})")
            if s.confidence >= thresholds.error:
                issues.append(
                    ValidationIssue(
                        type="transitive-link-missing",
                        message=(
                            f"High-confidence transitive link missing: [[{s.target}]] "
                            f"({format_confidence(s.confidence)} confidence)"
                        ),
                        severity="error",
                        target=s.target,
                    )
                )
            elif s.confidence >= thresholds.warning:
                issues.append(
                    ValidationIssue(
                        type="transitive-link-suggested",
                        message=(
                            f"Recommended transitive link: [[{s.target}]] "
                            f"({format_confidence(s.confidence)} confidence)"
                        ),
                        severity="warning",
                        target=s.target,
                    )
                )

        for chain in analysis.broken_chains:
            issues.append(
                ValidationIssue(
                    type="broken-transitive-chain",
                    message=f"Broken transitive chain: [[{chain.source}]] → [[{chain.via}]] → [[{chain.target}]]",
                    severity="error",
                    target=chain.target,
                )
            )

        return issues, lines

    def analyze_vault(self, graph: VaultGraph) -> VaultTransitivity:
        """Summarize suggestions across every node in the graph."""
        all_suggestions: list[Suggestion] = []
        for path in graph.paths:
            suggestions, _ = self.find_suggestions(graph.get_node(path), graph)
            all_suggestions.extend(suggestions)

        total = len(all_suggestions)
        average = sum(s.confidence for s in all_suggestions) / total if total else 0.0
        top = sorted(all_suggestions, key=lambda s: (-s.confidence, s.source, s.target))[:10]

        return VaultTransitivity(
            total_missing_links=total,
            average_confidence=average,
            top_suggestions=top,
            rule_effectiveness=rule_effectiveness(all_suggestions, self.engine),
        )


def rule_effectiveness(suggestions: list[Suggestion], engine: RuleEngine) -> list[RuleEffectiveness]:
    """Per-rule trigger counts, average final confidence and average delta.

    Every registered rule is listed, including rules that never fired.
    Sorted by trigger count (descending) then rule id.
    """
    confidences: dict[str, list[float]] = {rule.id: [] for rule in engine.rules}
    deltas: dict[str, list[float]] = {rule.id: [] for rule in engine.rules}
    names = {rule.id: rule.name or rule.id for rule in engine.rules}

    for s in suggestions:
        for rule_id in s.matched_rule_ids:
            confidences.setdefault(rule_id, []).append(s.confidence)
            deltas.setdefault(rule_id, []).append(s.rule_deltas.get(rule_id, 0.0))

    stats = []
    for rule_id, values in confidences.items():
        count = len(values)
        stats.append(
            RuleEffectiveness(
                rule_id=rule_id,
                rule_name=names.get(rule_id, rule_id),
                trigger_count=count,
                average_confidence=sum(values) / count if count else 0.0,
                average_delta=sum(deltas[rule_id]) / count if count else 0.0,
            )
        )
    return sorted(stats, key=lambda r: (-r.trigger_count, r.rule_id))

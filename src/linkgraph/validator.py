"""Validation pipeline: per-node analysis and the concurrent vault pass.

Per node, the transitive analyzer, the spatial analyzer (canvases only) and
the property checks run against a read-only graph snapshot; the health score
is computed once all of them finish. A vault pass fans nodes out over a
bounded pool of worker threads and reduces the results into a report.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from .checks import run_checks
from .config import MAX_HEALTH, ValidationConfig
from .graph import GraphNotBuiltError, VaultGraph
from .health import MALFORMED_BOARD, HealthAggregator, ReportBuilder
from .models import ValidationIssue, ValidationResult, VaultValidation
from .rules import RuleEngine
from .spatial import CanvasFormatError, SpatialProximityAnalyzer
from .transitive import TransitiveLinkAnalyzer

log = logging.getLogger(__name__)


class VaultValidator:
    """Runs every analyzer over a built graph.

    Args:
        config: Validation settings (defaults if omitted).
        engine: Rule engine override; built from the config otherwise.
    """

    def __init__(self, config: ValidationConfig | None = None, engine: RuleEngine | None = None):
        self.config = config or ValidationConfig()
        self.engine = engine or RuleEngine.from_config(self.config)
        self.transitive = TransitiveLinkAnalyzer(self.config, self.engine)
        self.spatial = SpatialProximityAnalyzer(self.config)
        self.health = HealthAggregator(self.config)

    def validate_node(self, graph: VaultGraph, path: str) -> ValidationResult:
        """Validate one node without modifying the graph.

        Raises:
            GraphNotBuiltError: If the graph has pending changes.
            KeyError: If path is not in the graph.
        """
        if not graph.built:
            raise GraphNotBuiltError("Graph has pending changes; call build() first")
        node = graph.get_node(path)
        if node is None:
            raise KeyError(f"Node not found: {path}")

        errors: list[ValidationIssue] = run_checks(node, graph, self.config)
        suggestions: list[str] = []

        analysis, faults = self.transitive.analyze(node, graph)
        issues, lines = self.transitive.issues(analysis)
        errors.extend(issues)
        suggestions.extend(lines)
        for rule_id in sorted(set(faults)):
            errors.append(
                ValidationIssue(
                    type="rule-fault",
                    message=f"Rule {rule_id} failed and was skipped for {faults.count(rule_id)} candidate(s)",
                    severity="warning",
                )
            )

        canvas = None
        if node.kind == "canvas":
            try:
                canvas = self.spatial.analyze(node, graph)
            except CanvasFormatError as e:
                log.warning("Malformed canvas board: %s", e)
                errors.append(
                    ValidationIssue(
                        type=MALFORMED_BOARD,
                        message=f"Could not parse canvas file: {e}",
                        severity="error",
                    )
                )
            else:
                issues, lines = self.spatial.issues(canvas)
                errors.extend(issues)
                suggestions.extend(lines)

        result = ValidationResult(
            path=node.path,
            kind=node.kind,
            errors=errors,
            suggestions=suggestions,
            health_score=MAX_HEALTH,
            transitive=analysis,
            canvas=canvas,
        )
        result.health_score = self.health.score(result)
        return result

    async def validate_paths(self, graph: VaultGraph, paths: Iterable[str]) -> list[ValidationResult]:
        """Validate the given nodes concurrently and record their health.

        Results are returned in the order of ``paths``. Each node's health is
        written by this coroutine after its analyzers finish, never by workers.
        """
        if not graph.built:
            raise GraphNotBuiltError("Graph has pending changes; call build() first")

        semaphore = asyncio.Semaphore(self.config.concurrency)
        validated_at = graph.metadata.last_updated

        async def run(path: str) -> ValidationResult:
            async with semaphore:
                result = await asyncio.to_thread(self.validate_node, graph, path)
            self.health.apply(graph.get_node(path), result, validated_at)
            return result

        return list(await asyncio.gather(*(run(path) for path in paths)))

    async def validate_vault(self, graph: VaultGraph) -> VaultValidation:
        """Validate every node and aggregate a vault report.

        Returns:
            Results ordered by path, the report, and graph metrics.

        Raises:
            GraphNotBuiltError: If the graph has pending changes.
        """
        results = await self.validate_paths(graph, graph.paths)
        graph.metadata.validation_count += 1

        builder = ReportBuilder(
            node_count=len(graph),
            linked_pairs=graph.linked_pairs(),
            connectivity_confidence=self.config.connectivity_confidence,
        )
        for result in results:
            builder.add(result)
        report = builder.build(self.engine)

        log.info(
            "Validated %d node(s): %d passed, %d error(s), %d warning(s)",
            report.total_files,
            report.passed_files,
            report.total_errors,
            report.total_warnings,
        )
        return VaultValidation(results=results, report=report, metrics=graph.metrics())

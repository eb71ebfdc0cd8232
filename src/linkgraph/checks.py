"""Per-node property checks.

Each check inspects one node against the built graph and returns issues with
their health penalty already attached.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from typing import Any

from .config import (
    CONVERGENCE_PEERS_SHOWN,
    MISSING_PROPERTY_PENALTY,
    PROPERTY_WARNING_PENALTY,
    UNRESOLVED_LINK_PENALTY,
    ValidationConfig,
)
from .graph import VaultGraph
from .models import Node, ValidationIssue

Check = Callable[[Node, VaultGraph, ValidationConfig], list[ValidationIssue]]


def _property_value(node: Node, name: str):
    # Tags and aliases are first-class fields but are often listed as required front matter
    if name == "tags":
        return node.tags
    if name == "aliases":
        return node.aliases
    return node.properties.get(name)


def check_required_properties(node: Node, graph: VaultGraph, config: ValidationConfig) -> list[ValidationIssue]:
    if node.kind == "canvas":
        return []
    issues = []
    for name in config.required_properties:
        value = _property_value(node, name)
        if value is None or value == "" or value == [] or value == set():
            issues.append(
                ValidationIssue(
                    type="missing-property",
                    message=f"Missing required field: {name}",
                    severity="error",
                    penalty=MISSING_PROPERTY_PENALTY,
                )
            )
    return issues


def check_unresolved_links(node: Node, graph: VaultGraph, config: ValidationConfig) -> list[ValidationIssue]:
    """Links the parser could not resolve, plus direct links to paths not in the graph."""
    targets = list(node.links.unresolved)
    targets += [t for t in node.links.direct if t not in graph and t not in targets]
    return [
        ValidationIssue(
            type="broken-link",
            message=f"Broken wiki link: [[{target}]]",
            severity="error",
            target=target,
            penalty=UNRESOLVED_LINK_PENALTY,
        )
        for target in targets
    ]


def check_tag_format(node: Node, graph: VaultGraph, config: ValidationConfig) -> list[ValidationIssue]:
    if config.tag_pattern is None:
        return []
    pattern = re.compile(config.tag_pattern)
    return [
        ValidationIssue(
            type="tag-format",
            message=f"Non-standard tag format: {tag}",
            severity="warning",
            penalty=PROPERTY_WARNING_PENALTY,
        )
        for tag in sorted(node.tags)
        if not pattern.match(tag)
    ]


def check_connectivity(node: Node, graph: VaultGraph, config: ValidationConfig) -> list[ValidationIssue]:
    if config.min_direct_links == 0 or node.kind == "dashboard":
        return []
    count = len(node.neighbors.direct)
    if count >= config.min_direct_links:
        return []
    return [
        ValidationIssue(
            type="low-connectivity",
            message=f"Low connectivity: only {count} direct links",
            severity="warning",
            penalty=PROPERTY_WARNING_PENALTY,
        )
    ]


def check_alias_conflicts(node: Node, graph: VaultGraph, config: ValidationConfig) -> list[ValidationIssue]:
    """Aliases claimed by another note, compared case-insensitively.

    With ``alias_filename_conflicts`` on, an alias that matches another note's
    file name is reported as well.
    """
    issues = []
    for peer_path in node.neighbors.alias_peers:
        peer = graph.get_node(peer_path)
        if peer is None:
            continue
        peer_aliases = {alias.casefold() for alias in peer.aliases}
        shared = sorted(alias for alias in node.aliases if alias.casefold() in peer_aliases)
        issues.append(
            ValidationIssue(
                type="alias-conflict",
                message=f"Alias conflict with [[{peer_path}]]: {', '.join(shared)}",
                severity="warning",
                target=peer_path,
                penalty=PROPERTY_WARNING_PENALTY,
            )
        )

    if config.alias_filename_conflicts:
        for alias in sorted(node.aliases):
            for path in graph.paths_named(alias):
                if path == node.path:
                    continue
                issues.append(
                    ValidationIssue(
                        type="alias-filename-conflict",
                        message=f'Alias "{alias}" matches the file name of [[{path}]]',
                        severity="warning",
                        target=path,
                        penalty=PROPERTY_WARNING_PENALTY,
                    )
                )
    return issues


def check_neighbor_convergence(node: Node, graph: VaultGraph, config: ValidationConfig) -> list[ValidationIssue]:
    if config.convergence_tags is None or node.links.direct:
        return []
    peers = []
    for peer_path in node.neighbors.tag_peers:
        peer = graph.get_node(peer_path)
        if peer is not None and len(node.tags & peer.tags) >= config.convergence_tags:
            peers.append(peer_path)
    if not peers:
        return []
    shown = ", ".join(f"[[{p}]]" for p in peers[:CONVERGENCE_PEERS_SHOWN])
    return [
        ValidationIssue(
            type="neighbor-convergence",
            message=f"High tag convergence ({len(peers)} peers) but no outbound links. Consider linking to: {shown}",
            severity="warning",
            penalty=PROPERTY_WARNING_PENALTY,
        )
    ]


def _as_utc(value: Any) -> datetime | None:
    # datetime is a date subclass, so test it first
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str):
        try:
            return _as_utc(datetime.fromisoformat(value.strip()))
        except ValueError:
            return None
    return None


def check_dashboard_freshness(node: Node, graph: VaultGraph, config: ValidationConfig) -> list[ValidationIssue]:
    """Dashboards must have been updated within ``dashboard_max_age_hours``.

    Age is measured against the graph snapshot time so that repeated passes
    over the same snapshot agree.
    """
    if node.kind != "dashboard" or config.dashboard_max_age_hours is None:
        return []
    now = graph.metadata.last_updated or datetime.now(UTC)
    updated = _as_utc(node.properties.updated)
    if updated is None:
        message = "Dashboard stale: no valid updated date"
    else:
        age = now - updated
        if age <= timedelta(hours=config.dashboard_max_age_hours):
            return []
        message = f"Dashboard stale: {int(age.total_seconds() // 3600)}h since last update"
    return [
        ValidationIssue(
            type="dashboard-stale",
            message=message,
            severity="warning",
            penalty=PROPERTY_WARNING_PENALTY,
        )
    ]


DEFAULT_CHECKS: tuple[Check, ...] = (
    check_required_properties,
    check_unresolved_links,
    check_tag_format,
    check_connectivity,
    check_alias_conflicts,
    check_neighbor_convergence,
    check_dashboard_freshness,
)


def run_checks(
    node: Node,
    graph: VaultGraph,
    config: ValidationConfig,
    checks: tuple[Check, ...] = DEFAULT_CHECKS,
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for check in checks:
        issues.extend(check(node, graph, config))
    return issues

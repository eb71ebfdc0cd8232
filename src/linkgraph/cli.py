#!/usr/bin/env python3
"""
lg: CLI for vault link validation

Usage:
    lg validate nodes.json             # Validate every node, print a report
    lg suggest nodes.json notes/a.md   # Transitive link suggestions for one node
    lg canvas nodes.json               # Spatial analysis of canvas boards
    lg metrics nodes.json              # Graph statistics
    lg rules                           # Confidence rules in evaluation order
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click

from . import __version__ as LINKGRAPH_VERSION


def run_async(coro):
    """Run async function synchronously."""
    return asyncio.run(coro)


# ─────────────────────────────────────────────────────────────────────────────
# Output Formatting
# ─────────────────────────────────────────────────────────────────────────────


def format_table(rows: list[dict], columns: list[str], max_widths: dict | None = None) -> str:
    """Format rows as a simple table."""
    if not rows:
        return ""

    max_widths = max_widths or {}

    def cell(row: dict, col: str) -> str:
        val = str(row.get(col, ""))
        limit = max_widths.get(col, 50)
        if len(val) > limit:
            val = val[: limit - 3] + "..."
        return val

    widths = {col: max([len(col)] + [len(cell(row, col)) for row in rows]) for col in columns}

    lines = [
        "  ".join(col.upper().ljust(widths[col]) for col in columns),
        "  ".join("-" * widths[col] for col in columns),
    ]
    for row in rows:
        lines.append("  ".join(cell(row, col).ljust(widths[col]) for col in columns))
    return "\n".join(lines)


def output(data, as_json: bool = False):
    """Output data as JSON or formatted text."""
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(data)


def _handle_error(ctx: click.Context, error: Exception, exit_code: int = 1) -> NoReturn:
    """Print an error (as JSON with --json-errors) and exit."""
    json_errors = ctx.obj.get("json_errors", False) if ctx.obj else False
    if json_errors:
        payload = {"error": {"type": type(error).__name__, "message": str(error)}}
        click.echo(json.dumps(payload), err=True)
    else:
        click.echo(f"Error: {error}", err=True)
    sys.exit(exit_code)


def _percent(confidence: float) -> str:
    return f"{confidence * 100:.0f}%"


# ─────────────────────────────────────────────────────────────────────────────
# Loading
# ─────────────────────────────────────────────────────────────────────────────


def _load_config(ctx: click.Context, config_path: Path | None, **overrides: Any):
    from .config import ConfigurationError, build_config, load_config

    try:
        config = load_config(config_path)
        overrides = {key: value for key, value in overrides.items() if value is not None}
        if overrides:
            data = config.model_dump(exclude={"custom_rules"})
            data.update(overrides)
            config = build_config(**data)
    except ConfigurationError as exc:
        _handle_error(ctx, exc)
    return config


def _load_graph(ctx: click.Context, nodes_file: Path):
    from .loader import LoaderError, load_graph

    try:
        return load_graph(nodes_file)
    except LoaderError as exc:
        _handle_error(ctx, exc)


# ─────────────────────────────────────────────────────────────────────────────
# Command Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=LINKGRAPH_VERSION, prog_name="lg")
@click.option(
    "--json-errors",
    "json_errors",
    is_flag=True,
    help="Output errors as JSON (for programmatic use)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    envvar="LINKGRAPH_QUIET",
    help="Suppress warnings, show only errors and essential output",
)
@click.pass_context
def cli(ctx: click.Context, json_errors: bool, quiet: bool):
    """lg: link validation for knowledge vaults.

    Reads node records produced by a vault parser (JSON or YAML) and reports
    missing transitive links, unlinked canvas neighbors and per-note health.

    \b
    Config is read from --config, LINKGRAPH_CONFIG, or the nearest
    .linkgraph.yaml above the working directory.
    """
    from ._logging import set_quiet_mode

    ctx.ensure_object(dict)
    ctx.obj["json_errors"] = json_errors
    ctx.obj["quiet"] = quiet

    if quiet:
        set_quiet_mode(True)


# ─────────────────────────────────────────────────────────────────────────────
# Validate Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("nodes_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), help="Config file")
@click.option("--concurrency", type=int, help="Nodes validated in parallel")
@click.option("--basic", is_flag=True, help="Use fixed heuristics instead of the rule engine")
@click.option("--export-graph", type=click.Path(dir_okay=False, path_type=Path), help="Write graph JSON here")
@click.option("--strict", is_flag=True, help="Exit 1 if any error-severity issue is found")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def validate(
    ctx: click.Context,
    nodes_file: Path,
    config_path: Path | None,
    concurrency: int | None,
    basic: bool,
    export_graph: Path | None,
    strict: bool,
    as_json: bool,
):
    """Validate every node and print a vault report.

    \b
    Examples:
      lg validate nodes.json
      lg validate nodes.yaml --strict --export-graph graph.json
    """
    from .export import write_export
    from .validator import VaultValidator

    config = _load_config(ctx, config_path, concurrency=concurrency, enable_rules=False if basic else None)
    graph = _load_graph(ctx, nodes_file)

    validation = run_async(VaultValidator(config).validate_vault(graph))
    report = validation.report

    if export_graph:
        write_export(graph, export_graph)

    if as_json:
        output(validation.model_dump(mode="json"), as_json=True)
    else:
        click.echo("Vault Link Report")
        click.echo("=" * 40)
        click.echo(f"Files: {report.total_files} ({report.passed_files} passed)")
        click.echo(f"Errors: {report.total_errors}  Warnings: {report.total_warnings}")
        click.echo(f"Average Health: {report.average_health:.1f}/100")
        click.echo(f"Connectivity: {report.connectivity_score:.1f}%")

        if report.issues_by_type:
            click.echo("\nErrors by type:")
            for issue_type, count in report.issues_by_type.items():
                click.echo(f"  {issue_type}: {count}")
        if report.warnings_by_type:
            click.echo("\nWarnings by type:")
            for issue_type, count in report.warnings_by_type.items():
                click.echo(f"  {issue_type}: {count}")

        failing = [r for r in validation.results if not r.passed]
        if failing:
            click.echo(f"\n⚠ Nodes with errors ({len(failing)}):")
            for result in failing[:10]:
                click.echo(f"  - {result.path} ({result.health_score:.0f}/100)")
                for issue in result.errors:
                    if issue.severity == "error":
                        click.echo(f"      {issue.message}")
        else:
            click.echo("\n✓ No errors")

        if report.top_suggestions:
            click.echo("\nTop suggestions:")
            rows = [
                {"from": s.source, "to": s.target, "via": s.via, "confidence": _percent(s.confidence)}
                for s in report.top_suggestions
            ]
            click.echo(format_table(rows, ["from", "to", "via", "confidence"]))

        if export_graph:
            click.echo(f"\nGraph written to {export_graph}")

    if strict and report.total_errors:
        sys.exit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Suggest Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("nodes_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("path")
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), help="Config file")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def suggest(ctx: click.Context, nodes_file: Path, path: str, config_path: Path | None, as_json: bool):
    """Suggest direct links for one node from its two-hop neighborhood.

    \b
    Examples:
      lg suggest nodes.json notes/architecture.md
    """
    from .transitive import TransitiveLinkAnalyzer

    config = _load_config(ctx, config_path)
    graph = _load_graph(ctx, nodes_file)

    node = graph.get_node(path)
    if node is None:
        _handle_error(ctx, click.BadParameter(f"Node not found: {path}"))

    analysis, _ = TransitiveLinkAnalyzer(config).analyze(node, graph)

    if as_json:
        output(analysis.model_dump(mode="json"), as_json=True)
        return

    if not analysis.suggestions:
        click.echo("No suggestions.")
    for s in analysis.suggestions:
        click.echo(f"[[{s.target}]] via [[{s.via}]] ({s.reason}) - {_percent(s.confidence)} confidence")

    if analysis.broken_chains:
        click.echo(f"\n⚠ Broken chains ({len(analysis.broken_chains)}):")
        for chain in analysis.broken_chains:
            click.echo(f"  - {chain.source} → {chain.via} → {chain.target}")


# ─────────────────────────────────────────────────────────────────────────────
# Canvas Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("nodes_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), help="Config file")
@click.option("--threshold", type=float, help="Proximity threshold in pixels")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def canvas(ctx: click.Context, nodes_file: Path, config_path: Path | None, threshold: float | None, as_json: bool):
    """Find spatially close but unlinked items on canvas boards.

    \b
    Examples:
      lg canvas nodes.json
      lg canvas nodes.json --threshold 200
    """
    from .spatial import SpatialProximityAnalyzer, board_summary

    config = _load_config(ctx, config_path, proximity_threshold_px=threshold)
    graph = _load_graph(ctx, nodes_file)

    analyses = SpatialProximityAnalyzer(config).analyze_all(graph)

    if as_json:
        output(
            {path: a.model_dump(mode="json") if a else None for path, a in analyses.items()},
            as_json=True,
        )
        return

    if not analyses:
        click.echo("No canvas boards found.")
        return

    for path, analysis in analyses.items():
        click.echo(f"\n{path}")
        click.echo("-" * len(path))
        if analysis is None:
            click.echo(f"⚠ Malformed board ({board_summary(graph.get_node(path).canvas)})")
            continue
        click.echo(
            f"Items: {analysis.total_items}  Close pairs: {analysis.close_pairs}  "
            f"Efficiency: {analysis.spatial_efficiency:.1f}%"
        )
        rows = [
            {"from": s.source, "to": s.target, "distance": f"{s.distance:.0f}px", "priority": s.priority}
            for s in analysis.missing_links
        ]
        if rows:
            click.echo(format_table(rows, ["from", "to", "distance", "priority"]))
        else:
            click.echo("✓ All close items are linked")


# ─────────────────────────────────────────────────────────────────────────────
# Metrics Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("nodes_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def metrics(ctx: click.Context, nodes_file: Path, as_json: bool):
    """Show node, edge and orphan statistics.

    \b
    Examples:
      lg metrics nodes.json
    """
    graph = _load_graph(ctx, nodes_file)
    stats = graph.metrics()

    if as_json:
        output(stats.model_dump(), as_json=True)
        return

    click.echo("Graph Metrics")
    click.echo("=" * 40)
    click.echo(f"Nodes: {stats.total_nodes}")
    click.echo(f"Edges: {stats.total_edges}")
    click.echo(f"Orphans: {stats.orphan_count} ({stats.orphan_rate:.1f}%)")
    click.echo(f"Average Degree: {stats.average_degree:.2f}")


# ─────────────────────────────────────────────────────────────────────────────
# Rules Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), help="Config file")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def rules(ctx: click.Context, config_path: Path | None, as_json: bool):
    """List confidence rules in evaluation order.

    \b
    Examples:
      lg rules
      lg rules --config vault/.linkgraph.yaml
    """
    from .rules import RuleEngine

    config = _load_config(ctx, config_path)
    engine = RuleEngine.from_config(config)
    rows = [
        {"id": rule.id, "name": rule.name, "priority": rule.priority, "description": rule.description}
        for rule in engine.rules
    ]

    if as_json:
        output(rows, as_json=True)
    elif rows:
        click.echo(format_table(rows, ["id", "name", "priority", "description"], {"description": 60}))
    else:
        click.echo("No rules configured.")


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def main():
    """Entry point for lg CLI."""
    from ._logging import configure_logging

    configure_logging()
    cli()


if __name__ == "__main__":
    main()

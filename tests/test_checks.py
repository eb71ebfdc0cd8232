"""Tests for per-node property checks."""

from datetime import date

import pytest

from conftest import NOW, build_graph, make_node
from linkgraph.checks import (
    check_alias_conflicts,
    check_connectivity,
    check_dashboard_freshness,
    check_neighbor_convergence,
    check_required_properties,
    check_tag_format,
    check_unresolved_links,
    run_checks,
)
from linkgraph.config import DEFAULT_TAG_PATTERN, ValidationConfig


class TestRequiredProperties:
    def test_missing_and_empty_fields(self) -> None:
        node = make_node("a.md", title="A", type="")
        graph = build_graph(node)
        config = ValidationConfig(required_properties=["title", "type", "created", "tags"])

        issues = check_required_properties(node, graph, config)

        assert [i.message for i in issues] == [
            "Missing required field: type",
            "Missing required field: created",
            "Missing required field: tags",
        ]
        assert all(i.severity == "error" and i.penalty == 10 for i in issues)

    def test_extra_properties_and_tags_count(self) -> None:
        node = make_node("a.md", tags=["x"], status="draft")
        config = ValidationConfig(required_properties=["status", "tags"])
        assert check_required_properties(node, build_graph(node), config) == []

    def test_canvases_are_exempt(self) -> None:
        node = make_node("board.canvas", kind="canvas", canvas={"nodes": []})
        config = ValidationConfig(required_properties=["title"])
        assert check_required_properties(node, build_graph(node), config) == []


class TestUnresolvedLinks:
    def test_parser_and_graph_misses(self) -> None:
        node = make_node("a.md", links=["b.md", "gone.md"], unresolved=["Missing Note"])
        graph = build_graph(node, make_node("b.md"))

        issues = check_unresolved_links(node, graph, ValidationConfig())

        assert [i.target for i in issues] == ["Missing Note", "gone.md"]
        assert issues[0].message == "Broken wiki link: [[Missing Note]]"
        assert all(i.type == "broken-link" and i.penalty == 10 for i in issues)


class TestTagFormat:
    def test_non_kebab_tags_warned(self) -> None:
        node = make_node("a.md", tags=["good-tag", "Bad Tag", "snake_case"])
        issues = check_tag_format(node, build_graph(node), ValidationConfig(tag_pattern=DEFAULT_TAG_PATTERN))

        assert [i.message for i in issues] == ["Non-standard tag format: Bad Tag", "Non-standard tag format: snake_case"]
        assert all(i.severity == "warning" and i.penalty == 3 for i in issues)

    def test_disabled_by_default(self) -> None:
        node = make_node("a.md", tags=["Anything Goes"])
        assert check_tag_format(node, build_graph(node), ValidationConfig()) == []


class TestConnectivity:
    def test_disabled_by_default(self) -> None:
        node = make_node("a.md")
        assert check_connectivity(node, build_graph(node), ValidationConfig()) == []

    def test_low_link_count_warned(self) -> None:
        graph = build_graph(make_node("a.md", links=["b.md"]), make_node("b.md"))
        node = graph.get_node("a.md")

        issues = check_connectivity(node, graph, ValidationConfig(min_direct_links=2))

        assert [i.message for i in issues] == ["Low connectivity: only 1 direct links"]

    def test_dashboards_exempt(self) -> None:
        node = make_node("00 - Dashboard.md", kind="dashboard")
        assert check_connectivity(node, build_graph(node), ValidationConfig(min_direct_links=3)) == []


class TestAliasConflicts:
    def test_shared_alias_warned_from_both_sides(self) -> None:
        graph = build_graph(make_node("a.md", aliases=["intro"]), make_node("b.md", aliases=["intro"]))

        a_issues = check_alias_conflicts(graph.get_node("a.md"), graph, ValidationConfig())
        b_issues = check_alias_conflicts(graph.get_node("b.md"), graph, ValidationConfig())

        assert [i.target for i in a_issues] == ["b.md"]
        assert [i.target for i in b_issues] == ["a.md"]
        assert a_issues[0].message == "Alias conflict with [[b.md]]: intro"

    def test_aliases_compared_case_insensitively(self) -> None:
        graph = build_graph(make_node("a.md", aliases=["Intro"]), make_node("b.md", aliases=["intro"]))

        issues = check_alias_conflicts(graph.get_node("a.md"), graph, ValidationConfig())

        assert [i.message for i in issues] == ["Alias conflict with [[b.md]]: Intro"]

    def test_alias_matching_another_file_name(self) -> None:
        graph = build_graph(make_node("a.md", aliases=["Roadmap"]), make_node("projects/roadmap.md"))

        issues = check_alias_conflicts(graph.get_node("a.md"), graph, ValidationConfig())

        assert [i.type for i in issues] == ["alias-filename-conflict"]
        assert issues[0].target == "projects/roadmap.md"
        assert issues[0].message == 'Alias "Roadmap" matches the file name of [[projects/roadmap.md]]'

    def test_own_file_name_is_not_a_conflict(self) -> None:
        graph = build_graph(make_node("notes/intro.md", aliases=["intro"]))
        assert check_alias_conflicts(graph.get_node("notes/intro.md"), graph, ValidationConfig()) == []

    def test_file_name_check_can_be_disabled(self) -> None:
        graph = build_graph(make_node("a.md", aliases=["b"]), make_node("b.md"))
        config = ValidationConfig(alias_filename_conflicts=False)
        assert check_alias_conflicts(graph.get_node("a.md"), graph, config) == []


class TestNeighborConvergence:
    def test_unlinked_note_with_close_tag_peers_warned(self) -> None:
        graph = build_graph(
            make_node("a.md", tags=["x", "y", "z"]),
            make_node("b.md", tags=["x", "y", "z", "w"]),
            make_node("c.md", tags=["x", "y"]),
        )

        issues = check_neighbor_convergence(graph.get_node("a.md"), graph, ValidationConfig())

        assert [i.message for i in issues] == [
            "High tag convergence (1 peers) but no outbound links. Consider linking to: [[b.md]]"
        ]
        assert issues[0].severity == "warning" and issues[0].penalty == 3

    def test_linked_note_not_warned(self) -> None:
        graph = build_graph(
            make_node("a.md", tags=["x", "y", "z"], links=["c.md"]),
            make_node("b.md", tags=["x", "y", "z"]),
            make_node("c.md"),
        )
        assert check_neighbor_convergence(graph.get_node("a.md"), graph, ValidationConfig()) == []

    def test_lists_at_most_three_peers(self) -> None:
        tags = ["x", "y", "z"]
        graph = build_graph(*(make_node(f"{name}.md", tags=tags) for name in "abcde"))

        [issue] = check_neighbor_convergence(graph.get_node("a.md"), graph, ValidationConfig())

        assert issue.message.endswith("(4 peers) but no outbound links. Consider linking to: [[b.md]], [[c.md]], [[d.md]]")

    def test_threshold_and_disable(self) -> None:
        graph = build_graph(make_node("a.md", tags=["x", "y"]), make_node("b.md", tags=["x", "y"]))
        node = graph.get_node("a.md")

        assert check_neighbor_convergence(node, graph, ValidationConfig()) == []
        assert len(check_neighbor_convergence(node, graph, ValidationConfig(convergence_tags=2))) == 1
        assert check_neighbor_convergence(node, graph, ValidationConfig(convergence_tags=None)) == []


class TestDashboardFreshness:
    def test_recent_dashboard_passes(self) -> None:
        node = make_node("00 - Dashboard.md", kind="dashboard", updated="2026-01-15T06:00:00+00:00")
        assert check_dashboard_freshness(node, build_graph(node), ValidationConfig()) == []

    def test_stale_dashboard_warned(self) -> None:
        node = make_node("00 - Dashboard.md", kind="dashboard", updated=date(2026, 1, 13))
        graph = build_graph(node)
        assert graph.metadata.last_updated == NOW

        issues = check_dashboard_freshness(node, graph, ValidationConfig())

        assert [i.message for i in issues] == ["Dashboard stale: 60h since last update"]
        assert issues[0].type == "dashboard-stale" and issues[0].penalty == 3

    @pytest.mark.parametrize("properties", [{}, {"updated": "last week"}])
    def test_missing_or_unreadable_date_is_stale(self, properties: dict) -> None:
        node = make_node("00 - Dashboard.md", kind="dashboard", **properties)
        issues = check_dashboard_freshness(node, build_graph(node), ValidationConfig())
        assert [i.message for i in issues] == ["Dashboard stale: no valid updated date"]

    def test_max_age_is_configurable(self) -> None:
        node = make_node("00 - Dashboard.md", kind="dashboard", updated=date(2026, 1, 13))
        graph = build_graph(node)

        assert check_dashboard_freshness(node, graph, ValidationConfig(dashboard_max_age_hours=72)) == []
        assert check_dashboard_freshness(node, graph, ValidationConfig(dashboard_max_age_hours=None)) == []

    def test_notes_exempt(self) -> None:
        node = make_node("a.md", updated=date(2020, 1, 1))
        assert check_dashboard_freshness(node, build_graph(node), ValidationConfig()) == []


def test_run_checks_concatenates_in_order() -> None:
    node = make_node("a.md", tags=["Bad"], unresolved=["x"])
    graph = build_graph(node)
    config = ValidationConfig(required_properties=["title"], tag_pattern=DEFAULT_TAG_PATTERN)

    assert [i.type for i in run_checks(node, graph, config)] == ["missing-property", "broken-link", "tag-format"]

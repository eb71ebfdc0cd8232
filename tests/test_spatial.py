"""Tests for canvas spatial proximity analysis."""

import pytest

from conftest import build_graph, canvas_item, make_node
from linkgraph.config import ValidationConfig
from linkgraph.models import CanvasItem
from linkgraph.spatial import CanvasFormatError, SpatialProximityAnalyzer, board_summary, parse_board


def _board(*items: dict, edges: list[dict] | None = None):
    return make_node("board.canvas", kind="canvas", canvas={"nodes": list(items), "edges": edges or []})


class TestParseBoard:
    def test_parses_json_canvas(self) -> None:
        board = parse_board(
            _board(
                canvas_item("1", "a.md", 0, 0),
                canvas_item("2", None, 10, 10),
                edges=[{"id": "e1", "fromNode": "1", "fromSide": "right", "toNode": "2", "toSide": "left"}],
            )
        )
        assert [item.item_id for item in board.file_items()] == ["1"]
        assert board.items[0].linked_node_path == "a.md"
        assert board.edges[0].from_side == "right"

    def test_missing_data_raises(self) -> None:
        with pytest.raises(CanvasFormatError):
            parse_board(make_node("board.canvas", kind="canvas"))

    @pytest.mark.parametrize(
        "canvas",
        [
            {"nodes": [{"id": "1", "type": "file", "file": "a.md"}]},  # no coordinates
            {"nodes": [canvas_item("1", "a.md", 0, 0), canvas_item("1", "b.md", 5, 5)]},  # duplicate id
            {"nodes": [canvas_item("1", "a.md", 0, 0)], "edges": [{"id": "e", "fromNode": "1", "toNode": "9"}]},
            {"nodes": "not a list"},
        ],
    )
    def test_malformed_data_raises(self, canvas: dict) -> None:
        with pytest.raises(CanvasFormatError):
            parse_board(make_node("board.canvas", kind="canvas", canvas=canvas))

    @pytest.mark.parametrize("canvas", [[canvas_item("1", "a.md", 0, 0)], "board", 7])
    def test_non_object_data_raises(self, canvas) -> None:
        with pytest.raises(CanvasFormatError, match="must be an object"):
            parse_board(make_node("board.canvas", kind="canvas", canvas=canvas))


class TestScoring:
    def test_close_pair_with_shared_tag_and_same_kind_is_high(self) -> None:
        graph = build_graph(
            _board(canvas_item("1", "a.md", 0, 0), canvas_item("2", "b.md", 50, 0)),
            make_node("a.md", tags=["shared", "only-a"]),
            make_node("b.md", tags=["shared", "only-b"]),
        )
        analysis = SpatialProximityAnalyzer().analyze(graph.get_node("board.canvas"), graph)

        assert analysis.close_pairs == 1
        assert analysis.linked_pairs == 0
        [link] = analysis.missing_links
        assert link.distance == pytest.approx(50.0)
        # 3 (distance < 100) + 1 shared tag + 1 same kind
        assert link.score == 5
        assert link.priority == "high"
        assert link.reason == "very close proximity, shared tags: shared, same type: note"

    @pytest.mark.parametrize(
        ("points", "priority"),
        [(7, "high"), (5, "high"), (4, "medium"), (3, "medium"), (2, "low"), (1, "low")],
    )
    def test_priority_bands(self, points: int, priority: str) -> None:
        assert SpatialProximityAnalyzer.priority(points) == priority

    def test_distance_bands_and_large_items(self) -> None:
        analyzer = SpatialProximityAnalyzer()
        a, b = make_node("a.md"), make_node("b.md", kind="template")
        small = CanvasItem(id="1", x=0, y=0, width=10, height=10)

        assert analyzer.score(small, small, a, b, 150) == 2
        assert analyzer.score(small, small, a, b, 250) == 1
        large = CanvasItem(id="2", x=0, y=0, width=400, height=300)
        assert analyzer.score(small, large, a, b, 250) == 2

    def test_min_item_size_controls_large_bonus(self) -> None:
        a, b = make_node("a.md"), make_node("b.md", kind="template")
        item = CanvasItem(id="1", x=0, y=0, width=40, height=40)  # area 1600

        assert SpatialProximityAnalyzer().score(item, item, a, b, 250) == 2
        assert SpatialProximityAnalyzer(ValidationConfig(min_item_size=500)).score(item, item, a, b, 250) == 1


class TestAnalyze:
    def test_linked_pair_counts_toward_efficiency(self) -> None:
        graph = build_graph(
            _board(canvas_item("1", "a.md", 0, 0), canvas_item("2", "b.md", 120, 0)),
            make_node("a.md"),
            make_node("b.md", links=["a.md"]),
        )
        analysis = SpatialProximityAnalyzer().analyze(graph.get_node("board.canvas"), graph)

        assert analysis.close_pairs == 1
        assert analysis.linked_pairs == 1
        assert analysis.missing_links == []
        assert analysis.spatial_efficiency == 100.0

    def test_board_edge_counts_as_link(self) -> None:
        graph = build_graph(
            _board(
                canvas_item("1", "a.md", 0, 0),
                canvas_item("2", "b.md", 120, 0),
                edges=[{"id": "e1", "fromNode": "2", "toNode": "1"}],
            ),
            make_node("a.md"),
            make_node("b.md"),
        )
        analysis = SpatialProximityAnalyzer().analyze(graph.get_node("board.canvas"), graph)
        assert analysis.linked_pairs == 1

    def test_distant_items_are_ignored(self) -> None:
        graph = build_graph(
            _board(canvas_item("1", "a.md", 0, 0), canvas_item("2", "b.md", 300, 0)),
            make_node("a.md"),
            make_node("b.md"),
        )
        analysis = SpatialProximityAnalyzer().analyze(graph.get_node("board.canvas"), graph)

        assert analysis.close_pairs == 0
        assert analysis.spatial_efficiency == 100.0

    def test_threshold_is_configurable(self) -> None:
        graph = build_graph(
            _board(canvas_item("1", "a.md", 0, 0), canvas_item("2", "b.md", 250, 0)),
            make_node("a.md"),
            make_node("b.md"),
        )
        node = graph.get_node("board.canvas")

        assert SpatialProximityAnalyzer().analyze(node, graph).close_pairs == 1
        config = ValidationConfig(proximity_threshold_px=200)
        assert SpatialProximityAnalyzer(config).analyze(node, graph).close_pairs == 0

    def test_unknown_files_and_text_items_skipped(self) -> None:
        graph = build_graph(
            _board(
                canvas_item("1", "a.md", 0, 0),
                canvas_item("2", "missing.md", 10, 0),
                canvas_item("3", None, 20, 0),
            ),
            make_node("a.md"),
        )
        analysis = SpatialProximityAnalyzer().analyze(graph.get_node("board.canvas"), graph)

        assert analysis.total_items == 1
        assert analysis.close_pairs == 0

    def test_missing_links_sorted_by_distance(self) -> None:
        graph = build_graph(
            _board(
                canvas_item("1", "a.md", 0, 0),
                canvas_item("2", "b.md", 0, 250),
                canvas_item("3", "c.md", 60, 0),
            ),
            make_node("a.md"),
            make_node("b.md"),
            make_node("c.md"),
        )
        analysis = SpatialProximityAnalyzer().analyze(graph.get_node("board.canvas"), graph)

        distances = [link.distance for link in analysis.missing_links]
        assert distances == sorted(distances)
        assert len(distances) == 3


class TestIssues:
    def test_high_priority_and_low_efficiency_warnings(self) -> None:
        graph = build_graph(
            _board(canvas_item("1", "a.md", 0, 0), canvas_item("2", "b.md", 50, 0)),
            make_node("a.md", tags=["shared"]),
            make_node("b.md", tags=["shared"]),
        )
        analyzer = SpatialProximityAnalyzer()
        issues, lines = analyzer.issues(analyzer.analyze(graph.get_node("board.canvas"), graph))

        assert sorted(i.type for i in issues) == ["canvas-efficiency", "spatial-link"]
        assert all(i.severity == "warning" for i in issues)
        assert lines == ["Spatially close but not linked: [[b.md]] is 50px from [[a.md]]"]

    def test_analyze_all_tolerates_malformed_boards(self) -> None:
        graph = build_graph(
            _board(canvas_item("1", "a.md", 0, 0)),
            make_node("broken.canvas", kind="canvas", canvas={"nodes": [{"id": "x"}]}),
            make_node("a.md"),
        )
        results = SpatialProximityAnalyzer().analyze_all(graph)

        assert set(results) == {"board.canvas", "broken.canvas"}
        assert results["broken.canvas"] is None
        assert results["board.canvas"].total_items == 1

    def test_board_summary(self) -> None:
        assert board_summary({"nodes": [{}, {}], "edges": [{}]}) == "2 item(s), 1 edge(s)"
        assert board_summary(None) == "no board data"

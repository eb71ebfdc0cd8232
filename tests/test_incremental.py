"""Tests for incremental re-validation and change coalescing."""

import asyncio

import pytest

from conftest import NOW, build_graph, make_node
from linkgraph.graph import VaultGraph
from linkgraph.incremental import ChangeCoalescer, IncrementalValidator
from linkgraph.models import Node
from linkgraph.validator import VaultValidator


class TestIncrementalValidator:
    @pytest.mark.asyncio
    async def test_validate_all_builds_graph(self, chain_nodes: list[Node]) -> None:
        graph = VaultGraph(chain_nodes)
        incremental = IncrementalValidator(graph)

        results = await incremental.validate_all()

        assert graph.built
        assert [r.path for r in results] == ["a.md", "b.md", "c.md"]
        assert set(incremental.results) == {"a.md", "b.md", "c.md"}
        assert graph.metadata.validation_count == 1

    @pytest.mark.asyncio
    async def test_adding_link_resolves_suggestion(self, chain_graph: VaultGraph) -> None:
        incremental = IncrementalValidator(chain_graph)
        await incremental.validate_all()
        assert incremental.results["a.md"].health_score == 85.0

        fixed = make_node("a.md", tags=["x", "y"], links=["b.md", "c.md"])
        results = await incremental.apply_changes([fixed])

        assert [r.path for r in results] == ["a.md", "b.md", "c.md"]
        assert incremental.results["a.md"].health_score == 100.0
        assert incremental.results["a.md"].transitive.suggestions == []
        assert chain_graph.metadata.validation_count == 2
        assert chain_graph.metadata.version == 2

    @pytest.mark.asyncio
    async def test_removal_drops_result_and_flags_backlinks(self, chain_graph: VaultGraph) -> None:
        incremental = IncrementalValidator(chain_graph)
        await incremental.validate_all()

        results = await incremental.apply_changes(removed=["c.md"])

        assert "c.md" not in incremental.results
        assert [r.path for r in results] == ["a.md", "b.md"]
        b = incremental.results["b.md"]
        assert [i.type for i in b.errors] == ["broken-link"]
        assert b.health_score == 90.0

    @pytest.mark.asyncio
    async def test_affected_results_match_full_validation(self, chain_graph: VaultGraph) -> None:
        incremental = IncrementalValidator(chain_graph)
        await incremental.validate_all()
        changed = make_node("c.md", tags=["x", "y"], links=["d.md"])
        new = make_node("d.md", tags=["x", "y"])

        results = await incremental.apply_changes([changed, new])

        fresh = build_graph(
            make_node("a.md", tags=["x", "y"], links=["b.md"]),
            make_node("b.md", tags=["x"], links=["c.md"]),
            make_node("c.md", tags=["x", "y"], links=["d.md"]),
            make_node("d.md", tags=["x", "y"]),
        )
        expected = {r.path: r for r in (await VaultValidator().validate_vault(fresh)).results}
        for result in results:
            assert result == expected[result.path]

    @pytest.mark.asyncio
    async def test_report_covers_latest_results(self, chain_graph: VaultGraph) -> None:
        incremental = IncrementalValidator(chain_graph)
        await incremental.validate_all()
        await incremental.apply_changes([make_node("a.md", tags=["x", "y"], links=["b.md", "c.md"])])

        report = incremental.report()

        assert report.total_files == 3
        assert report.passed_files == 3
        assert report.average_health == 100.0

    @pytest.mark.asyncio
    async def test_health_timestamp_follows_snapshot(self, chain_graph: VaultGraph) -> None:
        incremental = IncrementalValidator(chain_graph)
        await incremental.validate_all()
        assert chain_graph.get_node("b.md").health.last_validated == NOW

        await incremental.apply_changes([make_node("c.md", tags=["x"])])
        assert chain_graph.get_node("b.md").health.last_validated == chain_graph.metadata.last_updated
        assert chain_graph.metadata.last_updated != NOW


class TestChangeCoalescer:
    @pytest.fixture
    def calls(self) -> list[tuple[list[str], set[str]]]:
        return []

    @pytest.fixture
    def coalescer(self, calls) -> ChangeCoalescer:
        async def record(changed: list[Node], removed: set[str]) -> None:
            calls.append(([n.path for n in changed], removed))

        return ChangeCoalescer(record, debounce_seconds=0.05)

    @pytest.mark.asyncio
    async def test_burst_flushed_once(self, coalescer: ChangeCoalescer, calls) -> None:
        coalescer.submit(make_node("b.md"))
        coalescer.submit(make_node("a.md"))
        coalescer.submit(make_node("b.md", tags=["new"]))
        assert coalescer.pending == 2

        await asyncio.sleep(0.2)

        assert calls == [(["a.md", "b.md"], set())]
        assert coalescer.pending == 0

    @pytest.mark.asyncio
    async def test_each_submit_restarts_timer(self, calls) -> None:
        async def record(changed: list[Node], removed: set[str]) -> None:
            calls.append(([n.path for n in changed], removed))

        coalescer = ChangeCoalescer(record, debounce_seconds=0.2)
        coalescer.submit(make_node("a.md"))
        await asyncio.sleep(0.1)
        coalescer.submit(make_node("b.md"))
        await asyncio.sleep(0.1)

        assert calls == []
        await asyncio.sleep(0.3)
        assert calls == [(["a.md", "b.md"], set())]

    @pytest.mark.asyncio
    async def test_removal_supersedes_change(self, coalescer: ChangeCoalescer, calls) -> None:
        coalescer.submit(make_node("a.md"))
        coalescer.submit_removal("a.md")
        await coalescer.drain()

        assert calls == [([], {"a.md"})]

    @pytest.mark.asyncio
    async def test_change_after_removal_wins(self, coalescer: ChangeCoalescer, calls) -> None:
        coalescer.submit_removal("a.md")
        coalescer.submit(make_node("a.md"))
        await coalescer.drain()

        assert calls == [(["a.md"], set())]

    @pytest.mark.asyncio
    async def test_cancel_drops_pending(self, coalescer: ChangeCoalescer, calls) -> None:
        coalescer.submit(make_node("a.md"))
        coalescer.cancel()
        await asyncio.sleep(0.1)

        assert calls == []
        assert coalescer.flush() is None

    @pytest.mark.asyncio
    async def test_drives_incremental_validator(self, chain_graph: VaultGraph) -> None:
        incremental = IncrementalValidator(chain_graph)
        await incremental.validate_all()
        coalescer = ChangeCoalescer(incremental.apply_changes, debounce_seconds=0.01)

        coalescer.submit(make_node("a.md", tags=["x", "y"], links=["b.md", "c.md"]))
        await coalescer.drain()

        assert incremental.results["a.md"].health_score == 100.0

"""Incremental re-validation after document changes.

A change to one node can only alter the findings of that node and its
one-hop neighborhood, so only those are re-validated. Bursts of changes are
coalesced by ``ChangeCoalescer`` and applied once the burst goes quiet.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from .config import DEFAULT_DEBOUNCE_SECONDS
from .graph import VaultGraph
from .health import ReportBuilder
from .models import Node, ValidationResult, VaultReport
from .validator import VaultValidator

log = logging.getLogger(__name__)


class IncrementalValidator:
    """Keeps per-node results current as nodes change.

    Args:
        graph: The vault graph; built on first use if needed.
        validator: Validator to run (defaults to one with default config).
    """

    def __init__(self, graph: VaultGraph, validator: VaultValidator | None = None):
        self.graph = graph
        self.validator = validator or VaultValidator()
        self.results: dict[str, ValidationResult] = {}

    async def validate_all(self) -> list[ValidationResult]:
        """Full pass; establishes the baseline that later changes update."""
        if not self.graph.built:
            self.graph.build()
        results = await self.validator.validate_paths(self.graph, self.graph.paths)
        self.graph.metadata.validation_count += 1
        self.results = {result.path: result for result in results}
        return results

    async def apply_changes(
        self,
        changed: Iterable[Node] = (),
        removed: Iterable[str] = (),
    ) -> list[ValidationResult]:
        """Update the graph and re-validate the affected neighborhood.

        Args:
            changed: New or updated nodes.
            removed: Paths of deleted nodes.

        Returns:
            Fresh results for the affected nodes, ordered by path.
        """
        removed = list(removed)
        affected = self.graph.refresh(changed, removed)

        for path in removed:
            self.results.pop(path, None)

        results = await self.validator.validate_paths(self.graph, sorted(affected))
        self.graph.metadata.validation_count += 1
        for result in results:
            self.results[result.path] = result

        log.info("Re-validated %d node(s) after change", len(results))
        return results

    def report(self) -> VaultReport:
        """Vault report over the latest result of every node."""
        builder = ReportBuilder(
            node_count=len(self.graph),
            linked_pairs=self.graph.linked_pairs(),
            connectivity_confidence=self.validator.config.connectivity_confidence,
        )
        for path in sorted(self.results):
            builder.add(self.results[path])
        return builder.build(self.validator.engine)


ChangeCallback = Callable[[list[Node], set[str]], Awaitable[Any]]


class ChangeCoalescer:
    """Debounces node changes and hands them over in one batch.

    Every submission restarts the quiet-period timer. When it expires, the
    latest version of each changed node and the set of removed paths are
    passed to the callback.
    """

    def __init__(self, callback: ChangeCallback, debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS):
        """Initialize the coalescer.

        Args:
            callback: Coroutine function called with (changed nodes, removed paths).
            debounce_seconds: Quiet period before the batch is flushed.
        """
        self._callback = callback
        self._debounce_seconds = debounce_seconds
        self._changed: dict[str, Node] = {}
        self._removed: set[str] = set()
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._changed) + len(self._removed)

    def submit(self, node: Node) -> None:
        """Record a new or updated node."""
        self._removed.discard(node.path)
        self._changed[node.path] = node
        self._schedule()

    def submit_removal(self, path: str) -> None:
        """Record a deleted node."""
        self._changed.pop(path, None)
        self._removed.add(path)
        self._schedule()

    def _schedule(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce_seconds, self.flush)

    def flush(self) -> asyncio.Task | None:
        """Hand pending changes to the callback now.

        Returns:
            The callback task, or None if nothing was pending.
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not self.pending:
            return None

        changed = [self._changed[path] for path in sorted(self._changed)]
        removed = set(self._removed)
        self._changed.clear()
        self._removed.clear()

        log.debug("Flushing %d changed and %d removed node(s)", len(changed), len(removed))
        task = asyncio.get_running_loop().create_task(self._callback(changed, removed))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Flush immediately and wait for every outstanding callback."""
        self.flush()
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    def cancel(self) -> None:
        """Drop pending changes without calling back."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._changed.clear()
        self._removed.clear()

"""Confidence rules for transitive link suggestions.

A rule inspects a candidate (source, bridge, target) triple and, when it
matches, adjusts the running confidence. Rules run in descending priority and
compose sequentially: each rule receives the confidence produced by the
previous one. A rule that raises is skipped for that candidate only.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .config import (
    DEFAULT_TAG_WEIGHT,
    HIGH_CONNECTIVITY_DEGREE,
    TAG_CONTRIBUTION,
    RuleSpec,
    ValidationConfig,
)
from .models import Node

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleContext:
    """The candidate a rule is asked about."""

    source: Node
    target: Node
    via: Node
    shared_tags: tuple[str, ...]


@dataclass
class Evaluation:
    """Outcome of running the rule set over one candidate."""

    confidence: float
    reasons: list[str] = field(default_factory=list)
    matched_rule_ids: list[str] = field(default_factory=list)
    rule_deltas: dict[str, float] = field(default_factory=dict)
    faulted_rule_ids: list[str] = field(default_factory=list)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class Rule:
    """Base class for confidence rules.

    Subclasses set ``id``, ``name`` and ``priority`` and override ``matches``;
    ``adjust`` and ``describe`` have usable defaults.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    priority: int = 0

    def matches(self, ctx: RuleContext) -> bool:
        raise NotImplementedError

    def adjust(self, confidence: float, ctx: RuleContext) -> float:
        return confidence

    def describe(self, ctx: RuleContext) -> str:
        return self.name or self.id

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, priority={self.priority})"


class BoostRule(Rule):
    """A rule that adds a fixed amount when it matches."""

    def __init__(self, boost: float, priority: int | None = None):
        self.boost = boost
        if priority is not None:
            self.priority = priority

    def adjust(self, confidence: float, ctx: RuleContext) -> float:
        return confidence + self.boost


class SameKindRule(BoostRule):
    id = "same-type-boost"
    name = "Same Type Boost"
    description = "Boost confidence for nodes of the same kind"
    priority = 1

    def matches(self, ctx: RuleContext) -> bool:
        return ctx.source.kind == ctx.target.kind

    def describe(self, ctx: RuleContext) -> str:
        return f"same type: {ctx.source.kind}"


class SameGroupRule(BoostRule):
    id = "same-folder-boost"
    name = "Same Folder Boost"
    description = "Boost confidence for nodes under the same top-level folder"
    priority = 2

    def matches(self, ctx: RuleContext) -> bool:
        return ctx.source.top_level_group == ctx.target.top_level_group

    def describe(self, ctx: RuleContext) -> str:
        return "same folder structure"


class ConnectedBridgeRule(Rule):
    """Boost when the bridge node is a hub.

    With ``boost`` set the increment is fixed; otherwise it scales with the
    bridge's degree (``per_neighbor`` each, capped at ``cap``).
    """

    id = "high-connectivity-via"
    name = "High Connectivity Via Node"
    description = "Boost confidence when the via node is highly connected"
    priority = 3

    def __init__(
        self,
        boost: float | None = None,
        per_neighbor: float = 0.02,
        cap: float = 0.2,
        min_degree: int = HIGH_CONNECTIVITY_DEGREE,
        priority: int | None = None,
    ):
        self.boost = boost
        self.per_neighbor = per_neighbor
        self.cap = cap
        self.min_degree = min_degree
        if priority is not None:
            self.priority = priority

    def matches(self, ctx: RuleContext) -> bool:
        return len(ctx.via.neighbors.direct) > self.min_degree

    def adjust(self, confidence: float, ctx: RuleContext) -> float:
        if self.boost is not None:
            return confidence + self.boost
        return confidence + min(self.cap, len(ctx.via.neighbors.direct) * self.per_neighbor)

    def describe(self, ctx: RuleContext) -> str:
        return f"via node [[{ctx.via.name}]] is highly connected"


class BidirectionalBridgeRule(BoostRule):
    id = "bidirectional-boost"
    name = "Bidirectional Link Boost"
    description = "Boost confidence when the via node links back to both source and target"
    priority = 4

    def matches(self, ctx: RuleContext) -> bool:
        return ctx.via.links_directly_to(ctx.source.path) and ctx.via.links_directly_to(ctx.target.path)

    def describe(self, ctx: RuleContext) -> str:
        return "strong bidirectional relationship via intermediate node"


class SharedTagRule(BoostRule):
    """Declarative rule: boost when the shared tags include any listed tag."""

    def __init__(self, spec: RuleSpec):
        super().__init__(boost=spec.boost, priority=spec.priority)
        self.id = spec.id
        self.name = spec.name or spec.id
        self.description = spec.description
        self.tags = set(spec.values)

    def matches(self, ctx: RuleContext) -> bool:
        return any(tag in self.tags for tag in ctx.shared_tags)

    def describe(self, ctx: RuleContext) -> str:
        matched = [tag for tag in ctx.shared_tags if tag in self.tags]
        return f"{self.name.lower()}: {', '.join(matched)}"


class NameSeriesRule(BoostRule):
    """Declarative rule: boost when both file names share a listed keyword."""

    def __init__(self, spec: RuleSpec):
        super().__init__(boost=spec.boost, priority=spec.priority)
        self.id = spec.id
        self.name = spec.name or spec.id
        self.description = spec.description
        self.keywords = [value.lower() for value in spec.values]

    def matches(self, ctx: RuleContext) -> bool:
        source_name = ctx.source.name.lower()
        target_name = ctx.target.name.lower()
        return any(kw in source_name and kw in target_name for kw in self.keywords)

    def describe(self, ctx: RuleContext) -> str:
        return "part of documentation series"


def default_rules() -> list[Rule]:
    """Built-in rules for enhanced mode, used when the caller supplies none."""
    return [
        SameKindRule(boost=0.15),
        SameGroupRule(boost=0.2),
        ConnectedBridgeRule(),
        BidirectionalBridgeRule(boost=0.25),
    ]


def basic_rules() -> list[Rule]:
    """Fixed heuristics of basic mode, expressed as rules."""
    return [
        SameKindRule(boost=0.1),
        SameGroupRule(boost=0.15),
        ConnectedBridgeRule(boost=0.1),
        BidirectionalBridgeRule(boost=0.1),
    ]


def rules_from_specs(specs: Iterable[RuleSpec]) -> list[Rule]:
    rules: list[Rule] = []
    for spec in specs:
        if spec.kind == "tag-boost":
            rules.append(SharedTagRule(spec))
        else:
            rules.append(NameSeriesRule(spec))
    return rules


class RuleEngine:
    """Ordered rule set plus tag-weight table."""

    def __init__(
        self,
        rules: Sequence[Rule] | None = None,
        tag_weights: dict[str, float] | None = None,
        weighted: bool = True,
    ):
        self._rules: list[Rule] = []
        self._weights = dict(tag_weights or {})
        self.weighted = weighted
        self._faults = 0
        self._faults_lock = threading.Lock()
        for rule in rules if rules is not None else default_rules():
            self.add_rule(rule)

    @classmethod
    def from_config(cls, config: ValidationConfig) -> "RuleEngine":
        """Build the engine for a config's analysis mode."""
        if not config.enable_rules:
            return cls(basic_rules(), weighted=False)

        supplied = list(config.custom_rules) + rules_from_specs(config.rule_specs)
        return cls(
            supplied or default_rules(),
            tag_weights=config.tag_weight_map(),
            weighted=config.enable_tag_weighting,
        )

    @property
    def rules(self) -> list[Rule]:
        return list(self._rules)

    @property
    def faults(self) -> int:
        """Number of rule failures since the engine was created."""
        return self._faults

    def get_rule(self, rule_id: str) -> Rule | None:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    def add_rule(self, rule: Rule) -> None:
        """Insert a rule, keeping descending priority order (stable for ties)."""
        if self.get_rule(rule.id) is not None:
            raise ValueError(f"Rule already registered: {rule.id}")
        self._rules.append(rule)
        self._rules.sort(key=lambda r: r.priority, reverse=True)

    def remove_rule(self, rule_id: str) -> bool:
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                del self._rules[index]
                return True
        return False

    def set_tag_weights(self, weights: dict[str, float]) -> None:
        self._weights = dict(weights)

    def tag_contribution(self, shared_tags: Sequence[str]) -> float:
        """Confidence contributed by shared tags."""
        if not self.weighted:
            return len(shared_tags) * TAG_CONTRIBUTION
        return sum(self._weights.get(tag, DEFAULT_TAG_WEIGHT) * TAG_CONTRIBUTION for tag in shared_tags)

    def evaluate(self, ctx: RuleContext, base: float) -> Evaluation:
        """Run every rule over a candidate, starting from ``base`` confidence."""
        result = Evaluation(confidence=clamp(base))

        for rule in self._rules:
            try:
                if not rule.matches(ctx):
                    continue
                adjusted = float(rule.adjust(result.confidence, ctx))
                if not math.isfinite(adjusted):
                    raise ValueError(f"non-finite confidence {adjusted!r}")
                reason = rule.describe(ctx)
            except Exception as e:
                log.warning(
                    "Rule %s failed for %s -> %s, skipping: %s",
                    rule.id,
                    ctx.source.path,
                    ctx.target.path,
                    e,
                )
                result.faulted_rule_ids.append(rule.id)
                with self._faults_lock:
                    self._faults += 1
                continue

            new_confidence = clamp(adjusted)
            result.rule_deltas[rule.id] = new_confidence - result.confidence
            result.confidence = new_confidence
            result.matched_rule_ids.append(rule.id)
            if reason:
                result.reasons.append(reason)

        return result

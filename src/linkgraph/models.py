"""Pydantic models for the vault link graph."""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

NodeKind = Literal["note", "canvas", "dashboard", "template"]
EdgeKind = Literal["wiki", "backlink", "tag-peer", "canvas-peer"]
Severity = Literal["error", "warning", "info"]
Priority = Literal["high", "medium", "low"]
CanvasSide = Literal["top", "right", "bottom", "left"]

_SCALAR_TYPES = (str, int, float, bool, date, datetime)


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, _SCALAR_TYPES)


class NodeProperties(BaseModel):
    """Structured front-matter metadata.

    Well-known keys are explicit fields. Any other key is accepted as long as
    its value is a scalar or a flat list of scalars.
    """

    model_config = ConfigDict(extra="allow")

    title: str | None = None
    type: str | None = None
    created: datetime | date | str | None = None
    updated: datetime | date | str | None = None
    author: str | None = None
    template: str | None = None

    @model_validator(mode="after")
    def _check_extra_values(self) -> "NodeProperties":
        for key, value in (self.model_extra or {}).items():
            if isinstance(value, list):
                if not all(_is_scalar(item) for item in value):
                    raise ValueError(f"property '{key}' must be a flat list of scalars")
            elif not _is_scalar(value):
                raise ValueError(f"property '{key}' must be a scalar or list of scalars")
        return self

    def get(self, key: str) -> Any:
        """Look up a property by name, explicit or extra."""
        if key in type(self).model_fields:
            return getattr(self, key)
        return (self.model_extra or {}).get(key)


class OutboundLinks(BaseModel):
    """Link targets declared by a node, partitioned by link syntax."""

    direct: list[str] = Field(default_factory=list)  # [[target]]
    block: list[str] = Field(default_factory=list)  # [[target#^block]]
    heading: list[str] = Field(default_factory=list)  # [[target#heading]]
    embed: list[str] = Field(default_factory=list)  # ![[target]]
    unresolved: list[str] = Field(default_factory=list)  # targets the parser could not resolve


class Neighbors(BaseModel):
    """Derived neighbor taxonomy, recomputed on every graph build.

    Entries are node paths; resolve them with ``VaultGraph.get_node``.
    """

    direct: list[str] = Field(default_factory=list)
    backlink: list[str] = Field(default_factory=list)
    tag_peers: list[str] = Field(default_factory=list)
    alias_peers: list[str] = Field(default_factory=list)
    canvas_peers: list[str] = Field(default_factory=list)


class NodeHealth(BaseModel):
    """Health of a node as of its last validation pass."""

    score: float = Field(default=100.0, ge=0.0, le=100.0)
    issues: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    last_validated: datetime | None = None


class Node(BaseModel):
    """A document or canvas in the vault."""

    path: str = Field(min_length=1)
    kind: NodeKind = "note"
    tags: set[str] = Field(default_factory=set)
    aliases: set[str] = Field(default_factory=set)
    properties: NodeProperties = Field(default_factory=NodeProperties)
    links: OutboundLinks = Field(default_factory=OutboundLinks)
    canvas: Any = None  # raw JSON Canvas document for kind == "canvas", checked when the board is parsed
    neighbors: Neighbors = Field(default_factory=Neighbors)
    health: NodeHealth = Field(default_factory=NodeHealth)

    @property
    def name(self) -> str:
        """File name without folders."""
        return self.path.rsplit("/", 1)[-1]

    @property
    def stem(self) -> str:
        """File name without folders or extension."""
        return self.name.rsplit(".", 1)[0] if "." in self.name else self.name

    @property
    def top_level_group(self) -> str:
        """First folder of the path, or "" for files at the vault root."""
        if "/" not in self.path:
            return ""
        return self.path.split("/", 1)[0]

    @property
    def label(self) -> str:
        return self.properties.title or self.path

    def links_directly_to(self, path: str) -> bool:
        return path in self.links.direct


class Edge(BaseModel):
    """A directed, typed, weighted relation between two nodes."""

    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    kind: EdgeKind
    weight: float = Field(default=1.0, ge=0.0, le=1.0)


class GraphMetadata(BaseModel):
    """Bookkeeping for a graph snapshot."""

    last_updated: datetime | None = None
    version: int = 0
    validation_count: int = 0


class GraphMetrics(BaseModel):
    """Structural statistics for a built graph."""

    total_nodes: int
    total_edges: int
    orphan_count: int
    orphan_rate: float  # percentage of nodes
    average_degree: float


# ─────────────────────────────────────────────────────────────────────────────
# Canvas boards (JSON Canvas format)
# ─────────────────────────────────────────────────────────────────────────────


class CanvasItem(BaseModel):
    """An item placed on a canvas board."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    item_id: str = Field(alias="id", min_length=1)
    type: str = "file"  # file | text | link | group
    linked_node_path: str | None = Field(default=None, alias="file")
    x: float
    y: float
    width: float = Field(default=0.0, ge=0.0)
    height: float = Field(default=0.0, ge=0.0)

    @property
    def is_file_backed(self) -> bool:
        return self.type == "file" and bool(self.linked_node_path)

    @property
    def area(self) -> float:
        return self.width * self.height


class CanvasEdge(BaseModel):
    """An explicit connector between two canvas items."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    edge_id: str = Field(alias="id")
    from_item: str = Field(alias="fromNode")
    to_item: str = Field(alias="toNode")
    from_side: CanvasSide | None = Field(default=None, alias="fromSide")
    to_side: CanvasSide | None = Field(default=None, alias="toSide")


class CanvasBoard(BaseModel):
    """Parsed canvas contents: placed items and the connectors between them."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    items: list[CanvasItem] = Field(default_factory=list, alias="nodes")
    edges: list[CanvasEdge] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> "CanvasBoard":
        ids = [item.item_id for item in self.items]
        if len(ids) != len(set(ids)):
            raise ValueError("canvas item ids must be unique")
        known = set(ids)
        for edge in self.edges:
            if edge.from_item not in known or edge.to_item not in known:
                raise ValueError(f"canvas edge {edge.edge_id} references an unknown item")
        return self

    def file_items(self) -> list[CanvasItem]:
        return [item for item in self.items if item.is_file_backed]


# ─────────────────────────────────────────────────────────────────────────────
# Analyzer output
# ─────────────────────────────────────────────────────────────────────────────


class Suggestion(BaseModel):
    """A proposed direct link justified by a two-hop path."""

    source: str
    target: str
    via: str
    reason: str
    confidence: float = Field(ge=0.0, le=1.0)
    matched_rule_ids: list[str] = Field(default_factory=list)
    rule_deltas: dict[str, float] = Field(default_factory=dict)  # rule id -> confidence change


class BrokenChain(BaseModel):
    """A two-hop path that meets the shared-tag criterion without a direct link."""

    source: str
    via: str
    target: str
    shared_tags: list[str] = Field(default_factory=list)


class SpatialSuggestion(BaseModel):
    """Two canvas items placed close together whose notes are not linked."""

    board: str
    source: str
    target: str
    distance: float
    reason: str
    priority: Priority
    score: int


class CanvasAnalysis(BaseModel):
    """Spatial analysis of a single canvas board."""

    board: str
    total_items: int
    close_pairs: int
    linked_pairs: int
    missing_links: list[SpatialSuggestion] = Field(default_factory=list)
    spatial_efficiency: float  # percentage of close pairs that are linked


class TransitiveAnalysis(BaseModel):
    """Transitive analysis of a single node."""

    path: str
    suggestions: list[Suggestion] = Field(default_factory=list)
    broken_chains: list[BrokenChain] = Field(default_factory=list)


class ValidationIssue(BaseModel):
    """A single error, warning, or informational finding."""

    type: str
    message: str
    severity: Severity
    target: str | None = None  # related node path, when the issue concerns a pair
    penalty: int = 0


class ValidationResult(BaseModel):
    """Per-node validation outcome."""

    path: str
    kind: NodeKind
    errors: list[ValidationIssue] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    health_score: float = Field(ge=0.0, le=100.0)
    transitive: TransitiveAnalysis | None = None
    canvas: CanvasAnalysis | None = None

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.errors if issue.severity == "error")

    @property
    def warning_count(self) -> int:
        return sum(1 for issue in self.errors if issue.severity == "warning")

    @property
    def passed(self) -> bool:
        return self.error_count == 0


class RuleEffectiveness(BaseModel):
    """How often a rule fired and what it contributed, for tuning."""

    rule_id: str
    rule_name: str
    trigger_count: int
    average_confidence: float  # mean final confidence of suggestions it matched
    average_delta: float  # mean confidence change the rule itself applied


class VaultReport(BaseModel):
    """Vault-wide aggregation of per-node results."""

    total_files: int = 0
    passed_files: int = 0
    total_errors: int = 0
    total_warnings: int = 0
    average_health: float = 100.0
    connectivity_score: float = 100.0
    issues_by_type: dict[str, int] = Field(default_factory=dict)
    warnings_by_type: dict[str, int] = Field(default_factory=dict)
    rule_effectiveness: list[RuleEffectiveness] = Field(default_factory=list)
    top_suggestions: list[Suggestion] = Field(default_factory=list)


class VaultValidation(BaseModel):
    """Results of a full validation pass."""

    results: list[ValidationResult] = Field(default_factory=list)
    report: VaultReport = Field(default_factory=VaultReport)
    metrics: GraphMetrics | None = None


# ─────────────────────────────────────────────────────────────────────────────
# Graph export
# ─────────────────────────────────────────────────────────────────────────────


class ExportNode(BaseModel):
    id: str
    label: str
    kind: NodeKind
    tags: list[str] = Field(default_factory=list)
    health: float
    neighbors: Neighbors


class ExportEdge(BaseModel):
    source: str
    target: str
    kind: EdgeKind


class GraphExport(BaseModel):
    """Serializable graph for external visualization tools."""

    metadata: dict[str, Any] = Field(default_factory=dict)
    nodes: list[ExportNode] = Field(default_factory=list)
    edges: list[ExportEdge] = Field(default_factory=list)

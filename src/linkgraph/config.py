"""Configuration management for linkgraph.

This module contains all tunable constants for link validation and the
``ValidationConfig`` model consumed by the analyzers. Magic numbers are
documented here rather than scattered throughout the codebase.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


class ConfigurationError(ValueError):
    """Raised when validation settings are missing or invalid."""

    pass


# =============================================================================
# Transitive Link Analysis
# =============================================================================

# Minimum number of tags a source and a two-hop target must share before a
# direct link is expected between them.
DEFAULT_MIN_SHARED_TAGS = 2

# Maximum BFS depth from the source node. Depth 1 only considers bridges that
# the source links directly; depth 2 also walks one hop further.
DEFAULT_MAX_DEPTH = 2

# Starting confidence for a candidate before tag and rule contributions.
# Basic mode uses fixed heuristics, so it starts higher than the rule-driven mode.
BASIC_BASE_CONFIDENCE = 0.5
ENHANCED_BASE_CONFIDENCE = 0.3

# Each shared tag adds this much confidence (scaled by the tag weight when
# weighting is enabled). Unknown tags have weight 1.0.
TAG_CONTRIBUTION = 0.1
DEFAULT_TAG_WEIGHT = 1.0

# Candidates below this confidence are never reported in basic mode.
BASIC_CONFIDENCE_FLOOR = 0.5

# Default floor for rule-driven mode (configurable via min_confidence).
DEFAULT_MIN_CONFIDENCE = 0.5

# Maximum suggestions kept per node.
BASIC_MAX_SUGGESTIONS = 5
ENHANCED_MAX_SUGGESTIONS = 10

# Classification thresholds for surviving suggestions.
DEFAULT_WARNING_THRESHOLD = 0.7
DEFAULT_ERROR_THRESHOLD = 0.9

# Suggestions at or above this confidence count as "high confidence" for the
# health penalty tiers; 0.6 separates the medium tier from the low tier.
HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.6

# Suggestions at or above this confidence count as links when computing the
# vault connectivity score.
CONNECTIVITY_CONFIDENCE = 0.7

# A bridge node with more direct neighbors than this is "highly connected".
HIGH_CONNECTIVITY_DEGREE = 5


# =============================================================================
# Spatial Proximity (canvas boards)
# =============================================================================

# Items closer than this (in canvas pixels) are considered spatially related.
DEFAULT_PROXIMITY_THRESHOLD_PX = 300.0

# Item area above MIN_ITEM_SIZE * LARGE_ITEM_FACTOR counts as a large item.
DEFAULT_MIN_ITEM_SIZE = 50.0
LARGE_ITEM_FACTOR = 10

# Distance bands for the spatial point score.
VERY_CLOSE_PX = 100.0
CLOSE_PX = 200.0

# Point score cut-offs for missing spatial link priority.
HIGH_PRIORITY_SCORE = 5
MEDIUM_PRIORITY_SCORE = 3

# Boards where fewer than this percentage of close pairs are linked get a warning.
LOW_SPATIAL_EFFICIENCY = 50.0


# =============================================================================
# Health Scoring
# =============================================================================

MAX_HEALTH = 100.0

# Transitive penalties
BROKEN_CHAIN_PENALTY = 15
HIGH_CONFIDENCE_LINK_PENALTY = 8
MEDIUM_CONFIDENCE_LINK_PENALTY = 5
LOW_CONFIDENCE_LINK_PENALTY = 3

# Spatial penalties by priority
SPATIAL_PENALTIES: dict[str, int] = {"high": 8, "medium": 4, "low": 2}

# Spatial efficiency penalties: (efficiency below, penalty), checked in order
SPATIAL_EFFICIENCY_PENALTIES: tuple[tuple[float, int], ...] = ((30.0, 30), (50.0, 20), (70.0, 10))

# Property check penalties
MISSING_PROPERTY_PENALTY = 10
UNRESOLVED_LINK_PENALTY = 10
PROPERTY_WARNING_PENALTY = 3

# Kebab-case tag convention, enforced only when tag_pattern is set
DEFAULT_TAG_PATTERN = r"^[a-z0-9-]+$"

# A note sharing at least this many tags with a peer is expected to link out.
DEFAULT_CONVERGENCE_TAGS = 3

# Peers named in a convergence warning.
CONVERGENCE_PEERS_SHOWN = 3

# Dashboards whose "updated" property is older than this are stale.
DEFAULT_DASHBOARD_MAX_AGE_HOURS = 24.0


# =============================================================================
# Execution
# =============================================================================

# Number of nodes validated concurrently during a vault pass.
DEFAULT_CONCURRENCY = 8

# Quiet period before coalesced document changes trigger re-validation.
DEFAULT_DEBOUNCE_SECONDS = 2.0

# Config file discovered by walking up from the working directory.
CONFIG_FILENAME = ".linkgraph.yaml"

# Maximum directories to walk up when discovering the config file.
MAX_CONFIG_SEARCH_DEPTH = 10


# =============================================================================
# Validation Config
# =============================================================================


class TagWeight(BaseModel):
    """Relative importance of a tag when scoring shared tags."""

    tag: str
    weight: float = Field(default=DEFAULT_TAG_WEIGHT, ge=0.0)
    category: str | None = None


class Thresholds(BaseModel):
    """Confidence thresholds for classifying suggestions."""

    warning: float = Field(default=DEFAULT_WARNING_THRESHOLD, ge=0.0, le=1.0)
    error: float = Field(default=DEFAULT_ERROR_THRESHOLD, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_order(self) -> "Thresholds":
        if self.warning > self.error:
            raise ValueError(
                f"warning threshold ({self.warning}) must not exceed error threshold ({self.error})"
            )
        return self


class RuleSpec(BaseModel):
    """A declarative confidence rule that can be written in YAML.

    ``tag-boost`` matches when the shared tags include any of ``values``.
    ``name-series`` matches when both file names contain the same keyword from ``values``.
    """

    id: str
    kind: Literal["tag-boost", "name-series"]
    name: str | None = None
    description: str = ""
    priority: int = 0
    boost: float = Field(default=0.1, ge=-1.0, le=1.0)
    values: list[str] = Field(min_length=1)


class ValidationConfig(BaseModel):
    """Settings consumed by the analyzers and the health aggregator.

    Invalid values are rejected when the config is constructed, before any
    traversal begins.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    min_shared_tags: int = Field(default=DEFAULT_MIN_SHARED_TAGS, ge=1)
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1)
    tag_weights: list[TagWeight] = Field(default_factory=list)
    enable_rules: bool = True
    enable_tag_weighting: bool = True
    custom_rules: list[Any] = Field(default_factory=list)
    rule_specs: list[RuleSpec] = Field(default_factory=list)
    thresholds: Thresholds = Field(default_factory=Thresholds)
    min_confidence: float = Field(default=DEFAULT_MIN_CONFIDENCE, ge=0.0, le=1.0)
    max_suggestions: int | None = Field(default=None, ge=1)
    high_confidence: float = Field(default=HIGH_CONFIDENCE, ge=0.0, le=1.0)
    connectivity_confidence: float = Field(default=CONNECTIVITY_CONFIDENCE, ge=0.0, le=1.0)
    proximity_threshold_px: float = Field(default=DEFAULT_PROXIMITY_THRESHOLD_PX, gt=0.0)
    min_item_size: float = Field(default=DEFAULT_MIN_ITEM_SIZE, ge=0.0)
    required_properties: list[str] = Field(default_factory=list)
    tag_pattern: str | None = None
    min_direct_links: int = Field(default=0, ge=0)
    convergence_tags: int | None = Field(default=DEFAULT_CONVERGENCE_TAGS, ge=1)
    dashboard_max_age_hours: float | None = Field(default=DEFAULT_DASHBOARD_MAX_AGE_HOURS, gt=0.0)
    alias_filename_conflicts: bool = True
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)
    debounce_seconds: float = Field(default=DEFAULT_DEBOUNCE_SECONDS, ge=0.0)

    @field_validator("custom_rules")
    @classmethod
    def _check_rules(cls, rules: list[Any]) -> list[Any]:
        for rule in rules:
            for attr in ("matches", "adjust", "describe"):
                if not callable(getattr(rule, attr, None)):
                    raise ValueError(f"custom rule {rule!r} has no callable '{attr}'")
            rule_id = getattr(rule, "id", None)
            if not rule_id or not isinstance(getattr(rule, "priority", None), int):
                raise ValueError(f"custom rule {rule!r} needs an id and an integer priority")
        return rules

    @field_validator("tag_pattern")
    @classmethod
    def _check_pattern(cls, pattern: str | None) -> str | None:
        if pattern is not None:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid tag_pattern: {e}") from e
        return pattern

    @model_validator(mode="after")
    def _check_rule_ids(self) -> "ValidationConfig":
        # Custom rules and rule specs register into a single engine
        seen: set[str] = set()
        for rule_id in [rule.id for rule in self.custom_rules] + [spec.id for spec in self.rule_specs]:
            if rule_id in seen:
                raise ValueError(f"duplicate rule id: {rule_id}")
            seen.add(rule_id)
        return self

    @property
    def suggestion_limit(self) -> int:
        """Per-node suggestion cap, defaulting by analysis mode."""
        if self.max_suggestions is not None:
            return self.max_suggestions
        return ENHANCED_MAX_SUGGESTIONS if self.enable_rules else BASIC_MAX_SUGGESTIONS

    @property
    def confidence_floor(self) -> float:
        """Lowest confidence a suggestion may have and still be reported."""
        return self.min_confidence if self.enable_rules else BASIC_CONFIDENCE_FLOOR

    def tag_weight_map(self) -> dict[str, float]:
        return {tw.tag: tw.weight for tw in self.tag_weights}


def build_config(**overrides: Any) -> ValidationConfig:
    """Build a validation config, converting schema errors to ConfigurationError.

    Args:
        **overrides: Field values for ValidationConfig.

    Returns:
        The validated config.

    Raises:
        ConfigurationError: If any value is invalid (e.g. max_depth < 1).
    """
    try:
        return ValidationConfig(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid validation config: {e}") from e


def _discover_config_file(start_dir: Path | None = None, max_depth: int = MAX_CONFIG_SEARCH_DEPTH) -> Path | None:
    """Walk up from start_dir looking for a .linkgraph.yaml file.

    Args:
        start_dir: Directory to start from (defaults to cwd)
        max_depth: Maximum directories to traverse up

    Returns:
        Path to the config file if found, None otherwise.
    """
    current = Path(start_dir or os.getcwd()).resolve()

    for _ in range(max_depth):
        config_file = current / CONFIG_FILENAME
        if config_file.is_file():
            return config_file

        parent = current.parent
        if parent == current:  # Reached filesystem root
            break
        current = parent

    return None


def load_config(path: Path | None = None, start_dir: Path | None = None) -> ValidationConfig:
    """Load validation settings from YAML.

    Discovery order:
    1. Explicit ``path`` argument
    2. LINKGRAPH_CONFIG environment variable
    3. Walk up from cwd (or start_dir) looking for .linkgraph.yaml
    4. Built-in defaults

    Raises:
        ConfigurationError: If the file is unreadable, not a mapping, or holds invalid values.
    """
    if path is None:
        env_path = os.environ.get("LINKGRAPH_CONFIG")
        path = Path(env_path) if env_path else _discover_config_file(start_dir)

    if path is None:
        return ValidationConfig()

    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping, got {type(data).__name__}")

    # Rule objects can only be supplied from code
    if "custom_rules" in data:
        raise ConfigurationError("custom_rules cannot be set from a config file; use rule_specs")

    return build_config(**data)

"""Link validation for knowledge vaults: transitive and spatial link analysis."""

__version__ = "0.1.0"

from .config import ConfigurationError, ValidationConfig, build_config, load_config
from .graph import GraphNotBuiltError, VaultGraph
from .health import HealthAggregator, ReportBuilder
from .incremental import ChangeCoalescer, IncrementalValidator
from .models import Node, Suggestion, ValidationResult, VaultReport
from .rules import Rule, RuleContext, RuleEngine
from .spatial import CanvasFormatError, SpatialProximityAnalyzer
from .transitive import TransitiveLinkAnalyzer
from .validator import VaultValidator

__all__ = [
    "__version__",
    "CanvasFormatError",
    "ChangeCoalescer",
    "ConfigurationError",
    "GraphNotBuiltError",
    "HealthAggregator",
    "IncrementalValidator",
    "Node",
    "ReportBuilder",
    "Rule",
    "RuleContext",
    "RuleEngine",
    "SpatialProximityAnalyzer",
    "Suggestion",
    "TransitiveLinkAnalyzer",
    "ValidationConfig",
    "ValidationResult",
    "VaultGraph",
    "VaultReport",
    "VaultValidator",
    "build_config",
    "load_config",
]

"""
Event Routing Module

Resolves a destination for each CloudEvent:
- YAML routing configuration with full validation
- Wildcard source/type patterns and content conditions
- Priority-ordered route selection with a fallback policy
- Atomic configuration swap and timed reload
"""

from .engine import RouteMatchEngine, match_pattern
from .loader import (
    RoutingConfigError,
    load_routing_config,
    load_routing_config_file,
    parse_routing_document,
    validate_routing_config,
)
from .models import (
    FallbackBehavior,
    HttpDestination,
    QueueDestination,
    ResolutionOutcome,
    Route,
    RouteCondition,
    RouteResolution,
    RoutingConfig,
    RoutingSettings,
)
from .table import ConfigurationNotLoadedError, NoRouteMatchedError, RoutingError, RoutingTable

__all__ = [
    "RouteMatchEngine",
    "match_pattern",
    "RoutingConfigError",
    "load_routing_config",
    "load_routing_config_file",
    "parse_routing_document",
    "validate_routing_config",
    "FallbackBehavior",
    "HttpDestination",
    "QueueDestination",
    "ResolutionOutcome",
    "Route",
    "RouteCondition",
    "RouteResolution",
    "RoutingConfig",
    "RoutingSettings",
    "ConfigurationNotLoadedError",
    "NoRouteMatchedError",
    "RoutingError",
    "RoutingTable",
]

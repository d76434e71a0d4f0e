"""
Event Transformation Module

Reshapes CloudEvents into destination-specific JSON documents:
- Path expressions for reading and writing JSON trees
- Fixed registry of value converters
- Field mapping executor with required/default handling
- Rule loading and TTL-cached rule store
- Output JSON Schema validation
"""

from .functions import TransformError, TRANSFORM_NAMES, apply_transform, get_transform
from .loader import load_rules
from .mapper import apply_mappings, validate_mapping
from .models import (
    FieldMapping,
    MappingResult,
    RuleCacheEntry,
    RuleLoadResult,
    RuleMatchResult,
    TransformationResult,
    TransformationRule,
)
from .paths import MISSING, PathExpression, PathSyntaxError, get_value, parse_path, set_value
from .schema import OutputSchemaValidator, SchemaLoadError
from .store import RuleStore
from .transformer import EventTransformer

__all__ = [
    "TransformError",
    "TRANSFORM_NAMES",
    "apply_transform",
    "get_transform",
    "load_rules",
    "apply_mappings",
    "validate_mapping",
    "FieldMapping",
    "MappingResult",
    "RuleCacheEntry",
    "RuleLoadResult",
    "RuleMatchResult",
    "TransformationResult",
    "TransformationRule",
    "MISSING",
    "PathExpression",
    "PathSyntaxError",
    "get_value",
    "parse_path",
    "set_value",
    "OutputSchemaValidator",
    "SchemaLoadError",
    "RuleStore",
    "EventTransformer",
]

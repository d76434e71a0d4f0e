"""Field mapping executor: builds an output document from path-addressed mappings."""
from typing import Any, Iterable
import structlog
from .functions import TransformError, apply_transform, TRANSFORMS
from .models import FieldMapping, MappingResult
from .paths import MISSING, PathSyntaxError, ROOT, parse_path

log = structlog.get_logger()


def apply_mappings(source_document: Any, mappings: Iterable[FieldMapping]) -> MappingResult:
    """
    Apply field mappings in order.

    Errors are accumulated per mapping and never stop the batch; ``data``
    holds every field that was written even when the result is unsuccessful.

    Args:
        source_document: JSON-like tree to read from (usually the event)
        mappings: Ordered field mappings

    Returns:
        MappingResult with success flag, output data and error messages
    """
    errors: list[str] = []
    result: dict[str, Any] = {}

    for mapping in mappings:
        try:
            value = parse_path(mapping.source).get(source_document)

            if value is MISSING and mapping.required:
                errors.append(f"Required field missing: {mapping.source} -> {mapping.target}")
                continue

            if value is MISSING and mapping.has_default:
                value = mapping.default_value

            if mapping.transform and value is not MISSING:
                try:
                    value = apply_transform(value, mapping.transform)
                except TransformError as e:
                    errors.append(f"Transformation failed for {mapping.target}: {e}")
                    continue

            if value is not MISSING:
                parse_path(mapping.target).set(result, value)
        except PathSyntaxError as e:
            errors.append(f"Mapping failed for {mapping.source} -> {mapping.target}: {e}")

    if errors:
        log.debug("mapping.errors", error_count=len(errors), errors=errors)

    return MappingResult(
        success=not errors,
        data=result,
        errors=errors or None,
    )


def validate_mapping(mapping: FieldMapping) -> str | None:
    """
    Check a mapping's paths and transform name.

    Returns:
        Error message, or None if the mapping is valid
    """
    if not mapping.source:
        return "Mapping source is required"
    if not mapping.target:
        return "Mapping target is required"
    if not mapping.source.startswith(ROOT):
        return f"Source path must start with {ROOT}"
    if not mapping.target.startswith(ROOT):
        return f"Target path must start with {ROOT}"

    try:
        parse_path(mapping.source)
        target = parse_path(mapping.target)
    except PathSyntaxError as e:
        return str(e)

    if target.is_root:
        return "Target path cannot be the root"
    if mapping.transform and mapping.transform not in TRANSFORMS:
        return f"Unknown transformation function: {mapping.transform}"
    return None

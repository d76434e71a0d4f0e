"""
Routing configuration loading and validation.

The routing document is YAML with three top-level sections: ``metadata``,
``settings`` and ``routes``. Validation never raises; it collects every
problem found so operators can fix a document in one pass.
"""
from pathlib import Path
from typing import Any
from pydantic import ValidationError
import structlog
import yaml
from .models import FallbackBehavior, RouteStrategy, RoutingConfig

log = structlog.get_logger()

DESTINATION_TYPES = ("http", "queue")
FALLBACK_BEHAVIORS = tuple(b.value for b in FallbackBehavior)
ROUTE_STRATEGIES = tuple(s.value for s in RouteStrategy)


class RoutingConfigError(ValueError):
    """Raised when a routing document cannot be parsed."""
    pass


def parse_routing_document(text: str) -> Any:
    """
    Parse a YAML (or JSON) routing document.

    Raises:
        RoutingConfigError: if the text is not valid YAML
    """
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise RoutingConfigError(f"Invalid YAML: {e}")


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _validate_metadata(metadata: Any, errors: list[str]) -> None:
    if not isinstance(metadata, dict):
        errors.append("Missing required field: metadata")
        return
    for field in ("version", "lastUpdated", "description"):
        if _missing(metadata.get(field)):
            errors.append(f"Missing required field: metadata.{field}")


def _validate_settings(settings: Any, errors: list[str]) -> None:
    if not isinstance(settings, dict):
        errors.append("Missing required field: settings")
        return

    behavior = settings.get("fallbackBehavior")
    if _missing(behavior):
        errors.append("Missing required field: settings.fallbackBehavior")
    elif behavior not in FALLBACK_BEHAVIORS:
        errors.append(
            f"settings.fallbackBehavior must be one of {', '.join(FALLBACK_BEHAVIORS)}, got {behavior}"
        )

    for field in ("validateOnLoad", "dynamicReload", "enableMetrics"):
        if settings.get(field) is None:
            errors.append(f"Missing required field: settings.{field}")

    interval = settings.get("reloadInterval")
    if interval is None:
        errors.append("Missing required field: settings.reloadInterval")
    elif isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        errors.append(f"settings.reloadInterval must be a positive integer (ms), got {interval}")


def _validate_destination(destination: Any, prefix: str, errors: list[str]) -> None:
    if not isinstance(destination, dict):
        errors.append(f"{prefix}: Missing required field: destination")
        return

    dest_type = destination.get("type")
    if dest_type == "http":
        if _missing(destination.get("endpoint")):
            errors.append(f"{prefix}: HTTP destination requires endpoint")
    elif dest_type == "queue":
        if _missing(destination.get("queue")):
            errors.append(f"{prefix}: Queue destination requires queue name")
    elif _missing(dest_type):
        errors.append(f"{prefix}: Missing required field: destination.type")
    else:
        errors.append(
            f"{prefix}: destination.type must be one of {', '.join(DESTINATION_TYPES)}, got {dest_type}"
        )


def _validate_route(route: Any, index: int, errors: list[str]) -> None:
    if not isinstance(route, dict):
        errors.append(f"Route {index}: must be an object")
        return

    name = route.get("name")
    prefix = f"Route {index} ({name if isinstance(name, str) and name.strip() else 'unnamed'})"

    if _missing(name):
        errors.append(f"{prefix}: Missing or empty route name")

    if route.get("enabled") is None:
        errors.append(f"{prefix}: Missing required field: enabled")

    for field in ("source", "type"):
        if _missing(route.get(field)):
            errors.append(f"{prefix}: Missing required field: {field}")

    strategy = route.get("strategy")
    if _missing(strategy):
        errors.append(f"{prefix}: Missing required field: strategy")
    elif strategy not in ROUTE_STRATEGIES:
        errors.append(f"{prefix}: strategy must be one of {', '.join(ROUTE_STRATEGIES)}, got {strategy}")

    priority = route.get("priority")
    if priority is None:
        errors.append(f"{prefix}: Missing required field: priority")
    elif isinstance(priority, bool) or not isinstance(priority, int):
        errors.append(f"{prefix}: priority must be an integer, got {priority}")
    elif priority < 0 or priority > 10:
        errors.append(f"{prefix}: priority must be between 0 and 10, got {priority}")

    _validate_destination(route.get("destination"), prefix, errors)


def validate_routing_config(raw: Any) -> list[str]:
    """
    Validate a raw routing document.

    Args:
        raw: Parsed document (dict)

    Returns:
        List of validation error messages (empty if valid)
    """
    if not isinstance(raw, dict):
        return ["Routing configuration must be an object"]

    errors: list[str] = []
    _validate_metadata(raw.get("metadata"), errors)
    _validate_settings(raw.get("settings"), errors)

    routes = raw.get("routes")
    if routes is None:
        errors.append("Missing required field: routes")
    elif not isinstance(routes, list):
        errors.append("Field routes must be an array")
    else:
        if not routes:
            errors.append("Configuration must have at least one route")

        seen: set[str] = set()
        for route in routes:
            name = route.get("name") if isinstance(route, dict) else None
            if isinstance(name, str) and name:
                if name in seen:
                    errors.append(f"duplicate route name: {name}")
                seen.add(name)

        for index, route in enumerate(routes):
            _validate_route(route, index, errors)

    return errors


def _format_model_errors(error: ValidationError) -> list[str]:
    messages = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"])
        messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return messages


def load_routing_config(document: dict | str) -> RoutingConfig | list[str]:
    """
    Parse and validate a routing document.

    Args:
        document: Parsed document or YAML text

    Returns:
        Immutable RoutingConfig, or the list of validation errors
    """
    if isinstance(document, str):
        try:
            document = parse_routing_document(document)
        except RoutingConfigError as e:
            return [str(e)]

    errors = validate_routing_config(document)
    if errors:
        return errors

    try:
        return RoutingConfig.model_validate(document)
    except ValidationError as e:
        return _format_model_errors(e)


def load_routing_config_file(path: str | Path) -> RoutingConfig | list[str]:
    """Read a UTF-8 routing document from disk and load it."""
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return [f"Failed to read routing configuration {config_path}: {e}"]

    log.debug("routing.config_read", path=str(config_path), size=len(text))
    return load_routing_config(text)

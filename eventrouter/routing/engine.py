"""Route matching: patterns, content conditions and priority selection."""
from functools import lru_cache
from typing import Any, Iterable
import re
import structlog
from ..event_models import CloudEvent
from ..transform.paths import MISSING, PathSyntaxError, parse_path
from .models import ConditionOperator, Route, RouteCondition, RouteMatchResult

log = structlog.get_logger()

WILDCARD = "*"


@lru_cache(maxsize=512)
def _compile_pattern(pattern: str) -> re.Pattern:
    # Each "*" stands for exactly one dot-delimited segment
    parts = [re.escape(part) for part in pattern.split(WILDCARD)]
    return re.compile("[^.]+".join(parts))


def match_pattern(value: str, pattern: str) -> bool:
    """
    Match a value against a route pattern.

    ``*`` alone matches anything; a pattern without ``*`` matches only itself;
    ``health.patient.*`` matches ``health.patient.registered`` but neither
    ``health.patient`` nor ``health.patient.a.b``.
    """
    if pattern == WILDCARD or pattern == value:
        return True
    if WILDCARD not in pattern:
        return False
    return _compile_pattern(pattern).fullmatch(value) is not None


def _as_document(event: CloudEvent | dict) -> Any:
    if isinstance(event, CloudEvent):
        return event.to_document()
    return event


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    return left == right


class RouteMatchEngine:
    """Selects the best route for an event."""

    def matches_route(self, event: CloudEvent | dict, route: Route) -> bool:
        """Check if an enabled route's patterns and condition accept the event."""
        if not route.enabled:
            return False

        document = _as_document(event)
        if not match_pattern(str(document.get("source", "")), route.source):
            return False
        if not match_pattern(str(document.get("type", "")), route.type):
            return False
        if route.condition is not None and not self.evaluate_condition(document, route.condition):
            return False
        return True

    def evaluate_condition(self, event: CloudEvent | dict, condition: RouteCondition) -> bool:
        """
        Evaluate a content-based condition.

        The field is a path into the event; ``data.priority`` and
        ``$.data.priority`` are equivalent. Missing or null fields never match.
        """
        path = condition.field if condition.field.startswith("$") else f"$.{condition.field}"
        try:
            value = parse_path(path).get(_as_document(event))
        except PathSyntaxError as e:
            log.warning("routing.invalid_condition_field", field=condition.field, error=str(e))
            return False

        if value is MISSING or value is None:
            return False

        expected = condition.value
        operator = condition.operator

        if operator == ConditionOperator.EQUALS:
            return _strict_equals(value, expected)
        if operator == ConditionOperator.NOT_EQUALS:
            return not _strict_equals(value, expected)
        if operator == ConditionOperator.GREATER_THAN:
            return _is_number(value) and _is_number(expected) and value > expected
        if operator == ConditionOperator.LESS_THAN:
            return _is_number(value) and _is_number(expected) and value < expected
        if operator == ConditionOperator.CONTAINS:
            if isinstance(value, list):
                return any(_strict_equals(item, expected) for item in value)
            if isinstance(value, str) and isinstance(expected, str):
                return expected in value
            return False
        if operator == ConditionOperator.REGEX:
            if not isinstance(value, str):
                return False
            try:
                return re.search(str(expected), value) is not None
            except re.error as e:
                log.warning("routing.invalid_regex", error=str(e), pattern=expected)
                return False

        log.warning("routing.unknown_operator", operator=operator)
        return False

    def find_matching_route(self, event: CloudEvent | dict, routes: Iterable[Route]) -> RouteMatchResult:
        """
        Find the highest-priority matching route.

        Ties keep declaration order: the first declared route wins.
        """
        document = _as_document(event)
        best: Route | None = None
        for route in routes:
            if best is not None and route.priority <= best.priority:
                continue
            if self.matches_route(document, route):
                best = route

        if best is not None:
            log.debug(
                "routing.route_matched",
                event_type=document.get("type"),
                event_source=document.get("source"),
                route=best.name,
                priority=best.priority,
            )
            return RouteMatchResult(matched=True, route=best)

        return RouteMatchResult(
            matched=False,
            reason=(
                f"No enabled route matches event type '{document.get('type')}' "
                f"from source '{document.get('source')}'"
            ),
        )

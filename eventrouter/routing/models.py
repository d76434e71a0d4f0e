"""Routing table definition models."""
from enum import Enum
from typing import Annotated, Any, Literal, Union
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class FallbackBehavior(str, Enum):
    """What to do with an event no route matches."""
    ROUTE_TO_FALLBACK_QUEUE = "route-to-fallback-queue"
    DROP = "drop"
    ERROR = "error"


class RouteStrategy(str, Enum):
    """Documents a route's intent; does not change matching."""
    SOURCE = "source"
    TYPE = "type"
    PRIORITY = "priority"
    FALLBACK = "fallback"
    CONTENT = "content"
    HYBRID = "hybrid"
    DEFAULT = "default"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    REGEX = "regex"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class RoutingMetadata(_Frozen):
    version: str
    last_updated: str = Field(..., alias="lastUpdated")
    description: str

    @field_validator("version", "last_updated", mode="before")
    @classmethod
    def coerce_to_string(cls, v: Any) -> Any:
        # YAML turns unquoted 1.0 and 2024-01-15 into float and date
        if isinstance(v, (date, datetime)):
            return v.isoformat()
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class RoutingSettings(_Frozen):
    fallback_behavior: FallbackBehavior = Field(..., alias="fallbackBehavior")
    validate_on_load: bool = Field(..., alias="validateOnLoad")
    dynamic_reload: bool = Field(..., alias="dynamicReload")
    reload_interval: int = Field(..., gt=0, alias="reloadInterval", description="Milliseconds")
    enable_metrics: bool = Field(..., alias="enableMetrics")


class RouteCondition(_Frozen):
    """Content-based condition evaluated against the event."""
    field: str = Field(..., min_length=1, description="Path into the event, e.g. data.priority")
    operator: ConditionOperator
    value: Any = None


class HttpDestination(_Frozen):
    type: Literal["http"] = "http"
    endpoint: str = Field(..., min_length=1)
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"] = "POST"
    timeout: int | None = Field(default=None, gt=0, description="Milliseconds")
    headers: dict[str, str] = Field(default_factory=dict)


class QueueDestination(_Frozen):
    type: Literal["queue"] = "queue"
    queue: str = Field(..., min_length=1)
    exchange: str | None = None
    routing_key: str | None = Field(default=None, alias="routingKey")


Destination = Annotated[Union[HttpDestination, QueueDestination], Field(discriminator="type")]


class RouteTransform(_Frozen):
    enabled: bool
    type: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class RouteRetry(_Frozen):
    enabled: bool
    max_attempts: int | None = Field(default=None, ge=0, alias="maxAttempts")
    backoff_ms: int | None = Field(default=None, ge=0, alias="backoffMs")


class Route(_Frozen):
    """Pattern-matched mapping from an event shape to a destination."""
    name: str = Field(..., min_length=1)
    description: str | None = None
    enabled: bool
    source: str = Field(..., min_length=1, description="Pattern matched against event.source")
    type: str = Field(..., min_length=1, description="Pattern matched against event.type")
    strategy: RouteStrategy
    priority: int = Field(..., ge=0, le=10, description="Higher wins")
    condition: RouteCondition | None = None
    destination: Destination
    transform: RouteTransform | None = None
    retry: RouteRetry | None = None


class RoutingConfig(_Frozen):
    metadata: RoutingMetadata
    settings: RoutingSettings
    routes: tuple[Route, ...] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_unique_names(self) -> "RoutingConfig":
        seen = set()
        for route in self.routes:
            if route.name in seen:
                raise ValueError(f"duplicate route name: {route.name}")
            seen.add(route.name)
        return self


class RouteMatchResult(BaseModel):
    matched: bool
    route: Route | None = None
    reason: str | None = None


class ResolutionOutcome(str, Enum):
    ROUTED = "routed"
    FALLBACK = "fallback"
    DROPPED = "dropped"


class RouteResolution(BaseModel):
    """Result of resolving an event against the routing table."""
    outcome: ResolutionOutcome
    route: Route | None = None
    destination: Destination | None = None
    reason: str | None = None

    @property
    def has_destination(self) -> bool:
        return self.destination is not None

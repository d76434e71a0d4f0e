from pydantic import BaseModel, Field
from typing import Any, Dict, List
from ..routing.models import RouteResolution


class ResolveResponse(BaseModel):
    event_id: str
    correlation_id: str
    outcome: str
    route: str | None = None
    destination: Dict[str, Any] | None = None
    reason: str | None = None

    @classmethod
    def from_resolution(cls, resolution: RouteResolution, event_id: str, correlation_id: str) -> "ResolveResponse":
        return cls(
            event_id=event_id,
            correlation_id=correlation_id,
            outcome=resolution.outcome.value,
            route=resolution.route.name if resolution.route else None,
            destination=resolution.destination.model_dump(by_alias=True) if resolution.destination else None,
            reason=resolution.reason,
        )


class ProcessResponse(ResolveResponse):
    transformed: bool = False
    document: Dict[str, Any] | None = None
    transform_errors: List[str] | None = None


class RouteListResponse(BaseModel):
    total: int
    version: str
    routes: List[Dict[str, Any]]


class ReloadResponse(BaseModel):
    reloaded: bool
    version: str | None = None
    route_count: int = 0


class RuleListResponse(BaseModel):
    total: int
    rules: List[Dict[str, Any]]
    errors: List[str] = Field(default_factory=list)

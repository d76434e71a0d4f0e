from typing import Any
from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
import structlog
from .dependencies import get_routing_table, get_transformer, get_validator
from .schemas import ProcessResponse, ReloadResponse, ResolveResponse, RouteListResponse
from ..event_models import CloudEvent, CloudEventValidator
from ..routing.models import ResolutionOutcome
from ..routing.table import RoutingTable
from ..transform.transformer import EventTransformer

# Handlers that may read rule or routing files are sync so they run in the threadpool
router = APIRouter(prefix="/v1", tags=["routing"])
log = structlog.get_logger()


def _validated_event(payload: Any, validator: CloudEventValidator) -> CloudEvent:
    result = validator.validate(payload)
    if not result.valid:
        raise HTTPException(400, detail=f"Invalid CloudEvent: {', '.join(result.errors)}")
    return result.event


def _correlation_id(request: Request, event: CloudEvent, validator: CloudEventValidator) -> str:
    # An explicit header wins over whatever the event carries
    if request.headers.get("x-correlation-id"):
        return request.state.correlation_id
    return validator.extract_correlation_id(event)


@router.post("/route", response_model=ResolveResponse)
async def resolve_route(
    request: Request,
    payload: Any = Body(...),
    table: RoutingTable = Depends(get_routing_table),
    validator: CloudEventValidator = Depends(get_validator),
):
    """Resolve the destination for a CloudEvent."""
    event = _validated_event(payload, validator)
    resolution = table.resolve(event)
    return ResolveResponse.from_resolution(resolution, event.id, _correlation_id(request, event, validator))


@router.post("/transform")
def transform_event(
    payload: Any = Body(...),
    rule: str | None = None,
    transformer: EventTransformer = Depends(get_transformer),
    validator: CloudEventValidator = Depends(get_validator),
):
    """Transform a CloudEvent with a named rule or the rule for its type."""
    event = _validated_event(payload, validator)
    result = transformer.transform(event, rule_name=rule)
    status_code = 200 if result.success else 422
    return JSONResponse(status_code=status_code, content=result.model_dump(by_alias=True, exclude_none=True))


@router.post("/process", response_model=ProcessResponse)
def process_event(
    request: Request,
    payload: Any = Body(...),
    table: RoutingTable = Depends(get_routing_table),
    transformer: EventTransformer = Depends(get_transformer),
    validator: CloudEventValidator = Depends(get_validator),
):
    """
    Resolve a destination and, when the matched route asks for it, build the
    transformed document. Delivery is left to the caller.
    """
    event = _validated_event(payload, validator)
    resolution = table.resolve(event)
    response = ProcessResponse(
        **ResolveResponse.from_resolution(
            resolution, event.id, _correlation_id(request, event, validator)
        ).model_dump()
    )

    route = resolution.route
    if resolution.outcome == ResolutionOutcome.ROUTED and route.transform and route.transform.enabled:
        rule_name = route.transform.config.get("rule")
        result = transformer.transform(event, rule_name=rule_name)
        response.transformed = result.success
        response.document = result.data
        response.transform_errors = result.errors
        if not result.success:
            log.warning("process.transform_failed", event_id=event.id, route=route.name, errors=result.errors)

    return response


@router.get("/routes", response_model=RouteListResponse)
async def list_routes(
    enabled_only: bool = False,
    table: RoutingTable = Depends(get_routing_table),
):
    """List configured routes in declaration order."""
    routes = table.get_routes(only_enabled=enabled_only)
    return RouteListResponse(
        total=len(routes),
        version=table.get_config().metadata.version,
        routes=[route.model_dump(by_alias=True, exclude_none=True, mode="json") for route in routes],
    )


@router.post("/routes/reload", response_model=ReloadResponse)
def reload_routes(table: RoutingTable = Depends(get_routing_table)):
    """Re-read the routing configuration file."""
    if not table.reload():
        raise HTTPException(422, detail="Routing configuration reload failed; previous configuration kept")
    config = table.get_config()
    return ReloadResponse(reloaded=True, version=config.metadata.version, route_count=len(config.routes))

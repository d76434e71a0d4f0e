"""
EventRouter - CloudEvent routing and transformation service.

Features:
- Pattern and content based routing with priorities and fallback handling
- Declarative field-mapping transformations with a TTL rule cache
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from pathlib import Path
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from .config import Settings, get_settings
from .logging import setup_logging, get_logger
from .api.router import router
from .api.rules_router import router as rules_router
from .event_models import CloudEventValidator
from .middleware import CorrelationIdMiddleware, MetricsMiddleware, PayloadValidationMiddleware
from .metrics import Metrics
from .health import HealthChecker
from .routing.table import ConfigurationNotLoadedError, NoRouteMatchedError, RoutingTable
from .transform.schema import OutputSchemaValidator
from .transform.store import RuleStore
from .transform.transformer import EventTransformer

SERVICE_NAME = "eventrouter"
VERSION = "0.1.0"

logger = get_logger()


def _error_body(request: Request, error: str, message: str) -> dict:
    return {
        "error": error,
        "message": message,
        "correlation_id": getattr(request.state, "correlation_id", None),
        "path": request.url.path,
    }


def create_app(
    settings: Settings | None = None,
    routing_table: RoutingTable | None = None,
    rule_store: RuleStore | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Service settings (defaults to get_settings())
        routing_table: Pre-built routing table; when given, startup does not
            load the configured routing file into it
        rule_store: Pre-built rule store

    Returns:
        FastAPI: Configured application
    """
    settings = settings or get_settings()

    setup_logging(json_output=settings.LOG_JSON, service_name=SERVICE_NAME, level=settings.LOG_LEVEL)
    metrics = Metrics(service_name=SERVICE_NAME, version=VERSION)

    load_routing_file = routing_table is None
    if routing_table is None:
        routing_table = RoutingTable(fallback_queue=settings.FALLBACK_QUEUE)
    if rule_store is None:
        rule_store = RuleStore(
            settings.RULES_DIRECTORY,
            cache_ttl=settings.RULE_CACHE_TTL_SECONDS,
            enable_caching=settings.ENABLE_RULE_CACHING,
        )
    # Injected instances report into this app's registry unless they carry their own
    for component in (routing_table, rule_store):
        if component.metrics is None:
            component.metrics = metrics
    transformer = EventTransformer(
        rule_store,
        schema_validator=OutputSchemaValidator(base_directory=rule_store.rules_directory),
        default_rule=settings.DEFAULT_RULE,
        metrics=metrics,
    )
    health_checker = HealthChecker(routing_table, rule_store, service_name=SERVICE_NAME, version=VERSION)

    app = FastAPI(
        title="EventRouter",
        version=VERSION,
        description="CloudEvent routing and transformation service with unified observability",
    )
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.routing_table = routing_table
    app.state.rule_store = rule_store
    app.state.transformer = transformer
    app.state.event_validator = CloudEventValidator()
    app.state.health_checker = health_checker

    # Last added runs first: correlation ID, then metrics, then payload checks
    app.add_middleware(PayloadValidationMiddleware, max_size=settings.MAX_EVENT_SIZE)
    app.add_middleware(MetricsMiddleware, metrics=metrics)
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(router)
    app.include_router(rules_router)

    metrics_app = make_asgi_app(registry=metrics.registry)
    app.mount("/metrics", metrics_app)

    @app.exception_handler(NoRouteMatchedError)
    async def no_route_handler(request: Request, exc: NoRouteMatchedError):
        return JSONResponse(status_code=422, content=_error_body(request, "NoRouteMatched", str(exc)))

    @app.exception_handler(ConfigurationNotLoadedError)
    async def not_loaded_handler(request: Request, exc: ConfigurationNotLoadedError):
        return JSONResponse(status_code=503, content=_error_body(request, "ConfigurationNotLoaded", str(exc)))

    @app.get("/health")
    async def health():
        """
        Liveness probe - basic health check.

        Returns 200 if service is running.
        """
        logger.debug("health_check_liveness")
        return health_checker.liveness()

    @app.get("/health/ready")
    async def health_ready():
        """
        Readiness probe.

        Returns:
            200: Routing configuration loaded and service ready for traffic
            503: Service is not ready
        """
        logger.debug("health_check_readiness")
        result = await health_checker.readiness()
        status_code = 200 if result["status"] == "ready" else 503
        return JSONResponse(status_code=status_code, content=result)

    @app.on_event("startup")
    async def startup_event():
        """Load routing configuration and rules, then start dynamic reload."""
        logger.info(
            "service_starting",
            version=VERSION,
            env=settings.ENV,
            routing_config=settings.ROUTING_CONFIG_PATH,
            rules_directory=settings.RULES_DIRECTORY,
        )

        if load_routing_file:
            config_path = Path(settings.ROUTING_CONFIG_PATH)
            if config_path.is_file():
                routing_table.load_file(config_path)
            else:
                logger.error("routing.config_missing", path=str(config_path))

        rule_store.load_rules()

        if routing_table.is_loaded:
            routing_table.start_auto_reload()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop the reload timer and mark the service down."""
        logger.info("service_stopping")
        routing_table.stop_auto_reload()
        metrics.app_up.labels(service=SERVICE_NAME, version=VERSION).set(0)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "eventrouter.main:app",
        host="0.0.0.0",
        port=get_settings().SERVICE_PORT,
        reload=True,
    )

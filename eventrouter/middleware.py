"""
Middleware for request tracing, HTTP metrics and inbound payload checks.
"""
import uuid
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
import orjson
import structlog

log = structlog.get_logger()

CORRELATION_HEADER = "x-correlation-id"
BODY_METHODS = ("POST", "PUT", "PATCH")


def _path_label(request: Request) -> str:
    """Route template for metric labels, so /v1/rules/{rule_name} stays one series."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Propagates a correlation ID through logs and responses.

    The ID comes from the X-Correlation-ID header or is generated. It is
    bound to the structlog context, stored on ``request.state`` for the
    handlers and echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            http_method=request.method,
            http_path=request.url.path,
        )

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records request counts, latency and in-flight requests per route template."""

    def __init__(self, app, metrics):
        super().__init__(app)
        self.metrics = metrics

    def _count(self, request: Request, status: int) -> None:
        self.metrics.http_requests_total.labels(
            service=self.metrics.service_name,
            method=request.method,
            path=_path_label(request),
            status=status,
        ).inc()

    async def dispatch(self, request: Request, call_next):
        # The exposition endpoint is not counted
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        in_flight = self.metrics.http_requests_active.labels(service=self.metrics.service_name)
        in_flight.inc()
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            self._count(request, 500)
            log.error(
                "http.request_failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise
        finally:
            in_flight.dec()

        elapsed = time.perf_counter() - started
        self._count(request, response.status_code)
        self.metrics.http_request_duration.labels(
            service=self.metrics.service_name,
            method=request.method,
            path=_path_label(request),
        ).observe(elapsed)

        log.info("http.request", http_status=response.status_code, duration_ms=round(elapsed * 1000, 2))
        return response


class PayloadValidationMiddleware(BaseHTTPMiddleware):
    """
    Rejects event bodies that are too large (413) or not JSON (400) before
    any envelope validation runs.
    """

    def __init__(self, app, max_size: int):
        super().__init__(app)
        self.max_size = max_size

    def _too_large(self, size: int, path: str) -> JSONResponse:
        log.warning("payload.too_large", size=size, max_size=self.max_size, path=path)
        return JSONResponse(
            status_code=413,
            content={
                "error": "PayloadTooLarge",
                "message": f"Event payload exceeds maximum size of {self.max_size} bytes",
                "max_size": self.max_size,
                "received_size": size,
            },
        )

    async def dispatch(self, request: Request, call_next):
        if request.method not in BODY_METHODS:
            return await call_next(request)

        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self.max_size:
            return self._too_large(int(declared), request.url.path)

        if not request.headers.get("content-type", "").startswith("application/json"):
            return await call_next(request)

        body = await request.body()
        if len(body) > self.max_size:
            return self._too_large(len(body), request.url.path)

        if body:
            try:
                orjson.loads(body)
            except orjson.JSONDecodeError as e:
                log.warning("payload.invalid_json", error=str(e), path=request.url.path)
                return JSONResponse(
                    status_code=400,
                    content={
                        "error": "InvalidJSON",
                        "message": "Event body is not valid JSON",
                        "detail": str(e),
                    },
                )

        # Downstream handlers read the body again
        async def receive():
            return {"type": "http.request", "body": body, "more_body": False}

        request._receive = receive
        return await call_next(request)

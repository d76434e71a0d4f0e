"""
structlog setup for the event router.

Every entry carries ``ts``, ``level``, ``service`` and the call site, plus
whatever the correlation middleware bound for the current request.
"""
import logging
from typing import Any
import structlog

# Frames inside this module are never the interesting call site
_IGNORED_FRAMES = [__name__]


def service_name_processor(service_name: str):
    def add_service_name(logger: Any, method_name: str, event_dict: dict) -> dict:
        event_dict["service"] = service_name
        return event_dict

    return add_service_name


def add_module_info(logger: Any, method_name: str, event_dict: dict) -> dict:
    frame, _ = structlog._frames._find_first_app_frame_and_name(additional_ignores=_IGNORED_FRAMES)
    if frame:
        event_dict.update(
            module=frame.f_globals.get("__name__", "unknown"),
            function=frame.f_code.co_name,
            line=frame.f_lineno,
        )
    return event_dict


def _level_number(level: str) -> int:
    number = logging.getLevelName(level.upper())
    return number if isinstance(number, int) else logging.INFO


def setup_logging(json_output: bool = True, service_name: str = "eventrouter", level: str = "INFO"):
    """
    Configure structlog and route stdlib logging through the same level.

    Args:
        json_output: JSON lines when True, the dev console renderer otherwise
        service_name: Value of the ``service`` field
        level: Minimum level name; unknown names fall back to INFO
    """
    threshold = _level_number(level)
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            service_name_processor(service_name),
            structlog.processors.TimeStamper(fmt="iso", key="ts"),
            structlog.processors.add_log_level,
            add_module_info,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", level=threshold)
    # Request logging comes from MetricsMiddleware
    for name in ("uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = []


def get_logger():
    return structlog.get_logger()

"""Routing table - holds the active routing configuration and resolves events."""
from pathlib import Path
from typing import Optional
import threading
import structlog
from ..event_models import CloudEvent
from .engine import RouteMatchEngine
from .loader import load_routing_config, load_routing_config_file
from .models import (
    FallbackBehavior,
    QueueDestination,
    ResolutionOutcome,
    Route,
    RouteResolution,
    RoutingConfig,
    RoutingSettings,
)

log = structlog.get_logger()

DEFAULT_FALLBACK_QUEUE = "fallback"


class RoutingError(Exception):
    """Base exception for routing errors"""
    pass


class ConfigurationNotLoadedError(RoutingError):
    """Raised when the table is used before a configuration was loaded"""
    pass


class NoRouteMatchedError(RoutingError):
    """Raised when no route matches and the fallback behavior is ``error``"""

    def __init__(self, message: str, event_id: str | None = None):
        super().__init__(message)
        self.event_id = event_id


class RoutingTable:
    """
    Active routing configuration plus route resolution.

    The configuration is an immutable snapshot. Loading builds and validates
    a complete new snapshot and then swaps the reference; a document that
    fails validation leaves the current snapshot untouched. Readers grab the
    reference once per call and never take the lock.
    """

    def __init__(
        self,
        fallback_queue: str = DEFAULT_FALLBACK_QUEUE,
        metrics=None,
        engine: RouteMatchEngine | None = None,
    ):
        """
        Initialize routing table.

        Args:
            fallback_queue: Queue name used for ``route-to-fallback-queue``
            metrics: Optional Metrics instance for decision/reload counters
            engine: Route matcher (defaults to RouteMatchEngine)
        """
        self.fallback_queue = fallback_queue
        self.metrics = metrics
        self._engine = engine or RouteMatchEngine()
        self._config: RoutingConfig | None = None
        self._config_path: Path | None = None
        self._lock = threading.Lock()
        self._reload_timer: Optional[threading.Timer] = None
        self._timer_lock = threading.Lock()
        self._shutdown = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, document: dict | str) -> RoutingConfig | list[str]:
        """
        Validate a routing document and make it active.

        Args:
            document: Parsed document or YAML text

        Returns:
            The new RoutingConfig, or the validation errors (in which case the
            previous configuration stays active)
        """
        result = load_routing_config(document)
        return self._apply(result, source="document")

    def load_file(self, path: str | Path) -> RoutingConfig | list[str]:
        """Load a routing document from disk and remember it for reloads."""
        self._config_path = Path(path)
        result = load_routing_config_file(self._config_path)
        return self._apply(result, source=str(self._config_path))

    def set_config(self, config: RoutingConfig) -> None:
        """Make an already-built configuration active."""
        self._swap(config, source="set_config")

    def _apply(self, result: RoutingConfig | list[str], source: str) -> RoutingConfig | list[str]:
        if isinstance(result, RoutingConfig):
            self._swap(result, source=source)
            return result

        log.error(
            "routing.config_invalid",
            source=source,
            errors=result,
            keeping_previous=self._config is not None,
        )
        return result

    def _swap(self, config: RoutingConfig, source: str) -> None:
        with self._lock:
            self._config = config
        log.info(
            "routing.config_loaded",
            source=source,
            version=config.metadata.version,
            route_count=len(config.routes),
        )

    @property
    def is_loaded(self) -> bool:
        return self._config is not None

    @property
    def config_path(self) -> Path | None:
        return self._config_path

    def _require_config(self) -> RoutingConfig:
        config = self._config
        if config is None:
            raise ConfigurationNotLoadedError("Configuration not loaded. Call load() or load_file() first.")
        return config

    def get_config(self) -> RoutingConfig:
        return self._require_config()

    def get_routes(self, only_enabled: bool = False) -> list[Route]:
        """
        Get route definitions in declaration order.

        Raises:
            ConfigurationNotLoadedError: if no configuration is loaded
        """
        routes = self._require_config().routes
        if only_enabled:
            return [route for route in routes if route.enabled]
        return list(routes)

    def get_settings(self) -> RoutingSettings:
        return self._require_config().settings

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, event: CloudEvent) -> RouteResolution:
        """
        Resolve the destination for an event.

        Returns:
            ROUTED with the winning route, FALLBACK with the fallback queue, or
            DROPPED with no destination

        Raises:
            ConfigurationNotLoadedError: if no configuration is loaded
            NoRouteMatchedError: if nothing matches and fallbackBehavior is ``error``
        """
        config = self._require_config()
        match = self._engine.find_matching_route(event, config.routes)

        if match.matched:
            resolution = RouteResolution(
                outcome=ResolutionOutcome.ROUTED,
                route=match.route,
                destination=match.route.destination,
            )
            self._record(config, match.route.name, resolution.outcome.value)
            log.info(
                "routing.resolved",
                event_id=event.id,
                event_type=event.type,
                route=match.route.name,
                destination_type=match.route.destination.type,
            )
            return resolution

        behavior = config.settings.fallback_behavior
        log.warning(
            "routing.no_match",
            event_id=event.id,
            event_type=event.type,
            event_source=event.source,
            fallback_behavior=behavior.value,
        )

        if behavior == FallbackBehavior.ERROR:
            self._record(config, "", "error")
            raise NoRouteMatchedError(match.reason, event_id=event.id)

        if behavior == FallbackBehavior.DROP:
            self._record(config, "", ResolutionOutcome.DROPPED.value)
            return RouteResolution(outcome=ResolutionOutcome.DROPPED, reason=match.reason)

        self._record(config, "", ResolutionOutcome.FALLBACK.value)
        return RouteResolution(
            outcome=ResolutionOutcome.FALLBACK,
            destination=QueueDestination(queue=self.fallback_queue),
            reason=match.reason,
        )

    def _record(self, config: RoutingConfig, route: str, outcome: str) -> None:
        if self.metrics is not None and config.settings.enable_metrics:
            self.metrics.record_routing_decision(route, outcome)

    # ------------------------------------------------------------------
    # Dynamic reload
    # ------------------------------------------------------------------

    def reload(self) -> bool:
        """
        Re-read the backing file and swap it in if it validates.

        Returns:
            True if the new configuration is active, False otherwise
        """
        if self._config_path is None:
            log.warning("routing.reload_skipped", reason="no backing file")
            return False

        result = load_routing_config_file(self._config_path)
        if isinstance(result, RoutingConfig):
            self._swap(result, source=str(self._config_path))
            self._record_reload("success")
            return True

        log.error(
            "routing.reload_failed",
            path=str(self._config_path),
            errors=result,
            keeping_previous=self._config is not None,
        )
        self._record_reload("failure")
        return False

    def _record_reload(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_config_reload(status)

    def start_auto_reload(self) -> bool:
        """
        Start periodic reloads when the active settings enable dynamicReload.

        Returns:
            True if the reload timer was started
        """
        settings = self.get_settings()
        if not settings.dynamic_reload:
            log.debug("routing.auto_reload_disabled")
            return False
        if self._config_path is None:
            log.warning("routing.auto_reload_skipped", reason="no backing file")
            return False

        self._shutdown = False
        self._schedule_reload()
        log.info("routing.auto_reload_started", interval_ms=settings.reload_interval)
        return True

    def _schedule_reload(self) -> None:
        """Schedule the next reload using the current reload interval"""
        if self._shutdown:
            return

        interval = self.get_settings().reload_interval / 1000
        with self._timer_lock:
            # At most one pending timer
            if self._reload_timer is not None:
                self._reload_timer.cancel()
            self._reload_timer = threading.Timer(interval, self._run_reload)
            self._reload_timer.daemon = True
            self._reload_timer.start()

    def _run_reload(self) -> None:
        """Run a reload and schedule the next one"""
        try:
            self.reload()
        except Exception as e:
            log.error("routing.reload_error", error=str(e), error_type=type(e).__name__)
        finally:
            if not self._shutdown and self.get_settings().dynamic_reload:
                self._schedule_reload()

    def stop_auto_reload(self) -> None:
        """Cancel the reload timer"""
        self._shutdown = True
        with self._timer_lock:
            if self._reload_timer:
                self._reload_timer.cancel()
                self._reload_timer = None
        log.info("routing.auto_reload_stopped")

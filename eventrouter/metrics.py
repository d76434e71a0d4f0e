"""
Prometheus metrics for the event router service.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for the event router service.
    """

    def __init__(self, service_name: str = "eventrouter", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Routing
        self.routing_decisions_total = Counter(
            "eventrouter_routing_decisions_total",
            "Routing decisions by route and outcome",
            ["route", "outcome"],
            registry=self.registry,
        )

        self.config_reloads_total = Counter(
            "eventrouter_config_reloads_total",
            "Routing configuration reload attempts",
            ["status"],
            registry=self.registry,
        )

        # Transformation
        self.transformations_total = Counter(
            "eventrouter_transformations_total",
            "Event transformations by rule and status",
            ["rule", "status"],
            registry=self.registry,
        )

        self.rule_cache_total = Counter(
            "eventrouter_rule_cache_total",
            "Rule cache lookups by result (hit/miss)",
            ["result"],
            registry=self.registry,
        )

        # System Metrics
        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )
        self.update_system_metrics()

    def update_system_metrics(self):
        """Update process metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())
            self.process_memory_bytes.labels(service=self.service_name).set(process.memory_info().rss)
        except psutil.Error:
            # Process info not available on this platform
            pass

    def record_routing_decision(self, route: str, outcome: str):
        """Record a routing decision (route is empty when nothing matched)."""
        self.routing_decisions_total.labels(route=route or "none", outcome=outcome).inc()

    def record_config_reload(self, status: str):
        self.config_reloads_total.labels(status=status).inc()

    def record_transformation(self, rule: str, status: str):
        self.transformations_total.labels(rule=rule, status=status).inc()

    def record_rule_cache(self, result: str):
        self.rule_cache_total.labels(result=result).inc()

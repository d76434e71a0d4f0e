"""
Health checks for liveness and readiness probes.

The service is ready once a routing table is loaded. A missing rules
directory only degrades transformation, so it is reported as a warning.
"""
from datetime import datetime, timezone
from typing import Dict, Any
import psutil
from .logging import get_logger
from .routing.table import RoutingTable
from .transform.store import RuleStore

logger = get_logger()

MB = 1024**2


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _graded(value: float, floor: float) -> str:
    """error below floor, warning below twice the floor, ok otherwise"""
    if value < floor:
        return "error"
    if value < floor * 2:
        return "warning"
    return "ok"


class HealthChecker:
    """Liveness and readiness reporting for the event router."""

    def __init__(
        self,
        routing_table: RoutingTable,
        rule_store: RuleStore,
        service_name: str = "eventrouter",
        version: str = "0.1.0",
        min_available_mb: float = 50.0,
    ):
        self.routing_table = routing_table
        self.rule_store = rule_store
        self.service_name = service_name
        self.version = version
        self.min_available_mb = min_available_mb

    def _base(self, status: str) -> Dict[str, Any]:
        return {
            "status": status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": _timestamp(),
        }

    def liveness(self) -> Dict[str, Any]:
        """The process is up and serving requests."""
        return self._base("ok")

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check.

        Returns:
            dict: ``ready`` unless a check reports ``error``, plus each
            check's details under ``checks``
        """
        checks = {
            "routing": self._check_routing(),
            "rules": self._check_rules(),
            "memory": self._check_memory(),
        }
        failed = [name for name, check in checks.items() if check["status"] == "error"]
        if failed:
            logger.warning("health.not_ready", failed_checks=failed)

        result = self._base("not_ready" if failed else "ready")
        result["checks"] = checks
        return result

    def _check_routing(self) -> Dict[str, Any]:
        if not self.routing_table.is_loaded:
            return {"status": "error", "message": "Routing configuration not loaded"}

        config = self.routing_table.get_config()
        return {
            "status": "ok",
            "version": config.metadata.version,
            "routes": len(config.routes),
            "enabled_routes": len(self.routing_table.get_routes(only_enabled=True)),
        }

    def _check_rules(self) -> Dict[str, Any]:
        directory = self.rule_store.rules_directory
        if not directory.is_dir():
            return {"status": "warning", "message": f"Rules directory not found: {directory}"}

        stats = self.rule_store.get_cache_stats()
        return {
            "status": "ok",
            "cached_rules": stats["cachedRules"],
            "last_errors": stats["lastErrors"],
        }

    def _check_memory(self) -> Dict[str, Any]:
        try:
            memory = psutil.virtual_memory()
        except psutil.Error as e:
            logger.warning("health.memory_check_failed", error=str(e))
            return {"status": "error", "error": str(e)}

        available_mb = memory.available / MB
        return {
            "status": _graded(available_mb, self.min_available_mb),
            "available_mb": round(available_mb, 2),
            "total_mb": round(memory.total / MB, 2),
            "used_percent": memory.percent,
        }

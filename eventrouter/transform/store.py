"""Rule store - loads transformation rules and serves them from a TTL cache."""
from pathlib import Path
from typing import Any, Callable
import threading
import time
import structlog
from ..event_models import CloudEvent
from .loader import load_rules
from .models import RuleCacheEntry, RuleLoadResult, RuleMatchResult, TransformationRule

log = structlog.get_logger()


class _RuleSnapshot:
    """Immutable view of the cache at one load."""

    __slots__ = ("entries", "by_name", "refreshed_at")

    def __init__(self, entries: tuple[RuleCacheEntry, ...], refreshed_at: float):
        self.entries = entries
        self.by_name = {entry.rule.name: entry for entry in entries}
        self.refreshed_at = refreshed_at

    @property
    def rules(self) -> list[TransformationRule]:
        return [entry.rule for entry in self.entries]


class RuleStore:
    """
    Loads, validates and caches transformation rules.

    The cache is a snapshot replaced wholesale on every reload, so readers
    never see a partially refreshed set of rules. The lock is only taken to
    reload or clear, never on the lookup path.

    A lookup against a snapshot older than ``cache_ttl`` seconds reloads from
    the rules directory first. ``clear_rule_cache()`` drops the snapshot and
    with it the TTL clock, so the next lookup always reloads.
    """

    def __init__(
        self,
        rules_directory: str | Path,
        cache_ttl: float = 300,
        enable_caching: bool = True,
        clock: Callable[[], float] = time.time,
        metrics=None,
    ):
        """
        Initialize rule store.

        Args:
            rules_directory: Directory holding rule files
            cache_ttl: Seconds a loaded rule set stays fresh
            enable_caching: If False every lookup reloads from disk
            clock: Time source in seconds (injectable for tests)
            metrics: Optional Metrics instance for cache hit/miss counters
        """
        self.rules_directory = Path(rules_directory)
        self.cache_ttl = cache_ttl
        self.enable_caching = enable_caching
        self._clock = clock
        self.metrics = metrics
        self._lock = threading.Lock()
        self._snapshot: _RuleSnapshot | None = None
        self._last_errors: list[str] = []
        self._hits = 0
        self._misses = 0
        self._reloads = 0

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_rules(self, directory: str | Path | None = None) -> RuleLoadResult:
        """
        Load rules from disk and refresh the cache.

        Args:
            directory: Directory to load from (defaults to the configured one;
                a new directory becomes the configured one)

        Returns:
            RuleLoadResult from the loader
        """
        with self._lock:
            if directory is not None:
                self.rules_directory = Path(directory)
            return self._reload_locked()

    def _reload_locked(self) -> RuleLoadResult:
        result = load_rules(self.rules_directory)
        self._reloads += 1
        self._last_errors = list(result.errors or [])

        if not result.success and self._snapshot is not None:
            # Keep serving the previous rule set
            log.warning(
                "rules.reload_failed",
                directory=str(self.rules_directory),
                errors=result.errors,
                cached_rules=len(self._snapshot.entries),
            )
            # Retry at the next expiry rather than on every lookup
            self._snapshot = _RuleSnapshot(self._snapshot.entries, self._clock())
            return result

        now = self._clock()
        entries = tuple(
            RuleCacheEntry(rule=rule, loaded_at=now, file_path=result.sources.get(rule.name, ""))
            for rule in (result.rules or [])
        )
        self._snapshot = _RuleSnapshot(entries, now)
        log.info("rules.cache_refreshed", rule_count=len(entries), success=result.success)
        return result

    def _is_fresh(self, snapshot: _RuleSnapshot | None) -> bool:
        if snapshot is None or not self.enable_caching:
            return False
        return self._clock() - snapshot.refreshed_at <= self.cache_ttl

    def _current_snapshot(self, force_reload: bool = False) -> _RuleSnapshot:
        snapshot = self._snapshot
        if not force_reload and self._is_fresh(snapshot):
            self._hits += 1
            self._record_cache("hit")
            return snapshot

        self._misses += 1
        self._record_cache("miss")
        with self._lock:
            # Another caller may have refreshed while we waited
            if not force_reload and self._snapshot is not snapshot and self._is_fresh(self._snapshot):
                return self._snapshot
            self._reload_locked()
            return self._snapshot

    def _record_cache(self, result: str) -> None:
        if self.metrics is not None:
            self.metrics.record_rule_cache(result)

    def get_rules(self, force_reload: bool = False) -> list[TransformationRule]:
        """Get all rules, reloading when the cache is empty or stale."""
        return self._current_snapshot(force_reload).rules

    def get_entry(self, name: str) -> RuleCacheEntry | None:
        """Get the cache entry for a rule (no reload)."""
        snapshot = self._snapshot
        if snapshot is None:
            return None
        return snapshot.by_name.get(name)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_rule_by_event_type(self, event_type: str) -> RuleMatchResult:
        """
        Find the enabled rule for an event type (exact match).

        If several enabled rules share the type, the first loaded wins.
        """
        for rule in self.get_rules():
            if rule.enabled and rule.event_type == event_type:
                log.debug("rules.matched", rule=rule.name, event_type=event_type)
                return RuleMatchResult(matched=True, rule=rule)

        return RuleMatchResult(
            matched=False,
            error=f"No enabled rule found for event type: {event_type}",
        )

    def find_rule_by_name(self, name: str) -> RuleMatchResult:
        snapshot = self._current_snapshot()
        entry = snapshot.by_name.get(name)

        if entry is None:
            return RuleMatchResult(matched=False, error=f"Rule not found: {name}")
        if not entry.rule.enabled:
            return RuleMatchResult(matched=False, error=f"Rule is disabled: {name}")
        return RuleMatchResult(matched=True, rule=entry.rule)

    def match_rule(self, event: CloudEvent, rule_name: str | None = None) -> RuleMatchResult:
        """Match by rule name when given, otherwise by the event's type."""
        if rule_name:
            return self.find_rule_by_name(rule_name)
        return self.find_rule_by_event_type(event.type)

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def clear_rule_cache(self) -> None:
        """Drop all cached rules; the next lookup reloads from disk."""
        with self._lock:
            self._snapshot = None
        log.info("rules.cache_cleared")

    def get_cache_stats(self) -> dict[str, Any]:
        snapshot = self._snapshot
        last_refresh = snapshot.refreshed_at if snapshot else None
        return {
            "cachedRules": len(snapshot.entries) if snapshot else 0,
            "hits": self._hits,
            "misses": self._misses,
            "reloads": self._reloads,
            "lastRefresh": last_refresh,
            "cacheAge": self._clock() - last_refresh if last_refresh is not None else None,
            "ttlSeconds": self.cache_ttl,
            "cachingEnabled": self.enable_caching,
            "lastErrors": list(self._last_errors),
        }

"""Tests for the TTL-cached rule store."""
import json
import pytest
from eventrouter.event_models import CloudEvent
from eventrouter.metrics import Metrics
from eventrouter.transform import loader
from eventrouter.transform.store import RuleStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def rule_doc(name, event_type, enabled=True):
    return {
        "name": name,
        "eventType": event_type,
        "targetFormat": "json",
        "enabled": enabled,
        "mappings": [{"source": "$.id", "target": "$.eventId"}],
    }


@pytest.fixture
def rules_dir(tmp_path):
    (tmp_path / "patient.json").write_text(
        json.dumps(
            [
                rule_doc("patient-to-fhir", "health.patient.registered"),
                rule_doc("disabled-rule", "health.patient.updated", enabled=False),
            ]
        ),
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def load_counter(monkeypatch):
    """Count reads of the backing directory."""
    calls = []

    def counting_load(directory):
        calls.append(directory)
        return loader.load_rules(directory)

    monkeypatch.setattr("eventrouter.transform.store.load_rules", counting_load)
    return calls


class TestRuleLookup:
    """Test rule matching"""

    def test_find_by_event_type(self, rules_dir, clock):
        store = RuleStore(rules_dir, clock=clock)
        match = store.find_rule_by_event_type("health.patient.registered")
        assert match.matched
        assert match.rule.name == "patient-to-fhir"

    def test_exact_match_only(self, rules_dir, clock):
        store = RuleStore(rules_dir, clock=clock)
        match = store.find_rule_by_event_type("health.patient.*")
        assert not match.matched
        assert match.error == "No enabled rule found for event type: health.patient.*"

    def test_disabled_rules_skipped(self, rules_dir, clock):
        store = RuleStore(rules_dir, clock=clock)
        assert not store.find_rule_by_event_type("health.patient.updated").matched

    def test_find_by_name(self, rules_dir, clock):
        store = RuleStore(rules_dir, clock=clock)
        assert store.find_rule_by_name("patient-to-fhir").matched
        assert store.find_rule_by_name("nope").error == "Rule not found: nope"
        assert store.find_rule_by_name("disabled-rule").error == "Rule is disabled: disabled-rule"

    def test_match_rule_prefers_name(self, rules_dir, clock):
        store = RuleStore(rules_dir, clock=clock)
        event = CloudEvent(specversion="1.0", type="unrelated.type", source="test", id="evt-1")
        assert store.match_rule(event, "patient-to-fhir").rule.name == "patient-to-fhir"
        assert not store.match_rule(event).matched

    def test_cache_entries_record_origin(self, rules_dir, clock):
        store = RuleStore(rules_dir, clock=clock)
        store.load_rules()
        entry = store.get_entry("patient-to-fhir")
        assert entry.loaded_at == clock.now
        assert entry.file_path.endswith("patient.json")


class TestRuleCache:
    """Test TTL caching behaviour"""

    def test_lookups_within_ttl_do_not_reload(self, rules_dir, clock, load_counter):
        store = RuleStore(rules_dir, cache_ttl=60, clock=clock)
        store.find_rule_by_event_type("health.patient.registered")
        assert len(load_counter) == 1

        for _ in range(5):
            clock.advance(10)
            store.find_rule_by_event_type("health.patient.registered")

        assert len(load_counter) == 1
        stats = store.get_cache_stats()
        assert stats["hits"] == 5
        assert stats["misses"] == 1

    def test_expired_cache_reloads_once(self, rules_dir, clock, load_counter):
        store = RuleStore(rules_dir, cache_ttl=60, clock=clock)
        store.load_rules()
        assert len(load_counter) == 1

        clock.advance(61)
        store.find_rule_by_event_type("health.patient.registered")
        assert len(load_counter) == 2

        store.find_rule_by_event_type("health.patient.registered")
        assert len(load_counter) == 2

    def test_reload_picks_up_changes(self, rules_dir, clock):
        store = RuleStore(rules_dir, cache_ttl=60, clock=clock)
        assert not store.find_rule_by_event_type("health.encounter.completed").matched

        (rules_dir / "encounter.json").write_text(
            json.dumps(rule_doc("encounter-summary", "health.encounter.completed")),
            encoding="utf-8",
        )
        # Still served from cache
        assert not store.find_rule_by_event_type("health.encounter.completed").matched

        clock.advance(61)
        assert store.find_rule_by_event_type("health.encounter.completed").matched

    def test_clear_cache_forces_reload_and_resets_ttl(self, rules_dir, clock, load_counter):
        store = RuleStore(rules_dir, cache_ttl=60, clock=clock)
        store.load_rules()
        clock.advance(50)

        store.clear_rule_cache()
        assert store.get_cache_stats()["cachedRules"] == 0

        store.get_rules()
        assert len(load_counter) == 2

        # The TTL window restarted at the clear-triggered reload
        clock.advance(50)
        store.get_rules()
        assert len(load_counter) == 2

    def test_caching_disabled_always_reloads(self, rules_dir, clock, load_counter):
        store = RuleStore(rules_dir, enable_caching=False, clock=clock)
        store.get_rules()
        store.get_rules()
        assert len(load_counter) == 2

    def test_failed_reload_keeps_previous_rules(self, rules_dir, clock):
        store = RuleStore(rules_dir, cache_ttl=60, clock=clock)
        store.load_rules()

        (rules_dir / "patient.json").write_text("{broken", encoding="utf-8")
        clock.advance(61)

        match = store.find_rule_by_event_type("health.patient.registered")
        assert match.matched
        stats = store.get_cache_stats()
        assert stats["lastErrors"][0].startswith("Failed to load patient.json")

    def test_failed_reload_waits_for_next_expiry(self, rules_dir, clock, load_counter):
        store = RuleStore(rules_dir, cache_ttl=60, clock=clock)
        store.load_rules()

        (rules_dir / "patient.json").write_text("{broken", encoding="utf-8")
        clock.advance(61)
        store.get_rules()
        assert len(load_counter) == 2

        for _ in range(3):
            clock.advance(10)
            assert store.find_rule_by_event_type("health.patient.registered").matched
        assert len(load_counter) == 2

        clock.advance(31)
        store.get_rules()
        assert len(load_counter) == 3

    def test_cache_stats(self, rules_dir, clock):
        store = RuleStore(rules_dir, cache_ttl=60, clock=clock)
        store.load_rules()
        clock.advance(5)

        stats = store.get_cache_stats()
        assert stats["cachedRules"] == 2
        assert stats["reloads"] == 1
        assert stats["lastRefresh"] == 1000.0
        assert stats["cacheAge"] == 5.0
        assert stats["ttlSeconds"] == 60
        assert stats["cachingEnabled"] is True

    def test_cache_metrics(self, rules_dir, clock):
        metrics = Metrics()
        store = RuleStore(rules_dir, clock=clock, metrics=metrics)
        store.get_rules()
        store.get_rules()

        assert metrics.registry.get_sample_value("eventrouter_rule_cache_total", {"result": "miss"}) == 1.0
        assert metrics.registry.get_sample_value("eventrouter_rule_cache_total", {"result": "hit"}) == 1.0

    def test_load_rules_switches_directory(self, rules_dir, tmp_path_factory, clock):
        other = tmp_path_factory.mktemp("other-rules")
        (other / "x.json").write_text(json.dumps(rule_doc("other-rule", "x.y")), encoding="utf-8")

        store = RuleStore(rules_dir, clock=clock)
        result = store.load_rules(other)
        assert result.success
        assert store.rules_directory == other
        assert [r.name for r in store.get_rules()] == ["other-rule"]

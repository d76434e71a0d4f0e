"""Tests for loading transformation rules from disk."""
import json
import pytest
from eventrouter.transform.loader import load_rules, parse_rule


def rule_doc(name="patient-to-fhir", event_type="health.patient.registered", **overrides):
    doc = {
        "name": name,
        "description": "Patient to FHIR",
        "eventType": event_type,
        "targetFormat": "fhir-r4",
        "enabled": True,
        "mappings": [
            {"source": "$.data.patientId", "target": "$.id", "required": True},
            {"source": "$.data.lastName", "target": "$.name[0].family", "transform": "toUpperCase"},
        ],
    }
    doc.update(overrides)
    return doc


def write_json(path, content):
    path.write_text(json.dumps(content), encoding="utf-8")


class TestParseRule:
    """Test single rule validation"""

    def test_valid_rule(self):
        rule = parse_rule(rule_doc())
        assert rule.name == "patient-to-fhir"
        assert rule.event_type == "health.patient.registered"
        assert rule.target_format == "fhir-r4"
        assert len(rule.mappings) == 2
        assert rule.mappings[1].transform == "toUpperCase"

    def test_missing_required_fields(self):
        raw = rule_doc()
        del raw["eventType"]
        del raw["targetFormat"]
        with pytest.raises(ValueError) as exc_info:
            parse_rule(raw)
        assert "Missing required field: eventType" in str(exc_info.value)
        assert "Missing required field: targetFormat" in str(exc_info.value)

    def test_empty_mappings(self):
        with pytest.raises(ValueError, match="mappings"):
            parse_rule(rule_doc(mappings=[]))

    def test_source_path_must_be_rooted(self):
        raw = rule_doc(mappings=[{"source": "data.id", "target": "$.id"}])
        with pytest.raises(ValueError, match=r"Mapping 0: Source path must start with \$"):
            parse_rule(raw)

    def test_target_path_must_be_rooted(self):
        raw = rule_doc(mappings=[{"source": "$.data.id", "target": "id"}])
        with pytest.raises(ValueError, match=r"Target path must start with \$"):
            parse_rule(raw)

    def test_unknown_transform(self):
        raw = rule_doc(mappings=[{"source": "$.a", "target": "$.b", "transform": "reverse"}])
        with pytest.raises(ValueError, match="transform"):
            parse_rule(raw)

    def test_not_an_object(self):
        with pytest.raises(ValueError, match="rule must be an object"):
            parse_rule(["not", "a", "rule"])


class TestLoadRules:
    """Test directory loading"""

    def test_loads_json_and_yaml(self, tmp_path):
        write_json(tmp_path / "a-patient.json", rule_doc())
        (tmp_path / "b-encounter.yaml").write_text(
            "name: encounter-summary\n"
            "eventType: health.encounter.completed\n"
            "targetFormat: json\n"
            "mappings:\n"
            "  - source: $.data.encounterId\n"
            "    target: $.encounter.id\n",
            encoding="utf-8",
        )
        (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

        result = load_rules(tmp_path)
        assert result.success
        assert result.errors is None
        assert [r.name for r in result.rules] == ["patient-to-fhir", "encounter-summary"]
        assert result.sources["encounter-summary"].endswith("b-encounter.yaml")

    def test_file_with_rule_list(self, tmp_path):
        write_json(tmp_path / "rules.json", [rule_doc("one", "a.b"), rule_doc("two", "c.d")])
        result = load_rules(tmp_path)
        assert result.success
        assert [r.name for r in result.rules] == ["one", "two"]

    def test_custom_subdirectory(self, tmp_path):
        (tmp_path / "custom").mkdir()
        write_json(tmp_path / "custom" / "site.json", rule_doc("site-rule"))
        result = load_rules(tmp_path)
        assert [r.name for r in result.rules] == ["site-rule"]

    def test_duplicate_names_rejected(self, tmp_path):
        write_json(tmp_path / "a.json", rule_doc("dup"))
        write_json(tmp_path / "b.json", rule_doc("dup", "other.type"))

        result = load_rules(tmp_path)
        assert not result.success
        assert [r.name for r in result.rules] == ["dup"]
        assert len(result.errors) == 1
        assert "duplicate rule name: dup" in result.errors[0]
        assert result.sources["dup"].endswith("a.json")

    def test_invalid_files_reported_valid_rules_kept(self, tmp_path):
        write_json(tmp_path / "good.json", rule_doc())
        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
        write_json(tmp_path / "invalid.json", {"name": "bad"})

        result = load_rules(tmp_path)
        assert not result.success
        assert [r.name for r in result.rules] == ["patient-to-fhir"]
        assert any(e.startswith("Failed to load broken.json") for e in result.errors)
        assert any(e.startswith("Invalid rule in invalid.json") for e in result.errors)

    def test_empty_yaml_file(self, tmp_path):
        (tmp_path / "empty.yaml").write_text("", encoding="utf-8")
        result = load_rules(tmp_path)
        assert result.success
        assert result.rules == []

    def test_missing_directory(self, tmp_path):
        result = load_rules(tmp_path / "nope")
        assert not result.success
        assert result.errors[0].startswith("Rules directory not found")

"""Tests for the routing and transformation HTTP API."""
import inspect
import json
import pytest
from fastapi.routing import APIRoute
from httpx import AsyncClient, ASGITransport
from eventrouter.config import Settings
from eventrouter.main import create_app
from eventrouter.routing.table import RoutingTable
from eventrouter.transform.store import RuleStore

ROUTING_YAML = """
metadata:
  version: "1.2.0"
  lastUpdated: "2025-10-10"
  description: "api test config"
settings:
  fallbackBehavior: "{fallback}"
  validateOnLoad: true
  dynamicReload: false
  reloadInterval: 60000
  enableMetrics: true
routes:
  - name: "patients"
    enabled: true
    source: "smile.health-service"
    type: "health.patient.*"
    strategy: "type"
    priority: 5
    destination:
      type: "http"
      endpoint: "http://mediator:3000/patients"
    transform:
      enabled: true
      config:
        rule: "patient-to-fhir"
  - name: "encounters"
    enabled: true
    source: "*"
    type: "health.encounter.*"
    strategy: "type"
    priority: 5
    destination:
      type: "queue"
      queue: "encounters"
      routingKey: "encounter"
  - name: "disabled"
    enabled: false
    source: "*"
    type: "*"
    strategy: "fallback"
    priority: 0
    destination:
      type: "queue"
      queue: "audit"
"""

PATIENT_RULE = {
    "name": "patient-to-fhir",
    "eventType": "health.patient.registered",
    "targetFormat": "fhir-r4",
    "mappings": [
        {"source": "$.data.patientId", "target": "$.id", "required": True},
        {"source": "$.data.gender", "target": "$.gender", "transform": "mapGender"},
    ],
}


def patient_event(**data):
    payload = {"patientId": "p-1", "gender": "M"}
    payload.update(data)
    return {
        "specversion": "1.0",
        "type": "health.patient.registered",
        "source": "smile.health-service",
        "id": "evt-1",
        "data": payload,
    }


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "routing.yaml"
    path.write_text(ROUTING_YAML.format(fallback="route-to-fallback-queue"), encoding="utf-8")
    return path


@pytest.fixture
def rules_dir(tmp_path):
    directory = tmp_path / "rules"
    directory.mkdir()
    (directory / "patient.json").write_text(json.dumps(PATIENT_RULE), encoding="utf-8")
    return directory


def build_app(config_file, rules_dir, fallback_queue="fallback", load=True):
    settings = Settings(RULES_DIRECTORY=str(rules_dir), FALLBACK_QUEUE=fallback_queue, LOG_JSON=False)
    table = RoutingTable(fallback_queue=fallback_queue)
    if load:
        table.load_file(config_file)
    return create_app(settings=settings, routing_table=table, rule_store=RuleStore(rules_dir))


def client_for(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_route_event(config_file, rules_dir):
    """Test resolving a destination for an event."""
    async with client_for(build_app(config_file, rules_dir)) as client:
        response = await client.post("/v1/route", json=patient_event())

    assert response.status_code == 200
    data = response.json()
    assert data["event_id"] == "evt-1"
    assert data["outcome"] == "routed"
    assert data["route"] == "patients"
    assert data["destination"]["type"] == "http"
    assert data["destination"]["endpoint"] == "http://mediator:3000/patients"
    assert data["correlation_id"] == "evt-1"


@pytest.mark.asyncio
async def test_route_event_fallback(config_file, rules_dir):
    """Test unmatched events go to the fallback queue."""
    async with client_for(build_app(config_file, rules_dir, fallback_queue="dead-letters")) as client:
        event = patient_event()
        event["type"] = "billing.invoice.created"
        response = await client.post("/v1/route", json=event)

    data = response.json()
    assert response.status_code == 200
    assert data["outcome"] == "fallback"
    assert data["route"] is None
    assert data["destination"] == {"type": "queue", "queue": "dead-letters", "exchange": None, "routingKey": None}


@pytest.mark.asyncio
async def test_route_event_error_fallback(tmp_path, rules_dir):
    """Test fallbackBehavior=error maps to 422."""
    path = tmp_path / "routing-error.yaml"
    path.write_text(ROUTING_YAML.format(fallback="error"), encoding="utf-8")

    async with client_for(build_app(path, rules_dir)) as client:
        event = patient_event()
        event["source"] = "unknown"
        response = await client.post("/v1/route", json=event, headers={"X-Correlation-ID": "corr-9"})

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "NoRouteMatched"
    assert data["correlation_id"] == "corr-9"
    assert data["path"] == "/v1/route"


@pytest.mark.asyncio
async def test_route_invalid_event(config_file, rules_dir):
    """Test invalid envelopes are rejected before routing."""
    async with client_for(build_app(config_file, rules_dir)) as client:
        response = await client.post("/v1/route", json={"type": "x"})

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert "Missing required field: specversion" in detail
    assert "Missing required field: id" in detail


@pytest.mark.asyncio
async def test_route_not_loaded(config_file, rules_dir):
    """Test 503 when no routing configuration is loaded."""
    async with client_for(build_app(config_file, rules_dir, load=False)) as client:
        response = await client.post("/v1/route", json=patient_event())

    assert response.status_code == 503
    assert response.json()["error"] == "ConfigurationNotLoaded"


@pytest.mark.asyncio
async def test_correlation_id_from_header(config_file, rules_dir):
    """Test a provided correlation ID wins over the event's."""
    async with client_for(build_app(config_file, rules_dir)) as client:
        response = await client.post("/v1/route", json=patient_event(), headers={"X-Correlation-ID": "corr-1"})

    assert response.json()["correlation_id"] == "corr-1"
    assert response.headers["X-Correlation-ID"] == "corr-1"


@pytest.mark.asyncio
async def test_list_routes(config_file, rules_dir):
    """Test listing configured routes."""
    async with client_for(build_app(config_file, rules_dir)) as client:
        all_routes = (await client.get("/v1/routes")).json()
        enabled = (await client.get("/v1/routes", params={"enabled_only": "true"})).json()

    assert all_routes["total"] == 3
    assert all_routes["version"] == "1.2.0"
    assert [r["name"] for r in all_routes["routes"]] == ["patients", "encounters", "disabled"]
    assert all_routes["routes"][1]["destination"]["routingKey"] == "encounter"
    assert enabled["total"] == 2


@pytest.mark.asyncio
async def test_reload_routes(config_file, rules_dir):
    """Test reloading and failed reloads."""
    app = build_app(config_file, rules_dir)
    async with client_for(app) as client:
        config_file.write_text(
            ROUTING_YAML.format(fallback="drop").replace('version: "1.2.0"', 'version: "1.3.0"'),
            encoding="utf-8",
        )
        response = await client.post("/v1/routes/reload")
        assert response.status_code == 200
        assert response.json() == {"reloaded": True, "version": "1.3.0", "route_count": 3}

        config_file.write_text("metadata: {}\n", encoding="utf-8")
        response = await client.post("/v1/routes/reload")
        assert response.status_code == 422
        assert app.state.routing_table.get_config().metadata.version == "1.3.0"


@pytest.mark.asyncio
async def test_transform_event(config_file, rules_dir):
    """Test transforming by event type."""
    async with client_for(build_app(config_file, rules_dir)) as client:
        response = await client.post("/v1/transform", json=patient_event())

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["data"] == {"id": "p-1", "gender": "male"}
    assert data["metadata"]["rule"] == "patient-to-fhir"
    assert data["metadata"]["eventType"] == "health.patient.registered"
    assert "transformedAt" in data["metadata"]


@pytest.mark.asyncio
async def test_transform_partial_failure(config_file, rules_dir):
    """Test mapping errors return 422 with partial data."""
    async with client_for(build_app(config_file, rules_dir)) as client:
        event = patient_event()
        del event["data"]["patientId"]
        response = await client.post("/v1/transform", json=event)

    assert response.status_code == 422
    data = response.json()
    assert data["success"] is False
    assert data["errors"] == ["Required field missing: $.data.patientId -> $.id"]
    assert data["data"] == {"gender": "male"}


@pytest.mark.asyncio
async def test_transform_out_of_range_number(config_file, rules_dir):
    """Test a number too large for JSON is a mapping error, not a server error."""
    rule = dict(PATIENT_RULE, mappings=PATIENT_RULE["mappings"] + [
        {"source": "$.data.amount", "target": "$.amount", "transform": "toNumber"},
    ])
    (rules_dir / "patient.json").write_text(json.dumps(rule), encoding="utf-8")

    async with client_for(build_app(config_file, rules_dir)) as client:
        response = await client.post("/v1/transform", json=patient_event(amount="1e999"))

    assert response.status_code == 422
    data = response.json()
    assert data["errors"] == ['Transformation failed for $.amount: Cannot convert "1e999" to number']
    assert data["data"] == {"id": "p-1", "gender": "male"}


@pytest.mark.asyncio
async def test_transform_unknown_rule(config_file, rules_dir):
    async with client_for(build_app(config_file, rules_dir)) as client:
        response = await client.post("/v1/transform", params={"rule": "nope"}, json=patient_event())

    assert response.status_code == 422
    assert response.json()["errors"] == ["Rule not found: nope"]


@pytest.mark.asyncio
async def test_process_event(config_file, rules_dir):
    """Test resolve plus transform for routes with transforms enabled."""
    async with client_for(build_app(config_file, rules_dir)) as client:
        response = await client.post("/v1/process", json=patient_event())

    assert response.status_code == 200
    data = response.json()
    assert data["route"] == "patients"
    assert data["transformed"] is True
    assert data["document"] == {"id": "p-1", "gender": "male"}
    assert data["transform_errors"] is None


@pytest.mark.asyncio
async def test_process_event_without_transform(config_file, rules_dir):
    async with client_for(build_app(config_file, rules_dir)) as client:
        event = patient_event()
        event["type"] = "health.encounter.completed"
        response = await client.post("/v1/process", json=event)

    data = response.json()
    assert data["route"] == "encounters"
    assert data["transformed"] is False
    assert data["document"] is None


@pytest.mark.asyncio
async def test_rules_endpoints(config_file, rules_dir):
    """Test rule listing and cache management."""
    async with client_for(build_app(config_file, rules_dir)) as client:
        rules = (await client.get("/v1/rules")).json()
        assert rules["total"] == 1
        assert rules["rules"][0]["eventType"] == "health.patient.registered"

        rule = await client.get("/v1/rules/patient-to-fhir")
        assert rule.status_code == 200
        assert rule.json()["filePath"].endswith("patient.json")

        missing = await client.get("/v1/rules/nope")
        assert missing.status_code == 404

        stats = (await client.get("/v1/rules/cache")).json()
        assert stats["cachedRules"] == 1
        assert stats["misses"] == 1

        cleared = await client.delete("/v1/rules/cache")
        assert cleared.status_code == 204

        stats = (await client.get("/v1/rules/cache")).json()
        assert stats["cachedRules"] == 0


@pytest.mark.parametrize(
    "path, method",
    [
        ("/v1/transform", "POST"),
        ("/v1/process", "POST"),
        ("/v1/routes/reload", "POST"),
        ("/v1/rules", "GET"),
        ("/v1/rules/{rule_name}", "GET"),
    ],
)
def test_file_reading_handlers_run_in_threadpool(config_file, rules_dir, path, method):
    """Test handlers that may reload from disk are sync endpoints."""
    app = build_app(config_file, rules_dir)
    endpoint = next(
        route.endpoint for route in app.routes
        if isinstance(route, APIRoute) and route.path == path and method in route.methods
    )
    assert not inspect.iscoroutinefunction(endpoint)

import random
from datetime import datetime, timezone

from fastapi.testclient import TestClient

from safety_map.generation import build_incident
from safety_map.geodesy import destination_point
from safety_map.incidents import IncidentLifecycleEngine
from safety_map.models import Coordinates, IncidentCategory, IncidentStatus, Severity
from safety_map.movement import MovementSimulator
from safety_map.routing import RouteService, StraightLineProvider
from safety_map.system import SituationalAwarenessSystem
from safety_map.web_app import create_app

START = Coordinates(longitude=-122.4194, latitude=37.7749)


def _client(start_background: bool = False) -> TestClient:
    rng = random.Random(1)
    simulator = MovementSimulator(START, profile="walking", route_service=RouteService(StraightLineProvider()), rng=rng)
    engine = IncidentLifecycleEngine(
        [
            build_incident(
                IncidentCategory.EMERGENCY,
                Severity.HIGH,
                destination_point(START, 0.0, 35.0),
                status=IncidentStatus.IN_PROGRESS,
                created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
                incident_id="fixed-incident-1",
            ),
            build_incident(
                IncidentCategory.TRAFFIC,
                Severity.LOW,
                destination_point(START, 180.0, 600.0),
                status=IncidentStatus.RESOLVED,
                incident_id="cleared",
            ),
        ],
        rng=rng,
    )
    system = SituationalAwarenessSystem(simulator, engine)
    return TestClient(create_app(system, start_background=start_background))


def test_read_api_reports_position_incidents_and_safety() -> None:
    client = _client()

    assert client.get("/health").json() == {"status": "ok"}

    location = client.get("/location").json()
    assert location["coordinates"] == [START.longitude, START.latitude]
    assert location["movement"]["profile"] == "walking"

    incidents = client.get("/incidents").json()
    assert [item["id"] for item in incidents] == ["fixed-incident-1", "cleared"]
    assert incidents[0]["distance_m"] == 35.0

    active = client.get("/incidents", params={"active": "true"}).json()
    assert [item["id"] for item in active] == ["fixed-incident-1"]

    safety = client.get("/safety").json()
    assert safety["level"] == "critical"
    assert safety["nearest_severity"] == "high"


def test_operator_overrides_are_recorded() -> None:
    client = _client()

    resp = client.patch("/incidents/cleared/status", json={"status": "in_progress"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "in_progress"
    assert body["timeline"][-1]["kind"] == "status_change"

    resp = client.patch("/incidents/fixed-incident-1/severity", json={"severity": "critical"})
    assert resp.json()["severity"] == "critical"

    resp = client.post("/incidents/fixed-incident-1/notes", json={"note": "Perimeter set"})
    assert resp.status_code == 200

    activity = client.get("/activity").json()
    assert [item["kind"] for item in activity] == ["note", "severity_change", "status_change"]


def test_unknown_incident_and_bad_payloads_are_rejected() -> None:
    client = _client()

    assert client.get("/incidents/nope").status_code == 404
    assert client.patch("/incidents/nope/status", json={"status": "resolved"}).status_code == 404
    assert client.patch("/incidents/cleared/status", json={"status": "closed"}).status_code == 422
    assert client.post("/profile", json={"profile": "flying"}).status_code == 422
    assert client.post("/target", json={"longitude": 500, "latitude": 0}).status_code == 422


def test_target_and_profile_updates() -> None:
    client = _client()

    resp = client.post("/target", json={"longitude": -122.41, "latitude": 37.78})
    assert resp.json()["target"] == [-122.41, 37.78]
    assert client.get("/location").json()["movement"]["pending_target"] == [-122.41, 37.78]

    resp = client.post("/profile", json={"profile": "driving"})
    assert resp.json()["movement"]["speed_mps"] == 13.9

    client.delete("/target")
    assert client.get("/location").json()["movement"]["pending_target"] is None


def test_lifespan_runs_the_simulation() -> None:
    with _client(start_background=True) as client:
        assert client.get("/health").status_code == 200
        assert client.get("/location").json()["movement"]["route_in_flight"] in {True, False}

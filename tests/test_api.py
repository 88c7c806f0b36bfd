"""
Tests for the HTTP surface: routing, organization header and error mapping.
"""

import pytest
from fastapi.testclient import TestClient

from pool_dispatch import api

from conftest import MONDAY, ORG, OTHER_ORG, add_job

HEADERS = {"X-Organization-Id": str(ORG)}


@pytest.fixture
def client(service, monkeypatch):
    monkeypatch.setattr(api, "service", service)
    return TestClient(api.app)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database_connected"] is True
    assert body["google_api_configured"] is False


def test_organization_header_is_required(client, world):
    response = client.get("/dispatch/daily-board", params={"date": MONDAY})
    assert response.status_code == 422


def test_daily_board(client, world):
    response = client.get("/dispatch/daily-board", params={"date": MONDAY}, headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["day_of_week"] == "monday"
    assert body["technicians"][0]["estimated_hours"] == 1.5
    assert body["technicians"][0]["status"] == "available"
    assert body["technicians"][1]["status"] == "off"


def test_bad_date_is_400(client, world):
    response = client.get("/dispatch/daily-board", params={"date": "not-a-date"}, headers=HEADERS)
    assert response.status_code == 400
    assert "YYYY-MM-DD" in response.json()["error"]


def test_technician_workload(client, world):
    response = client.get("/dispatch/technician-workload", params={"week_start": "2025-01-05"}, headers=HEADERS)
    assert response.status_code == 200
    assert response.json()[0]["days"]["monday"] == 3


def test_stale_reassign_is_409(client, world):
    response = client.post("/dispatch/reassign-route", headers=HEADERS, json={
        "route_id": world.route.id,
        "from_technician_id": world.bob.id,
        "to_technician_id": world.bob.id,
    })
    assert response.status_code == 409
    assert "error" in response.json()


def test_other_organization_route_is_404(client, world):
    response = client.get(f"/dispatch/routes/{world.route.id}/stops", headers={"X-Organization-Id": str(OTHER_ORG)})
    assert response.status_code == 404
    assert response.json() == {"error": f"Route {world.route.id} not found"}


def test_add_emergency_stop_and_list(client, world):
    response = client.post("/dispatch/add-emergency-stop", headers=HEADERS, json={
        "route_id": world.route.id,
        "client_id": world.clients[1].id,
        "position": 0,
        "notes": "Pump failure",
    })
    assert response.status_code == 200
    assert response.json()["stop"]["order_index"] == 0

    stops = client.get(f"/dispatch/routes/{world.route.id}/stops", headers=HEADERS).json()
    assert [s["order_index"] for s in stops] == [0, 1, 2, 3]
    assert stops[0]["custom_instructions"] == "Pump failure"


def test_reorder_stop_rejects_unknown_direction(client, world):
    response = client.post("/dispatch/reorder-stop", headers=HEADERS, json={
        "route_id": world.route.id, "stop_id": world.stops[0].id, "direction": "sideways",
    })
    assert response.status_code == 422


def test_reorder_stop_boundary(client, world):
    response = client.post("/dispatch/reorder-stop", headers=HEADERS, json={
        "route_id": world.route.id, "stop_id": world.stops[0].id, "direction": "up",
    })
    assert response.status_code == 200
    assert response.json()["message"] == "Already at boundary"


def test_full_reorder_move_and_remove(client, world):
    stop_ids = [s.id for s in reversed(world.stops)]
    response = client.post(f"/dispatch/routes/{world.route.id}/reorder-stops", headers=HEADERS,
                           json={"stop_ids": stop_ids})
    assert [s["id"] for s in response.json()["stops"]] == stop_ids

    response = client.post("/dispatch/move-stop", headers=HEADERS,
                           json={"stop_id": stop_ids[0], "to_route_id": world.spare.id})
    assert response.status_code == 200
    assert response.json()["stop"]["route_id"] == world.spare.id

    response = client.delete(f"/dispatch/stops/{stop_ids[1]}", headers=HEADERS)
    assert response.status_code == 200
    assert [s["id"] for s in response.json()["stops"]] == [stop_ids[2]]


def test_assignments(client, service, world):
    job = add_job(service.repo, world.clients[0], MONDAY)
    add_job(service.repo, world.clients[0], "2025-01-13")

    response = client.post("/dispatch/assign-client-stops", headers=HEADERS,
                           json={"client_id": world.clients[0].id, "route_id": world.route.id})
    assert response.status_code == 200
    assignments = response.json()["assignments"]
    assert len(assignments) == 2

    response = client.post("/dispatch/assign-job", headers=HEADERS,
                           json={"maintenance_id": job.id, "route_id": world.spare.id})
    assert response.status_code == 400

    response = client.put(f"/dispatch/assignments/{assignments[0]['id']}/status", headers=HEADERS,
                          json={"status": "in_progress"})
    assert response.status_code == 200
    assert response.json()["assignment"]["status"] == "in_progress"

    response = client.get(f"/dispatch/assignments/technician/{world.alice.id}", headers=HEADERS,
                          params={"start_date": "2025-01-01", "end_date": "2025-01-07"})
    assert [a["maintenance_id"] for a in response.json()] == [job.id]


def test_list_routes(client, world):
    response = client.get("/dispatch/routes", headers=HEADERS, params={"day_of_week": "tuesday"})
    assert [r["id"] for r in response.json()] == [world.spare.id]

    response = client.get("/dispatch/routes", headers=HEADERS, params={"technician_id": world.alice.id})
    assert [r["id"] for r in response.json()] == [world.route.id]


def test_optimize_route_without_key(client, service, world):
    for stop, (lat, lon) in zip(world.stops, [(0.0, 10.0), (0.0, 0.0), (0.0, 1.0)]):
        service.repo.update_stop(stop, {"address_lat": lat, "address_lng": lon})

    response = client.post(f"/dispatch/optimize-route/{world.route.id}", headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["method"] == "nearest_neighbor"
    assert body["degraded"] is True
    assert [s["id"] for s in body["stops"]] == [world.stops[0].id, world.stops[2].id, world.stops[1].id]

    response = client.get(f"/dispatch/routes/{world.route.id}/driving-times", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["driving_times"] == []
    assert response.json()["degraded"] is True


def test_route_records(client, world):
    response = client.post("/dispatch/routes", headers=HEADERS, json={
        "name": "Alice Thursday", "day_of_week": "thursday", "technician_id": world.alice.id,
    })
    assert response.status_code == 201
    route_id = response.json()["id"]

    response = client.put(f"/dispatch/routes/{route_id}", headers=HEADERS, json={"color": "#ff8800"})
    assert response.status_code == 200
    assert response.json()["color"] == "#ff8800"
    assert response.json()["version"] == 1

    response = client.post("/dispatch/stops", headers=HEADERS, json={
        "route_id": route_id, "client_id": world.clients[0].id, "estimated_duration": 25,
    })
    assert response.status_code == 201
    stop_id = response.json()["stop"]["id"]

    response = client.put(f"/dispatch/stops/{stop_id}", headers=HEADERS, json={"custom_instructions": "Side gate"})
    assert response.json()["stop"]["custom_instructions"] == "Side gate"

    response = client.get(f"/dispatch/stops/client/{world.clients[0].id}", headers=HEADERS)
    assert [s["route_id"] for s in response.json()] == [world.route.id, route_id]

    response = client.delete(f"/dispatch/routes/{route_id}", headers=HEADERS)
    assert response.status_code == 204
    assert client.get(f"/dispatch/routes/{route_id}/stops", headers=HEADERS).status_code == 404


def test_route_records_validation(client, world):
    response = client.post("/dispatch/routes", headers=HEADERS, json={"name": "No day"})
    assert response.status_code == 422

    response = client.put(f"/dispatch/routes/{world.route.id}", headers=HEADERS, json={"name": None})
    assert response.status_code == 400

    response = client.delete(f"/dispatch/routes/{world.route.id}", headers={"X-Organization-Id": str(OTHER_ORG)})
    assert response.status_code == 404


def test_assignment_lookups_and_delete(client, service, world):
    job = add_job(service.repo, world.clients[0], MONDAY)
    response = client.post("/dispatch/assign-job", headers=HEADERS,
                           json={"maintenance_id": job.id, "route_id": world.route.id})
    assignment_id = response.json()["assignment"]["id"]

    response = client.get(f"/dispatch/assignments/date/{MONDAY}", headers=HEADERS)
    assert [a["id"] for a in response.json()] == [assignment_id]

    response = client.get("/dispatch/assignments/date/monday", headers=HEADERS)
    assert response.status_code == 400

    response = client.get(f"/dispatch/assignments/maintenance/{job.id}", headers=HEADERS)
    assert [a["id"] for a in response.json()] == [assignment_id]

    response = client.delete(f"/dispatch/assignments/{assignment_id}", headers=HEADERS)
    assert response.status_code == 204
    assert client.get(f"/dispatch/assignments/maintenance/{job.id}", headers=HEADERS).json() == []

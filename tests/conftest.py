"""
Shared fixtures: a file-backed SQLite service per test and seed helpers.
"""

import asyncio
from types import SimpleNamespace
from typing import Callable, List, Optional

import httpx
import pytest

from pool_dispatch.models import DayOfWeek, MaintenanceStatus
from pool_dispatch.schemas import AppConfig, Settings
from pool_dispatch.service import DispatchService


ORG = 1
OTHER_ORG = 2
MONDAY = "2025-01-06"


def create_test_config(db_path) -> AppConfig:
    """Create test configuration."""
    return AppConfig(
        project={"name": "Test", "version": "0.1.0"},
        dispatch={"default_stop_minutes": 30, "pending_job_statuses": ["scheduled"]},
        google={"max_waypoints": 27, "timeout_seconds": 1.0, "max_retries": 2, "retry_delay_seconds": 0.0},
        database={"url": f"sqlite:///{db_path}", "echo": False},
        logging={"level": "INFO", "format": "%(message)s"},
    )


def make_service(config: AppConfig, api_key: Optional[str] = None, handler: Optional[Callable] = None):
    transport = httpx.MockTransport(handler) if handler else None
    return DispatchService(config=config, settings=Settings(google_maps_api_key=api_key), transport=transport)


def directions_payload(n_points: int, waypoint_order: Optional[List[int]] = None) -> dict:
    """Minimal OK Directions response with n_points - 1 legs."""
    legs = [
        {
            "duration": {"value": 60 * (i + 1), "text": f"{i + 1} mins"},
            "distance": {"value": 1000 * (i + 1), "text": f"{i + 1}.0 km"},
        }
        for i in range(n_points - 1)
    ]
    route = {"legs": legs}
    if waypoint_order is not None:
        route["waypoint_order"] = waypoint_order
    return {"status": "OK", "routes": [route]}


def request_points(request: httpx.Request) -> int:
    """Number of points (origin + waypoints + destination) in a Directions request."""
    waypoints = request.url.params.get("waypoints")
    if not waypoints:
        return 2
    return 2 + len([w for w in waypoints.split("|") if w != "optimize:true"])


def reverse_handler(calls: list):
    """Provider stub that reverses the intermediate waypoints."""
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        n = request_points(request)
        order = list(reversed(range(n - 2))) if "optimize:true" in request.url.params.get("waypoints", "") else None
        return httpx.Response(200, json=directions_payload(n, order))
    return handler


@pytest.fixture
def config(tmp_path):
    return create_test_config(tmp_path / "dispatch.db")


@pytest.fixture
def service(config):
    svc = make_service(config)
    yield svc
    asyncio.run(svc.close())


def add_client(repo, org=ORG, name="Client", lat=None, lon=None):
    return repo.create_client({
        "organization_id": org,
        "name": name,
        "address": f"{name} St",
        "latitude": lat,
        "longitude": lon,
    })


def add_route(repo, org=ORG, technician_id=None, day=DayOfWeek.MONDAY, name="Route"):
    return repo.create_route({
        "organization_id": org,
        "name": name,
        "technician_id": technician_id,
        "day_of_week": day,
    })


def add_stops(repo, route, clients, durations=None):
    stops = []
    for i, client in enumerate(clients):
        stops.append(repo.create_stop({
            "organization_id": route.organization_id,
            "route_id": route.id,
            "client_id": client.id,
            "order_index": i,
            "estimated_duration": durations[i] if durations else 30,
        }))
    return stops


def add_job(repo, client, schedule_date=MONDAY, status=MaintenanceStatus.SCHEDULED, notes=None):
    return repo.create_maintenance({
        "organization_id": client.organization_id,
        "client_id": client.id,
        "schedule_date": schedule_date,
        "status": status,
        "notes": notes,
    })


@pytest.fixture
def world(service):
    """Two technicians; Alice has a Monday route with 3 stops (20/30/40 min)."""
    repo = service.repo
    alice = repo.create_technician({"organization_id": ORG, "name": "Alice"})
    bob = repo.create_technician({"organization_id": ORG, "name": "Bob"})
    clients = [add_client(repo, name=n) for n in ("Ames", "Baker", "Cole")]
    route = add_route(repo, technician_id=alice.id, name="Alice Monday")
    stops = add_stops(repo, route, clients, durations=[20, 30, 40])
    spare = add_route(repo, technician_id=bob.id, day=DayOfWeek.TUESDAY, name="Bob Tuesday")

    outsider = repo.create_technician({"organization_id": OTHER_ORG, "name": "Olga"})
    other_client = add_client(repo, org=OTHER_ORG, name="Other")
    other_route = add_route(repo, org=OTHER_ORG, technician_id=outsider.id, name="Other Monday")
    add_stops(repo, other_route, [other_client])

    return SimpleNamespace(
        alice=alice, bob=bob, clients=clients, route=route, stops=stops, spare=spare,
        outsider=outsider, other_client=other_client, other_route=other_route,
    )


def stop_order(service, route_id, org=ORG):
    """(stop id, order_index) pairs of a route as stored."""
    return [(s.id, s.order_index) for s in service.repo.get_stops_by_route(org, route_id)]


def assert_contiguous(service, route_id, org=ORG):
    indices = [index for _, index in stop_order(service, route_id, org)]
    assert indices == list(range(len(indices)))

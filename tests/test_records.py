"""
Tests for route and stop records: create, update, delete and lookups.
"""

import pytest

from pool_dispatch.errors import ConcurrentModification, InvalidRequest, NotFound
from pool_dispatch.models import DayOfWeek, Route
from pool_dispatch.schemas import (
    AssignJobRequest, RouteCreateRequest, RouteUpdateRequest, StopCreateRequest, StopUpdateRequest,
)

from conftest import MONDAY, ORG, OTHER_ORG, add_job, assert_contiguous, stop_order


def ids(service, route_id):
    return [stop_id for stop_id, _ in stop_order(service, route_id)]


# Routes
def test_create_route(service, world):
    route = service.create_route(ORG, RouteCreateRequest(
        name="Bob Friday", day_of_week=DayOfWeek.FRIDAY, technician_id=world.bob.id, color="#00aaff"
    ))
    assert route.version == 0
    assert route.technician_id == world.bob.id

    friday = service.list_routes(ORG, day_of_week=DayOfWeek.FRIDAY)
    assert [r.id for r in friday] == [route.id]
    assert service.route_stops(ORG, route.id) == []


def test_create_route_with_other_organization_technician(service, world):
    with pytest.raises(NotFound):
        service.create_route(ORG, RouteCreateRequest(
            name="Stolen", day_of_week=DayOfWeek.MONDAY, technician_id=world.outsider.id
        ))
    assert len(service.list_routes(ORG)) == 2


def test_update_route_applies_only_sent_fields(service, world):
    route = service.update_route(ORG, world.route.id, RouteUpdateRequest(notes="Gate opens at 8"))
    assert route.notes == "Gate opens at 8"
    assert route.name == "Alice Monday"
    assert route.technician_id == world.alice.id
    assert route.version == 1

    route = service.update_route(ORG, world.route.id, RouteUpdateRequest(technician_id=None))
    assert route.technician_id is None
    assert route.version == 2


def test_update_route_rejects_null_name(service, world):
    with pytest.raises(InvalidRequest):
        service.update_route(ORG, world.route.id, RouteUpdateRequest(name=None))
    assert service.repo.get_route(ORG, world.route.id).version == 0


def test_update_route_of_other_organization(service, world):
    with pytest.raises(NotFound):
        service.update_route(OTHER_ORG, world.route.id, RouteUpdateRequest(notes="mine now"))


def test_delete_route_removes_stops_and_assignments(service, world):
    job = add_job(service.repo, world.clients[0], MONDAY)
    assigned = service.assign_job(ORG, AssignJobRequest(maintenance_id=job.id, route_id=world.route.id))

    service.delete_route(ORG, world.route.id)

    assert service.repo.get_route(ORG, world.route.id) is None
    assert ids(service, world.route.id) == []
    assert service.repo.get_assignment(ORG, assigned.assignment.id) is None
    assert service.repo.get_route(ORG, world.spare.id) is not None
    assert stop_order(service, world.other_route.id, org=OTHER_ORG) != []


def test_delete_route_of_other_organization(service, world):
    with pytest.raises(NotFound):
        service.delete_route(OTHER_ORG, world.route.id)
    assert len(ids(service, world.route.id)) == 3


def test_delete_route_loses_to_concurrent_writer(service, world):
    repo = service.repo
    with pytest.raises(ConcurrentModification):
        with repo.route_transaction(ORG, world.route.id) as (session, routes):
            with repo.get_session() as other:
                route = other.get(Route, world.route.id)
                route.version += 1
                other.add(route)
                other.commit()
            repo.delete_route(routes[world.route.id], session)

    assert repo.get_route(ORG, world.route.id).version == 1
    assert len(ids(service, world.route.id)) == 3


# Stops
def test_create_stop_at_position(service, world):
    result = service.create_stop(ORG, StopCreateRequest(
        route_id=world.route.id, client_id=world.clients[2].id, position=1,
        estimated_duration=45, address_lat=33.4, address_lng=-111.9,
    ))
    assert result.stop.order_index == 1
    assert result.stop.estimated_duration == 45
    assert result.stop.address_lat == 33.4
    assert result.stop.client.name == "Cole"

    assert ids(service, world.route.id)[1] == result.stop.id
    assert_contiguous(service, world.route.id)
    assert service.repo.get_route(ORG, world.route.id).version == 1


def test_create_stop_defaults(service, world):
    result = service.create_stop(ORG, StopCreateRequest(route_id=world.spare.id, client_id=world.clients[0].id))
    assert result.stop.order_index == 0
    assert result.stop.estimated_duration == service.config.dispatch.default_stop_minutes


def test_create_stop_with_other_organization_client(service, world):
    with pytest.raises(NotFound):
        service.create_stop(ORG, StopCreateRequest(route_id=world.route.id, client_id=world.other_client.id))
    assert len(ids(service, world.route.id)) == 3


def test_update_stop(service, world):
    stop_id = world.stops[1].id
    result = service.update_stop(ORG, stop_id, StopUpdateRequest(
        custom_instructions="Dog in yard", address_lat=33.5, address_lng=-112.1
    ))
    assert result.stop.custom_instructions == "Dog in yard"
    assert result.stop.estimated_duration == 30
    assert result.stop.order_index == 1

    stored = service.repo.get_stop(ORG, stop_id)
    assert (stored.address_lat, stored.address_lng) == (33.5, -112.1)
    assert service.repo.get_route(ORG, world.route.id).version == 1


def test_update_stop_rejects_null_duration(service, world):
    with pytest.raises(InvalidRequest):
        service.update_stop(ORG, world.stops[0].id, StopUpdateRequest(estimated_duration=None))


def test_update_stop_of_other_organization(service, world):
    with pytest.raises(NotFound):
        service.update_stop(OTHER_ORG, world.stops[0].id, StopUpdateRequest(custom_instructions="x"))


def test_client_stops(service, world):
    service.create_stop(ORG, StopCreateRequest(route_id=world.spare.id, client_id=world.clients[0].id))

    stops = service.client_stops(ORG, world.clients[0].id)

    assert [(s.route_id, s.order_index) for s in stops] == [(world.route.id, 0), (world.spare.id, 0)]
    assert all(s.client.name == "Ames" for s in stops)

    with pytest.raises(NotFound):
        service.client_stops(OTHER_ORG, world.clients[0].id)


# Assignment lookups
def test_assignment_lookups(service, world):
    monday_job = add_job(service.repo, world.clients[0], MONDAY)
    tuesday_job = add_job(service.repo, world.clients[1], "2025-01-07")
    monday = service.assign_job(ORG, AssignJobRequest(maintenance_id=monday_job.id, route_id=world.route.id))
    service.assign_job(ORG, AssignJobRequest(maintenance_id=tuesday_job.id, route_id=world.spare.id))

    assert [a.id for a in service.assignments_for_date(ORG, MONDAY)] == [monday.assignment.id]
    assert service.assignments_for_date(OTHER_ORG, MONDAY) == []
    assert [a.id for a in service.maintenance_assignments(ORG, monday_job.id)] == [monday.assignment.id]

    with pytest.raises(InvalidRequest):
        service.assignments_for_date(ORG, "01/06/2025")
    with pytest.raises(NotFound):
        service.maintenance_assignments(OTHER_ORG, monday_job.id)


def test_delete_assignment_keeps_stop(service, world):
    job = add_job(service.repo, world.clients[0], MONDAY)
    assigned = service.assign_job(ORG, AssignJobRequest(maintenance_id=job.id, route_id=world.route.id))

    with pytest.raises(NotFound):
        service.delete_assignment(OTHER_ORG, assigned.assignment.id)

    service.delete_assignment(ORG, assigned.assignment.id)

    assert service.repo.get_assignment(ORG, assigned.assignment.id) is None
    assert assigned.stop.id in ids(service, world.route.id)
    assert service.maintenance_assignments(ORG, job.id) == []
    # the job is free to be assigned again
    service.assign_job(ORG, AssignJobRequest(maintenance_id=job.id, route_id=world.spare.id))

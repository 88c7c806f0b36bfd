"""
Main service layer for pool dispatch.
Orchestrates route mutations, stop ordering and the dispatch board views.
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx
import yaml
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from .board import BoardBuilder, parse_date, stop_response
from .errors import ConcurrentModification, InvalidRequest, NotFound, StaleRouteState
from .integrations.google_directions import DirectionsClient
from .models import (
    AssignJobResult, AssignmentResponse, AssignmentStatus, AssignmentStatusResult,
    BulkAssignResult, Client, DailyBoard, DayOfWeek, DrivingTimesResult, MoveStopResult,
    OptimizeRouteResult, OrderMethod, ReassignRouteResult, RouteResponse, RouteStop,
    RouteStopResponse, StopDirection, StopOrderResult, StopResult, WorkloadRow,
)
from .repo import DatabaseRepository
from .router import RouteOrderPlanner
from .schemas import (
    AppConfig, Settings, AssignJobRequest, AssignmentStatusRequest, BulkAssignRequest,
    EmergencyStopRequest, MoveStopRequest, ReassignRouteRequest, ReorderRouteStopsRequest,
    ReorderStopRequest, RouteCreateRequest, RouteUpdateRequest, StopCreateRequest, StopUpdateRequest,
)
from .sequencer import GeoStop, split_geocoded

logger = logging.getLogger(__name__)

ALREADY_AT_BOUNDARY = "Already at boundary"


class DispatchService:
    """Main service for pool-route dispatch."""

    def __init__(
        self,
        config_path: str = "config/params.yaml",
        config: Optional[AppConfig] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize service with configuration."""
        self.config = config or self._load_config(config_path)
        self.settings = settings or Settings()

        # Setup logging
        self._setup_logging()

        # Initialize components
        self.repo = DatabaseRepository(self.config)
        self.directions = DirectionsClient(self.config, self.settings, transport=transport)
        self.planner = RouteOrderPlanner(self.config, self.directions)
        self.board = BoardBuilder(self.repo)

        # Initialize database
        self.repo.create_tables()

    def _load_config(self, config_path: str) -> AppConfig:
        """Load configuration from YAML file."""
        path = Path(config_path)
        if not path.exists():
            logger.warning(f"Config file {config_path} not found, using defaults")
            return AppConfig()
        try:
            with open(path, "r") as f:
                config_data = yaml.safe_load(f) or {}
            return AppConfig(**config_data)
        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise

    def _setup_logging(self) -> None:
        """Setup logging configuration."""
        logging.basicConfig(
            level=getattr(logging, self.config.logging.level),
            format=self.config.logging.format
        )

    # Helpers
    def _renumber(self, stops: List[RouteStop], session: Session) -> List[RouteStop]:
        """Rewrite order_index to 0..N-1 following the list order."""
        for index, stop in enumerate(stops):
            if stop.order_index != index:
                stop.order_index = index
                session.add(stop)
        return stops

    def _stop_responses(
        self, organization_id: int, stops: List[RouteStop]
    ) -> List[RouteStopResponse]:
        client_ids = sorted({s.client_id for s in stops})
        clients = {c.id: c for c in self.repo.get_clients(organization_id, client_ids)}
        return [stop_response(s, clients.get(s.client_id)) for s in stops]

    def _geo_stops(self, organization_id: int, stops: List[RouteStop]) -> List[GeoStop]:
        """Resolve coordinates: cached on the stop first, else the client's."""
        client_ids = sorted({s.client_id for s in stops})
        clients = {c.id: c for c in self.repo.get_clients(organization_id, client_ids)}
        geo = []
        for stop in stops:
            lat, lon = stop.address_lat, stop.address_lng
            if lat is None or lon is None:
                client = clients.get(stop.client_id)
                lat = client.latitude if client else None
                lon = client.longitude if client else None
            geo.append(GeoStop(stop_id=stop.id, lat=lat, lon=lon))
        return geo

    def _require_route(self, organization_id: int, route_id: int):
        route = self.repo.get_route(organization_id, route_id)
        if route is None:
            raise NotFound(f"Route {route_id} not found")
        return route

    def _require_stop(self, organization_id: int, stop_id: int) -> RouteStop:
        stop = self.repo.get_stop(organization_id, stop_id)
        if stop is None:
            raise NotFound(f"Stop {stop_id} not found")
        return stop

    def _insert_stop(
        self,
        session: Session,
        organization_id: int,
        route_id: int,
        client_id: int,
        position: Optional[int],
        stop_data: Dict[str, Any],
    ) -> Tuple[RouteStop, Client]:
        """Create a stop at position (clamped, append when None), shifting later stops down."""
        client = self.repo.get_client(organization_id, client_id, session=session)
        if client is None:
            raise NotFound(f"Client {client_id} not found")

        stops = self._renumber(
            self.repo.get_stops_by_route(organization_id, route_id, session=session),
            session,
        )
        position = len(stops) if position is None else min(position, len(stops))
        for stop in stops[position:]:
            stop.order_index += 1
            session.add(stop)

        if stop_data.get("estimated_duration") is None:
            stop_data = dict(stop_data, estimated_duration=self.config.dispatch.default_stop_minutes)
        new_stop = self.repo.create_stop(dict(
            stop_data,
            organization_id=organization_id,
            route_id=route_id,
            client_id=client.id,
            order_index=position,
        ), session=session)
        return new_stop, client

    # Route mutations
    def _check_technician(self, organization_id: int, technician_id: Optional[int], session=None) -> None:
        if technician_id is not None and self.repo.get_technician(
            organization_id, technician_id, session=session
        ) is None:
            raise NotFound(f"Technician {technician_id} not found")

    def create_route(self, organization_id: int, request: RouteCreateRequest) -> RouteResponse:
        """Create an empty route, optionally owned by a technician."""
        self._check_technician(organization_id, request.technician_id)
        route = self.repo.create_route(dict(request.model_dump(), organization_id=organization_id))
        logger.info(f"Route {route.id} '{route.name}' created for {route.day_of_week.value}")
        return RouteResponse.model_validate(route)

    def update_route(
        self, organization_id: int, route_id: int, request: RouteUpdateRequest
    ) -> RouteResponse:
        """Apply the fields present in the request to a route."""
        changes = request.model_dump(exclude_unset=True)
        for required in ("name", "day_of_week"):
            if required in changes and changes[required] is None:
                raise InvalidRequest(f"{required} cannot be null")

        with self.repo.route_transaction(organization_id, route_id) as (session, routes):
            self._check_technician(organization_id, changes.get("technician_id"), session=session)
            route = self.repo.update_route(routes[route_id], changes, session=session)

        logger.info(f"Route {route_id} updated: {sorted(changes)}")
        return RouteResponse.model_validate(route)

    def delete_route(self, organization_id: int, route_id: int) -> None:
        """Delete a route together with its stops and their assignments."""
        with self.repo.route_transaction(organization_id, route_id) as (session, routes):
            self.repo.delete_route(routes[route_id], session)
        logger.info(f"Route {route_id} deleted")

    def reassign_route(
        self, organization_id: int, request: ReassignRouteRequest
    ) -> ReassignRouteResult:
        """
        Hand a route over to another technician.

        Args:
            organization_id: Caller's organization
            request: Route, expected current technician and new technician

        Returns:
            The updated route
        """
        with self.repo.route_transaction(organization_id, request.route_id) as (session, routes):
            route = routes[request.route_id]
            if route.technician_id != request.from_technician_id:
                raise StaleRouteState(
                    f"Route {route.id} is assigned to technician {route.technician_id}, "
                    f"not {request.from_technician_id}"
                )
            technician = self.repo.get_technician(
                organization_id, request.to_technician_id, session=session
            )
            if technician is None:
                raise NotFound(f"Technician {request.to_technician_id} not found")
            self.repo.update_route(route, {"technician_id": technician.id}, session=session)

        logger.info(
            f"Route {route.id} reassigned from technician {request.from_technician_id} "
            f"to {request.to_technician_id}" + (f" (requested for {request.date})" if request.date else "")
        )
        return ReassignRouteResult(route=RouteResponse.model_validate(route))

    def add_emergency_stop(
        self, organization_id: int, request: EmergencyStopRequest
    ) -> StopResult:
        """
        Insert an unplanned stop into a route.

        With a position, stops at or after it shift down by one and the new
        stop takes that index; a position past the end appends. Without a
        position the stop is appended.
        """
        if request.position is not None and request.position < 0:
            raise InvalidRequest(f"Position must be >= 0, got {request.position}")

        with self.repo.route_transaction(organization_id, request.route_id) as (session, _):
            new_stop, client = self._insert_stop(
                session, organization_id, request.route_id, request.client_id, request.position,
                {"estimated_duration": request.estimated_duration, "custom_instructions": request.notes},
            )

        logger.info(f"Emergency stop {new_stop.id} inserted on route {request.route_id} at {new_stop.order_index}")
        return StopResult(stop=stop_response(new_stop, client))

    def create_stop(self, organization_id: int, request: StopCreateRequest) -> StopResult:
        """Add a planned stop to a route at a position, or at the end."""
        with self.repo.route_transaction(organization_id, request.route_id) as (session, _):
            new_stop, client = self._insert_stop(
                session, organization_id, request.route_id, request.client_id, request.position,
                request.model_dump(
                    include={"estimated_duration", "custom_instructions", "address_lat", "address_lng"}
                ),
            )

        logger.info(f"Stop {new_stop.id} created on route {request.route_id} at {new_stop.order_index}")
        return StopResult(stop=stop_response(new_stop, client))

    def update_stop(self, organization_id: int, stop_id: int, request: StopUpdateRequest) -> StopResult:
        """Change a stop's duration, instructions or cached coordinates."""
        changes = request.model_dump(exclude_unset=True)
        if "estimated_duration" in changes and changes["estimated_duration"] is None:
            raise InvalidRequest("estimated_duration cannot be null")

        route_id = self._require_stop(organization_id, stop_id).route_id
        with self.repo.route_transaction(organization_id, route_id) as (session, _):
            stop = self.repo.get_stop(organization_id, stop_id, session=session)
            if stop is None or stop.route_id != route_id:
                raise ConcurrentModification(f"Stop {stop_id} changed routes concurrently")
            self.repo.update_stop(stop, changes, session=session)

        clients = self.repo.get_clients(organization_id, [stop.client_id])
        return StopResult(stop=stop_response(stop, clients[0] if clients else None))

    def reorder_stop(self, organization_id: int, request: ReorderStopRequest) -> StopOrderResult:
        """Swap a stop with its neighbour; a boundary swap is a successful no-op."""
        message = None
        with self.repo.route_transaction(organization_id, request.route_id) as (session, _):
            stops = self._renumber(
                self.repo.get_stops_by_route(organization_id, request.route_id, session=session),
                session,
            )
            index = next((i for i, s in enumerate(stops) if s.id == request.stop_id), None)
            if index is None:
                raise NotFound(f"Stop {request.stop_id} not found on route {request.route_id}")

            neighbour = index - 1 if request.direction == StopDirection.UP else index + 1
            if 0 <= neighbour < len(stops):
                stops[index], stops[neighbour] = stops[neighbour], stops[index]
                self._renumber(stops, session)
            else:
                message = ALREADY_AT_BOUNDARY

        return StopOrderResult(
            route_id=request.route_id,
            stops=self._stop_responses(organization_id, stops),
            message=message,
        )

    def reorder_route_stops(
        self, organization_id: int, route_id: int, request: ReorderRouteStopsRequest
    ) -> StopOrderResult:
        """Apply a full stop order; stop_ids must be a permutation of the route's stops."""
        with self.repo.route_transaction(organization_id, route_id) as (session, _):
            stops = self.repo.get_stops_by_route(organization_id, route_id, session=session)
            by_id = {s.id: s for s in stops}
            if len(request.stop_ids) != len(stops) or set(request.stop_ids) != set(by_id):
                raise InvalidRequest(
                    f"stop_ids must list each of the {len(stops)} stops of route {route_id} exactly once"
                )
            ordered = self._renumber([by_id[stop_id] for stop_id in request.stop_ids], session)

        return StopOrderResult(route_id=route_id, stops=self._stop_responses(organization_id, ordered))

    def move_stop(self, organization_id: int, request: MoveStopRequest) -> MoveStopResult:
        """
        Move a stop to the end of another route.

        The source route is compacted and any assignments bound to the stop
        follow it to the destination route.
        """
        from_route_id = self._require_stop(organization_id, request.stop_id).route_id
        if from_route_id == request.to_route_id:
            raise InvalidRequest(f"Stop {request.stop_id} is already on route {request.to_route_id}")

        with self.repo.route_transaction(
            organization_id, from_route_id, request.to_route_id
        ) as (session, _):
            stop = self.repo.get_stop(organization_id, request.stop_id, session=session)
            if stop is None or stop.route_id != from_route_id:
                raise ConcurrentModification(f"Stop {request.stop_id} changed routes concurrently")

            source = [
                s for s in self.repo.get_stops_by_route(organization_id, from_route_id, session=session)
                if s.id != stop.id
            ]
            destination = self._renumber(
                self.repo.get_stops_by_route(organization_id, request.to_route_id, session=session),
                session,
            )
            stop.route_id = request.to_route_id
            stop.order_index = len(destination)
            session.add(stop)
            self._renumber(source, session)

            for assignment in self.repo.get_assignments_by_stop(organization_id, stop.id, session=session):
                assignment.route_id = request.to_route_id
                session.add(assignment)

        logger.info(f"Stop {stop.id} moved from route {from_route_id} to {request.to_route_id}")
        clients = self.repo.get_clients(organization_id, [stop.client_id])
        return MoveStopResult(
            stop=stop_response(stop, clients[0] if clients else None),
            from_route_id=from_route_id,
            to_route_id=request.to_route_id,
        )

    def remove_stop(self, organization_id: int, stop_id: int) -> StopOrderResult:
        """Delete a stop and its assignments, then compact the route."""
        route_id = self._require_stop(organization_id, stop_id).route_id
        with self.repo.route_transaction(organization_id, route_id) as (session, _):
            stop = self.repo.get_stop(organization_id, stop_id, session=session)
            if stop is None or stop.route_id != route_id:
                raise ConcurrentModification(f"Stop {stop_id} changed routes concurrently")
            self.repo.delete_stop(stop, session)
            remaining = self._renumber(
                self.repo.get_stops_by_route(organization_id, route_id, session=session),
                session,
            )

        logger.info(f"Stop {stop_id} removed from route {route_id}")
        return StopOrderResult(
            route_id=route_id,
            stops=self._stop_responses(organization_id, remaining),
            message=f"Stop {stop_id} removed",
        )

    def _assigned_for_date(self, organization_id: int, maintenance_id: int, on_date: str, session) -> bool:
        return any(
            a.date == on_date
            for a in self.repo.get_assignments_by_maintenance(organization_id, maintenance_id, session=session)
        )

    def bulk_assign_client_stops(
        self, organization_id: int, request: BulkAssignRequest
    ) -> BulkAssignResult:
        """
        Assign every pending job of a client to a route.

        Jobs already assigned on this route, or assigned elsewhere for their
        date, are skipped, so repeating the call creates nothing new.

        Returns:
            Created stops and assignments plus the skipped job ids
        """
        created_stops: List[RouteStop] = []
        created_assignments = []
        skipped: List[int] = []
        try:
            with self.repo.route_transaction(organization_id, request.route_id) as (session, _):
                client = self.repo.get_client(organization_id, request.client_id, session=session)
                if client is None:
                    raise NotFound(f"Client {request.client_id} not found")

                jobs = self.repo.get_maintenances(
                    organization_id,
                    client_id=client.id,
                    schedule_date=request.date,
                    statuses=self.config.dispatch.pending_job_statuses,
                    session=session,
                )
                on_route = {
                    a.maintenance_id
                    for a in self.repo.get_assignments_by_route(organization_id, request.route_id, session=session)
                }
                stops = self._renumber(
                    self.repo.get_stops_by_route(organization_id, request.route_id, session=session),
                    session,
                )
                next_index = len(stops)

                for job in jobs:
                    if job.id in on_route or self._assigned_for_date(
                        organization_id, job.id, job.schedule_date, session
                    ):
                        skipped.append(job.id)
                        continue
                    stop = self.repo.create_stop({
                        "organization_id": organization_id,
                        "route_id": request.route_id,
                        "client_id": client.id,
                        "order_index": next_index,
                        "estimated_duration": self.config.dispatch.default_stop_minutes,
                        "custom_instructions": job.notes,
                    }, session=session)
                    next_index += 1
                    created_stops.append(stop)
                    created_assignments.append(self.repo.create_assignment({
                        "organization_id": organization_id,
                        "route_id": request.route_id,
                        "route_stop_id": stop.id,
                        "maintenance_id": job.id,
                        "date": job.schedule_date,
                        "status": AssignmentStatus.SCHEDULED,
                        "notes": job.notes,
                    }, session=session))
        except IntegrityError as e:
            raise ConcurrentModification("A job was assigned concurrently; reload and retry") from e

        logger.info(
            f"Bulk assign client {request.client_id} -> route {request.route_id}: "
            f"{len(created_assignments)} created, {len(skipped)} skipped"
        )
        return BulkAssignResult(
            route_id=request.route_id,
            client_id=request.client_id,
            stops=[stop_response(s, client) for s in created_stops],
            assignments=[AssignmentResponse.model_validate(a) for a in created_assignments],
            skipped_maintenance_ids=skipped,
        )

    def assign_job(self, organization_id: int, request: AssignJobRequest) -> AssignJobResult:
        """Append one stop and one scheduled assignment for a job."""
        try:
            with self.repo.route_transaction(organization_id, request.route_id) as (session, _):
                job = self.repo.get_maintenance(organization_id, request.maintenance_id, session=session)
                if job is None:
                    raise NotFound(f"Maintenance {request.maintenance_id} not found")
                if self._assigned_for_date(organization_id, job.id, job.schedule_date, session):
                    raise InvalidRequest(
                        f"Maintenance {job.id} is already assigned for {job.schedule_date}"
                    )
                client = self.repo.get_client(organization_id, job.client_id, session=session)

                stops = self._renumber(
                    self.repo.get_stops_by_route(organization_id, request.route_id, session=session),
                    session,
                )
                stop = self.repo.create_stop({
                    "organization_id": organization_id,
                    "route_id": request.route_id,
                    "client_id": job.client_id,
                    "order_index": len(stops),
                    "estimated_duration": self.config.dispatch.default_stop_minutes,
                    "custom_instructions": job.notes,
                }, session=session)
                assignment = self.repo.create_assignment({
                    "organization_id": organization_id,
                    "route_id": request.route_id,
                    "route_stop_id": stop.id,
                    "maintenance_id": job.id,
                    "date": job.schedule_date,
                    "status": AssignmentStatus.SCHEDULED,
                    "notes": job.notes,
                }, session=session)
        except IntegrityError as e:
            raise ConcurrentModification(
                f"Maintenance {request.maintenance_id} was assigned concurrently"
            ) from e

        logger.info(f"Maintenance {job.id} assigned to route {request.route_id} as stop {stop.id}")
        return AssignJobResult(
            stop=stop_response(stop, client),
            assignment=AssignmentResponse.model_validate(assignment),
        )

    def update_assignment_status(
        self, organization_id: int, assignment_id: int, request: AssignmentStatusRequest
    ) -> AssignmentStatusResult:
        """Change the status of one assignment."""
        current = self.repo.get_assignment(organization_id, assignment_id)
        if current is None:
            raise NotFound(f"Assignment {assignment_id} not found")

        with self.repo.route_transaction(organization_id, current.route_id) as (session, _):
            assignment = self.repo.get_assignment(organization_id, assignment_id, session=session)
            if assignment is None:
                raise NotFound(f"Assignment {assignment_id} not found")
            self.repo.update_assignment(assignment, {"status": request.status}, session=session)

        logger.info(f"Assignment {assignment_id} status -> {request.status.value}")
        return AssignmentStatusResult(assignment=AssignmentResponse.model_validate(assignment))

    def delete_assignment(self, organization_id: int, assignment_id: int) -> None:
        """Unbind a job from its stop; the stop itself stays on the route."""
        current = self.repo.get_assignment(organization_id, assignment_id)
        if current is None:
            raise NotFound(f"Assignment {assignment_id} not found")

        with self.repo.route_transaction(organization_id, current.route_id) as (session, _):
            assignment = self.repo.get_assignment(organization_id, assignment_id, session=session)
            if assignment is None:
                raise NotFound(f"Assignment {assignment_id} not found")
            self.repo.delete_assignment(assignment, session)

        logger.info(f"Assignment {assignment_id} deleted from route {current.route_id}")

    # Stop ordering
    def _apply_order(
        self, organization_id: int, route_id: int, read_version: int, order: List[int]
    ) -> List[RouteStop]:
        """Persist a computed stop order unless the route changed after read_version."""
        with self.repo.route_transaction(organization_id, route_id) as (session, routes):
            if routes[route_id].version != read_version:
                raise ConcurrentModification(
                    f"Route {route_id} changed while optimizing; reload and retry"
                )
            by_id = {s.id: s for s in self.repo.get_stops_by_route(organization_id, route_id, session=session)}
            ordered = self._renumber([by_id[stop_id] for stop_id in order], session)
        return ordered

    async def optimize_route(self, organization_id: int, route_id: int) -> OptimizeRouteResult:
        """
        Re-optimize a route's stop order and persist it.

        Args:
            organization_id: Caller's organization
            route_id: Route to optimize

        Returns:
            Reordered stops, whatever driving times were obtained, the method
            used and whether the provider path was degraded
        """
        route = self._require_route(organization_id, route_id)
        stops = self.repo.get_stops_by_route(organization_id, route_id)
        plan = await self.planner.plan(self._geo_stops(organization_id, stops))

        if plan.method == OrderMethod.UNCHANGED:
            return OptimizeRouteResult(
                route_id=route_id,
                stops=self._stop_responses(organization_id, stops),
                driving_times=[],
                method=plan.method,
                degraded=plan.degraded,
                message=plan.message,
            )

        # provider I/O ran without the route lock; the write-back blocks on it
        ordered = await run_in_threadpool(
            self._apply_order, organization_id, route_id, route.version, plan.order
        )

        logger.info(
            f"Route {route_id} optimized via {plan.method.value}"
            + (" (degraded)" if plan.degraded else "")
            + f": {len(ordered)} stops, {len(plan.driving_times)} legs"
        )
        return OptimizeRouteResult(
            route_id=route_id,
            stops=self._stop_responses(organization_id, ordered),
            driving_times=plan.driving_times,
            method=plan.method,
            degraded=plan.degraded,
            message=plan.message,
        )

    async def route_driving_times(self, organization_id: int, route_id: int) -> DrivingTimesResult:
        """Batched driving times along the route's stored stop order."""
        self._require_route(organization_id, route_id)
        stops = self.repo.get_stops_by_route(organization_id, route_id)
        with_geo, _ = split_geocoded(self._geo_stops(organization_id, stops))
        driving_times, degraded, requests_made = await self.planner.driving_times_for(
            with_geo, [s.id for s in stops]
        )
        return DrivingTimesResult(
            route_id=route_id,
            driving_times=driving_times,
            requests_made=requests_made,
            degraded=degraded,
        )

    # Read views
    def list_routes(
        self,
        organization_id: int,
        day_of_week: Optional[DayOfWeek] = None,
        technician_id: Optional[int] = None,
    ) -> List[RouteResponse]:
        """Routes of the organization, optionally filtered."""
        routes = self.repo.get_routes(organization_id, day_of_week=day_of_week, technician_id=technician_id)
        return [RouteResponse.model_validate(r) for r in routes]

    def route_stops(self, organization_id: int, route_id: int) -> List[RouteStopResponse]:
        """Stops of a route in visiting order."""
        self._require_route(organization_id, route_id)
        return self._stop_responses(
            organization_id, self.repo.get_stops_by_route(organization_id, route_id)
        )

    def client_stops(self, organization_id: int, client_id: int) -> List[RouteStopResponse]:
        """Every route stop that visits a client."""
        client = self.repo.get_client(organization_id, client_id)
        if client is None:
            raise NotFound(f"Client {client_id} not found")
        return [stop_response(s, client) for s in self.repo.get_stops_by_client(organization_id, client_id)]

    def assignments_for_date(self, organization_id: int, target_date: str) -> List[AssignmentResponse]:
        """Assignments dated on one day."""
        parse_date(target_date)
        return [
            AssignmentResponse.model_validate(a)
            for a in self.repo.get_assignments_by_date(organization_id, target_date)
        ]

    def maintenance_assignments(self, organization_id: int, maintenance_id: int) -> List[AssignmentResponse]:
        """Assignments of one maintenance job."""
        if self.repo.get_maintenance(organization_id, maintenance_id) is None:
            raise NotFound(f"Maintenance {maintenance_id} not found")
        return [
            AssignmentResponse.model_validate(a)
            for a in self.repo.get_assignments_by_maintenance(organization_id, maintenance_id)
        ]

    def technician_assignments(
        self, organization_id: int, technician_id: int, start_date: str, end_date: str
    ) -> List[AssignmentResponse]:
        """Assignments on a technician's routes between two dates, inclusive."""
        if self.repo.get_technician(organization_id, technician_id) is None:
            raise NotFound(f"Technician {technician_id} not found")
        if parse_date(start_date) > parse_date(end_date):
            raise InvalidRequest("start_date must not be after end_date")
        assignments = self.repo.get_assignments_for_technician(
            organization_id, technician_id, start_date, end_date
        )
        return [AssignmentResponse.model_validate(a) for a in assignments]

    def daily_board(self, organization_id: int, target_date: Optional[str] = None) -> DailyBoard:
        """Daily board for a date (today by default)."""
        return self.board.daily_board(organization_id, target_date or date.today().isoformat())

    def weekly_workload(self, organization_id: int, week_start: str) -> List[WorkloadRow]:
        """Weekly template workload starting at week_start."""
        return self.board.weekly_workload(organization_id, week_start)

    def health_check(self) -> Dict[str, Any]:
        """Perform health check on all components."""
        return {
            "status": "healthy",
            "version": self.config.project.version,
            "database_connected": self.repo.health_check(),
            "google_api_configured": self.directions.configured,
            "timestamp": datetime.now().isoformat()
        }

    async def close(self) -> None:
        """Clean up resources."""
        await self.directions.close()

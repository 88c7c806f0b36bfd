"""
Daily board and weekly workload aggregation.
Builds the technician -> route -> stop views the dispatch screen shows.
"""

import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .errors import InternalError, InvalidRequest
from .models import (
    AssignmentStatus, AssignmentResponse, BoardRoute, BoardTechnician, Client,
    ClientSummary, DailyBoard, DayOfWeek, Route, RouteResponse, RouteStop, RouteStopResponse,
    TechnicianStatus, UnassignedJobResponse, WorkloadRow,
)
from .repo import DatabaseRepository


logger = logging.getLogger(__name__)


def derive_technician_status(
    has_routes: bool, statuses: Iterable[AssignmentStatus]
) -> TechnicianStatus:
    """Technician's state for the day from route presence and assignment statuses."""
    if not has_routes:
        return TechnicianStatus.OFF
    statuses = list(statuses)
    if not statuses:
        return TechnicianStatus.AVAILABLE
    if all(s == AssignmentStatus.COMPLETED for s in statuses):
        return TechnicianStatus.COMPLETED
    if any(s == AssignmentStatus.IN_PROGRESS for s in statuses):
        return TechnicianStatus.ON_ROUTE
    return TechnicianStatus.AVAILABLE


def estimated_hours(stops: Iterable[RouteStop]) -> float:
    """Sum of stop durations in hours, rounded to 2 decimals."""
    total_minutes = sum(stop.estimated_duration or 0 for stop in stops)
    return round(total_minutes / 60, 2)


def parse_date(value: str) -> date:
    """Parse an ISO YYYY-MM-DD date or raise InvalidRequest."""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"Invalid date '{value}'. Please use YYYY-MM-DD format.") from None


def client_summary(client: Optional[Client]) -> Optional[ClientSummary]:
    if client is None:
        return None
    return ClientSummary.model_validate(client)


def stop_response(stop: RouteStop, client: Optional[Client] = None) -> RouteStopResponse:
    response = RouteStopResponse.model_validate(stop)
    response.client = client_summary(client)
    return response


class BoardBuilder:
    """Read-only aggregation over the repository.

    A repository failure aborts the whole view with InternalError.
    """

    def __init__(self, repo: DatabaseRepository):
        """Initialize builder with a repository."""
        self.repo = repo

    def daily_board(self, organization_id: int, target_date: str) -> DailyBoard:
        """Build the dispatch board for one calendar date."""
        day = DayOfWeek.from_date(parse_date(target_date))
        try:
            return self._daily_board(organization_id, target_date, day)
        except SQLAlchemyError as e:
            logger.error(f"Daily board failed for org={organization_id} date={target_date}: {e}")
            raise InternalError("Failed to fetch daily dispatch board") from e

    def _daily_board(self, organization_id: int, target_date: str, day: DayOfWeek) -> DailyBoard:
        technicians = self.repo.get_technicians(organization_id)
        day_routes = self.repo.get_routes(organization_id, day_of_week=day)
        stops = self.repo.get_stops_by_route_ids(organization_id, [r.id for r in day_routes])
        assignments = self.repo.get_assignments_by_date(organization_id, target_date)
        day_jobs = self.repo.get_maintenances(organization_id, schedule_date=target_date)

        client_ids = {s.client_id for s in stops} | {j.client_id for j in day_jobs}
        clients = {c.id: c for c in self.repo.get_clients(organization_id, sorted(client_ids))}

        stops_by_route: Dict[int, List[RouteStop]] = {}
        for stop in stops:
            stops_by_route.setdefault(stop.route_id, []).append(stop)

        def board_route(route: Route) -> BoardRoute:
            route_stops = sorted(stops_by_route.get(route.id, []), key=lambda s: (s.order_index, s.id))
            return BoardRoute(
                **RouteResponse.model_validate(route).model_dump(),
                stops=[stop_response(s, clients.get(s.client_id)) for s in route_stops],
            )

        technician_rows = []
        for tech in technicians:
            tech_routes = [r for r in day_routes if r.technician_id == tech.id]
            route_ids = {r.id for r in tech_routes}
            tech_stops = [s for r in tech_routes for s in stops_by_route.get(r.id, [])]
            tech_assignments = [a for a in assignments if a.route_id in route_ids]
            technician_rows.append(BoardTechnician(
                id=tech.id,
                name=tech.name,
                user_id=tech.user_id,
                routes=[board_route(r) for r in tech_routes],
                assignments=[AssignmentResponse.model_validate(a) for a in tech_assignments],
                total_stops=len(tech_stops),
                estimated_hours=estimated_hours(tech_stops),
                status=derive_technician_status(
                    bool(tech_routes), [a.status for a in tech_assignments]
                ),
            ))

        technician_ids = {t.id for t in technicians}
        unassigned_routes = [
            board_route(r) for r in day_routes if r.technician_id not in technician_ids
        ]

        assigned_job_ids = {a.maintenance_id for a in assignments}
        unassigned_jobs = [
            UnassignedJobResponse(
                id=job.id,
                client_id=job.client_id,
                schedule_date=job.schedule_date,
                status=job.status,
                type=job.type,
                notes=job.notes,
                client=client_summary(clients.get(job.client_id)),
            )
            for job in day_jobs
            if job.id not in assigned_job_ids
        ]

        logger.info(
            f"Daily board org={organization_id} date={target_date} ({day.value}): "
            f"{len(technicians)} technicians, {len(day_routes)} routes, "
            f"{len(unassigned_jobs)} unassigned jobs"
        )
        return DailyBoard(
            date=target_date,
            day_of_week=day,
            technicians=technician_rows,
            unassigned_jobs=unassigned_jobs,
            unassigned_routes=unassigned_routes,
        )

    def weekly_workload(self, organization_id: int, week_start: str) -> List[WorkloadRow]:
        """
        Stops per technician per day for the 7 days starting at week_start.

        Counts come from route day-of-week membership only; dated assignments
        are not consulted, so this is the recurring template capacity.
        """
        start = parse_date(week_start)
        week_days = [DayOfWeek.from_date(start + timedelta(days=i)) for i in range(7)]
        try:
            technicians = self.repo.get_technicians(organization_id)
            routes = self.repo.get_routes(organization_id)
            stops = self.repo.get_stops_by_route_ids(organization_id, [r.id for r in routes])
        except SQLAlchemyError as e:
            logger.error(f"Weekly workload failed for org={organization_id} week={week_start}: {e}")
            raise InternalError("Failed to fetch technician workload") from e

        stops_by_route: Dict[int, List[RouteStop]] = {}
        for stop in stops:
            stops_by_route.setdefault(stop.route_id, []).append(stop)

        rows = []
        for tech in technicians:
            tech_routes = [r for r in routes if r.technician_id == tech.id]
            days: Dict[DayOfWeek, int] = {}
            week_stops: List[RouteStop] = []
            for day in week_days:
                day_stops = [
                    s for r in tech_routes if r.day_of_week == day
                    for s in stops_by_route.get(r.id, [])
                ]
                days[day] = len(day_stops)
                week_stops.extend(day_stops)
            rows.append(WorkloadRow(
                technician_id=tech.id,
                name=tech.name,
                days=days,
                total_stops=len(week_stops),
                estimated_hours=estimated_hours(week_stops),
            ))
        return rows


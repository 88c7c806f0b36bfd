"""
Repository layer for database operations.
Provides an organization-scoped CRUD interface for routes, stops, assignments,
technicians, clients and maintenance jobs.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import inspect, update
from sqlmodel import SQLModel, Session, create_engine, select, delete

from .errors import ConcurrentModification, NotFound
from .models import (
    Technician, Client, Route, RouteStop, Maintenance, MaintenanceAssignment,
    DayOfWeek, MaintenanceStatus,
)
from .schemas import AppConfig


logger = logging.getLogger(__name__)


class DatabaseRepository:
    """Database repository for all dispatch entities.

    Every read takes the caller's ``organization_id``; a row owned by another
    organization is returned as ``None``/omitted, never as data. Methods accept
    an optional ``session`` so several calls can share one transaction; without
    it each call opens and commits its own session.
    """

    def __init__(self, config: AppConfig):
        """Initialize database connection."""
        self.config = config
        connect_args = {}
        if config.database.url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine = create_engine(
            config.database.url,
            echo=config.database.echo,
            connect_args=connect_args,
        )
        self._route_locks: Dict[int, threading.Lock] = {}
        self._route_locks_guard = threading.Lock()

    def create_tables(self) -> None:
        """Create all database tables."""
        SQLModel.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        """Get database session."""
        return Session(self.engine, expire_on_commit=False)

    @contextmanager
    def _reading(self, session: Optional[Session] = None) -> Iterator[Session]:
        if session is not None:
            yield session
            return
        with self.get_session() as own:
            yield own

    def _save(self, obj: SQLModel, session: Optional[Session] = None):
        if session is not None:
            session.add(obj)
            session.flush()
            return obj
        with self.get_session() as own:
            own.add(obj)
            own.commit()
            own.refresh(obj)
            return obj

    # Technician operations
    def get_technicians(self, organization_id: int) -> List[Technician]:
        """Get all technicians of an organization, ordered by id."""
        with self.get_session() as session:
            return session.exec(
                select(Technician)
                .where(Technician.organization_id == organization_id)
                .order_by(Technician.id)
            ).all()

    def get_technician(
        self, organization_id: int, technician_id: int, session: Optional[Session] = None
    ) -> Optional[Technician]:
        """Get technician by id within an organization."""
        with self._reading(session) as s:
            return s.exec(
                select(Technician).where(
                    Technician.id == technician_id,
                    Technician.organization_id == organization_id,
                )
            ).first()

    def create_technician(self, technician_data: Dict[str, Any]) -> Technician:
        """Create a new technician."""
        return self._save(Technician(**technician_data))

    # Client operations
    def get_clients(
        self, organization_id: int, client_ids: Optional[Sequence[int]] = None,
        session: Optional[Session] = None,
    ) -> List[Client]:
        """Get clients of an organization, optionally restricted to ids."""
        if client_ids is not None and not client_ids:
            return []
        with self._reading(session) as s:
            query = select(Client).where(Client.organization_id == organization_id)
            if client_ids is not None:
                query = query.where(Client.id.in_(list(client_ids)))
            return s.exec(query).all()

    def get_client(
        self, organization_id: int, client_id: int, session: Optional[Session] = None
    ) -> Optional[Client]:
        """Get client by id within an organization."""
        with self._reading(session) as s:
            return s.exec(
                select(Client).where(
                    Client.id == client_id,
                    Client.organization_id == organization_id,
                )
            ).first()

    def create_client(self, client_data: Dict[str, Any]) -> Client:
        """Create a new client."""
        return self._save(Client(**client_data))

    # Route operations
    def get_routes(
        self,
        organization_id: int,
        day_of_week: Optional[DayOfWeek] = None,
        technician_id: Optional[int] = None,
    ) -> List[Route]:
        """Get routes of an organization, optionally filtered by day and technician."""
        with self.get_session() as session:
            query = select(Route).where(Route.organization_id == organization_id)
            if day_of_week is not None:
                query = query.where(Route.day_of_week == day_of_week)
            if technician_id is not None:
                query = query.where(Route.technician_id == technician_id)
            return session.exec(query.order_by(Route.id)).all()

    def get_route(
        self, organization_id: int, route_id: int, session: Optional[Session] = None
    ) -> Optional[Route]:
        """Get route by id within an organization."""
        with self._reading(session) as s:
            return s.exec(
                select(Route).where(
                    Route.id == route_id,
                    Route.organization_id == organization_id,
                )
            ).first()

    def create_route(self, route_data: Dict[str, Any]) -> Route:
        """Create a new route."""
        return self._save(Route(**route_data))

    def update_route(
        self, route: Route, route_data: Dict[str, Any], session: Optional[Session] = None
    ) -> Route:
        """Apply field updates to a route."""
        for key, value in route_data.items():
            if key not in ("id", "organization_id", "version"):
                setattr(route, key, value)
        return self._save(route, session)

    def delete_route(self, route: Route, session: Session) -> None:
        """Delete a route with its stops and their assignments.

        The route row is removed only if its version is still the one loaded
        into ``route``; the object is expunged from the session afterwards.
        """
        session.exec(
            delete(MaintenanceAssignment).where(MaintenanceAssignment.route_id == route.id)
        )
        session.exec(delete(RouteStop).where(RouteStop.route_id == route.id))
        result = session.exec(
            delete(Route)
            .where(Route.id == route.id, Route.version == route.version)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModification(
                f"Route {route.id} was modified concurrently; reload and retry"
            )
        session.expunge(route)

    # Route stop operations
    def get_stop(
        self, organization_id: int, stop_id: int, session: Optional[Session] = None
    ) -> Optional[RouteStop]:
        """Get route stop by id within an organization."""
        with self._reading(session) as s:
            return s.exec(
                select(RouteStop).where(
                    RouteStop.id == stop_id,
                    RouteStop.organization_id == organization_id,
                )
            ).first()

    def get_stops_by_route(
        self, organization_id: int, route_id: int, session: Optional[Session] = None
    ) -> List[RouteStop]:
        """Get the stops of a route in visiting order."""
        with self._reading(session) as s:
            return s.exec(
                select(RouteStop)
                .where(
                    RouteStop.route_id == route_id,
                    RouteStop.organization_id == organization_id,
                )
                .order_by(RouteStop.order_index, RouteStop.id)
            ).all()

    def get_stops_by_route_ids(
        self, organization_id: int, route_ids: Sequence[int]
    ) -> List[RouteStop]:
        """Get the stops of several routes, each route in visiting order."""
        if not route_ids:
            return []
        with self.get_session() as session:
            return session.exec(
                select(RouteStop)
                .where(
                    RouteStop.route_id.in_(list(route_ids)),
                    RouteStop.organization_id == organization_id,
                )
                .order_by(RouteStop.route_id, RouteStop.order_index, RouteStop.id)
            ).all()

    def get_stops_by_client(self, organization_id: int, client_id: int) -> List[RouteStop]:
        """Get every stop that visits a client."""
        with self.get_session() as session:
            return session.exec(
                select(RouteStop).where(
                    RouteStop.client_id == client_id,
                    RouteStop.organization_id == organization_id,
                )
                .order_by(RouteStop.route_id, RouteStop.order_index)
            ).all()

    def create_stop(
        self, stop_data: Dict[str, Any], session: Optional[Session] = None
    ) -> RouteStop:
        """Create a route stop."""
        return self._save(RouteStop(**stop_data), session)

    def update_stop(
        self, stop: RouteStop, stop_data: Dict[str, Any], session: Optional[Session] = None
    ) -> RouteStop:
        """Apply field updates to a route stop."""
        for key, value in stop_data.items():
            if key not in ("id", "organization_id"):
                setattr(stop, key, value)
        return self._save(stop, session)

    def delete_stop(self, stop: RouteStop, session: Session) -> None:
        """Delete a stop together with the assignments that reference it."""
        session.exec(
            delete(MaintenanceAssignment).where(MaintenanceAssignment.route_stop_id == stop.id)
        )
        session.delete(stop)
        session.flush()

    # Maintenance assignment operations
    def get_assignment(
        self, organization_id: int, assignment_id: int, session: Optional[Session] = None
    ) -> Optional[MaintenanceAssignment]:
        """Get assignment by id within an organization."""
        with self._reading(session) as s:
            return s.exec(
                select(MaintenanceAssignment).where(
                    MaintenanceAssignment.id == assignment_id,
                    MaintenanceAssignment.organization_id == organization_id,
                )
            ).first()

    def get_assignments_by_route(
        self, organization_id: int, route_id: int, session: Optional[Session] = None
    ) -> List[MaintenanceAssignment]:
        """Get all assignments on a route."""
        with self._reading(session) as s:
            return s.exec(
                select(MaintenanceAssignment).where(
                    MaintenanceAssignment.route_id == route_id,
                    MaintenanceAssignment.organization_id == organization_id,
                )
            ).all()

    def get_assignments_by_stop(
        self, organization_id: int, stop_id: int, session: Optional[Session] = None
    ) -> List[MaintenanceAssignment]:
        """Get all assignments bound to a stop."""
        with self._reading(session) as s:
            return s.exec(
                select(MaintenanceAssignment).where(
                    MaintenanceAssignment.route_stop_id == stop_id,
                    MaintenanceAssignment.organization_id == organization_id,
                )
            ).all()

    def get_assignments_by_date(
        self, organization_id: int, target_date: str
    ) -> List[MaintenanceAssignment]:
        """Get all assignments dated on a day."""
        with self.get_session() as session:
            return session.exec(
                select(MaintenanceAssignment).where(
                    MaintenanceAssignment.date == target_date,
                    MaintenanceAssignment.organization_id == organization_id,
                )
            ).all()

    def get_assignments_by_maintenance(
        self, organization_id: int, maintenance_id: int, session: Optional[Session] = None
    ) -> List[MaintenanceAssignment]:
        """Get all assignments of one maintenance job."""
        with self._reading(session) as s:
            return s.exec(
                select(MaintenanceAssignment).where(
                    MaintenanceAssignment.maintenance_id == maintenance_id,
                    MaintenanceAssignment.organization_id == organization_id,
                )
            ).all()

    def get_assignments_for_technician(
        self, organization_id: int, technician_id: int, start_date: str, end_date: str
    ) -> List[MaintenanceAssignment]:
        """Get assignments on a technician's routes within an inclusive date range."""
        with self.get_session() as session:
            return session.exec(
                select(MaintenanceAssignment)
                .join(Route, Route.id == MaintenanceAssignment.route_id)
                .where(
                    Route.technician_id == technician_id,
                    Route.organization_id == organization_id,
                    MaintenanceAssignment.organization_id == organization_id,
                    MaintenanceAssignment.date >= start_date,
                    MaintenanceAssignment.date <= end_date,
                )
                .order_by(MaintenanceAssignment.date, MaintenanceAssignment.id)
            ).all()

    def create_assignment(
        self, assignment_data: Dict[str, Any], session: Optional[Session] = None
    ) -> MaintenanceAssignment:
        """Create a maintenance assignment."""
        return self._save(MaintenanceAssignment(**assignment_data), session)

    def update_assignment(
        self,
        assignment: MaintenanceAssignment,
        assignment_data: Dict[str, Any],
        session: Optional[Session] = None,
    ) -> MaintenanceAssignment:
        """Apply field updates to an assignment."""
        for key, value in assignment_data.items():
            if key not in ("id", "organization_id"):
                setattr(assignment, key, value)
        return self._save(assignment, session)

    def delete_assignment(self, assignment: MaintenanceAssignment, session: Session) -> None:
        """Delete one assignment."""
        session.delete(assignment)
        session.flush()

    # Maintenance (job) operations
    def get_maintenance(
        self, organization_id: int, maintenance_id: int, session: Optional[Session] = None
    ) -> Optional[Maintenance]:
        """Get maintenance job by id within an organization."""
        with self._reading(session) as s:
            return s.exec(
                select(Maintenance).where(
                    Maintenance.id == maintenance_id,
                    Maintenance.organization_id == organization_id,
                )
            ).first()

    def get_maintenances(
        self,
        organization_id: int,
        client_id: Optional[int] = None,
        schedule_date: Optional[str] = None,
        statuses: Optional[Sequence[str]] = None,
        session: Optional[Session] = None,
    ) -> List[Maintenance]:
        """Get maintenance jobs filtered by client, date and status."""
        with self._reading(session) as s:
            query = select(Maintenance).where(Maintenance.organization_id == organization_id)
            if client_id is not None:
                query = query.where(Maintenance.client_id == client_id)
            if schedule_date is not None:
                query = query.where(Maintenance.schedule_date == schedule_date)
            if statuses is not None:
                query = query.where(Maintenance.status.in_([MaintenanceStatus(s) for s in statuses]))
            return s.exec(query.order_by(Maintenance.schedule_date, Maintenance.id)).all()

    def create_maintenance(self, maintenance_data: Dict[str, Any]) -> Maintenance:
        """Create a maintenance job."""
        return self._save(Maintenance(**maintenance_data))

    # Per-route serialization
    def _route_lock(self, route_id: int) -> threading.Lock:
        with self._route_locks_guard:
            lock = self._route_locks.get(route_id)
            if lock is None:
                lock = self._route_locks[route_id] = threading.Lock()
            return lock

    def _bump_version(self, session: Session, route: Route, read_version: int) -> None:
        result = session.exec(
            update(Route)
            .where(Route.id == route.id, Route.version == read_version)
            .values(version=read_version + 1)
        )
        if result.rowcount != 1:
            raise ConcurrentModification(
                f"Route {route.id} was modified concurrently; reload and retry"
            )

    @contextmanager
    def route_transaction(
        self, organization_id: int, *route_ids: int
    ) -> Iterator[Tuple[Session, Dict[int, Route]]]:
        """
        Run a read-modify-write on one or more routes as a single unit.

        Locks the routes in ascending id order, loads them scoped to the
        organization (``NotFound`` otherwise) and yields the open session with
        the routes by id. On success every route's ``version`` is advanced with
        a conditional UPDATE against the version read here and the transaction
        commits; any error rolls back all writes.
        """
        ids = sorted(set(route_ids))
        locks = [self._route_lock(route_id) for route_id in ids]
        for lock in locks:
            lock.acquire()
        try:
            with self.get_session() as session:
                try:
                    routes: Dict[int, Route] = {}
                    read_versions: Dict[int, int] = {}
                    for route_id in ids:
                        route = self.get_route(organization_id, route_id, session=session)
                        if route is None:
                            raise NotFound(f"Route {route_id} not found")
                        routes[route_id] = route
                        read_versions[route_id] = route.version
                    yield session, routes
                    session.flush()
                    # routes removed by delete_route are already detached
                    live = {
                        route_id: route for route_id, route in routes.items()
                        if not inspect(route).detached
                    }
                    for route_id, route in live.items():
                        self._bump_version(session, route, read_versions[route_id])
                    session.commit()
                    for route in live.values():
                        session.refresh(route)
                except Exception:
                    session.rollback()
                    raise
        finally:
            for lock in reversed(locks):
                lock.release()

    # Utility operations
    def health_check(self) -> bool:
        """Check if database is accessible."""
        try:
            with self.get_session() as session:
                session.exec(select(1))
                return True
        except Exception:
            logger.exception("Database health check failed")
            return False

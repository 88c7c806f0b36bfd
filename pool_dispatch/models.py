"""
Core data models for pool dispatch.
Uses SQLModel for database ORM and Pydantic for API responses.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict

from pydantic import BaseModel, ConfigDict
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class DayOfWeek(str, Enum):
    """Route days, indexed the way the schedule board counts them (Sunday first)."""
    SUNDAY = "sunday"
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"

    @classmethod
    def from_date(cls, value) -> "DayOfWeek":
        """Day name for a calendar date."""
        # date.weekday() is Monday=0; shift so Sunday comes first
        return list(cls)[(value.weekday() + 1) % 7]


class AssignmentStatus(str, Enum):
    """Lifecycle of a dated job on a route stop."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MaintenanceStatus(str, Enum):
    """Lifecycle of a maintenance job (work order)."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TechnicianStatus(str, Enum):
    """Derived per-day technician state shown on the board."""
    OFF = "off"
    AVAILABLE = "available"
    ON_ROUTE = "on_route"
    COMPLETED = "completed"


class StopDirection(str, Enum):
    """Direction for a single-step stop swap."""
    UP = "up"
    DOWN = "down"


class OrderMethod(str, Enum):
    """How a route's stop order was produced."""
    DIRECTIONS = "directions"
    NEAREST_NEIGHBOR = "nearest_neighbor"
    UNCHANGED = "unchanged"


# Database Models (SQLModel)
class Technician(SQLModel, table=True):
    """Field technician who owns routes."""
    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(index=True)
    name: str
    user_id: Optional[int] = Field(default=None)


class Client(SQLModel, table=True):
    """Pool-service customer; coordinates are optional until geocoded."""
    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(index=True)
    name: str
    address: str = Field(default="")
    latitude: Optional[float] = Field(default=None)
    longitude: Optional[float] = Field(default=None)


class Route(SQLModel, table=True):
    """A technician's recurring route for one day of the week."""
    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(index=True)
    name: str
    technician_id: Optional[int] = Field(default=None, foreign_key="technician.id", index=True)
    day_of_week: DayOfWeek = Field(index=True)
    color: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)
    version: int = Field(default=0, ge=0)  # bumped on every stop mutation


class RouteStop(SQLModel, table=True):
    """One client visit on a route; order_index is 0..N-1 within the route."""
    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(index=True)
    route_id: int = Field(foreign_key="route.id", index=True)
    client_id: int = Field(foreign_key="client.id", index=True)
    order_index: int = Field(ge=0)
    estimated_duration: int = Field(default=30, ge=0)  # minutes
    custom_instructions: Optional[str] = Field(default=None)
    address_lat: Optional[float] = Field(default=None)
    address_lng: Optional[float] = Field(default=None)


class Maintenance(SQLModel, table=True):
    """Scheduled maintenance job (work order) for a client."""
    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(index=True)
    client_id: int = Field(foreign_key="client.id", index=True)
    schedule_date: str = Field(index=True)  # YYYY-MM-DD
    status: MaintenanceStatus = Field(default=MaintenanceStatus.SCHEDULED)
    type: str = Field(default="cleaning")
    notes: Optional[str] = Field(default=None)


class MaintenanceAssignment(SQLModel, table=True):
    """Binding of a dated maintenance job to a route stop."""
    __table_args__ = (UniqueConstraint("maintenance_id", "date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(index=True)
    route_id: int = Field(foreign_key="route.id", index=True)
    route_stop_id: int = Field(foreign_key="routestop.id")
    maintenance_id: int = Field(foreign_key="maintenance.id", index=True)
    date: str = Field(index=True)  # YYYY-MM-DD
    status: AssignmentStatus = Field(default=AssignmentStatus.SCHEDULED)
    notes: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# Pydantic models for API responses
class _ReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class TechnicianResponse(_ReadModel):
    """Technician information for API responses."""
    id: int
    name: str
    user_id: Optional[int] = None


class ClientSummary(_ReadModel):
    """Client name/address joined onto stops and jobs."""
    id: int
    name: str
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class RouteResponse(_ReadModel):
    """Route information for API responses."""
    id: int
    name: str
    technician_id: Optional[int]
    day_of_week: DayOfWeek
    color: Optional[str] = None
    notes: Optional[str] = None
    version: int


class RouteStopResponse(_ReadModel):
    """Route stop for API responses."""
    id: int
    route_id: int
    client_id: int
    order_index: int
    estimated_duration: int
    custom_instructions: Optional[str] = None
    address_lat: Optional[float] = None
    address_lng: Optional[float] = None
    client: Optional[ClientSummary] = None


class AssignmentResponse(_ReadModel):
    """Maintenance assignment for API responses."""
    id: int
    route_id: int
    route_stop_id: int
    maintenance_id: int
    date: str
    status: AssignmentStatus
    notes: Optional[str] = None


class BoardRoute(RouteResponse):
    """Route with its ordered stops as shown on the daily board."""
    stops: List[RouteStopResponse]


class BoardTechnician(BaseModel):
    """One technician row on the daily board."""
    id: int
    name: str
    user_id: Optional[int]
    routes: List[BoardRoute]
    assignments: List[AssignmentResponse]
    total_stops: int
    estimated_hours: float
    status: TechnicianStatus


class UnassignedJobResponse(BaseModel):
    """Job scheduled for the date with no assignment yet."""
    id: int
    client_id: int
    schedule_date: str
    status: MaintenanceStatus
    type: str
    notes: Optional[str] = None
    client: Optional[ClientSummary] = None


class DailyBoard(BaseModel):
    """Aggregated dispatch view for one calendar date."""
    date: str
    day_of_week: DayOfWeek
    technicians: List[BoardTechnician]
    unassigned_jobs: List[UnassignedJobResponse]
    unassigned_routes: List[BoardRoute]


class WorkloadRow(BaseModel):
    """Weekly template workload for one technician."""
    technician_id: int
    name: str
    days: Dict[DayOfWeek, int]
    total_stops: int
    estimated_hours: float


class DrivingTime(BaseModel):
    """Provider-reported leg between two consecutive stops."""
    from_stop_id: int
    to_stop_id: int
    from_position: int
    to_position: int
    duration_seconds: int
    duration_text: str
    distance_meters: Optional[int] = None
    distance_text: str


class OptimizeRouteResult(BaseModel):
    """Outcome of re-optimizing a route's stop order."""
    success: bool = True
    route_id: int
    stops: List[RouteStopResponse]
    driving_times: List[DrivingTime]
    method: OrderMethod
    degraded: bool
    message: Optional[str] = None


class DrivingTimesResult(BaseModel):
    """Driving times for a route's current stop order."""
    route_id: int
    driving_times: List[DrivingTime]
    requests_made: int
    degraded: bool


class ReassignRouteResult(BaseModel):
    """Route after a technician reassignment."""
    success: bool = True
    route: RouteResponse


class StopResult(BaseModel):
    """Single stop created or changed by a mutation."""
    success: bool = True
    stop: RouteStopResponse


class StopOrderResult(BaseModel):
    """Route stops after a re-ordering mutation."""
    success: bool = True
    route_id: int
    stops: List[RouteStopResponse]
    message: Optional[str] = None


class MoveStopResult(BaseModel):
    """Stop after moving it to another route."""
    success: bool = True
    stop: RouteStopResponse
    from_route_id: int
    to_route_id: int


class AssignJobResult(BaseModel):
    """Stop and assignment created for one job."""
    success: bool = True
    stop: RouteStopResponse
    assignment: AssignmentResponse


class BulkAssignResult(BaseModel):
    """Stops and assignments created for a client's pending jobs."""
    success: bool = True
    route_id: int
    client_id: int
    stops: List[RouteStopResponse]
    assignments: List[AssignmentResponse]
    skipped_maintenance_ids: List[int]


class AssignmentStatusResult(BaseModel):
    """Assignment after a status change."""
    success: bool = True
    assignment: AssignmentResponse

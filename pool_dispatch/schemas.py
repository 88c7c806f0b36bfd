"""
Pydantic schemas for configuration, settings, and API validation.
"""

from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import AssignmentStatus, DayOfWeek, StopDirection


class ProjectConfig(BaseModel):
    """Top-level project configuration."""
    name: str = Field(default="Pool Dispatch")
    version: str = Field(default="0.1.0")


class DispatchConfig(BaseModel):
    """Scheduling defaults for stops created by dispatch operations."""
    default_stop_minutes: int = Field(default=30, ge=0)
    pending_job_statuses: List[str] = Field(default_factory=lambda: ["scheduled"])


class GoogleConfig(BaseModel):
    """Google Directions API configuration."""
    directions_url: str = Field(
        default="https://maps.googleapis.com/maps/api/directions/json"
    )
    max_waypoints: int = Field(default=27, ge=2)  # origin + destination + intermediates
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=2, ge=0, le=10)  # retries after the first attempt
    retry_delay_seconds: float = Field(default=0.5, ge=0)
    avoid: List[str] = Field(default_factory=list)


class DatabaseConfig(BaseModel):
    """Database configuration."""
    url: str = Field(default="sqlite:///./pool_dispatch.db")
    echo: bool = Field(default=False)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR)$"
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


class AppConfig(BaseModel):
    """Complete application configuration loaded from params.yaml."""
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    google: GoogleConfig = Field(default_factory=GoogleConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class Settings(BaseSettings):
    """Environment-based settings (primarily for secrets)."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    google_maps_api_key: Optional[str] = Field(default=None)


# API Request Schemas
class RouteCreateRequest(BaseModel):
    """New recurring route."""
    name: str = Field(min_length=1)
    day_of_week: DayOfWeek
    technician_id: Optional[int] = None
    color: Optional[str] = None
    notes: Optional[str] = None


class RouteUpdateRequest(BaseModel):
    """Partial route update; only fields sent are applied."""
    name: Optional[str] = Field(default=None, min_length=1)
    day_of_week: Optional[DayOfWeek] = None
    technician_id: Optional[int] = None
    color: Optional[str] = None
    notes: Optional[str] = None


class StopCreateRequest(BaseModel):
    """New stop on a route, appended unless a position is given."""
    route_id: int
    client_id: int
    position: Optional[int] = Field(default=None, ge=0)
    estimated_duration: Optional[int] = Field(default=None, ge=0)
    custom_instructions: Optional[str] = None
    address_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    address_lng: Optional[float] = Field(default=None, ge=-180, le=180)


class StopUpdateRequest(BaseModel):
    """Partial stop update. Route and position change through move and reorder."""
    estimated_duration: Optional[int] = Field(default=None, ge=0)
    custom_instructions: Optional[str] = None
    address_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    address_lng: Optional[float] = Field(default=None, ge=-180, le=180)


class ReassignRouteRequest(BaseModel):
    """Move a route from one technician to another."""
    route_id: int
    from_technician_id: int
    to_technician_id: int
    date: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")


class EmergencyStopRequest(BaseModel):
    """Insert an unplanned stop into a route."""
    route_id: int
    client_id: int
    notes: Optional[str] = None
    position: Optional[int] = None
    estimated_duration: Optional[int] = Field(default=None, ge=0)


class ReorderStopRequest(BaseModel):
    """Swap a stop with its neighbour."""
    route_id: int
    stop_id: int
    direction: StopDirection


class ReorderRouteStopsRequest(BaseModel):
    """Full stop order for a route, first stop first."""
    stop_ids: List[int]


class MoveStopRequest(BaseModel):
    """Re-home a stop onto another route."""
    stop_id: int
    to_route_id: int


class BulkAssignRequest(BaseModel):
    """Assign all pending jobs of a client to a route."""
    client_id: int
    route_id: int
    date: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")


class AssignJobRequest(BaseModel):
    """Assign one maintenance job to a route."""
    maintenance_id: int
    route_id: int


class AssignmentStatusRequest(BaseModel):
    """New status for a maintenance assignment."""
    status: AssignmentStatus


class HealthResponse(BaseModel):
    """API health check response."""
    status: str
    version: str
    database_connected: bool
    google_api_configured: bool
    timestamp: str

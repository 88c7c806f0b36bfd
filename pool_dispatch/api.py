"""
FastAPI application for pool dispatch.
Provides REST API endpoints for the dispatch board, route mutations and stop ordering.
"""

import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .errors import DispatchError
from .models import (
    AssignJobResult, AssignmentResponse, AssignmentStatusResult, BulkAssignResult,
    DailyBoard, DayOfWeek, DrivingTimesResult, MoveStopResult, OptimizeRouteResult,
    ReassignRouteResult, RouteResponse, RouteStopResponse, StopOrderResult, StopResult,
    WorkloadRow,
)
from .schemas import (
    AssignJobRequest, AssignmentStatusRequest, BulkAssignRequest, EmergencyStopRequest,
    HealthResponse, MoveStopRequest, ReassignRouteRequest, ReorderRouteStopsRequest,
    ReorderStopRequest, RouteCreateRequest, RouteUpdateRequest, StopCreateRequest, StopUpdateRequest,
)
from .service import DispatchService


logger = logging.getLogger(__name__)

# Global service instance
service: Optional[DispatchService] = None


def get_service() -> DispatchService:
    """Dependency to get service instance."""
    global service
    if service is None:
        service = DispatchService()
    return service


def get_organization_id(x_organization_id: int = Header(...)) -> int:
    """Caller's organization, already authenticated upstream."""
    return x_organization_id


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Pool Dispatch",
        description="Technician dispatch board and route stop ordering for pool service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_event():
        """Initialize application on startup."""
        get_service()
        logger.info("Pool Dispatch API started")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Clean up on shutdown."""
        if service:
            await service.close()
        logger.info("Pool Dispatch API stopped")

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.get("/health", response_model=HealthResponse)
    async def health_check(svc: DispatchService = Depends(get_service)):
        """Health check endpoint."""
        health_data = svc.health_check()
        return HealthResponse(
            status=health_data["status"],
            version=health_data["version"],
            database_connected=health_data["database_connected"],
            google_api_configured=health_data["google_api_configured"],
            timestamp=health_data["timestamp"]
        )

    # Board views
    @app.get("/dispatch/daily-board", response_model=DailyBoard)
    def daily_board(
        date: Optional[str] = None,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Technician -> route -> stop board for a date (default today)."""
        return svc.daily_board(org, date)

    @app.get("/dispatch/technician-workload", response_model=List[WorkloadRow])
    def technician_workload(
        week_start: str,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Stops per technician per day for the week starting at week_start."""
        return svc.weekly_workload(org, week_start)

    # Route and stop records
    @app.post("/dispatch/routes", response_model=RouteResponse, status_code=201)
    def create_route(
        request: RouteCreateRequest,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Create a route."""
        return svc.create_route(org, request)

    @app.put("/dispatch/routes/{route_id}", response_model=RouteResponse)
    def update_route(
        route_id: int,
        request: RouteUpdateRequest,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Update a route's name, day, technician, color or notes."""
        return svc.update_route(org, route_id, request)

    @app.delete("/dispatch/routes/{route_id}", status_code=204)
    def delete_route(
        route_id: int,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Delete a route with its stops and assignments."""
        svc.delete_route(org, route_id)
        return Response(status_code=204)

    @app.post("/dispatch/stops", response_model=StopResult, status_code=201)
    def create_stop(
        request: StopCreateRequest,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Add a stop to a route."""
        return svc.create_stop(org, request)

    @app.put("/dispatch/stops/{stop_id}", response_model=StopResult)
    def update_stop(
        stop_id: int,
        request: StopUpdateRequest,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Update a stop's duration, instructions or coordinates."""
        return svc.update_stop(org, stop_id, request)

    @app.get("/dispatch/stops/client/{client_id}", response_model=List[RouteStopResponse])
    def client_stops(
        client_id: int,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Every stop that visits a client."""
        return svc.client_stops(org, client_id)

    # Route mutations
    @app.post("/dispatch/reassign-route", response_model=ReassignRouteResult)
    def reassign_route(
        request: ReassignRouteRequest,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Hand a route over to another technician."""
        return svc.reassign_route(org, request)

    @app.post("/dispatch/add-emergency-stop", response_model=StopResult)
    def add_emergency_stop(
        request: EmergencyStopRequest,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Insert an unplanned stop, optionally at a position."""
        return svc.add_emergency_stop(org, request)

    @app.post("/dispatch/reorder-stop", response_model=StopOrderResult)
    def reorder_stop(
        request: ReorderStopRequest,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Swap a stop with the stop above or below it."""
        return svc.reorder_stop(org, request)

    @app.post("/dispatch/routes/{route_id}/reorder-stops", response_model=StopOrderResult)
    def reorder_route_stops(
        route_id: int,
        request: ReorderRouteStopsRequest,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Replace a route's stop order."""
        return svc.reorder_route_stops(org, route_id, request)

    @app.post("/dispatch/move-stop", response_model=MoveStopResult)
    def move_stop(
        request: MoveStopRequest,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Move a stop to the end of another route."""
        return svc.move_stop(org, request)

    @app.delete("/dispatch/stops/{stop_id}", response_model=StopOrderResult)
    def remove_stop(
        stop_id: int,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Delete a stop and its assignments."""
        return svc.remove_stop(org, stop_id)

    @app.post("/dispatch/assign-client-stops", response_model=BulkAssignResult)
    def assign_client_stops(
        request: BulkAssignRequest,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Assign all pending jobs of a client to a route."""
        return svc.bulk_assign_client_stops(org, request)

    @app.post("/dispatch/assign-job", response_model=AssignJobResult)
    def assign_job(
        request: AssignJobRequest,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Assign one job to a route."""
        return svc.assign_job(org, request)

    @app.put("/dispatch/assignments/{assignment_id}/status", response_model=AssignmentStatusResult)
    def update_assignment_status(
        assignment_id: int,
        request: AssignmentStatusRequest,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Change an assignment's status."""
        return svc.update_assignment_status(org, assignment_id, request)

    @app.delete("/dispatch/assignments/{assignment_id}", status_code=204)
    def delete_assignment(
        assignment_id: int,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Remove an assignment, keeping its stop."""
        svc.delete_assignment(org, assignment_id)
        return Response(status_code=204)

    @app.get("/dispatch/assignments/date/{target_date}", response_model=List[AssignmentResponse])
    def assignments_for_date(
        target_date: str,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Assignments dated on one day."""
        return svc.assignments_for_date(org, target_date)

    @app.get("/dispatch/assignments/maintenance/{maintenance_id}", response_model=List[AssignmentResponse])
    def maintenance_assignments(
        maintenance_id: int,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Assignments of one maintenance job."""
        return svc.maintenance_assignments(org, maintenance_id)

    # Stop ordering
    @app.post("/dispatch/optimize-route/{route_id}", response_model=OptimizeRouteResult)
    async def optimize_route(
        route_id: int,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Re-optimize and persist a route's stop order."""
        return await svc.optimize_route(org, route_id)

    @app.get("/dispatch/routes/{route_id}/driving-times", response_model=DrivingTimesResult)
    async def route_driving_times(
        route_id: int,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Driving times between consecutive stops in stored order."""
        return await svc.route_driving_times(org, route_id)

    # Listings
    @app.get("/dispatch/routes", response_model=List[RouteResponse])
    def list_routes(
        day_of_week: Optional[DayOfWeek] = None,
        technician_id: Optional[int] = None,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Routes of the organization."""
        return svc.list_routes(org, day_of_week=day_of_week, technician_id=technician_id)

    @app.get("/dispatch/routes/{route_id}/stops", response_model=List[RouteStopResponse])
    def route_stops(
        route_id: int,
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Stops of a route in visiting order."""
        return svc.route_stops(org, route_id)

    @app.get("/dispatch/assignments/technician/{technician_id}", response_model=List[AssignmentResponse])
    def technician_assignments(
        technician_id: int,
        start_date: str = Query(...),
        end_date: str = Query(...),
        org: int = Depends(get_organization_id),
        svc: DispatchService = Depends(get_service)
    ):
        """Assignments on a technician's routes within a date range."""
        return svc.technician_assignments(org, technician_id, start_date, end_date)

    return app


# Create the app instance
app = create_app()

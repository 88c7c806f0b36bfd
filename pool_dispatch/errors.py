"""
Typed dispatch errors.

Each error carries the HTTP status code the API layer answers with. A route,
stop or job that belongs to another organization is reported exactly like a missing one.
"""


class DispatchError(Exception):
    """Base class for all dispatch domain errors."""

    status_code: int = 500

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class NotFound(DispatchError):
    """Entity absent or outside the caller's organization (404)."""

    status_code = 404


class InvalidRequest(DispatchError):
    """Missing or inconsistent request fields (400)."""

    status_code = 400


class StaleRouteState(InvalidRequest):
    """The caller's view of the route no longer matches the stored one (409)."""

    status_code = 409


class ConcurrentModification(InvalidRequest):
    """Another writer changed the route while this mutation was running (409)."""

    status_code = 409


class ExternalServiceUnavailable(DispatchError):
    """Directions provider failed, timed out or is not configured (503)."""

    status_code = 503


class InternalError(DispatchError):
    """Repository failure that must not be silently degraded (500)."""

    status_code = 500

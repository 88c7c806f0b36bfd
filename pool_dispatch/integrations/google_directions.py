"""
Google Directions wrapper for stop ordering and leg driving times.

Two request shapes are used:
- optimize: one request, intermediate waypoints marked ``optimize:true`` so the
  provider returns a ``waypoint_order`` permutation (origin and destination fixed)
- driving times: fixed order, split into overlapping windows that respect the
  provider's waypoint cap; window k+1 starts at the last point of window k so
  every consecutive pair is covered by exactly one leg

Any provider problem surfaces as ExternalServiceUnavailable; callers decide how
to degrade.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..errors import ExternalServiceUnavailable
from ..schemas import AppConfig, Settings

logger = logging.getLogger(__name__)

Coord = Tuple[float, float]  # (lat, lon)


@dataclass
class Leg:
    """One provider leg between two positions of the request input."""
    from_position: int
    to_position: int
    duration_seconds: int
    duration_text: str
    distance_meters: Optional[int]
    distance_text: str


@dataclass
class DirectionsResult:
    """Order (positions into the input) plus the legs that were obtained."""
    order: List[int]
    legs: List[Leg] = field(default_factory=list)
    requests_made: int = 0
    failed_windows: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.failed_windows)


def waypoint_windows(n: int, max_waypoints: int) -> List[Tuple[int, int]]:
    """Half-open [start, end) windows over n points, consecutive windows sharing one point."""
    if max_waypoints < 2:
        raise ValueError("max_waypoints must be at least 2")
    windows: List[Tuple[int, int]] = []
    start = 0
    while start < n - 1:
        end = min(start + max_waypoints, n)
        windows.append((start, end))
        start = end - 1
    return windows


def _fmt(coord: Coord) -> str:
    return f"{coord[0]},{coord[1]}"


def _first_route(data: Dict[str, Any]) -> Dict[str, Any]:
    routes = data.get("routes")
    if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
        raise ExternalServiceUnavailable("Directions response contained no routes")
    return routes[0]


def _parse_legs(data: Dict[str, Any], positions: List[int]) -> List[Leg]:
    legs = _first_route(data).get("legs") or []
    if not isinstance(legs, list):
        raise ExternalServiceUnavailable("Directions legs are not a list")
    if len(legs) != len(positions) - 1:
        raise ExternalServiceUnavailable(
            f"Directions returned {len(legs)} legs for {len(positions)} points"
        )
    out = []
    for i, leg in enumerate(legs):
        try:
            duration = leg["duration"]
            distance = leg["distance"]
            meters = distance.get("value")
            out.append(Leg(
                from_position=positions[i],
                to_position=positions[i + 1],
                duration_seconds=int(duration["value"]),
                duration_text=str(duration.get("text", "")),
                distance_meters=int(meters) if meters is not None else None,
                distance_text=str(distance.get("text", "")),
            ))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ExternalServiceUnavailable(f"Malformed directions leg {i}: {e!r}") from e
    return out


class DirectionsClient:
    """Google Directions API client with bounded timeout and retry logic."""

    def __init__(
        self,
        config: AppConfig,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize directions client."""
        self.config = config
        self.api_key = settings.google_maps_api_key
        self.client = httpx.AsyncClient(
            timeout=config.google.timeout_seconds,
            transport=transport,
        )
        if not self.api_key:
            logger.warning("Google Maps API key not configured - stop ordering uses nearest-neighbor only")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def max_waypoints(self) -> int:
        return self.config.google.max_waypoints

    async def _request(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Issue one Directions request, retrying transport failures."""
        if not self.api_key:
            raise ExternalServiceUnavailable("Google Maps API key not configured")

        params = dict(params, key=self.api_key, mode="driving")
        if self.config.google.avoid:
            params["avoid"] = "|".join(self.config.google.avoid)

        retries = self.config.google.max_retries
        for attempt in range(retries + 1):
            try:
                response = await self.client.get(self.config.google.directions_url, params=params)
                response.raise_for_status()
                data = response.json()
            except httpx.TransportError as e:
                logger.warning(f"Directions attempt {attempt + 1} failed: {e!r}")
                if attempt < retries:
                    await asyncio.sleep(self.config.google.retry_delay_seconds * (2 ** attempt))
                    continue
                raise ExternalServiceUnavailable(f"Directions request failed: {e!r}") from e
            except httpx.HTTPStatusError as e:
                raise ExternalServiceUnavailable(
                    f"Directions HTTP {e.response.status_code}"
                ) from e
            except httpx.HTTPError as e:
                # decoding errors, redirect loops and other non-retryable failures
                raise ExternalServiceUnavailable(f"Directions request failed: {e!r}") from e
            except ValueError as e:
                raise ExternalServiceUnavailable("Directions returned invalid JSON") from e

            if not isinstance(data, dict):
                raise ExternalServiceUnavailable(
                    f"Directions returned {type(data).__name__} instead of an object"
                )
            status = data.get("status")
            if status != "OK":
                raise ExternalServiceUnavailable(
                    f"Directions status={status} msg={data.get('error_message', '')}"
                )
            return data

        raise ExternalServiceUnavailable("Directions retries exhausted")

    async def optimize(self, coords: List[Coord]) -> DirectionsResult:
        """
        Ask the provider to reorder the intermediate points.

        Args:
            coords: Points in current order; the first is the origin and the
                last the destination, both kept in place.

        Returns:
            DirectionsResult whose order is a permutation of input positions.
        """
        n = len(coords)
        if n < 2:
            return DirectionsResult(order=list(range(n)))
        if n > self.max_waypoints:
            raise ExternalServiceUnavailable(
                f"{n} points exceed the {self.max_waypoints}-waypoint limit"
            )

        intermediates = coords[1:-1]
        params: Dict[str, Any] = {
            "origin": _fmt(coords[0]),
            "destination": _fmt(coords[-1]),
        }
        if intermediates:
            params["waypoints"] = "optimize:true|" + "|".join(_fmt(c) for c in intermediates)

        logger.info(f"Requesting optimized directions for {n} points")
        data = await self._request(params)

        waypoint_order = _first_route(data).get("waypoint_order", list(range(len(intermediates))))
        valid = isinstance(waypoint_order, list) and all(isinstance(i, int) for i in waypoint_order)
        if not valid or sorted(waypoint_order) != list(range(len(intermediates))):
            raise ExternalServiceUnavailable(f"Invalid waypoint_order {waypoint_order}")

        order = [0] + [1 + i for i in waypoint_order] + [n - 1]
        return DirectionsResult(order=order, legs=_parse_legs(data, order), requests_made=1)

    async def driving_times(self, coords: List[Coord]) -> DirectionsResult:
        """
        Leg driving times for a fixed order, batched under the waypoint cap.

        A failed window is recorded in ``failed_windows`` and its legs are
        omitted; the remaining windows are still returned.
        """
        if not self.api_key:
            raise ExternalServiceUnavailable("Google Maps API key not configured")

        n = len(coords)
        result = DirectionsResult(order=list(range(n)))
        for start, end in waypoint_windows(n, self.max_waypoints):
            segment = coords[start:end]
            params: Dict[str, Any] = {
                "origin": _fmt(segment[0]),
                "destination": _fmt(segment[-1]),
            }
            if len(segment) > 2:
                params["waypoints"] = "|".join(_fmt(c) for c in segment[1:-1])

            result.requests_made += 1
            try:
                data = await self._request(params)
                result.legs.extend(_parse_legs(data, list(range(start, end))))
            except ExternalServiceUnavailable as e:
                logger.warning(f"Driving times unavailable for points {start}..{end - 1}: {e.detail}")
                result.failed_windows.append((start, end))

        logger.info(
            f"Driving times: {len(result.legs)} legs from {result.requests_made} requests "
            f"({len(result.failed_windows)} failed)"
        )
        return result

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

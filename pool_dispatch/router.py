"""
Router module for choosing how a route's stops get ordered.
Tries the directions provider first and falls back to the nearest-neighbor
sequencer whenever the provider is unavailable or the route is too long.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import ExternalServiceUnavailable
from .integrations.google_directions import DirectionsClient, Leg
from .models import DrivingTime, OrderMethod
from .schemas import AppConfig
from .sequencer import GeoStop, nearest_neighbor, split_geocoded


logger = logging.getLogger(__name__)

TOO_FEW_STOPS = "Route has fewer than 2 stops, no optimization needed"
TOO_FEW_GEOCODED = "Not enough stops with geo data to optimize"


@dataclass
class OrderPlan:
    """Stop order for a route plus whatever driving-time data was obtained.

    ``degraded`` is set when the provider could not be used (missing key,
    error, timeout) or part of the driving-time batches failed.
    """
    order: List[int]  # stop ids, first stop first
    method: OrderMethod
    degraded: bool = False
    driving_times: List[DrivingTime] = field(default_factory=list)
    message: Optional[str] = None


def to_driving_times(
    legs: List[Leg], request_stops: List[GeoStop], final_order: List[int]
) -> List[DrivingTime]:
    """Map provider legs (positions into the request) onto stop ids and route positions."""
    position_of: Dict[int, int] = {stop_id: i for i, stop_id in enumerate(final_order)}
    out = []
    for leg in legs:
        from_id = request_stops[leg.from_position].stop_id
        to_id = request_stops[leg.to_position].stop_id
        out.append(DrivingTime(
            from_stop_id=from_id,
            to_stop_id=to_id,
            from_position=position_of[from_id],
            to_position=position_of[to_id],
            duration_seconds=leg.duration_seconds,
            duration_text=leg.duration_text,
            distance_meters=leg.distance_meters,
            distance_text=leg.distance_text,
        ))
    return out


class RouteOrderPlanner:
    """Coordinates the directions provider and the nearest-neighbor fallback."""

    def __init__(self, config: AppConfig, directions: DirectionsClient):
        """Initialize planner with configuration and a directions client."""
        self.config = config
        self.directions = directions

    async def plan(self, stops: List[GeoStop]) -> OrderPlan:
        """
        Compute a new visiting order for a route.

        Args:
            stops: Route stops in their current order with resolved coordinates.

        Returns:
            OrderPlan; geocoded stops come first, stops without coordinates
            keep their relative order at the end.
        """
        current = [s.stop_id for s in stops]
        if len(stops) < 2:
            return OrderPlan(order=current, method=OrderMethod.UNCHANGED, message=TOO_FEW_STOPS)

        with_geo, without_geo = split_geocoded(stops)
        if len(with_geo) < 2:
            return OrderPlan(order=current, method=OrderMethod.UNCHANGED, message=TOO_FEW_GEOCODED)

        max_waypoints = self.directions.max_waypoints
        if self.directions.configured and len(with_geo) <= max_waypoints:
            try:
                result = await self.directions.optimize([(s.lat, s.lon) for s in with_geo])
                order = [with_geo[p].stop_id for p in result.order] + [s.stop_id for s in without_geo]
                return OrderPlan(
                    order=order,
                    method=OrderMethod.DIRECTIONS,
                    driving_times=to_driving_times(result.legs, with_geo, order),
                )
            except ExternalServiceUnavailable as e:
                logger.warning(f"Directions optimize unavailable, using nearest-neighbor: {e.detail}")
                sequence = nearest_neighbor(stops)
                return OrderPlan(
                    order=sequence.order,
                    method=OrderMethod.NEAREST_NEIGHBOR,
                    degraded=True,
                    message="Directions provider unavailable; ordered by distance",
                )

        sequence = nearest_neighbor(stops)
        if not self.directions.configured:
            return OrderPlan(
                order=sequence.order,
                method=OrderMethod.NEAREST_NEIGHBOR,
                degraded=True,
                message="Directions provider not configured; ordered by distance",
            )

        # Too many stops for one optimize request: keep the heuristic order and
        # fetch batched driving times for it.
        by_id = {s.stop_id: s for s in with_geo}
        ordered_geo = [by_id[stop_id] for stop_id in sequence.geocoded_ids]
        driving_times, degraded, _ = await self.driving_times_for(ordered_geo, sequence.order)
        return OrderPlan(
            order=sequence.order,
            method=OrderMethod.NEAREST_NEIGHBOR,
            degraded=degraded,
            driving_times=driving_times,
            message=f"{len(with_geo)} geocoded stops exceed the {max_waypoints}-waypoint limit; ordered by distance",
        )

    async def driving_times_for(
        self, ordered_geo: List[GeoStop], final_order: List[int]
    ) -> Tuple[List[DrivingTime], bool, int]:
        """
        Batched driving times along already-ordered geocoded stops.

        Returns:
            (driving times, degraded flag, number of provider requests)
        """
        if len(ordered_geo) < 2:
            return [], False, 0
        try:
            result = await self.directions.driving_times([(s.lat, s.lon) for s in ordered_geo])
        except ExternalServiceUnavailable as e:
            logger.warning(f"Driving times unavailable: {e.detail}")
            return [], True, 0
        return (
            to_driving_times(result.legs, ordered_geo, final_order),
            result.degraded,
            result.requests_made,
        )

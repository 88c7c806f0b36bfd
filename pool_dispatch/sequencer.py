"""
Nearest-neighbor sequencer for route stops.
Greedy tour construction over geocoded stops using haversine distance.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .util.haversine import miles


logger = logging.getLogger(__name__)

NO_OPTIMIZATION_NEEDED = "no optimization needed"


@dataclass
class GeoStop:
    """A stop id with its resolved coordinates, if any."""
    stop_id: int
    lat: Optional[float] = None
    lon: Optional[float] = None

    @property
    def geocoded(self) -> bool:
        return self.lat is not None and self.lon is not None


@dataclass
class SequenceResult:
    """Visiting order produced by the sequencer."""
    order: List[int]  # stop ids
    optimized: bool
    message: Optional[str] = None
    geocoded_ids: List[int] = field(default_factory=list)


def split_geocoded(stops: List[GeoStop]):
    """Partition stops into (geocoded, missing coordinates), keeping input order."""
    with_geo = [s for s in stops if s.geocoded]
    without_geo = [s for s in stops if not s.geocoded]
    return with_geo, without_geo


def nearest_neighbor(stops: List[GeoStop]) -> SequenceResult:
    """
    Order stops greedily from the first geocoded stop.

    Each step appends the unvisited geocoded stop closest to the last placed
    one; on equal distance the earlier stop in the input wins. Stops without
    coordinates follow the geocoded sequence in their original relative order.

    Args:
        stops: Stops in their current order.

    Returns:
        SequenceResult with the full order of stop ids.
    """
    with_geo, without_geo = split_geocoded(stops)

    if len(with_geo) < 2:
        return SequenceResult(
            order=[s.stop_id for s in stops],
            optimized=False,
            message=NO_OPTIMIZATION_NEEDED,
            geocoded_ids=[s.stop_id for s in with_geo],
        )

    remaining = list(with_geo)
    ordered = [remaining.pop(0)]

    while remaining:
        last = ordered[-1]
        nearest_idx = 0
        nearest_dist = float("inf")
        for i, candidate in enumerate(remaining):
            dist = miles(last.lat, last.lon, candidate.lat, candidate.lon)
            if dist < nearest_dist:
                nearest_dist = dist
                nearest_idx = i
        ordered.append(remaining.pop(nearest_idx))

    logger.debug(
        f"Nearest-neighbor ordered {len(ordered)} geocoded stops, "
        f"{len(without_geo)} without coordinates appended"
    )
    order = [s.stop_id for s in ordered] + [s.stop_id for s in without_geo]
    return SequenceResult(
        order=order,
        optimized=True,
        geocoded_ids=[s.stop_id for s in ordered],
    )

"""
Tests for choosing between the directions provider and the nearest-neighbor fallback.
"""

import asyncio

import httpx

from pool_dispatch.integrations.google_directions import DirectionsClient
from pool_dispatch.models import OrderMethod
from pool_dispatch.router import RouteOrderPlanner, TOO_FEW_GEOCODED, TOO_FEW_STOPS
from pool_dispatch.schemas import Settings
from pool_dispatch.sequencer import GeoStop, nearest_neighbor

from conftest import reverse_handler


def plan(config, stops, handler=None, api_key="test-key"):
    directions = DirectionsClient(
        config,
        Settings(google_maps_api_key=api_key),
        transport=httpx.MockTransport(handler or reverse_handler([])),
    )
    planner = RouteOrderPlanner(config, directions)

    async def _plan():
        try:
            return await planner.plan(stops)
        finally:
            await directions.close()

    return asyncio.run(_plan())


def line_of_stops(n, start_id=100):
    """Stops along a meridian, 0.01 degree apart, running south."""
    return [GeoStop(stop_id=start_id + i, lat=33.0 + (n - i) * 0.01, lon=-112.0) for i in range(n)]


def test_single_stop_is_unchanged(config):
    result = plan(config, [GeoStop(stop_id=1, lat=1.0, lon=1.0)])
    assert result.method == OrderMethod.UNCHANGED
    assert result.order == [1]
    assert result.message == TOO_FEW_STOPS


def test_one_geocoded_stop_is_unchanged(config):
    calls = []
    stops = [GeoStop(stop_id=1), GeoStop(stop_id=2, lat=1.0, lon=1.0), GeoStop(stop_id=3)]
    result = plan(config, stops, reverse_handler(calls))
    assert result.method == OrderMethod.UNCHANGED
    assert result.order == [1, 2, 3]
    assert result.message == TOO_FEW_GEOCODED
    assert calls == []


def test_directions_order_with_driving_times(config):
    calls = []
    stops = [
        GeoStop(stop_id=1, lat=33.0, lon=-112.0),
        GeoStop(stop_id=2, lat=33.1, lon=-112.0),
        GeoStop(stop_id=9),
        GeoStop(stop_id=3, lat=33.2, lon=-112.0),
        GeoStop(stop_id=4, lat=33.3, lon=-112.0),
    ]
    result = plan(config, stops, reverse_handler(calls))

    assert len(calls) == 1
    assert result.method == OrderMethod.DIRECTIONS
    assert not result.degraded
    assert result.order == [1, 3, 2, 4, 9]
    assert [(d.from_stop_id, d.to_stop_id) for d in result.driving_times] == [(1, 3), (3, 2), (2, 4)]
    assert [(d.from_position, d.to_position) for d in result.driving_times] == [(0, 1), (1, 2), (2, 3)]


def test_provider_failure_falls_back_to_nearest_neighbor(config):
    stops = line_of_stops(5)
    result = plan(config, stops, lambda request: httpx.Response(503, text="unavailable"))

    assert result.method == OrderMethod.NEAREST_NEIGHBOR
    assert result.degraded
    assert result.driving_times == []
    assert result.order == nearest_neighbor(stops).order


def test_missing_key_uses_nearest_neighbor(config):
    calls = []
    stops = line_of_stops(4)
    result = plan(config, stops, reverse_handler(calls), api_key=None)

    assert calls == []
    assert result.method == OrderMethod.NEAREST_NEIGHBOR
    assert result.degraded
    assert result.order == nearest_neighbor(stops).order


def test_long_route_orders_locally_and_batches_driving_times(config):
    calls = []
    stops = line_of_stops(40)
    result = plan(config, stops, reverse_handler(calls))

    assert result.method == OrderMethod.NEAREST_NEIGHBOR
    assert not result.degraded
    assert len(calls) == 2
    assert all("optimize:true" not in r.url.params.get("waypoints", "") for r in calls)
    assert result.order == nearest_neighbor(stops).order
    assert [(d.from_position, d.to_position) for d in result.driving_times] == [(i, i + 1) for i in range(39)]

"""
Tests for the proximity index.
"""

import math
from datetime import datetime, timezone, timedelta

import pytest

from foodshare.core.errors import InvalidInput
from foodshare.models.resource import Visibility
from foodshare.services.proximity_service import (
    EARTH_RADIUS_KM, bounding_box, haversine_km, nearby, within_radius,
)

from conftest import OTHER_USER_ID, OWNER_ID, USER_ID, make_resource

CENTER = (10.0, 76.0)


def north_of(lat: float, lng: float, km: float) -> tuple[float, float]:
    """A point `km` due north; along a meridian the great-circle distance is exact."""
    return lat + math.degrees(km / EARTH_RADIUS_KM), lng


async def _at(session, km: float, **overrides):
    lat, lng = north_of(*CENTER, km)
    return await make_resource(session, latitude=lat, longitude=lng, **overrides)


def test_haversine_one_degree_on_equator():
    assert haversine_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(111.195, abs=0.001)


def test_haversine_same_point():
    assert haversine_km(*CENTER, *CENTER) == 0.0


def test_within_radius_is_inclusive():
    assert within_radius(5.0, 5.0)
    assert not within_radius(5.000001, 5.0)


def test_bounding_box_drops_longitude_near_pole():
    min_lat, max_lat, min_lng, max_lng = bounding_box(89.99, 0.0, 50.0)
    assert max_lat == 90.0
    assert min_lng is None and max_lng is None


def test_bounding_box_contains_circle():
    min_lat, max_lat, min_lng, max_lng = bounding_box(*CENTER, 5.0)
    lat, _ = north_of(*CENTER, 5.0)
    assert min_lat < CENTER[0] < lat <= max_lat
    assert min_lng < CENTER[1] < max_lng


@pytest.mark.asyncio
async def test_nearby_radius_boundary(db_session):
    """Within 5 km of (10.0, 76.0): 4.9 km is in, 5.1 km is out."""
    inside = await _at(db_session, 4.9, title="Inside")
    await _at(db_session, 5.1, title="Outside")

    results = await nearby(db_session, *CENTER, 5.0)

    assert [r.resource.id for r in results] == [inside.id]
    assert results[0].distance_km == pytest.approx(4.9, abs=1e-6)


@pytest.mark.asyncio
async def test_nearby_exact_boundary_included(db_session):
    on_edge = await _at(db_session, 5.0)

    results = await nearby(db_session, *CENTER, 5.0)

    assert [r.resource.id for r in results] == [on_edge.id]


@pytest.mark.asyncio
async def test_nearby_sorted_by_distance_then_newest(db_session):
    far = await _at(db_session, 3.0, title="Far")
    older = await _at(db_session, 1.0, title="Older")
    newer = await _at(db_session, 1.0, title="Newer")

    results = await nearby(db_session, *CENTER, 10.0)

    assert [r.resource.id for r in results] == [newer.id, older.id, far.id]


@pytest.mark.asyncio
async def test_nearby_skips_unclaimable(db_session):
    visible = await _at(db_session, 1.0)
    await _at(db_session, 1.0, remaining=0)
    await _at(db_session, 1.0, is_active=False)
    await _at(db_session, 1.0, expires_at=datetime.now(timezone.utc) - timedelta(minutes=5))
    await make_resource(db_session, title="Nowhere")

    results = await nearby(db_session, *CENTER, 10.0)

    assert [r.resource.id for r in results] == [visible.id]


@pytest.mark.asyncio
async def test_nearby_empty(db_session):
    assert await nearby(db_session, *CENTER, 10.0) == []


@pytest.mark.asyncio
async def test_nearby_respects_group_visibility(db_session, test_group):
    group_only = await _at(
        db_session, 1.0, owner_id=OTHER_USER_ID, visibility=Visibility.GROUP, group_id=test_group.id
    )

    assert await nearby(db_session, *CENTER, 10.0, viewer_id=USER_ID) == []
    assert await nearby(db_session, *CENTER, 10.0) == []

    member_view = await nearby(db_session, *CENTER, 10.0, viewer_id=OWNER_ID)
    assert [r.resource.id for r in member_view] == [group_only.id]

    owner_view = await nearby(db_session, *CENTER, 10.0, viewer_id=OTHER_USER_ID)
    assert [r.resource.id for r in owner_view] == [group_only.id]


@pytest.mark.asyncio
async def test_nearby_across_antimeridian(db_session):
    across = await make_resource(db_session, latitude=0.0, longitude=-179.99)

    results = await nearby(db_session, 0.0, 179.99, 5.0)

    assert [r.resource.id for r in results] == [across.id]
    assert results[0].distance_km == pytest.approx(2.224, abs=0.001)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "lat,lng,radius",
    [
        (91.0, 0.0, 5.0),
        (0.0, -181.0, 5.0),
        (0.0, 0.0, -1.0),
        (0.0, 0.0, 10_000.0),
    ],
)
async def test_nearby_rejects_invalid_input(db_session, lat, lng, radius):
    with pytest.raises(InvalidInput):
        await nearby(db_session, lat, lng, radius)

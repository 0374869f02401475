"""
Proximity index: resources within a great-circle radius of a point.

A latitude/longitude bounding box (ix_resources_lat_lng) narrows the rows
in SQL; the haversine distance then decides membership exactly, boundary
inclusive. Results are ordered by distance, newest first on ties.
"""

import math
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from foodshare.core.config import get_settings
from foodshare.core.errors import InvalidInput
from foodshare.core.logging import get_logger
from foodshare.db.base import as_utc, utcnow
from foodshare.models.resource import Resource, Visibility
from foodshare.services.membership_service import approved_group_ids

logger = get_logger(__name__)

EARTH_RADIUS_KM = 6371.0
# Keeps float noise in the box edges from dropping a point the exact check would keep
_BOX_PADDING_DEG = 1e-6


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(lat: float, lng: float, radius_km: float) -> tuple[float, float, Optional[float], Optional[float]]:
    """
    (min_lat, max_lat, min_lng, max_lng) enclosing the search circle.
    Longitude bounds are None when the circle reaches a pole or crosses the
    antimeridian; latitude alone then narrows the scan.
    """
    angular = radius_km / EARTH_RADIUS_KM
    dlat = math.degrees(angular) + _BOX_PADDING_DEG
    min_lat, max_lat = lat - dlat, lat + dlat
    if min_lat <= -90 or max_lat >= 90:
        return max(min_lat, -90.0), min(max_lat, 90.0), None, None

    ratio = math.sin(angular) / math.cos(math.radians(lat))
    if ratio >= 1:
        return min_lat, max_lat, None, None
    dlng = math.degrees(math.asin(ratio)) + _BOX_PADDING_DEG
    min_lng, max_lng = lng - dlng, lng + dlng
    if min_lng < -180 or max_lng > 180:
        return min_lat, max_lat, None, None
    return min_lat, max_lat, min_lng, max_lng


def within_radius(distance_km: float, radius_km: float) -> bool:
    return distance_km <= radius_km or math.isclose(distance_km, radius_km, rel_tol=1e-12, abs_tol=1e-12)


@dataclass
class NearbyResult:
    resource: Resource
    distance_km: float


def _validate(lat: float, lng: float, radius_km: float) -> None:
    if not -90 <= lat <= 90:
        raise InvalidInput("Latitude must be between -90 and 90")
    if not -180 <= lng <= 180:
        raise InvalidInput("Longitude must be between -180 and 180")
    if radius_km < 0:
        raise InvalidInput("Radius must not be negative")
    max_radius = get_settings().NEARBY_MAX_RADIUS_KM
    if radius_km > max_radius:
        raise InvalidInput(f"Radius must not exceed {max_radius} km")


async def nearby(
    db: AsyncSession,
    lat: float,
    lng: float,
    radius_km: float,
    viewer_id: Optional[str] = None,
) -> list[NearbyResult]:
    """
    Active, unexpired, claimable resources with a location, visible to
    `viewer_id`, within `radius_km` of (lat, lng). Empty list when nothing
    matches.
    """
    _validate(lat, lng, radius_km)

    min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_km)
    conditions = [
        Resource.is_active.is_(True),
        Resource.expires_at > utcnow(),
        Resource.remaining > 0,
        Resource.latitude.is_not(None),
        Resource.longitude.is_not(None),
        Resource.latitude.between(min_lat, max_lat),
    ]
    if min_lng is not None:
        conditions.append(Resource.longitude.between(min_lng, max_lng))

    visible = [Resource.visibility == Visibility.PUBLIC]
    if viewer_id is not None:
        group_ids = await approved_group_ids(db, viewer_id)
        if group_ids:
            visible.append(and_(Resource.visibility == Visibility.GROUP, Resource.group_id.in_(group_ids)))
        visible.append(Resource.owner_id == viewer_id)
    conditions.append(or_(*visible))

    result = await db.execute(select(Resource).where(*conditions))

    matches = []
    for resource in result.scalars().all():
        distance = haversine_km(lat, lng, resource.latitude, resource.longitude)
        if within_radius(distance, radius_km):
            matches.append(NearbyResult(resource=resource, distance_km=distance))

    matches.sort(key=lambda m: (m.distance_km, -as_utc(m.resource.created_at).timestamp()))

    logger.debug("nearby_query", lat=lat, lng=lng, radius_km=radius_km, matches=len(matches))
    return matches

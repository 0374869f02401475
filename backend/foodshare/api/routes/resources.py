"""
Resource endpoints: posting, the claimable feed, proximity search and claims.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from foodshare.core.config import get_settings
from foodshare.core.logging import get_logger
from foodshare.core.security import get_current_user_id
from foodshare.db.session import get_db
from foodshare.schemas.claim import ClaimResponse, ClaimRetractResponse
from foodshare.schemas.resource import (
    NearbyResourceResponse,
    ResourceCreate,
    ResourceListResponse,
    ResourceResponse,
    ResourceUpdate,
)
from foodshare.services.cache_service import (
    get_cached_listing,
    get_listing_generation,
    invalidate_listing_cache,
    set_cached_listing,
)
from foodshare.services.proximity_service import nearby
from foodshare.services.reservation_service import claim, list_resource_claims, retract_claim
from foodshare.services.resource_service import (
    create_resource,
    deactivate_resource,
    get_resource,
    list_claimable_resources,
    update_resource,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/resources", tags=["Resources"])


@router.post("/", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
async def create_resource_endpoint(
    resource_data: ResourceCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Post food to share, publicly or inside a group the poster belongs to."""
    resource = await create_resource(db, user_id, resource_data)
    await invalidate_listing_cache()
    return resource


@router.get("/", response_model=ResourceListResponse)
async def list_resources_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Public resources that can still be claimed.
    Served from Redis when cached; invalidated whenever remaining changes.
    The generation is read before the query so a page computed across a
    concurrent claim is cached under a generation that is already retired.
    """
    generation = await get_listing_generation()
    cached = await get_cached_listing(page, page_size, generation)
    if cached:
        cached["cached"] = True
        return ResourceListResponse(**cached)

    resources, total = await list_claimable_resources(db, page, page_size)
    response_data = {
        "resources": [ResourceResponse.model_validate(r).model_dump(mode="json") for r in resources],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_listing(page, page_size, generation, response_data)
    return ResourceListResponse(**response_data)


@router.get("/nearby", response_model=list[NearbyResourceResponse])
async def nearby_endpoint(
    lat: float = Query(...),
    lng: float = Query(...),
    radius_km: Optional[float] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Claimable resources within radius_km of (lat, lng), nearest first."""
    if radius_km is None:
        radius_km = get_settings().NEARBY_DEFAULT_RADIUS_KM
    results = await nearby(db, lat, lng, radius_km, viewer_id=user_id)
    return [
        NearbyResourceResponse(
            **ResourceResponse.model_validate(r.resource).model_dump(),
            distance_km=round(r.distance_km, 3),
        )
        for r in results
    ]


@router.get("/{resource_id}", response_model=ResourceResponse)
async def get_resource_endpoint(
    resource_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Single resource with its live remaining count. Not cached."""
    return await get_resource(db, resource_id, viewer_id=user_id)


@router.patch("/{resource_id}", response_model=ResourceResponse)
async def update_resource_endpoint(
    resource_id: str,
    resource_data: ResourceUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    resource = await update_resource(db, resource_id, user_id, resource_data)
    await invalidate_listing_cache()
    return resource


@router.post("/{resource_id}/deactivate", response_model=ResourceResponse)
async def deactivate_resource_endpoint(
    resource_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    resource = await deactivate_resource(db, resource_id, user_id)
    await invalidate_listing_cache()
    return resource


@router.post("/{resource_id}/claims", response_model=ClaimResponse, status_code=status.HTTP_201_CREATED)
async def claim_endpoint(
    resource_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Claim one portion.

    Concurrent claims on the last portion resolve to exactly one winner;
    the rest get 409 `exhausted`. A second claim by the same user gets 409
    `duplicate_claim`.
    """
    new_claim = await claim(db, resource_id, user_id)
    await invalidate_listing_cache()
    return new_claim


@router.delete("/{resource_id}/claims/me", response_model=ClaimRetractResponse)
async def retract_claim_endpoint(
    resource_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw your claim. The portion is not returned to the pool."""
    await retract_claim(db, resource_id, user_id)
    return ClaimRetractResponse(message="Claim retracted", resource_id=resource_id)


@router.get("/{resource_id}/claims", response_model=list[ClaimResponse])
async def list_resource_claims_endpoint(
    resource_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Claims on a resource, visible to its owner only."""
    return await list_resource_claims(db, resource_id, user_id)

"""
Tests for the generation-keyed claimable listing cache.
"""

import pytest
from httpx import AsyncClient

from conftest import future
from foodshare.services import cache_service


def listing(*expires_at) -> dict:
    return {
        "resources": [{"title": f"Plate {i}", "expires_at": e.isoformat()} for i, e in enumerate(expires_at)],
        "total": len(expires_at),
        "page": 1,
        "page_size": 20,
        "cached": False,
    }


@pytest.mark.asyncio
async def test_page_read_before_invalidation_is_never_served(fake_redis):
    generation = await cache_service.get_listing_generation()
    assert generation == 0

    # A claim commits and invalidates while the page was being computed
    await cache_service.invalidate_listing_cache()
    await cache_service.set_cached_listing(1, 20, generation, listing(future()))

    current = await cache_service.get_listing_generation()
    assert current == 1
    assert await cache_service.get_cached_listing(1, 20, current) is None


@pytest.mark.asyncio
async def test_cached_page_served_within_generation(fake_redis):
    generation = await cache_service.get_listing_generation()
    data = listing(future())
    await cache_service.set_cached_listing(1, 20, generation, data)

    assert await cache_service.get_cached_listing(1, 20, generation) == data


@pytest.mark.asyncio
async def test_ttl_capped_by_earliest_expiry(fake_redis):
    await cache_service.set_cached_listing(1, 20, 0, listing(future(hours=1), future(hours=10 / 3600)))

    ttl = await fake_redis.ttl(cache_service._make_listing_key(1, 20, 0))
    assert 0 < ttl <= 10


@pytest.mark.asyncio
async def test_page_with_expired_resource_not_cached(fake_redis):
    await cache_service.set_cached_listing(1, 20, 0, listing(future(hours=-1)))

    assert await fake_redis.exists(cache_service._make_listing_key(1, 20, 0)) == 0


@pytest.mark.asyncio
async def test_no_redis_means_no_cache():
    """REDIS_ENABLED is false in tests."""
    assert await cache_service.get_listing_generation() is None
    assert await cache_service.get_cached_listing(1, 20, None) is None


@pytest.mark.asyncio
async def test_claiming_last_portion_drops_it_from_cached_feed(
    client: AsyncClient, fake_redis, owner_headers, auth_headers
):
    created = await client.post(
        "/api/v1/resources/",
        json={"title": "Last plate", "capacity": 1, "expires_at": future().isoformat()},
        headers=owner_headers,
    )
    resource_id = created.json()["id"]

    first = await client.get("/api/v1/resources/", headers=auth_headers)
    assert first.json()["total"] == 1
    assert first.json()["cached"] is False

    second = await client.get("/api/v1/resources/", headers=auth_headers)
    assert second.json()["cached"] is True

    claimed = await client.post(f"/api/v1/resources/{resource_id}/claims", headers=auth_headers)
    assert claimed.status_code == 201

    after = await client.get("/api/v1/resources/", headers=auth_headers)
    assert after.json()["total"] == 0
    assert after.json()["cached"] is False

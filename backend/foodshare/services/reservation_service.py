"""
Reservation engine: concurrency-safe claiming of a finite resource.

CONCURRENCY STRATEGY: Per-key lock + Optimistic Locking with Retry
==================================================================

Problem:
  Two users try to claim the last portion simultaneously.
  Both read remaining=1, both decrement to 0, both succeed.
  Result: Overselling.

Solution, in layers:

  1. Per-resource key lock (LocalKeyLock or RedisKeyLock). Claims on one
     resource run one at a time; claims on different resources run in
     parallel. The lock is held until the transaction commits.

  2. Optimistic update guarded by the version column:
       UPDATE resources SET remaining = remaining - 1, version = version + 1
       WHERE id = :id AND version = :current_version AND remaining > 0
     rows_affected == 0 means someone else changed the row (e.g. another
     process while Redis was down) -> rollback and retry, at most
     MAX_RETRY_ATTEMPTS times, then Conflict.

  3. Database constraints as the final safety net:
     CHECK (remaining >= 0) and UNIQUE (resource_id, claimant_id).

  The decrement, the claim insert and the claim-confirmed notification
  share one transaction: either all become visible or none does.

Error precedence (each a distinct type):
  NotFound -> Forbidden -> Expired -> DuplicateClaim -> Exhausted

Re-calling is safe: a second claim by the same user is DuplicateClaim, never
a second decrement.
"""

import time

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from foodshare.core.errors import (
    Conflict, DuplicateClaim, Exhausted, Expired, Forbidden, FoodShareError, NotFound,
)
from foodshare.core.logging import get_logger
from foodshare.core.metrics import (
    claim_latency, optimistic_retries, record_claim_attempt, resources_exhausted,
)
from foodshare.models.claim import Claim
from foodshare.models.notification import NotificationKind
from foodshare.models.resource import Resource
from foodshare.services.interfaces.key_lock import resource_key
from foodshare.services.notification_service import NotificationEvent, notify
from foodshare.services.resource_service import can_access, is_expired
from foodshare.services.strategy_factory import get_key_lock

logger = get_logger(__name__)

MAX_RETRY_ATTEMPTS = 3


async def claim(db: AsyncSession, resource_id: str, user_id: str) -> Claim:
    """
    Claim one portion of a resource for `user_id`.

    Raises:
        NotFound, Forbidden, Expired, DuplicateClaim, Exhausted, or Conflict
        when optimistic retries are exhausted or the key lock is busy.
    """
    started = time.perf_counter()
    try:
        async with get_key_lock().hold(resource_key(resource_id)):
            new_claim = await _claim_locked(db, resource_id, user_id)
    except FoodShareError as e:
        record_claim_attempt(e.code)
        logger.info("claim_rejected", resource_id=resource_id, user_id=user_id, reason=e.code)
        raise
    finally:
        claim_latency.observe(time.perf_counter() - started)

    record_claim_attempt("success")
    return new_claim


async def _claim_locked(db: AsyncSession, resource_id: str, user_id: str) -> Claim:
    for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
        # Step 1: Read current resource state
        resource = (
            await db.execute(
                select(Resource)
                .where(Resource.id == resource_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()

        if resource is None:
            raise NotFound(f"Resource {resource_id} not found")

        if not await can_access(db, resource, user_id):
            raise Forbidden("This resource is restricted to group members")

        if is_expired(resource):
            raise Expired()

        existing = await db.execute(
            select(Claim.id).where(Claim.resource_id == resource_id, Claim.claimant_id == user_id)
        )
        if existing.first() is not None:
            raise DuplicateClaim()

        if resource.is_exhausted:
            raise Exhausted()

        # Step 2: Optimistic lock - update only if version matches
        current_version = resource.version
        remaining_after = resource.remaining - 1
        update_result = await db.execute(
            update(Resource)
            .where(
                Resource.id == resource_id,
                Resource.version == current_version,
                Resource.remaining > 0,
            )
            .values(
                remaining=Resource.remaining - 1,
                version=Resource.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

        if update_result.rowcount == 0:
            # Version conflict - another writer modified this resource
            optimistic_retries.inc()
            logger.info(
                "claim_retry",
                resource_id=resource_id,
                attempt=attempt,
                reason="version_conflict",
            )
            await db.rollback()
            if attempt == MAX_RETRY_ATTEMPTS:
                raise Conflict("Claim failed due to high demand. Please try again.")
            continue

        # Step 3: Create claim record
        new_claim = Claim(resource_id=resource_id, claimant_id=user_id)
        db.add(new_claim)
        try:
            await db.flush()
        except IntegrityError:
            # Same user won a concurrent claim in another process; the
            # rollback also undoes this attempt's decrement
            await db.rollback()
            raise DuplicateClaim()

        await notify(
            db,
            NotificationEvent(
                kind=NotificationKind.CLAIM_CONFIRMED,
                reference_id=new_claim.id,
                actor_id=user_id,
                subject_id=user_id,
            ),
            title="Food reserved!",
            message=f"You've reserved a portion of {resource.title}",
        )
        await db.commit()
        await db.refresh(resource)
        await db.refresh(new_claim)

        logger.info(
            "claim_created",
            claim_id=new_claim.id,
            resource_id=resource_id,
            user_id=user_id,
            remaining=remaining_after,
            attempt=attempt,
        )
        if remaining_after == 0:
            resources_exhausted.inc()
            logger.info("resource_exhausted", resource_id=resource_id, capacity=resource.capacity)
        return new_claim

    # Should not reach here, but just in case
    raise Conflict("Claim failed unexpectedly")


async def retract_claim(db: AsyncSession, resource_id: str, user_id: str) -> None:
    """
    Delete the caller's claim. The portion is not returned: remaining only
    ever goes down, so a resource never serves more than `capacity` claims.
    """
    async with get_key_lock().hold(resource_key(resource_id)):
        existing = (
            await db.execute(
                select(Claim).where(Claim.resource_id == resource_id, Claim.claimant_id == user_id)
            )
        ).scalar_one_or_none()
        if existing is None:
            raise NotFound("You have no claim on this resource")

        await db.delete(existing)
        await db.commit()

    logger.info("claim_retracted", resource_id=resource_id, user_id=user_id)


async def list_user_claims(db: AsyncSession, user_id: str) -> list[Claim]:
    """Get all claims for a user."""
    result = await db.execute(
        select(Claim)
        .where(Claim.claimant_id == user_id)
        .order_by(Claim.created_at.desc())
    )
    return list(result.scalars().all())


async def list_resource_claims(db: AsyncSession, resource_id: str, acting_user_id: str) -> list[Claim]:
    """Claims against a resource, visible to its owner only."""
    resource = (await db.execute(select(Resource).where(Resource.id == resource_id))).scalar_one_or_none()
    if resource is None:
        raise NotFound(f"Resource {resource_id} not found")
    if resource.owner_id != acting_user_id:
        raise Forbidden("Only the owner can see who claimed this resource")

    result = await db.execute(
        select(Claim)
        .where(Claim.resource_id == resource_id)
        .order_by(Claim.created_at.asc())
    )
    return list(result.scalars().all())

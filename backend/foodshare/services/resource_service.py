"""
Resource store operations: create, read, edit and deactivate food posts.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from foodshare.core.errors import Forbidden, InvalidInput, NotFound
from foodshare.core.logging import get_logger
from foodshare.db.base import as_utc, utcnow
from foodshare.models.group import Group
from foodshare.models.notification import NotificationKind
from foodshare.models.resource import Resource, Visibility
from foodshare.schemas.resource import ResourceCreate, ResourceUpdate
from foodshare.services.interfaces.key_lock import resource_key
from foodshare.services.membership_service import is_approved_member
from foodshare.services.notification_service import NotificationEvent, notify
from foodshare.services.strategy_factory import get_key_lock

logger = get_logger(__name__)


def is_expired(resource: Resource, now: Optional[datetime] = None) -> bool:
    """Past its validity window or deactivated."""
    now = now or utcnow()
    return not resource.is_active or as_utc(resource.expires_at) <= now


async def can_access(db: AsyncSession, resource: Resource, user_id: Optional[str]) -> bool:
    """Public resources are open to all; group ones to approved members and the owner."""
    if resource.visibility == Visibility.PUBLIC:
        return True
    if user_id is None:
        return False
    if resource.owner_id == user_id:
        return True
    if resource.group_id is None:
        return False
    return await is_approved_member(db, resource.group_id, user_id)


async def _load(db: AsyncSession, resource_id: str) -> Resource:
    resource = (
        await db.execute(
            select(Resource)
            .where(Resource.id == resource_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if resource is None:
        raise NotFound(f"Resource {resource_id} not found")
    return resource


def _check_future(expires_at: datetime) -> datetime:
    expires_at = as_utc(expires_at)
    if expires_at <= utcnow():
        raise InvalidInput("Expiry must be in the future")
    return expires_at


async def create_resource(db: AsyncSession, owner_id: str, resource_data: ResourceCreate) -> Resource:
    """
    Create a resource with its full capacity remaining.

    Posting to a group requires approved membership; every other approved
    member of that group is notified in the same transaction.
    """
    expires_at = _check_future(resource_data.expires_at)

    group = None
    if resource_data.group_id is not None:
        group = (
            await db.execute(select(Group).where(Group.id == resource_data.group_id))
        ).scalar_one_or_none()
        if group is None:
            raise NotFound(f"Group {resource_data.group_id} not found")
        if not await is_approved_member(db, group.id, owner_id):
            raise Forbidden("Only approved members can post to this group")

    resource = Resource(
        owner_id=owner_id,
        title=resource_data.title,
        description=resource_data.description,
        location_name=resource_data.location_name,
        latitude=resource_data.latitude,
        longitude=resource_data.longitude,
        capacity=resource_data.capacity,
        remaining=resource_data.capacity,  # Everything available initially
        visibility=Visibility.GROUP if group is not None else Visibility.PUBLIC,
        group_id=group.id if group is not None else None,
        expires_at=expires_at,
        is_active=True,
    )
    db.add(resource)
    await db.flush()

    if group is not None:
        await notify(
            db,
            NotificationEvent(
                kind=NotificationKind.NEW_RESOURCE,
                reference_id=resource.id,
                group_id=group.id,
                actor_id=owner_id,
            ),
            title="New food shared",
            message=f"{resource.title} was just posted in {group.name}",
        )

    await db.commit()
    await db.refresh(resource)

    logger.info(
        "resource_created",
        resource_id=resource.id,
        owner_id=owner_id,
        capacity=resource.capacity,
        group_id=resource.group_id,
    )
    return resource


async def get_resource(db: AsyncSession, resource_id: str, viewer_id: Optional[str] = None) -> Resource:
    resource = await _load(db, resource_id)
    if not await can_access(db, resource, viewer_id):
        raise Forbidden("This resource is restricted to group members")
    return resource


async def update_resource(
    db: AsyncSession,
    resource_id: str,
    owner_id: str,
    resource_data: ResourceUpdate,
) -> Resource:
    """Owner-only metadata edit. Capacity and remaining are not editable."""
    async with get_key_lock().hold(resource_key(resource_id)):
        resource = await _load(db, resource_id)
        if resource.owner_id != owner_id:
            raise Forbidden("Only the owner can edit this resource")

        changes = resource_data.model_dump(exclude_unset=True)
        if changes.get("expires_at") is not None:
            changes["expires_at"] = _check_future(changes["expires_at"])
        if "latitude" in changes or "longitude" in changes:
            lat = changes.get("latitude", resource.latitude)
            lng = changes.get("longitude", resource.longitude)
            if (lat is None) != (lng is None):
                raise InvalidInput("latitude and longitude must be given together")

        for field, value in changes.items():
            if field in ("title", "expires_at") and value is None:
                continue
            setattr(resource, field, value)
        resource.version = resource.version + 1

        await db.commit()
        await db.refresh(resource)

    logger.info("resource_updated", resource_id=resource_id, fields=sorted(changes))
    return resource


async def deactivate_resource(db: AsyncSession, resource_id: str, owner_id: str) -> Resource:
    """Soft terminal state. Idempotent for the owner."""
    async with get_key_lock().hold(resource_key(resource_id)):
        resource = await _load(db, resource_id)
        if resource.owner_id != owner_id:
            raise Forbidden("Only the owner can deactivate this resource")

        if resource.is_active:
            resource.is_active = False
            resource.version = resource.version + 1
            await db.commit()
            await db.refresh(resource)
            logger.info("resource_deactivated", resource_id=resource_id, remaining=resource.remaining)

    return resource


async def list_claimable_resources(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Resource], int]:
    """
    Public resources that can still be claimed, newest first.
    Uses ix_resources_active_expires for the active/unexpired filter.
    """
    query = select(Resource).where(
        Resource.visibility == Visibility.PUBLIC,
        Resource.is_active.is_(True),
        Resource.expires_at > utcnow(),
        Resource.remaining > 0,
    )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    result = await db.execute(
        query
        .order_by(Resource.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def list_group_resources(db: AsyncSession, group_id: str, viewer_id: str) -> list[Resource]:
    """Active resources of a group, exhausted ones included as history."""
    group = (await db.execute(select(Group).where(Group.id == group_id))).scalar_one_or_none()
    if group is None:
        raise NotFound(f"Group {group_id} not found")
    if not await is_approved_member(db, group_id, viewer_id):
        raise Forbidden("Only approved members can see this group's resources")

    result = await db.execute(
        select(Resource)
        .where(Resource.group_id == group_id, Resource.is_active.is_(True))
        .order_by(Resource.created_at.desc())
    )
    return list(result.scalars().all())

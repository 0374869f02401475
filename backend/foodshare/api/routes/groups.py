"""
Group endpoints and the admin-gated membership workflow.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from foodshare.core.security import get_current_user_id
from foodshare.db.session import get_db
from foodshare.models.join_request import JoinRequestStatus
from foodshare.schemas.group import (
    GroupCreate,
    GroupResponse,
    GroupUpdate,
    JoinRequestCreate,
    JoinRequestResponse,
    MembershipActionResponse,
    MembershipResponse,
)
from foodshare.schemas.resource import ResourceResponse
from foodshare.services import membership_service
from foodshare.services.cache_service import invalidate_listing_cache
from foodshare.services.resource_service import list_group_resources

router = APIRouter(prefix="/groups", tags=["Groups"])


@router.post("/", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group_endpoint(
    group_data: GroupCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a group. The creator becomes its admin and first member."""
    return await membership_service.create_group(db, user_id, group_data)


@router.get("/", response_model=list[GroupResponse])
async def list_groups_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await membership_service.list_groups(db, user_id)


@router.get("/requests/mine", response_model=list[JoinRequestResponse])
async def list_my_requests_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Join requests made by the authenticated user, newest first."""
    return await membership_service.list_user_requests(db, user_id)


@router.get("/{group_id}", response_model=GroupResponse)
async def get_group_endpoint(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await membership_service.get_group(db, group_id, user_id)


@router.patch("/{group_id}", response_model=GroupResponse)
async def update_group_endpoint(
    group_id: str,
    group_data: GroupUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await membership_service.update_group(db, group_id, user_id, group_data)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group_endpoint(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Delete a group. Its resources are deactivated."""
    await membership_service.delete_group(db, group_id, user_id)
    await invalidate_listing_cache()


@router.post("/{group_id}/requests", response_model=JoinRequestResponse, status_code=status.HTTP_201_CREATED)
async def request_join_endpoint(
    group_id: str,
    request_data: JoinRequestCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await membership_service.request_join(db, group_id, user_id, request_data.message)


@router.get("/{group_id}/requests", response_model=list[JoinRequestResponse])
async def list_requests_endpoint(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Pending join requests. Group admin only."""
    return await membership_service.list_pending_requests(db, group_id, user_id)


@router.get("/{group_id}/members", response_model=list[MembershipResponse])
async def list_members_endpoint(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await membership_service.list_members(db, group_id, user_id)


@router.post("/{group_id}/members/{member_id}/approve", response_model=MembershipResponse)
async def approve_endpoint(
    group_id: str,
    member_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending request. Approving an existing member is a no-op."""
    return await membership_service.approve(db, group_id, member_id, user_id)


@router.post("/{group_id}/members/{member_id}/reject", response_model=MembershipActionResponse)
async def reject_endpoint(
    group_id: str,
    member_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Decline a pending request, revoking membership if one exists."""
    await membership_service.reject(db, group_id, member_id, user_id)
    return MembershipActionResponse(group_id=group_id, user_id=member_id, status=JoinRequestStatus.REJECTED)


@router.delete("/{group_id}/members/{member_id}", response_model=MembershipActionResponse)
async def remove_endpoint(
    group_id: str,
    member_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Remove a member. Members may also remove themselves."""
    await membership_service.remove(db, group_id, member_id, user_id)
    return MembershipActionResponse(group_id=group_id, user_id=member_id, status="removed")


@router.get("/{group_id}/resources", response_model=list[ResourceResponse])
async def list_group_resources_endpoint(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await list_group_resources(db, group_id, user_id)

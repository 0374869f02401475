"""
Notification inbox endpoints.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from foodshare.core.security import get_current_user_id
from foodshare.db.session import get_db
from foodshare.schemas.notification import MarkAllReadResponse, NotificationResponse, UnreadCountResponse
from foodshare.services.notification_service import list_notifications, mark_all_read, mark_read, unread_count

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/", response_model=list[NotificationResponse])
async def list_notifications_endpoint(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """The caller's notifications, newest first."""
    return await list_notifications(db, user_id, unread_only=unread_only, limit=limit)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCountResponse(unread=await unread_count(db, user_id))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return MarkAllReadResponse(updated=await mark_all_read(db, user_id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read_endpoint(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await mark_read(db, notification_id, user_id)

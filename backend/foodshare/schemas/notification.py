"""
Pydantic schemas for the notification inbox.
"""

from datetime import datetime
from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: str
    recipient_id: str
    kind: str
    reference_id: str
    title: str
    message: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UnreadCountResponse(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    updated: int

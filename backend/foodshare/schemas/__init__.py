from typing import Optional

from pydantic import BaseModel

from foodshare.schemas.resource import (
    ResourceCreate, ResourceUpdate, ResourceResponse, NearbyResourceResponse, ResourceListResponse,
)
from foodshare.schemas.claim import ClaimResponse, ClaimRetractResponse
from foodshare.schemas.group import (
    GroupCreate, GroupUpdate, GroupResponse, MembershipResponse,
    JoinRequestCreate, JoinRequestResponse, MembershipActionResponse,
)
from foodshare.schemas.notification import NotificationResponse, UnreadCountResponse, MarkAllReadResponse


class ErrorResponse(BaseModel):
    error: str
    detail: str
    request_id: Optional[str] = None


__all__ = [
    "ErrorResponse",
    "ResourceCreate", "ResourceUpdate", "ResourceResponse", "NearbyResourceResponse", "ResourceListResponse",
    "ClaimResponse", "ClaimRetractResponse",
    "GroupCreate", "GroupUpdate", "GroupResponse", "MembershipResponse",
    "JoinRequestCreate", "JoinRequestResponse", "MembershipActionResponse",
    "NotificationResponse", "UnreadCountResponse", "MarkAllReadResponse",
]

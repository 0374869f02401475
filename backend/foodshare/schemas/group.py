"""
Pydantic schemas for groups, memberships and join requests.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    visibility: Literal["public", "private"] = "public"
    member_limit: Optional[int] = Field(None, gt=0, le=100000)


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    visibility: Optional[Literal["public", "private"]] = None
    member_limit: Optional[int] = Field(None, gt=0, le=100000)


class GroupResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    admin_id: str
    visibility: str
    member_limit: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class MembershipResponse(BaseModel):
    group_id: str
    user_id: str
    status: str
    role: str
    approved_by: Optional[str]
    decided_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class JoinRequestCreate(BaseModel):
    message: Optional[str] = Field(None, max_length=1000)


class JoinRequestResponse(BaseModel):
    id: str
    group_id: str
    user_id: str
    message: Optional[str]
    status: str
    decided_by: Optional[str]
    decided_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class MembershipActionResponse(BaseModel):
    group_id: str
    user_id: str
    status: str

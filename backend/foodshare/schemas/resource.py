"""
Pydantic schemas for resource-related request/response validation.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class _LocationFields(BaseModel):
    location_name: Optional[str] = Field(None, max_length=255)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class ResourceCreate(_LocationFields):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    capacity: int = Field(..., gt=0, le=10000)
    group_id: Optional[str] = None
    expires_at: datetime

    @model_validator(mode="after")
    def check_coordinate_pair(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        return self


class ResourceUpdate(_LocationFields):
    """
    Partial edit. A single coordinate is merged with the stored one by the
    service, which rejects a result that has only one of the pair.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    expires_at: Optional[datetime] = None


class ResourceResponse(BaseModel):
    id: str
    owner_id: str
    title: str
    description: Optional[str]
    location_name: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    capacity: int
    remaining: int
    visibility: Literal["public", "group"]
    group_id: Optional[str]
    expires_at: datetime
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NearbyResourceResponse(ResourceResponse):
    distance_km: float


class ResourceListResponse(BaseModel):
    resources: list[ResourceResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False

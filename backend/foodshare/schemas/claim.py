"""
Pydantic schemas for claim responses.
"""

from datetime import datetime
from pydantic import BaseModel


class ClaimResponse(BaseModel):
    id: str
    resource_id: str
    claimant_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ClaimRetractResponse(BaseModel):
    message: str
    resource_id: str

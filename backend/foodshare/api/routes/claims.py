"""
Claims of the authenticated user.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from foodshare.core.security import get_current_user_id
from foodshare.db.session import get_db
from foodshare.schemas.claim import ClaimResponse
from foodshare.services.reservation_service import list_user_claims

router = APIRouter(prefix="/claims", tags=["Claims"])


@router.get("/", response_model=list[ClaimResponse])
async def list_my_claims(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await list_user_claims(db, user_id)

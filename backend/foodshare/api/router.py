"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from foodshare.api.routes import claims, groups, notifications, resources

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(resources.router)
api_router.include_router(claims.router)
api_router.include_router(groups.router)
api_router.include_router(notifications.router)

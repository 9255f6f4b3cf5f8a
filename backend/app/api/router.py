"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from app.api.routes import channels, redemptions

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(redemptions.router)
api_router.include_router(channels.router)

"""API v1 router combining all endpoint routers."""

from fastapi import APIRouter

from app.api.v1 import timeline

api_router = APIRouter()

api_router.include_router(timeline.router, prefix="/timeline", tags=["timeline"])

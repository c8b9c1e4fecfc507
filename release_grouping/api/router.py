from fastapi import APIRouter
from release_grouping.api.routes import groups, health

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["Health"])
api_router.include_router(groups.router, prefix="/groups", tags=["Groups"])

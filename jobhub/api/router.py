from fastapi import APIRouter

from jobhub.api.routes import applications, health, jobs, notifications, search

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(search.router, prefix="/search", tags=["search"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(applications.router, prefix="/applications", tags=["applications"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])

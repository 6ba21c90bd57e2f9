from fastapi import APIRouter
from screener.api import applications, attachments, jobs, screening, search, settings

api_router = APIRouter(prefix="/api")
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(applications.router, tags=["applications"])
api_router.include_router(screening.router, prefix="/screen", tags=["screening"])
api_router.include_router(attachments.router, prefix="/attachments", tags=["attachments"])
api_router.include_router(search.router, prefix="/search", tags=["search"])
api_router.include_router(settings.router, prefix="/settings", tags=["settings"])

from fastapi import APIRouter

from simflow.api.v1.health import router as health_router
from simflow.api.v1.projects import router as projects_router
from simflow.api.v1.requests import router as requests_router
from simflow.api.v1.discussions import router as discussions_router
from simflow.api.v1.admin.jobs import router as admin_jobs_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM / CORE
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])

# ------------------------------------------------------------------
# PROJECTS / HOURS
# ------------------------------------------------------------------
v1_router.include_router(projects_router, tags=["projects"])

# ------------------------------------------------------------------
# REQUESTS / DISCUSSIONS
# ------------------------------------------------------------------
v1_router.include_router(requests_router, tags=["requests"])
v1_router.include_router(discussions_router, tags=["discussions"])

# ------------------------------------------------------------------
# ADMIN
# ------------------------------------------------------------------
v1_router.include_router(admin_jobs_router, tags=["admin"])

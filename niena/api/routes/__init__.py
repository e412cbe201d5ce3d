"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from niena.api.routes.auth_routes import router as auth_router
from niena.api.routes.resume_routes import router as resume_router
from niena.api.routes.tailored_routes import router as tailored_router
from niena.api.routes.job_routes import router as job_router
from niena.api.routes.interview_routes import router as interview_router
from niena.api.routes.event_routes import router as event_router
from niena.api.routes.admin_routes import router as admin_router
from niena.api.routes.notification_routes import router as notification_router

api_router = APIRouter()

api_router.include_router(auth_router)
api_router.include_router(resume_router)
api_router.include_router(tailored_router)
api_router.include_router(job_router)
api_router.include_router(interview_router)
api_router.include_router(event_router)
api_router.include_router(admin_router)
api_router.include_router(notification_router)

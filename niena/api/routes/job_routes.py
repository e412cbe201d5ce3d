"""
Job Routes

GET /jobs - List ingested jobs with filters
GET /jobs/recommendations - Jobs ranked against the user's resumes
GET /jobs/{job_id} - Job details
POST /jobs/{job_id}/view - Count a view (anonymous visitors allowed)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from niena.api.deps import client_ip
from niena.core.auth import get_current_user, get_optional_user_id
from niena.services import matching_service
from niena.schemas.schemas import (
    JobResponse, JobListResponse, JobViewResponse, RecommendationListResponse
)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.get("", response_model=JobListResponse)
async def list_jobs(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    location: Optional[str] = None,
    remote_only: bool = False
):
    return matching_service.list_jobs(page, page_size, search, location, remote_only)


@router.get("/recommendations", response_model=RecommendationListResponse)
def get_recommendations(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    user: dict = Depends(get_current_user)
):
    """
    Rank every job by similarity to the user's resume skills and experience.
    Capped at the plan's weekly matches.
    """
    jobs = matching_service.recommend_jobs(user["user_id"], plan=user["plan"], limit=limit)
    return RecommendationListResponse(user_id=user["user_id"], total=len(jobs), recommendations=jobs)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: int):
    return matching_service.get_job(job_id)


@router.post("/{job_id}/view", response_model=JobViewResponse)
async def record_job_view(
    job_id: int,
    request: Request,
    user_id: Optional[int] = Depends(get_optional_user_id)
):
    return matching_service.record_view(
        job_id,
        user_id,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent", "unknown")
    )

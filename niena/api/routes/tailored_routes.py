"""
Tailored Resume Routes

POST /tailored - Tailor the primary resume to a job (1 credit), in background
GET /tailored - List tailored resumes
GET /tailored/{tailored_id} - Tailored resume with analysis and scores
PUT /tailored/{tailored_id}/content - Save edited content and rescore
POST /tailored/{tailored_id}/cover-letter - Generate a cover letter
DELETE /tailored/{tailored_id} - Delete tailored resume

Progress events: TAILORED_RESUME_READY, TAILORED_RESUME_FAILED, COVER_LETTER_READY.
"""

import json
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends

from niena.api.deps import run_workflow
from niena.core.auth import get_current_user
from niena.services.resume_service import ResumeService, get_resume_service
from niena.services.tailoring_service import TailoringService, get_tailoring_service
from niena.schemas.schemas import (
    TailoredCreate, TailoredRescore, CoverLetterRequest, TailoredAccepted, TailoredResponse,
    TailoredSummary, MessageResponse
)

router = APIRouter(prefix="/tailored", tags=["Tailored Resumes"])


def _tailoring_source(primary: dict) -> str:
    """Structured resume JSON when the primary was analyzed, raw text otherwise."""
    if primary.get("extracted_data"):
        return json.dumps(primary["extracted_data"], ensure_ascii=False)
    return primary.get("content") or ""


@router.post("", response_model=TailoredAccepted, status_code=202)
async def create_tailored(
    body: TailoredCreate,
    background_tasks: BackgroundTasks,
    user: dict = Depends(get_current_user),
    service: TailoringService = Depends(get_tailoring_service),
    resumes: ResumeService = Depends(get_resume_service)
):
    primary = resumes.get_resume(body.primary_resume_id, user["user_id"])
    tailored_id = service.request_tailored(
        user["user_id"], body.primary_resume_id, body.name, body.role, body.description, body.mode
    )
    background_tasks.add_task(
        run_workflow, service.run_tailoring_workflow,
        tailored_id, user["user_id"], _tailoring_source(primary),
        body.description, body.mode, body.primary_resume_id
    )
    return TailoredAccepted(tailored_id=tailored_id, message="Tailored resume is being generated")


@router.get("", response_model=List[TailoredSummary])
async def list_tailored(
    user: dict = Depends(get_current_user),
    service: TailoringService = Depends(get_tailoring_service)
):
    return service.list_tailored(user["user_id"])


@router.get("/{tailored_id}", response_model=TailoredResponse)
async def get_tailored(
    tailored_id: int,
    user: dict = Depends(get_current_user),
    service: TailoringService = Depends(get_tailoring_service)
):
    return service.get_tailored(tailored_id, user["user_id"])


@router.put("/{tailored_id}/content", response_model=TailoredAccepted, status_code=202)
async def rescore_tailored(
    tailored_id: int,
    body: TailoredRescore,
    background_tasks: BackgroundTasks,
    user: dict = Depends(get_current_user),
    service: TailoringService = Depends(get_tailoring_service)
):
    row = service.mark_processing(tailored_id, user["user_id"])
    description = body.description if body.description is not None else (row.get("description") or "")
    background_tasks.add_task(
        run_workflow, service.rescore_tailored, tailored_id, user["user_id"], body.content, description
    )
    return TailoredAccepted(tailored_id=tailored_id, message="Tailored resume is being rescored")


@router.post("/{tailored_id}/cover-letter", response_model=TailoredAccepted, status_code=202)
async def create_cover_letter(
    tailored_id: int,
    background_tasks: BackgroundTasks,
    body: CoverLetterRequest = None,
    user: dict = Depends(get_current_user),
    service: TailoringService = Depends(get_tailoring_service)
):
    row = service.mark_processing(tailored_id, user["user_id"])
    job_description = (body.job_description if body else None) or row.get("description") or ""
    background_tasks.add_task(
        run_workflow, service.generate_cover_letter,
        tailored_id, user["user_id"], row.get("content") or "", job_description
    )
    return TailoredAccepted(tailored_id=tailored_id, message="Cover letter is being generated")


@router.delete("/{tailored_id}", response_model=MessageResponse)
async def delete_tailored(
    tailored_id: int,
    user: dict = Depends(get_current_user),
    service: TailoringService = Depends(get_tailoring_service)
):
    service.delete_tailored(tailored_id, user["user_id"])
    return MessageResponse(message="Tailored resume deleted")

"""
Resume Routes - primary resumes

POST /resumes - Create from pasted text (1 credit), analyzed in background
POST /resumes/upload - Create from PDF/DOCX/TXT upload (1 credit)
GET /resumes - List resumes with their tailored resumes
GET /resumes/{resume_id} - Resume with content and agent outputs
PUT /resumes/{resume_id} - Re-analyze, optionally against a target role
POST /resumes/{resume_id}/autofix - Apply analysis suggestions (1 credit)
POST /resumes/{resume_id}/primary - Make this the primary resume
DELETE /resumes/{resume_id} - Delete resume and its documents

Progress is reported over /events/stream (RESUME_READY / RESUME_FAILED).
"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile

from niena.api.deps import run_workflow
from niena.core.auth import get_current_user
from niena.services import resume_service
from niena.services.resume_service import ResumeService, get_resume_service
from niena.utils.file_upload import extract_text_from_file, resume_name_from_filename
from niena.schemas.schemas import (
    ResumeCreate, ResumeUpdate, ResumeAccepted, ResumeResponse, ResumeListItem, MessageResponse
)

router = APIRouter(prefix="/resumes", tags=["Resumes"])


def _accept_resume(
    service: ResumeService,
    background_tasks: BackgroundTasks,
    user_id: int,
    name: str,
    content: str,
    role: Optional[str],
    description: Optional[str]
) -> ResumeAccepted:
    resume_id = service.request_resume(user_id, name, content)
    background_tasks.add_task(
        run_workflow, service.run_resume_workflow, resume_id, user_id, content, role, description
    )
    return ResumeAccepted(resume_id=resume_id, message="Resume is being analyzed")


@router.post("", response_model=ResumeAccepted, status_code=202)
async def create_resume(
    body: ResumeCreate,
    background_tasks: BackgroundTasks,
    user: dict = Depends(get_current_user),
    service: ResumeService = Depends(get_resume_service)
):
    return _accept_resume(
        service, background_tasks, user["user_id"], body.name, body.content, body.role, body.description
    )


@router.post("/upload", response_model=ResumeAccepted, status_code=202)
async def upload_resume(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    name: Optional[str] = Form(None),
    role: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    user: dict = Depends(get_current_user),
    service: ResumeService = Depends(get_resume_service)
):
    """Upload PDF, DOCX or TXT (max 5MB). The file name is the default resume name."""
    content, filename = await extract_text_from_file(file)
    return _accept_resume(
        service, background_tasks, user["user_id"], name or resume_name_from_filename(filename),
        content, role, description
    )


@router.get("", response_model=List[ResumeListItem])
async def list_resumes(
    user: dict = Depends(get_current_user),
    service: ResumeService = Depends(get_resume_service)
):
    return service.list_primary_resumes(user["user_id"])


@router.get("/{resume_id}", response_model=ResumeResponse)
async def get_resume(
    resume_id: int,
    user: dict = Depends(get_current_user),
    service: ResumeService = Depends(get_resume_service)
):
    return service.get_resume(resume_id, user["user_id"])


@router.put("/{resume_id}", response_model=ResumeAccepted, status_code=202)
async def update_resume(
    resume_id: int,
    body: ResumeUpdate,
    background_tasks: BackgroundTasks,
    user: dict = Depends(get_current_user),
    service: ResumeService = Depends(get_resume_service)
):
    service.request_update(resume_id, user["user_id"], body.name)
    background_tasks.add_task(
        run_workflow, service.run_update_workflow,
        resume_id, user["user_id"], body.content, body.role, body.description
    )
    return ResumeAccepted(resume_id=resume_id, message="Resume is being re-analyzed")


@router.post("/{resume_id}/autofix")
def autofix_resume(
    resume_id: int,
    user: dict = Depends(get_current_user),
    service: ResumeService = Depends(get_resume_service)
):
    """Runs synchronously; returns the fixed resume."""
    return {"resume_id": resume_id, "autofix_data": service.autofix(resume_id, user["user_id"])}


@router.post("/{resume_id}/primary", response_model=MessageResponse)
async def set_primary_resume(resume_id: int, user: dict = Depends(get_current_user)):
    resume_service.set_primary(resume_id, user["user_id"])
    return MessageResponse(message="Primary resume updated")


@router.delete("/{resume_id}", response_model=MessageResponse)
async def delete_resume(
    resume_id: int,
    user: dict = Depends(get_current_user),
    service: ResumeService = Depends(get_resume_service)
):
    service.delete_resume(resume_id, user["user_id"])
    return MessageResponse(message="Resume deleted")

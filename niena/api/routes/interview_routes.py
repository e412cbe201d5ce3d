"""
Interview Routes - AI mock interviews

POST /interviews - Schedule an interview; questions generated in background
GET /interviews - List interviews
GET /interviews/{interview_id} - Interview details
POST /interviews/{interview_id}/start - SCHEDULED -> ACTIVE
POST /interviews/{interview_id}/end - End and deduct minutes
POST /interviews/{interview_id}/force-end - Time ran out (TIMEOUT)
GET /interviews/{interview_id}/time - Remaining seconds and warning level
POST /interviews/{interview_id}/analyze - Score the transcript
"""

from fastapi import APIRouter, BackgroundTasks, Depends

from niena.api.deps import run_workflow
from niena.core.auth import get_current_user
from niena.services.interview_service import InterviewService, get_interview_service
from niena.schemas.schemas import (
    InterviewCreate, InterviewStart, InterviewEnd, InterviewCreated, RemainingTimeResponse
)

router = APIRouter(prefix="/interviews", tags=["Interviews"])


@router.post("", response_model=InterviewCreated, status_code=201)
async def create_interview(
    body: InterviewCreate,
    background_tasks: BackgroundTasks,
    user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service)
):
    created = service.create_session(
        user["user_id"], body.role, body.description, body.type,
        body.question_count, body.resume_id, body.mode
    )
    background_tasks.add_task(
        run_workflow, service.generate_questions,
        created["interview_id"], user["user_id"], body.role, body.description,
        body.type, body.question_count, body.resume_id
    )
    return created


@router.get("")
async def list_interviews(
    user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service)
):
    return service.list_interviews(user["user_id"])


@router.get("/{interview_id}")
async def get_interview(
    interview_id: int,
    user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service)
):
    return service.get_interview(interview_id, user["user_id"])


@router.post("/{interview_id}/start")
async def start_interview(
    interview_id: int,
    body: InterviewStart,
    user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service)
):
    return service.start_interview(interview_id, user["user_id"], body.conversation_id)


@router.post("/{interview_id}/end")
async def end_interview(
    interview_id: int,
    body: InterviewEnd = None,
    user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service)
):
    transcript = None
    if body and body.transcript:
        transcript = [entry.model_dump() for entry in body.transcript]
    return service.end_interview(interview_id, user["user_id"], transcript)


@router.post("/{interview_id}/force-end")
async def force_end_interview(
    interview_id: int,
    user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service)
):
    return service.force_end_interview(interview_id, user["user_id"])


@router.get("/{interview_id}/time", response_model=RemainingTimeResponse)
async def get_remaining_time(
    interview_id: int,
    user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service)
):
    return service.get_remaining_time(interview_id, user["user_id"])


@router.post("/{interview_id}/analyze")
def analyze_interview(
    interview_id: int,
    user: dict = Depends(get_current_user),
    service: InterviewService = Depends(get_interview_service)
):
    """Runs the assessment agent synchronously."""
    return service.analyze_interview(interview_id, user["user_id"])

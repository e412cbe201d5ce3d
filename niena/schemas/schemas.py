"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List, Any, Dict, Literal
from datetime import datetime


# ============================================================
# AUTH SCHEMAS
# ============================================================

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int
    role: str

class UserResponse(BaseModel):
    user_id: int
    email: str
    role: str
    is_active: bool
    plan: str
    plan_expires_at: Optional[datetime] = None
    resume_credits: int
    interview_minutes: float
    created_at: datetime

class DashboardResponse(BaseModel):
    plan: str
    plan_expires_at: Optional[datetime] = None
    resume_credits: int
    interview_minutes: float
    weekly_matches: int
    resume_count: int
    tailored_count: int
    interview_count: int


# ============================================================
# RESUME SCHEMAS
# ============================================================

class ResumeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    role: Optional[str] = None
    description: Optional[str] = None

class ResumeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    role: Optional[str] = None
    description: Optional[str] = None

class ResumeAccepted(BaseModel):
    resume_id: int
    status: str = "PROCESSING"
    message: str

class ResumeResponse(BaseModel):
    resume_id: int
    user_id: int
    name: str
    is_primary: bool
    status: str
    content: Optional[str] = None
    extracted_data: Optional[Any] = None
    analysis_data: Optional[Any] = None
    score_data: Optional[Any] = None
    autofix_data: Optional[Any] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

class TailoredSummary(BaseModel):
    tailored_id: int
    primary_resume_id: Optional[int] = None
    name: str
    role: Optional[str] = None
    tailoring_mode: str
    final_score: Optional[float] = None
    status: str
    updated_at: Optional[datetime] = None

class ResumeListItem(BaseModel):
    resume_id: int
    name: str
    is_primary: bool
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    tailored_resumes: List[TailoredSummary] = []


# ============================================================
# TAILORED RESUME SCHEMAS
# ============================================================

TailoringMode = Literal["nudge", "keywords", "full", "refine", "enrich"]

class TailoredCreate(BaseModel):
    primary_resume_id: int
    name: str = Field(..., min_length=1, max_length=200)
    role: Optional[str] = None
    description: str = Field(..., min_length=1)
    mode: TailoringMode = "keywords"

class TailoredRescore(BaseModel):
    content: str = Field(..., min_length=1)
    description: Optional[str] = None

class CoverLetterRequest(BaseModel):
    job_description: Optional[str] = None

class TailoredAccepted(BaseModel):
    tailored_id: int
    status: str = "PROCESSING"
    message: str

class TailoredResponse(BaseModel):
    tailored_id: int
    user_id: int
    primary_resume_id: Optional[int] = None
    name: str
    role: Optional[str] = None
    description: Optional[str] = None
    tailoring_mode: str
    content: Optional[str] = None
    cover_letter: Optional[str] = None
    final_score: Optional[float] = None
    status: str
    extracted_data: Optional[Any] = None
    analysis: Optional[Dict[str, Any]] = None
    scores: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


# ============================================================
# JOB SCHEMAS
# ============================================================

class JobResponse(BaseModel):
    job_id: int
    job_publisher: Optional[str] = None
    job_title: str
    employer_name: Optional[str] = None
    employer_logo: Optional[str] = None
    job_apply_link: Optional[str] = None
    job_location: Optional[str] = None
    job_description: Optional[str] = None
    job_posted_at: Optional[str] = None
    job_is_remote: bool = False
    view_count: int = 0
    qualifications: Optional[List[str]] = None
    responsibilities: Optional[List[str]] = None
    created_at: Optional[datetime] = None

class JobListResponse(BaseModel):
    jobs: List[JobResponse]
    total: int
    page: int
    page_size: int

class JobRecommendation(JobResponse):
    skill_similarity: float
    responsibility_similarity: float
    total_similarity: float

class RecommendationListResponse(BaseModel):
    user_id: int
    total: int
    recommendations: List[JobRecommendation]

class JobViewResponse(BaseModel):
    success: bool
    viewed: bool


# ============================================================
# INTERVIEW SCHEMAS
# ============================================================

class InterviewCreate(BaseModel):
    role: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    type: Literal["screening", "behavioral", "technical", "general", "promotion"] = "general"
    question_count: int = Field(10, ge=3, le=20)
    resume_id: Optional[int] = None
    mode: Literal["VOICE", "AVATAR"] = "VOICE"

class InterviewStart(BaseModel):
    conversation_id: str

class TranscriptEntry(BaseModel):
    role: str
    content: str

class InterviewEnd(BaseModel):
    transcript: Optional[List[TranscriptEntry]] = None

    @field_validator("transcript")
    @classmethod
    def empty_is_none(cls, v):
        return v or None

class InterviewCreated(BaseModel):
    interview_id: int
    status: str

class RemainingTimeResponse(BaseModel):
    remaining_seconds: int
    should_end: bool
    warning_level: Optional[str] = None


# ============================================================
# INGESTION SCHEMAS
# ============================================================

class ScheduleDailyRequest(BaseModel):
    limit: Optional[int] = Field(None, ge=1, le=50)

class IngestCategoryRequest(BaseModel):
    category_id: Optional[int] = None


# ============================================================
# ADMIN SCHEMAS
# ============================================================

class CategoryCreate(BaseModel):
    category: str = Field(..., min_length=1, max_length=200)
    location: Optional[str] = Field(None, max_length=200)
    active: bool = True

class CategoryUpdate(BaseModel):
    category: Optional[str] = Field(None, min_length=1, max_length=200)
    location: Optional[str] = Field(None, max_length=200)
    active: Optional[bool] = None

class CategoryResponse(BaseModel):
    category_id: int
    category: str
    location: Optional[str] = None
    active: bool
    last_fetched_at: Optional[datetime] = None

class SuspensionUpdate(BaseModel):
    is_suspended: bool

class PlanUpdate(BaseModel):
    plan: Literal["FREE", "SILVER", "GOLD", "DIAMOND"]
    expires_at: Optional[datetime] = None

class UserPlanResponse(BaseModel):
    user_id: int
    plan: str
    plan_expires_at: Optional[datetime] = None
    resume_credits: int
    interview_minutes: float


# ============================================================
# NOTIFICATION SCHEMAS
# ============================================================

class NotificationResponse(BaseModel):
    id: int
    title: str
    content: str
    sentAt: datetime
    isRead: bool
    readAt: Optional[datetime] = None

class UnreadCountResponse(BaseModel):
    count: int

class MarkAllReadResponse(BaseModel):
    success: bool = True
    count: int


# ============================================================
# COMMON SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True

"""
Interview Service - AI mock interviews.

Lifecycle:
    SCHEDULED --start--> ACTIVE --end--> ENDED --analyze--> ANALYZED
                           |
                           +--force end (time ran out)--> TIMEOUT

Interview minutes are stored in minutes on the user. Ending an interview
deducts ceil(duration / 60) minutes, never below 0. Questions are
generated in the background right after the session is created.
"""
import json
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from niena.core.errors import (
    AgentOutputError,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
)
from niena.db.postgres import get_db_session
from niena.services import prompts
from niena.services.agent_pipeline import (
    interview_questions_network,
    interview_assessment_network,
)
from niena.services.events import EventType, emit_to_user
from niena.services.llm_client import LLMClient, get_llm_client
from niena.services.mongo_service import RawResumeService

logger = logging.getLogger(__name__)

MIN_MINUTES_TO_START = 0.5
MIN_CONVERSATION_ID_LENGTH = 10
NO_MINUTES_WARNING = "No credits left. Please purchase more minutes to continue."

INTERVIEW_TYPE_MAP = {
    "screening": "SCREENING",
    "behavioral": "BEHAVIORAL",
    "technical": "TECHNICAL",
    "general": "GENERAL",
    "promotion": "PROMPT_SCHOLARSHIP",
}

INTERVIEW_COLUMNS = """
    interview_id, user_id, resume_id, role, description, interview_type, mode,
    question_count, questions, status, conversation_id, start_time, end_time,
    duration_seconds, transcript, analysis_score, analysis_feedback, feedback,
    analyzed_at, created_at
"""


# ============================================================
# PURE HELPERS
# ============================================================

def normalize_interview_type(value: str) -> str:
    return INTERVIEW_TYPE_MAP.get((value or "").lower(), "GENERAL")


def compute_used_minutes(duration_seconds: int) -> int:
    """Minutes charged for an interview: every started minute counts."""
    return math.ceil(max(0, duration_seconds) / 60)


def compute_duration_seconds(status: str, start_time: Optional[datetime], end_time: datetime) -> int:
    """Elapsed seconds of an ACTIVE interview; a SCHEDULED one never started."""
    if status == "ACTIVE" and start_time:
        return max(0, int((end_time - start_time).total_seconds()))
    return 0


def compute_remaining_time(
    status: str,
    interview_minutes: float,
    start_time: Optional[datetime] = None,
    now: datetime = None
) -> Dict[str, Any]:
    """
    Countdown for the interview screen.

    Returns:
        {"remaining_seconds": int, "should_end": bool, "warning_level": None | "low" | "critical"}
    """
    if status not in ("ACTIVE", "SCHEDULED"):
        return {"remaining_seconds": 0, "should_end": True, "warning_level": None}

    total_seconds = math.floor(float(interview_minutes) * 60)
    if status == "SCHEDULED" or start_time is None:
        return {"remaining_seconds": max(0, total_seconds), "should_end": False, "warning_level": None}

    now = now or datetime.utcnow()
    elapsed = math.floor((now - start_time).total_seconds())
    remaining = total_seconds - elapsed

    warning_level = None
    if 0 < remaining <= 10:
        warning_level = "critical"
    elif 10 < remaining <= 15:
        warning_level = "low"

    return {
        "remaining_seconds": max(0, remaining),
        "should_end": remaining <= 0,
        "warning_level": warning_level,
    }


def build_question_input(role: str, description: str, interview_type: str,
                         question_count: int, resume_content: str = "") -> str:
    lines = [
        f"Role: {role}",
        f"Job Description: {description}",
        f"Interview Type: {interview_type}",
        f"Number of Questions: {question_count}",
    ]
    if resume_content:
        lines.append(f"Resume Context: {resume_content}")
    return "\n".join(lines)


def format_transcript(transcript: List[Dict[str, str]]) -> str:
    return "\n\n".join(
        f"{str(msg.get('role', '')).upper()}: {msg.get('content', '')}" for msg in transcript
    )


def validate_assessment(result: Any) -> dict:
    if not isinstance(result, dict):
        raise AgentOutputError("AI returned invalid JSON structure")
    score = result.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not result.get("feedback"):
        raise AgentOutputError("AI returned invalid JSON structure")
    if not 1 <= score <= 5:
        raise AgentOutputError(f"AI returned a score outside 1-5: {score}")
    return {
        "score": score,
        "feedback": result["feedback"],
        "strengths": list(result.get("strengths") or []),
        "weaknesses": list(result.get("weaknesses") or []),
    }


def format_feedback_markdown(assessment: dict) -> str:
    strengths = "\n".join(f"- {s}" for s in assessment.get("strengths", []))
    weaknesses = "\n".join(f"- {w}" for w in assessment.get("weaknesses", []))
    return (
        f"{assessment['feedback']}\n\n"
        f"### Key Strengths\n{strengths}\n\n"
        f"### Areas for Improvement\n{weaknesses}"
    ).strip()


# ============================================================
# POSTGRES HELPERS
# ============================================================

def _insert_interview(user_id: int, resume_id: Optional[int], role: str, description: str,
                      interview_type: str, mode: str, question_count: int) -> int:
    with get_db_session() as db:
        row = db.execute(
            text("""
                INSERT INTO interviews (user_id, resume_id, role, description, interview_type,
                                        mode, question_count, questions, status)
                VALUES (:uid, :rid, :role, :description, :itype, :mode, :qcount, '[]', 'SCHEDULED')
                RETURNING interview_id
            """),
            {"uid": user_id, "rid": resume_id, "role": role, "description": description,
             "itype": interview_type, "mode": mode, "qcount": question_count}
        ).fetchone()
    return row[0]


def _get_interview(interview_id: int) -> Optional[dict]:
    with get_db_session() as db:
        row = db.execute(
            text(f"SELECT {INTERVIEW_COLUMNS} FROM interviews WHERE interview_id = :iid"),
            {"iid": interview_id}
        ).mappings().fetchone()
    return dict(row) if row else None


def _list_interviews(user_id: int) -> List[dict]:
    with get_db_session() as db:
        rows = db.execute(
            text("""
                SELECT interview_id, role, interview_type, mode, status, start_time,
                       duration_seconds, analysis_score, created_at
                FROM interviews WHERE user_id = :uid
                ORDER BY created_at DESC
            """),
            {"uid": user_id}
        ).mappings().fetchall()
    return [dict(r) for r in rows]


def _get_interview_minutes(user_id: int) -> float:
    with get_db_session() as db:
        row = db.execute(
            text("SELECT interview_minutes FROM users WHERE user_id = :uid"),
            {"uid": user_id}
        ).fetchone()
    if not row:
        raise NotFoundError("User not found")
    return float(row[0])


def _has_active_interview(user_id: int) -> bool:
    with get_db_session() as db:
        row = db.execute(
            text("SELECT 1 FROM interviews WHERE user_id = :uid AND status = 'ACTIVE' LIMIT 1"),
            {"uid": user_id}
        ).fetchone()
    return row is not None


def _activate_interview(interview_id: int, conversation_id: str, start_time: datetime) -> bool:
    """
    SCHEDULED -> ACTIVE. False when the interview is no longer scheduled.
    uq_interviews_one_active rejects a second ACTIVE interview for the user.
    """
    try:
        with get_db_session() as db:
            result = db.execute(
                text("""
                    UPDATE interviews
                    SET status = 'ACTIVE', conversation_id = :cid, start_time = :start
                    WHERE interview_id = :iid AND status = 'SCHEDULED'
                """),
                {"cid": conversation_id, "start": start_time, "iid": interview_id}
            )
            return result.rowcount == 1
    except IntegrityError:
        raise InvalidStateError("User already has an active interview")


def _close_interview(interview_id: int, user_id: int, status: str, end_time: datetime,
                     duration_seconds: int, transcript_json: Optional[str]) -> float:
    """Close the interview and charge the minutes in one transaction. Returns the new balance."""
    with get_db_session() as db:
        db.execute(
            text("""
                UPDATE interviews
                SET status = :status, end_time = :end_time, duration_seconds = :duration,
                    transcript = COALESCE(CAST(:transcript AS JSONB), transcript)
                WHERE interview_id = :iid
            """),
            {"status": status, "end_time": end_time, "duration": duration_seconds,
             "transcript": transcript_json, "iid": interview_id}
        )
        row = db.execute(
            text("""
                UPDATE users
                SET interview_minutes = GREATEST(interview_minutes - :used, 0)
                WHERE user_id = :uid
                RETURNING interview_minutes
            """),
            {"used": compute_used_minutes(duration_seconds), "uid": user_id}
        ).fetchone()
    return float(row[0]) if row else 0.0


def _store_questions(interview_id: int, questions_json: str) -> None:
    with get_db_session() as db:
        db.execute(
            text("UPDATE interviews SET questions = CAST(:q AS JSONB) WHERE interview_id = :iid"),
            {"q": questions_json, "iid": interview_id}
        )


def _store_analysis(interview_id: int, score: float, feedback_md: Optional[str],
                    feedback_json: Optional[str]) -> None:
    with get_db_session() as db:
        db.execute(
            text("""
                UPDATE interviews
                SET status = 'ANALYZED', analysis_score = :score, analysis_feedback = :feedback_md,
                    feedback = CAST(:feedback_json AS JSONB), analyzed_at = NOW()
                WHERE interview_id = :iid
            """),
            {"score": score, "feedback_md": feedback_md, "feedback_json": feedback_json,
             "iid": interview_id}
        )


# ============================================================
# INTERVIEW SERVICE
# ============================================================

class InterviewService:

    def __init__(self, llm_client: LLMClient = None, raw_resumes: RawResumeService = None):
        self.llm_client = llm_client or get_llm_client()
        self.raw_resumes = raw_resumes or RawResumeService()

    def _owned_interview(self, interview_id: int, user_id: int) -> dict:
        interview = _get_interview(interview_id)
        if not interview or interview["user_id"] != user_id:
            raise NotFoundError("Interview not found or unauthorized")
        return interview

    # ---------- create ----------

    def create_session(
        self,
        user_id: int,
        role: str,
        description: str,
        interview_type: str = "general",
        question_count: int = 10,
        resume_id: int = None,
        mode: str = "VOICE"
    ) -> dict:
        """Insert a SCHEDULED interview; questions are generated afterwards."""
        interview_id = _insert_interview(
            user_id, resume_id, role, description,
            normalize_interview_type(interview_type), mode, question_count
        )
        logger.info("Interview %s scheduled for user %s", interview_id, user_id)
        return {"interview_id": interview_id, "status": "SCHEDULED"}

    def generate_questions(
        self,
        interview_id: int,
        user_id: int,
        role: str,
        description: str,
        interview_type: str,
        question_count: int,
        resume_id: int = None
    ) -> List[dict]:
        resume_content = self.raw_resumes.get_content(resume_id) if resume_id else ""
        input_text = build_question_input(
            role, description, interview_type, question_count, resume_content or ""
        )
        state = interview_questions_network().run(input_text, client=self.llm_client)
        data = state.get("questions")
        if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
            logger.error("Invalid questions format for interview %s", interview_id)
            raise AgentOutputError("Invalid questions format")

        _store_questions(interview_id, json.dumps(data["questions"]))
        emit_to_user(user_id, EventType.INTERVIEW_READY, {"interviewId": interview_id})
        return data["questions"]

    # ---------- run ----------

    def start_interview(self, interview_id: int, user_id: int, conversation_id: str) -> dict:
        interview = self._owned_interview(interview_id, user_id)
        minutes = _get_interview_minutes(user_id)
        remaining_seconds = max(0, math.floor(minutes * 60))

        if minutes < MIN_MINUTES_TO_START:
            return {
                "interview": {"id": None, "remaining_seconds": remaining_seconds},
                "has_sufficient_time": False,
                "warning": NO_MINUTES_WARNING,
            }

        if _has_active_interview(user_id):
            raise InvalidStateError("User already has an active interview")
        if not conversation_id or len(conversation_id) < MIN_CONVERSATION_ID_LENGTH:
            raise InvalidRequestError("Invalid conversation_id format")
        if interview["status"] != "SCHEDULED":
            raise InvalidStateError(f"Cannot start interview with status: {interview['status']}")

        start_time = datetime.utcnow()
        if not _activate_interview(interview_id, conversation_id, start_time):
            raise InvalidStateError("Interview is no longer scheduled")
        logger.info("Interview %s started", interview_id)
        return {
            "interview": {
                "id": interview_id,
                "start_time": start_time,
                "remaining_seconds": remaining_seconds,
                "conversation_id": conversation_id,
            },
            "has_sufficient_time": True,
        }

    def end_interview(self, interview_id: int, user_id: int,
                      transcript: List[Dict[str, str]] = None) -> dict:
        interview = self._owned_interview(interview_id, user_id)

        if interview["status"] in ("ENDED", "TIMEOUT", "ANALYZED"):
            minutes = _get_interview_minutes(user_id)
            return {
                "interview": {
                    "id": interview_id,
                    "duration_seconds": interview["duration_seconds"],
                    "end_time": interview["end_time"] or datetime.utcnow(),
                    "status": interview["status"],
                },
                "remaining_seconds": max(0, math.floor(minutes * 60)),
            }

        if interview["status"] not in ("ACTIVE", "SCHEDULED"):
            logger.warning("Interview %s is %s, marking as ENDED", interview_id, interview["status"])

        end_time = datetime.utcnow()
        duration = compute_duration_seconds(interview["status"], interview["start_time"], end_time)
        balance = _close_interview(
            interview_id, user_id, "ENDED", end_time, duration,
            json.dumps(transcript) if transcript else None
        )
        logger.info("Interview %s ended after %ds", interview_id, duration)
        return {
            "interview": {
                "id": interview_id,
                "duration_seconds": duration,
                "end_time": end_time,
                "status": "ENDED",
            },
            "remaining_seconds": max(0, math.floor(balance * 60)),
        }

    def force_end_interview(self, interview_id: int, user_id: int) -> dict:
        interview = self._owned_interview(interview_id, user_id)
        if interview["status"] != "ACTIVE":
            raise InvalidStateError(f"Cannot force-end interview with status: {interview['status']}")

        end_time = datetime.utcnow()
        duration = compute_duration_seconds("ACTIVE", interview["start_time"], end_time)
        balance = _close_interview(interview_id, user_id, "TIMEOUT", end_time, duration, None)
        logger.info("Interview %s timed out after %ds", interview_id, duration)
        return {
            "interview": {
                "id": interview_id,
                "duration_seconds": duration,
                "end_time": end_time,
                "status": "TIMEOUT",
            },
            "remaining_seconds": max(0, math.floor(balance * 60)),
        }

    def get_remaining_time(self, interview_id: int, user_id: int) -> dict:
        interview = _get_interview(interview_id)
        if not interview or interview["user_id"] != user_id:
            return compute_remaining_time("MISSING", 0)
        return compute_remaining_time(
            interview["status"], _get_interview_minutes(user_id), interview["start_time"]
        )

    # ---------- analysis ----------

    def analyze_interview(self, interview_id: int, user_id: int) -> dict:
        """
        Score the transcript with the assessment agent and store the result.
        An interview without a transcript is stored with score 0.
        """
        interview = self._owned_interview(interview_id, user_id)
        if interview["status"] not in ("ENDED", "TIMEOUT", "ANALYZED"):
            raise InvalidStateError("Interview has not ended yet")

        transcript = interview.get("transcript") or []
        if not transcript:
            _store_analysis(interview_id, 0, None, None)
            return {"score": 0, "feedback": None}

        resume_content = ""
        if interview.get("resume_id"):
            resume_content = self.raw_resumes.get_content(interview["resume_id"]) or ""

        system_prompt = prompts.fill_template(
            prompts.INTERVIEW_ASSESSMENT_PROMPT,
            role=interview.get("role") or "Candidate",
            description_context=(
                f"Job Description context: {interview['description']}" if interview.get("description") else ""
            ),
            resume_context=f"Candidate's Resume content: {resume_content}" if resume_content else "",
        )
        state = interview_assessment_network(system_prompt).run(
            f"Here is the interview transcript:\n\n{format_transcript(transcript)}",
            client=self.llm_client
        )
        assessment = validate_assessment(state.get("assessment"))

        _store_analysis(
            interview_id,
            assessment["score"],
            format_feedback_markdown(assessment),
            json.dumps(assessment)
        )
        logger.info("Interview %s analyzed: score %s", interview_id, assessment["score"])
        return assessment

    # ---------- reads ----------

    def get_interview(self, interview_id: int, user_id: int) -> dict:
        return self._owned_interview(interview_id, user_id)

    def list_interviews(self, user_id: int) -> List[dict]:
        return _list_interviews(user_id)


def get_interview_service() -> InterviewService:
    return InterviewService()

from contextlib import contextmanager
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import EventRecorder
from niena.core.errors import AgentOutputError, InvalidRequestError, InvalidStateError, NotFoundError
from niena.services import interview_service
from niena.services.events import EventType
from niena.services.interview_service import (
    InterviewService,
    compute_duration_seconds,
    compute_remaining_time,
    compute_used_minutes,
    format_feedback_markdown,
    format_transcript,
    normalize_interview_type,
    validate_assessment,
)


# ============================================================
# PURE HELPERS
# ============================================================

def test_interview_type_mapping():
    assert normalize_interview_type("technical") == "TECHNICAL"
    assert normalize_interview_type("promotion") == "PROMPT_SCHOLARSHIP"
    assert normalize_interview_type("unknown") == "GENERAL"


def test_used_minutes_round_up():
    assert compute_used_minutes(0) == 0
    assert compute_used_minutes(1) == 1
    assert compute_used_minutes(60) == 1
    assert compute_used_minutes(61) == 2


def test_duration_only_for_active_interviews():
    start = datetime(2024, 5, 1, 10, 0, 0)
    end = datetime(2024, 5, 1, 10, 2, 30)
    assert compute_duration_seconds("ACTIVE", start, end) == 150
    assert compute_duration_seconds("SCHEDULED", None, end) == 0


def test_remaining_time_for_finished_interview():
    assert compute_remaining_time("ENDED", 10) == {"remaining_seconds": 0, "should_end": True, "warning_level": None}


def test_remaining_time_for_scheduled_interview_is_full_balance():
    assert compute_remaining_time("SCHEDULED", 2.5)["remaining_seconds"] == 150


@pytest.mark.parametrize("elapsed, remaining, warning", [
    (100, 20, None),
    (105, 15, "low"),
    (109, 11, "low"),
    (110, 10, "critical"),
    (119, 1, "critical"),
])
def test_remaining_time_warning_levels(elapsed, remaining, warning):
    start = datetime(2024, 5, 1, 10, 0, 0)
    result = compute_remaining_time("ACTIVE", 2, start, now=start + timedelta(seconds=elapsed))
    assert result["remaining_seconds"] == remaining
    assert result["warning_level"] == warning
    assert result["should_end"] is False


def test_remaining_time_out_of_minutes():
    start = datetime(2024, 5, 1, 10, 0, 0)
    result = compute_remaining_time("ACTIVE", 1, start, now=start + timedelta(seconds=75))
    assert result == {"remaining_seconds": 0, "should_end": True, "warning_level": None}


def test_format_transcript():
    transcript = [{"role": "assistant", "content": "Tell me about yourself"}, {"role": "user", "content": "I am Ama"}]
    assert format_transcript(transcript) == "ASSISTANT: Tell me about yourself\n\nUSER: I am Ama"


def test_validate_assessment():
    result = validate_assessment({"score": 4, "feedback": "Solid", "strengths": ["clear"]})
    assert result == {"score": 4, "feedback": "Solid", "strengths": ["clear"], "weaknesses": []}


@pytest.mark.parametrize("payload", [
    None,
    {"score": "4", "feedback": "x"},
    {"score": 4},
    {"score": 9, "feedback": "x"},
    {"score": True, "feedback": "x"},
])
def test_validate_assessment_rejects_bad_output(payload):
    with pytest.raises(AgentOutputError):
        validate_assessment(payload)


def test_feedback_markdown_sections():
    md = format_feedback_markdown({"feedback": "Good", "strengths": ["clear"], "weaknesses": ["short"]})
    assert md == "Good\n\n### Key Strengths\n- clear\n\n### Areas for Improvement\n- short"


# ============================================================
# SERVICE
# ============================================================

@pytest.fixture
def interview_db(monkeypatch):
    state = {"minutes": 10.0, "interviews": {}, "closed": [], "analysis": None, "questions": None}

    def insert(user_id, resume_id, role, description, interview_type, mode, question_count):
        interview_id = len(state["interviews"]) + 1
        state["interviews"][interview_id] = {
            "interview_id": interview_id, "user_id": user_id, "resume_id": resume_id,
            "role": role, "description": description, "interview_type": interview_type,
            "mode": mode, "question_count": question_count, "status": "SCHEDULED",
            "start_time": None, "end_time": None, "duration_seconds": 0, "transcript": None,
        }
        return interview_id

    def activate(interview_id, conversation_id, start_time):
        state["interviews"][interview_id].update(
            status="ACTIVE", conversation_id=conversation_id, start_time=start_time
        )
        return True

    def close(interview_id, user_id, status, end_time, duration_seconds, transcript_json):
        state["interviews"][interview_id].update(
            status=status, end_time=end_time, duration_seconds=duration_seconds
        )
        state["minutes"] = max(state["minutes"] - compute_used_minutes(duration_seconds), 0)
        state["closed"].append((interview_id, status, duration_seconds, transcript_json))
        return state["minutes"]

    def store_analysis(interview_id, score, feedback_md, feedback_json):
        state["interviews"][interview_id]["status"] = "ANALYZED"
        state["analysis"] = (score, feedback_md, feedback_json)

    def has_active(user_id):
        return any(i["status"] == "ACTIVE" and i["user_id"] == user_id for i in state["interviews"].values())

    monkeypatch.setattr(interview_service, "_insert_interview", insert)
    monkeypatch.setattr(interview_service, "_get_interview",
                        lambda iid: dict(state["interviews"][iid]) if iid in state["interviews"] else None)
    monkeypatch.setattr(interview_service, "_get_interview_minutes", lambda uid: state["minutes"])
    monkeypatch.setattr(interview_service, "_has_active_interview", has_active)
    monkeypatch.setattr(interview_service, "_activate_interview", activate)
    monkeypatch.setattr(interview_service, "_close_interview", close)
    monkeypatch.setattr(interview_service, "_store_questions",
                        lambda iid, q: state.update(questions=q))
    monkeypatch.setattr(interview_service, "_store_analysis", store_analysis)
    return state


@pytest.fixture
def recorder(monkeypatch):
    events = EventRecorder()
    monkeypatch.setattr(interview_service, "emit_to_user", events)
    return events


@pytest.fixture
def service(fake_llm, raw_resumes):
    return InterviewService(llm_client=fake_llm, raw_resumes=raw_resumes)


def test_create_session_is_scheduled(service, interview_db):
    created = service.create_session(1, "Nurse", "Ward nurse", "promotion", 5)
    assert created == {"interview_id": 1, "status": "SCHEDULED"}
    assert interview_db["interviews"][1]["interview_type"] == "PROMPT_SCHOLARSHIP"


def test_generate_questions_stores_and_notifies(service, fake_llm, interview_db, raw_resumes, recorder):
    raw_resumes.save(4, 1, "Ama's resume")
    service.create_session(1, "Nurse", "Ward nurse", "general", 3, resume_id=4)
    fake_llm.queue({"questions": [{"question": "Why nursing?"}]})

    questions = service.generate_questions(1, 1, "Nurse", "Ward nurse", "general", 3, resume_id=4)

    assert questions == [{"question": "Why nursing?"}]
    assert interview_db["questions"] == '[{"question": "Why nursing?"}]'
    assert "Resume Context: Ama's resume" in fake_llm.calls[0]["user_content"]
    assert recorder.types() == [EventType.INTERVIEW_READY]


def test_generate_questions_requires_question_list(service, fake_llm, interview_db, recorder):
    service.create_session(1, "Nurse", "", "general", 3)
    fake_llm.queue({"items": []})
    with pytest.raises(AgentOutputError):
        service.generate_questions(1, 1, "Nurse", "", "general", 3)
    assert recorder.events == []


def test_start_without_minutes_returns_warning(service, interview_db):
    interview_db["minutes"] = 0.25
    service.create_session(1, "Nurse", "", "general", 3)

    result = service.start_interview(1, 1, "conv-1234567890")

    assert result["has_sufficient_time"] is False
    assert result["warning"].startswith("No credits left")
    assert interview_db["interviews"][1]["status"] == "SCHEDULED"


def test_start_rejects_short_conversation_id(service, interview_db):
    service.create_session(1, "Nurse", "", "general", 3)
    with pytest.raises(InvalidRequestError):
        service.start_interview(1, 1, "short")


def test_start_rejects_second_active_interview(service, interview_db):
    service.create_session(1, "Nurse", "", "general", 3)
    service.create_session(1, "Doctor", "", "general", 3)
    service.start_interview(1, 1, "conv-1234567890")
    with pytest.raises(InvalidStateError):
        service.start_interview(2, 1, "conv-0987654321")


def test_other_users_interview_is_not_found(service, interview_db):
    service.create_session(1, "Nurse", "", "general", 3)
    with pytest.raises(NotFoundError):
        service.start_interview(1, 2, "conv-1234567890")


def test_start_then_end_charges_started_minutes(service, interview_db):
    service.create_session(1, "Nurse", "", "general", 3)
    service.start_interview(1, 1, "conv-1234567890")
    interview_db["interviews"][1]["start_time"] = datetime.utcnow() - timedelta(seconds=130)

    result = service.end_interview(1, 1, [{"role": "user", "content": "hello"}])

    assert result["interview"]["status"] == "ENDED"
    assert result["interview"]["duration_seconds"] >= 130
    # 130 s -> 3 minutes charged from 10
    assert interview_db["minutes"] == 7
    assert result["remaining_seconds"] == 420
    assert interview_db["closed"][0][3] == '[{"role": "user", "content": "hello"}]'


def test_end_scheduled_interview_costs_nothing(service, interview_db):
    service.create_session(1, "Nurse", "", "general", 3)
    result = service.end_interview(1, 1)
    assert result["interview"]["duration_seconds"] == 0
    assert interview_db["minutes"] == 10.0


def test_end_already_ended_is_idempotent(service, interview_db):
    service.create_session(1, "Nurse", "", "general", 3)
    service.end_interview(1, 1)
    again = service.end_interview(1, 1)
    assert again["interview"]["status"] == "ENDED"
    assert len(interview_db["closed"]) == 1


def test_end_after_timeout_keeps_timeout(service, interview_db):
    service.create_session(1, "Nurse", "", "general", 3)
    service.start_interview(1, 1, "conv-1234567890")
    interview_db["interviews"][1]["start_time"] = datetime.utcnow() - timedelta(seconds=130)
    forced = service.force_end_interview(1, 1)

    ended = service.end_interview(1, 1, [{"role": "user", "content": "late"}])

    row = interview_db["interviews"][1]
    assert row["status"] == "TIMEOUT"
    assert row["duration_seconds"] == forced["interview"]["duration_seconds"] >= 130
    assert ended["interview"]["status"] == "TIMEOUT"
    assert ended["interview"]["end_time"] == forced["interview"]["end_time"]
    assert len(interview_db["closed"]) == 1
    assert interview_db["minutes"] == 7


def test_force_end_only_from_active(service, interview_db):
    service.create_session(1, "Nurse", "", "general", 3)
    with pytest.raises(InvalidStateError):
        service.force_end_interview(1, 1)

    service.start_interview(1, 1, "conv-1234567890")
    result = service.force_end_interview(1, 1)
    assert result["interview"]["status"] == "TIMEOUT"


def test_remaining_time_for_missing_interview(service, interview_db):
    assert service.get_remaining_time(99, 1)["should_end"] is True


def test_analyze_empty_transcript_scores_zero(service, fake_llm, interview_db):
    service.create_session(1, "Nurse", "", "general", 3)
    service.end_interview(1, 1)

    assert service.analyze_interview(1, 1) == {"score": 0, "feedback": None}
    assert interview_db["analysis"] == (0, None, None)
    assert fake_llm.calls == []


def test_analyze_requires_ended_interview(service, interview_db):
    service.create_session(1, "Nurse", "", "general", 3)
    with pytest.raises(InvalidStateError):
        service.analyze_interview(1, 1)


def test_analyze_stores_assessment(service, fake_llm, interview_db):
    service.create_session(1, "Nurse", "Ward nurse", "general", 3)
    service.end_interview(1, 1)
    interview_db["interviews"][1]["transcript"] = [
        {"role": "assistant", "content": "Why nursing?"},
        {"role": "user", "content": "I like helping people."},
    ]
    fake_llm.queue({"score": 3, "feedback": "Decent", "strengths": ["warm"], "weaknesses": ["brief"]})

    result = service.analyze_interview(1, 1)

    assert result["score"] == 3
    score, feedback_md, feedback_json = interview_db["analysis"]
    assert score == 3
    assert "### Key Strengths\n- warm" in feedback_md
    assert '"weaknesses": ["brief"]' in feedback_json
    call = fake_llm.calls[0]
    assert "role of: Nurse" in call["system_prompt"]
    assert "Job Description context: Ward nurse" in call["system_prompt"]
    assert "USER: I like helping people." in call["user_content"]


class FakeUpdateResult:
    def __init__(self, rowcount):
        self.rowcount = rowcount


class ActivationSession:
    def __init__(self, rowcount=1, error=None):
        self.rowcount = rowcount
        self.error = error
        self.statements = []

    def execute(self, statement, params=None):
        self.statements.append(str(statement))
        if self.error:
            raise self.error
        return FakeUpdateResult(self.rowcount)


def patch_activation_session(monkeypatch, session):
    @contextmanager
    def fake_db_session():
        yield session

    monkeypatch.setattr(interview_service, "get_db_session", fake_db_session)


def test_activation_only_from_scheduled(monkeypatch):
    session = ActivationSession(rowcount=0)
    patch_activation_session(monkeypatch, session)

    assert interview_service._activate_interview(1, "conv-1234567890", datetime.utcnow()) is False
    assert "status = 'SCHEDULED'" in session.statements[0]


def test_concurrent_activation_is_rejected(monkeypatch):
    duplicate = IntegrityError("UPDATE interviews", {}, Exception("uq_interviews_one_active"))
    patch_activation_session(monkeypatch, ActivationSession(error=duplicate))

    with pytest.raises(InvalidStateError):
        interview_service._activate_interview(2, "conv-0987654321", datetime.utcnow())

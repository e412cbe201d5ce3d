"""
Tailoring Service - tailored resumes, keyword scoring and cover letters.

Tailoring workflow:
1. Extract job keywords (the scoring reference)
2. Fill the mode's template and run the tailoring agent
3. Flatten the tailored JSON and extract its keywords
4. Score = matched job keywords / all job keywords
5. Store markdown content, keyword report and scores

Scoring is pure keyword overlap so the number means the same thing
for every mode and every model.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import text

from niena.core.errors import NotFoundError, InvalidStateError
from niena.db.postgres import get_db_session
from niena.services import account_service, prompts
from niena.services.agent_pipeline import (
    AgentNetwork,
    keyword_network,
    tailoring_network,
    cover_letter_network,
)
from niena.services.events import EventType, emit_to_user
from niena.services.llm_client import LLMClient, get_llm_client
from niena.services.mongo_service import RawResumeService, TailoredOutputService

logger = logging.getLogger(__name__)

TAILORING_MODES = ("nudge", "keywords", "full", "refine", "enrich")
DEFAULT_MODE = "keywords"
OUTPUT_LANGUAGE = "English"
TRUTHFULNESS_RULE_7 = "DO NOT fabricate any information."

# enrich is a full tailor; refine is the polish pass checked against the master resume
_MODE_TEMPLATES = {
    "nudge": prompts.IMPROVE_RESUME_PROMPT_NUDGE,
    "keywords": prompts.IMPROVE_RESUME_PROMPT_KEYWORDS,
    "full": prompts.IMPROVE_RESUME_PROMPT_FULL,
    "refine": prompts.VALIDATION_POLISH_PROMPT,
    "enrich": prompts.IMPROVE_RESUME_PROMPT_FULL,
}


# ============================================================
# PURE HELPERS
# ============================================================

def normalize_mode(mode: Optional[str]) -> str:
    return mode if mode in TAILORING_MODES else DEFAULT_MODE


def collect_keywords(data: Dict[str, Any]) -> List[str]:
    """
    Flatten a keyword extraction result into one list.
    Lowercased, de-duplicated, first occurrence order kept.
    """
    if not isinstance(data, dict):
        return []
    combined = []
    for key in ("required_skills", "preferred_skills", "keywords", "key_responsibilities"):
        values = data.get(key) or []
        if isinstance(values, str):
            values = [values]
        combined.extend(values)

    seen = set()
    keywords = []
    for value in combined:
        if not value:
            continue
        keyword = str(value).strip().lower()
        if keyword and keyword not in seen:
            seen.add(keyword)
            keywords.append(keyword)
    return keywords


def calculate_keyword_score(job_keywords: List[str], resume_keywords: List[str]) -> dict:
    """
    Share of job keywords found in the resume keywords.

    Returns:
        {"finalScore": 0.6, "matchedKeywords": [...], "missingKeywords": [...], "totalKeywords": 5}
    """
    job_set = list(dict.fromkeys(job_keywords))
    resume_set = set(resume_keywords)

    matched = [k for k in job_set if k in resume_set]
    missing = [k for k in job_set if k not in resume_set]
    score = len(matched) / len(job_set) if job_set else 0

    return {
        "finalScore": score,
        "matchedKeywords": matched,
        "missingKeywords": missing,
        "totalKeywords": len(job_set),
    }


def _skills_list(skills: Any) -> List[str]:
    if not skills:
        return []
    if isinstance(skills, list):
        return [str(s) for s in skills]
    if isinstance(skills, dict):
        flat = []
        for group in skills.values():
            if isinstance(group, list):
                flat.extend(str(s) for s in group)
            else:
                flat.append(str(group))
        return flat
    return []


def format_resume_content_string(content: Dict[str, Any]) -> str:
    """Summary, skills and experience descriptions of a tailored resume as one string."""
    experience = content.get("experience") if isinstance(content.get("experience"), list) else []
    descriptions = " ".join(
        str(e.get("description", "")) for e in experience if isinstance(e, dict)
    )
    return " ".join([
        content.get("summary") or "",
        ", ".join(_skills_list(content.get("skills"))),
        descriptions,
    ])


def json_to_markdown(data: Dict[str, Any]) -> str:
    """Render a tailored resume JSON as markdown."""
    md = f"# {data.get('name') or 'Tailored Resume'}\n\n"
    if data.get("summary"):
        md += f"## Summary\n{data['summary']}\n\n"
    skills = _skills_list(data.get("skills"))
    if skills:
        md += f"## Skills\n{', '.join(skills)}\n\n"
    if data.get("experience"):
        md += "## Experience\n"
        for exp in data["experience"]:
            md += (
                f"### {exp.get('role', '')} at {exp.get('company', '')}\n"
                f"{exp.get('date') or ''}\n"
                f"{exp.get('description', '')}\n\n"
            )
    return md


def prepare_resume_content(content: str) -> str:
    """Re-indent JSON content; anything else is passed through unchanged."""
    content = content or ""
    try:
        return json.dumps(json.loads(content), indent=2, ensure_ascii=False)
    except (ValueError, TypeError):
        return content


def build_tailoring_prompt(
    mode: str,
    job_description: str,
    job_keywords: List[str],
    resume_content: str,
    master_resume: str = ""
) -> str:
    rules = prompts.fill_template(
        prompts.CRITICAL_TRUTHFULNESS_RULES_TEMPLATE, rule_7=TRUTHFULNESS_RULE_7
    )
    return prompts.fill_template(
        _MODE_TEMPLATES[normalize_mode(mode)],
        critical_truthfulness_rules=rules,
        job_description=job_description,
        job_keywords=", ".join(job_keywords),
        original_resume=prepare_resume_content(resume_content),
        master_resume=master_resume,
        output_language=OUTPUT_LANGUAGE,
        schema=prompts.RESUME_SCHEMA_EXAMPLE,
    )


def build_scores(score_data: dict) -> dict:
    return {
        "finalScore": score_data["finalScore"],
        "wordMatchScore": score_data["finalScore"],
        "totalKeywords": score_data["totalKeywords"],
        "matchedCount": len(score_data["matchedKeywords"]),
    }


# ============================================================
# POSTGRES HELPERS
# ============================================================

def _primary_resume_exists(primary_resume_id: int, user_id: int) -> bool:
    with get_db_session() as db:
        row = db.execute(
            text("SELECT 1 FROM resumes WHERE resume_id = :rid AND user_id = :uid"),
            {"rid": primary_resume_id, "uid": user_id}
        ).fetchone()
    return row is not None


def _insert_tailored(user_id: int, primary_resume_id: int, name: str,
                     role: str, description: str, mode: str) -> int:
    with get_db_session() as db:
        row = db.execute(
            text("""
                INSERT INTO tailored_resumes
                    (user_id, primary_resume_id, name, role, description, tailoring_mode, status)
                VALUES (:uid, :rid, :name, :role, :description, :mode, 'PROCESSING')
                RETURNING tailored_id
            """),
            {"uid": user_id, "rid": primary_resume_id, "name": name,
             "role": role, "description": description, "mode": mode}
        ).fetchone()
    return row[0]


def _get_tailored_row(tailored_id: int, user_id: int) -> Optional[dict]:
    with get_db_session() as db:
        row = db.execute(
            text("""
                SELECT tailored_id, user_id, primary_resume_id, name, role, description,
                       tailoring_mode, content, cover_letter, final_score, status,
                       created_at, updated_at
                FROM tailored_resumes WHERE tailored_id = :tid AND user_id = :uid
            """),
            {"tid": tailored_id, "uid": user_id}
        ).mappings().fetchone()
    return dict(row) if row else None


def _update_tailored(tailored_id: int, **fields) -> None:
    allowed = {"content", "cover_letter", "final_score", "status", "description"}
    fields = {k: v for k, v in fields.items() if k in allowed}
    if not fields:
        return
    assignments = ", ".join(f"{key} = :{key}" for key in fields)
    with get_db_session() as db:
        db.execute(
            text(f"""
                UPDATE tailored_resumes
                SET {assignments}, updated_at = CURRENT_TIMESTAMP
                WHERE tailored_id = :tid
            """),
            {**fields, "tid": tailored_id}
        )


def _delete_tailored_row(tailored_id: int) -> None:
    with get_db_session() as db:
        db.execute(text("DELETE FROM tailored_resumes WHERE tailored_id = :tid"), {"tid": tailored_id})


def _list_tailored_rows(user_id: int) -> List[dict]:
    with get_db_session() as db:
        rows = db.execute(
            text("""
                SELECT tailored_id, primary_resume_id, name, role, tailoring_mode,
                       final_score, status, created_at, updated_at
                FROM tailored_resumes WHERE user_id = :uid
                ORDER BY updated_at DESC
            """),
            {"uid": user_id}
        ).mappings().fetchall()
    return [dict(r) for r in rows]


# ============================================================
# TAILORING SERVICE
# ============================================================

class TailoringService:

    def __init__(
        self,
        llm_client: LLMClient = None,
        outputs: TailoredOutputService = None,
        raw_resumes: RawResumeService = None
    ):
        self.llm_client = llm_client or get_llm_client()
        self.outputs = outputs or TailoredOutputService()
        self.raw_resumes = raw_resumes or RawResumeService()

    def extract_keywords(self, text_value: str, network: AgentNetwork = None) -> dict:
        """
        Returns:
            {"extracted_data": <raw agent JSON>, "keywords": [...]}
        """
        network = network or keyword_network()
        state = network.run(text_value or "", client=self.llm_client)
        data = state.get("keywords") or {}
        return {"extracted_data": data, "keywords": collect_keywords(data)}

    # ---------- create ----------

    def request_tailored(
        self,
        user_id: int,
        primary_resume_id: int,
        name: str,
        role: str = None,
        description: str = None,
        mode: str = DEFAULT_MODE
    ) -> int:
        if not _primary_resume_exists(primary_resume_id, user_id):
            raise NotFoundError("Primary resume not found")

        account_service.consume_resume_credit(user_id)
        try:
            tailored_id = _insert_tailored(
                user_id, primary_resume_id, name, role, description, normalize_mode(mode)
            )
        except Exception:
            account_service.refund_resume_credit(user_id)
            raise
        logger.info("Tailored resume %s requested by user %s (mode=%s)", tailored_id, user_id, mode)
        return tailored_id

    def run_tailoring_workflow(
        self,
        tailored_id: int,
        user_id: int,
        content: str,
        description: str = "",
        mode: str = DEFAULT_MODE,
        primary_resume_id: int = None
    ) -> dict:
        """
        Tailor the resume content to the job description and score it.

        Args:
            content: Resume text or JSON to tailor
            description: Job description
            mode: nudge, keywords, full, refine or enrich

        Returns:
            {"success": True, "score": 0.6}
        """
        mode = normalize_mode(mode)
        try:
            job_context = self.extract_keywords(description or "")

            master_resume = ""
            if mode == "refine" and primary_resume_id:
                master_resume = self.raw_resumes.get_content(primary_resume_id) or ""

            filled_prompt = build_tailoring_prompt(
                mode, description or "", job_context["keywords"], content, master_resume
            )
            state = tailoring_network(mode).run(filled_prompt, client=self.llm_client)
            tailored_content = state.get("tailored") or {}
            if not isinstance(tailored_content, dict):
                raise InvalidStateError("Tailoring agent did not return a JSON object")

            resume_keywords = self.extract_keywords(
                format_resume_content_string(tailored_content)
            )["keywords"]
            score_data = calculate_keyword_score(job_context["keywords"], resume_keywords)

            self.outputs.save(tailored_id, {
                "extracted_data": tailored_content,
                "analysis": {
                    "matches": score_data["matchedKeywords"],
                    "missing": score_data["missingKeywords"]
                },
                "scores": build_scores(score_data)
            })
            _update_tailored(
                tailored_id,
                content=json_to_markdown(tailored_content),
                final_score=score_data["finalScore"],
                status="COMPLETED"
            )
        except Exception:
            logger.exception("Tailoring workflow failed for tailored resume %s", tailored_id)
            self._compensate_failed_tailoring(tailored_id, user_id)
            emit_to_user(user_id, EventType.TAILORED_RESUME_FAILED, {"resumeId": tailored_id})
            raise

        emit_to_user(user_id, EventType.TAILORED_RESUME_READY, {"resumeId": tailored_id, "action": mode})
        return {"success": True, "score": score_data["finalScore"]}

    def _compensate_failed_tailoring(self, tailored_id: int, user_id: int) -> None:
        """Refund first; each cleanup step is logged and skipped when it fails."""
        steps = [
            ("credit refund", account_service.refund_resume_credit, (user_id,)),
            ("tailored row", _delete_tailored_row, (tailored_id,)),
            ("outputs", self.outputs.delete, (tailored_id,)),
        ]
        for label, step, args in steps:
            try:
                step(*args)
            except Exception:
                logger.exception("Compensation step '%s' failed for tailored resume %s", label, tailored_id)

    # ---------- update ----------

    def mark_processing(self, tailored_id: int, user_id: int) -> dict:
        """Claim an owned, idle tailored resume for a rescore or cover letter run."""
        row = _get_tailored_row(tailored_id, user_id)
        if not row:
            raise NotFoundError("Tailored resume not found")
        if row["status"] == "PROCESSING":
            raise InvalidStateError("Tailored resume is already being processed")
        _update_tailored(tailored_id, status="PROCESSING")
        return row

    def rescore_tailored(self, tailored_id: int, user_id: int, content: str, description: str = "") -> dict:
        """The user edited the content: keep it as-is and recompute the score."""
        try:
            job_keywords = self.extract_keywords(description or "")["keywords"]
            resume_keywords = self.extract_keywords(content)["keywords"]
            score_data = calculate_keyword_score(job_keywords, resume_keywords)

            self.outputs.save(tailored_id, {
                "analysis": {
                    "matches": score_data["matchedKeywords"],
                    "missing": score_data["missingKeywords"]
                },
                "scores": build_scores(score_data)
            })
            _update_tailored(
                tailored_id,
                content=content,
                description=description,
                final_score=score_data["finalScore"],
                status="COMPLETED"
            )
        except Exception:
            logger.exception("Rescoring failed for tailored resume %s", tailored_id)
            emit_to_user(user_id, EventType.TAILORED_RESUME_FAILED, {"resumeId": tailored_id})
            _update_tailored(tailored_id, status="COMPLETED")
            raise

        emit_to_user(user_id, EventType.TAILORED_RESUME_READY, {"resumeId": tailored_id})
        return {"success": True, "score": score_data["finalScore"]}

    # ---------- cover letter ----------

    def generate_cover_letter(
        self,
        tailored_id: int,
        user_id: int,
        content: str,
        job_description: str
    ) -> str:
        try:
            filled_prompt = prompts.fill_template(
                prompts.COVER_LETTER_PROMPT,
                output_language=OUTPUT_LANGUAGE,
                resume_data=content or "",
                job_description=job_description or ""
            )
            state = cover_letter_network().run(filled_prompt, client=self.llm_client)
            data = state.get("cover_letter") or {}
            letter = data.get("coverLetter", "") if isinstance(data, dict) else ""
            _update_tailored(tailored_id, cover_letter=letter, status="COMPLETED")
        except Exception:
            logger.exception("Cover letter generation failed for tailored resume %s", tailored_id)
            emit_to_user(user_id, EventType.TAILORED_RESUME_FAILED, {"resumeId": tailored_id})
            _update_tailored(tailored_id, status="COMPLETED")
            raise

        emit_to_user(user_id, EventType.COVER_LETTER_READY, {"resumeId": tailored_id})
        return letter

    # ---------- reads ----------

    def get_tailored(self, tailored_id: int, user_id: int) -> dict:
        row = _get_tailored_row(tailored_id, user_id)
        if not row:
            raise NotFoundError("Tailored resume not found")
        outputs = self.outputs.get(tailored_id) or {}
        row["extracted_data"] = outputs.get("extracted_data")
        row["analysis"] = outputs.get("analysis")
        row["scores"] = outputs.get("scores")
        return row

    def list_tailored(self, user_id: int) -> List[dict]:
        return _list_tailored_rows(user_id)

    def delete_tailored(self, tailored_id: int, user_id: int) -> None:
        if not _get_tailored_row(tailored_id, user_id):
            raise NotFoundError("Tailored resume not found")
        _delete_tailored_row(tailored_id)
        self.outputs.delete(tailored_id)


def get_tailoring_service() -> TailoringService:
    return TailoringService()

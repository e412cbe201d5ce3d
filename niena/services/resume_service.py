"""
Resume Service - primary resume AI workflow.

Workflow for a new resume:
1. Spend one credit, insert a PROCESSING primary resume (request_resume)
2. Run the resume network: parser -> analysis -> score (background)
3. Store agent outputs in MongoDB
4. Embed resume skills and experience for job matching
5. Mark COMPLETED and notify the user

If any step after the insert fails the resume is removed, the credit
is refunded and RESUME_FAILED is sent.
"""
import json
import logging
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import text

from niena.core.errors import NotFoundError, InvalidStateError
from niena.db.postgres import get_db_session
from niena.services import account_service
from niena.services.agent_pipeline import AgentNetwork, resume_network, autofix_network
from niena.services.embedding_service import (
    RESUME_SKILLS,
    RESUME_EXPERIENCE,
    RESUME_ENTITY_TYPES,
    embed_and_cache,
)
from niena.services.events import EventType, emit_to_user
from niena.services.llm_client import LLMClient, get_llm_client
from niena.services.mongo_service import (
    RawResumeService,
    ResumeAnalysisService,
    EmbeddingCacheService,
)

logger = logging.getLogger(__name__)

STATUS_PROCESSING = "PROCESSING"
STATUS_COMPLETED = "COMPLETED"


# ============================================================
# INPUT / OUTPUT HELPERS
# ============================================================

def build_resume_input(content: str, role: str = None, description: str = None) -> str:
    """Text handed to the resume network."""
    parts = [f"#Resume\n{content}"]
    if role:
        parts.append(f"#Targetted Role\n{role}")
    if description:
        parts.append(f"#Job Description\n{description}")
    return "\n\n".join(parts)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return "\n".join(t for t in (_as_text(v) for v in value) if t)
    if isinstance(value, dict):
        return "\n".join(t for t in (_as_text(v) for v in value.values()) if t)
    return str(value)


def resume_matching_texts(extracted_data: dict) -> Tuple[str, str]:
    """
    Skills text and experience text of a parsed resume, used for job matching.

    Skills may be a flat list or groups of lists. Experience entries
    contribute their position, description, achievements and responsibilities.
    """
    if not isinstance(extracted_data, dict):
        return "", ""

    skills = extracted_data.get("skills") or []
    skills_text = _as_text(skills)

    lines = []
    for entry in extracted_data.get("experience") or []:
        if isinstance(entry, dict):
            for key in ("position", "role", "description", "achievements", "responsibilities"):
                value = _as_text(entry.get(key))
                if value:
                    lines.append(value)
        else:
            lines.append(_as_text(entry))
    return skills_text, "\n".join(lines)


# ============================================================
# POSTGRES HELPERS
# ============================================================

def _insert_primary_resume(user_id: int, name: str) -> int:
    """Insert a PROCESSING resume as the user's only primary."""
    with get_db_session() as db:
        db.execute(
            text("UPDATE resumes SET is_primary = FALSE WHERE user_id = :uid AND is_primary"),
            {"uid": user_id}
        )
        row = db.execute(
            text("""
                INSERT INTO resumes (user_id, name, is_primary, status)
                VALUES (:uid, :name, TRUE, 'PROCESSING')
                RETURNING resume_id
            """),
            {"uid": user_id, "name": name}
        ).fetchone()
    return row[0]


def _get_resume_row(resume_id: int, user_id: int) -> Optional[dict]:
    with get_db_session() as db:
        row = db.execute(
            text("""
                SELECT resume_id, user_id, name, is_primary, status, created_at, updated_at
                FROM resumes WHERE resume_id = :rid AND user_id = :uid
            """),
            {"rid": resume_id, "uid": user_id}
        ).mappings().fetchone()
    return dict(row) if row else None


def _set_status(resume_id: int, status: str, name: str = None) -> None:
    with get_db_session() as db:
        db.execute(
            text("""
                UPDATE resumes
                SET status = :status, name = COALESCE(:name, name), updated_at = CURRENT_TIMESTAMP
                WHERE resume_id = :rid
            """),
            {"status": status, "name": name, "rid": resume_id}
        )


def _delete_resume_row(resume_id: int) -> None:
    with get_db_session() as db:
        db.execute(text("DELETE FROM resumes WHERE resume_id = :rid"), {"rid": resume_id})


def _list_resume_rows(user_id: int) -> List[dict]:
    with get_db_session() as db:
        resumes = db.execute(
            text("""
                SELECT resume_id, name, is_primary, status, created_at, updated_at
                FROM resumes WHERE user_id = :uid
                ORDER BY is_primary DESC, updated_at DESC
            """),
            {"uid": user_id}
        ).mappings().fetchall()
        tailored = db.execute(
            text("""
                SELECT tailored_id, primary_resume_id, name, role, tailoring_mode,
                       final_score, status, updated_at
                FROM tailored_resumes WHERE user_id = :uid
                ORDER BY updated_at DESC
            """),
            {"uid": user_id}
        ).mappings().fetchall()

    by_resume: Dict[int, list] = {}
    for row in tailored:
        by_resume.setdefault(row["primary_resume_id"], []).append(dict(row))

    result = []
    for row in resumes:
        item = dict(row)
        item["tailored_resumes"] = by_resume.get(row["resume_id"], [])
        result.append(item)
    return result


# ============================================================
# RESUME SERVICE
# ============================================================

class ResumeService:
    """
    Primary resume operations. Postgres rows go through the module
    helpers above; documents through the MongoDB services.
    """

    def __init__(
        self,
        llm_client: LLMClient = None,
        raw_resumes: RawResumeService = None,
        analyses: ResumeAnalysisService = None,
        embeddings: EmbeddingCacheService = None
    ):
        self.llm_client = llm_client or get_llm_client()
        self.raw_resumes = raw_resumes or RawResumeService()
        self.analyses = analyses or ResumeAnalysisService()
        self.embeddings = embeddings or EmbeddingCacheService()

    # ---------- create ----------

    def request_resume(self, user_id: int, name: str, content: str) -> int:
        """
        Spend a credit and create the PROCESSING resume.
        The caller schedules run_resume_workflow.

        Returns:
            New resume ID
        """
        account_service.consume_resume_credit(user_id)
        try:
            resume_id = _insert_primary_resume(user_id, name)
            self.raw_resumes.save(resume_id, user_id, content)
        except Exception:
            account_service.refund_resume_credit(user_id)
            raise
        logger.info("Resume %s created for user %s", resume_id, user_id)
        return resume_id

    def run_resume_workflow(
        self,
        resume_id: int,
        user_id: int,
        content: str,
        role: str = None,
        description: str = None,
        network: AgentNetwork = None
    ) -> dict:
        """
        Run the resume network and persist its outputs.

        Returns:
            Network state with extracted_data, analysis_data and score_data
        """
        try:
            state = self._analyze(resume_id, content, role, description, network)
            _set_status(resume_id, STATUS_COMPLETED)
        except Exception:
            logger.exception("Resume workflow failed for resume %s", resume_id)
            self._compensate_failed_resume(resume_id, user_id)
            emit_to_user(user_id, EventType.RESUME_FAILED, {"resumeId": resume_id})
            raise

        emit_to_user(user_id, EventType.RESUME_READY, {"resumeId": resume_id})
        return state

    def _analyze(
        self,
        resume_id: int,
        content: str,
        role: Optional[str],
        description: Optional[str],
        network: Optional[AgentNetwork]
    ) -> dict:
        network = network or resume_network()
        state = network.run(build_resume_input(content, role, description), client=self.llm_client)
        self.analyses.save_outputs(resume_id, state, role=role)

        skills_text, experience_text = resume_matching_texts(state.get("extracted_data"))
        embed_and_cache(RESUME_SKILLS, resume_id, skills_text, self.llm_client, self.embeddings)
        embed_and_cache(RESUME_EXPERIENCE, resume_id, experience_text, self.llm_client, self.embeddings)
        return state

    def _compensate_failed_resume(self, resume_id: int, user_id: int) -> None:
        """Refund, then clean each store independently. A failing step is logged and skipped."""
        steps = [
            ("credit refund", account_service.refund_resume_credit, (user_id,)),
            ("resume row", _delete_resume_row, (resume_id,)),
            ("raw text", self.raw_resumes.delete, (resume_id,)),
            ("analysis", self.analyses.delete, (resume_id,)),
            ("embeddings", self.embeddings.delete_entity, (resume_id, RESUME_ENTITY_TYPES)),
        ]
        for label, step, args in steps:
            try:
                step(*args)
            except Exception:
                logger.exception("Compensation step '%s' failed for resume %s", label, resume_id)

    # ---------- update ----------

    def request_update(self, resume_id: int, user_id: int, name: str = None) -> dict:
        """Mark an owned, idle resume as PROCESSING before re-analysis."""
        row = _get_resume_row(resume_id, user_id)
        if not row:
            raise NotFoundError("Resume not found")
        if row["status"] == STATUS_PROCESSING:
            raise InvalidStateError("Resume is already being processed")
        _set_status(resume_id, STATUS_PROCESSING, name)
        return row

    def run_update_workflow(
        self,
        resume_id: int,
        user_id: int,
        content: str,
        role: str = None,
        description: str = None,
        network: AgentNetwork = None
    ) -> dict:
        """
        Re-run the network, optionally against a target role.
        On failure the previous content and analysis stay in place.
        """
        try:
            state = self._analyze(resume_id, content, role, description, network)
            self.raw_resumes.save(resume_id, user_id, content)
        except Exception:
            logger.exception("Resume update failed for resume %s", resume_id)
            _set_status(resume_id, STATUS_COMPLETED)
            emit_to_user(user_id, EventType.RESUME_FAILED, {"resumeId": resume_id})
            raise

        _set_status(resume_id, STATUS_COMPLETED)
        emit_to_user(user_id, EventType.RESUME_READY, {"resumeId": resume_id})
        return state

    # ---------- autofix ----------

    def autofix(self, resume_id: int, user_id: int, network: AgentNetwork = None) -> dict:
        """
        Apply the analysis suggestions to the extracted resume.
        Costs one credit, refunded if the agent fails.
        """
        if not _get_resume_row(resume_id, user_id):
            raise NotFoundError("Resume not found")

        outputs = self.analyses.get(resume_id) or {}
        if not outputs.get("extracted_data") or not outputs.get("analysis_data"):
            raise InvalidStateError("Resume has not been analyzed yet")

        account_service.consume_resume_credit(user_id)
        input_text = (
            "#Extracted Resume\n"
            + json.dumps(outputs["extracted_data"], indent=2, ensure_ascii=False)
            + "\n\n#Analysis\n"
            + json.dumps(outputs["analysis_data"], indent=2, ensure_ascii=False)
        )
        try:
            network = network or autofix_network()
            state = network.run(input_text, client=self.llm_client)
            self.analyses.save_outputs(resume_id, {"autofix_data": state["autofix_data"]})
        except Exception:
            logger.exception("Autofix failed for resume %s", resume_id)
            account_service.refund_resume_credit(user_id)
            raise

        return state["autofix_data"]

    # ---------- reads / misc ----------

    def get_resume(self, resume_id: int, user_id: int) -> dict:
        row = _get_resume_row(resume_id, user_id)
        if not row:
            raise NotFoundError("Resume not found")
        outputs = self.analyses.get(resume_id) or {}
        row["content"] = self.raw_resumes.get_content(resume_id)
        for key in ResumeAnalysisService.FIELDS:
            row[key] = outputs.get(key)
        return row

    def list_primary_resumes(self, user_id: int) -> List[dict]:
        return _list_resume_rows(user_id)

    def delete_resume(self, resume_id: int, user_id: int) -> None:
        if not _get_resume_row(resume_id, user_id):
            raise NotFoundError("Resume not found")
        _delete_resume_row(resume_id)
        self.raw_resumes.delete(resume_id)
        self.analyses.delete(resume_id)
        self.embeddings.delete_entity(resume_id, RESUME_ENTITY_TYPES)
        logger.info("Resume %s deleted by user %s", resume_id, user_id)


def set_primary(resume_id: int, user_id: int) -> None:
    """Make one resume the user's primary, in a single transaction."""
    with get_db_session() as db:
        owned = db.execute(
            text("SELECT 1 FROM resumes WHERE resume_id = :rid AND user_id = :uid"),
            {"rid": resume_id, "uid": user_id}
        ).fetchone()
        if not owned:
            raise NotFoundError("Resume not found")

        db.execute(
            text("UPDATE resumes SET is_primary = FALSE WHERE user_id = :uid AND is_primary"),
            {"uid": user_id}
        )
        db.execute(
            text("""
                UPDATE resumes SET is_primary = TRUE, updated_at = CURRENT_TIMESTAMP
                WHERE resume_id = :rid
            """),
            {"rid": resume_id}
        )


def get_resume_service() -> ResumeService:
    return ResumeService()

"""
Matching Service - job recommendations and job views.

HOW IT WORKS:
1. Resume skills / experience and job skills / responsibilities are
   embedded chunk by chunk (embedding_service)
2. Skill similarity = mean cosine similarity over every
   (job skill chunk, resume skill chunk) pair; same for responsibilities
3. total = skill * 0.7 + responsibility * 0.3 + offset, or
   responsibility + offset when the job has no skill similarity
4. Jobs are sorted by total and capped at the plan's weekly matches

The offset lifts every score a little to make up for boilerplate that
ends up in job embeddings.
"""
import logging
from typing import List, Optional

import numpy as np
from sqlalchemy import text

from niena.core.errors import NotFoundError
from niena.db.postgres import get_db_session
from niena.services.account_service import get_plan_limits
from niena.services.embedding_service import (
    JOB_SKILLS,
    JOB_RESPONSIBILITIES,
    RESUME_SKILLS,
    RESUME_EXPERIENCE,
)
from niena.services.mongo_service import EmbeddingCacheService

logger = logging.getLogger(__name__)

SCORE_OFFSET = 0.1
SKILL_WEIGHT = 0.7
RESPONSIBILITY_WEIGHT = 0.3

JOB_LIST_COLUMNS = """
    job_id, job_publisher, job_title, employer_name, employer_logo, job_apply_link,
    job_location, job_description, job_posted_at, job_is_remote, view_count, created_at
"""


# ============================================================
# SIMILARITY COMPUTATION
# ============================================================

def average_similarity(vectors_a: List[List[float]], vectors_b: List[List[float]]) -> float:
    """
    Mean cosine similarity over all pairs of vectors from a and b.

    Returns:
        Float rounded to 3 places, 0 when either side is empty
    """
    if not vectors_a or not vectors_b:
        return 0.0

    a = np.asarray(vectors_a, dtype=float)
    b = np.asarray(vectors_b, dtype=float)
    if a.shape[1] != b.shape[1]:
        raise ValueError("Vectors must have same dimension")

    norms_a = np.linalg.norm(a, axis=1, keepdims=True)
    norms_b = np.linalg.norm(b, axis=1, keepdims=True)
    # Zero vectors have similarity 0 with everything
    norms_a[norms_a == 0] = np.inf
    norms_b[norms_b == 0] = np.inf

    similarities = (a / norms_a) @ (b / norms_b).T
    return round(float(similarities.mean()), 3)


def combine_scores(skill_similarity: float, responsibility_similarity: float,
                   offset: float = SCORE_OFFSET) -> float:
    if skill_similarity == 0:
        return round(responsibility_similarity + offset, 3)
    return round(
        skill_similarity * SKILL_WEIGHT + responsibility_similarity * RESPONSIBILITY_WEIGHT + offset, 3
    )


# ============================================================
# POSTGRES HELPERS
# ============================================================

def _user_resume_ids(user_id: int) -> List[int]:
    with get_db_session() as db:
        rows = db.execute(
            text("SELECT resume_id FROM resumes WHERE user_id = :uid"),
            {"uid": user_id}
        ).fetchall()
    return [r[0] for r in rows]


def _all_jobs() -> List[dict]:
    with get_db_session() as db:
        rows = db.execute(
            text(f"SELECT {JOB_LIST_COLUMNS} FROM jobs ORDER BY created_at DESC")
        ).mappings().fetchall()
    return [dict(r) for r in rows]


# ============================================================
# RECOMMENDATIONS
# ============================================================

def recommend_jobs(
    user_id: int,
    plan: str = "FREE",
    limit: int = None,
    embeddings: EmbeddingCacheService = None
) -> List[dict]:
    """
    Rank every job against the user's resumes.

    Args:
        user_id: PostgreSQL user ID
        plan: User's plan, caps the result at its weekly matches
        limit: Optional smaller cap

    Returns:
        Job dicts with skill_similarity, responsibility_similarity and
        total_similarity, best first. Empty if the user has no resumes.
    """
    resume_ids = _user_resume_ids(user_id)
    if not resume_ids:
        return []

    embeddings = embeddings or EmbeddingCacheService()
    user_skill_vectors = embeddings.get_vectors_for(RESUME_SKILLS, resume_ids)
    user_exp_vectors = embeddings.get_vectors_for(RESUME_EXPERIENCE, resume_ids)
    job_skill_vectors = embeddings.get_all_by_type(JOB_SKILLS)
    job_resp_vectors = embeddings.get_all_by_type(JOB_RESPONSIBILITIES)

    results = []
    for job in _all_jobs():
        skill = average_similarity(job_skill_vectors.get(job["job_id"], []), user_skill_vectors)
        resp = average_similarity(job_resp_vectors.get(job["job_id"], []), user_exp_vectors)
        job["skill_similarity"] = skill
        job["responsibility_similarity"] = resp
        job["total_similarity"] = combine_scores(skill, resp)
        results.append(job)

    results.sort(key=lambda j: j["total_similarity"], reverse=True)

    cap = get_plan_limits(plan)["weekly_matches"]
    if limit is not None:
        cap = min(cap, limit)
    logger.info("Ranked %d job(s) for user %s, returning %d", len(results), user_id, min(cap, len(results)))
    return results[:cap]


# ============================================================
# JOBS AND VIEWS
# ============================================================

def get_job(job_id: int) -> dict:
    with get_db_session() as db:
        row = db.execute(
            text(f"""
                SELECT {JOB_LIST_COLUMNS}, qualifications, responsibilities
                FROM jobs WHERE job_id = :jid
            """),
            {"jid": job_id}
        ).mappings().fetchone()
    if not row:
        raise NotFoundError("Job not found")
    return dict(row)


def list_jobs(
    page: int = 1,
    page_size: int = 20,
    search: Optional[str] = None,
    location: Optional[str] = None,
    remote_only: bool = False
) -> dict:
    """Paginated job list with optional filters."""
    conditions = ["1=1"]
    params = {}

    if search:
        conditions.append("(job_title ILIKE :search OR employer_name ILIKE :search OR job_description ILIKE :search)")
        params["search"] = f"%{search}%"
    if location:
        conditions.append("job_location ILIKE :location")
        params["location"] = f"%{location}%"
    if remote_only:
        conditions.append("job_is_remote = TRUE")

    where_clause = " AND ".join(conditions)
    offset = (page - 1) * page_size

    with get_db_session() as db:
        total = db.execute(text(f"SELECT COUNT(*) FROM jobs WHERE {where_clause}"), params).scalar()
        rows = db.execute(
            text(f"""
                SELECT {JOB_LIST_COLUMNS} FROM jobs
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT :limit OFFSET :offset
            """),
            {**params, "limit": page_size, "offset": offset}
        ).mappings().fetchall()

    return {
        "jobs": [dict(r) for r in rows],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


def record_view(job_id: int, user_id: Optional[int], ip_address: str = "unknown",
                user_agent: str = "unknown") -> dict:
    """
    Count a view once per user, or once per IP address for anonymous visitors.

    Returns:
        {"success": True, "viewed": True} if this was a new view
    """
    with get_db_session() as db:
        exists = db.execute(text("SELECT 1 FROM jobs WHERE job_id = :jid"), {"jid": job_id}).fetchone()
        if not exists:
            raise NotFoundError("Job not found")

        if user_id is not None:
            seen = db.execute(
                text("SELECT 1 FROM job_views WHERE job_id = :jid AND user_id = :uid LIMIT 1"),
                {"jid": job_id, "uid": user_id}
            ).fetchone()
        else:
            seen = db.execute(
                text("SELECT 1 FROM job_views WHERE job_id = :jid AND ip_address = :ip LIMIT 1"),
                {"jid": job_id, "ip": ip_address}
            ).fetchone()

        if seen:
            return {"success": True, "viewed": False}

        db.execute(
            text("""
                INSERT INTO job_views (job_id, user_id, ip_address, user_agent)
                VALUES (:jid, :uid, :ip, :ua)
            """),
            {"jid": job_id, "uid": user_id, "ip": ip_address, "ua": user_agent}
        )
        db.execute(
            text("UPDATE jobs SET view_count = view_count + 1 WHERE job_id = :jid"),
            {"jid": job_id}
        )

    return {"success": True, "viewed": True}

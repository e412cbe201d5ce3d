"""
Ingestion Service - job feed pipeline.

fetch -> extract -> embed -> store, one category per run:

1. schedule_daily_runs() queues up to N categories, 15 minutes apart
2. process_due_run() claims the oldest due run and dispatches it
3. ingest_category() fetches pages, saves each job, extracts its
   responsibilities and skills, and embeds them for matching

A failing job never stops the page; a failing run is retried in
15 minutes until it has used its attempts.
"""
import json
import logging
import math
import re
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import text

from niena.core.config import get_settings
from niena.core.errors import JobSearchError, JobSearchRateLimited
from niena.db.postgres import get_db_session
from niena.services.agent_pipeline import job_extraction_network
from niena.services.embedding_service import (
    JOB,
    JOB_SKILLS,
    JOB_RESPONSIBILITIES,
    embed_and_cache,
)
from niena.services.jsearch_client import JobSearchClient
from niena.services.llm_client import LLMClient, get_llm_client
from niena.services.mongo_service import RawJobPostingService, EmbeddingCacheService

settings = get_settings()
logger = logging.getLogger(__name__)

SCHEDULE_INTERVAL_MINUTES = 15

_RESP_SPLIT = re.compile(r"\r?\n|•")
_SKILL_SPLIT = re.compile(r"\r?\n|,|;|•")


# ============================================================
# JOB ITEM HELPERS
# ============================================================

def _first_present(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _highlights(item: dict, key: str):
    job_highlights = item.get("job_highlights") or {}
    highlights = item.get("highlights") or {}
    return _first_present(
        job_highlights.get(key.capitalize()),
        item.get(key),
        highlights.get(key)
    )


def _split_bullets(value: Any, pattern: re.Pattern) -> List[str]:
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    if isinstance(value, str):
        return [part.strip() for part in pattern.split(value) if part.strip()]
    return []


def extract_bullets_from_job(item: dict) -> Tuple[List[str], List[str]]:
    """
    Responsibility and skill bullets straight from the posting.

    The job description is appended to the responsibilities unless it is
    already one of them. Skill strings are also split on commas and semicolons.

    Returns:
        (responsibility bullets, skill bullets)
    """
    resp_bullets = _split_bullets(_highlights(item, "responsibilities"), _RESP_SPLIT)

    description = _first_present(item.get("job_description"), item.get("description"))
    if description:
        description = str(description).strip()
        if description and description not in resp_bullets:
            resp_bullets.append(description)

    skill_bullets = _split_bullets(_highlights(item, "qualifications"), _SKILL_SPLIT)
    return resp_bullets, skill_bullets


def build_job_record(item: dict) -> dict:
    """Map an API item to a jobs row, with the provider's alternative field names."""
    job_highlights = item.get("job_highlights") or {}
    return {
        "job_publisher": _first_present(item.get("job_publisher"), item.get("publisher")),
        "job_title": _first_present(item.get("job_title"), item.get("position"), item.get("title")),
        "employer_name": _first_present(item.get("employer_name"), item.get("company")),
        "employer_logo": item.get("employer_logo"),
        "job_apply_link": _first_present(item.get("apply_link"), item.get("url"), item.get("job_apply_link")),
        "job_location": item.get("job_location"),
        "job_description": item.get("job_description"),
        "job_posted_at": item.get("job_posted_at"),
        "job_is_remote": bool(_first_present(item.get("job_is_remote"), item.get("remote"), False)),
        "qualifications": _first_present(job_highlights.get("Qualifications"), item.get("qualifications"), []),
        "responsibilities": _first_present(job_highlights.get("Responsibilities"), item.get("responsibilities"), []),
    }


def _as_block(value: Any) -> str:
    if isinstance(value, list):
        return "\n".join(str(v) for v in value)
    return str(value or "")


def build_job_extraction_input(record: dict) -> str:
    return "\n\n".join([
        f"# Job Title\n{record.get('job_title') or ''}",
        f"# Job Description\n{record.get('job_description') or ''}",
        f"# Qualifications\n{_as_block(record.get('qualifications'))}",
        f"# Responsibilities\n{_as_block(record.get('responsibilities'))}",
    ])


def extract_job_data_with_llm(record: dict, llm_client: LLMClient = None) -> Dict[str, List[str]]:
    """
    Ask the job extraction agent for responsibilities and skills.
    Any failure gives empty lists; the caller falls back to the posting's own bullets.
    """
    try:
        state = job_extraction_network().run(
            build_job_extraction_input(record), client=llm_client or get_llm_client()
        )
        data = state.get("job_data") or {}
        return {
            "responsibilities": _split_bullets(data.get("responsibilities"), _RESP_SPLIT),
            "skills": _split_bullets(data.get("skills"), _SKILL_SPLIT),
        }
    except Exception as e:
        logger.warning("LLM job extraction failed for '%s': %s", record.get("job_title"), e)
        return {"responsibilities": [], "skills": []}


# ============================================================
# SCHEDULING HELPERS
# ============================================================

def next_slot(now: datetime, interval_minutes: int = SCHEDULE_INTERVAL_MINUTES) -> datetime:
    """now moved forward to the next quarter-hour mark (unchanged if already on one)."""
    slot_minutes = math.ceil(now.minute / interval_minutes) * interval_minutes
    return now + timedelta(minutes=slot_minutes - now.minute)


def compute_schedule_times(count: int, now: datetime = None) -> List[datetime]:
    """Run times for count categories: the next slot plus 0, 15, 30, 45... minutes."""
    base = next_slot(now or datetime.utcnow())
    return [base + timedelta(minutes=SCHEDULE_INTERVAL_MINUTES * i) for i in range(count)]


def decide_failure_action(
    attempts: int,
    now: datetime = None,
    max_attempts: int = None,
    retry_minutes: int = None
) -> Tuple[str, Optional[datetime]]:
    """
    What to do with a run whose worker failed.

    Returns:
        ("failed", None) once attempts reach the limit, else ("rescheduled", next run time)
    """
    max_attempts = max_attempts or settings.ingest_max_attempts
    retry_minutes = retry_minutes or settings.ingest_retry_minutes
    if attempts >= max_attempts:
        return "failed", None
    return "rescheduled", (now or datetime.utcnow()) + timedelta(minutes=retry_minutes)


# ============================================================
# POSTGRES HELPERS
# ============================================================

def pick_category_row(category_id: int = None) -> Optional[dict]:
    """
    Category to ingest, with last_fetched_at set to now.
    Without an id, the active category fetched longest ago (never fetched first).
    """
    with get_db_session() as db:
        if category_id is not None:
            row = db.execute(
                text("""
                    UPDATE job_categories SET last_fetched_at = NOW()
                    WHERE category_id = :cid
                    RETURNING category_id, category, location
                """),
                {"cid": category_id}
            ).mappings().fetchone()
        else:
            row = db.execute(
                text("""
                    UPDATE job_categories SET last_fetched_at = NOW()
                    WHERE category_id = (
                        SELECT category_id FROM job_categories
                        WHERE active = TRUE
                        ORDER BY COALESCE(last_fetched_at, '1970-01-01') ASC
                        LIMIT 1
                    )
                    RETURNING category_id, category, location
                """)
            ).mappings().fetchone()
    return dict(row) if row else None


def claim_next_run() -> Optional[dict]:
    """Atomically move the oldest due scheduled run to in_progress."""
    with get_db_session() as db:
        row = db.execute(
            text("""
                WITH sel AS (
                    SELECT run_id, category_id FROM job_ingest_runs
                    WHERE status = 'scheduled' AND scheduled_at <= NOW()
                    ORDER BY scheduled_at ASC
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                )
                UPDATE job_ingest_runs r
                SET status = 'in_progress', started_at = NOW(), attempts = r.attempts + 1
                FROM sel
                WHERE r.run_id = sel.run_id
                RETURNING r.run_id, r.category_id, r.attempts
            """)
        ).mappings().fetchone()
    return dict(row) if row else None


def _save_job(record: dict) -> int:
    params = dict(record)
    params["qualifications"] = json.dumps(record["qualifications"])
    params["responsibilities"] = json.dumps(record["responsibilities"])
    with get_db_session() as db:
        row = db.execute(
            text("""
                INSERT INTO jobs (job_publisher, job_title, employer_name, employer_logo,
                                  job_apply_link, job_location, job_description, job_posted_at,
                                  job_is_remote, qualifications, responsibilities)
                VALUES (:job_publisher, :job_title, :employer_name, :employer_logo,
                        :job_apply_link, :job_location, :job_description, :job_posted_at,
                        :job_is_remote, CAST(:qualifications AS JSONB), CAST(:responsibilities AS JSONB))
                RETURNING job_id
            """),
            params
        ).fetchone()
    return row[0]


def _get_run_attempts(run_id: int) -> int:
    with get_db_session() as db:
        row = db.execute(
            text("SELECT attempts FROM job_ingest_runs WHERE run_id = :rid"),
            {"rid": run_id}
        ).fetchone()
    return row[0] if row else 0


def _update_run(run_id: int, status: str, notes: str, scheduled_at: datetime = None) -> None:
    finished = status in ("done", "failed")
    with get_db_session() as db:
        db.execute(
            text("""
                UPDATE job_ingest_runs
                SET status = :status,
                    notes = :notes,
                    scheduled_at = COALESCE(:scheduled_at, scheduled_at),
                    finished_at = CASE WHEN :finished THEN NOW() ELSE finished_at END
                WHERE run_id = :rid
            """),
            {"status": status, "notes": notes, "scheduled_at": scheduled_at,
             "finished": finished, "rid": run_id}
        )


def _active_categories(limit: int) -> List[dict]:
    with get_db_session() as db:
        rows = db.execute(
            text("""
                SELECT category_id, category FROM job_categories
                WHERE active = TRUE
                ORDER BY last_fetched_at ASC NULLS FIRST
                LIMIT :limit
            """),
            {"limit": limit}
        ).mappings().fetchall()
    return [dict(r) for r in rows]


def _insert_run(category_id: int, scheduled_at: datetime, notes: str) -> None:
    with get_db_session() as db:
        db.execute(
            text("""
                INSERT INTO job_ingest_runs (category_id, status, scheduled_at, notes)
                VALUES (:cid, 'scheduled', :at, :notes)
            """),
            {"cid": category_id, "at": scheduled_at, "notes": notes}
        )


# ============================================================
# INGESTION SERVICE
# ============================================================

class IngestionService:

    def __init__(
        self,
        search_client: JobSearchClient = None,
        llm_client: LLMClient = None,
        raw_postings: RawJobPostingService = None,
        embeddings: EmbeddingCacheService = None
    ):
        self.search_client = search_client or JobSearchClient()
        self.llm_client = llm_client or get_llm_client()
        self.raw_postings = raw_postings or RawJobPostingService()
        self.embeddings = embeddings or EmbeddingCacheService()

    def ingest_category(self, category_id: int = None, run_id: int = None) -> dict:
        """
        Fetch, store and embed the jobs of one category.

        Returns:
            {"created": n} on success, {"skipped": True} without a category,
            {"error": "rate_limited" | "failed" | "rescheduled", ...} otherwise
        """
        row = pick_category_row(category_id)
        if not row:
            logger.info("No category row to ingest (category_id=%s)", category_id)
            if run_id is not None:
                _update_run(run_id, "failed", f"category {category_id} not found")
            return {"skipped": True}

        category = row["category"]
        location = row.get("location") or ""
        max_pages = settings.jsearch_max_pages_per_run
        created = 0
        rate_limited = None
        logger.info("Ingest started for category '%s' (run=%s)", category, run_id)

        try:
            for page in range(1, max_pages + 1):
                try:
                    page_result = self.search_client.fetch_jobs(category, location, page)
                except JobSearchRateLimited as e:
                    logger.warning("Job search rate limited on page %d of '%s'", page, category)
                    rate_limited = e
                    break
                except JobSearchError as e:
                    logger.warning("Job search fetch failed on page %d of '%s': %s", page, category, e)
                    break

                items = page_result.get("data") or []
                if not items:
                    logger.info("No results on page %d of '%s'", page, category)
                    break

                for idx, item in enumerate(items):
                    if self.process_job_item(item, category, page, idx) is not None:
                        created += 1
        except Exception as e:
            logger.exception("Ingest failed for category '%s'", category)
            return self._handle_run_failure(run_id, e)

        if rate_limited is not None:
            # the claimed run goes back to the queue (or fails once out of attempts)
            if run_id is not None:
                self._handle_run_failure(run_id, rate_limited)
            return {"error": "rate_limited"}

        result = {"created": created}
        if run_id is not None:
            try:
                _update_run(run_id, "done", json.dumps(result))
            except Exception as e:
                logger.warning("Could not mark run %s done: %s", run_id, e)

        logger.info("Ingest finished for category '%s': %s", category, result)
        return result

    def process_job_item(self, item: dict, category: str = None, page: int = 1, idx: int = 0) -> Optional[int]:
        """
        Save one job and embed it. Returns the job ID, or None if the job could not be saved.
        """
        record = build_job_record(item)
        try:
            job_id = _save_job(record)
            self.raw_postings.save(job_id, item, category)
        except Exception as e:
            logger.warning("Could not save job %d on page %d ('%s'): %s", idx, page, record.get("job_title"), e)
            return None

        extracted = extract_job_data_with_llm(record, self.llm_client)
        resp_bullets, skill_bullets = extracted["responsibilities"], extracted["skills"]
        if not resp_bullets and not skill_bullets:
            resp_bullets, skill_bullets = extract_bullets_from_job(item)

        full_text = f"{record.get('job_title') or ''}\n\n{record.get('job_description') or ''}".strip()
        try:
            embed_and_cache(JOB_RESPONSIBILITIES, job_id, "\n\n".join(resp_bullets), self.llm_client, self.embeddings)
            embed_and_cache(JOB_SKILLS, job_id, "\n\n".join(skill_bullets), self.llm_client, self.embeddings)
            embed_and_cache(JOB, job_id, full_text, self.llm_client, self.embeddings)
        except Exception as e:
            # The job stays listed; it just cannot be matched until re-embedded
            logger.warning("Embedding failed for job %s: %s", job_id, e)

        return job_id

    def _handle_run_failure(self, run_id: Optional[int], error: Exception) -> dict:
        if run_id is None:
            return {"error": "failed", "attempts": 0}

        attempts = _get_run_attempts(run_id)
        action, next_at = decide_failure_action(attempts)
        if action == "failed":
            _update_run(run_id, "failed", str(error))
            return {"error": "failed", "attempts": attempts}

        _update_run(run_id, "scheduled", str(error), scheduled_at=next_at)
        return {"error": "rescheduled", "next_at": next_at.isoformat()}


# ============================================================
# CRON ENTRY POINTS
# ============================================================

def schedule_daily_runs(limit: int = None, now: datetime = None) -> dict:
    """Queue ingest runs for the active categories fetched longest ago."""
    limit = limit or settings.ingest_daily_categories
    categories = _active_categories(limit)
    if not categories:
        logger.info("No active categories to schedule")
        return {"scheduled": 0}

    now = now or datetime.utcnow()
    times = compute_schedule_times(len(categories), now)
    for category, scheduled_at in zip(categories, times):
        _insert_run(
            category["category_id"],
            scheduled_at,
            f"scheduled by daily feed at {now.isoformat()}"
        )

    logger.info("Scheduled %d ingest run(s)", len(categories))
    return {"scheduled": len(categories)}


def process_due_run(dispatch: Callable[[dict], Any] = None) -> dict:
    """
    Claim one due run and hand it to the worker.
    If the hand-off fails the run goes back to scheduled.
    """
    run = claim_next_run()
    if not run:
        return {"claimed": 0, "message": "none-due"}

    if dispatch is None:
        def dispatch(claimed):
            return get_ingestion_service().ingest_category(claimed["category_id"], claimed["run_id"])

    logger.info("Claimed ingest run %s (category %s)", run["run_id"], run["category_id"])
    try:
        result = dispatch(run)
    except Exception as e:
        logger.exception("Dispatch failed for run %s", run["run_id"])
        _update_run(run["run_id"], "scheduled", f"dispatch failed: {e}")
        return {"claimed": 0, "error": "dispatch_failed"}

    return {"claimed": 1, "run_id": run["run_id"], "result": result}


def get_ingestion_service() -> IngestionService:
    return IngestionService()

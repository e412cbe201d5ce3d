"""
Category Service - job search categories managed by admins.

Each active category is one job-search query (plus optional location) that
the daily ingest schedules a run for.
"""
import logging
from typing import List, Optional

from sqlalchemy import text

from niena.core.errors import InvalidRequestError, NotFoundError
from niena.db.postgres import get_db_session

logger = logging.getLogger(__name__)

CATEGORY_COLUMNS = "category_id, category, location, active, last_fetched_at"

# Fields an admin may change
EDITABLE_FIELDS = ("category", "location", "active")


def list_categories() -> List[dict]:
    with get_db_session() as db:
        rows = db.execute(
            text(f"SELECT {CATEGORY_COLUMNS} FROM job_categories ORDER BY category_id DESC")
        ).mappings().fetchall()
    return [dict(row) for row in rows]


def create_category(category: str, location: Optional[str] = None, active: bool = True) -> dict:
    with get_db_session() as db:
        row = db.execute(
            text(f"""
                INSERT INTO job_categories (category, location, active)
                VALUES (:category, :location, :active)
                RETURNING {CATEGORY_COLUMNS}
            """),
            {"category": category, "location": location, "active": active}
        ).mappings().fetchone()
    logger.info("Created job category %s (%s)", row["category_id"], category)
    return dict(row)


def update_category(category_id: int, changes: dict) -> dict:
    """
    Apply a partial update. Keys outside EDITABLE_FIELDS are ignored.

    Raises:
        InvalidRequestError: nothing to update
        NotFoundError: no such category
    """
    fields = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
    if not fields:
        raise InvalidRequestError("No category fields to update")

    assignments = ", ".join(f"{name} = :{name}" for name in fields)
    with get_db_session() as db:
        row = db.execute(
            text(f"""
                UPDATE job_categories SET {assignments}
                WHERE category_id = :id
                RETURNING {CATEGORY_COLUMNS}
            """),
            {**fields, "id": category_id}
        ).mappings().fetchone()

    if not row:
        raise NotFoundError("Category not found")
    return dict(row)


def delete_category(category_id: int) -> None:
    """Ingest runs of the category are removed with it (ON DELETE CASCADE)."""
    with get_db_session() as db:
        deleted = db.execute(
            text("DELETE FROM job_categories WHERE category_id = :id RETURNING category_id"),
            {"id": category_id}
        ).fetchone()

    if not deleted:
        raise NotFoundError("Category not found")
    logger.info("Deleted job category %s", category_id)

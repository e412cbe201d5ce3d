"""
Notification Service - in-app announcements and their read state.

An announcement reaches every user when its target_user_ids is empty, or
only the listed users otherwise (plan expiry notices target one user).
Reading is tracked per user in announcement_reads.
"""
import logging
from typing import List

from sqlalchemy import text

from niena.core.errors import NotFoundError
from niena.db.postgres import get_db_session

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
MAX_LIMIT = 50

# Announcements the user :uid can see
_VISIBLE = """
    a.type IN ('in-app', 'both')
    AND (cardinality(a.target_user_ids) = 0 OR :uid = ANY(a.target_user_ids))
"""


def to_notification(row) -> dict:
    """Row -> the payload shape also used by NEW_NOTIFICATION events."""
    return {
        "id": row["announcement_id"],
        "title": row["title"],
        "content": row["content"],
        "sentAt": row["sent_at"],
        "isRead": row["read_at"] is not None,
        "readAt": row["read_at"],
    }


def get_latest(user_id: int, limit: int = DEFAULT_LIMIT) -> List[dict]:
    """Newest announcements first, each with the user's read state."""
    limit = max(1, min(limit, MAX_LIMIT))
    with get_db_session() as db:
        rows = db.execute(
            text(f"""
                SELECT a.announcement_id, a.title, a.content, a.sent_at, r.read_at
                FROM announcements a
                LEFT JOIN announcement_reads r
                    ON r.announcement_id = a.announcement_id AND r.user_id = :uid
                WHERE {_VISIBLE}
                ORDER BY a.sent_at DESC
                LIMIT :limit
            """),
            {"uid": user_id, "limit": limit}
        ).mappings().fetchall()
    return [to_notification(row) for row in rows]


def get_unread_count(user_id: int) -> int:
    """Unread announcements sent since the user signed up."""
    with get_db_session() as db:
        row = db.execute(
            text(f"""
                SELECT COUNT(*)
                FROM announcements a
                JOIN users u ON u.user_id = :uid
                WHERE {_VISIBLE}
                  AND a.sent_at >= u.created_at
                  AND NOT EXISTS (
                      SELECT 1 FROM announcement_reads r
                      WHERE r.announcement_id = a.announcement_id AND r.user_id = :uid
                  )
            """),
            {"uid": user_id}
        ).fetchone()
    return row[0] if row else 0


def mark_as_read(user_id: int, announcement_id: int) -> None:
    """Marking twice refreshes read_at."""
    with get_db_session() as db:
        visible = db.execute(
            text(f"SELECT 1 FROM announcements a WHERE a.announcement_id = :aid AND {_VISIBLE}"),
            {"aid": announcement_id, "uid": user_id}
        ).fetchone()
        if not visible:
            raise NotFoundError("Notification not found")

        db.execute(
            text("""
                INSERT INTO announcement_reads (user_id, announcement_id)
                VALUES (:uid, :aid)
                ON CONFLICT (user_id, announcement_id) DO UPDATE SET read_at = CURRENT_TIMESTAMP
            """),
            {"uid": user_id, "aid": announcement_id}
        )


def mark_all_as_read(user_id: int) -> int:
    """Returns how many announcements were newly marked."""
    with get_db_session() as db:
        result = db.execute(
            text(f"""
                INSERT INTO announcement_reads (user_id, announcement_id)
                SELECT :uid, a.announcement_id FROM announcements a
                WHERE {_VISIBLE}
                ON CONFLICT (user_id, announcement_id) DO NOTHING
            """),
            {"uid": user_id}
        )
        marked = result.rowcount
    logger.info("Marked %d notifications read for user %s", marked, user_id)
    return marked

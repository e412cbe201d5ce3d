"""
Account Service - plans, credits and subscription expiry.

Credits are spent by creating a primary resume, running autofix and
requesting a tailored resume. Interview minutes are spent by interviews
(see interview_service). Every balance change is a single UPDATE with a
guard in its WHERE clause, so concurrent requests cannot overdraw.
"""
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import text

from niena.core.errors import (
    AccountSuspendedError,
    InsufficientCreditsError,
    NotFoundError,
    SubscriptionExpiredError,
)
from niena.db.postgres import get_db_session
from niena.services.events import EventType, emit_to_user

logger = logging.getLogger(__name__)


class Plan(str, Enum):
    FREE = "FREE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    DIAMOND = "DIAMOND"


# Price in GHS per month
PLANS = {
    Plan.FREE: {"resume_credits": 3, "interview_minutes": 0, "weekly_matches": 10, "price": 0},
    Plan.SILVER: {"resume_credits": 10, "interview_minutes": 0, "weekly_matches": 30, "price": 450},
    Plan.GOLD: {"resume_credits": 20, "interview_minutes": 15, "weekly_matches": 60, "price": 750},
    Plan.DIAMOND: {"resume_credits": 30, "interview_minutes": 60, "weekly_matches": 1000, "price": 1500},
}

EXPIRY_ANNOUNCEMENT_TITLE = "Subscription Expired"
EXPIRY_ANNOUNCEMENT_CONTENT = (
    "Your subscription has expired and your account has been downgraded to the FREE plan."
)
SUSPENDED_MESSAGE = "Your account has been suspended. Please contact support."


def get_plan_limits(plan: str) -> dict:
    """Limits for a plan name; unknown names get FREE limits."""
    try:
        return PLANS[Plan(plan)]
    except ValueError:
        return PLANS[Plan.FREE]


def is_plan_expired(plan: str, expires_at: Optional[datetime], now: datetime = None) -> bool:
    """A paid plan whose expiry date is in the past. FREE never expires."""
    if plan == Plan.FREE.value or expires_at is None:
        return False
    now = now or datetime.utcnow()
    return expires_at < now


# ============================================================
# USERS
# ============================================================

def get_user(user_id: int) -> Optional[dict]:
    with get_db_session() as db:
        row = db.execute(
            text("""
                SELECT user_id, email, role, is_active, is_suspended, plan, plan_expires_at,
                       resume_credits, interview_minutes, created_at
                FROM users WHERE user_id = :id
            """),
            {"id": user_id}
        ).mappings().fetchone()
    return dict(row) if row else None


def get_user_by_email(email: str) -> Optional[dict]:
    """Login lookup; includes the password hash."""
    with get_db_session() as db:
        row = db.execute(
            text("""
                SELECT user_id, email, password_hash, role, is_active, is_suspended
                FROM users WHERE email = :email
            """),
            {"email": email}
        ).mappings().fetchone()
    return dict(row) if row else None


def create_user(email: str, password_hash: str) -> Optional[int]:
    """
    Insert a FREE user with the FREE plan's credits.

    Returns:
        New user ID, or None if the email is taken
    """
    with get_db_session() as db:
        row = db.execute(
            text("""
                INSERT INTO users (email, password_hash, plan, resume_credits, interview_minutes)
                VALUES (:email, :password_hash, 'FREE', :credits, :minutes)
                ON CONFLICT (email) DO NOTHING
                RETURNING user_id
            """),
            {
                "email": email,
                "password_hash": password_hash,
                "credits": PLANS[Plan.FREE]["resume_credits"],
                "minutes": PLANS[Plan.FREE]["interview_minutes"],
            }
        ).fetchone()
    return row[0] if row else None


def ensure_not_suspended(user: dict) -> None:
    if user.get("is_suspended"):
        raise AccountSuspendedError(SUSPENDED_MESSAGE)


def _downgrade_expired_plan(user_id: int) -> Optional[dict]:
    """
    Switch the user to FREE and create the in-app announcement.
    Returns the announcement, or None if another request downgraded first.
    """
    with get_db_session() as db:
        downgraded = db.execute(
            text("""
                UPDATE users
                SET plan = 'FREE', plan_expires_at = NULL, updated_at = CURRENT_TIMESTAMP
                WHERE user_id = :id AND plan <> 'FREE'
                RETURNING user_id
            """),
            {"id": user_id}
        ).fetchone()
        if not downgraded:
            return None

        row = db.execute(
            text("""
                INSERT INTO announcements (title, content, type, target_user_ids)
                VALUES (:title, :content, 'in-app', ARRAY[:id]::INTEGER[])
                RETURNING announcement_id, title, content, sent_at
            """),
            {"title": EXPIRY_ANNOUNCEMENT_TITLE, "content": EXPIRY_ANNOUNCEMENT_CONTENT, "id": user_id}
        ).mappings().fetchone()
    return dict(row)


def enforce_plan_expiry(user: dict, now: datetime = None) -> None:
    """
    Downgrade an expired paid plan to FREE, notify the user and fail the request.

    The user dict is updated in place so callers that catch the error
    see the FREE plan.

    Raises:
        SubscriptionExpiredError: the plan had expired
    """
    if not is_plan_expired(user.get("plan"), user.get("plan_expires_at"), now):
        return

    user_id = user["user_id"]
    announcement = _downgrade_expired_plan(user_id)
    user["plan"] = Plan.FREE.value
    user["plan_expires_at"] = None

    if announcement:
        logger.info("User %s subscription expired. Downgraded to FREE.", user_id)
        emit_to_user(user_id, EventType.NEW_NOTIFICATION, {
            "notification": {
                "id": announcement["announcement_id"],
                "title": announcement["title"],
                "content": announcement["content"],
                "sentAt": announcement["sent_at"].isoformat() if announcement.get("sent_at") else None,
                "isRead": False
            }
        })

    raise SubscriptionExpiredError()


# ============================================================
# ADMIN
# ============================================================

PLAN_PERIOD_DAYS = 30


def set_user_suspension(user_id: int, is_suspended: bool) -> dict:
    with get_db_session() as db:
        row = db.execute(
            text("""
                UPDATE users
                SET is_suspended = :suspended, updated_at = CURRENT_TIMESTAMP
                WHERE user_id = :id
                RETURNING user_id, email, is_suspended
            """),
            {"id": user_id, "suspended": is_suspended}
        ).mappings().fetchone()

    if not row:
        raise NotFoundError("User not found")
    logger.info("User %s %s", user_id, "suspended" if is_suspended else "reinstated")
    return dict(row)


def update_user_plan(user_id: int, plan: Plan, expires_at: Optional[datetime] = None,
                     now: datetime = None) -> dict:
    """
    Put a user on a plan.

    Paid plans run PLAN_PERIOD_DAYS from now unless expires_at is given; FREE
    has no expiry. Balances are raised to the plan's allowance, never lowered.
    """
    plan = Plan(plan)
    if plan == Plan.FREE:
        expires_at = None
    elif expires_at is None:
        expires_at = (now or datetime.utcnow()) + timedelta(days=PLAN_PERIOD_DAYS)

    limits = PLANS[plan]
    with get_db_session() as db:
        row = db.execute(
            text("""
                UPDATE users
                SET plan = :plan,
                    plan_expires_at = :expires_at,
                    resume_credits = GREATEST(resume_credits, :credits),
                    interview_minutes = GREATEST(interview_minutes, :minutes),
                    updated_at = CURRENT_TIMESTAMP
                WHERE user_id = :id
                RETURNING user_id, plan, plan_expires_at, resume_credits, interview_minutes
            """),
            {
                "id": user_id,
                "plan": plan.value,
                "expires_at": expires_at,
                "credits": limits["resume_credits"],
                "minutes": limits["interview_minutes"],
            }
        ).mappings().fetchone()

    if not row:
        raise NotFoundError("User not found")
    logger.info("User %s moved to %s plan", user_id, plan.value)
    return dict(row)


# ============================================================
# CREDITS
# ============================================================

def consume_resume_credit(user_id: int) -> int:
    """
    Spend one resume credit.

    Returns:
        Remaining balance

    Raises:
        InsufficientCreditsError: balance was already 0
    """
    with get_db_session() as db:
        row = db.execute(
            text("""
                UPDATE users
                SET resume_credits = resume_credits - 1, updated_at = CURRENT_TIMESTAMP
                WHERE user_id = :id AND resume_credits > 0
                RETURNING resume_credits
            """),
            {"id": user_id}
        ).fetchone()

    if row is None:
        raise InsufficientCreditsError("No resume credits left. Please upgrade your plan.")
    return row[0]


def refund_resume_credit(user_id: int) -> None:
    with get_db_session() as db:
        db.execute(
            text("""
                UPDATE users
                SET resume_credits = resume_credits + 1, updated_at = CURRENT_TIMESTAMP
                WHERE user_id = :id
            """),
            {"id": user_id}
        )
    logger.info("Refunded one resume credit to user %s", user_id)


# ============================================================
# DASHBOARD
# ============================================================

def get_dashboard(user_id: int) -> dict:
    """Plan, balances and activity counts for the dashboard."""
    with get_db_session() as db:
        row = db.execute(
            text("""
                SELECT u.plan, u.plan_expires_at, u.resume_credits, u.interview_minutes,
                       (SELECT COUNT(*) FROM resumes r WHERE r.user_id = u.user_id) AS resume_count,
                       (SELECT COUNT(*) FROM tailored_resumes t WHERE t.user_id = u.user_id) AS tailored_count,
                       (SELECT COUNT(*) FROM interviews i
                        WHERE i.user_id = u.user_id AND i.status IN ('ENDED', 'ANALYZED')) AS interview_count
                FROM users u
                WHERE u.user_id = :id
            """),
            {"id": user_id}
        ).mappings().fetchone()

    if not row:
        raise NotFoundError("User not found")

    limits = get_plan_limits(row["plan"])
    return {
        "plan": row["plan"],
        "plan_expires_at": row["plan_expires_at"],
        "resume_credits": row["resume_credits"],
        "interview_minutes": float(row["interview_minutes"]),
        "weekly_matches": limits["weekly_matches"],
        "resume_count": row["resume_count"],
        "tailored_count": row["tailored_count"],
        "interview_count": row["interview_count"],
    }

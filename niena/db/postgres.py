"""
PostgreSQL Connection Utility

PostgreSQL stores users and balances, announcements, resume and tailored
resume records, interviews, jobs with their views, and the ingestion
categories/runs. Services talk to it with SQLAlchemy Core text() SQL
through get_db_session().
"""
import logging
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from niena.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "sql" / "schema.sql"

engine = create_engine(
    settings.postgres_url,
    pool_size=settings.postgres_pool_size,
    max_overflow=settings.postgres_max_overflow,
    pool_pre_ping=True,
    echo=settings.debug
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db_session():
    """
    Transactional scope for one unit of work.

    Everything executed inside the block commits together; any exception
    rolls the whole block back and propagates. Credit consumption, the
    primary-resume switch and view counting rely on this.

    Usage:
        with get_db_session() as db:
            db.execute(text("UPDATE users SET ... WHERE user_id = :id"), {"id": user_id})
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def check_postgres_connection() -> bool:
    """True when PostgreSQL answers a trivial query."""
    try:
        with get_db_session() as db:
            return db.execute(text("SELECT 1")).scalar() == 1
    except Exception as e:
        logger.warning("PostgreSQL connection failed: %s", e)
        return False


def apply_schema(path: Path = SCHEMA_PATH) -> None:
    """Run sql/schema.sql. Every statement is idempotent (IF NOT EXISTS)."""
    ddl = Path(path).read_text(encoding="utf-8")
    with get_db_session() as db:
        db.connection().exec_driver_sql(ddl)
    logger.info("Applied schema from %s", path)

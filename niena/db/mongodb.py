"""
MongoDB Connection Utility

MongoDB stores:
- Raw resume text
- Agent pipeline outputs (extraction, analysis, score, autofix)
- Tailoring outputs and keyword reports
- Raw job postings as returned by the job-search API
- Chunk embeddings for jobs and resumes

Every document is keyed by the PostgreSQL id of the record it belongs to.
"""
import logging
from typing import Dict

from pymongo import MongoClient, ASCENDING
from pymongo.database import Database
from pymongo.collection import Collection
from niena.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

_client: MongoClient = None

COLLECTIONS = {
    "raw_resumes": "raw_resumes",
    "resume_analyses": "resume_analyses",
    "tailored_outputs": "tailored_outputs",
    "raw_job_postings": "raw_job_postings",
    "embedding_cache": "embedding_cache"
}

# collection -> (field, unique)
_KEY_INDEXES = {
    "raw_resumes": ("resume_id", True),
    "resume_analyses": ("resume_id", True),
    "tailored_outputs": ("tailored_id", True),
    "raw_job_postings": ("job_id", True),
}


def get_mongo_client() -> MongoClient:
    global _client
    if _client is None:
        _client = MongoClient(
            settings.mongodb_uri,
            serverSelectionTimeoutMS=settings.mongodb_timeout_ms
        )
    return _client


def get_mongo_db() -> Database:
    return get_mongo_client()[settings.mongodb_db]


def get_collection(name: str) -> Collection:
    """Collection by logical name (see COLLECTIONS)."""
    return get_mongo_db()[COLLECTIONS[name]]


def check_mongo_connection() -> bool:
    """True when the server answers ping within the selection timeout."""
    try:
        get_mongo_client().admin.command("ping")
        return True
    except Exception as e:
        logger.warning("MongoDB connection failed: %s", e)
        return False


def collection_counts() -> Dict[str, int]:
    """Document count per collection, for the connection check script."""
    return {name: get_collection(name).estimated_document_count() for name in COLLECTIONS}


def init_mongo_indexes():
    """Called once at app startup. create_index is a no-op when the index exists."""
    for name, (field, unique) in _KEY_INDEXES.items():
        get_collection(name).create_index(field, unique=unique)

    get_collection("raw_resumes").create_index("user_id")
    get_collection("embedding_cache").create_index([
        ("entity_type", ASCENDING),
        ("entity_id", ASCENDING)
    ], unique=True)

    logger.info("MongoDB indexes created")

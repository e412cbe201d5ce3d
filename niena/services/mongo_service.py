"""
MongoDB Service - CRUD operations for document collections.

Collections in this database:
1. raw_resumes       - Resume text as submitted by the user
2. resume_analyses   - Agent outputs (extracted, analysis, score, autofix)
3. tailored_outputs  - Tailored resume JSON and its keyword report
4. raw_job_postings  - Job items exactly as the job-search API returned them
5. embedding_cache   - Chunk embeddings for jobs and resumes

Postgres holds the rows users list and filter; everything whose shape is
decided by a model or by the job-search provider lives here.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pymongo.collection import Collection

from niena.db.mongodb import get_collection


# ============================================================
# RAW RESUMES COLLECTION
# ============================================================

class RawResumeService:
    """
    Resume text as the user submitted it (typed or converted from a file).
    """

    def __init__(self):
        self.collection: Collection = get_collection("raw_resumes")

    def save(self, resume_id: int, user_id: int, content: str) -> None:
        """Insert or replace the text of a resume."""
        self.collection.update_one(
            {"resume_id": resume_id},
            {"$set": {
                "resume_id": resume_id,
                "user_id": user_id,
                "content": content,
                "updated_at": datetime.utcnow()
            }},
            upsert=True
        )

    def get_content(self, resume_id: int) -> Optional[str]:
        doc = self.collection.find_one({"resume_id": resume_id})
        return doc.get("content") if doc else None

    def delete(self, resume_id: int) -> bool:
        result = self.collection.delete_one({"resume_id": resume_id})
        return result.deleted_count > 0


# ============================================================
# RESUME ANALYSES COLLECTION
# One document per resume holding every agent output
# ============================================================

class ResumeAnalysisService:
    """
    Stores the resume network outputs.

    Example document:
    {
        "resume_id": 12,
        "extracted_data": {...},
        "analysis_data": {"totalFixes": 4, "fixes": {...}},
        "score_data": {"scores": {"overallScore": 7}},
        "autofix_data": {...},
        "role": "Data Analyst",
        "version": 2
    }
    """

    FIELDS = ("extracted_data", "analysis_data", "score_data", "autofix_data")

    def __init__(self):
        self.collection: Collection = get_collection("resume_analyses")

    def save_outputs(self, resume_id: int, outputs: Dict[str, Any], role: str = None) -> None:
        """
        Store agent outputs for a resume. Only known fields are written;
        fields not present in outputs keep their previous value.
        """
        fields = {key: outputs[key] for key in self.FIELDS if key in outputs}
        fields["analyzed_at"] = datetime.utcnow()
        if role is not None:
            fields["role"] = role

        self.collection.update_one(
            {"resume_id": resume_id},
            {"$set": fields, "$inc": {"version": 1}},
            upsert=True
        )

    def get(self, resume_id: int) -> Optional[dict]:
        doc = self.collection.find_one({"resume_id": resume_id}, {"_id": 0})
        return doc

    def delete(self, resume_id: int) -> bool:
        result = self.collection.delete_one({"resume_id": resume_id})
        return result.deleted_count > 0


# ============================================================
# TAILORED OUTPUTS COLLECTION
# ============================================================

class TailoredOutputService:
    """
    Tailored resume JSON plus the keyword report used for scoring.
    """

    def __init__(self):
        self.collection: Collection = get_collection("tailored_outputs")

    def save(self, tailored_id: int, data: Dict[str, Any]) -> None:
        """
        Args:
            tailored_id: PostgreSQL tailored resume ID
            data: any of extracted_data, analysis ({matches, missing}),
                  scores ({finalScore, wordMatchScore, totalKeywords, matchedCount})
        """
        fields = dict(data)
        fields["updated_at"] = datetime.utcnow()
        self.collection.update_one(
            {"tailored_id": tailored_id},
            {"$set": fields},
            upsert=True
        )

    def get(self, tailored_id: int) -> Optional[dict]:
        return self.collection.find_one({"tailored_id": tailored_id}, {"_id": 0})

    def delete(self, tailored_id: int) -> bool:
        result = self.collection.delete_one({"tailored_id": tailored_id})
        return result.deleted_count > 0


# ============================================================
# RAW JOB POSTINGS COLLECTION
# ============================================================

class RawJobPostingService:
    """
    Job items as returned by the job-search API, kept for re-processing.
    """

    def __init__(self):
        self.collection: Collection = get_collection("raw_job_postings")

    def save(self, job_id: int, item: dict, category: str = None) -> None:
        self.collection.update_one(
            {"job_id": job_id},
            {"$set": {
                "job_id": job_id,
                "item": item,
                "category": category,
                "fetched_at": datetime.utcnow()
            }},
            upsert=True
        )


# ============================================================
# EMBEDDING CACHE COLLECTION
# Stores chunk vectors for similarity matching
# ============================================================

class EmbeddingCacheService:
    """
    Caches embeddings to avoid recomputing them.

    One document per (entity_type, entity_id), e.g. ("job_skills", 42),
    holding every chunk and its vector.
    """

    def __init__(self):
        self.collection: Collection = get_collection("embedding_cache")

    def store_embeddings(
        self,
        entity_type: str,
        entity_id: int,
        chunks: List[str],
        vectors: List[List[float]],
        text_hash: str = None
    ) -> None:
        """
        Store or replace the chunk embeddings of an entity.

        Args:
            entity_type: job, job_skills, job_responsibilities, resume_skills, resume_experience
            entity_id: PostgreSQL ID
            chunks: Chunk texts
            vectors: One vector per chunk
            text_hash: MD5 hash of source text (to detect if re-embedding needed)
        """
        self.collection.update_one(
            {"entity_type": entity_type, "entity_id": entity_id},
            {"$set": {
                "entity_type": entity_type,
                "entity_id": entity_id,
                "chunks": chunks,
                "vectors": vectors,
                "text_hash": text_hash,
                "created_at": datetime.utcnow()
            }},
            upsert=True
        )

    def get_text_hash(self, entity_type: str, entity_id: int) -> Optional[str]:
        doc = self.collection.find_one(
            {"entity_type": entity_type, "entity_id": entity_id},
            {"text_hash": 1}
        )
        return doc.get("text_hash") if doc else None

    def get_vectors_for(self, entity_type: str, entity_ids: List[int]) -> List[List[float]]:
        """All vectors of the given entities, flattened into one list."""
        if not entity_ids:
            return []
        cursor = self.collection.find(
            {"entity_type": entity_type, "entity_id": {"$in": list(entity_ids)}},
            {"vectors": 1}
        )
        vectors = []
        for doc in cursor:
            vectors.extend(doc.get("vectors", []))
        return vectors

    def get_all_by_type(self, entity_type: str) -> Dict[int, List[List[float]]]:
        """entity_id -> vectors for every entity of one type."""
        cursor = self.collection.find({"entity_type": entity_type}, {"entity_id": 1, "vectors": 1})
        return {doc["entity_id"]: doc.get("vectors", []) for doc in cursor}

    def delete_entity(self, entity_id: int, entity_types: List[str]) -> int:
        """Delete cached embeddings of an entity (e.g., when a resume is deleted)."""
        result = self.collection.delete_many({
            "entity_type": {"$in": list(entity_types)},
            "entity_id": entity_id
        })
        return result.deleted_count

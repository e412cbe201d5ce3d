"""
Embedding Service - chunk text and embed each chunk.

Chunks are 1000 characters with 200 characters of overlap, split on
paragraph, line, word and finally character boundaries. Vectors are
cached in MongoDB per (entity_type, entity_id) together with the MD5 of
the source text, so unchanged text is never re-embedded.
"""
import hashlib
import logging
from typing import List, Tuple

from langchain_text_splitters import RecursiveCharacterTextSplitter

from niena.services.llm_client import LLMClient, get_llm_client
from niena.services.mongo_service import EmbeddingCacheService

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200

# Entity types stored in the embedding cache
JOB = "job"
JOB_SKILLS = "job_skills"
JOB_RESPONSIBILITIES = "job_responsibilities"
RESUME_SKILLS = "resume_skills"
RESUME_EXPERIENCE = "resume_experience"

JOB_ENTITY_TYPES = [JOB, JOB_SKILLS, JOB_RESPONSIBILITIES]
RESUME_ENTITY_TYPES = [RESUME_SKILLS, RESUME_EXPERIENCE]

splitter = RecursiveCharacterTextSplitter(
    chunk_size=CHUNK_SIZE,
    chunk_overlap=CHUNK_OVERLAP,
    separators=["\n\n", "\n", " ", ""],
)


def compute_text_hash(text: str) -> str:
    """Compute MD5 hash of text for change detection."""
    return hashlib.md5(text.encode()).hexdigest()


def chunk_text(text: str) -> List[str]:
    if not text or not text.strip():
        return []
    return splitter.split_text(text)


def generate_chunks_and_embeddings(
    text: str,
    client: LLMClient = None
) -> Tuple[List[str], List[List[float]]]:
    """
    Split text into chunks and embed each one.

    Returns:
        (chunks, vectors) with one vector per chunk
    """
    client = client or get_llm_client()
    chunks = chunk_text(text)
    vectors = [client.embed(chunk) for chunk in chunks]
    return chunks, vectors


def embed_and_cache(
    entity_type: str,
    entity_id: int,
    text: str,
    client: LLMClient = None,
    cache: EmbeddingCacheService = None
) -> bool:
    """
    Embed the text of an entity unless the cached copy was built from the same text.

    Returns:
        True if new embeddings were stored, False if skipped
    """
    if not text or not text.strip():
        return False

    cache = cache or EmbeddingCacheService()
    text_hash = compute_text_hash(text)
    if cache.get_text_hash(entity_type, entity_id) == text_hash:
        logger.debug("Embeddings for %s %s unchanged, skipping", entity_type, entity_id)
        return False

    chunks, vectors = generate_chunks_and_embeddings(text, client)
    cache.store_embeddings(entity_type, entity_id, chunks, vectors, text_hash)
    logger.info("Stored %d chunk embedding(s) for %s %s", len(vectors), entity_type, entity_id)
    return True

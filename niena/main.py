"""
Niena - Main Application

FastAPI backend with:
- PostgreSQL for users, credits, resumes, interviews and jobs
- MongoDB for documents (resume text, agent outputs, job postings, embeddings)
- OpenAI-compatible LLM for the agent pipelines
- JWT authentication
- Server-sent events for background workflow progress

Run: uvicorn niena.main:app --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from niena import __version__
from niena.api.routes import api_router
from niena.core.config import get_settings
from niena.core.errors import NienaError
from niena.db.mongodb import init_mongo_indexes, check_mongo_connection
from niena.db.postgres import check_postgres_connection

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Niena",
    description="""
    AI-assisted resume building, tailoring, job matching and mock interviews.

    ## Features
    - **Resumes**: upload or paste, AI extraction, analysis, scoring and autofix
    - **Tailored resumes**: keyword-driven tailoring and cover letters
    - **Jobs**: daily job feed ingestion and embedding-based recommendations
    - **Interviews**: AI mock interviews with minute accounting and assessment
    - **Events**: per-user server-sent events for background work
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    debug=settings.debug
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.exception_handler(NienaError)
async def niena_error_handler(request: Request, exc: NienaError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
async def startup_event():
    """Initialize MongoDB indexes on startup."""
    try:
        init_mongo_indexes()
        logger.info("MongoDB indexes initialized")
    except Exception as e:
        logger.warning("MongoDB index initialization failed: %s", e)


@app.get("/", tags=["Health"])
async def root():
    return {"status": "healthy", "app": "Niena", "version": __version__}


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "postgres": "connected" if check_postgres_connection() else "disconnected",
        "mongodb": "connected" if check_mongo_connection() else "disconnected"
    }

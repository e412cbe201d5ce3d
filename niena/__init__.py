"""
Niena
Backend for AI-assisted resume building, tailored resumes,
job matching and AI mock interviews.

Architecture:
- PostgreSQL: Structured records (users, resumes, jobs, interviews, ingest runs)
- MongoDB: Model-shaped documents (resume text, agent outputs, embeddings)
- OpenAI-compatible LLM: Resume analysis, tailoring, job extraction, interviews
"""

__version__ = "1.0.0"

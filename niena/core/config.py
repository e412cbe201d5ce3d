"""
Niena settings.

Every value can be overridden by an environment variable of the same name
(upper case) or a .env file next to the process working directory.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "niena_user"
    postgres_password: str = "password"
    postgres_db: str = "niena_db"
    postgres_pool_size: int = 5
    postgres_max_overflow: int = 10

    # MongoDB
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "niena_docs"
    mongodb_timeout_ms: int = 5000

    # LLM (OpenAI-compatible)
    llm_api_key: str = ""
    llm_base_url: str = "https://api.openai.com/v1"
    llm_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 60.0
    llm_max_retries: int = 3
    embedding_model: str = "text-embedding-3-small"

    # Job search API
    jsearch_base_url: str = "https://jsearch.p.rapidapi.com"
    jsearch_api_key: str = ""
    jsearch_max_pages_per_run: int = 1
    jsearch_timeout_seconds: float = 20.0

    # Ingestion scheduling
    ingest_max_attempts: int = 3
    ingest_retry_minutes: int = 15
    ingest_daily_categories: int = 4

    # JWT Auth
    jwt_secret_key: str = "change-this-secret"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440

    # App
    debug: bool = False
    log_level: str = "INFO"

    @property
    def postgres_url(self) -> str:
        """psycopg2 URL built from the postgres_* fields."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()

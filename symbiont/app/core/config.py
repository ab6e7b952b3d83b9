"""Application configuration powered by Pydantic settings."""
from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Global settings shared by the gateway and every stage worker."""

    PROJECT_NAME: str = Field(default="Symbiont")
    VERSION: str = Field(default="0.1.0")
    LOG_LEVEL: str = Field(default="INFO")

    REDIS_URL: str = Field(default="redis://redis:6379/0")
    DATABASE_URL: str = Field(default="postgresql+psycopg://postgres:postgres@db:5432/postgres")

    EMBEDDING_MODEL_NAME: str = Field(
        default="sentence-transformers/paraphrase-multilingual-mpnet-base-v2"
    )
    EMBEDDING_DIM: int = Field(default=768)

    EMBEDDING_TIMEOUT: float = Field(default=15.0)
    SEARCH_TIMEOUT: float = Field(default=20.0)
    SEARCH_MAX_TOP_K: int = Field(default=100)

    FANOUT_BUFFER_SIZE: int = Field(default=32)
    SSE_KEEPALIVE_SECONDS: float = Field(default=15.0)

    STAGE_DRAIN_TIMEOUT: float = Field(default=5.0)
    WORKER_METRICS_PORT: int = Field(default=0)

    SCRAPER_TIMEOUT: float = Field(default=15.0)
    SCRAPER_USER_AGENT: str = Field(default="SymbiontBot/0.1")

    GENERATION_BACKEND: str = Field(default="markov")
    MARKOV_CORPUS_PATH: str | None = Field(default=None)
    MAX_GENERATION_LENGTH: int = Field(default=1000)

    OLLAMA_HOST: str = Field(default="http://host.docker.internal:11434")
    OLLAMA_MODEL: str = Field(default="llama3")
    OLLAMA_TIMEOUT: float = Field(default=120.0)

    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8080)
    CORS_ORIGINS: tuple[str, ...] = Field(
        default=("http://localhost:3000", "http://127.0.0.1:3000")
    )

    RATE_LIMIT_SUBMIT: str = Field(default="30/minute")
    RATE_LIMIT_GENERATE: str = Field(default="30/minute")
    RATE_LIMIT_SEARCH: str = Field(default="60/minute")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> Settings:
    """Return cached settings instance to avoid repeated parsing."""

    if overrides:
        return Settings(**overrides)
    return Settings()


settings = get_settings()

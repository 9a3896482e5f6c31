"""
Configuration settings for the Niti-Setu scheme retrieval service
"""
from functools import lru_cache
from typing import List, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # MongoDB Configuration
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    mongodb_db_name: str = Field(default="niti_setu")
    schemes_collection: str = Field(default="schemes")
    analytics_collection: str = Field(default="analytics")
    vector_index_name: str = Field(default="vector_index")
    vector_store_backend: Literal["atlas", "memory"] = Field(
        default="atlas",
        description="'atlas' uses MongoDB $vectorSearch, 'memory' keeps everything in process"
    )

    # Embedding provider (any OpenAI-compatible /embeddings endpoint)
    embedding_api_key: str = Field(default="")
    embedding_base_url: str = Field(default="https://api.jina.ai/v1")
    embedding_model: str = Field(default="jina-embeddings-v2-base-en")
    embedding_dimension: int = Field(default=768, gt=0)
    embedding_batch_size: int = Field(default=16, gt=0)
    embedding_concurrency: int = Field(default=5, gt=0)
    embedding_timeout_seconds: float = Field(default=30.0, gt=0)

    # Retries for transient provider / store failures
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = Field(default=0.5, ge=0)

    # Chunking
    chunk_max_chars: int = Field(default=1000, gt=0)
    chunk_overlap_chars: int = Field(default=200, ge=0)

    # Retrieval
    search_top_k: int = Field(default=5, gt=0)
    search_num_candidates: int = Field(default=50, gt=0)
    ingest_timeout_seconds: float = Field(default=300.0, gt=0)
    search_timeout_seconds: float = Field(default=30.0, gt=0)

    # OpenRouter API Configuration (eligibility judge, chat, profile extraction)
    openrouter_api_key: str = Field(default="")
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1")
    openrouter_model: str = Field(default="meta-llama/llama-3.1-8b-instruct")
    llm_timeout_seconds: float = Field(default=60.0, gt=0)
    judge_context_chars: int = Field(default=10000, gt=0)
    auto_extract_filters: bool = Field(default=True)

    # Application Configuration
    app_name: str = Field(default="Niti-Setu Scheme Retrieval Service")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # File Upload Configuration
    max_file_size: int = Field(default=10485760)  # 10MB
    allowed_extensions: str = Field(default=".pdf")
    upload_dir: str = Field(default="uploads")

    # API Configuration
    api_prefix: str = Field(default="/api/v1")
    cors_origins: str = Field(default="*")

    @model_validator(mode="after")
    def check_retrieval_knobs(self):
        if self.chunk_overlap_chars >= self.chunk_max_chars:
            raise ValueError("chunk_overlap_chars must be smaller than chunk_max_chars")
        if self.search_num_candidates < self.search_top_k:
            raise ValueError("search_num_candidates must be at least search_top_k")
        return self

    def get_allowed_extensions_list(self) -> List[str]:
        """Get allowed extensions as a list"""
        extensions = []
        for ext in self.allowed_extensions.split(','):
            ext = ext.strip().lower()
            if ext and not ext.startswith('.'):
                ext = f".{ext}"
            if ext:
                extensions.append(ext)
        return extensions

    def get_cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list"""
        return [origin.strip() for origin in self.cors_origins.split(',') if origin.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    """Build the settings once per process; read-only afterwards"""
    return Settings()

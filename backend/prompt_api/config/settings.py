"""Application settings loaded from the environment."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the Prompt API service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    api_title: str = "Prompt API"
    api_version: str = "1.0.0"
    api_description: str = "A small API to run prompt-based text generation operations"
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    access_log_filename: str = "access.log"

    # Documentation
    docs_url: str = "/api-docs"
    openapi_url: str = "/openapi.json"
    use_scalar_docs: bool = True

    # CORS
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_requests: int = Field(default=100, ge=1)
    rate_limit_window_seconds: int = Field(default=15 * 60, ge=1)

    # LLM (llama.cpp)
    llm_repo_id: str = "google/gemma-3-1b-it-qat-q4_0-gguf"
    llm_model_filename: str = "gemma-3-1b-it-q4_0.gguf"
    hugging_face_hub_token: Optional[str] = None
    llm_gpu_layers: int = 0
    llm_batch_size: int = 512
    llm_n_threads: Optional[int] = None
    llm_context_size: int = 4096
    llm_temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=512, ge=1)
    llm_request_timeout: float = Field(default=120.0, gt=0)


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()

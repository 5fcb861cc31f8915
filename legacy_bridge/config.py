"""Application settings loaded from environment variables."""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Legacy Bridge configuration. All values come from environment variables."""

    # Anthropic (content generation)
    anthropic_api_key: str = Field(default="")
    claude_model: str = Field(default="claude-sonnet-4-5-20250929")
    generation_max_tokens: int = Field(default=4000)

    # OpenAI (embeddings)
    openai_api_key: str = Field(default="")
    embedding_model: str = Field(default="text-embedding-3-small")

    # Vector index
    vector_dimension: int = Field(default=1536)
    similarity_threshold: float = Field(default=0.7)

    # Memory store
    conversation_history_limit: int = Field(default=100)
    high_fan_out_threshold: int = Field(default=5)

    # Workflow orchestration
    confidence_threshold: float = Field(default=0.8)
    max_retry_attempts: int = Field(default=3)
    retry_base_delay_seconds: float = Field(default=1.0)
    workflow_retention_seconds: float = Field(default=300.0)
    batch_parallel_limit: int = Field(default=5)
    batch_delay_seconds: float = Field(default=1.0)

    # Chunking
    chunk_max_chars: int = Field(default=4000)
    chunk_overlap_chars: int = Field(default=200)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)


settings = Settings()

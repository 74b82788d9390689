from typing import List, Optional
from pydantic import PostgresDsn, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Scope of Work Service"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/v1"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # text | json

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "sow"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None

    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return str(PostgresDsn.build(
            scheme="postgresql+asyncpg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        ))

    # LLM provider
    LLM_PROVIDER_PRIMARY: str = "ollama"

    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL_PRIMARY: str = "gpt-oss:20b"

    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL_PRIMARY: str = "gpt-4o"

    AZURE_OPENAI_API_KEY: Optional[str] = None
    AZURE_OPENAI_ENDPOINT: Optional[str] = None
    AZURE_OPENAI_API_VERSION: str = "2024-10-21"
    AZURE_OPENAI_MODEL_PRIMARY: str = "gpt-4o"

    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL_PRIMARY: str = "claude-sonnet-4-5"

    AZURE_FOUNDRY_API_KEY: Optional[str] = None
    AZURE_FOUNDRY_ENDPOINT: Optional[str] = None
    AZURE_FOUNDRY_MODEL_PRIMARY: str = "claude-sonnet-4-5"

    # Scope of Work pipeline
    SOW_GENERATION_TIMEOUT_SECONDS: float = 120.0
    SOW_GENERATION_MAX_RETRIES: int = 2
    SOW_RETRY_BACKOFF_SECONDS: float = 1.0
    SOW_PIPELINE_TIMEOUT_SECONDS: float = 300.0
    SOW_VERSION_ASSIGN_ATTEMPTS: int = 5
    SOW_MAX_PROMPT_CHARS: int = 60000

    # Validation / approval policy
    SOW_VALIDATION_PASS_SCORE: float = 70.0
    SOW_APPROVAL_BLOCK_ON_CRITICAL: bool = True
    SOW_APPROVAL_MIN_SCORE: float = 0.0
    SOW_WARN_CONFIDENCE: float = 0.6

    # Cost estimation
    COST_ESTIMATE_VALIDITY_DAYS: int = 30
    MARKET_RATE_TTL_SECONDS: int = 60 * 60 * 24

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env")

settings = Settings()

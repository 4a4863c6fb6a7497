from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Learnvault Insights"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database (individual fields; the URL is built dynamically)
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "learnvault_db"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DATABASE_URL: str = ""
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    @property
    def database_url(self) -> str:
        """Async URL for SQLAlchemy (asyncpg driver). DATABASE_URL wins when set."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # JWT (tokens are issued by the auth service; we only verify them)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Generation gateway (OpenRouter, OpenAI-compatible)
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    SITE_URL: str = "http://localhost:3000"
    SITE_NAME: str = "Learnvault"
    INSIGHTS_DEFAULT_MODEL: str = "google/gemini-2.0-flash-001"

    # Embeddings
    GOOGLE_GEMINI_API_KEY: str = ""
    OPENAI_API_KEY: str = ""
    EMBEDDING_MODEL: str = "models/text-embedding-004"

    # Storage (vector index files live under STORAGE_ROOT/faiss_indexes)
    STORAGE_ROOT: str = "./storage"

    # Insight policy
    INSIGHT_STALE_HOURS: int = 24
    PAST_INSIGHTS_DAYS: int = 30

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


settings = Settings()

"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str

    # Gemini API
    GEMINI_API_KEY: str
    GENERATION_MODEL: str = "gemini-2.5-flash"  # test generation, judging, moderation
    SYNTHESIS_MODEL: str = "gemini-2.5-pro"  # long-form plan stages
    ENABLE_WEB_SEARCH: bool = False

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Application
    APP_NAME: str = "Placement Assessment Platform"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 60
    RATE_LIMIT_PER_HOUR: int = 1000
    GENERATION_RATE_LIMIT_PER_HOUR: int = 20

    # Generation retry policy
    RETRY_ATTEMPTS: int = 3
    RETRY_INITIAL_DELAY: float = 2.0  # seconds, doubled per attempt
    RETRY_MAX_DELAY: float = 30.0
    GENERATION_CALL_TIMEOUT_SECONDS: float = 120.0

    # Deadlines
    REQUEST_TIMEOUT_SECONDS: float = 330.0
    TEST_GENERATION_DEADLINE_SECONDS: float = 240.0
    ANSWER_DEADLINE_SECONDS: float = 300.0
    JUDGE_TIMEOUT_SECONDS: float = 30.0

    # Placement settings
    TEST_MAX_OUTPUT_TOKENS: int = 8000
    PLAN_CACHE_TTL: int = 86400  # 24 hours
    PLAN_ARTIFACT_DIR: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()

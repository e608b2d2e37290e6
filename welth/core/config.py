import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    PROJECT_NAME: str = "Welth API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"

    # Database - individual vars (fallback)
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: str = "5432"
    POSTGRES_USER: str = "welth"
    POSTGRES_PASSWORD: str = "welth_secret"
    POSTGRES_DB: str = "welth"

    @property
    def DATABASE_URL(self) -> str:
        # Hosting platforms hand out postgres:// urls
        env_url = os.environ.get("DATABASE_URL")
        if env_url:
            if env_url.startswith("postgres://"):
                return env_url.replace("postgres://", "postgresql+asyncpg://", 1)
            elif env_url.startswith("postgresql://"):
                return env_url.replace("postgresql://", "postgresql+asyncpg://", 1)
            return env_url
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Hosted identity provider (session tokens are verified, never issued here)
    AUTH_SECRET_KEY: str = "your-secret-key-change-in-production"
    AUTH_ALGORITHM: str = "HS256"
    AUTH_ISSUER: Optional[str] = None

    # Gemini AI
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"

    # Resend
    RESEND_API_KEY: Optional[str] = None
    EMAIL_FROM: str = "Welth <noreply@welth.app>"

    # Inngest
    INNGEST_APP_ID: str = "welth"
    INNGEST_IS_PRODUCTION: bool = False

    # Transaction creation rate limit (token bucket per user)
    RATE_LIMIT_CAPACITY: int = 5
    RATE_LIMIT_REFILL_RATE: int = 5
    RATE_LIMIT_INTERVAL_SECONDS: int = 60

    BUDGET_ALERT_THRESHOLD: float = 80.0

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

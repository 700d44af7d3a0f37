from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "FirePlan API"
    API_V1_STR: str = "/api"
    LOG_LEVEL: str = "INFO"

    # Database (remote persistence for scenarios)
    DATABASE_URL: str = "sqlite+aiosqlite:///./fireplan.db"

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: str) -> str:
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql+asyncpg://", 1)
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    # Security (tokens are issued by the identity provider, we only verify)
    SECRET_KEY: str = "fireplan-dev-secret-key-change-in-production" # Change in production
    ALGORITHM: str = "HS256"

    @field_validator("CORS_ORIGIN_URLS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: str | list[str]) -> list[str] | str:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    CORS_ORIGIN_URLS: list[str] | str = []

    # Scenario sync
    SYNC_DEBOUNCE_SECONDS: float = 1.0
    SYNC_FAILURE_SURFACE_THRESHOLD: int = 3
    LOCAL_STORE_DIR: Optional[str] = "fireplan/cache"

    # Billing / entitlements
    BILLING_API_URL: Optional[str] = None
    BILLING_API_KEY: Optional[str] = None
    BILLING_TIMEOUT_SECONDS: float = 5.0
    ENTITLEMENT_TTL_SECONDS: float = 300.0
    DEFAULT_FREE_SCENARIO_LIMIT: int = 3

    # Extra
    PORT: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./propmgr.db"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    AUTO_CREATE_TABLES: bool = True

    # Absolute origin used for deep links in notifications
    FRONTEND_URL: str = "http://localhost:5173"
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Auth (HS256 shared secret, or JWKS for asymmetric keys)
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHMS: List[str] = ["HS256"]
    JWT_AUDIENCE: Optional[str] = "authenticated"
    JWT_JWKS_URL: Optional[str] = None

    # Local blob store
    MEDIA_ROOT: str = "./media"
    MEDIA_BASE_URL: str = "/media"

    # Default requiredRoles for property management checks
    MANAGEMENT_ROLES: List[str] = ["landlord", "propertymanager", "admin_access"]

    DEFAULT_CURRENCY: str = "UGX"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()

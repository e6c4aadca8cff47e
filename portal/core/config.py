"""Core application configuration and settings.

Handles environment variables, database and upload locations, and the
JWT parameters shared by the API and the client.
"""
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Load environment variables
ROOT = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=ROOT / ".env")
load_dotenv()

DEV_SECRET_KEY = "development-secret-key-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Document database (empty URI selects the in-memory store)
    mongodb_uri: str = Field(default="", alias="MONGODB_URI")
    database_name: str = Field(default="school_portal", alias="DATABASE_NAME")

    # Uploads
    upload_dir: str = Field(default=str(ROOT / "uploads"), alias="UPLOAD_DIR")
    upload_url_prefix: str = Field(default="/uploads", alias="UPLOAD_URL_PREFIX")
    max_upload_bytes: int = Field(default=100 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")

    # JWT Authentication
    jwt_secret_key: str = Field(default=DEV_SECRET_KEY, alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=7 * 24 * 60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")  # 7 days
    bcrypt_rounds: int = Field(default=12, alias="BCRYPT_ROUNDS")
    allow_admin_registration: bool = Field(default=False, alias="ALLOW_ADMIN_REGISTRATION")

    # Application Settings
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # API Settings
    api_prefix: str = Field(default="/api", alias="API_PREFIX")
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:8501",
            "http://127.0.0.1:8501"
        ],
        alias="CORS_ORIGINS"
    )

    # Client Settings
    api_base_url: str = Field(default="http://127.0.0.1:10000", alias="PORTAL_API_URL")
    token_file: Optional[str] = Field(default=None, alias="PORTAL_TOKEN_FILE")
    request_timeout: float = Field(default=30.0, alias="PORTAL_REQUEST_TIMEOUT")

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        populate_by_name=True,
        extra="ignore",
    )

    @property
    def uses_memory_store(self) -> bool:
        return not self.mongodb_uri

    def validate_required_settings(self):
        """Validate that required settings are present."""
        if self.environment == "production" and self.jwt_secret_key == DEV_SECRET_KEY:
            raise ValueError(
                "JWT_SECRET_KEY must be set to a secure value in production."
            )
        if self.environment == "production" and self.uses_memory_store:
            raise ValueError(
                "MONGODB_URI not set. The in-memory store is for development only."
            )
        if self.bcrypt_rounds < 4 or self.bcrypt_rounds > 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")


# Global settings instance
settings = Settings()


# Validate settings on module import (only in non-test environments)
if settings.environment != "test":
    try:
        settings.validate_required_settings()
    except ValueError as e:
        print(f"Configuration Error: {e}")
        # Don't raise in development to allow partial setup
        if settings.environment == "production":
            raise

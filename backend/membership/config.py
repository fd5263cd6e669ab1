# backend/membership/config.py
from functools import lru_cache
from typing import List

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # environment: "dev" for running the app locally, "test" for pytest, "prod" when deployed
    ENV: str = "dev"

    DATABASE_URL: str | None = None
    TEST_DATABASE_URL: str | None = None
    DB_APP_ROLE: str | None = None
    DB_REQUIRE_SSL: bool = True

    # --- Error reporting ---
    # When true, unhandled exception text is echoed back under error.details.
    DEBUG_ERRORS: bool = False

    # --- Accounts / sessions ---
    BCRYPT_ROUNDS: int = 10
    SESSION_COOKIE_NAME: str = "session"
    SESSION_TTL_DAYS: int = 7
    VERIFICATION_TTL_MINUTES: int = 60
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    VERIFY_SUCCESS_PATH: str = "/register-success.html"

    # --- Mail ---
    # With no SMTP_HOST the verification link is only logged (dev).
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    MAIL_FROM: str = "no-reply@example.com"
    MAIL_FROM_NAME: str = "Membership"

    # --- Object storage ---
    STORAGE_PROVIDER: str = "gcs"
    GCS_BUCKET: str | None = None
    SIGNED_URL_TTL_SECONDS: int = 300

    # --- Security controls ---
    FORCE_HTTPS: bool = False
    TRUSTED_HOSTS: List[str] = Field(
        default_factory=lambda: [
            "localhost",
            "127.0.0.1",
            "testserver",
            "test",
        ]
    )
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]
    )
    HSTS_MAX_AGE: int = 31536000  # 1 year
    CONTENT_SECURITY_POLICY: str = (
        "default-src 'self'; "
        "img-src 'self' data:; "
        "style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; "
        "font-src 'self' data:; "
        "connect-src 'self'; "
        "frame-ancestors 'none'"
    )

    @property
    def is_production(self) -> bool:
        return self.ENV not in ("dev", "test")

    @model_validator(mode="after")
    def _check_storage_bucket(self):
        # dev/test may run without a bucket; downloads then fail with a 500.
        if self.is_production and not self.GCS_BUCKET:
            raise ValueError("GCS_BUCKET must be set via environment for non-dev/test environments.")
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]

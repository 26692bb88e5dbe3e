"""Application configuration loaded from environment variables."""
from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator


class Settings(BaseSettings):
    """Application settings."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./licenses.db"
    DATABASE_ECHO: bool = False
    AUTO_CREATE_TABLES: bool = True

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def ensure_async_driver(cls, v: str) -> str:
        """Convert standard postgresql:// URL to postgresql+asyncpg:// for async SQLAlchemy."""
        if v.startswith("postgresql://"):
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        # asyncpg uses 'ssl' parameter, not 'sslmode' (psycopg2/libpq specific)
        if "sslmode=" in v:
            v = v.replace("sslmode=", "ssl=")
        return v

    # CORS - can be "*" for all origins or comma-separated list
    CORS_ORIGINS: str = "*"

    # Admin credential checked against the x-admin-secret header.
    # An empty value rejects every admin request.
    ADMIN_SECRET: str = ""

    # ── License keys ───────────────────────────────────────────────────────────
    # "stateful": a key is valid only while its row exists and is active.
    # "stateless": keys carry an HMAC tag; the table acts as a deny-list.
    LICENSE_REGIME: str = "stateful"
    LICENSE_SECRET: str = ""
    KEY_PREFIX: str = "ECLIPSE"
    KEY_BLOCK_BYTES: int = 2  # 3 blocks x 2 bytes = 48 random bits
    CREATE_MAX_ATTEMPTS: int = 5

    # Listing cap for human-facing callers; 0 means unlimited
    LIST_DEFAULT_LIMIT: int = 20

    # Downstream consumers hold only a key, so validate is open by default
    VALIDATE_REQUIRES_ADMIN_SECRET: bool = False

    # Owner notification (best-effort webhook, disabled when empty)
    NOTIFY_WEBHOOK_URL: str = ""
    NOTIFY_TIMEOUT_SECONDS: float = 5.0

    @field_validator("LICENSE_REGIME", mode="before")
    @classmethod
    def normalize_regime(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in ("stateful", "stateless"):
            raise ValueError("LICENSE_REGIME must be 'stateful' or 'stateless'")
        return v

    @field_validator("KEY_BLOCK_BYTES", "CREATE_MAX_ATTEMPTS")
    @classmethod
    def ensure_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @model_validator(mode="after")
    def require_signing_secret(self) -> "Settings":
        """Stateless keys cannot be verified without a signing secret."""
        if self.LICENSE_REGIME == "stateless" and not self.LICENSE_SECRET:
            raise ValueError("LICENSE_SECRET is required when LICENSE_REGIME is 'stateless'")
        return self

    # Server
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    class Config:
        env_file = (".env", "../.env")
        case_sensitive = True
        extra = "allow"


settings = Settings()

"""Settings configuration for the messaging automations service."""

from pydantic_settings import BaseSettings
from pydantic import BaseModel, Field, ConfigDict
from dotenv import load_dotenv
from typing import Optional

# Load environment variables from .env file
load_dotenv()


class FeatureFlags(BaseModel):
    """Simple boolean feature flags via environment variables.

    Each flag maps to a FEATURE_FLAGS__<FLAG_NAME> environment variable.
    """

    enable_inbound_webhooks: bool = Field(
        default=True, description="Accept WhatsApp/Instagram webhook events"
    )
    enable_ai_replies: bool = Field(
        default=True, description="Call the Responder for inbound messages"
    )
    enable_redis_dedup: bool = Field(
        default=False, description="Share the inbound dedup window through Redis"
    )
    enable_notifications: bool = Field(
        default=True, description="Write owner-facing notifications"
    )


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    app_env: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Logging level")

    # Database
    database_url: Optional[str] = Field(
        default=None, description="PostgreSQL connection URL (postgresql+asyncpg://...)"
    )
    database_pool_size: int = Field(default=5, ge=1, le=50)
    database_pool_overflow: int = Field(default=10, ge=0, le=100)

    # Redis (broker + optional shared dedup window)
    redis_url: Optional[str] = Field(
        default=None, description="Redis connection URL (redis://localhost:6379/0)"
    )
    redis_key_prefix: str = Field(default="msgauto:", description="Redis key namespace prefix")

    # External collaborators
    responder_base_url: str = Field(
        default="http://localhost:3000", description="Base URL of the AI Responder service"
    )
    responder_path: str = Field(default="/api/chat/webhook")
    responder_timeout_seconds: float = Field(default=30.0, gt=0)

    # Trigger endpoint protection
    cron_secret: Optional[str] = Field(
        default=None, description="Shared secret expected in X-Cron-Secret (disabled when unset)"
    )

    # Meta webhook signature validation (X-Hub-Signature-256)
    meta_app_secret: Optional[str] = Field(
        default=None, description="Meta app secret; webhook signatures are enforced when set"
    )

    # Queue processor
    queue_batch_size: int = Field(default=50, ge=1, le=500)
    queue_deadline_seconds: float = Field(default=55.0, gt=0)
    queue_concurrency: int = Field(default=10, ge=1, le=100)
    max_retries: int = Field(default=3, ge=1)
    provider_timeout_seconds: float = Field(default=10.0, gt=0)

    # Inbound ingestion
    debounce_seconds: float = Field(default=7.0, ge=0)
    dedup_ttl_seconds: int = Field(default=60, ge=1)

    # Trigger generators
    promotion_settle_seconds: int = Field(default=5, ge=0)
    promotion_spacing_seconds: int = Field(default=2, ge=0)
    generator_batch_size: int = Field(default=100, ge=1, le=1000)

    # Feature Flags
    feature_flags: FeatureFlags = Field(
        default_factory=FeatureFlags, description="Service feature toggles"
    )


def load_settings() -> Settings:
    """Load settings with proper error handling."""
    try:
        return Settings()
    except Exception as e:
        error_msg = f"Failed to load settings: {e}"
        if "database_url" in str(e).lower():
            error_msg += "\nMake sure DATABASE_URL in your .env file is a valid connection URL"
        raise ValueError(error_msg) from e

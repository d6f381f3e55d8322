from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # LiveKit Configuration (only the voice worker and token route need these)
    livekit_url: Optional[str] = None
    livekit_api_key: Optional[str] = None
    livekit_api_secret: Optional[str] = None

    # Database Configuration
    database_path: str = "salon_data.db"

    # Help Request Configuration
    help_request_timeout_hours: float = 1.0
    allow_resolve_non_pending: bool = False
    learned_category: Optional[str] = "supervisor-learned"

    # Knowledge Resolver Configuration
    substring_match_enabled: bool = True

    # Delivery Configuration
    poll_interval_seconds: float = 5.0
    resolution_poller_enabled: bool = False
    delivery_claim_timeout_seconds: float = 60.0
    default_customer_phone: str = "+1234567890"

    # Notification Configuration
    supervisor_webhook_url: Optional[str] = None
    webhook_timeout_seconds: float = 10.0

    # Application Configuration
    app_name: str = "Front Desk Supervisor"
    log_level: str = "INFO"
    debug: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def require_livekit_credentials(self) -> None:
        """Raise if the LiveKit connection settings are incomplete"""
        if not all([self.livekit_url, self.livekit_api_key, self.livekit_api_secret]):
            raise ValueError("LiveKit credentials not set in environment")


# Global settings instance
settings = Settings()


# Validation on import
if settings.help_request_timeout_hours <= 0:
    raise ValueError("HELP_REQUEST_TIMEOUT_HOURS must be positive")

if settings.poll_interval_seconds <= 0:
    raise ValueError("POLL_INTERVAL_SECONDS must be positive")

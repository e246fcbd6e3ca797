"""consent-gate – Application Configuration.

Pydantic Settings, loaded from .env file or environment variables.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Runtime ---
    environment: str = "development"
    log_level: str = "info"
    platform: str = "auto"  # 'auto' = detect from sys.platform, or ios/android/other

    # --- Storage ---
    storage_backend: str = "sqlite"  # sqlite | redis | memory
    storage_path: str = "data/consent.db"
    redis_url: str = "redis://127.0.0.1:6379/0"
    general_consent_key: str = "general_consent"
    effective_permission_key: str = "effective_permission"

    # --- Event Buffer ---
    # Comma separated, matched case-insensitively against parameter keys
    pii_keys: str = "email,phone,user_id,customer_id"

    # --- Native Bridge ---
    native_bridge_url: str = "http://127.0.0.1:8765/privacy"

    # --- Analytics Transport ---
    analytics_endpoint_url: str = "https://api2.appsflyer.com/inappevent"
    analytics_dev_key: str = ""
    analytics_app_id: str = ""
    analytics_show_debug: bool = False
    http_timeout_seconds: float = 10.0

    @property
    def pii_key_list(self) -> list[str]:
        return [key.strip().lower() for key in self.pii_keys.split(",") if key.strip()]


def get_settings() -> Settings:
    """Factory function for settings singleton."""
    return Settings()

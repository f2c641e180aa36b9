"""Configuration for the capsule core, loaded from the environment and .env."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings. Every field can be overridden with a QNET_* variable."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="QNET_",
        extra="ignore",
    )

    # Pinata blob store
    pinata_jwt: Optional[str] = None
    pinata_api_url: str = "https://api.pinata.cloud"
    pinata_gateway_url: str = "https://gateway.pinata.cloud"

    # Blob store calls are the only blocking I/O
    blob_timeout: float = 30.0

    # Recovery scan over blob listings
    recovery_page_size: int = 100
    recovery_max_pages: int = 10

    log_level: str = "INFO"

    @property
    def pinata_configured(self) -> bool:
        return bool(self.pinata_jwt)


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()

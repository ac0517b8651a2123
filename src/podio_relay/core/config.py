"""
Configuration settings for the Podio Push Relay.
"""
from typing import List, Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Relay configuration loaded from environment variables.

    For local development, create a .env file. Defaults target a local
    setup; production deployments must set the Podio secret and the
    forward target URLs explicitly.
    """
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service settings
    service_name: str = "podio-push-relay"
    service_port: int = Field(default=8080, validation_alias=AliasChoices("PORT", "SERVICE_PORT"))
    debug: bool = False
    log_level: str = "INFO"

    # Webhook verification
    podio_push_secret: str | None = None
    podio_signature_algorithm: Literal["sha1", "sha256"] = "sha1"
    app_base_url: str = "http://localhost:8080"

    # Forward targets
    ava_topic_url: str | None = None
    debug_webhook_url: str | None = None
    forward_urls: str = ""  # comma-separated extra targets
    forward_timeout_seconds: float = 10.0
    relay_drain_timeout_seconds: float = 5.0
    relay_queue_size: int = 1000  # per target

    # Bus settings
    bus_adapter: Literal["bayeux", "memory"] = "bayeux"
    bayeux_url: str = "https://push.podio.com/faye"
    bus_timeout_seconds: float = 10.0
    bus_retry_seconds: float = 5.0
    subscribe_confirm_timeout_seconds: float = 15.0

    @property
    def forward_targets(self) -> List[str]:
        """All configured forward target URLs, de-duplicated, in order."""
        candidates = [self.ava_topic_url, self.debug_webhook_url]
        candidates.extend(url.strip() for url in self.forward_urls.split(","))

        targets: List[str] = []
        for url in candidates:
            if url and url not in targets:
                targets.append(url)
        return targets


# Global settings instance
settings = Settings()

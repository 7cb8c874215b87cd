from functools import lru_cache
import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Variables use the FULFILLMENT_ prefix, e.g. FULFILLMENT_REMOTE_LOOKUP_TIMEOUT=2.5.
    A .env file in the working directory is read as well.
    """

    # Peer lookup for the remote half of mutual fulfillment (seconds)
    remote_lookup_timeout: float = 5.0

    # Transitive social distribution
    social_distribution_depth: int = 5
    min_distribution_share: float = 0.0001

    # Compare the incremental type index with a full scan before recognition reads
    verify_type_index: bool = False

    log_level: str = "INFO"

    class Config:
        env_prefix = "FULFILLMENT_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @field_validator("remote_lookup_timeout")
    @classmethod
    def timeout_positive(cls, v):
        if v <= 0:
            raise ValueError("remote_lookup_timeout must be positive")
        return v

    @field_validator("social_distribution_depth")
    @classmethod
    def depth_non_negative(cls, v):
        if v < 0:
            raise ValueError("social_distribution_depth must be >= 0")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


def configure_logging(settings: Settings = None):
    """Apply the configured log level to the root logger."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

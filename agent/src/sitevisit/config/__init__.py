"""Configuration module for the site visit agent."""

from functools import lru_cache

from sitevisit.config.settings import Settings


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]

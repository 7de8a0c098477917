"""Location capture configuration module.

Provides centralized configuration management using pydantic-settings.

Usage:
    from locationcapture.config import get_settings

    settings = get_settings()
    print(settings.database_path)
    print(settings.load_options().upload_url)
"""

from functools import lru_cache

from locationcapture.config.settings import CaptureOptions, Settings

__all__ = ["CaptureOptions", "Settings", "get_settings"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    To reload settings, call get_settings.cache_clear() first.

    Returns:
        Settings instance loaded from environment variables.
    """
    return Settings()

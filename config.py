"""
Configuration management for Dealbook.
Uses pydantic-settings for type-safe, centralized configuration.
"""

from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type safety.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    # Database
    database_url: str = "sqlite:///dealbook.db"
    db_echo: bool = False

    # Record store behaviour
    store_timeout_seconds: float = 5.0
    store_retry_attempts: int = 3

    # "lenient" coerces bad numbers to 0, "strict" raises
    numeric_mode: Literal["lenient", "strict"] = "lenient"

    # Sessions
    session_ttl_minutes: int = 60
    reset_token_ttl_minutes: int = 30
    password_reset_url: str = "http://localhost:8501/"

    # Display
    app_timezone: Optional[str] = None  # IANA name, None = system local time
    log_level: str = "INFO"

    # Email / SMTP Configuration
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    from_email: Optional[str] = None

    @property
    def email_from(self) -> Optional[str]:
        """Get the from email address, defaulting to smtp_username."""
        return self.from_email or self.smtp_username

    @property
    def is_email_configured(self) -> bool:
        """Check if email service is properly configured."""
        return all([
            self.smtp_username,
            self.smtp_password,
            self.email_from
        ])

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings

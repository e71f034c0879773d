"""
Application configuration using Pydantic settings.
"""
from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "sqlite:///gem_scores.db"
    database_echo: bool = False

    # Financial Modeling Prep
    fmp_api_key: Optional[str] = None
    fmp_base_url: str = "https://financialmodelingprep.com/stable"
    fmp_requests_per_minute: int = 300
    fmp_timeout_seconds: int = 30
    fmp_statement_limit: int = 6

    # Reference tables
    config_dir: Optional[str] = None  # Defaults to config/ at the project root

    # Scanner
    scanner_concurrency: Optional[int] = None  # Overrides scanner.yaml when set
    scanner_delay_ms: Optional[int] = None

    # Scoring
    default_horizon: str = "long-term"

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"
    log_file: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"  # Allow extra fields from .env file
    }


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance
    """
    return Settings()

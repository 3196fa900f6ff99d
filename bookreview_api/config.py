"""
API configuration settings.
"""

from typing import List, Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """
    API configuration settings.

    Built once at process start and handed to ``create_app``; nothing in the
    package reads a module-level instance. ``jwt_secret`` has no default, so a
    deployment without ``JWT_SECRET`` fails while loading its configuration.
    """

    # API Settings
    api_title: str = "Book Review API"
    api_version: str = "1.0.0"
    api_description: str = "REST API for a book catalog with user reviews"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Database Settings
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "book_reviews"

    # Security Settings
    jwt_secret: str = Field(..., min_length=1)
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=60 * 24 * 7, gt=0)

    # CORS Settings
    cors_origins: List[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: List[str] = ["*"]
    cors_allow_headers: List[str] = ["*"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "extra": "ignore"  # Ignore extra fields from .env
    }

    @validator('log_level')
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @validator('log_format')
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    @validator('jwt_secret')
    def validate_jwt_secret(cls, v):
        """Reject secrets made only of whitespace."""
        if not v.strip():
            raise ValueError('jwt_secret must not be blank')
        return v

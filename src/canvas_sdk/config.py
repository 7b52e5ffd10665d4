"""
Configuration management for Canvas SDK.

This module provides CanvasSettings class that handles all SDK configuration
with support for environment variables, .env files, and sensible defaults.

Environment variables are automatically loaded with CANVAS_ prefix.
Example: CANVAS_API_KEY=your_token
"""

from pathlib import Path
from typing import Literal
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict


class CanvasSettings(BaseSettings):
    """
    Configuration settings for Canvas SDK with environment variable support.

    This class automatically loads configuration from:
    - Environment variables (with CANVAS_ prefix)
    - .env files
    - Default values for optional settings

    Example:
        # From environment
        export CANVAS_BASE_URL=https://school.instructure.com
        export CANVAS_API_KEY=your_token

        # In code
        settings = CanvasSettings()
    """

    base_url: str = ""
    api_key: Optional[str] = None
    api_version: str = "v1"
    auth_mode: Literal["api_key", "oauth"] = "api_key"

    oauth_client_id: Optional[str] = None
    oauth_client_secret: Optional[str] = None
    oauth_token: Optional[str] = None
    oauth_refresh_token: Optional[str] = None
    oauth_expires_at: Optional[float] = None

    timeout: float = 30.0
    transport: str = "httpx"  # default, can be 'aiohttp' or 'requests'
    http_errors: bool = True
    token_cache_path: Path = Field(
        default=Path.home() / ".canvas_sdk" / "token_cache.json"
    )

    # middleware toggles
    retry_enabled: bool = True
    retry_max_attempts: int = 3
    rate_limit_enabled: bool = True
    rate_limit_wait_on_limit: bool = True
    rate_limit_max_wait_time: float = 60
    cache_enabled: bool = False
    cache_default_ttl: int = 300
    logging_enabled: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CANVAS_", env_file=".env", extra="ignore"
    )
